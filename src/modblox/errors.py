"""
Error taxonomy for Modblox core components.

Every failure raised by the ledger, the leveling engine, the verification
service or the cross-reference resolver is one of these types. Command
handlers catch them and report ``str(error)`` to the invoking user; anything
else is treated as an unexpected failure, logged, and reported generically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modblox.datatypes.action_datatypes import ModerationAction


class ModbloxError(Exception):
    """Base class for recoverable, user-reportable errors."""


class ValidationError(ModbloxError):
    """Malformed input: empty reason, negative duration, bad duration string, bad timestamp."""


class ConflictError(ModbloxError):
    """The target already holds an active record for a mutually exclusive kind group.

    Attributes:
        existing: The record currently in effect.
    """

    def __init__(self, message: str, existing: "ModerationAction") -> None:
        super().__init__(message)
        self.existing = existing


class ReversalError(ModbloxError):
    """A reversal was requested but there is nothing active to reverse."""


class NotFoundError(ModbloxError):
    """A referenced case ID, Roblox user, or identity link does not exist."""


class ParseError(ValidationError):
    """A duration string does not match the grammar or the caller's unit set."""


class LinkConflictError(ModbloxError):
    """A Roblox account is already linked to a different Discord user."""
