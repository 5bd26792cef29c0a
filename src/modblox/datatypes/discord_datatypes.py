"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers. The ledger and the user tables store
them as TEXT, the Discord API wants ints; these wrappers carry one canonical
string form and convert on demand.
"""

from __future__ import annotations

from typing import Union

import discord


class Snowflake:
    """
    Base wrapper for a Discord snowflake ID.

    The value is kept as a canonical decimal string. Instances compare equal to
    the same ID given as an int, a string, or another wrapper of the same type.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> str(uid)
        '123456789012345678'
        >>> UserID("123456789012345678") == 123456789012345678
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake ID as a string, int, or wrapper.

        Raises:
            ValueError: If the value is not a non-negative integer snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
            return
        if isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        if isinstance(value, int):
            number = value
        elif isinstance(value, str):
            number = int(value.strip())
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")
        if number < 0:
            raise ValueError(f"{type(self).__name__} must be non-negative, got {number}")
        self._value = str(number)

    @classmethod
    def from_int(cls, value: int):
        return cls(value)

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __int__(self) -> int:
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Snowflake of a Discord user or guild member."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        return cls(member.id)


class GuildID(Snowflake):
    """Snowflake of a Discord guild (server)."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        return cls(guild.id)


class RoleID(Snowflake):
    """Snowflake of a Discord role."""

    __slots__ = ()
