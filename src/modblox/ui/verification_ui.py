"""
Buttons and modal used by the Roblox verification flow.

The views only check that the clicking user is the one the view was issued
for, then hand off to the callbacks supplied by the verification cog.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import discord

from modblox.util.logger import get_logger

logger = get_logger("verification_ui")

VIEW_TIMEOUT_SECONDS = 600

UsernameCallback = Callable[[discord.Interaction, str], Awaitable[None]]
ConfirmCallback = Callable[[discord.Interaction], Awaitable[None]]


def _disable_buttons(view: discord.ui.View) -> None:
    for child in view.children:
        if isinstance(child, discord.ui.Button):
            child.disabled = True


class RobloxUsernameModal(discord.ui.Modal):
    """Asks for the Roblox username the member wants to link."""

    def __init__(self, on_submit: UsernameCallback):
        super().__init__(title="Roblox Verification")
        self._on_submit = on_submit
        self.add_item(
            discord.ui.InputText(
                label="Roblox Username",
                placeholder="Enter your Roblox username",
                min_length=3,
                max_length=20,
                required=True,
            )
        )

    async def callback(self, interaction: discord.Interaction):
        username = (self.children[0].value or "").strip()
        await self._on_submit(interaction, username)


class VerificationView(discord.ui.View):
    """The "Complete Verification" button shown under the instructions embed."""

    def __init__(self, discord_id: int, on_username: UsernameCallback, timeout: float = VIEW_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.discord_id = discord_id
        self._on_username = on_username

    @discord.ui.button(label="Complete Verification", style=discord.ButtonStyle.success, emoji="✅")
    async def complete_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        if interaction.user is None or interaction.user.id != self.discord_id:
            await interaction.response.send_message("❌ This verification is not for you!", ephemeral=True)
            return
        await interaction.response.send_modal(RobloxUsernameModal(self._on_username))


class UnverifyConfirmView(discord.ui.View):
    """Confirm / cancel buttons for /unverify."""

    def __init__(self, invoker_id: int, on_confirm: ConfirmCallback, timeout: float = VIEW_TIMEOUT_SECONDS):
        super().__init__(timeout=timeout)
        self.invoker_id = invoker_id
        self._on_confirm = on_confirm

    async def _check_invoker(self, interaction: discord.Interaction) -> bool:
        if interaction.user is None or interaction.user.id != self.invoker_id:
            await interaction.response.send_message("❌ This unverification is not for you!", ephemeral=True)
            return False
        return True

    @discord.ui.button(label="Confirm", style=discord.ButtonStyle.danger, emoji="🔓")
    async def confirm_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        if not await self._check_invoker(interaction):
            return
        _disable_buttons(self)
        self.stop()
        await self._on_confirm(interaction)

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary)
    async def cancel_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        if not await self._check_invoker(interaction):
            return
        _disable_buttons(self)
        self.stop()
        await interaction.response.edit_message(content="Unverification cancelled.", embed=None, view=self)
        logger.debug("[VERIFICATION UI] Unverify cancelled by %s", interaction.user.id)
