"""Embeds, views and modals shown to Discord users."""
