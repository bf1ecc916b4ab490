"""Persisted light/dark theme preference."""

from enum import Enum

import structlog

from linkup.localstore.store import LocalStore

logger = structlog.get_logger(__name__)

THEME_KEY = "@linkup:theme-mode"


class ThemeMode(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class ThemePreference:
    """
    The user's theme choice, loaded once and written through on change.

    Usage:
        theme = ThemePreference(local_store)
        await theme.load()
        await theme.toggle()
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self.mode = ThemeMode.LIGHT

    async def load(self) -> ThemeMode:
        stored = await self.store.get(THEME_KEY)
        try:
            self.mode = ThemeMode(stored) if stored is not None else ThemeMode.LIGHT
        except ValueError:
            logger.warning("Ignoring unknown theme mode", stored=stored)
            self.mode = ThemeMode.LIGHT
        return self.mode

    async def set(self, mode: ThemeMode | str) -> ThemeMode:
        """Switch theme. Raises ValueError for anything but light or dark."""
        self.mode = ThemeMode(mode)
        await self.store.set(THEME_KEY, self.mode.value)
        return self.mode

    async def toggle(self) -> ThemeMode:
        return await self.set(ThemeMode.DARK if self.mode is ThemeMode.LIGHT else ThemeMode.LIGHT)
