"""Device-local key-value storage (unread counters, theme preference)."""

from linkup.localstore.store import LocalStore
from linkup.localstore.theme import ThemeMode, ThemePreference

__all__ = ["LocalStore", "ThemeMode", "ThemePreference"]
