"""Global light/dark preference (shared by every user and session)."""
from .schema import Theme
from .storage import StorageAdapter, StorageKeys


class ThemeStore:
    def __init__(self, storage: StorageAdapter):
        self.storage = storage

    def get(self) -> Theme:
        return Theme.from_str(self.storage.read(StorageKeys.THEME, Theme.LIGHT.value))

    def set(self, theme) -> Theme:
        theme = Theme.from_str(theme)
        self.storage.write(StorageKeys.THEME, theme.value)
        return theme

    def toggle(self) -> Theme:
        return self.set(self.get().toggled())
