"""Service layer for persisted configuration."""

from .settings import SecretVault, Settings, SettingsStore, validate_storage_directory

__all__ = ["SecretVault", "Settings", "SettingsStore", "validate_storage_directory"]
