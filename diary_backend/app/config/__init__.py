"""Config package exporting loader helpers."""

from .loader import EntriesConfig, Settings, load_settings

__all__ = ["EntriesConfig", "Settings", "load_settings"]
