"""Service layer helpers (settings, progress notifications)."""

from .progress import InMemoryProgressSink, ProgressBroadcaster, ProgressEvent, ProgressSink
from .settings import Settings, SettingsStore, api_key_provider, redact_secret

__all__ = [
    "ProgressEvent",
    "ProgressSink",
    "InMemoryProgressSink",
    "ProgressBroadcaster",
    "Settings",
    "SettingsStore",
    "api_key_provider",
    "redact_secret",
]
