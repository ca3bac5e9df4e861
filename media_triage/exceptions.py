"""
Custom exception hierarchy for the media triage engine.

Record-store writes raise these. File moves never do: their failures are
reported through MoveResult instead.
"""


class MediaTriageError(Exception):
    """Base exception for all media triage errors."""
    pass


class StorageError(MediaTriageError):
    """Raised when a record-store write fails."""
    pass


class ConfigError(MediaTriageError):
    """Raised when the settings file cannot be read or written."""
    pass


class ScopeError(MediaTriageError):
    """Raised when a location escapes the granted directory handle."""
    pass
