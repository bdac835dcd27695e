"""
Exceptions raised by the media engine.
"""


class MediaEngineError(Exception):
    """Base exception for media engine operations."""

    pass


class DecodeError(MediaEngineError):
    """Raised when a media object cannot be probed or decoded."""

    pass


class ExportError(MediaEngineError):
    """Raised when a transform session cannot allocate or encode its output."""

    pass


class SessionStateError(MediaEngineError):
    """Raised on an operation that the session lifecycle does not allow."""

    pass


class SpecTableError(MediaEngineError):
    """Raised when a spec table file cannot be loaded."""

    pass
