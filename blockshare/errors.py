"""Exception hierarchy for the publishing pipeline.

Configuration and parse errors abort the current operation. Fetch failures
inside reference resolution and per-asset upload or delete failures are
caught by their callers and degrade the result instead.
"""

from typing import List, Optional


class PublisherError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PublisherError):
    """Required settings are missing or invalid; raised before any I/O."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class FetchError(PublisherError):
    """Content source unreachable or answered with a failure status."""

    def __init__(self, message: str, target: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.target = target
        self.status_code = status_code


class RequestTimeoutError(FetchError):
    """A single network call exceeded its own timeout."""


class ParseError(PublisherError):
    """Native payload missing or malformed, or it transformed to nothing."""


class CycleDetected(PublisherError):
    """A transclusion points back at one of its own ancestors."""

    def __init__(self, block_id: str, path: tuple):
        super().__init__(f"Reference cycle at {block_id}: {' -> '.join(path + (block_id,))}")
        self.block_id = block_id
        self.path = path


class DepthExceeded(PublisherError):
    """A transclusion chain went deeper than the configured maximum."""

    def __init__(self, block_id: str, depth: int, max_depth: int):
        super().__init__(f"Reference depth {depth} reached max {max_depth} at {block_id}")
        self.block_id = block_id
        self.depth = depth
        self.max_depth = max_depth


class SigningError(PublisherError):
    """Request signing failed. Indicates a programming error."""


class UploadError(PublisherError):
    """A single object upload failed."""

    def __init__(self, message: str, object_key: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.object_key = object_key
        self.status_code = status_code


class DeleteError(PublisherError):
    """A single object delete failed."""

    def __init__(self, message: str, object_key: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.object_key = object_key
        self.status_code = status_code


class NetworkTransportError(PublisherError):
    """The request never produced an HTTP response."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class RegistryError(PublisherError):
    """The share registry rejected a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    'PublisherError',
    'ConfigurationError',
    'FetchError',
    'RequestTimeoutError',
    'ParseError',
    'CycleDetected',
    'DepthExceeded',
    'SigningError',
    'UploadError',
    'DeleteError',
    'NetworkTransportError',
    'RegistryError',
]
