"""Service error hierarchy.

- StudioError: Base for all service errors
- ValidationError: Bad submission input, rejected before any row exists
- AuthError: Missing or invalid session
- PersistenceError: Row insert/update failure
- UpstreamError: The generation model failed or returned no usable artifact
- TransportError: Network failure while polling, downloading or uploading
"""


class StudioError(Exception):
    """Base exception for all service errors."""

    pass


class ValidationError(StudioError):
    """Submission input is invalid.

    Examples:
    - Empty prompt after trimming
    - Variation count outside {1, 2, 4}
    - Resource belongs to another user or is already attached
    """

    pass


class AuthError(StudioError):
    """Caller is not authenticated (missing, expired or forged token)."""

    pass


class PersistenceError(StudioError):
    """Database write failed; no job was dispatched."""

    pass


class UpstreamError(StudioError):
    """The hosted model rejected the request, failed, or produced no output."""

    pass


class TransportError(StudioError):
    """Network-level failure talking to the model API, storage, or the studio API.

    Examples:
    - Connection refused / DNS failure
    - Request timeout
    - 5xx from a storage gateway
    """

    pass


class StorageError(TransportError):
    """Object storage upload or download failed."""

    pass
