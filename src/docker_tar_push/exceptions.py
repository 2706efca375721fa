"""Custom exceptions for docker-tar-push."""

from typing import Optional


class RegistryError(Exception):
    """Base exception for all push-related errors.

    Besides the message, every error carries the context needed to diagnose
    it without retrying: the operation that failed and, where known, the local
    path, repository, digest and HTTP status.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        repository: Optional[str] = None,
        digest: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path
        self.repository = repository
        self.digest = digest
        self.status = status


class RegistryConnectionError(RegistryError):
    """Raised when unable to connect to the registry."""

    pass


class TarReadError(RegistryError):
    """Raised when the archive cannot be read or extracted."""

    pass


class ManifestUnreadableError(TarReadError):
    """Raised when manifest.json is missing from the archive."""

    pass


class ManifestMalformedError(TarReadError):
    """Raised when manifest.json does not have the expected shape."""

    pass


class BlobProbeError(RegistryError):
    """Raised when the registry cannot tell whether a blob exists."""

    pass


class BlobUploadError(RegistryError):
    """Raised when blob upload fails."""

    pass


class UploadSessionError(BlobUploadError):
    """Raised when the registry refuses to open an upload session."""

    pass


class ChunkRejectedError(BlobUploadError):
    """Raised when the registry rejects a chunk or the final upload request."""

    pass


class ManifestError(RegistryError):
    """Raised when manifest operations fail."""

    pass


class ManifestPublishError(ManifestError):
    """Raised when the registry does not accept a pushed manifest."""

    pass
