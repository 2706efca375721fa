"""docker-tar-push - push docker-save archives to a registry without a daemon."""

__version__ = "0.1.0"

from .core.types import BlobInfo, ImageReference, ManifestEntry, PushResult, RegistryConfig
from .exceptions import (
    BlobProbeError,
    BlobUploadError,
    ChunkRejectedError,
    ManifestError,
    ManifestMalformedError,
    ManifestPublishError,
    ManifestUnreadableError,
    RegistryConnectionError,
    RegistryError,
    TarReadError,
    UploadSessionError,
)
from .push import push_archive, push_docker_tar
from .tar.extractor import extract_archive
from .tar.manifest import read_manifest
from .tar.tags import parse_repository_tag

__all__ = [
    "push_docker_tar",
    "push_archive",
    "extract_archive",
    "read_manifest",
    "parse_repository_tag",
    "RegistryConfig",
    "BlobInfo",
    "ImageReference",
    "ManifestEntry",
    "PushResult",
    "RegistryError",
    "RegistryConnectionError",
    "TarReadError",
    "ManifestUnreadableError",
    "ManifestMalformedError",
    "BlobProbeError",
    "BlobUploadError",
    "UploadSessionError",
    "ChunkRejectedError",
    "ManifestError",
    "ManifestPublishError",
]
