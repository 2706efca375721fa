"""Core data types shared by the push operations."""

from dataclasses import dataclass, field
from typing import Any

from ..utils.media_types import MANIFEST_V2

DEFAULT_CHUNK_SIZE = 2 * 1024 * 1024  # 2 MiB


@dataclass(frozen=True)
class RegistryConfig:
    """Immutable registry connection settings passed to every operation."""

    url: str
    username: str = ""
    password: str = ""
    skip_tls_verify: bool = False
    timeout: int = 300
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", self.url.rstrip("/"))
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    @property
    def base_url(self) -> str:
        """Registry endpoint without a trailing slash."""
        return self.url

    @property
    def has_credentials(self) -> bool:
        return bool(self.username or self.password)


@dataclass(frozen=True)
class BlobInfo:
    """Content descriptor of a blob (layer or config)."""

    digest: str
    size: int
    media_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "mediaType": self.media_type,
            "size": self.size,
            "digest": self.digest,
        }


@dataclass(frozen=True)
class ManifestInfo:
    """Distribution manifest content: a config and its ordered layers."""

    config: BlobInfo
    layers: list[BlobInfo]
    schema_version: int = 2
    media_type: str = MANIFEST_V2


@dataclass(frozen=True)
class ManifestEntry:
    """One image entry of a docker-save manifest.json."""

    config: str
    repo_tags: list[str]
    layers: list[str]


@dataclass(frozen=True)
class ImageReference:
    """Repository and tag a manifest is pushed under."""

    repository: str
    tag: str = "latest"

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"


@dataclass
class UploadSession:
    """State of one in-progress blob upload.

    A session is single use: once it is completed or has failed, it must not
    carry any more bytes.
    """

    location: str
    offset: int = 0
    closed: bool = False


@dataclass
class RequestResult:
    """Status, headers and body of a registry response."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    data: bytes | None = None


@dataclass(frozen=True)
class PushResult:
    """Outcome of pushing one repository:tag."""

    repository: str
    tag: str
    digest: str
