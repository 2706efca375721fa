"""Schema 2 manifest creation and publishing."""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from ..core.session import get_header, make_request
from ..core.types import BlobInfo, ManifestInfo, RegistryConfig
from ..exceptions import ManifestPublishError
from ..utils.digest import calculate_digest, validate_digest
from ..utils.media_types import MANIFEST_V2

logger = logging.getLogger(__name__)


def create_manifest_v2(manifest_info: ManifestInfo) -> dict[str, Any]:
    """Build a schema 2 manifest; layers keep the order they are given in."""
    return {
        "schemaVersion": manifest_info.schema_version,
        "mediaType": manifest_info.media_type,
        "config": manifest_info.config.to_dict(),
        "layers": [layer.to_dict() for layer in manifest_info.layers],
    }


def build_manifest_info(config_blob: BlobInfo, layer_blobs: list[BlobInfo]) -> ManifestInfo:
    return ManifestInfo(config=config_blob, layers=list(layer_blobs))


def serialize_manifest(manifest: dict[str, Any]) -> bytes:
    """Render a manifest as the exact bytes sent to the registry."""
    return json.dumps(manifest, separators=(",", ":")).encode("utf-8")


def calculate_manifest_digest(manifest: dict[str, Any]) -> str:
    """Digest of the serialized manifest."""
    return calculate_digest(serialize_manifest(manifest))


async def upload_manifest(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    tag: str,
    manifest: dict[str, Any],
) -> str:
    """Publish a manifest under ``repository:tag``.

    Returns:
        The manifest digest reported by the registry, or the locally
        computed one if the registry sends none or a malformed one

    Raises:
        ManifestPublishError: Unless the registry answers 201
    """
    url = f"{config.base_url}/v2/{repository}/manifests/{tag}"
    body = serialize_manifest(manifest)
    media_type = manifest.get("mediaType", MANIFEST_V2)
    headers = {"Content-Type": media_type, "Content-Length": str(len(body))}

    try:
        result = await make_request(session, "PUT", url, data=body, headers=headers)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ManifestPublishError(
            f"PUT {url} failed: {e}",
            operation="publish-manifest",
            repository=repository,
        ) from e

    if result.status_code != 201:
        detail = (result.data or b"").decode("utf-8", errors="replace").strip()
        raise ManifestPublishError(
            f"Put manifest failed, code is {result.status_code}"
            + (f": {detail[:200]}" if detail else ""),
            operation="publish-manifest",
            repository=repository,
            status=result.status_code,
        )

    digest = get_header(result.headers, "Docker-Content-Digest")
    if digest is not None and not validate_digest(digest):
        logger.warning("registry sent invalid manifest digest %r", digest)
        digest = None
    return digest or calculate_manifest_digest(manifest)
