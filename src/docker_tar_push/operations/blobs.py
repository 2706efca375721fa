"""Blob existence checks and chunked blob uploads."""

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Optional, Union

import aiofiles
import aiohttp

from ..core.session import get_header, make_request, resolve_location
from ..core.types import BlobInfo, RegistryConfig, UploadSession
from ..exceptions import (
    BlobProbeError,
    BlobUploadError,
    ChunkRejectedError,
    UploadSessionError,
)
from ..utils.digest import format_digest, hash_file
from ..utils.media_types import OCTET_STREAM, layer_media_type

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


async def describe_blob(path: Union[str, Path], media_type: str) -> BlobInfo:
    """Hash a local file into a content descriptor."""
    digest, size = await hash_file(path)
    return BlobInfo(digest=digest, size=size, media_type=media_type)


async def describe_layer(path: Union[str, Path]) -> BlobInfo:
    """Describe a layer file, picking its media type from the file header."""
    async with aiofiles.open(path, "rb") as f:
        header = await f.read(4)
    return await describe_blob(path, layer_media_type(header))


async def check_blob_exists(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    digest: str,
) -> bool:
    """Ask the registry whether it already stores a blob.

    Returns:
        True on 200, False on 404

    Raises:
        BlobProbeError: On any other status or a transport failure
    """
    url = f"{config.base_url}/v2/{repository}/blobs/{digest}"
    try:
        result = await make_request(session, "HEAD", url)
    except TRANSPORT_ERRORS as e:
        raise BlobProbeError(
            f"HEAD {url} failed: {e}",
            operation="probe",
            repository=repository,
            digest=digest,
        ) from e

    if result.status_code == 404:
        return False
    if result.status_code != 200:
        raise BlobProbeError(
            f"HEAD {url} failed, status code is {result.status_code}",
            operation="probe",
            repository=repository,
            digest=digest,
            status=result.status_code,
        )
    return True


async def probe_blob_file(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    path: Union[str, Path],
) -> bool:
    """Hash a local file and check whether the registry has it."""
    digest, _ = await hash_file(path)
    return await check_blob_exists(session, config, repository, digest)


async def start_upload(
    session: aiohttp.ClientSession, config: RegistryConfig, repository: str
) -> UploadSession:
    """Open an upload session for ``repository``.

    Raises:
        UploadSessionError: Unless the registry answers 202 with a Location
    """
    url = f"{config.base_url}/v2/{repository}/blobs/uploads/"
    try:
        result = await make_request(session, "POST", url)
    except TRANSPORT_ERRORS as e:
        raise UploadSessionError(
            f"POST {url} failed: {e}", operation="start-upload", repository=repository
        ) from e

    location = get_header(result.headers, "Location")
    if result.status_code != 202 or not location:
        raise UploadSessionError(
            f"POST {url} status is {result.status_code}",
            operation="start-upload",
            repository=repository,
            status=result.status_code,
        )

    location = resolve_location(config, location)
    logger.debug("Upload location: %s", location)
    return UploadSession(location=location)


def _ensure_open(upload: UploadSession) -> None:
    if upload.closed:
        raise BlobUploadError(
            f"Upload session {upload.location} is already closed",
            operation="upload",
        )


def _chunk_headers(offset: int, chunk: bytes) -> dict[str, str]:
    headers = {
        "Content-Type": OCTET_STREAM,
        "Content-Length": str(len(chunk)),
    }
    if chunk:
        headers["Content-Range"] = f"{offset}-{offset + len(chunk) - 1}"
    return headers


def completion_url(location: str, digest: str) -> str:
    """Add the digest query parameter to an upload location."""
    separator = "&" if "?" in location else "?"
    return f"{location}{separator}digest={digest}"


async def upload_chunk(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    upload: UploadSession,
    chunk: bytes,
) -> None:
    """Append one chunk to an upload session with PATCH.

    The registry answers with the location to use for the next request, which
    replaces ``upload.location``.

    Raises:
        ChunkRejectedError: Unless the registry answers 202 with a Location
    """
    _ensure_open(upload)
    headers = _chunk_headers(upload.offset, chunk)
    try:
        result = await make_request(
            session, "PATCH", upload.location, data=chunk, headers=headers
        )
    except TRANSPORT_ERRORS as e:
        raise ChunkRejectedError(
            f"PATCH {upload.location} failed: {e}", operation="upload-chunk"
        ) from e

    location = get_header(result.headers, "Location")
    if result.status_code != 202 or not location:
        raise ChunkRejectedError(
            f"PATCH chunk error, code is {result.status_code}",
            operation="upload-chunk",
            status=result.status_code,
        )

    upload.location = resolve_location(config, location)
    upload.offset += len(chunk)


async def complete_upload(
    session: aiohttp.ClientSession,
    upload: UploadSession,
    chunk: bytes,
    digest: str,
) -> None:
    """Send the last chunk with PUT and close the session.

    Raises:
        ChunkRejectedError: Unless the registry answers 201
    """
    _ensure_open(upload)
    url = completion_url(upload.location, digest)
    headers = _chunk_headers(upload.offset, chunk)
    try:
        result = await make_request(session, "PUT", url, data=chunk, headers=headers)
    except TRANSPORT_ERRORS as e:
        raise ChunkRejectedError(
            f"PUT {url} failed: {e}", operation="complete-upload", digest=digest
        ) from e

    if result.status_code != 201:
        raise ChunkRejectedError(
            f"PUT chunk error, code is {result.status_code}",
            operation="complete-upload",
            digest=digest,
            status=result.status_code,
        )

    upload.offset += len(chunk)
    upload.closed = True


async def upload_blob(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    path: Union[str, Path],
    expected_digest: Optional[str] = None,
) -> str:
    """Upload a local file as a blob in chunks of ``config.chunk_size``.

    Every chunk but the last is sent with PATCH; the last one goes with the
    completing PUT, which carries the digest of the whole file. The digest is
    accumulated while the chunks are read, so the file is read exactly once.

    Args:
        session: Client session
        config: Registry configuration
        repository: Repository name
        path: File to upload
        expected_digest: If given, the upload is refused before completion
            when the content hashes differently

    Returns:
        The ``sha256:`` digest of the uploaded content

    Raises:
        UploadSessionError: If no upload session could be opened
        ChunkRejectedError: If the registry rejects a chunk
        BlobUploadError: If the content does not match ``expected_digest``
    """
    name = str(path)
    total = os.path.getsize(path)
    upload = await start_upload(session, config, repository)
    hasher = hashlib.sha256()

    try:
        async with aiofiles.open(path, "rb") as f:
            chunk = await f.read(config.chunk_size)
            while True:
                hasher.update(chunk)
                next_chunk = await f.read(config.chunk_size)
                sent = upload.offset + len(chunk)
                if total:
                    logger.info("Pushing %s ... %.2f%%", name, sent / total * 100)

                if next_chunk:
                    await upload_chunk(session, config, upload, chunk)
                    chunk = next_chunk
                    continue

                digest = format_digest(hasher.hexdigest())
                if expected_digest is not None and digest != expected_digest:
                    raise BlobUploadError(
                        f"{name} changed while uploading: expected {expected_digest}, got {digest}",
                        operation="upload",
                        path=name,
                        repository=repository,
                        digest=digest,
                    )
                await complete_upload(session, upload, chunk, digest)
                return digest
    except BlobUploadError as e:
        upload.closed = True
        if e.path is None:
            e.path = name
        if e.repository is None:
            e.repository = repository
        raise
    except OSError as e:
        upload.closed = True
        raise BlobUploadError(
            f"Cannot read {name}: {e}",
            operation="upload",
            path=name,
            repository=repository,
        ) from e


async def push_blob(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    path: Union[str, Path],
    blob: BlobInfo,
) -> bool:
    """Upload a blob unless the registry already has it.

    Returns:
        True if the blob was uploaded, False if it already existed
    """
    if await check_blob_exists(session, config, repository, blob.digest):
        logger.info("%s already exists", blob.digest)
        return False

    await upload_blob(session, config, repository, path, expected_digest=blob.digest)
    return True
