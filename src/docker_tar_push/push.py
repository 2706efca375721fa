"""Push docker-save archives to a registry."""

import asyncio
import logging
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import aiohttp

from .core.connectivity import check_connectivity
from .core.session import create_session
from .core.types import BlobInfo, ImageReference, ManifestEntry, PushResult, RegistryConfig
from .exceptions import RegistryError, TarReadError
from .operations.blobs import describe_blob, describe_layer, push_blob
from .operations.manifests import build_manifest_info, create_manifest_v2, upload_manifest
from .tar.extractor import extract_archive
from .tar.manifest import entry_file_path, read_manifest, validate_manifest_entry
from .tar.tags import DEFAULT_TAG, entry_references
from .utils.media_types import IMAGE_CONFIG

logger = logging.getLogger(__name__)


@contextmanager
def scratch_directory(base: Optional[str] = None) -> Iterator[str]:
    """Create a private extraction directory and remove it afterwards."""
    path = tempfile.mkdtemp(prefix=f"docker-tar-push-{time.time_ns()}-", dir=base)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as e:
            logger.error("remove tmp dir %s error, %s", path, e)


async def _extract_in_executor(tar_path: str, workdir: str) -> None:
    """Run the blocking extraction in a worker thread.

    The thread cannot be interrupted, so on cancellation it is awaited before
    the cancellation propagates and the scratch directory is removed.
    """
    loop = asyncio.get_running_loop()
    extraction = loop.run_in_executor(None, extract_archive, tar_path, workdir)
    try:
        await asyncio.shield(extraction)
    except asyncio.CancelledError:
        await asyncio.wait([extraction])
        raise


class _BlobCache:
    """Descriptors computed once per file for the whole push."""

    def __init__(self) -> None:
        self._blobs: dict[str, BlobInfo] = {}

    async def layer(self, path: str) -> BlobInfo:
        if path not in self._blobs:
            self._blobs[path] = await describe_layer(path)
        return self._blobs[path]

    async def config(self, path: str) -> BlobInfo:
        if path not in self._blobs:
            self._blobs[path] = await describe_blob(path, IMAGE_CONFIG)
        return self._blobs[path]


def resolve_references(
    entry: ManifestEntry,
    repository: Optional[str] = None,
    tag: Optional[str] = None,
) -> list[ImageReference]:
    """References to push an entry as, applying optional overrides.

    Without overrides the entry's own RepoTags are used. An overriding
    repository or tag replaces that part of every RepoTag; an untagged entry
    can only be pushed when a repository is given.
    """
    references = entry_references(entry)
    if repository is None and tag is None:
        return references

    if not references:
        if repository is None:
            return []
        return [ImageReference(repository=repository, tag=tag or DEFAULT_TAG)]

    resolved: list[ImageReference] = []
    for reference in references:
        candidate = ImageReference(
            repository=repository or reference.repository,
            tag=tag or reference.tag,
        )
        if candidate not in resolved:
            resolved.append(candidate)
    return resolved


async def _push_layer(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    name: str,
    path: str,
    blob: BlobInfo,
) -> None:
    logger.info("push layer %s", name)
    try:
        uploaded = await push_blob(session, config, repository, path, blob)
    except RegistryError as e:
        logger.error("pushLayer %s failed, %s", name, e)
        raise
    if uploaded:
        logger.info("push layer %s done", name)


async def _push_layers(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    repository: str,
    layers: list[tuple[str, str, BlobInfo]],
    concurrent_uploads: int,
) -> None:
    """Upload missing layers, one at a time or under a semaphore.

    In concurrent mode the first failure cancels the uploads still running
    and is re-raised once they have stopped.
    """
    unique: dict[str, tuple[str, str, BlobInfo]] = {}
    for name, path, blob in layers:
        unique.setdefault(blob.digest, (name, path, blob))

    if concurrent_uploads <= 1:
        for name, path, blob in unique.values():
            await _push_layer(session, config, repository, name, path, blob)
        return

    semaphore = asyncio.Semaphore(concurrent_uploads)

    async def guarded(name: str, path: str, blob: BlobInfo) -> None:
        async with semaphore:
            await _push_layer(session, config, repository, name, path, blob)

    tasks = [asyncio.ensure_future(guarded(*layer)) for layer in unique.values()]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def push_image(
    session: aiohttp.ClientSession,
    config: RegistryConfig,
    workdir: str,
    entry: ManifestEntry,
    reference: ImageReference,
    blobs: Optional[_BlobCache] = None,
    concurrent_uploads: int = 1,
) -> PushResult:
    """Push the layers, config and manifest of one entry as ``reference``.

    Raises:
        RegistryError: On the first failing probe, upload or manifest push
    """
    blobs = blobs or _BlobCache()
    repository = reference.repository
    logger.debug("image=%s,tag=%s", repository, reference.tag)

    layers = []
    for name in entry.layers:
        path = entry_file_path(workdir, name)
        layers.append((name, path, await blobs.layer(path)))
    await _push_layers(session, config, repository, layers, concurrent_uploads)

    config_path = entry_file_path(workdir, entry.config)
    config_blob = await blobs.config(config_path)
    logger.info("start push image config %s", entry.config)
    try:
        await push_blob(session, config, repository, config_path, config_blob)
    except RegistryError as e:
        logger.error("push image config failed, %s", e)
        raise

    manifest = create_manifest_v2(
        build_manifest_info(config_blob, [blob for _, _, blob in layers])
    )
    logger.info("start push manifest %s", reference)
    try:
        digest = await upload_manifest(session, config, repository, reference.tag, manifest)
    except RegistryError as e:
        logger.error("push manifest error, %s", e)
        raise
    logger.info("push manifest done %s@%s", reference, digest)

    return PushResult(repository=repository, tag=reference.tag, digest=digest)


async def push_archive(
    config: RegistryConfig,
    tar_path: Union[str, Path],
    *,
    repository: Optional[str] = None,
    tag: Optional[str] = None,
    concurrent_uploads: int = 1,
    check_registry: bool = True,
    scratch_base: Optional[str] = None,
) -> list[PushResult]:
    """Push every image of an archive with an explicit registry config.

    The push stops at the first failure: remaining tags and entries are not
    attempted. The scratch directory is removed whatever the outcome.

    Returns:
        One PushResult per pushed repository:tag, in archive order
    """
    tar_path = str(tar_path)
    if not os.path.isfile(tar_path):
        logger.error("%s not exists", tar_path)
        raise TarReadError(
            f"Tar file not found: {tar_path}", operation="push", path=tar_path
        )

    results: list[PushResult] = []

    async with await create_session(config) as session:
        if check_registry:
            await check_connectivity(config, session)

        with scratch_directory(scratch_base) as workdir:
            logger.info("extract archive file %s to %s", tar_path, workdir)
            try:
                await _extract_in_executor(tar_path, workdir)
                entries = read_manifest(workdir)
            except TarReadError as e:
                logger.error("unarchive failed, %s", e)
                raise

            blobs = _BlobCache()
            for entry in entries:
                references = resolve_references(entry, repository, tag)
                if not references:
                    logger.warning(
                        "image with config %s has no RepoTags, skipping", entry.config
                    )
                    continue

                validate_manifest_entry(entry, workdir)
                logger.info("start push image archive %s", tar_path)
                for reference in references:
                    result = await push_image(
                        session,
                        config,
                        workdir,
                        entry,
                        reference,
                        blobs,
                        concurrent_uploads,
                    )
                    results.append(result)

    logger.info("push image archive %s done", tar_path)
    return results


async def push_docker_tar(
    tar_path: Union[str, Path],
    registry_url: str,
    username: str = "",
    password: str = "",
    skip_tls_verify: bool = False,
    *,
    repository: Optional[str] = None,
    tag: Optional[str] = None,
    timeout: int = 300,
    concurrent_uploads: int = 1,
    check_registry: bool = True,
) -> list[PushResult]:
    """Push a docker-save tar file to a registry.

    Every image of the archive is pushed under each of its RepoTags.

    Args:
        tar_path: Path to the docker-save tar file
        registry_url: Registry endpoint (e.g. "https://registry.example.com")
        username: Basic auth user name
        password: Basic auth password
        skip_tls_verify: Accept self-signed registry certificates
        repository: Push under this repository instead of the archived one
        tag: Push under this tag instead of the archived one
        timeout: Total timeout per request in seconds
        concurrent_uploads: Layers uploaded in parallel per tag (1 = sequential)
        check_registry: Check ``GET /v2/`` before doing any work

    Returns:
        list[PushResult]: Repository, tag and manifest digest per pushed tag

    Raises:
        TarReadError: If the archive or its manifest.json cannot be read
        RegistryConnectionError: If the registry cannot be reached
        BlobProbeError, BlobUploadError, ManifestPublishError: On the first
            failing registry operation

    Examples:
        results = await push_docker_tar(
            "nginx.tar", "http://localhost:5000", "user", "secret"
        )
        for result in results:
            print(f"{result.repository}:{result.tag} -> {result.digest}")
    """
    config = RegistryConfig(
        url=registry_url,
        username=username,
        password=password,
        skip_tls_verify=skip_tls_verify,
        timeout=timeout,
    )
    return await push_archive(
        config,
        tar_path,
        repository=repository,
        tag=tag,
        concurrent_uploads=concurrent_uploads,
        check_registry=check_registry,
    )
