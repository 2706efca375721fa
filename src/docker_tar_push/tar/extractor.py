"""Archive extraction with link resolution.

Links are never written as filesystem links. Every symbolic or hard link whose
target is found among the extracted regular files is materialised as a copy of
that file, so later hashing and uploading always see real content and no link
privileges are needed on the host.

Extraction happens in two passes because a link may come before its target in
archive order: the first pass streams the archive once, writing regular files
and recording links; the second pass resolves the recorded links against the
files that were written.
"""

import logging
import os
import posixpath
import shutil
import tarfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from ..exceptions import TarReadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingLink:
    """A link member waiting for its target to be known."""

    name: str  # normalized archive path of the link
    target: str  # link destination as recorded in the archive
    location: str  # where the copy is written on disk


@dataclass
class ExtractionResult:
    """Files written by an extraction and the links left unresolved."""

    files: dict[str, str] = field(default_factory=dict)
    unresolved: list[PendingLink] = field(default_factory=list)


def normalize_member_name(name: str) -> str:
    """Normalize an archive path to a forward-slash relative key."""
    name = name.replace("\\", "/")
    normalized = posixpath.normpath(name) if name else "."
    # normpath keeps a leading "//"
    while normalized.startswith("//"):
        normalized = normalized[1:]
    return normalized


def _is_unsafe(name: str) -> bool:
    return name.startswith("/") or name == ".." or name.startswith("../")


def _local_path(root: str, name: str) -> str:
    return os.path.join(root, *name.split("/"))


def link_candidates(link_name: str, target: str) -> list[str]:
    """Archive keys a link target may refer to, in lookup order.

    The raw target comes first, then the target relative to the directory
    holding the link, then the target taken from the archive root.
    """
    target = target.replace("\\", "/")
    candidates = [
        target,
        normalize_member_name(posixpath.join(posixpath.dirname(link_name), target)),
        normalize_member_name(target.lstrip("/")),
    ]
    unique = []
    for candidate in candidates:
        if candidate not in unique:
            unique.append(candidate)
    return unique


def resolve_link(link: PendingLink, files: dict[str, str]) -> Optional[str]:
    """Return the on-disk source for a link, or None if it is not extracted."""
    for candidate in link_candidates(link.name, link.target):
        source = files.get(candidate)
        if source is not None:
            return source
    return None


def _write_member(tar: tarfile.TarFile, member: tarfile.TarInfo, location: str) -> None:
    os.makedirs(os.path.dirname(location), exist_ok=True)
    source = tar.extractfile(member)
    if source is None:
        raise TarReadError(
            f"Cannot read archive member {member.name}",
            operation="extract",
            path=member.name,
        )
    with source, open(location, "wb") as dest:
        shutil.copyfileobj(source, dest)


def _copy_link(link: PendingLink, source: str) -> None:
    os.makedirs(os.path.dirname(link.location), exist_ok=True)
    shutil.copyfile(source, link.location)


def _stream_members(
    archive_path: str, root: str, result: ExtractionResult
) -> list[PendingLink]:
    """First pass: write directories and regular files, collect links."""
    links: list[PendingLink] = []

    with tarfile.open(archive_path, "r|*") as tar:
        for member in tar:
            name = normalize_member_name(member.name)
            if _is_unsafe(name):
                raise TarReadError(
                    f"Archive member {member.name} points outside the extraction directory",
                    operation="extract",
                    path=member.name,
                )
            if name == ".":
                continue

            location = _local_path(root, name)

            if member.isdir():
                os.makedirs(location, exist_ok=True)
            elif member.isfile():
                _write_member(tar, member, location)
                result.files[name] = location
            elif member.issym() or member.islnk():
                link = PendingLink(
                    name=name,
                    target=member.linkname,
                    location=location,
                )
                links.append(link)
                logger.debug("Found link: %s -> %s", name, member.linkname)
            else:
                logger.debug("Skipping special archive member %s", name)

    return links


def _resolve_links(links: list[PendingLink], result: ExtractionResult) -> None:
    """Second pass: copy link targets into place until nothing more resolves."""
    pending = links
    while pending:
        remaining = []
        for link in pending:
            source = resolve_link(link, result.files)
            if source is None:
                remaining.append(link)
                continue
            _copy_link(link, source)
            result.files[link.name] = link.location
            logger.debug("Copied %s to %s", source, link.location)

        if len(remaining) == len(pending):
            break
        pending = remaining

    for link in pending:
        logger.warning(
            "Target file %s does not exist for link %s", link.target, link.name
        )
    result.unresolved = pending


def extract_archive(
    archive_path: Union[str, Path], destination: Union[str, Path]
) -> ExtractionResult:
    """Extract an image archive into ``destination``.

    Args:
        archive_path: Path to the tar archive (plain or compressed)
        destination: Directory to populate; created if missing

    Returns:
        ExtractionResult mapping archive paths to extracted files, including
        the copies made for resolved links

    Raises:
        TarReadError: If the archive is missing, corrupt, or a file cannot be
            written. Unresolved links are not errors; they are logged and
            listed in the result.
    """
    archive_path = str(archive_path)
    root = os.path.abspath(str(destination))
    result = ExtractionResult()

    if not os.path.isfile(archive_path):
        raise TarReadError(
            f"Tar file not found: {archive_path}",
            operation="extract",
            path=archive_path,
        )

    try:
        os.makedirs(root, exist_ok=True)
        links = _stream_members(archive_path, root, result)
        _resolve_links(links, result)
    except (tarfile.TarError, EOFError, zlib.error) as e:
        raise TarReadError(
            f"Cannot read tar file {archive_path}: {e}",
            operation="extract",
            path=archive_path,
        ) from e
    except OSError as e:
        raise TarReadError(
            f"Failed to extract {archive_path}: {e}",
            operation="extract",
            path=getattr(e, "filename", None) or archive_path,
        ) from e

    logger.debug(
        "Extracted %d files from %s (%d unresolved links)",
        len(result.files),
        archive_path,
        len(result.unresolved),
    )
    return result
