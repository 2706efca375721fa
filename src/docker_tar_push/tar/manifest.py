"""manifest.json parsing for extracted docker-save archives."""

import json
import os
from pathlib import Path
from typing import Any, Union

from ..core.types import ManifestEntry
from ..exceptions import ManifestMalformedError, ManifestUnreadableError
from .extractor import normalize_member_name
from .tags import parse_image_reference

MANIFEST_FILE = "manifest.json"


def has_required_fields(
    manifest_entry: dict[str, Any], required_fields: list[str]
) -> bool:
    """Check if manifest entry has all required fields."""
    return all(field in manifest_entry for field in required_fields)


def is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def parse_manifest_entry(raw_entry: Any, index: int = 0) -> ManifestEntry:
    """Convert one raw manifest.json object into a ManifestEntry."""
    if not isinstance(raw_entry, dict):
        raise ManifestMalformedError(
            f"Manifest entry {index} is not an object", operation="manifest"
        )

    if not has_required_fields(raw_entry, ["Config", "Layers"]):
        raise ManifestMalformedError(
            f"Manifest entry {index} must have Config and Layers",
            operation="manifest",
        )

    config = raw_entry["Config"]
    if not isinstance(config, str) or not config:
        raise ManifestMalformedError(
            f"Manifest entry {index} has an invalid Config", operation="manifest"
        )

    layers = raw_entry["Layers"]
    if not is_string_list(layers):
        raise ManifestMalformedError(
            f"Manifest entry {index} Layers must be a list of paths",
            operation="manifest",
        )

    # Images saved by ID have "RepoTags": null
    repo_tags = raw_entry.get("RepoTags") or []
    if not is_string_list(repo_tags):
        raise ManifestMalformedError(
            f"Manifest entry {index} RepoTags must be a list of strings",
            operation="manifest",
        )
    for repo_tag in repo_tags:
        try:
            parse_image_reference(repo_tag)
        except ValueError as e:
            raise ManifestMalformedError(
                f"Manifest entry {index} has an invalid RepoTag {repo_tag!r}",
                operation="manifest",
            ) from e

    return ManifestEntry(config=config, repo_tags=list(repo_tags), layers=list(layers))


def parse_manifest_json(manifest_content: str) -> list[ManifestEntry]:
    """Parse manifest JSON content.

    Raises:
        ManifestMalformedError: If the content is not a non-empty list of
            well-formed entries
    """
    try:
        manifest_data = json.loads(manifest_content)
    except json.JSONDecodeError as e:
        raise ManifestMalformedError(
            f"Invalid JSON in {MANIFEST_FILE}: {e}", operation="manifest"
        ) from e

    if not isinstance(manifest_data, list) or not manifest_data:
        raise ManifestMalformedError(
            f"{MANIFEST_FILE} must be a non-empty array", operation="manifest"
        )

    return [
        parse_manifest_entry(entry, index) for index, entry in enumerate(manifest_data)
    ]


def read_manifest(extract_dir: Union[str, Path]) -> list[ManifestEntry]:
    """Read manifest.json from the root of an extracted archive.

    Raises:
        ManifestUnreadableError: If manifest.json is missing or unreadable
        ManifestMalformedError: If it cannot be parsed as expected
    """
    manifest_path = os.path.join(str(extract_dir), MANIFEST_FILE)
    try:
        with open(manifest_path, "rb") as f:
            raw = f.read()
    except OSError as e:
        raise ManifestUnreadableError(
            f"Cannot read {MANIFEST_FILE}: {e}",
            operation="manifest",
            path=manifest_path,
        ) from e

    try:
        content = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ManifestMalformedError(
            f"Cannot decode {MANIFEST_FILE}: {e}",
            operation="manifest",
            path=manifest_path,
        ) from e

    return parse_manifest_json(content)


def entry_file_path(extract_dir: Union[str, Path], member: str) -> str:
    """Local path of a file named by a manifest entry."""
    name = normalize_member_name(member)
    if name.startswith("/") or name == ".." or name.startswith("../"):
        raise ManifestMalformedError(
            f"{member} points outside the archive", operation="manifest", path=member
        )
    return os.path.join(str(extract_dir), *name.split("/"))


def validate_manifest_entry(
    entry: ManifestEntry, extract_dir: Union[str, Path]
) -> None:
    """Check that the config and every layer of an entry were extracted.

    Raises:
        ManifestMalformedError: Naming the first missing file
    """
    for member in [entry.config] + entry.layers:
        if not os.path.isfile(entry_file_path(extract_dir, member)):
            raise ManifestMalformedError(
                f"{member} referenced by {MANIFEST_FILE} is missing from the archive",
                operation="manifest",
                path=member,
            )
