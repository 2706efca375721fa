"""Repository:tag parsing for manifest.json RepoTags."""

from ..core.types import ImageReference, ManifestEntry

DEFAULT_TAG = "latest"


def parse_repository_tag(repo_tag: str) -> tuple[str, str]:
    """Split a ``repository:tag`` string into its repository and tag.

    Args:
        repo_tag: Repository tag string
            - e.g. "nginx:alpine", "localhost:5000/myapp:latest"
            - with registry host: "registry.io/company/app:v1.0"

    Returns:
        tuple[str, str]: (repository, tag); the tag defaults to "latest"

    Examples:
        parse_repository_tag("nginx:alpine")          # ("nginx", "alpine")
        parse_repository_tag("localhost:5000/myapp")  # ("localhost:5000/myapp", "latest")
        parse_repository_tag("myapp")                 # ("myapp", "latest")
    """
    # Split only on the last ':' to handle registry hosts like localhost:5000/repo:tag
    repository, sep, tag = repo_tag.rpartition(":")
    if not sep or "/" in tag:
        # No colon, or the colon belongs to a host:port
        return repo_tag, DEFAULT_TAG
    if not tag:
        # Empty tag after colon (e.g., "app:")
        return repository, DEFAULT_TAG
    return repository, tag


def parse_image_reference(repo_tag: str) -> ImageReference:
    """Parse a RepoTags string into an ImageReference."""
    repository, tag = parse_repository_tag(repo_tag)
    if not repository:
        raise ValueError(f"Invalid repository tag: {repo_tag!r}")
    return ImageReference(repository=repository, tag=tag)


def entry_references(entry: ManifestEntry) -> list[ImageReference]:
    """All references an archive entry should be pushed as, in declared order."""
    return [parse_image_reference(repo_tag) for repo_tag in entry.repo_tags]
