"""Utility functions for docker-tar-push."""

from .digest import calculate_digest, hash_file, validate_digest

__all__ = ["calculate_digest", "hash_file", "validate_digest"]
