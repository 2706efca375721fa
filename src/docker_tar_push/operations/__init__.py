"""Registry API v2 operations: blobs and manifests."""
