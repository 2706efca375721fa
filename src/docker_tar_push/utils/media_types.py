"""Media types used in schema 2 manifests."""

MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
IMAGE_CONFIG = "application/vnd.docker.container.image.v1+json"
LAYER_TAR = "application/vnd.docker.image.rootfs.diff.tar"
LAYER_TAR_GZIP = "application/vnd.docker.image.rootfs.diff.tar.gzip"
OCTET_STREAM = "application/octet-stream"

GZIP_MAGIC = b"\x1f\x8b"


def layer_media_type(header: bytes) -> str:
    """Pick the layer media type from the first bytes of a layer file.

    Classic ``docker save`` output holds uncompressed ``layer.tar`` files,
    newer OCI-layout exports may keep the gzip-compressed blobs as pulled.
    """
    if header.startswith(GZIP_MAGIC):
        return LAYER_TAR_GZIP
    return LAYER_TAR
