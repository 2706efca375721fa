"""aiohttp session handling and request helpers."""

import logging
from typing import Mapping, Optional
from urllib.parse import urljoin

import aiohttp

from .types import RegistryConfig, RequestResult

logger = logging.getLogger(__name__)


async def create_session(config: Optional[RegistryConfig] = None) -> aiohttp.ClientSession:
    """Create a client session for the given registry.

    Basic credentials are attached to every request of the session, and
    certificate verification is switched off when the config asks for it.
    """
    if config is None:
        return aiohttp.ClientSession()

    auth = None
    if config.has_credentials:
        auth = aiohttp.BasicAuth(config.username, config.password)

    connector = aiohttp.TCPConnector(ssl=False) if config.skip_tls_verify else None
    return aiohttp.ClientSession(
        auth=auth,
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=config.timeout),
    )


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def resolve_location(config: RegistryConfig, location: str) -> str:
    """Turn a Location header into an absolute URL.

    Server-relative locations (``/v2/...``) are appended to the configured
    endpoint, other relative forms are joined against it.
    """
    if location.startswith(("http://", "https://")):
        return location
    if location.startswith("/"):
        return f"{config.base_url}{location}"
    return urljoin(f"{config.base_url}/", location)


async def make_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    data: Optional[bytes] = None,
    headers: Optional[dict[str, str]] = None,
) -> RequestResult:
    """Send one request and collect its status, headers and body.

    Raises:
        aiohttp.ClientError: On transport failures
        asyncio.TimeoutError: When the session timeout expires
    """
    logger.debug("%s %s", method, url)
    async with session.request(method, url, data=data, headers=headers) as resp:
        body = await resp.read()
        return RequestResult(
            status_code=resp.status,
            headers=dict(resp.headers),
            data=body,
        )
