"""Registry API v2 availability check."""

import asyncio
import logging
from typing import Mapping

import aiohttp

from ..exceptions import RegistryConnectionError
from .session import get_header, make_request
from .types import RegistryConfig, RequestResult

logger = logging.getLogger(__name__)

API_VERSION_HEADER = "Docker-Distribution-Api-Version"


def check_api_version_header(headers: Mapping[str, str]) -> bool:
    """Check that the registry announces API version 2."""
    return get_header(headers, API_VERSION_HEADER) == "registry/2.0"


def validate_connectivity_response(result: RequestResult) -> None:
    """Raise unless ``GET /v2/`` answered with 200."""
    if result.status_code == 401:
        raise RegistryConnectionError(
            "Registry rejected the supplied credentials",
            operation="check",
            status=result.status_code,
        )
    if result.status_code != 200:
        raise RegistryConnectionError(
            f"Registry API v2 check failed with status {result.status_code}",
            operation="check",
            status=result.status_code,
        )
    if not check_api_version_header(result.headers):
        logger.debug("Registry did not send %s header", API_VERSION_HEADER)


async def check_connectivity(
    config: RegistryConfig, session: aiohttp.ClientSession
) -> bool:
    """Check that the registry is reachable and speaks API v2.

    Returns:
        True if the registry answered ``GET /v2/`` with 200

    Raises:
        RegistryConnectionError: If the registry is unreachable or refuses
    """
    url = f"{config.base_url}/v2/"
    try:
        result = await make_request(session, "GET", url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise RegistryConnectionError(
            f"Cannot connect to registry at {config.base_url}: {e}",
            operation="check",
        ) from e

    validate_connectivity_response(result)
    return True
