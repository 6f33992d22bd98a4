from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional

import httpx

from mise.services.errors import FetchFailedError, NetworkTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 20.0


@asynccontextmanager
async def open_client(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as owned:
        yield owned


async def get_ok(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: Optional[Mapping[str, str]] = None,
    params: Optional[Mapping[str, str]] = None,
) -> httpx.Response:
    try:
        response = await client.get(url, headers=headers, params=params)
    except httpx.TimeoutException as error:
        timeout = client.timeout.read or DEFAULT_TIMEOUT_SECONDS
        raise NetworkTimeoutError(url, timeout) from error
    except httpx.HTTPError as error:
        raise FetchFailedError(f"Network error fetching {url}: {error}") from error

    if not response.is_success:
        logger.debug("Non-2xx response: url=%s status=%s", url, response.status_code)
        raise FetchFailedError(f"HTTP {response.status_code} fetching {url}")
    return response
