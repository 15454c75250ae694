# phantom/plugins/adapters/http_base.py
# Shared plumbing for network transports: aiohttp session, retry with back-off

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiohttp

from phantom.config import TRANSPORT_CONFIG, PluginConfig
from phantom.exceptions import PluginError, SendFailed
from phantom.plugins.base import Transport, TransportHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


def backoff_delay(
    attempt: int,
    base: float = TRANSPORT_CONFIG.RETRY_BASE_DELAY,
    cap: float = TRANSPORT_CONFIG.RETRY_MAX_DELAY,
) -> float:
    """Exponential back-off: min(base * 2^attempt, cap) seconds."""
    return min(base * (2**attempt), cap)


def _is_client_error(error: BaseException) -> bool:
    return (
        isinstance(error, aiohttp.ClientResponseError)
        and 400 <= error.status < 500
        and error.status != 429
    )


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    what: str,
    error: type[PluginError] = SendFailed,
) -> tuple[T, int]:
    """
    Run operation, retrying transient failures.

    The same operation (and therefore the same payload) is re-issued on
    every attempt. 4xx responses other than 429 are not retried.

    Returns:
        (result, attempts used)

    Raises:
        error: All attempts failed
    """
    attempts = max_retries + 1
    last_error: BaseException | None = None

    for attempt in range(attempts):
        try:
            return await operation(), attempt + 1
        except RETRYABLE_ERRORS as e:
            last_error = e
            if _is_client_error(e):
                break
            if attempt + 1 < attempts:
                delay = backoff_delay(attempt)
                logger.debug(
                    "%s failed (%s), retry %d/%d in %.2fs", what, e, attempt + 1, max_retries, delay
                )
                await asyncio.sleep(delay)

    msg = f"{what} failed after {attempt + 1} attempt(s): {last_error}"
    raise error(msg) from last_error


class HttpTransport(Transport):
    """Base class for REST-style backends"""

    @staticmethod
    def _open_session(config: PluginConfig, headers: dict[str, str] | None = None) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=config.timeout),
            headers=headers,
        )

    @staticmethod
    async def _request(
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        async with session.request(method, url, json=payload) as response:
            response.raise_for_status()
            if response.content_type == "application/json":
                data = await response.json()
                return data if isinstance(data, dict) else {"body": data}
            text = await response.text()
            return {"body": text} if text else {}

    async def shutdown(self, handle: TransportHandle) -> None:
        session = handle.session
        if session is not None and not session.closed:
            await session.close()
        handle.connected = False
