import logging
import threading
from typing import Final, TypeAlias

import httpx
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

TimeoutKey: TypeAlias = tuple[float | None, float | None, float | None, float | None]
TimeoutInput: TypeAlias = httpx.Timeout | float

DEFAULT_HTTP_TIMEOUT: Final[httpx.Timeout] = httpx.Timeout(30.0)

_async_http_client: dict[tuple[str, TimeoutKey], httpx.AsyncClient] = {}
_async_http_client_lock = threading.Lock()


def _resolve_timeout(timeout: TimeoutInput | None) -> tuple[httpx.Timeout, TimeoutKey]:
    """Return an ``httpx.Timeout`` instance and a hashable key representation."""

    if timeout is None:
        resolved_timeout = DEFAULT_HTTP_TIMEOUT
    elif isinstance(timeout, httpx.Timeout):
        resolved_timeout = timeout
    else:
        resolved_timeout = httpx.Timeout(float(timeout))

    timeout_key: TimeoutKey = (
        resolved_timeout.connect,
        resolved_timeout.read,
        resolved_timeout.write,
        resolved_timeout.pool,
    )
    return resolved_timeout, timeout_key


def build_async_http_client(
    proxy: str | None,
    timeout: TimeoutInput | None = None,
) -> httpx.AsyncClient | None:
    """Return a shared asynchronous httpx client for ``proxy``.

    ``None`` is returned without a proxy so the OpenAI SDK uses its own
    default transport.
    """

    if proxy is None:
        return None

    resolved_timeout, timeout_key = _resolve_timeout(timeout)
    key = (proxy, timeout_key)
    with _async_http_client_lock:
        client = _async_http_client.get(key)
        if client is None:
            client = httpx.AsyncClient(proxy=proxy, timeout=resolved_timeout)
            _async_http_client[key] = client
        return client


def get_async_openai_client(
    api_key: str | None,
    *,
    base_url: str | None = None,
    proxy: str | None = None,
) -> AsyncOpenAI:
    """Return an ``AsyncOpenAI`` client for the OpenAI API or a compatible endpoint."""

    if not api_key:
        message = "API key is not set"
        logger.error("[OpenAI] %s", message)
        raise RuntimeError(message)

    http_client = build_async_http_client(proxy)
    return AsyncOpenAI(api_key=api_key, base_url=base_url, http_client=http_client)


async def dispose_http_client() -> None:
    """Close and drop the shared httpx clients."""

    with _async_http_client_lock:
        clients = list(_async_http_client.values())
        _async_http_client.clear()
    for client in clients:
        try:
            await client.aclose()
        except httpx.HTTPError:  # pragma: no cover - best effort on shutdown
            logger.warning("[OpenAI] Failed to close HTTP client", exc_info=True)
