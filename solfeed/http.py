from __future__ import annotations

import asyncio
import json
import logging
import os
import weakref
from typing import Any, Dict, Mapping

import aiohttp

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """Raised when an upstream provider request fails."""

    def __init__(self, message: str, *, url: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


class TransientUpstreamError(UpstreamError):
    """Timeout, 5xx, 429 or network failure; worth trying again next cycle."""


class MalformedResponseError(UpstreamError):
    """The provider answered but the payload does not have the expected shape."""


# Maintain a session per event loop to avoid cross-loop usage errors when
# running multiple asyncio loops in different threads.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)

CONNECTOR_LIMIT = int(os.getenv("HTTP_CONNECTOR_LIMIT", "0") or 0)
CONNECTOR_LIMIT_PER_HOST = int(os.getenv("HTTP_CONNECTOR_LIMIT_PER_HOST", "0") or 0)
DEFAULT_USER_AGENT = "solfeed/0.1 (+https://local)"


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""

    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or getattr(sess, "closed", False):
        ua = os.getenv("HTTP_USER_AGENT", DEFAULT_USER_AGENT)
        connector = aiohttp.TCPConnector(
            limit=CONNECTOR_LIMIT,
            limit_per_host=CONNECTOR_LIMIT_PER_HOST,
        )
        trust_env = str(os.getenv("HTTP_TRUST_ENV", "")).lower() in {"1", "true", "yes"}
        if trust_env:
            logger.info("HTTP session will honor proxy settings from the environment")
        sess = aiohttp.ClientSession(
            connector=connector,
            headers={"User-Agent": ua},
            trust_env=trust_env,
        )
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close the session bound to the running loop, if any."""

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - called outside a loop
        return
    sess = _SESSIONS.pop(loop, None)
    if sess is not None and not getattr(sess, "closed", False):
        await sess.close()


def _is_transient_status(status: int) -> bool:
    return status == 429 or status >= 500


async def fetch_json(
    url: str,
    method: str = "GET",
    *,
    session: aiohttp.ClientSession | None = None,
    timeout: float | None = None,
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    json_body: Any = None,
) -> Any:
    """Fetch *url* using *method* and return the parsed JSON body.

    There is no retry here: a failed call is reported to the caller, which
    decides whether the provider gets another chance on its next cycle.
    """

    sess = session if session is not None else await get_session()
    request_kwargs: Dict[str, Any] = {
        "headers": {"Accept": "application/json", **dict(headers or {})},
    }
    if params:
        request_kwargs["params"] = dict(params)
    if json_body is not None:
        request_kwargs["json"] = json_body
    if timeout is not None:
        request_kwargs["timeout"] = aiohttp.ClientTimeout(total=float(timeout))

    try:
        async with sess.request(method, url, **request_kwargs) as response:
            if response.status >= 400:
                text = await response.text()
                message = f"{method} {url} -> {response.status}: {text[:300]}"
                if _is_transient_status(response.status):
                    raise TransientUpstreamError(message, url=url, status=response.status)
                raise UpstreamError(message, url=url, status=response.status)
            raw = await response.read()
    except asyncio.TimeoutError as exc:
        raise TransientUpstreamError(f"{method} {url} timed out", url=url) from exc
    except aiohttp.ClientError as exc:
        raise TransientUpstreamError(f"{method} {url} failed: {exc}", url=url) from exc

    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedResponseError(f"{method} {url} returned invalid JSON", url=url) from exc


__all__ = [
    "MalformedResponseError",
    "TransientUpstreamError",
    "UpstreamError",
    "close_session",
    "fetch_json",
    "get_session",
]
