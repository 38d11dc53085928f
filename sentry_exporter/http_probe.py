from __future__ import annotations

import asyncio
import logging

import httpx

from sentry_exporter.config import HTTPProbeConfig, Module
from sentry_exporter.prober import ProbeResult


LOGGER = logging.getLogger("sentry-exporter")

STATS_PATH = "/stats/"
_ERROR_RECEIVED_SUFFIX = "]]"
_ASCII_DIGITS = "0123456789"
_INT64_MAX = 2**63 - 1
_INT64_MAX_DIGITS = len(str(_INT64_MAX))


def build_request(target: str, config: HTTPProbeConfig) -> httpx.Request:
    url = f"{config.prefix}{target}{STATS_PATH}"

    host: str | None = None
    headers = httpx.Headers()
    for key, value in config.headers.items():
        # A "Host" entry selects the virtual host instead of adding a header.
        if key.lower() == "host":
            host = value
            continue
        headers[key] = value

    request = httpx.Request("GET", url, headers=headers)
    # An empty override keeps the URL host.
    if host:
        request.headers["Host"] = host
    return request


def is_valid_status(status_code: int, valid_status_codes: tuple[int, ...]) -> bool:
    if valid_status_codes:
        return status_code in valid_status_codes
    return 200 <= status_code < 300


def extract_error_received(body: str) -> int:
    """
    Return the integer that ends the body right before a trailing "]]".

    Bodies look like `...,[1700000000,42]]`. Anything else yields 0.
    """
    if not body.endswith(_ERROR_RECEIVED_SUFFIX):
        return 0
    head = body[: -len(_ERROR_RECEIVED_SUFFIX)]
    digits = head[len(head.rstrip(_ASCII_DIGITS)) :]
    if not digits:
        return 0
    significant = digits.lstrip("0") or "0"
    # Longer runs cannot fit and would hit the int() digit limit.
    if len(significant) > _INT64_MAX_DIGITS:
        return 0
    value = int(significant)
    if value > _INT64_MAX:
        return 0
    return value


def _content_length(resp: httpx.Response) -> int:
    raw = resp.headers.get("content-length")
    if raw is None:
        return -1
    try:
        return int(raw.strip())
    except ValueError:
        return -1


class HTTPProber:
    """
    Fetches `<prefix><target>/stats/` and reports status, length and the
    trailing error counter of the body.
    """

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def probe(self, target: str, module: Module) -> ProbeResult:
        config = module.http
        timeout = module.timeout if module.timeout > 0 else None

        try:
            request = build_request(target, config)
        except (httpx.InvalidURL, ValueError) as exc:
            LOGGER.error("Error creating request target=%s error=%s", target, exc)
            return ProbeResult(success=False)

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        async with httpx.AsyncClient(transport=self._transport, timeout=timeout) as client:
            try:
                resp = await asyncio.wait_for(
                    client.send(request, stream=True, follow_redirects=config.follow_redirects),
                    timeout,
                )
            except (httpx.HTTPError, asyncio.TimeoutError) as exc:
                LOGGER.warning("Error for HTTP request target=%s error=%s: %s", target, type(exc).__name__, exc)
                return ProbeResult(success=False)

            try:
                success = is_valid_status(resp.status_code, config.valid_status_codes)
                error_received = 0
                if success:
                    error_received = await self._read_error_received(resp, target=target, deadline=deadline)
                return ProbeResult(
                    success=success,
                    status_code=resp.status_code,
                    content_length=_content_length(resp),
                    error_received=error_received,
                )
            finally:
                await resp.aclose()

    async def _read_error_received(self, resp: httpx.Response, *, target: str, deadline: float | None) -> int:
        remaining = None
        if deadline is not None:
            remaining = max(0.0, deadline - asyncio.get_running_loop().time())
        try:
            await asyncio.wait_for(resp.aread(), remaining)
        except (httpx.HTTPError, asyncio.TimeoutError) as exc:
            LOGGER.error("Error reading HTTP body target=%s error=%s: %s", target, type(exc).__name__, exc)
            return 0
        return extract_error_received(resp.text)
