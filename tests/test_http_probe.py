from __future__ import annotations

import asyncio
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from types import MappingProxyType

import httpx
import pytest

from sentry_exporter.config import HTTPProbeConfig, Module
from sentry_exporter.http_probe import HTTPProber, build_request, extract_error_received, is_valid_status


def _module(
    *,
    prefix: str = "http://sentry.test/api/0/projects/acme/",
    valid_status_codes: tuple[int, ...] = (),
    headers: dict[str, str] | None = None,
    timeout: float = 5.0,
    follow_redirects: bool = True,
) -> Module:
    return Module(
        prober="http",
        timeout=timeout,
        http=HTTPProbeConfig(
            valid_status_codes=valid_status_codes,
            prefix=prefix,
            headers=MappingProxyType(dict(headers or {})),
            follow_redirects=follow_redirects,
        ),
    )


@pytest.mark.parametrize(
    ("status", "ok"),
    [(199, False), (200, True), (204, True), (299, True), (300, False), (404, False), (503, False)],
)
def test_default_status_rule_is_2xx(status: int, ok: bool) -> None:
    assert is_valid_status(status, ()) is ok


@pytest.mark.parametrize(
    ("status", "ok"),
    [(200, False), (204, False), (301, True), (404, True), (500, False)],
)
def test_valid_status_codes_replace_2xx_rule(status: int, ok: bool) -> None:
    assert is_valid_status(status, (301, 404)) is ok


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("...count=42]]", 42),
        ('[[1700000000,0],[1700000060,7]]', 7),
        ("no marker here", 0),
        ("val]]42", 0),
        ("42]]\n", 0),
        ("]]", 0),
        ("", 0),
        ("x=-5]]", 5),
        ("big=99999999999999999999]]", 0),
        ("x=٤٢]]", 0),
        ("x=" + "9" * 5000 + "]]", 0),
        ("x=" + "0" * 5000 + "42]]", 42),
        ("max=9223372036854775807]]", 9223372036854775807),
    ],
)
def test_extract_error_received(body: str, expected: int) -> None:
    assert extract_error_received(body) == expected


def test_build_request_url_and_headers() -> None:
    module = _module(headers={"Authorization": "Bearer abc", "X-Extra": "1"})
    request = build_request("apimutate", module.http)
    assert str(request.url) == "http://sentry.test/api/0/projects/acme/apimutate/stats/"
    assert request.method == "GET"
    assert request.headers["authorization"] == "Bearer abc"
    assert request.headers["x-extra"] == "1"
    assert request.headers["host"] == "sentry.test"


@pytest.mark.parametrize("name", ["host", "Host", "HOST", "hOsT"])
def test_host_header_sets_virtual_host(name: str) -> None:
    module = _module(headers={name: "sentry.internal", "X-Extra": "1"})
    request = build_request("apimutate", module.http)
    assert request.headers.get_list("host") == ["sentry.internal"]
    assert request.url.host == "sentry.test"
    assert request.headers["x-extra"] == "1"


def test_empty_host_override_keeps_url_host() -> None:
    module = _module(headers={"Host": ""})
    request = build_request("apimutate", module.http)
    assert request.headers.get_list("host") == ["sentry.test"]


def test_duplicate_header_names_last_write_wins() -> None:
    module = _module(headers={"X-Token": "first", "x-token": "second"})
    request = build_request("apimutate", module.http)
    assert request.headers.get_list("x-token") == ["second"]


@pytest.mark.asyncio
async def test_probe_success_extracts_counter() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="[[1700000000,3],[1700000060,42]]")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module(headers={"Host": "sentry.internal"}))

    assert result.success is True
    assert result.status_code == 200
    assert result.error_received == 42
    assert result.content_length == len("[[1700000000,3],[1700000060,42]]")
    assert seen[0].url.path == "/api/0/projects/acme/apimutate/stats/"
    assert seen[0].headers["host"] == "sentry.internal"


@pytest.mark.asyncio
async def test_probe_failure_status_skips_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="oops 12]]")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())

    assert result.success is False
    assert result.status_code == 500
    assert result.error_received == 0
    assert result.content_length == len("oops 12]]")


@pytest.mark.asyncio
async def test_probe_valid_status_codes_narrow_out_200() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="1]]")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module(valid_status_codes=(204,)))
    assert result.success is False
    assert result.status_code == 200


@pytest.mark.asyncio
async def test_probe_unmatched_body_is_still_success() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>login</html>")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())
    assert result.success is True
    assert result.error_received == 0


@pytest.mark.asyncio
async def test_probe_transport_error_has_no_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())

    assert result.success is False
    assert result.status_code == 0
    assert result.content_length == 0
    assert result.error_received == 0


@pytest.mark.asyncio
async def test_probe_timeout_has_no_response() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(2.0)
        return httpx.Response(200, text="1]]")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module(timeout=0.05))

    assert result.success is False
    assert result.status_code == 0


@pytest.mark.asyncio
async def test_probe_invalid_url_has_no_response() -> None:
    prober = HTTPProber()
    result = await prober.probe("apimutate", _module(prefix="not-a-url/"))
    assert result.success is False
    assert result.status_code == 0


@pytest.mark.asyncio
async def test_probe_missing_content_length_is_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        async def chunks():
            yield b"5"
            yield b"]]"

        return httpx.Response(200, content=chunks())

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())
    assert result.content_length == -1
    assert result.error_received == 5


@pytest.mark.asyncio
async def test_oversized_counter_reads_as_zero() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="[[1," + "1" * 5000 + "]]")

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())
    assert result.success is True
    assert result.error_received == 0


@pytest.mark.asyncio
async def test_body_read_error_keeps_check_successful() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        async def broken_body():
            yield b"[[1,"
            raise httpx.ReadError("connection reset")

        return httpx.Response(200, content=broken_body())

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module())

    assert result.success is True
    assert result.status_code == 200
    assert result.error_received == 0


@pytest.mark.asyncio
async def test_body_read_past_deadline_keeps_check_successful() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        async def slow_body():
            yield b"[[1,"
            await asyncio.sleep(2.0)
            yield b"5]]"

        return httpx.Response(200, content=slow_body())

    prober = HTTPProber(transport=httpx.MockTransport(handler))
    result = await prober.probe("apimutate", _module(timeout=0.1))

    assert result.success is True
    assert result.status_code == 200
    assert result.error_received == 0


@pytest.mark.asyncio
async def test_probe_redirect_policy() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/stats/"):
            return httpx.Response(302, headers={"Location": "http://sentry.test/moved"})
        return httpx.Response(200, text="9]]")

    transport = httpx.MockTransport(handler)

    followed = await HTTPProber(transport=transport).probe("apimutate", _module())
    assert followed.success is True
    assert followed.status_code == 200
    assert followed.error_received == 9

    not_followed = await HTTPProber(transport=transport).probe("apimutate", _module(follow_redirects=False))
    assert not_followed.success is False
    assert not_followed.status_code == 302

    accepted = await HTTPProber(transport=transport).probe(
        "apimutate", _module(follow_redirects=False, valid_status_codes=(302,))
    )
    assert accepted.success is True
    assert accepted.status_code == 302


class _StatsHandler(BaseHTTPRequestHandler):
    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/acme/apimutate/stats/":
            status, body = 200, f"[[1,0],[2,{len(self.headers.get('Host') or '')}]]"
        else:
            status, body = 404, "Not Found"
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        self.wfile.write(body_bytes)


@pytest.fixture(scope="module")
def local_server_base_url() -> str:
    httpd = HTTPServer(("127.0.0.1", 0), _StatsHandler)
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.mark.asyncio
async def test_probe_against_local_server(local_server_base_url: str) -> None:
    prober = HTTPProber()
    module = _module(prefix=f"{local_server_base_url}/acme/", headers={"HOST": "sentry.internal"})

    result = await prober.probe("apimutate", module)
    assert result.success is True
    assert result.status_code == 200
    # The server echoes the length of the Host header it received.
    assert result.error_received == len("sentry.internal")

    missing = await prober.probe("nope", module)
    assert missing.success is False
    assert missing.status_code == 404
    assert missing.content_length == len("Not Found")
