import asyncio

import httpx
import pytest

from permits.converter import Backend, Converter
from permits.exceptions import ConverterUnavailable
from permits.settings import Settings


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def converter_client(statuses: dict[str, int], calls: list[str]) -> httpx.AsyncClient:
    """
    :param statuses: The status code with which each host responds. Hosts not listed are unreachable.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        if request.url.host not in statuses:
            raise httpx.ConnectError("Connection refused", request=request)
        return httpx.Response(statuses[request.url.host], content=b"%PDF-" + request.url.host.encode())

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def convert(converter: Converter, origin: str | None = None) -> bytes:
    return asyncio.run(converter.docx_to_pdf(b"docx", origin))


def test_from_settings():
    settings = Settings(
        converter_service_url="https://converter.example.com/",
        converter_same_origin_path="converter/",
        converter_local_url="http://localhost:8080",
        converter_failure_threshold=5,
    )

    converter = Converter.from_settings(settings, httpx.AsyncClient())

    assert [(backend.name, backend.url) for backend in converter.backends] == [
        ("configured", "https://converter.example.com"),
        ("same-origin", "{origin}/converter"),
        ("local", "http://localhost:8080"),
    ]
    assert converter.backends[0].failure_threshold == 5


def test_resolve_url():
    backend = Backend("same-origin", "{origin}/converter")

    assert backend.resolve_url("https://permits.example.com/") == "https://permits.example.com/converter"
    assert backend.resolve_url(None) is None
    assert Backend("local", "http://localhost:8080").resolve_url(None) == "http://localhost:8080"


def test_first_backend():
    calls = []
    client = converter_client({"first": 200, "second": 200}, calls)
    converter = Converter([Backend("a", "http://first"), Backend("b", "http://second")], client)

    assert convert(converter) == b"%PDF-first"
    assert calls == ["first"]


def test_fallback():
    calls = []
    client = converter_client({"first": 502, "third": 200}, calls)
    converter = Converter(
        [Backend("a", "http://first"), Backend("b", "http://second"), Backend("c", "http://third")], client
    )

    assert convert(converter) == b"%PDF-third"
    assert calls == ["first", "second", "third"]
    assert [backend.failures for backend in converter.backends] == [1, 1, 0]


def test_same_origin_backend_skipped_without_origin():
    calls = []
    client = converter_client({"permits.example.com": 200, "local": 200}, calls)
    converter = Converter([Backend("same-origin", "{origin}/converter"), Backend("local", "http://local")], client)

    assert convert(converter) == b"%PDF-local"
    assert convert(converter, "https://permits.example.com") == b"%PDF-permits.example.com"
    assert calls == ["local", "permits.example.com"]


def test_empty_response_is_a_failure():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"")))
    converter = Converter([Backend("a", "http://first")], client)

    with pytest.raises(ConverterUnavailable) as excinfo:
        convert(converter)

    assert excinfo.value.message == "Failed to convert to PDF"
    assert "empty response" in excinfo.value.cause


def test_all_backends_fail():
    client = converter_client({"first": 500}, [])
    converter = Converter([Backend("a", "http://first"), Backend("b", "http://second")], client)

    with pytest.raises(ConverterUnavailable) as excinfo:
        convert(converter)

    assert excinfo.value.cause.startswith("a (http://first): ")
    assert "; b (http://second): ConnectError" in excinfo.value.cause


def test_no_backends():
    with pytest.raises(ConverterUnavailable) as excinfo:
        convert(Converter([], httpx.AsyncClient()))

    assert excinfo.value.cause == "no converter backend is configured"


def test_circuit_breaker():
    calls = []
    clock = Clock()
    statuses = {"local": 200}
    client = converter_client(statuses, calls)
    converter = Converter(
        [
            Backend("a", "http://first", failure_threshold=2, reset_timeout=30, clock=clock),
            Backend("b", "http://local", clock=clock),
        ],
        client,
    )

    convert(converter)
    convert(converter)
    assert calls == ["first", "local", "first", "local"]

    # The circuit is open.
    calls.clear()
    clock.now = 29
    convert(converter)
    assert calls == ["local"]

    # The circuit is half-open, and the trial request fails.
    calls.clear()
    clock.now = 30
    convert(converter)
    assert calls == ["first", "local"]

    calls.clear()
    clock.now = 59
    convert(converter)
    assert calls == ["local"]

    # The trial request succeeds, so the circuit closes.
    calls.clear()
    statuses["first"] = 200
    clock.now = 60
    assert convert(converter) == b"%PDF-first"
    assert converter.backends[0].failures == 0
    assert converter.backends[0].available


def test_skipped_backend_is_reported():
    clock = Clock()
    backend = Backend("a", "http://first", failure_threshold=1, clock=clock)
    converter = Converter([backend], converter_client({}, []))

    with pytest.raises(ConverterUnavailable):
        convert(converter)
    with pytest.raises(ConverterUnavailable) as excinfo:
        convert(converter)

    assert excinfo.value.cause == "a (http://first): skipped after 1 consecutive failures"
