"""
DOCX to PDF conversion through a LibreOffice converter service.

The converter may be reachable in several ways: at a configured URL, reverse-proxied on the same origin as the request,
or running beside this service. Each is a named backend, tried in priority order until one succeeds. A backend that
fails repeatedly is skipped for a while (its circuit is open), so that requests don't wait on a backend that is down.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from permits.documents import DOCX_MEDIA_TYPE
from permits.exceptions import ConverterUnavailable
from permits.settings import Settings

logger = logging.getLogger(__name__)

CONVERT_PATH = "/convert/docx-to-pdf"


@dataclass
class Backend:
    #: The name of the backend, used in logs and errors.
    name: str
    #: The base URL of the converter service. If it contains ``{origin}``, it is formatted with the request's public
    #: origin, and the backend is skipped if there is no origin.
    url: str
    failure_threshold: int = 3
    reset_timeout: float = 30
    clock: Callable[[], float] = time.monotonic

    failures: int = field(default=0, init=False)
    opened_at: float | None = field(default=None, init=False)

    def resolve_url(self, origin: str | None) -> str | None:
        if "{origin}" in self.url:
            if not origin:
                return None
            return self.url.format(origin=origin.rstrip("/"))
        return self.url

    @property
    def available(self) -> bool:
        """
        Whether the circuit is closed, or open for longer than the reset timeout (half-open: one request is let
        through, and a failure reopens the circuit).
        """
        if self.opened_at is None:
            return True
        return self.clock() - self.opened_at >= self.reset_timeout

    def record_success(self) -> None:
        self.failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            if self.opened_at is None:
                logger.warning("Converter backend %s failed %d times, skipping it", self.name, self.failures)
            self.opened_at = self.clock()


class Converter:
    def __init__(self, backends: list[Backend], client: httpx.AsyncClient):
        #: The backends, in priority order
        self.backends = backends
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> "Converter":
        options = {
            "failure_threshold": settings.converter_failure_threshold,
            "reset_timeout": settings.converter_reset_timeout,
        }
        backends = []
        if settings.converter_service_url:
            backends.append(Backend("configured", settings.converter_service_url.rstrip("/"), **options))
        if settings.converter_same_origin_path:
            path = "/" + settings.converter_same_origin_path.strip("/")
            backends.append(Backend("same-origin", "{origin}" + path, **options))
        if settings.converter_local_url:
            backends.append(Backend("local", settings.converter_local_url.rstrip("/"), **options))
        return cls(backends, client)

    async def _convert(self, url: str, docx: bytes) -> bytes:
        response = await self.client.post(
            f"{url}{CONVERT_PATH}",
            files={"file": ("document.docx", docx, DOCX_MEDIA_TYPE)},
        )
        response.raise_for_status()
        if not response.content:
            raise ValueError("empty response")
        return response.content

    async def docx_to_pdf(self, docx: bytes, origin: str | None = None) -> bytes:
        """
        Convert a DOCX document to PDF with the first backend that succeeds.

        :param docx: The DOCX document.
        :param origin: The public origin of the current request, for the same-origin backend.
        :return: The PDF document.
        :raises ConverterUnavailable: If every backend failed or was skipped.
        """
        errors = []
        for backend in self.backends:
            url = backend.resolve_url(origin)
            if url is None:
                continue
            if not backend.available:
                errors.append(f"{backend.name} ({url}): skipped after {backend.failures} consecutive failures")
                continue
            try:
                pdf = await self._convert(url, docx)
            except (httpx.HTTPError, ValueError) as e:
                backend.record_failure()
                logger.warning("Converter backend %s (%s) failed: %r", backend.name, url, e)
                errors.append(f"{backend.name} ({url}): {e!r}")
                continue
            backend.record_success()
            return pdf

        raise ConverterUnavailable(
            "Failed to convert to PDF", cause="; ".join(errors) or "no converter backend is configured"
        )
