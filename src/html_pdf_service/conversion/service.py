import asyncio
import logging
import threading
from datetime import datetime

from .encoding import ensure_utf8_encoding
from .errors import RenderFailure, ValidationError
from .interfaces import HeaderFooter, RenderJobSpec, RendererGateway

logger = logging.getLogger(__name__)

PAGE_HEADER = "Page [page] of [toPage]"


def build_job(html: str, *, now: datetime | None = None) -> RenderJobSpec:
    """Wrap already-normalised HTML in the fixed layout policy."""
    generated = (now or datetime.now()).strftime("%Y-%m-%d %H:%M")
    return RenderJobSpec(
        html=html,
        header=HeaderFooter(font_size=9, right=PAGE_HEADER, line=False),
        footer=HeaderFooter(font_size=9, center=f"Generated on {generated}", line=False),
    )


class HtmlToPdfConverter:
    """Core domain service turning HTML text into PDF bytes.

    This service is framework-agnostic. It normalises the input, builds a
    render job and hands it to the renderer gateway. Renderer calls are
    serialised with a lock, so a single gateway instance can be shared by
    every request even when the native engine is not thread-safe.
    """

    def __init__(
        self,
        renderer: RendererGateway,
        *,
        timeout_sec: float | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._renderer = renderer
        self._timeout = timeout_sec or None
        self._log = log or logger
        self._lock = threading.Lock()

    def convert(self, html: str) -> bytes:
        if html is None or not html.strip():
            raise ValidationError("HTML content is required")

        self._log.info("Starting HTML to PDF conversion")
        job = build_job(ensure_utf8_encoding(html, self._log))
        self._log.info("Configuration created, starting conversion")
        try:
            with self._lock:
                pdf = self._renderer.render(job)
        except Exception as e:
            self._log.exception("Error converting HTML to PDF")
            raise RenderFailure() from e

        if not pdf:
            self._log.warning("PDF conversion resulted in empty output")
            raise RenderFailure("PDF conversion failed to produce output")

        self._log.info("Conversion completed, PDF size: %d bytes", len(pdf))
        return bytes(pdf)

    async def convert_async(self, html: str) -> bytes:
        """Run :meth:`convert` on a worker thread, keeping the event loop free.

        With a timeout configured the caller gets a ``RenderFailure`` once it
        expires; the native call itself cannot be interrupted and finishes in
        the background.
        """
        work = asyncio.to_thread(self.convert, html)
        if self._timeout is None:
            return await work
        try:
            return await asyncio.wait_for(work, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            self._log.error("PDF conversion timed out after %s seconds", self._timeout)
            raise RenderFailure(f"PDF conversion timed out after {self._timeout:g} seconds") from e
