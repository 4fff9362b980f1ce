"""
Unit tests for the HTML to PDF conversion service.
"""

import asyncio
import dataclasses
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from conftest import StubRenderer, TaggingRenderer
from html_pdf_service.conversion import (
    HtmlToPdfConverter,
    RenderFailure,
    RendererError,
    ValidationError,
    build_job,
)
from html_pdf_service.conversion.encoding import META_CHARSET


class TestValidation:
    @pytest.mark.parametrize("html", ["", "   ", "\n\t ", None])
    def test_blank_input_never_reaches_renderer(self, html, renderer, service):
        with pytest.raises(ValidationError):
            service.convert(html)
        assert renderer.jobs == []


class TestRenderJob:
    def test_layout_policy_is_fixed(self, renderer, service):
        service.convert("<html><head></head><body>Hi</body></html>")
        job = renderer.jobs[0]

        assert job.page.paper_size == "A4"
        assert job.page.orientation == "Portrait"
        m = job.page.margins
        assert (m.top, m.bottom, m.left, m.right) == (10, 10, 10, 10)
        assert job.page.dpi == 300
        assert job.page.image_dpi == 300
        assert job.page.image_quality == 100
        assert job.page.document_title == "Generated PDF"

        assert job.web.enable_javascript is True
        assert job.web.load_images is True
        assert job.web.enable_intelligent_shrinking is True
        assert job.web.print_media_type is True
        assert job.web.minimum_font_size == 10

        assert job.header.right == "Page [page] of [toPage]"
        assert job.header.font_size == 9 and job.header.line is False
        assert job.footer.center.startswith("Generated on ")
        assert job.footer.font_size == 9 and job.footer.line is False

    def test_job_carries_normalised_html(self, renderer, service):
        service.convert("<html><head></head><body>Hi</body></html>")
        assert META_CHARSET in renderer.jobs[0].html

    def test_footer_uses_generation_time(self):
        job = build_job("<p>x</p>", now=datetime(2024, 1, 2, 3, 4, 59))
        assert job.footer.center == "Generated on 2024-01-02 03:04"

    def test_job_is_immutable(self):
        job = build_job("<p>x</p>")
        with pytest.raises(dataclasses.FrozenInstanceError):
            job.html = "<p>y</p>"


class TestResult:
    def test_returns_renderer_bytes(self, service):
        assert service.convert("<p>x</p>") == b"%PDF-1.4 stub"

    def test_empty_output_is_a_failure(self):
        service = HtmlToPdfConverter(StubRenderer(output=b""))
        with pytest.raises(RenderFailure, match="failed to produce output"):
            service.convert("<p>x</p>")

    def test_renderer_errors_are_wrapped(self):
        cause = RendererError("segfault-ish detail")
        service = HtmlToPdfConverter(StubRenderer(error=cause))
        with pytest.raises(RenderFailure) as exc_info:
            service.convert("<p>x</p>")
        assert exc_info.value.__cause__ is cause
        assert str(exc_info.value) == RenderFailure.DEFAULT_MESSAGE
        assert "segfault-ish" not in str(exc_info.value)

    def test_any_exception_type_is_wrapped(self):
        service = HtmlToPdfConverter(StubRenderer(error=OSError("disk")))
        with pytest.raises(RenderFailure):
            service.convert("<p>x</p>")


class TestAsync:
    def test_convert_async_returns_bytes(self, service):
        assert asyncio.run(service.convert_async("<p>x</p>")) == b"%PDF-1.4 stub"

    def test_convert_async_propagates_failures(self):
        service = HtmlToPdfConverter(StubRenderer(output=b""))
        with pytest.raises(RenderFailure):
            asyncio.run(service.convert_async("<p>x</p>"))

    def test_timeout_becomes_render_failure(self):
        service = HtmlToPdfConverter(StubRenderer(delay=0.5), timeout_sec=0.05)
        with pytest.raises(RenderFailure, match="timed out"):
            asyncio.run(service.convert_async("<p>x</p>"))

    def test_zero_timeout_means_no_timeout(self):
        service = HtmlToPdfConverter(StubRenderer(delay=0.05), timeout_sec=0)
        assert asyncio.run(service.convert_async("<p>x</p>")) == b"%PDF-1.4 stub"


class TestConcurrency:
    def test_threaded_calls_are_serialised_and_not_mixed(self):
        renderer = TaggingRenderer()
        service = HtmlToPdfConverter(renderer)
        inputs = [f"<p>request {i}</p>" for i in range(12)]

        with ThreadPoolExecutor(max_workers=12) as pool:
            results = list(pool.map(service.convert, inputs))

        assert results == [b"%PDF-" + html.encode() for html in inputs]
        assert renderer.max_active == 1

    def test_async_calls_are_serialised_and_not_mixed(self):
        renderer = TaggingRenderer()
        service = HtmlToPdfConverter(renderer)
        inputs = [f"<p>async {i}</p>" for i in range(8)]

        async def run_all():
            return await asyncio.gather(*(service.convert_async(html) for html in inputs))

        results = asyncio.run(run_all())

        assert results == [b"%PDF-" + html.encode() for html in inputs]
        assert renderer.max_active == 1
