"""
Pytest fixtures shared by the HTML to PDF service tests.
"""

import threading
import time

import pytest
from fastapi.testclient import TestClient

from html_pdf_service.conversion import HtmlToPdfConverter


class StubRenderer:
    """RendererGateway stand-in recording every job it receives."""

    def __init__(self, output: bytes = b"%PDF-1.4 stub", *, delay: float = 0.0, error: Exception | None = None):
        self.output = output
        self.delay = delay
        self.error = error
        self.jobs = []

    def render(self, job):
        self.jobs.append(job)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output


class TaggingRenderer:
    """Echoes the job's HTML back and tracks how many renders overlap."""

    def __init__(self, delay: float = 0.02):
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self._guard = threading.Lock()

    def render(self, job):
        with self._guard:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            return b"%PDF-" + job.html.encode("utf-8")
        finally:
            with self._guard:
                self.active -= 1


@pytest.fixture
def renderer():
    return StubRenderer()


@pytest.fixture
def service(renderer):
    return HtmlToPdfConverter(renderer)


@pytest.fixture
def client(monkeypatch, service):
    """Test client with the conversion service wired to a stub renderer."""
    import html_pdf_service.webapi as webapi

    monkeypatch.setattr(webapi, "SERVICE", service)
    return TestClient(webapi.app)
