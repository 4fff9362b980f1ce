"""
Domain layer for HTML to PDF conversion.
Provides the renderer gateway, charset normalisation and a service that
orchestrates a conversion, so front-ends (HTTP or others) can share the
same core logic.
"""

from .encoding import ensure_utf8_encoding
from .errors import ConversionError, RenderFailure, RendererError, StartupFailure, ValidationError
from .interfaces import RendererGateway, RenderJobSpec
from .service import HtmlToPdfConverter, build_job
