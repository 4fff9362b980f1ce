import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import AliasChoices, BaseModel, Field
from starlette.datastructures import UploadFile

from html_pdf_service import __version__
from html_pdf_service.conversion import ConversionError, HtmlToPdfConverter, ValidationError
from html_pdf_service.conversion.adapters import WkhtmltoxRenderer

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="HTML to PDF API",
    version=os.getenv("HTML_PDF_SERVICE_VERSION", __version__),
    description="Convert HTML content to PDF documents.",
)

# Global configuration defaults
WKHTMLTOX_PATH = os.getenv("WKHTMLTOX_PATH") or None
MAX_REQUEST_MB = int(os.getenv("MAX_REQUEST_MB", "50"))
MAX_REQUEST_BYTES = MAX_REQUEST_MB * 1024 * 1024
RENDER_TIMEOUT_SEC = float(os.getenv("RENDER_TIMEOUT_SEC", "0"))
PDF_FILENAME_PREFIX = os.getenv("PDF_FILENAME_PREFIX", "xyz")
API_PREFIX = os.getenv("API_PREFIX", "").rstrip("/")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
MAX_HEADER_KB = int(os.getenv("MAX_HEADER_KB", "64"))

FIELD_NAME = "htmlContent"
RAW_CONTENT_TYPES = {"text/html", "text/plain"}

SERVICE: HtmlToPdfConverter | None = None
RENDERER: WkhtmltoxRenderer | None = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


class HtmlToPdfRequest(BaseModel):
    html_content: str | None = Field(
        None,
        validation_alias=AliasChoices("htmlContent", "HtmlContent", "html_content"),
        description="HTML content to render",
    )


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def _service() -> HtmlToPdfConverter:
    assert SERVICE is not None, "conversion service not initialised"
    return SERVICE


def pdf_filename(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
    return f"{PDF_FILENAME_PREFIX}_{stamp}.pdf"


async def _convert(html: str | None, source: str) -> Response:
    """Shared tail of every convert entry: validate, render, build the download."""
    if not html or not html.strip():
        logger.warning("HTML content from %s was empty", source)
        raise _error(status.HTTP_400_BAD_REQUEST, "bad_request", "HTML content is required")

    filename = pdf_filename()
    logger.info("Starting PDF conversion from %s", source)
    try:
        pdf_bytes = await _service().convert_async(html)
    except ValidationError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "bad_request", str(e))
    except ConversionError as e:
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "conversion_failed", str(e))
    except Exception as e:
        logger.exception("Error occurred during PDF conversion from %s", source)
        raise _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "conversion_failed", f"PDF conversion failed: {e}")

    logger.info("Conversion successful, returning PDF file (%d bytes)", len(pdf_bytes))
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.middleware("http")
async def _limit_and_log(request: Request, call_next):
    logger.info("Request started: %s %s", request.method, request.url.path)
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > MAX_REQUEST_BYTES:
        logger.warning("Rejected request body of %s bytes", length)
        response = JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"detail": {"code": "payload_too_large", "message": f"request exceeds {MAX_REQUEST_MB} MB"}},
        )
    else:
        response = await call_next(request)
    logger.info("Request completed: %s", response.status_code)
    return response


@app.exception_handler(RequestValidationError)
async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed JSON bodies are a client error like any other missing input.
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"code": "bad_request", "message": "HTML content is required", "errors": jsonable_encoder(exc.errors())}},
    )


@app.on_event("startup")
async def _startup() -> None:
    # Fail startup if the native library cannot be loaded
    global SERVICE, RENDERER
    RENDERER = WkhtmltoxRenderer.from_path(WKHTMLTOX_PATH)
    SERVICE = HtmlToPdfConverter(RENDERER, timeout_sec=RENDER_TIMEOUT_SEC)


@app.on_event("shutdown")
async def _shutdown() -> None:
    global RENDERER
    if RENDERER is not None:
        RENDERER.close()
        RENDERER = None


router = APIRouter()


@router.post("/convert")
async def convert(request: HtmlToPdfRequest | None = None) -> Response:
    """Convert HTML posted as JSON ``{"htmlContent": "..."}`` into a PDF download."""
    logger.info("Received HTML to PDF conversion request via JSON")
    return await _convert(request.html_content if request else None, "JSON")


@router.post("/convert-form")
async def convert_form(request: Request) -> Response:
    """Convert the ``htmlContent`` form field (multipart or urlencoded) into a PDF download.

    The form is parsed by hand so that a single field may be as large as the
    request limit instead of Starlette's default per-part cap.
    """
    logger.info("Received HTML to PDF conversion request via form data")
    async with request.form(max_part_size=MAX_REQUEST_BYTES) as form:
        value = form.get(FIELD_NAME)
        if isinstance(value, UploadFile):
            html = (await value.read()).decode("utf-8-sig", "replace")
        else:
            html = value
    return await _convert(html, "form data")


@router.post("/convert-raw")
async def convert_raw(request: Request) -> Response:
    """Convert a raw ``text/html`` or ``text/plain`` body into a PDF download."""
    logger.info("Received HTML to PDF conversion request via raw content")
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type and content_type not in RAW_CONTENT_TYPES:
        raise _error(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "unsupported_media_type",
            f"content-type {content_type} not allowed",
        )
    body = await request.body()
    return await _convert(body.decode("utf-8-sig", "replace"), "raw content")


@router.get("/health")
def health() -> dict[str, str]:
    """Liveness check; reports no dependency state."""
    return {"Status": "Healthy", "Timestamp": datetime.now(timezone.utc).isoformat()}


app.include_router(router, prefix=API_PREFIX)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run(
        "html_pdf_service.webapi:app",
        host=host,
        port=port,
        reload=reload,
        # httptools ignores the header size limit, so pin the h11 protocol
        http="h11",
        h11_max_incomplete_event_size=MAX_HEADER_KB * 1024,
    )


if __name__ == "__main__":
    run()
