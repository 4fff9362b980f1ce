import ctypes
import ctypes.util
import logging
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from .errors import RendererError, StartupFailure
from .interfaces import HeaderFooter, RenderJobSpec

logger = logging.getLogger(__name__)

# void (*)(wkhtmltopdf_converter*, const char*)
STR_CALLBACK = ctypes.CFUNCTYPE(None, ctypes.c_void_p, ctypes.c_char_p)


def default_library_path() -> str:
    """Platform file name in the working directory, else whatever the loader finds."""
    if sys.platform == "win32":
        name = "wkhtmltox.dll"
    elif sys.platform == "darwin":
        name = "libwkhtmltox.dylib"
    else:
        name = "libwkhtmltox.so"
    local = Path.cwd() / name
    if local.exists():
        return str(local)
    return ctypes.util.find_library("wkhtmltox") or str(local)


def load_library(path: str | None = None) -> ctypes.CDLL:
    path = path or os.getenv("WKHTMLTOX_PATH") or default_library_path()
    logger.info("Loading library: %s", path)
    try:
        lib = ctypes.CDLL(path)
    except OSError as e:
        raise StartupFailure(f"Failed to load wkhtmltox library from {path}: {e}") from e
    _declare(lib)
    return lib


def _declare(lib: ctypes.CDLL) -> None:
    p, s, i = ctypes.c_void_p, ctypes.c_char_p, ctypes.c_int
    signatures = {
        "wkhtmltopdf_init": ([i], i),
        "wkhtmltopdf_deinit": ([], i),
        "wkhtmltopdf_version": ([], s),
        "wkhtmltopdf_create_global_settings": ([], p),
        "wkhtmltopdf_destroy_global_settings": ([p], None),
        "wkhtmltopdf_set_global_setting": ([p, s, s], i),
        "wkhtmltopdf_create_object_settings": ([], p),
        "wkhtmltopdf_set_object_setting": ([p, s, s], i),
        "wkhtmltopdf_destroy_object_settings": ([p], None),
        "wkhtmltopdf_create_converter": ([p], p),
        "wkhtmltopdf_destroy_converter": ([p], None),
        "wkhtmltopdf_add_object": ([p, p, s], None),
        "wkhtmltopdf_convert": ([p], i),
        "wkhtmltopdf_get_output": ([p, ctypes.POINTER(ctypes.POINTER(ctypes.c_ubyte))], ctypes.c_long),
        "wkhtmltopdf_http_error_code": ([p], i),
        "wkhtmltopdf_set_error_callback": ([p, STR_CALLBACK], None),
        "wkhtmltopdf_set_warning_callback": ([p, STR_CALLBACK], None),
    }
    for name, (argtypes, restype) in signatures.items():
        fn = getattr(lib, name)
        fn.argtypes = argtypes
        fn.restype = restype


def _flag(value: bool) -> str:
    return "true" if value else "false"


def global_settings(job: RenderJobSpec) -> dict[str, str]:
    page = job.page
    m = page.margins
    return {
        "size.paperSize": page.paper_size,
        "orientation": page.orientation,
        "colorMode": page.color_mode,
        "margin.top": f"{m.top:g}{m.unit}",
        "margin.bottom": f"{m.bottom:g}{m.unit}",
        "margin.left": f"{m.left:g}{m.unit}",
        "margin.right": f"{m.right:g}{m.unit}",
        "documentTitle": page.document_title,
        "dpi": str(page.dpi),
        "imageDPI": str(page.image_dpi),
        "imageQuality": str(page.image_quality),
    }


def _header_footer(prefix: str, hf: HeaderFooter) -> dict[str, str]:
    return {
        f"{prefix}.fontSize": str(hf.font_size),
        f"{prefix}.left": hf.left,
        f"{prefix}.center": hf.center,
        f"{prefix}.right": hf.right,
        f"{prefix}.line": _flag(hf.line),
    }


def object_settings(job: RenderJobSpec) -> dict[str, str]:
    web = job.web
    settings = {
        "pagesCount": _flag(job.pages_count),
        "web.defaultEncoding": web.default_encoding,
        "web.enableJavascript": _flag(web.enable_javascript),
        "web.loadImages": _flag(web.load_images),
        "web.enableIntelligentShrinking": _flag(web.enable_intelligent_shrinking),
        "web.printMediaType": _flag(web.print_media_type),
        "web.minimumFontSize": str(web.minimum_font_size),
    }
    settings.update(_header_footer("header", job.header))
    settings.update(_header_footer("footer", job.footer))
    return settings


class WkhtmltoxRenderer:
    """RendererGateway backed by libwkhtmltox through ctypes.

    wkhtmltox is not thread-safe and must be initialised and used from the
    same thread, so every native call is marshalled onto one dedicated
    worker thread owned by this object.
    """

    def __init__(self, lib: ctypes.CDLL, *, use_graphics: bool = False) -> None:
        self._lib = lib
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wkhtmltox")
        try:
            self.version = self._executor.submit(self._init, use_graphics).result()
        except Exception:
            self._executor.shutdown(wait=False)
            raise
        logger.info("wkhtmltox %s initialised", self.version)

    @classmethod
    def from_path(cls, path: str | None = None) -> "WkhtmltoxRenderer":
        return cls(load_library(path))

    def _init(self, use_graphics: bool) -> str:
        if self._lib.wkhtmltopdf_init(1 if use_graphics else 0) != 1:
            raise StartupFailure("wkhtmltopdf_init failed")
        version = self._lib.wkhtmltopdf_version()
        return version.decode("ascii", "replace") if version else "unknown"

    def render(self, job: RenderJobSpec) -> bytes:
        return self._executor.submit(self._render, job).result()

    def close(self) -> None:
        try:
            self._executor.submit(self._lib.wkhtmltopdf_deinit).result()
        finally:
            self._executor.shutdown(wait=True)

    def _render(self, job: RenderJobSpec) -> bytes:
        lib = self._lib
        gs = lib.wkhtmltopdf_create_global_settings()
        obj = None
        # The converter takes ownership of both settings; free them ourselves until then.
        try:
            for name, value in global_settings(job).items():
                self._set(lib.wkhtmltopdf_set_global_setting, gs, name, value)
            obj = lib.wkhtmltopdf_create_object_settings()
            for name, value in object_settings(job).items():
                self._set(lib.wkhtmltopdf_set_object_setting, obj, name, value)
            conv = lib.wkhtmltopdf_create_converter(gs)
            if not conv:
                raise RendererError("wkhtmltopdf_create_converter returned NULL")
        except Exception:
            if obj:
                lib.wkhtmltopdf_destroy_object_settings(obj)
            lib.wkhtmltopdf_destroy_global_settings(gs)
            raise

        errors: list[str] = []

        def on_error(_conv, msg):
            errors.append(msg.decode("utf-8", "replace") if msg else "")

        def on_warning(_conv, msg):
            logger.warning("wkhtmltox: %s", msg.decode("utf-8", "replace") if msg else "")

        # Keep the callback objects alive until the converter is destroyed.
        error_cb, warning_cb = STR_CALLBACK(on_error), STR_CALLBACK(on_warning)

        try:
            lib.wkhtmltopdf_set_error_callback(conv, error_cb)
            lib.wkhtmltopdf_set_warning_callback(conv, warning_cb)
            lib.wkhtmltopdf_add_object(conv, obj, job.html.encode("utf-8", "surrogatepass"))

            ok = lib.wkhtmltopdf_convert(conv)
            http_code = lib.wkhtmltopdf_http_error_code(conv)
            if http_code:
                logger.warning("wkhtmltox reported HTTP error code %d", http_code)
            if ok != 1:
                detail = "; ".join(e for e in errors if e) or "unknown error"
                raise RendererError(f"wkhtmltopdf_convert failed: {detail}")

            data = ctypes.POINTER(ctypes.c_ubyte)()
            size = lib.wkhtmltopdf_get_output(conv, ctypes.byref(data))
            if size <= 0 or not data:
                return b""
            # Copy out before the converter (which owns the buffer) is destroyed.
            return ctypes.string_at(data, size)
        finally:
            lib.wkhtmltopdf_destroy_converter(conv)

    @staticmethod
    def _set(setter, target, name: str, value: str) -> None:
        if setter(target, name.encode("utf-8"), value.encode("utf-8")) != 1:
            raise RendererError(f"Rejected setting {name}={value!r}")
