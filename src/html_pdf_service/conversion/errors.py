class ConversionError(Exception):
    """Base class for errors raised by the conversion domain layer."""


class ValidationError(ConversionError):
    """HTML input is missing or blank."""


class RenderFailure(ConversionError):
    """The renderer failed or produced no output.

    The message is safe to show to clients; the renderer's own exception is
    kept as ``__cause__`` for server-side logging only.
    """

    DEFAULT_MESSAGE = "PDF conversion failed. See server logs for details."

    def __init__(self, message: str = DEFAULT_MESSAGE) -> None:
        super().__init__(message)


class StartupFailure(ConversionError):
    """The native renderer library could not be loaded or initialised."""


class RendererError(Exception):
    """Raised by renderer adapters. Never crosses the service boundary."""
