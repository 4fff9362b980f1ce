from dataclasses import dataclass, field
from typing import Protocol


class RendererGateway(Protocol):
    def render(self, job: "RenderJobSpec") -> bytes:
        """Render the job into PDF bytes synchronously.
        This is a blocking call; callers should offload to threads if needed.
        """


@dataclass(frozen=True)
class Margins:
    top: float = 10
    bottom: float = 10
    left: float = 10
    right: float = 10
    unit: str = "mm"


@dataclass(frozen=True)
class PageSettings:
    paper_size: str = "A4"
    orientation: str = "Portrait"
    color_mode: str = "Color"
    margins: Margins = field(default_factory=Margins)
    dpi: int = 300
    image_dpi: int = 300
    image_quality: int = 100
    document_title: str = "Generated PDF"


@dataclass(frozen=True)
class WebSettings:
    default_encoding: str = "utf-8"
    enable_javascript: bool = True
    load_images: bool = True
    enable_intelligent_shrinking: bool = True
    print_media_type: bool = True
    minimum_font_size: int = 10


@dataclass(frozen=True)
class HeaderFooter:
    font_size: int = 9
    left: str = ""
    center: str = ""
    right: str = ""
    line: bool = False


@dataclass(frozen=True)
class RenderJobSpec:
    html: str
    page: PageSettings = field(default_factory=PageSettings)
    web: WebSettings = field(default_factory=WebSettings)
    header: HeaderFooter = field(default_factory=HeaderFooter)
    footer: HeaderFooter = field(default_factory=HeaderFooter)
    pages_count: bool = True
