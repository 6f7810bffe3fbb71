from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, StringConstraints, ValidationInfo, field_validator, model_validator

PaperFormat = Literal["A0", "A1", "A2", "A3", "A4", "A5", "A6", "Letter", "Legal", "Tabloid", "Ledger"]
FontFormat = Literal["woff", "woff2", "ttf", "otf"]
FontStyle = Literal["normal", "italic", "oblique"]
FontWeightKeyword = Literal["normal", "bold", "bolder", "lighter"]
WaitCondition = Literal["networkidle", "load", "domcontentloaded"]

DEFAULT_PAPER_FORMAT: PaperFormat = "A4"
DEFAULT_MARGIN = "0.5cm"
MIN_RENDER_TIMEOUT_MS = 1000
MAX_RENDER_TIMEOUT_MS = 60000

# Plain numbers are CSS pixels; strings may carry one of Chromium's print units
MarginValue = Annotated[float, Field(ge=0)] | Annotated[str, StringConstraints(pattern=r"^\d+(\.\d+)?(px|in|cm|mm)?$")]
FontFamily = Annotated[str, StringConstraints(min_length=1, max_length=200, pattern=r"^[^'\"\\<>;{}]+$")]
HtmlPage = Annotated[str, StringConstraints(min_length=1)]


class MarginOptions(BaseModel):
    """Page margins; sides that are not given are 0."""

    model_config = ConfigDict(extra="forbid")

    top: MarginValue | None = None
    right: MarginValue | None = None
    bottom: MarginValue | None = None
    left: MarginValue | None = None


def _default_margin() -> MarginOptions:
    return MarginOptions(top=DEFAULT_MARGIN, right=DEFAULT_MARGIN, bottom=DEFAULT_MARGIN, left=DEFAULT_MARGIN)


class PdfRenderOptions(BaseModel):
    """
    Closed set of rendering options. Unknown keys are rejected.

    The page size is given EITHER by a named ``format`` OR by ``width`` + ``height``
    (CSS pixels). When neither is given the default format (A4) is used.
    See app.page_renderer.build_pdf_kwargs for the effect of every option.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    format: PaperFormat | None = Field(None, description="Named paper format")
    width: float | None = Field(None, gt=0, description="Page width in CSS pixels (requires height)")
    height: float | None = Field(None, gt=0, description="Page height in CSS pixels (requires width)")
    landscape: bool = Field(False, description="Landscape orientation")
    scale: float = Field(1.0, ge=0.1, le=2.0, description="Rendering scale factor")
    print_background: bool = Field(False, alias="printBackground", description="Print CSS backgrounds")
    display_header_footer: bool = Field(False, alias="displayHeaderFooter", description="Render header and footer templates")
    header_template: str | None = Field(None, alias="headerTemplate", description="HTML template for the page header")
    footer_template: str | None = Field(None, alias="footerTemplate", description="HTML template for the page footer")
    margin: MarginOptions = Field(default_factory=_default_margin, description="Page margins")
    prefer_css_page_size: bool = Field(False, alias="preferCSSPageSize", description="Let CSS @page size win over format/width/height")
    timeout: float = Field(MAX_RENDER_TIMEOUT_MS, ge=MIN_RENDER_TIMEOUT_MS, le=MAX_RENDER_TIMEOUT_MS, description="Content load timeout in milliseconds, fractions allowed")
    wait_until: WaitCondition = Field("networkidle", alias="waitUntil", description="Condition that marks the content as settled")

    @model_validator(mode="after")
    def _check_page_size(self) -> PdfRenderOptions:
        if self.format is not None and (self.width is not None or self.height is not None):
            raise ValueError("Cannot specify both format and width/height")
        if (self.width is None) != (self.height is None):
            raise ValueError("width and height must be used together")
        return self

    @property
    def effective_format(self) -> PaperFormat | None:
        """Named format in effect, or None when explicit dimensions are used."""
        if self.width is not None:
            return None
        return self.format or DEFAULT_PAPER_FORMAT


class FontDescriptor(BaseModel):
    """Web font to embed into every page. ``family`` and ``url`` must be given together."""

    model_config = ConfigDict(extra="forbid")

    family: FontFamily | None = None
    url: HttpUrl | None = None
    format: FontFormat = "woff2"
    weight: Annotated[int, Field(ge=1, le=1000)] | FontWeightKeyword = 400
    style: FontStyle = "normal"

    @model_validator(mode="after")
    def _check_family_and_url(self) -> FontDescriptor:
        if (self.family is None) != (self.url is None):
            raise ValueError("Font family and URL must be used together")
        return self

    @property
    def is_complete(self) -> bool:
        return bool(self.family) and self.url is not None


class PdfRequest(BaseModel):
    """
    Request body of POST /generate-pdf.

    The page ceiling depends on the deployment profile and is passed in the
    validation context as ``max_pages``.
    """

    model_config = ConfigDict(extra="forbid")

    pages: list[HtmlPage] = Field(description="HTML documents, one PDF section each, in output order")
    filename: Annotated[str, StringConstraints(min_length=1, max_length=255)] = Field("document.pdf", description="Suggested download filename")
    options: PdfRenderOptions = Field(default_factory=PdfRenderOptions)
    font: FontDescriptor | None = None

    @field_validator("pages")
    @classmethod
    def _check_page_count(cls, pages: list[str], info: ValidationInfo) -> list[str]:
        if not pages:
            raise ValueError("Pages array must contain at least one HTML string")
        max_pages = (info.context or {}).get("max_pages")
        if max_pages is not None and len(pages) > max_pages:
            raise ValueError(f"Maximum {max_pages} pages allowed.")
        return pages


class ErrorDetailSchema(BaseModel):
    """Schema for the error object of an error response"""

    kind: str = Field(title="Kind", description="VALIDATION_ERROR, RENDER_ERROR, TIMEOUT_ERROR, RESOURCE_ERROR or UNKNOWN_ERROR")
    message: str = Field(title="Message", description="Human readable error message")
    details: Any = Field(None, title="Details", description="Engine or validation specific details")


class ErrorResponseSchema(BaseModel):
    """Schema for error responses of /generate-pdf"""

    error: ErrorDetailSchema


class ServiceInfoSchema(BaseModel):
    """Schema for response /"""

    message: str = Field(title="Message", description="Service name")
    version: str = Field(title="Version", description="Service version")
    endpoints: dict[str, str] = Field(title="Endpoints", description="Available endpoints")


class LimitsSchema(BaseModel):
    """Limits currently in effect"""

    max_pages: int = Field(title="Max Pages", description="Maximum number of pages per request")
    max_concurrency: int = Field(title="Max Concurrency", description="Maximum number of pages rendered concurrently per request")
    render_timeout_ms: int = Field(title="Render Timeout (ms)", description="Upper bound of the content load timeout")
    font_settle_ms: int = Field(title="Font Settle (ms)", description="Grace period after content settled, before printing")
    max_font_bytes: int = Field(title="Max Font Size (bytes)", description="Largest web font that is embedded")


class MemorySchema(BaseModel):
    """Process and system memory"""

    rss_mb: float = Field(title="RSS (MB)", description="Resident set size of the service process")
    total_mb: float = Field(title="Total Memory (MB)", description="Total system memory")
    available_mb: float = Field(title="Available Memory (MB)", description="Available system memory")


class RenderMetricsSchema(BaseModel):
    """In-process PDF generation metrics"""

    pdf_generations: int = Field(title="PDF Generations", description="Total successful PDF generations")
    failed_pdf_generations: int = Field(title="Failed PDF Generations", description="Total failed PDF generations")
    failures_by_kind: dict[str, int] = Field(title="Failures by Kind", description="Failed generations per error kind")
    avg_pdf_generation_time_ms: float = Field(title="Avg PDF Generation Time (ms)", description="Average duration of successful generations")
    error_rate_percent: float = Field(title="Error Rate (%)", description="Failed generations as percentage of all generations")
    pages_rendered: int = Field(title="Pages Rendered", description="Total HTML pages rendered by successful generations")
    browsers_launched: int = Field(title="Browsers Launched", description="Total Chromium browsers launched")
    browsers_closed: int = Field(title="Browsers Closed", description="Total Chromium browsers released")
    browser_close_failures: int = Field(title="Browser Close Failures", description="Browser releases that raised an error")
    active_browsers: int = Field(title="Active Browsers", description="Browsers currently owned by in-flight requests")
    uptime_seconds: float = Field(title="Uptime (seconds)", description="Time since the rendering engine was started")


class HealthSchema(BaseModel):
    """Schema for response /health"""

    status: str = Field(title="Status", description="healthy or unhealthy")
    version: str = Field(title="Version", description="Service version")
    environment: str = Field(title="Environment", description="serverless or local deployment profile")
    timestamp: str = Field(title="Timestamp", description="ISO 8601 time of the check")
    rendering_engine: str = Field(title="Rendering Engine", description="available or not available")
    chromium_version: str | None = Field(title="Chromium Version", description="Version of the last launched Chromium, if any")
    limits: LimitsSchema
    memory: MemorySchema
    metrics: RenderMetricsSchema
