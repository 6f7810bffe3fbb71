import contextlib
import logging
import time
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Annotated

import psutil
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.chromium_manager import ChromiumManager, get_chromium_manager
from app.errors import PdfServiceError, classify_failure
from app.font_resolver import MAX_FONT_BYTES
from app.metrics_server import MetricsServer, get_metrics_port, is_metrics_server_enabled
from app.page_renderer import FONT_SETTLE_DELAY_MS
from app.pdf_pipeline import PdfGenerationResult, PdfPipeline
from app.prometheus_metrics import increment_pdf_generation_failure, increment_pdf_generation_success
from app.request_validator import parse_json_body, validate_pdf_request
from app.sanitization import content_disposition, sanitize_filename, sanitize_for_logging, sanitize_header_value
from app.schemas import MAX_RENDER_TIMEOUT_MS, ErrorResponseSchema, HealthSchema, LimitsSchema, MemorySchema, PdfRequest, RenderMetricsSchema, ServiceInfoSchema
from app.service_config import ServiceConfig, get_service_config

SERVICE_NAME = "HTML to PDF API"
BYTES_PER_MB = 1024 * 1024
REF_PREFIX = "#/components/schemas/"


@contextlib.asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:  # noqa: ARG001
    """
    Manage the lifecycle of the Playwright driver and the metrics server.

    If the driver fails to start, the service stays up: /health reports the
    rendering engine as not available and /generate-pdf answers with
    UNKNOWN_ERROR, so the problem is visible to clients and monitoring.
    """
    chromium_manager = get_chromium_manager()
    logger = logging.getLogger(__name__)

    logger.info("Prepare rendering engine...")
    try:
        await chromium_manager.start()
        logger.info("Rendering engine prepared successfully")
    except Exception as e:  # noqa: BLE001
        logger.error("Rendering engine is not available, PDF generation is disabled: %s", e)

    metrics_server: MetricsServer | None = None
    if is_metrics_server_enabled():
        metrics_server = MetricsServer(port=get_metrics_port())
        try:
            await metrics_server.start()
        except Exception as e:  # noqa: BLE001
            logger.error("Failed to start metrics server: %s", e)
            metrics_server = None

    yield  # Application runs here

    if metrics_server is not None:
        await metrics_server.stop()

    try:
        logger.info("Stopping rendering engine...")
        await chromium_manager.stop()
        logger.info("Rendering engine stopped successfully")
    except Exception as e:  # noqa: BLE001
        logger.error("Error stopping rendering engine: %s", e)


logger = logging.getLogger(__name__)

app = FastAPI(
    title="HTML to PDF Service API",
    version="2.0.0",
    description="Renders a list of HTML documents into a single merged PDF using headless Chromium.",
    openapi_url="/docs/spec.json",
    docs_url=None,
    redoc_url="/docs",
    openapi_version="3.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


def get_pdf_pipeline(
    chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)],
    config: Annotated[ServiceConfig, Depends(get_service_config)],
) -> PdfPipeline:
    return PdfPipeline(engine=chromium_manager, config=config)


@app.get(
    "/",
    response_model=ServiceInfoSchema,
    summary="Service descriptor",
    description="Returns the service name, version and the map of available endpoints.",
    operation_id="getServiceInfo",
    tags=["meta"],
)
async def root(config: Annotated[ServiceConfig, Depends(get_service_config)]) -> ServiceInfoSchema:
    return ServiceInfoSchema(
        message=SERVICE_NAME,
        version=config.service_version,
        endpoints={
            "health": "/health",
            "generatePdf": "/generate-pdf",
            "docs": "/docs",
            "apiSpec": "/docs/spec.json",
        },
    )


@app.get(
    "/health",
    summary="Health check",
    description="Returns health status, limits in effect, memory usage and render metrics.",
    operation_id="getHealth",
    tags=["meta"],
    response_model=None,
    responses={
        200: {"content": {"application/json": {"schema": HealthSchema.model_json_schema()}}, "description": "Service is healthy"},
        503: {"content": {"application/json": {"schema": HealthSchema.model_json_schema()}}, "description": "Rendering engine is not available"},
    },
)
async def health(
    chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)],
    config: Annotated[ServiceConfig, Depends(get_service_config)],
) -> Response:
    """
    Health check endpoint that verifies the rendering engine status.

    Returns:
        200 with HealthSchema JSON when browsers can be launched, 503 otherwise.
    """
    engine_healthy = chromium_manager.health_check()
    system_memory = psutil.virtual_memory()

    health_response = HealthSchema(
        status="healthy" if engine_healthy else "unhealthy",
        version=config.service_version,
        environment=config.environment,
        timestamp=datetime.now(timezone.utc).isoformat(),
        rendering_engine="available" if engine_healthy else "not available",
        chromium_version=chromium_manager.get_version(),
        limits=LimitsSchema(
            max_pages=config.max_pages,
            max_concurrency=config.max_concurrency,
            render_timeout_ms=MAX_RENDER_TIMEOUT_MS,
            font_settle_ms=FONT_SETTLE_DELAY_MS,
            max_font_bytes=MAX_FONT_BYTES,
        ),
        memory=MemorySchema(
            rss_mb=round(psutil.Process().memory_info().rss / BYTES_PER_MB, 2),
            total_mb=round(system_memory.total / BYTES_PER_MB, 2),
            available_mb=round(system_memory.available / BYTES_PER_MB, 2),
        ),
        metrics=RenderMetricsSchema(**chromium_manager.get_metrics()),
    )
    return Response(
        content=health_response.model_dump_json(),
        media_type="application/json",
        status_code=200 if engine_healthy else 503,
    )


@app.post(
    "/generate-pdf",
    response_model=None,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Merged PDF of all pages, in request order"},
        400: {"model": ErrorResponseSchema, "description": "Invalid request (VALIDATION_ERROR)"},
        500: {"model": ErrorResponseSchema, "description": "Rendering failed (RENDER_ERROR, TIMEOUT_ERROR, RESOURCE_ERROR, UNKNOWN_ERROR)"},
    },
    openapi_extra={"requestBody": {"required": True, "content": {"application/json": {"schema": {"$ref": f"{REF_PREFIX}PdfRequest"}}}}},
    summary="Generate PDF from HTML pages",
    description="Renders every HTML string of `pages` with headless Chromium and returns one merged PDF.",
    operation_id="generatePdf",
    tags=["convert"],
)
async def generate_pdf(
    request: Request,
    pipeline: Annotated[PdfPipeline, Depends(get_pdf_pipeline)],
    chromium_manager: Annotated[ChromiumManager, Depends(get_chromium_manager)],
    config: Annotated[ServiceConfig, Depends(get_service_config)],
) -> Response:
    """
    Validate the JSON body, render all pages and return the merged PDF.
    """
    start_time = time.time()
    logger.info("PDF generation requested")
    raw: bytes = await request.body()
    logger.debug("Received JSON body of size: %d bytes", len(raw))

    try:
        pdf_request = validate_pdf_request(parse_json_body(raw), config.max_pages)
        result = await pipeline.generate(pdf_request)
    except Exception as e:  # noqa: BLE001
        error = classify_failure(e)
        chromium_manager.metrics.record_failure(error.kind.value)
        increment_pdf_generation_failure(error.kind.value)
        return __process_error(e, error)

    duration_seconds = time.time() - start_time
    chromium_manager.metrics.record_success(duration_seconds * 1000, result.page_count)
    increment_pdf_generation_success(duration_seconds, result.page_count)

    return __create_response(pdf_request, result, duration_seconds, config)


def __create_response(pdf_request: PdfRequest, result: PdfGenerationResult, duration_seconds: float, config: ServiceConfig) -> Response:
    filename = sanitize_filename(pdf_request.filename)
    logger.debug("Creating response with filename: %s", sanitize_for_logging(filename))
    response = Response(result.content, media_type="application/pdf", status_code=200)
    response.headers.append("Content-Disposition", content_disposition(filename))
    response.headers.append("X-Processing-Time", f"{round(duration_seconds * 1000)}ms")
    response.headers.append("X-Pages-Processed", str(result.page_count))
    response.headers.append("X-Font-Used", sanitize_header_value(result.font_used or "system"))
    response.headers.append("Html2pdf-Service-Version", sanitize_header_value(config.service_version))
    return response


def __process_error(e: Exception, error: PdfServiceError) -> JSONResponse:
    if error.status_code >= 500:
        logger.error("PDF generation failed (%s): %s", error.kind.value, sanitize_for_logging(str(e)), exc_info=e)
    else:
        logger.warning("PDF generation rejected (%s): %s", error.kind.value, sanitize_for_logging(error.message))
    return JSONResponse(status_code=error.status_code, content=error.to_envelope())


def custom_openapi() -> dict:
    """
    OpenAPI document including the /generate-pdf request body schema.

    The body is validated by hand (to report malformed JSON and the page ceiling
    as VALIDATION_ERROR), so FastAPI cannot derive its schema from the signature.
    """
    if app.openapi_schema:
        return app.openapi_schema

    schema = get_openapi(
        title=app.title,
        version=app.version,
        openapi_version=app.openapi_version,
        description=app.description,
        routes=app.routes,
    )
    request_schema = PdfRequest.model_json_schema(by_alias=True, ref_template=REF_PREFIX + "{model}")
    components = schema.setdefault("components", {}).setdefault("schemas", {})
    components.update(request_schema.pop("$defs", {}))
    components["PdfRequest"] = request_schema

    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi  # type: ignore[method-assign]
