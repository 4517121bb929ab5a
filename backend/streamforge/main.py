"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.responses import Response

from streamforge.core.config import settings
from streamforge.core.logging import setup_logging
from streamforge.core.metrics import get_content_type, get_metrics, set_app_info
from streamforge.core.middleware import CorrelationIdMiddleware
from streamforge.core.tracing import setup_tracing
from streamforge.modules.video.router import router as video_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Upload videos and package them for adaptive-bitrate HLS streaming.",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "videos",
            "description": "Video upload, edit, deletion and processing status",
        },
    ],
)

setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=settings.ENVIRONMENT,
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.DEBUG,
)

set_app_info(version=settings.VERSION, environment=settings.ENVIRONMENT)

app.add_middleware(CorrelationIdMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(video_router, prefix=settings.API_V1_PREFIX)
