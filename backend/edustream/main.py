"""FastAPI application entry point."""

from fastapi import FastAPI, Response

from edustream.core.config import settings
from edustream.core.logging import setup_logging
from edustream.core.metrics import get_content_type, get_metrics, set_app_info
from edustream.core.middleware import (
    MetricsMiddleware,
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
)
from edustream.modules.content.router import router as content_router
from edustream.modules.transcoding.router import router as transcoding_router

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## EduStream Transcoding API

Turns uploaded course videos into adaptive HLS streams.

* **Contents** - Content records; set `transcode_trigger` to `manual` or `cancel`
  to re-transcode or cancel a video
* **Transcoding** - Pub/Sub push endpoints for storage uploads and transcoding
  job notifications, and the list of artifact cleanups awaiting reclaim
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "contents",
            "description": "Content records and operator transcode commands",
        },
        {
            "name": "transcoding",
            "description": "Storage and job event intake, cleanup failures",
        },
    ],
)

setup_logging(
    level=settings.LOG_LEVEL if not settings.DEBUG else "DEBUG",
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


app.include_router(content_router, prefix=settings.API_V1_PREFIX)
app.include_router(transcoding_router, prefix=settings.API_V1_PREFIX)
