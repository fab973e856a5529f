"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from tubely.core.config import settings
from tubely.core.database import close_db, init_db
from tubely.core.logging import setup_logging
from tubely.core.metrics import get_metrics, get_metrics_content_type, set_app_info
from tubely.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
)
from tubely.modules.auth import auth_router
from tubely.modules.video import video_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await close_db()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Tubely API

Upload videos and thumbnails, and get presigned playback URLs back.

### Authentication

Every endpoint except `/health`, `/metrics`, user creation, login and
`GET /api/videos/{video_id}` requires a JWT bearer token.

```
Authorization: Bearer <access_token>
```
    """,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check and metrics endpoints",
        },
        {
            "name": "auth",
            "description": "User registration, login and token refresh",
        },
        {
            "name": "videos",
            "description": "Video records, thumbnail and video uploads",
        },
    ],
)

# Set up logging with correlation IDs
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

# Set application info for metrics
set_app_info(
    version=settings.VERSION,
    environment="development" if settings.DEBUG else "production",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy"}


@app.get("/metrics", tags=["health"], include_in_schema=False)
async def metrics() -> Response:
    """Prometheus metrics in text exposition format."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Include routers
app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(video_router, prefix=settings.API_PREFIX)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tubely.main:app", host="0.0.0.0", port=8091, reload=settings.DEBUG)
