"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from payment_orchestrator.api.middleware import RequestIDMiddleware, MetricsMiddleware
from payment_orchestrator.api.v1 import fraud, payments
from payment_orchestrator.domain.exceptions import DomainException
from payment_orchestrator.infrastructure.observability.logging import setup_logging
from payment_orchestrator.config import settings
from payment_orchestrator.utils.date_utils import utcnow

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Render every domain error as {error, message, path, timestamp} with its own status"""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code}: {exc}", extra={"path": request.url.path})
    else:
        logger.info(f"{exc.error_code}: {exc}", extra={"path": request.url.path})

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "path": request.url.path,
            "timestamp": utcnow().isoformat(),
        },
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Payment Orchestrator",
        description="Payment saga with rule-based fraud screening",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(fraud.router, prefix="/v1", tags=["fraud"])

    return app


app = create_app()
