"""
FastAPI application entry point for DocGate.

Google sign-in issues a DocGate session credential; every other route
requires it as an Authorization: Bearer header. Stripe webhooks drive the
paid tier, which gates document access beyond the free quota.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docgate.api.dependencies import RENEWED_TOKEN_HEADER
from docgate.api.routes import auth, documents, health, payments, webhooks_stripe
from docgate.errors import DocGateError
from docgate.platform.redaction import install_redacting_filter
from docgate.services.container import ServiceRegistry

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
install_redacting_filter()
logger = logging.getLogger(__name__)


def create_app(registry: Optional[ServiceRegistry] = None) -> FastAPI:
    """
    Build the application.

    Args:
        registry: Service registry to use. Tests pass one with a prebuilt
            container; by default the container is built from the environment.
    """
    registry = registry or ServiceRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting DocGate API")
        # Builds the container now so a ConfigError stops startup.
        await registry.get()
        yield
        logger.info("Shutting down DocGate API")
        registry.dispose()

    app = FastAPI(
        title="DocGate API",
        description="Session and entitlement backend for the DocGate browser extension",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry

    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if origin.strip()
    ]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[RENEWED_TOKEN_HEADER],
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(documents.router)
    app.include_router(payments.router)
    app.include_router(webhooks_stripe.router)

    @app.exception_handler(DocGateError)
    async def docgate_error_handler(request: Request, exc: DocGateError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            extra={"path": request.url.path, "method": request.method, "error": type(exc).__name__},
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    uvicorn.run("main:app", host="0.0.0.0", port=port, reload=os.getenv("ENV") == "development")
