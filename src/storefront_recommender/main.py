"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront_recommender.api.v1.router import api_router
from storefront_recommender.config import get_settings
from storefront_recommender.errors import InvalidRequest, StorageUnavailable
from storefront_recommender.infrastructure.redis import close_redis
from storefront_recommender.logging_config import configure_logging

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting Storefront Recommender Service",
        app_env=settings.app_env,
        debug=settings.debug,
    )

    yield

    await close_redis()
    logger.info("Shutting down Storefront Recommender Service")


async def invalid_request_handler(request: Request, exc: InvalidRequest) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error("Storage unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "storage unavailable"})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Storefront Recommender API",
        description="Product recommendations from storefront views, carts and orders",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(InvalidRequest, invalid_request_handler)
    app.add_exception_handler(StorageUnavailable, storage_unavailable_handler)

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storefront_recommender.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.api_workers,
    )


if __name__ == "__main__":
    run()
