from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.router import router as api_router
from core.config import config
from core.db import engine
from core.exceptions.base import CustomException
from core.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"{config.APP_NAME} up: timezone {config.APP_TIMEZONE}, "
        f"{config.CLASS_CAPACITY} seats per class, "
        f"{config.EXPANSION_HORIZON_DAYS}-day horizon"
    )
    yield
    await engine.dispose()
    logger.info(f"{config.APP_NAME} stopped, database pool disposed")


async def handle_domain_error(request: Request, exc: CustomException) -> JSONResponse:
    """Render a domain error with its kind so clients can branch on error_code."""
    logger.warning(
        f"{request.method} {request.url.path} -> {exc.code} {exc.error_code}: {exc.message}"
    )
    return JSONResponse(
        status_code=exc.code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "data": exc.data,
        },
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"{request.method} {request.url.path} failed: {type(exc).__name__} - {exc}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": "INTERNAL_ERROR",
            "message": "An internal server error occurred",
            "detail": str(exc) if config.DEBUG else None,
        },
    )


def create_app() -> FastAPI:
    """Build the scheduling API."""
    app = FastAPI(
        title="Studio Schedule",
        description="Class scheduling, enrollment and billing API for a fixed-capacity studio",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(CustomException, handle_domain_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    @app.get("/health")
    async def health_check() -> dict:
        return {
            "status": "healthy",
            "version": VERSION,
            "app_name": config.APP_NAME,
            "timezone": config.APP_TIMEZONE,
        }

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
