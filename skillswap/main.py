from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Optional
from dotenv import load_dotenv
import logging

from .api.v1.api import router as api_router
from .core.config import Settings, get_settings
from .core.exceptions import SkillSwapError
from .core.store import create_store

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DESCRIPTION = """
API for the SkillSwap skill exchange platform.

## Authentication

1. Register with `POST /api/v1/users/register`.
2. Log in with `POST /api/v1/users/login` (form fields `username` = email and `password`).
3. Click "Authorize" and paste the `access_token` (no "Bearer" prefix needed).
"""

def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the single store shared by every request
    settings: Settings = app.state.settings
    app.state.store = create_store(settings)
    logger.info("Starting up %s in %s environment", settings.app_name, settings.environment)

    yield

    # Shutdown: release store connections
    logger.info("Shutting down")
    await app.state.store.close()

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description=DESCRIPTION,
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        swagger_ui_parameters={
            "persistAuthorization": True,
            "displayRequestDuration": True,
            "docExpansion": "none",
        },
    )
    app.state.settings = settings

    # Configure CORS
    origins = settings.allowed_origins
    logger.info("CORS origins: %s", origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router)

    @app.get("/")
    async def root():
        return {"message": f"Welcome to the {settings.app_name}", "environment": settings.environment}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "environment": settings.environment}

    @app.exception_handler(SkillSwapError)
    async def skillswap_exception_handler(request: Request, exc: SkillSwapError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    # Malformed input is reported as 400 rather than FastAPI's default 422
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return app

app = create_app()
