"""ASGI application for the onboarding API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from classroll.api.v1 import api_router
from classroll.config import settings
from classroll.database import close_db
from classroll.exceptions import create_exception_handlers
from classroll.middleware.auth import AuthMiddleware

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logging for the service; development always logs at DEBUG."""
    level = logging.DEBUG if settings.is_development else getattr(logging, settings.app_log_level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        force=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.app_name} onboarding API up ({settings.app_env})")
    yield
    await close_db()
    logger.info(f"{settings.app_name} onboarding API stopped")


def create_app() -> FastAPI:
    docs = settings.app_debug
    app = FastAPI(
        title=settings.app_name,
        description="Invitations, guardian registration requests and their review",
        version="1.0.0",
        docs_url="/api/docs" if docs else None,
        redoc_url="/api/redoc" if docs else None,
        openapi_url="/api/openapi.json" if docs else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [settings.app_base_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(AuthMiddleware)

    for exc_class, handler in create_exception_handlers().items():
        app.add_exception_handler(exc_class, handler)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "app": settings.app_name, "env": settings.app_env}

    return app


configure_logging()
app = create_app()


def main():
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "classroll.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.app_log_level.lower(),
    )


if __name__ == "__main__":
    main()
