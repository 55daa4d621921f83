from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gestock.app.api.errors import install_exception_handlers
from gestock.app.api.v1.router import router as v1_router
from gestock.app.core.config import get_settings
from gestock.app.core.logging import configure_logging, get_logger


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Invalidates", "Content-Disposition"],
    )
    install_exception_handlers(app)
    app.include_router(v1_router, prefix=settings.API_PREFIX)

    get_logger(__name__).info("app_ready", prefix=settings.API_PREFIX, environment=settings.ENVIRONMENT)
    return app


app = create_app()
