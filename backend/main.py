import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from backend.auth_module import Settings, build_auth_module, init_auth_module, load_settings, router
from backend.auth_module.errors import register_exception_handlers


logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    settings.validate()
    configure_logging(settings)

    auth = build_auth_module(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Initializing auth module...")
        init_auth_module(auth)
        logger.info("Auth module initialized.")
        yield
        logger.info("Shutting down...")
        auth.close()

    app = FastAPI(title="Back-Office Auth API", lifespan=lifespan)
    app.state.auth = auth
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"{request.method} {request.url.path}")
        return await call_next(request)

    register_exception_handlers(app, settings)

    @app.get("/api/health")
    def health_check():
        return {
            "status": "healthy",
            "environment": settings.app_env,
            "database": "connected" if auth.store.ping() else "unavailable",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn

    backend_host = os.getenv("BACKEND_HOST", "127.0.0.1")
    backend_port = int(os.getenv("BACKEND_PORT", "8000"))
    uvicorn.run("backend.main:create_app", factory=True, host=backend_host, port=backend_port)
