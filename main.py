# main.py
from dotenv import load_dotenv
load_dotenv()

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from pharmacheck.config import Settings
from pharmacheck.container import ServiceContainer
from pharmacheck.presentation.health import router as health_router
from pharmacheck.presentation.routers import router as v1_router

# --- logging config goes first ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

# application logger, not 'uvicorn.access'
app_logger = logging.getLogger("pharmacheck.request")


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI app. Without a container one is built from the
    environment at startup and closed at shutdown; a passed-in container
    (tests) is used as is and left open.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = container is None
        app.state.container = container or ServiceContainer.from_env()
        app_logger.info("PharmaCheck ready (corpus=%s)", type(app.state.container.corpus).__name__)
        try:
            yield
        finally:
            if owned:
                await app.state.container.aclose()

    settings = container.settings if container is not None else Settings.from_env()

    app = FastAPI(
        title="PharmaCheck",
        version=os.getenv("APP_VERSION", "0.1.0"),
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        app_logger.info("Incoming %s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
            app_logger.info("Completed %s %s -> %s", request.method, request.url.path, response.status_code)
            return response
        except Exception:
            app_logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            raise

    # ─────────────────────────────────────────────────────────────
    # CORS (env: CORS_ALLOW_ORIGINS="https://foo.com,https://bar.com")
    # ─────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials="*" not in settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─────────────────────────────────────────────────────────────
    # Routes
    # ─────────────────────────────────────────────────────────────
    app.include_router(health_router, tags=["health"])
    app.include_router(v1_router, tags=["api"])

    @app.get("/")
    async def root():
        return {
            "name": "PharmaCheck",
            "version": os.getenv("APP_VERSION", "0.1.0"),
            "ok": True,
        }

    @app.options("/{rest_of_path:path}")
    async def any_options(rest_of_path: str):
        return Response(status_code=204)

    return app


app = create_app()
