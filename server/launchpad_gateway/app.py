"""FastAPI application for the Launchpad Gateway."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .app_state import GatewayState
from .config import config
from .errors import GatewayError

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def create_app(state: Optional[GatewayState] = None) -> FastAPI:
    """Build the app. Without an explicit state one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        gateway = state or GatewayState.from_config(config)
        app.state.gateway = gateway
        logger.info("Launchpad Gateway starting on %s:%d", config.host, config.port)
        logger.info("Launchpad portal: %s", gateway.launchpad_url)

        yield

        await gateway.close()
        logger.info("Launchpad Gateway stopped")

    app = FastAPI(
        title="Launchpad Gateway",
        description="Job and task orchestration API for the customer launchpad",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "message": "Invalid request body",
                "errors": jsonable_encoder(exc.errors()),
                "hints": "Please check the request body and try again later",
            },
        )

    from .routers.health import router as health_router
    from .routers.jobs import router as jobs_router
    from .routers.tasks import router as tasks_router

    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(tasks_router)
    return app


app = create_app()
