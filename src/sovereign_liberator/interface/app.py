"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from sovereign_liberator.interface.dependencies import shutdown, startup
from sovereign_liberator.interface.error_handlers import register_error_handlers
from sovereign_liberator.interface.routes import router


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the shared HTTP client and the background task scheduler."""
    await startup()
    yield
    await shutdown()


def create_app() -> FastAPI:
    """Build and wire the FastAPI application."""
    app = FastAPI(
        title="Sovereign Liberator",
        version="1.0.0",
        description=(
            "Turns a vendor-locked web project into a self-hostable one: "
            "publishes cleaned sources to GitHub, replays its SQL migrations "
            "on a Supabase project and deploys it on Coolify."
        ),
        lifespan=_lifespan,
    )

    register_error_handlers(app)
    app.include_router(router)

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok", "service": "sovereign-liberator"}

    return app
