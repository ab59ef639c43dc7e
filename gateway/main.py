"""
FastAPI app wiring for the ChatGate webhook.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

import chatgate.config as config
from chatgate.config import SessionSettings, load_session_settings_from_env
from chatgate.db import Store, init_store
from chatgate.services.completion import CompletionClient
from chatgate.services.engine import CompletionService, ConversationEngine
from chatgate.services.settings_service import ensure_defaults
from gateway.middleware import configure_middleware
from gateway.routes.health import router as health_router
from gateway.routes.messages import router as messages_router
from gateway.routes.root import router as root_router


def create_app(
    store: Optional[Store] = None,
    completion: Optional[CompletionService] = None,
    settings: Optional[SessionSettings] = None,
) -> FastAPI:
    """Build the app; injected collaborators are used as-is and not disposed."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        owns_store = store is None
        owns_completion = completion is None
        active_settings = settings or load_session_settings_from_env()
        active_store = store or init_store()
        active_completion = completion or CompletionClient()
        ensure_defaults(active_store, active_settings)

        app.state.store = active_store
        app.state.settings = active_settings
        app.state.engine = ConversationEngine(active_store, active_settings, active_completion)
        try:
            yield
        finally:
            if owns_completion:
                await active_completion.aclose()
            if owns_store:
                active_store.dispose()
                config.logger.info("Database closed")

    app = FastAPI(title="ChatGate", redirect_slashes=False, lifespan=lifespan)
    configure_middleware(app)

    app.include_router(health_router)
    app.include_router(root_router)
    app.include_router(messages_router)
    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "gateway.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
    )
