"""
Dependency helpers for the webhook app.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from chatgate.db import Store
from chatgate.services.engine import ConversationEngine


def get_store(request: Request) -> Store:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="store_not_initialized")
    return store


def get_engine(request: Request) -> ConversationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="engine_not_initialized")
    return engine
