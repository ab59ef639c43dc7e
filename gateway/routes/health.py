"""
Health endpoint.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Depends, HTTPException

from chatgate.db import Store, get_schema_revisions
from chatgate.errors import StorageError
from gateway.deps import get_store


router = APIRouter()


def _check_db_health(store: Store) -> dict:
    try:
        store.ping()
    except StorageError as exc:
        return {"ok": False, "error": str(exc)}

    current_rev, head_rev = get_schema_revisions(store.engine)
    schema_ok = current_rev == head_rev
    return {
        "ok": schema_ok,
        "schema_revision": current_rev,
        "schema_expected": head_rev,
        "schema_up_to_date": schema_ok,
    }


@router.get("/health")
async def health(store: Store = Depends(get_store)):
    """Health check endpoint."""
    db_health = _check_db_health(store)
    if not db_health.get("ok"):
        raise HTTPException(status_code=503, detail={"database": db_health})

    return {
        "status": "healthy",
        "service": "ChatGate",
        "version": "0.1.0",
        "instance_id": os.environ.get("CHATGATE_INSTANCE_ID", "chatgate-1"),
        "database": db_health,
    }
