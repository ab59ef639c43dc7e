"""
Inbound message webhook.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from chatgate.services.engine import ConversationEngine
from gateway.deps import get_engine
from gateway.transport import normalize_payload


router = APIRouter()


@router.post("/messages")
async def receive_message(
    payload: Any = Body(...),
    engine: ConversationEngine = Depends(get_engine),
):
    """Accept one raw transport message and return the reply to deliver, if any."""
    inbound = normalize_payload(payload)
    if inbound is None:
        return {"status": "ignored"}

    outbound = await engine.handle_message(inbound)
    if outbound is None:
        return {"status": "ignored"}

    return {
        "status": "replied",
        "reply": {
            "conversation_id": outbound.conversation_id,
            "text": outbound.text,
        },
    }
