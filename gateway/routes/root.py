"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import chatgate.config as config


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "ChatGate",
        "version": "0.1.0",
        "description": "Conversation session engine for a group chat assistant",
        "bot_name": config.BOT_NAME,
        "command_prefix": config.COMMAND_PREFIX,
        "model": config.OPENAI_MODEL,
        "endpoints": {
            "health": "/health",
            "messages": "/messages",
        },
    }
