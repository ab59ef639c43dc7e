"""
Global config overrides (persona, temperature) and per-conversation bot bindings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import chatgate.config as config
from chatgate.audit import log_event
from chatgate.audit_constants import EVENT_BOT_BINDING_UPDATED, EVENT_CONFIG_UPDATED
from chatgate.config import SessionSettings
from chatgate.models import BotBinding, ConfigEntry
from chatgate.validators import parse_temperature, validate_identifier, validate_persona

PERSONA_KEY = "persona"
TEMPERATURE_KEY = "temperature"

logger = config.logger


def get_config(db, key: str) -> Optional[str]:
    entry = db.get(ConfigEntry, key)
    return entry.value if entry else None


def set_config(db, key: str, value: str, actor_id: Optional[str] = None) -> None:
    entry = db.get(ConfigEntry, key)
    if entry:
        entry.value = value
    else:
        db.add(ConfigEntry(key=key, value=value))
    log_event(
        db,
        event_type=EVENT_CONFIG_UPDATED,
        target_type="config",
        target_ids=[key],
        actor_id=actor_id,
    )


def ensure_defaults(store, settings: SessionSettings) -> None:
    """Seed persona and temperature when they have never been set."""
    with store.transaction() as db:
        if not get_config(db, PERSONA_KEY):
            set_config(db, PERSONA_KEY, settings.default_persona or settings.bot_name, actor_id="system")
            logger.info("Seeded default persona")
        if not get_config(db, TEMPERATURE_KEY):
            set_config(db, TEMPERATURE_KEY, str(settings.default_temperature), actor_id="system")
            logger.info("Seeded default temperature")


def set_persona(db, persona: str, actor_id: Optional[str] = None) -> str:
    value = validate_persona(persona)
    set_config(db, PERSONA_KEY, value, actor_id=actor_id)
    return value


def set_temperature(db, raw: str, actor_id: Optional[str] = None) -> float:
    value = parse_temperature(raw)
    set_config(db, TEMPERATURE_KEY, str(value), actor_id=actor_id)
    return value


def effective_persona(db, settings: SessionSettings) -> str:
    return get_config(db, PERSONA_KEY) or settings.bot_name


def effective_temperature(db, settings: SessionSettings) -> float:
    raw = get_config(db, TEMPERATURE_KEY)
    if raw is None:
        return settings.default_temperature
    try:
        return float(raw)
    except ValueError:
        logger.warning("Stored temperature is not a number; using default")
        return settings.default_temperature


def get_bot_binding(db, conversation_id: str) -> Optional[str]:
    binding = db.get(BotBinding, conversation_id)
    return binding.bot_id if binding and binding.bot_id else None


def set_bot_binding(db, conversation_id: str, bot_id: str, actor_id: Optional[str] = None) -> None:
    bot_id = validate_identifier(bot_id, "bot_id")
    binding = db.get(BotBinding, conversation_id)
    if binding:
        binding.bot_id = bot_id
        binding.updated_at = datetime.utcnow()
    else:
        db.add(BotBinding(conversation_id=conversation_id, bot_id=bot_id, updated_at=datetime.utcnow()))
    log_event(
        db,
        event_type=EVENT_BOT_BINDING_UPDATED,
        target_type="bot_binding",
        target_ids=[conversation_id],
        actor_id=actor_id,
        conversation_id=conversation_id,
    )
