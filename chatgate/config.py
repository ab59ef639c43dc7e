"""
Shared configuration for ChatGate.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("chatgate")


def _get_bool(env_name: str, default: bool) -> bool:
    value = os.environ.get(env_name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(env_name: str, default: int) -> int:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(env_name: str, default: float) -> float:
    value = os.environ.get(env_name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


USER_ID_SUFFIX = "@s.whatsapp.net"
GROUP_ID_SUFFIX = "@g.us"


def to_user_id(raw: str) -> str:
    """Normalize a phone number to a user identifier; other values are trimmed."""
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"{digits}{USER_ID_SUFFIX}" if digits else raw.strip()


def _parse_owner_ids(raw: str) -> tuple[str, ...]:
    return tuple(to_user_id(item) for item in raw.split(",") if item.strip())


# Database settings
DB_BACKEND = os.environ.get("DB_BACKEND", "sqlite").strip().lower()
SQLITE_PATH = os.environ.get("SQLITE_PATH", "./data/chatgate.db")
DATABASE_URL = os.environ.get("DATABASE_URL")
AUTO_MIGRATE_ON_STARTUP = _get_bool("AUTO_MIGRATE_ON_STARTUP", True)

# Identity
BOT_NAME = os.environ.get("BOT_NAME", "Doctor Scum")
OWNER_IDS = _parse_owner_ids(os.environ.get("OWNER_IDS", ""))
COMMAND_PREFIX = os.environ.get("COMMAND_PREFIX", "ds.")

# Completion service
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/")
OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4.1")
COMPLETION_TIMEOUT_SECONDS = _get_float("COMPLETION_TIMEOUT_SECONDS", 60.0)
SUMMARY_TEMPERATURE = _get_float("SUMMARY_TEMPERATURE", 0.3)
SUMMARY_TARGET_TOKENS = _get_int("SUMMARY_TARGET_TOKENS", 150)
MAX_RESPONSE_TOKENS = _get_int("MAX_RESPONSE_TOKENS", 500)

# Persona defaults (seeded into config_entries on startup)
DEFAULT_PERSONA = os.environ.get(
    "DEFAULT_PERSONA",
    "Eres Doctor Scum de la saga Dog Man. Hablas en español latino, con humor irónico "
    "y dramático. Responde breve (1-3 frases) y mantén el tono del personaje.",
)
DEFAULT_TEMPERATURE = _get_float("DEFAULT_TEMPERATURE", 0.7)

# Context window
MAX_TURNS = _get_int("MAX_TURNS", 18)
KEEP_RECENT_TURNS = _get_int("KEEP_RECENT_TURNS", 12)
INACTIVITY_SECONDS = _get_int("INACTIVITY_SECONDS", 60 * 60)
DEFAULT_SESSION_NAME = "principal"

# Input limits
MAX_SESSION_NAME_LENGTH = _get_int("CHATGATE_MAX_SESSION_NAME_LENGTH", 100)
MAX_MESSAGE_LENGTH = _get_int("CHATGATE_MAX_MESSAGE_LENGTH", 8000)
MAX_PERSONA_LENGTH = _get_int("CHATGATE_MAX_PERSONA_LENGTH", 4000)
MAX_IDENTIFIER_LENGTH = _get_int("CHATGATE_MAX_IDENTIFIER_LENGTH", 255)


@dataclass(frozen=True)
class SessionSettings:
    owner_ids: tuple[str, ...] = ()
    bot_name: str = "Doctor Scum"
    default_persona: str = ""
    default_temperature: float = 0.7
    max_turns: int = 18
    keep_recent_turns: int = 12
    inactivity_seconds: int = 3600
    command_prefix: str = "ds."


def load_session_settings_from_env() -> SessionSettings:
    return SessionSettings(
        owner_ids=OWNER_IDS,
        bot_name=BOT_NAME,
        default_persona=DEFAULT_PERSONA,
        default_temperature=DEFAULT_TEMPERATURE,
        max_turns=MAX_TURNS,
        keep_recent_turns=KEEP_RECENT_TURNS,
        inactivity_seconds=INACTIVITY_SECONDS,
        command_prefix=COMMAND_PREFIX,
    )


def validate_session_settings(settings: SessionSettings) -> list[str]:
    errors = []
    if settings.max_turns <= 0:
        errors.append("MAX_TURNS must be positive")
    if settings.keep_recent_turns <= 0:
        errors.append("KEEP_RECENT_TURNS must be positive")
    if settings.keep_recent_turns > settings.max_turns:
        errors.append("KEEP_RECENT_TURNS must not exceed MAX_TURNS")
    if settings.inactivity_seconds <= 0:
        errors.append("INACTIVITY_SECONDS must be positive")
    if not 0.0 <= settings.default_temperature <= 1.0:
        errors.append("DEFAULT_TEMPERATURE must be between 0 and 1")
    if not settings.command_prefix:
        errors.append("COMMAND_PREFIX must not be empty")
    return errors


def validate_and_prepare_config() -> None:
    """Validate configuration and apply derived settings at startup."""
    global DATABASE_URL

    errors = []
    if DB_BACKEND not in {"postgres", "sqlite"}:
        errors.append("DB_BACKEND must be 'postgres' or 'sqlite'")

    if not DATABASE_URL:
        if DB_BACKEND == "sqlite":
            if not SQLITE_PATH:
                errors.append("SQLITE_PATH environment variable is required for sqlite")
            else:
                DATABASE_URL = f"sqlite:///{SQLITE_PATH}"
        else:
            errors.append("DATABASE_URL environment variable is required")
    else:
        is_sqlite_url = DATABASE_URL.lower().startswith("sqlite")
        if DB_BACKEND == "sqlite" and not is_sqlite_url:
            errors.append("DATABASE_URL must be a sqlite URL when DB_BACKEND=sqlite")
        if DB_BACKEND == "postgres" and is_sqlite_url:
            errors.append("DATABASE_URL must be a postgres URL when DB_BACKEND=postgres")

    errors.extend(validate_session_settings(load_session_settings_from_env()))

    if not OWNER_IDS:
        logger.warning("OWNER_IDS is empty; no identifier has owner access.")
    if not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY is not set; completion calls will be rejected.")

    if errors:
        raise RuntimeError("Configuration invalid: " + "; ".join(errors))
