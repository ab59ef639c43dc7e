"""
Audit trail for session and access changes.

Events carry identifiers and counters only. Message text, summaries and the
persona never reach this table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from chatgate.models import AuditEvent

ALLOWED_TARGET_TYPES = {"session", "user", "group", "identity", "config", "bot_binding"}

# Substrings that mark a metadata key as carrying conversation content
FORBIDDEN_KEY_TOKENS = ("content", "text", "message", "summary", "persona", "reply", "transcript")
MAX_METADATA_STRING_LENGTH = 500
MAX_TARGET_ID_LENGTH = 255
MAX_LISTED_EVENTS = 50


def _check_metadata(value: Any, path: str = "metadata") -> None:
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"{path}: keys must be strings")
            normalized = key.strip().lower().replace("-", "_")
            if any(token in normalized for token in FORBIDDEN_KEY_TOKENS):
                raise ValueError(f"{path}: key '{key}' is not allowed")
            _check_metadata(item, f"{path}.{key}")
    elif isinstance(value, list):
        for item in value:
            _check_metadata(item, path)
    elif isinstance(value, str) and len(value) > MAX_METADATA_STRING_LENGTH:
        raise ValueError(f"{path}: value too long")


def _check_target_ids(target_ids: Any) -> list[Any]:
    if not isinstance(target_ids, (list, tuple)):
        raise ValueError("target_ids must be a list")
    for item in target_ids:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            raise ValueError("target_ids must contain strings or integers")
        if isinstance(item, str) and len(item) > MAX_TARGET_ID_LENGTH:
            raise ValueError("target_id value too long")
    return list(target_ids)


def log_event(
    db,
    *,
    event_type: str,
    target_type: str,
    target_ids: list[Any],
    actor_id: Optional[str] = None,
    conversation_id: Optional[str] = None,
    reason: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> AuditEvent:
    """Add an event to the caller's transaction; raises ValueError on content-like metadata."""
    if not event_type or not isinstance(event_type, str):
        raise ValueError("event_type must be a non-empty string")
    if target_type not in ALLOWED_TARGET_TYPES:
        raise ValueError(
            "target_type must be one of: " + "|".join(sorted(ALLOWED_TARGET_TYPES))
        )
    if metadata is not None:
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be a dict")
        _check_metadata(metadata)

    event = AuditEvent(
        created_at=datetime.utcnow(),
        event_type=event_type,
        actor_id=actor_id,
        conversation_id=conversation_id,
        target_type=target_type,
        target_ids=_check_target_ids(target_ids),
        reason=reason,
        metadata_=metadata,
    )
    db.add(event)
    return event


def list_audit_events(
    db,
    *,
    conversation_id: Optional[str] = None,
    event_type: Optional[str] = None,
    limit: int = 10,
) -> list[AuditEvent]:
    """Most recent events first, optionally narrowed to one conversation or event type."""
    if limit <= 0:
        raise ValueError("limit must be positive")
    query = db.query(AuditEvent)
    if conversation_id:
        query = query.filter(AuditEvent.conversation_id == conversation_id)
    if event_type:
        query = query.filter(AuditEvent.event_type == event_type)
    return (
        query.order_by(AuditEvent.created_at.desc(), AuditEvent.event_id.desc())
        .limit(min(limit, MAX_LISTED_EVENTS))
        .all()
    )


__all__ = [
    "AuditEvent",
    "log_event",
    "list_audit_events",
    "ALLOWED_TARGET_TYPES",
]
