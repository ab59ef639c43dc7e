"""
Session lifecycle: create, activate, close, reset, and inactivity detection.

At most one session per conversation is active. Every transition that touches
the active flag runs inside one store transaction.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError

import chatgate.config as config
from chatgate.audit import log_event
from chatgate.audit_constants import (
    EVENT_SESSION_ACTIVATED,
    EVENT_SESSION_CLOSED,
    EVENT_SESSION_CREATED,
    EVENT_SESSION_RESET,
)
from chatgate.config import SessionSettings
from chatgate.errors import SessionNotFound, StorageError
from chatgate.models import ChatSession, ChatTurn
from chatgate.validators import validate_identifier, validate_session_name

logger = config.logger


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _find_active(db, conversation_id: str) -> Optional[ChatSession]:
    return (
        db.query(ChatSession)
        .filter(ChatSession.conversation_id == conversation_id)
        .filter(ChatSession.is_active.is_(True))
        .order_by(ChatSession.last_active.desc(), ChatSession.id.desc())
        .first()
    )


def _find_by_name(db, conversation_id: str, name: str) -> Optional[ChatSession]:
    return (
        db.query(ChatSession)
        .filter(ChatSession.conversation_id == conversation_id)
        .filter(ChatSession.name == name)
        .first()
    )


def _deactivate_others(db, conversation_id: str, keep_id: Optional[int] = None) -> int:
    query = (
        db.query(ChatSession)
        .filter(ChatSession.conversation_id == conversation_id)
        .filter(ChatSession.is_active.is_(True))
    )
    if keep_id is not None:
        query = query.filter(ChatSession.id != keep_id)
    return query.update({ChatSession.is_active: False}, synchronize_session=False)


def touch_session(db, session_id: int, now: Optional[datetime] = None) -> None:
    db.query(ChatSession).filter(ChatSession.id == session_id).update(
        {ChatSession.last_active: now or datetime.utcnow()},
        synchronize_session=False,
    )


class SessionManager:
    """Session lifecycle bound to one store handle."""

    def __init__(self, store, settings: SessionSettings):
        self.store = store
        self.settings = settings

    def get(self, session_id: int) -> Optional[ChatSession]:
        with self.store.transaction() as db:
            return db.get(ChatSession, session_id)

    def find_active(self, conversation_id: str) -> Optional[ChatSession]:
        with self.store.transaction() as db:
            return _find_active(db, conversation_id)

    def create_default(self, conversation_id: str) -> ChatSession:
        return self.create_named(conversation_id, config.DEFAULT_SESSION_NAME)

    def get_or_create_active(self, conversation_id: str) -> ChatSession:
        session = self.find_active(conversation_id)
        if session is not None:
            return session
        return self.create_default(conversation_id)

    def create_named(
        self,
        conversation_id: str,
        name: str,
        actor_id: Optional[str] = None,
    ) -> ChatSession:
        """
        Make ``name`` the active session, creating it if needed.

        An existing session with that name is reactivated with its content intact.
        """
        conversation_id = validate_identifier(conversation_id, "conversation_id")
        name = validate_session_name(name)
        try:
            return self._create_or_reactivate(conversation_id, name, actor_id)
        except StorageError as exc:
            if not isinstance(exc.__cause__, IntegrityError):
                raise
            # A concurrent insert won the unique (conversation_id, name) race
            logger.info(
                "session_create_conflict",
                extra={"conversation_id": conversation_id, "session_name": name},
            )
            return self._create_or_reactivate(conversation_id, name, actor_id)

    def _create_or_reactivate(
        self,
        conversation_id: str,
        name: str,
        actor_id: Optional[str],
    ) -> ChatSession:
        now = datetime.utcnow()
        with self.store.transaction() as db:
            session = _find_by_name(db, conversation_id, name)
            _deactivate_others(db, conversation_id, keep_id=session.id if session else None)
            if session is None:
                session = ChatSession(
                    conversation_id=conversation_id,
                    name=name,
                    is_active=True,
                    last_active=now,
                    created_at=now,
                )
                db.add(session)
                db.flush()
                event_type = EVENT_SESSION_CREATED
            else:
                session.is_active = True
                session.last_active = now
                event_type = EVENT_SESSION_ACTIVATED
            log_event(
                db,
                event_type=event_type,
                target_type="session",
                target_ids=[session.id],
                actor_id=actor_id,
                conversation_id=conversation_id,
                metadata={"name": name},
            )
        logger.info(
            event_type,
            extra={"conversation_id": conversation_id, "session_id": session.id},
        )
        return session

    def activate_named(
        self,
        conversation_id: str,
        name: str,
        actor_id: Optional[str] = None,
    ) -> ChatSession:
        """Activate an existing session; raises SessionNotFound if it does not exist."""
        name = validate_session_name(name)
        with self.store.transaction() as db:
            session = _find_by_name(db, conversation_id, name)
            if session is None:
                raise SessionNotFound(conversation_id, name)
            _deactivate_others(db, conversation_id, keep_id=session.id)
            session.is_active = True
            session.last_active = datetime.utcnow()
            log_event(
                db,
                event_type=EVENT_SESSION_ACTIVATED,
                target_type="session",
                target_ids=[session.id],
                actor_id=actor_id,
                conversation_id=conversation_id,
                metadata={"name": name},
            )
        return session

    def close(self, session_id: int, reason: str = "closed", actor_id: Optional[str] = None) -> bool:
        with self.store.transaction() as db:
            session = db.get(ChatSession, session_id)
            if session is None:
                return False
            session.is_active = False
            log_event(
                db,
                event_type=EVENT_SESSION_CLOSED,
                target_type="session",
                target_ids=[session_id],
                actor_id=actor_id,
                conversation_id=session.conversation_id,
                reason=reason,
            )
        return True

    def reset_content(self, session_id: int, actor_id: Optional[str] = None) -> int:
        """Delete every turn and the summary; returns the number of turns removed."""
        with self.store.transaction() as db:
            session = db.get(ChatSession, session_id)
            if session is None:
                return 0
            removed = db.query(ChatTurn).filter(ChatTurn.session_id == session_id).delete(
                synchronize_session=False
            )
            session.summary = None
            session.last_active = datetime.utcnow()
            log_event(
                db,
                event_type=EVENT_SESSION_RESET,
                target_type="session",
                target_ids=[session_id],
                actor_id=actor_id,
                conversation_id=session.conversation_id,
                metadata={"turns_deleted": removed},
            )
        return removed

    def list_sessions(self, conversation_id: str) -> list[ChatSession]:
        with self.store.transaction() as db:
            return (
                db.query(ChatSession)
                .filter(ChatSession.conversation_id == conversation_id)
                .order_by(ChatSession.last_active.desc(), ChatSession.created_at.desc())
                .all()
            )

    def is_inactive(self, session: ChatSession, now: Optional[datetime] = None) -> bool:
        current = _as_naive_utc(now) if now else datetime.utcnow()
        elapsed = current - _as_naive_utc(session.last_active)
        return elapsed > timedelta(seconds=self.settings.inactivity_seconds)
