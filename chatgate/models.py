"""
ChatGate Database Models
SQLite (default) or PostgreSQL schema
"""

from datetime import datetime
from enum import Enum as PyEnum
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, Boolean,
    DateTime, ForeignKey, Index, UniqueConstraint, Enum, JSON
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship, declarative_base

import chatgate.config as config

DB_BACKEND = config.DB_BACKEND

JSON_TYPE = JSONB if DB_BACKEND == "postgres" else JSON
UUID_TYPE = UUID(as_uuid=True) if DB_BACKEND == "postgres" else String(36)


def _uuid_default() -> str | uuid.UUID:
    value = uuid.uuid4()
    return value if DB_BACKEND == "postgres" else str(value)

Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class TurnRole(str, PyEnum):
    user = "user"
    assistant = "assistant"


# =============================================================================
# Global configuration overrides (persona, temperature)
# =============================================================================

class ConfigEntry(Base):
    __tablename__ = "config_entries"

    key = Column(String(100), primary_key=True)
    value = Column(Text)


# =============================================================================
# Authorization sets
# =============================================================================

class AuthorizedUser(Base):
    __tablename__ = "authorized_users"

    user_id = Column(String(255), primary_key=True)
    added_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class AuthorizedGroup(Base):
    __tablename__ = "authorized_groups"

    group_id = Column(String(255), primary_key=True)
    added_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class LinkedIdentity(Base):
    __tablename__ = "linked_identities"

    # Stored ordered, queried symmetrically
    primary_id = Column(String(255), primary_key=True)
    linked_id = Column(String(255), primary_key=True)
    added_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_linked_identities_primary", "primary_id"),
        Index("ix_linked_identities_linked", "linked_id"),
    )


class BotBinding(Base):
    __tablename__ = "bot_bindings"

    conversation_id = Column(String(255), primary_key=True)
    bot_id = Column(String(255), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# Sessions and turns
# =============================================================================

class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True)
    conversation_id = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    summary = Column(Text)
    last_active = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    turns = relationship(
        "ChatTurn",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("conversation_id", "name", name="uq_chat_sessions_conversation_name"),
        Index("ix_chat_sessions_conversation_active", "conversation_id", "is_active"),
    )


class ChatTurn(Base):
    __tablename__ = "chat_turns"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False)
    role = Column(Enum(TurnRole, name="turn_role", native_enum=False, length=20), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    session = relationship("ChatSession", back_populates="turns")

    __table_args__ = (
        Index("ix_chat_turns_session_order", "session_id", "created_at", "id"),
    )


# =============================================================================
# Audit events (metadata only)
# =============================================================================

class AuditEvent(Base):
    __tablename__ = "audit_events"

    event_id = Column(UUID_TYPE, primary_key=True, default=_uuid_default)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    event_type = Column(String(100), nullable=False)
    actor_id = Column(String(255))
    conversation_id = Column(String(255))
    target_type = Column(String(50), nullable=False)
    target_ids = Column(JSON_TYPE, nullable=False)
    reason = Column(Text)
    metadata_ = Column("metadata", JSON_TYPE)

    __table_args__ = (
        Index("ix_audit_events_created_at", "created_at"),
        Index("ix_audit_events_event_type", "event_type"),
        Index("ix_audit_events_conversation_id", "conversation_id"),
    )


__all__ = [
    "Base",
    "TurnRole",
    "ConfigEntry",
    "AuthorizedUser",
    "AuthorizedGroup",
    "LinkedIdentity",
    "BotBinding",
    "ChatSession",
    "ChatTurn",
    "AuditEvent",
]
