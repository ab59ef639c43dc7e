"""
Turn history and context window management.

The send bound (``max_turns``) limits what goes to the completion service.
Compaction triggers when the stored history exceeds ``max_turns`` and shrinks it
to ``keep_recent_turns`` after the older prefix has been summarized. Nothing is
deleted unless the new summary was produced and is persisted in the same
transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from sqlalchemy import func

import chatgate.config as config
from chatgate.audit import log_event
from chatgate.audit_constants import EVENT_SESSION_COMPACTED
from chatgate.config import SessionSettings
from chatgate.models import ChatSession, ChatTurn, TurnRole
from chatgate.services.session_service import touch_session

logger = config.logger


class Summarizer(Protocol):
    async def summarize(self, text: str) -> str: ...


@dataclass(frozen=True)
class HistoryItem:
    role: str
    content: str


@dataclass(frozen=True)
class ContextSnapshot:
    summary: Optional[str]
    history: list[HistoryItem]
    compacted: bool = False


# =============================================================================
# Turn storage
# =============================================================================

def list_turns(db, session_id: int) -> list[ChatTurn]:
    return (
        db.query(ChatTurn)
        .filter(ChatTurn.session_id == session_id)
        .order_by(ChatTurn.created_at.asc(), ChatTurn.id.asc())
        .all()
    )


def count_turns(db, session_id: int) -> int:
    return db.query(func.count(ChatTurn.id)).filter(ChatTurn.session_id == session_id).scalar() or 0


def append_turn(db, session_id: int, role: TurnRole, content: str) -> ChatTurn:
    now = datetime.utcnow()
    turn = ChatTurn(session_id=session_id, role=role, content=content, created_at=now)
    db.add(turn)
    touch_session(db, session_id, now)
    return turn


def delete_all_but_recent(db, session_id: int, keep_last: int) -> int:
    stale_ids = [
        row[0]
        for row in (
            db.query(ChatTurn.id)
            .filter(ChatTurn.session_id == session_id)
            .order_by(ChatTurn.created_at.desc(), ChatTurn.id.desc())
            .offset(keep_last)
            .all()
        )
    ]
    if not stale_ids:
        return 0
    return (
        db.query(ChatTurn)
        .filter(ChatTurn.id.in_(stale_ids))
        .delete(synchronize_session=False)
    )


def save_summary(db, session_id: int, summary: str) -> None:
    db.query(ChatSession).filter(ChatSession.id == session_id).update(
        {ChatSession.summary: summary},
        synchronize_session=False,
    )


def render_transcript(turns: Sequence[ChatTurn]) -> str:
    lines = []
    for turn in turns:
        role = turn.role.value if isinstance(turn.role, TurnRole) else str(turn.role)
        lines.append(f"{role}: {turn.content}")
    return "\n".join(lines)


def build_summary_input(prior_summary: Optional[str], turns: Sequence[ChatTurn]) -> str:
    transcript = render_transcript(turns)
    if prior_summary:
        return f"{prior_summary}\n{transcript}"
    return transcript


def _to_history(turns: Sequence[ChatTurn]) -> list[HistoryItem]:
    return [
        HistoryItem(
            role=turn.role.value if isinstance(turn.role, TurnRole) else str(turn.role),
            content=turn.content,
        )
        for turn in turns
    ]


# =============================================================================
# Window manager
# =============================================================================

class ContextWindow:
    def __init__(self, store, settings: SessionSettings, summarizer: Summarizer):
        self.store = store
        self.settings = settings
        self.summarizer = summarizer

    def turns(self, session_id: int) -> list[ChatTurn]:
        with self.store.transaction() as db:
            return list_turns(db, session_id)

    def turn_count(self, session_id: int) -> int:
        with self.store.transaction() as db:
            return count_turns(db, session_id)

    def usable_history(self, turns: Sequence[ChatTurn]) -> list[ChatTurn]:
        return list(turns[-self.settings.max_turns:])

    async def compact_if_needed(self, session: ChatSession) -> bool:
        """
        Summarize and evict the older prefix when the stored history is over the bound.

        Raises whatever the summarizer raises; in that case nothing is written.
        """
        turns = self.turns(session.id)
        if len(turns) <= self.settings.max_turns:
            return False

        keep = self.settings.keep_recent_turns
        old_part = turns[: len(turns) - keep]
        summary_input = build_summary_input(session.summary, old_part)
        new_summary = await self.summarizer.summarize(summary_input)

        with self.store.transaction() as db:
            save_summary(db, session.id, new_summary)
            deleted = delete_all_but_recent(db, session.id, keep)
            log_event(
                db,
                event_type=EVENT_SESSION_COMPACTED,
                target_type="session",
                target_ids=[session.id],
                actor_id="system",
                conversation_id=session.conversation_id,
                metadata={"turns_deleted": deleted, "turns_kept": keep},
            )
        session.summary = new_summary
        logger.info(
            "session_compacted",
            extra={
                "session_id": session.id,
                "turns_deleted": deleted,
                "turns_kept": keep,
            },
        )
        return True

    async def prepare_context(self, session: ChatSession) -> ContextSnapshot:
        """Compact if needed, then return the summary and the bounded history."""
        compacted = await self.compact_if_needed(session)
        turns = self.turns(session.id)
        return ContextSnapshot(
            summary=session.summary,
            history=_to_history(self.usable_history(turns)),
            compacted=compacted,
        )

    def record_exchange(self, session_id: int, user_text: str, reply_text: str) -> None:
        """Append the user turn and the assistant turn together."""
        with self.store.transaction() as db:
            append_turn(db, session_id, TurnRole.user, user_text)
            append_turn(db, session_id, TurnRole.assistant, reply_text)
