import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from chatgate.errors import SessionNotFound, ValidationIssue
from chatgate.models import ChatSession, ChatTurn
from chatgate.services.session_service import SessionManager

CHAT = "5215550000009@s.whatsapp.net"


def _active_count(store, conversation_id):
    with store.transaction() as db:
        return (
            db.query(ChatSession)
            .filter(ChatSession.conversation_id == conversation_id)
            .filter(ChatSession.is_active.is_(True))
            .count()
        )


def _turn_count(store, session_id):
    with store.transaction() as db:
        return db.query(ChatTurn).filter(ChatTurn.session_id == session_id).count()


def test_find_active_does_not_create(store, settings):
    sessions = SessionManager(store, settings)
    assert sessions.find_active(CHAT) is None
    assert sessions.list_sessions(CHAT) == []


def test_get_or_create_active_uses_default_name(store, settings):
    sessions = SessionManager(store, settings)
    created = sessions.get_or_create_active(CHAT)
    assert created.name == "principal"
    assert created.is_active is True

    again = sessions.get_or_create_active(CHAT)
    assert again.id == created.id


def test_single_active_session_per_conversation(store, settings):
    sessions = SessionManager(store, settings)
    sessions.create_default(CHAT)
    sessions.create_named(CHAT, "trabajo")
    sessions.create_named(CHAT, "viaje")
    sessions.activate_named(CHAT, "trabajo")
    sessions.create_named(CHAT, "principal")

    assert _active_count(store, CHAT) == 1
    assert sessions.find_active(CHAT).name == "principal"


def test_sessions_are_scoped_per_conversation(store, settings):
    sessions = SessionManager(store, settings)
    sessions.create_named(CHAT, "trabajo")
    sessions.create_named("120363000000000000@g.us", "trabajo")

    assert _active_count(store, CHAT) == 1
    assert _active_count(store, "120363000000000000@g.us") == 1


def test_reactivation_keeps_identity_and_content(store, settings, seed_turns):
    sessions = SessionManager(store, settings)
    first = sessions.create_named(CHAT, "a")
    seed_turns(first.id, 4)
    sessions.create_named(CHAT, "b")

    again = sessions.create_named(CHAT, "a")

    assert again.id == first.id
    assert again.is_active is True
    assert _turn_count(store, first.id) == 4
    with store.transaction() as db:
        rows = db.query(ChatSession).filter_by(conversation_id=CHAT, name="a").count()
    assert rows == 1


def test_activate_unknown_session_leaves_active_unchanged(store, settings):
    sessions = SessionManager(store, settings)
    current = sessions.create_named(CHAT, "trabajo")

    with pytest.raises(SessionNotFound):
        sessions.activate_named(CHAT, "ghost")

    active = sessions.find_active(CHAT)
    assert active.id == current.id
    assert _active_count(store, CHAT) == 1


def test_close_keeps_content(store, settings, seed_turns):
    sessions = SessionManager(store, settings)
    session = sessions.create_default(CHAT)
    seed_turns(session.id, 3)

    assert sessions.close(session.id) is True
    assert sessions.find_active(CHAT) is None
    assert _turn_count(store, session.id) == 3

    reopened = sessions.activate_named(CHAT, "principal")
    assert reopened.id == session.id
    assert reopened.is_active is True


def test_close_unknown_session_returns_false(store, settings):
    sessions = SessionManager(store, settings)
    assert sessions.close(999) is False


def test_reset_content_purges_turns_and_summary(store, settings, seed_turns):
    sessions = SessionManager(store, settings)
    session = sessions.create_named(CHAT, "trabajo")
    seed_turns(session.id, 6)
    with store.transaction() as db:
        db.get(ChatSession, session.id).summary = "resumen viejo"

    removed = sessions.reset_content(session.id)

    assert removed == 6
    refreshed = sessions.get(session.id)
    assert refreshed.summary is None
    assert refreshed.is_active is True
    assert refreshed.name == "trabajo"
    assert _turn_count(store, session.id) == 0


def test_list_sessions_orders_by_last_active(store, settings):
    sessions = SessionManager(store, settings)
    sessions.create_named(CHAT, "uno")
    sessions.create_named(CHAT, "dos")
    with store.transaction() as db:
        uno = db.query(ChatSession).filter_by(conversation_id=CHAT, name="uno").one()
        uno.last_active = datetime.utcnow() + timedelta(minutes=5)

    names = [session.name for session in sessions.list_sessions(CHAT)]
    assert names == ["uno", "dos"]


def test_is_inactive_threshold(store, settings):
    sessions = SessionManager(store, settings)
    session = sessions.create_default(CHAT)
    now = session.last_active

    assert sessions.is_inactive(session, now + timedelta(seconds=3600)) is False
    assert sessions.is_inactive(session, now + timedelta(seconds=3601)) is True


def test_session_names_are_trimmed_and_validated(store, settings):
    sessions = SessionManager(store, settings)
    created = sessions.create_named(CHAT, "  trabajo  ")
    assert created.name == "trabajo"

    with pytest.raises(ValidationIssue):
        sessions.create_named(CHAT, "   ")
    with pytest.raises(ValidationIssue):
        sessions.create_named(CHAT, "x" * 101)
    assert sessions.find_active(CHAT).id == created.id
