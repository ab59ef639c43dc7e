import os
from datetime import datetime, timedelta

import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from chatgate.config import SessionSettings
from chatgate.db import Store
from chatgate.errors import CompletionServiceError
from chatgate.models import Base, ChatTurn, TurnRole

OWNER_ID = "5215550000001@s.whatsapp.net"


class FakeCompletion:
    """In-memory completion service that records every call."""

    def __init__(self):
        self.reply_calls = []
        self.summary_calls = []
        self.fail_reply = False
        self.fail_summary = False
        self.summary_text = "resumen corto"

    async def generate_reply(self, persona, summary, history, user_message, temperature):
        self.reply_calls.append(
            {
                "persona": persona,
                "summary": summary,
                "history": list(history),
                "user_message": user_message,
                "temperature": temperature,
            }
        )
        if self.fail_reply:
            raise CompletionServiceError("reply failed")
        return f"respuesta {len(self.reply_calls)}"

    async def summarize(self, text):
        self.summary_calls.append(text)
        if self.fail_summary:
            raise CompletionServiceError("summary failed")
        return self.summary_text


@pytest.fixture
def store(tmp_path):
    store = Store.from_url(f"sqlite:///{tmp_path / 'chatgate.sqlite'}")
    Base.metadata.create_all(store.engine)
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture
def settings():
    return SessionSettings(
        owner_ids=(OWNER_ID,),
        bot_name="Doctor Scum",
        default_persona="Eres un bot de prueba.",
        default_temperature=0.7,
        max_turns=18,
        keep_recent_turns=12,
        inactivity_seconds=3600,
        command_prefix="ds.",
    )


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def seed_turns(store):
    """Insert ``count`` alternating turns with strictly increasing timestamps."""

    def _seed(session_id, count, start=None):
        start = start or datetime.utcnow() - timedelta(minutes=30)
        with store.transaction() as db:
            for index in range(count):
                role = TurnRole.user if index % 2 == 0 else TurnRole.assistant
                db.add(
                    ChatTurn(
                        session_id=session_id,
                        role=role,
                        content=f"turno {index}",
                        created_at=start + timedelta(seconds=index),
                    )
                )

    return _seed
