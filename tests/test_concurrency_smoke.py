import asyncio
import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from chatgate.context import InboundMessage
from chatgate.models import ChatSession
from chatgate.services.engine import ConversationEngine

OWNER = "5215550000001@s.whatsapp.net"
GROUP_A = "120363000000000001@g.us"
GROUP_B = "120363000000000002@g.us"


class SlowCompletion:
    """Tracks how many replies are in flight per conversation and overall."""

    def __init__(self):
        self.in_flight = {}
        self.max_per_conversation = 0
        self.max_overall = 0
        self.replies = 0

    async def generate_reply(self, persona, summary, history, user_message, temperature):
        key = user_message.split(":", 1)[0]
        self.in_flight[key] = self.in_flight.get(key, 0) + 1
        self.max_per_conversation = max(self.max_per_conversation, self.in_flight[key])
        self.max_overall = max(self.max_overall, sum(self.in_flight.values()))
        await asyncio.sleep(0.01)
        self.in_flight[key] -= 1
        self.replies += 1
        return f"ok {self.replies}"

    async def summarize(self, text):
        return "resumen"


def _message(conversation_id, text):
    return InboundMessage.from_values(
        conversation_id=conversation_id,
        sender_id=OWNER,
        text=text,
        bot_id_hint=OWNER,
        mentioned_ids=[OWNER],
    )


def test_same_conversation_is_serialized_and_others_overlap(store, settings):
    completion = SlowCompletion()
    engine = ConversationEngine(store, settings, completion)

    async def _run():
        messages = [_message(GROUP_A, f"a: {index}") for index in range(4)]
        messages += [_message(GROUP_B, f"b: {index}") for index in range(4)]
        return await asyncio.gather(*(engine.handle_message(message) for message in messages))

    results = asyncio.run(_run())

    assert all(result is not None for result in results)
    assert completion.max_per_conversation == 1
    assert completion.max_overall == 2
    for conversation_id in (GROUP_A, GROUP_B):
        with store.transaction() as db:
            rows = db.query(ChatSession).filter_by(conversation_id=conversation_id).all()
        assert len(rows) == 1
        assert rows[0].is_active is True
