"""
Normalization of the raw chat transport payload into InboundMessage.
"""

from __future__ import annotations

from typing import Any, Optional

from chatgate.context import InboundMessage, is_group_id

_CAPTIONED_KINDS = ("imageMessage", "videoMessage")


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def extract_text(message: dict) -> tuple[Optional[str], dict]:
    """Return the text of a message and the content block it came from."""
    conversation = message.get("conversation")
    if isinstance(conversation, str) and conversation:
        return conversation, {}
    extended = _as_dict(message.get("extendedTextMessage"))
    if isinstance(extended.get("text"), str) and extended["text"]:
        return extended["text"], extended
    for kind in _CAPTIONED_KINDS:
        block = _as_dict(message.get(kind))
        if isinstance(block.get("caption"), str) and block["caption"]:
            return block["caption"], block
    return None, {}


def extract_mentions(block: dict) -> tuple[str, ...]:
    mentioned = _as_dict(block.get("contextInfo")).get("mentionedJid") or []
    if not isinstance(mentioned, list):
        return ()
    return tuple(item for item in mentioned if isinstance(item, str))


def normalize_payload(payload: Any) -> Optional[InboundMessage]:
    """
    Build an InboundMessage from one raw transport message.

    Returns None for the bot's own messages, messages without text, and payloads
    without a conversation id.
    """
    payload = _as_dict(payload)
    key = _as_dict(payload.get("key"))
    if key.get("fromMe"):
        return None

    conversation_id = key.get("remoteJid")
    if not isinstance(conversation_id, str) or not conversation_id:
        return None

    text, block = extract_text(_as_dict(payload.get("message")))
    if not text:
        return None

    sender_id = key.get("participant") if is_group_id(conversation_id) else conversation_id
    if not isinstance(sender_id, str) or not sender_id:
        return None

    bot_id_hint = payload.get("botId")
    return InboundMessage.from_values(
        conversation_id=conversation_id,
        sender_id=sender_id,
        text=text.strip(),
        bot_id_hint=bot_id_hint if isinstance(bot_id_hint, str) else None,
        mentioned_ids=extract_mentions(block),
    )
