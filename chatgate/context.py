"""
Normalized message objects passed between the transport boundary and the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

import chatgate.config as config


def local_part(identifier: Optional[str]) -> str:
    """Identifier without its domain: ``"5215@s.whatsapp.net"`` -> ``"5215"``."""
    if not identifier:
        return ""
    return identifier.split("@", 1)[0]


def is_group_id(conversation_id: str) -> bool:
    return conversation_id.endswith(config.GROUP_ID_SUFFIX)


@dataclass(frozen=True)
class InboundMessage:
    conversation_id: str
    sender_id: str
    is_group: bool
    text: str
    bot_id_hint: Optional[str] = None
    mentioned_ids: tuple[str, ...] = field(default_factory=tuple)

    @staticmethod
    def from_values(
        conversation_id: str,
        sender_id: Optional[str],
        text: str,
        bot_id_hint: Optional[str] = None,
        mentioned_ids: Optional[Sequence[str]] = None,
    ) -> "InboundMessage":
        group = is_group_id(conversation_id)
        return InboundMessage(
            conversation_id=conversation_id,
            sender_id=sender_id or conversation_id,
            is_group=group,
            text=text,
            bot_id_hint=bot_id_hint,
            mentioned_ids=tuple(mentioned_ids or ()),
        )

    def mentions(self, bot_id: Optional[str]) -> bool:
        target = local_part(bot_id)
        if not target:
            return False
        return any(local_part(mention) == target for mention in self.mentioned_ids)


@dataclass(frozen=True)
class OutboundMessage:
    conversation_id: str
    text: str
