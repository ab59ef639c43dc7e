"""
Conversation engine: the message-handling boundary.

Messages for the same conversation are processed one at a time; different
conversations proceed concurrently. Any failure inside the core is logged and
turned into a single generic notice for the user.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import datetime
from typing import Optional, Protocol, Sequence

import chatgate.config as config
from chatgate.config import SessionSettings
from chatgate.context import InboundMessage, OutboundMessage
from chatgate.services import access_service, settings_service
from chatgate.services.commands import CommandContext, CommandDispatcher, parse_command
from chatgate.services.context_window import ContextWindow
from chatgate.services.session_service import SessionManager

logger = config.logger

GENERIC_ERROR_NOTICE = "Ocurrió un error. Intenta de nuevo."
DM_NOT_AUTHORIZED_NOTICE = "No estás autorizado. Usa {prefix}ayuda si crees que es un error."
INACTIVE_SESSION_NOTICE = (
    "La sesión '{name}' está inactiva ({idle} sin uso). Usa {prefix}usar-sesion {name} "
    "para continuar o {prefix}nueva-sesion <nombre>."
)
MESSAGE_TOO_LONG_NOTICE = "El mensaje es demasiado largo."


class CompletionService(Protocol):
    async def generate_reply(
        self,
        persona: str,
        summary: Optional[str],
        history: Sequence,
        user_message: str,
        temperature: float,
    ) -> str: ...

    async def summarize(self, text: str) -> str: ...


def _format_idle(seconds: int) -> str:
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}min"
    return f"{seconds}s"


class ConversationEngine:
    def __init__(self, store, settings: SessionSettings, completion: CompletionService):
        self.store = store
        self.settings = settings
        self.completion = completion
        self.sessions = SessionManager(store, settings)
        self.window = ContextWindow(store, settings, completion)
        self.commands = CommandDispatcher(store, settings, self.sessions)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    async def handle_message(self, message: InboundMessage) -> Optional[OutboundMessage]:
        """Process one inbound message; returns the reply to deliver, if any."""
        lock = self._lock_for(message.conversation_id)
        async with lock:
            try:
                text = await self._process(message)
            except Exception:
                logger.exception(
                    "message_handling_failed",
                    extra={"conversation_id": message.conversation_id},
                )
                text = GENERIC_ERROR_NOTICE
        if not text:
            return None
        return OutboundMessage(conversation_id=message.conversation_id, text=text)

    def _resolve_access(self, message: InboundMessage) -> tuple[bool, bool]:
        with self.store.transaction() as db:
            owner = access_service.is_owner(db, message.sender_id, self.settings.owner_ids)
            authorized = owner or access_service.is_authorized(
                db,
                message.sender_id,
                message.conversation_id,
                message.is_group,
                self.settings.owner_ids,
            )
        return owner, authorized

    async def _process(self, message: InboundMessage) -> Optional[str]:
        text = message.text.strip()
        if not text:
            return None

        if text.startswith(self.settings.command_prefix):
            parsed = parse_command(text, self.settings.command_prefix)
            if parsed is None:
                return None
            verb, args = parsed
            owner, authorized = self._resolve_access(message)
            ctx = CommandContext(
                conversation_id=message.conversation_id,
                sender_id=message.sender_id,
                is_group=message.is_group,
                is_owner=owner,
                is_authorized=authorized,
            )
            return self.commands.run(ctx, verb, args)

        _, authorized = self._resolve_access(message)
        if not authorized:
            logger.info(
                "access_denied",
                extra={"conversation_id": message.conversation_id, "is_group": message.is_group},
            )
            if message.is_group:
                return None
            return DM_NOT_AUTHORIZED_NOTICE.format(prefix=self.settings.command_prefix)

        if message.is_group and not self._is_bot_mentioned(message):
            return None

        if len(text) > config.MAX_MESSAGE_LENGTH:
            return MESSAGE_TOO_LONG_NOTICE

        return await self._converse(message.conversation_id, text)

    def _is_bot_mentioned(self, message: InboundMessage) -> bool:
        with self.store.transaction() as db:
            bot_id = settings_service.get_bot_binding(db, message.conversation_id)
        return message.mentions(bot_id or message.bot_id_hint)

    async def _converse(self, conversation_id: str, text: str) -> str:
        session = self.sessions.get_or_create_active(conversation_id)
        if self.sessions.is_inactive(session, datetime.utcnow()):
            self.sessions.close(session.id, reason="inactive", actor_id="system")
            logger.info(
                "session_inactive",
                extra={"conversation_id": conversation_id, "session_id": session.id},
            )
            return INACTIVE_SESSION_NOTICE.format(
                name=session.name,
                idle=_format_idle(self.settings.inactivity_seconds),
                prefix=self.settings.command_prefix,
            )

        with self.store.transaction() as db:
            persona = settings_service.effective_persona(db, self.settings)
            temperature = settings_service.effective_temperature(db, self.settings)

        snapshot = await self.window.prepare_context(session)
        reply = await self.completion.generate_reply(
            persona,
            snapshot.summary,
            snapshot.history,
            text,
            temperature,
        )
        self.window.record_exchange(session.id, text, reply)
        logger.info(
            "reply_generated",
            extra={
                "conversation_id": conversation_id,
                "session_id": session.id,
                "history_turns": len(snapshot.history),
                "compacted": snapshot.compacted,
            },
        )
        return reply
