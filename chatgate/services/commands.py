"""
Prefixed command parsing and dispatch.

Session verbs go through the SessionManager; the administrative verbs are thin
wrappers over the access and settings services. Handlers return the reply text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import chatgate.config as config
from chatgate.audit import list_audit_events
from chatgate.config import SessionSettings
from chatgate.errors import SessionNotFound, ValidationIssue
from chatgate.services import access_service, settings_service
from chatgate.services.session_service import SessionManager

logger = config.logger

VERB_ALIASES = {
    "h": "ayuda",
    "s": "estado",
    "link": "link-numero",
    "auth": "autorizar",
    "dauth": "desautorizar",
    "auth-grupo": "autorizar-grupo",
    "dauth-grupo": "desautorizar-grupo",
    "nueva": "nueva-sesion",
    "usar": "usar-sesion",
    "cerrar": "cerrar-sesion",
    "sesiones": "listar-sesiones",
}

# Verbs available to senders that are not authorized yet
OPEN_VERBS = frozenset({"ayuda", "yo", "setup"})

# Links pass on owner status, so only owners may declare them
OWNER_VERBS = frozenset({
    "link-numero",
    "auditoria",
    "persona",
    "temp",
    "autorizar",
    "desautorizar",
    "autorizar-grupo",
    "desautorizar-grupo",
})

NOT_AUTHORIZED_NOTICE = "No estás autorizado. Pide acceso a un administrador."
OWNER_ONLY_NOTICE = "Este comando es solo para los dueños."
UNKNOWN_COMMAND_NOTICE = "Comando no reconocido. Usa {prefix}ayuda."
SESSION_NOT_FOUND_NOTICE = "No existe esa sesión."
NO_ACTIVE_SESSION_NOTICE = "No hay sesión activa."

HELP_LINES = (
    "setup (ejecuta en cada grupo/DM nuevo)",
    "yo",
    "ayuda | {prefix}h",
    "estado | {prefix}s",
    "link-numero <jid> (vincula tus números, dueños)",
    "auditoria [n] (dueños)",
    "persona <texto> (dueños)",
    "temp <0-1> (dueños)",
    "autorizar <jid o numero> (dueños)",
    "desautorizar <jid o numero> (dueños)",
    "autorizar-grupo [aqui|jid] (dueños)",
    "desautorizar-grupo [aqui|jid] (dueños)",
    "listar",
    "nueva-sesion <nombre>",
    "usar-sesion <nombre>",
    "cerrar-sesion",
    "listar-sesiones",
    "reset",
)


@dataclass(frozen=True)
class CommandContext:
    conversation_id: str
    sender_id: str
    is_group: bool
    is_owner: bool
    is_authorized: bool


def parse_command(text: str, prefix: str) -> Optional[tuple[str, list[str]]]:
    """Split ``"<prefix>verb arg arg"`` into a lowercase canonical verb and its args."""
    if not text.startswith(prefix):
        return None
    parts = text[len(prefix):].split()
    if not parts:
        return None
    verb = parts[0].lower()
    return VERB_ALIASES.get(verb, verb), parts[1:]


def display_id(identifier: str) -> str:
    return identifier.replace(config.USER_ID_SUFFIX, "").replace(config.GROUP_ID_SUFFIX, "")


def _user_target(raw: str) -> str:
    return raw if "@" in raw else config.to_user_id(raw)


def _group_target(raw: str, ctx: CommandContext) -> str:
    if raw == "aqui":
        return ctx.conversation_id
    if "@" in raw:
        return raw
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"{digits}{config.GROUP_ID_SUFFIX}"


class CommandDispatcher:
    def __init__(self, store, settings: SessionSettings, sessions: SessionManager):
        self.store = store
        self.settings = settings
        self.sessions = sessions
        self._handlers: dict[str, Callable[[CommandContext, list[str]], str]] = {
            "setup": self._setup,
            "yo": self._whoami,
            "link-numero": self._link,
            "ayuda": self._help,
            "estado": self._status,
            "persona": self._persona,
            "temp": self._temperature,
            "autorizar": self._authorize_user,
            "desautorizar": self._deauthorize_user,
            "autorizar-grupo": self._authorize_group,
            "desautorizar-grupo": self._deauthorize_group,
            "listar": self._list_authorized,
            "auditoria": self._audit_trail,
            "nueva-sesion": self._new_session,
            "usar-sesion": self._use_session,
            "cerrar-sesion": self._close_session,
            "listar-sesiones": self._list_sessions,
            "reset": self._reset_session,
        }

    @property
    def verbs(self) -> list[str]:
        return sorted(self._handlers)

    def run(self, ctx: CommandContext, verb: str, args: list[str]) -> str:
        if not ctx.is_owner and not ctx.is_authorized and verb not in OPEN_VERBS:
            logger.info(
                "command_denied",
                extra={"conversation_id": ctx.conversation_id, "verb": verb},
            )
            return NOT_AUTHORIZED_NOTICE
        handler = self._handlers.get(verb)
        if handler is None:
            return UNKNOWN_COMMAND_NOTICE.format(prefix=self.settings.command_prefix)
        if verb in OWNER_VERBS and not ctx.is_owner:
            return OWNER_ONLY_NOTICE
        try:
            return handler(ctx, args)
        except SessionNotFound:
            return SESSION_NOT_FOUND_NOTICE
        except ValidationIssue as exc:
            logger.info(
                "command_rejected",
                extra={"verb": verb, "field": exc.field, "error_type": exc.error_type},
            )
            return f"Valor inválido ({exc.field}): {exc}"

    def _usage(self, text: str) -> str:
        return f"Usa: {self.settings.command_prefix}{text}"

    # -------------------------------------------------------------------------
    # Open verbs
    # -------------------------------------------------------------------------

    def _setup(self, ctx: CommandContext, args: list[str]) -> str:
        raw = " ".join(args).strip()
        if not raw:
            return self._usage("setup @bot (etiqueta al bot)")
        bot_number = raw[1:] if raw.startswith("@") else raw
        bot_number = bot_number.split("@", 1)[0]
        if not bot_number.isdigit():
            return f"❌ Número inválido. {self._usage('setup @bot')} o {self.settings.command_prefix}setup <numero>"
        with self.store.transaction() as db:
            settings_service.set_bot_binding(db, ctx.conversation_id, bot_number, actor_id=ctx.sender_id)
        return f"✅ JID del bot guardado: {bot_number}\nAhora detectaré menciones correctamente."

    def _whoami(self, ctx: CommandContext, args: list[str]) -> str:
        return f"Tu JID: {ctx.sender_id}"

    def _link(self, ctx: CommandContext, args: list[str]) -> str:
        raw = " ".join(args).strip()
        if not raw:
            return self._usage("link-numero <jid o numero a vincular>")
        linked_id = _user_target(raw)
        with self.store.transaction() as db:
            access_service.link_identities(db, ctx.sender_id, linked_id)
        return (
            f"Números vinculados: {display_id(ctx.sender_id)} ↔️ {display_id(linked_id)}\n"
            "Ahora ambos números tendrán los mismos permisos."
        )

    def _help(self, ctx: CommandContext, args: list[str]) -> str:
        prefix = self.settings.command_prefix
        lines = [f"Comandos (prefijo {prefix}):"]
        lines.extend(f"- {prefix}{line.format(prefix=prefix)}" for line in HELP_LINES)
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Settings and access
    # -------------------------------------------------------------------------

    def _status(self, ctx: CommandContext, args: list[str]) -> str:
        with self.store.transaction() as db:
            persona = settings_service.get_config(db, settings_service.PERSONA_KEY) or "sin definir"
            temperature = settings_service.effective_temperature(db, self.settings)
        active = self.sessions.find_active(ctx.conversation_id)
        return (
            f"Estado:\nPersona: {persona[:80]}...\nTemp: {temperature}\n"
            f"Sesión activa: {active.name if active else 'ninguna'}"
        )

    def _persona(self, ctx: CommandContext, args: list[str]) -> str:
        text = " ".join(args).strip()
        if not text:
            return self._usage("persona <nuevo texto>")
        with self.store.transaction() as db:
            settings_service.set_persona(db, text, actor_id=ctx.sender_id)
        return "Persona actualizada."

    def _temperature(self, ctx: CommandContext, args: list[str]) -> str:
        if not args:
            return self._usage("temp <numero entre 0 y 1>")
        try:
            with self.store.transaction() as db:
                value = settings_service.set_temperature(db, args[0], actor_id=ctx.sender_id)
        except ValidationIssue:
            return self._usage("temp <numero entre 0 y 1>")
        return f"Temperatura guardada: {value}"

    def _authorize_user(self, ctx: CommandContext, args: list[str]) -> str:
        raw = " ".join(args).strip()
        if not raw:
            return self._usage(f"autorizar <jid o numero>\nObtén tu JID con: {self.settings.command_prefix}yo")
        user_id = _user_target(raw)
        with self.store.transaction() as db:
            access_service.authorize_user(db, user_id, actor_id=ctx.sender_id)
        return f"Autorizado {display_id(user_id)}"

    def _deauthorize_user(self, ctx: CommandContext, args: list[str]) -> str:
        raw = " ".join(args).strip()
        if not raw:
            return self._usage("desautorizar <jid o numero>")
        user_id = _user_target(raw)
        with self.store.transaction() as db:
            access_service.deauthorize_user(db, user_id, actor_id=ctx.sender_id)
        return f"Desautorizado {display_id(user_id)}"

    def _group_argument(self, ctx: CommandContext, args: list[str]) -> Optional[str]:
        raw = " ".join(args).strip()
        if not raw and ctx.is_group:
            raw = "aqui"
        return _group_target(raw, ctx) if raw else None

    def _authorize_group(self, ctx: CommandContext, args: list[str]) -> str:
        group_id = self._group_argument(ctx, args)
        if group_id is None:
            return self._usage("autorizar-grupo [aqui|jid]")
        with self.store.transaction() as db:
            access_service.authorize_group(db, group_id, actor_id=ctx.sender_id)
        return f"Grupo autorizado: {display_id(group_id)}"

    def _deauthorize_group(self, ctx: CommandContext, args: list[str]) -> str:
        group_id = self._group_argument(ctx, args)
        if group_id is None:
            return self._usage("desautorizar-grupo [aqui|jid]")
        with self.store.transaction() as db:
            access_service.deauthorize_group(db, group_id, actor_id=ctx.sender_id)
        return f"Grupo desautorizado: {display_id(group_id)}"

    def _audit_trail(self, ctx: CommandContext, args: list[str]) -> str:
        limit = int(args[0]) if args and args[0].isdigit() and int(args[0]) > 0 else 10
        with self.store.transaction() as db:
            events = list_audit_events(db, conversation_id=ctx.conversation_id, limit=limit)
        if not events:
            return "Sin eventos registrados."
        return "\n".join(
            f"{event.created_at:%Y-%m-%d %H:%M:%S} {event.event_type} "
            f"{event.target_type}:{','.join(str(t) for t in event.target_ids)}"
            for event in events
        )

    def _list_authorized(self, ctx: CommandContext, args: list[str]) -> str:
        with self.store.transaction() as db:
            users = access_service.list_users(db)
            groups = access_service.list_groups(db)
        users_text = ", ".join(display_id(u) for u in users) or "ninguno"
        groups_text = ", ".join(display_id(g) for g in groups) or "ninguno"
        return f"Autorizados:\nUsuarios: {users_text}\nGrupos: {groups_text}"

    # -------------------------------------------------------------------------
    # Session verbs
    # -------------------------------------------------------------------------

    def _new_session(self, ctx: CommandContext, args: list[str]) -> str:
        name = " ".join(args).strip() or config.DEFAULT_SESSION_NAME
        session = self.sessions.create_named(ctx.conversation_id, name, actor_id=ctx.sender_id)
        return f"Sesión activa: {session.name}"

    def _use_session(self, ctx: CommandContext, args: list[str]) -> str:
        name = " ".join(args).strip()
        if not name:
            return self._usage("usar-sesion <nombre>")
        session = self.sessions.activate_named(ctx.conversation_id, name, actor_id=ctx.sender_id)
        return f"Sesión activa: {session.name}"

    def _close_session(self, ctx: CommandContext, args: list[str]) -> str:
        active = self.sessions.find_active(ctx.conversation_id)
        if active is None:
            return NO_ACTIVE_SESSION_NOTICE
        self.sessions.close(active.id, actor_id=ctx.sender_id)
        return f"Sesión cerrada. Usa {self.settings.command_prefix}usar-sesion para reabrir."

    def _list_sessions(self, ctx: CommandContext, args: list[str]) -> str:
        sessions = self.sessions.list_sessions(ctx.conversation_id)
        if not sessions:
            return "No hay sesiones guardadas."
        return "\n".join(
            f"{'✅' if s.is_active else '⏸️'} {s.name} (visto {s.last_active:%Y-%m-%d %H:%M:%S})"
            for s in sessions
        )

    def _reset_session(self, ctx: CommandContext, args: list[str]) -> str:
        active = self.sessions.find_active(ctx.conversation_id)
        if active is None:
            return NO_ACTIVE_SESSION_NOTICE
        self.sessions.reset_content(active.id, actor_id=ctx.sender_id)
        return "Contexto de la sesión activo reiniciado."
