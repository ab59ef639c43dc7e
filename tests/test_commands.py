import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from chatgate.services import access_service, settings_service
from chatgate.services.commands import (
    OWNER_ONLY_NOTICE,
    CommandContext,
    CommandDispatcher,
    parse_command,
)
from chatgate.services.session_service import SessionManager

OWNER = "5215550000001@s.whatsapp.net"
MEMBER = "5215550000002@s.whatsapp.net"
GROUP = "120363000000000000@g.us"


def _dispatcher(store, settings):
    return CommandDispatcher(store, settings, SessionManager(store, settings))


def _ctx(sender=OWNER, conversation=None, owner=True, authorized=True):
    conversation = conversation or sender
    return CommandContext(
        conversation_id=conversation,
        sender_id=sender,
        is_group=conversation.endswith("@g.us"),
        is_owner=owner,
        is_authorized=authorized,
    )


def _run(dispatcher, ctx, text):
    verb, args = parse_command(text, "ds.")
    return dispatcher.run(ctx, verb, args)


def test_parse_command_resolves_aliases():
    assert parse_command("ds.H", "ds.") == ("ayuda", [])
    assert parse_command("ds.nueva  mi sesion", "ds.") == ("nueva-sesion", ["mi", "sesion"])
    assert parse_command("ds.", "ds.") is None
    assert parse_command("hola", "ds.") is None


def test_help_lists_prefixed_verbs(store, settings):
    text = _run(_dispatcher(store, settings), _ctx(), "ds.ayuda")
    assert text.startswith("Comandos (prefijo ds.):")
    assert "- ds.nueva-sesion <nombre>" in text
    assert "- ds.ayuda | ds.h" in text


def test_unknown_verb(store, settings):
    text = _run(_dispatcher(store, settings), _ctx(), "ds.bailar")
    assert text == "Comando no reconocido. Usa ds.ayuda."


def test_owner_only_verbs_reject_members(store, settings):
    dispatcher = _dispatcher(store, settings)
    ctx = _ctx(sender=MEMBER, owner=False)
    for command in (
        "ds.persona hola",
        "ds.temp 0.5",
        "ds.auth 123",
        "ds.dauth 123",
        "ds.auth-grupo",
        "ds.dauth-grupo",
        "ds.link 123",
        "ds.auditoria",
    ):
        assert _run(dispatcher, ctx, command) == OWNER_ONLY_NOTICE


def test_persona_and_temperature(store, settings):
    dispatcher = _dispatcher(store, settings)
    assert _run(dispatcher, _ctx(), "ds.persona Eres un pirata") == "Persona actualizada."
    assert _run(dispatcher, _ctx(), "ds.temp 0.4") == "Temperatura guardada: 0.4"
    assert _run(dispatcher, _ctx(), "ds.temp 3") == "Usa: ds.temp <numero entre 0 y 1>"
    assert _run(dispatcher, _ctx(), "ds.temp abc") == "Usa: ds.temp <numero entre 0 y 1>"

    with store.transaction() as db:
        assert settings_service.effective_persona(db, settings) == "Eres un pirata"
        assert settings_service.effective_temperature(db, settings) == 0.4


def test_authorize_user_normalizes_numbers(store, settings):
    dispatcher = _dispatcher(store, settings)
    assert _run(dispatcher, _ctx(), "ds.autorizar +52 1 555 000 0002") == "Autorizado 5215550000002"
    with store.transaction() as db:
        assert access_service.is_user_authorized(db, MEMBER)

    assert _run(dispatcher, _ctx(), "ds.desautorizar 5215550000002") == "Desautorizado 5215550000002"
    with store.transaction() as db:
        assert not access_service.is_user_authorized(db, MEMBER)


def test_authorize_group_here(store, settings):
    dispatcher = _dispatcher(store, settings)
    text = _run(dispatcher, _ctx(conversation=GROUP), "ds.autorizar-grupo")
    assert text == "Grupo autorizado: 120363000000000000"
    with store.transaction() as db:
        assert access_service.is_group_authorized(db, GROUP)

    assert _run(dispatcher, _ctx(), "ds.autorizar-grupo") == "Usa: ds.autorizar-grupo [aqui|jid]"
    _run(dispatcher, _ctx(), "ds.autorizar-grupo 555-123")
    with store.transaction() as db:
        assert access_service.is_group_authorized(db, "555123@g.us")


def test_list_authorized(store, settings):
    dispatcher = _dispatcher(store, settings)
    assert _run(dispatcher, _ctx(), "ds.listar") == "Autorizados:\nUsuarios: ninguno\nGrupos: ninguno"
    with store.transaction() as db:
        access_service.authorize_user(db, MEMBER)
        access_service.authorize_group(db, GROUP)
    text = _run(dispatcher, _ctx(), "ds.listar")
    assert "Usuarios: 5215550000002" in text
    assert "Grupos: 120363000000000000" in text


def test_setup_binds_bot_number(store, settings):
    dispatcher = _dispatcher(store, settings)
    ctx = _ctx(conversation=GROUP, owner=False, authorized=False)

    assert _run(dispatcher, ctx, "ds.setup").startswith("Usa: ds.setup")
    assert _run(dispatcher, ctx, "ds.setup @bot").startswith("❌")
    assert _run(dispatcher, ctx, "ds.setup @5215559999999@lid").startswith("✅")
    with store.transaction() as db:
        assert settings_service.get_bot_binding(db, GROUP) == "5215559999999"


def test_link_number(store, settings):
    dispatcher = _dispatcher(store, settings)
    text = _run(dispatcher, _ctx(), "ds.link 5215550000002")
    assert "5215550000001 ↔️ 5215550000002" in text
    with store.transaction() as db:
        assert access_service.linked_identities(db, OWNER) == {OWNER, MEMBER}

    rejected = _run(dispatcher, _ctx(), f"ds.link {OWNER}")
    assert rejected.startswith("Valor inválido")


def test_session_verbs(store, settings):
    dispatcher = _dispatcher(store, settings)
    ctx = _ctx()

    assert _run(dispatcher, ctx, "ds.sesiones") == "No hay sesiones guardadas."
    assert _run(dispatcher, ctx, "ds.reset") == "No hay sesión activa."
    assert _run(dispatcher, ctx, "ds.nueva") == "Sesión activa: principal"
    assert _run(dispatcher, ctx, "ds.nueva trabajo largo") == "Sesión activa: trabajo largo"
    assert _run(dispatcher, ctx, "ds.usar") == "Usa: ds.usar-sesion <nombre>"
    assert _run(dispatcher, ctx, "ds.usar principal") == "Sesión activa: principal"

    listing = _run(dispatcher, ctx, "ds.listar-sesiones").splitlines()
    assert listing[0].startswith("✅ principal")
    assert listing[1].startswith("⏸️ trabajo largo")

    assert _run(dispatcher, ctx, "ds.reset") == "Contexto de la sesión activo reiniciado."
    assert _run(dispatcher, ctx, "ds.cerrar").startswith("Sesión cerrada.")
    assert _run(dispatcher, ctx, "ds.cerrar") == "No hay sesión activa."


def test_status_reports_active_session(store, settings):
    dispatcher = _dispatcher(store, settings)
    assert "Sesión activa: ninguna" in _run(dispatcher, _ctx(), "ds.estado")
    _run(dispatcher, _ctx(), "ds.nueva trabajo")
    text = _run(dispatcher, _ctx(), "ds.s")
    assert "Sesión activa: trabajo" in text
    assert "Temp: 0.7" in text


def test_audit_trail_lists_recent_conversation_events(store, settings):
    dispatcher = _dispatcher(store, settings)
    assert _run(dispatcher, _ctx(), "ds.auditoria") == "Sin eventos registrados."

    _run(dispatcher, _ctx(), "ds.nueva trabajo")
    _run(dispatcher, _ctx(), "ds.nueva viaje")
    _run(dispatcher, _ctx(), "ds.reset")

    lines = _run(dispatcher, _ctx(), "ds.auditoria").splitlines()
    assert len(lines) == 3
    assert sum("session.created" in line for line in lines) == 2
    assert any("session.reset session:" in line for line in lines)
    assert _run(dispatcher, _ctx(), "ds.auditoria 1").count("\n") == 0
