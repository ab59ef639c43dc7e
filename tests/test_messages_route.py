import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from fastapi.testclient import TestClient

from chatgate.db import init_store
from chatgate.services import settings_service
from gateway.main import create_app

OWNER = "5215550000001@s.whatsapp.net"


def _payload(sender, text, from_me=False):
    return {"key": {"remoteJid": sender, "fromMe": from_me}, "message": {"conversation": text}}


def test_message_webhook_replies(store, settings, completion):
    app = create_app(store=store, completion=completion, settings=settings)
    with TestClient(app) as client:
        response = client.post("/messages", json=_payload(OWNER, "hola"))
        assert response.status_code == 200
        assert response.json() == {
            "status": "replied",
            "reply": {"conversation_id": OWNER, "text": "respuesta 1"},
        }

        ignored = client.post("/messages", json=_payload(OWNER, "hola", from_me=True))
        assert ignored.json() == {"status": "ignored"}


def test_startup_seeds_defaults(store, settings, completion):
    app = create_app(store=store, completion=completion, settings=settings)
    with TestClient(app):
        pass
    with store.transaction() as db:
        assert settings_service.get_config(db, settings_service.PERSONA_KEY) == "Eres un bot de prueba."
        assert settings_service.get_config(db, settings_service.TEMPERATURE_KEY) == "0.7"


def test_root_metadata(store, settings, completion):
    app = create_app(store=store, completion=completion, settings=settings)
    with TestClient(app) as client:
        body = client.get("/").json()
    assert body["service"] == "ChatGate"
    assert body["endpoints"]["messages"] == "/messages"


def test_health_reports_unmigrated_schema(store, settings, completion):
    app = create_app(store=store, completion=completion, settings=settings)
    with TestClient(app) as client:
        response = client.get("/health")
    assert response.status_code == 503


def test_health_with_migrated_store(tmp_path, settings, completion):
    migrated = init_store(f"sqlite:///{tmp_path / 'migrated.sqlite'}")
    try:
        app = create_app(store=migrated, completion=completion, settings=settings)
        with TestClient(app) as client:
            response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["schema_up_to_date"] is True
    finally:
        migrated.dispose()
