import asyncio
import json
import os

import httpx
import pytest

os.environ.setdefault("DB_BACKEND", "sqlite")

from chatgate.errors import CompletionServiceError
from chatgate.services.completion import CompletionClient
from chatgate.services.context_window import HistoryItem


def _completion_response(content):
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _call(handler, method, *args, api_key="test-key"):
    async def _run():
        client = CompletionClient(
            api_key=api_key,
            base_url="https://llm.test/v1",
            model="test-model",
            transport=httpx.MockTransport(handler),
        )
        try:
            return await getattr(client, method)(*args)
        finally:
            await client.aclose()

    return asyncio.run(_run())


def test_generate_reply_payload():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return _completion_response("  hola humano  ")

    history = [HistoryItem(role="user", content="hola"), HistoryItem(role="assistant", content="qué")]
    reply = _call(handler, "generate_reply", "Eres un pirata.", "resumen", history, "sigue", 0.5)

    assert reply == "hola humano"
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.5
    messages = body["messages"]
    assert messages[0]["role"] == "system"
    assert messages[0]["content"].startswith("Eres un pirata.\n\nInstrucciones:")
    assert messages[1] == {"role": "system", "content": "Resumen previo del chat: resumen"}
    assert messages[2:4] == [
        {"role": "user", "content": "hola"},
        {"role": "assistant", "content": "qué"},
    ]
    assert messages[-1] == {"role": "user", "content": "sigue"}


def test_generate_reply_without_summary_skips_summary_message():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return _completion_response("ok")

    _call(handler, "generate_reply", "persona", None, [], "hola", 0.7)
    assert [message["role"] for message in seen["body"]["messages"]] == ["system", "user"]


def test_empty_reply_falls_back():
    reply = _call(lambda request: _completion_response(None), "generate_reply", "p", None, [], "hola", 0.7)
    assert reply == "..."


def test_summarize_uses_summary_settings():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return _completion_response("resumen")

    assert _call(handler, "summarize", "user: hola") == "resumen"
    body = seen["body"]
    assert body["temperature"] == 0.3
    assert body["max_tokens"] == 150
    assert body["messages"][0]["content"].startswith("Resume el chat")
    assert body["messages"][1] == {"role": "user", "content": "user: hola"}


def test_empty_summary_is_an_error():
    with pytest.raises(CompletionServiceError):
        _call(lambda request: _completion_response(""), "summarize", "user: hola")


def test_error_status_raises():
    with pytest.raises(CompletionServiceError):
        _call(lambda request: httpx.Response(500, json={"error": "boom"}), "summarize", "x")


def test_timeout_raises():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CompletionServiceError):
        _call(handler, "generate_reply", "p", None, [], "hola", 0.7)


def test_malformed_response_raises():
    with pytest.raises(CompletionServiceError):
        _call(lambda request: httpx.Response(200, json={"unexpected": True}), "summarize", "x")


def test_missing_api_key_never_calls_service():
    calls = []

    def handler(request):
        calls.append(request)
        return _completion_response("ok")

    with pytest.raises(CompletionServiceError):
        _call(handler, "summarize", "x", api_key="")
    assert calls == []
