"""
OpenAI-compatible chat completion client.

Calls are async and never retried; request errors, timeouts and error statuses
all surface as CompletionServiceError.
"""

from __future__ import annotations

from typing import Optional, Sequence

import httpx

import chatgate.config as config
from chatgate.errors import CompletionServiceError

logger = config.logger

REPLY_INSTRUCTIONS = (
    "Instrucciones: responde siempre en español. "
    "Si te piden comandos, recuérdales usar el prefijo {prefix}"
)
SUMMARY_PREAMBLE = "Resumen previo del chat: "
SUMMARIZE_PROMPT = "Resume el chat en español en 3-5 frases, manteniendo hechos clave y tono."
EMPTY_REPLY_FALLBACK = "..."


def build_reply_messages(
    persona: str,
    summary: Optional[str],
    history: Sequence,
    user_message: str,
    command_prefix: str = config.COMMAND_PREFIX,
) -> list[dict]:
    """Assemble the chat payload: persona, optional summary, history, then the new message."""
    system = f"{persona}\n\n{REPLY_INSTRUCTIONS.format(prefix=command_prefix)}"
    messages = [{"role": "system", "content": system}]
    if summary:
        messages.append({"role": "system", "content": f"{SUMMARY_PREAMBLE}{summary}"})
    for item in history:
        messages.append({"role": item.role, "content": item.content})
    messages.append({"role": "user", "content": user_message})
    return messages


class CompletionClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.model = model or config.OPENAI_MODEL
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_seconds or config.COMPLETION_TIMEOUT_SECONDS),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
            headers=headers,
            transport=transport,
        )
        logger.info("Completion client initialized")

    async def aclose(self) -> None:
        await self._client.aclose()
        logger.info("Completion client closed")

    async def _complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str:
        if not self.api_key:
            raise CompletionServiceError("completion service not configured")
        try:
            response = await self._client.post(
                "/chat/completions",
                json={
                    "model": self.model,
                    "messages": messages,
                    "temperature": temperature,
                    "max_tokens": max_tokens,
                },
            )
        except httpx.TimeoutException as exc:
            raise CompletionServiceError("completion request timed out") from exc
        except httpx.RequestError as exc:
            raise CompletionServiceError(f"completion request failed: {exc}") from exc

        if response.status_code >= 400:
            raise CompletionServiceError(f"completion service returned status {response.status_code}")

        try:
            data = response.json()
            content = data["choices"][0]["message"].get("content")
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            raise CompletionServiceError("completion response was malformed") from exc
        return (content or "").strip()

    async def generate_reply(
        self,
        persona: str,
        summary: Optional[str],
        history: Sequence,
        user_message: str,
        temperature: float,
    ) -> str:
        messages = build_reply_messages(persona, summary, history, user_message)
        reply = await self._complete(messages, temperature, config.MAX_RESPONSE_TOKENS)
        return reply or EMPTY_REPLY_FALLBACK

    async def summarize(self, text: str) -> str:
        messages = [
            {"role": "system", "content": SUMMARIZE_PROMPT},
            {"role": "user", "content": text},
        ]
        summary = await self._complete(messages, config.SUMMARY_TEMPERATURE, config.SUMMARY_TARGET_TOKENS)
        if not summary:
            raise CompletionServiceError("summarizer returned an empty summary")
        return summary
