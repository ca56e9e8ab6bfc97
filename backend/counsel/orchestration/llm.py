import logging
from typing import Any, Optional, Protocol

import httpx

from ..config import Settings, get_settings
from ..core.errors import CompletionError

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> str: ...


def build_payload(prompt: str) -> dict:
    return {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}


def extract_text(data: Any) -> str:
    """Pick the first text part of the first candidate.

    Anything that does not match ``{candidates: [{content: {parts: [{text}]}}]}``
    raises CompletionError. Safety ratings and finish reasons are ignored.
    """
    if not isinstance(data, dict):
        raise CompletionError("Completion response is not a JSON object")
    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        raise CompletionError("Completion response has no candidates")
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    if not isinstance(content, dict):
        raise CompletionError("First candidate has no content")
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts:
        raise CompletionError("First candidate has no content parts")
    text = parts[0].get("text") if isinstance(parts[0], dict) else None
    if not isinstance(text, str):
        raise CompletionError("First content part has no text")
    return text


class GeminiClient:
    """Single-shot client for the Gemini ``generateContent`` endpoint.

    One attempt per call: no retry, no timeout, no caching.
    """

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        self.model = settings.GEMINI_MODEL
        self.api_key = (settings.GEMINI_API_KEY or "").strip()
        self.url = f"{settings.GEMINI_API_BASE.rstrip('/')}/models/{self.model}:generateContent"
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.api_key:
            logger.info("GEMINI_API_KEY is blank; relying on host-managed key injection")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=self._transport, timeout=None)
        return self._client

    async def complete(self, prompt: str) -> str:
        try:
            resp = await self._get_client().post(
                self.url,
                params={"key": self.api_key},
                json=build_payload(prompt),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise CompletionError(f"Completion response was not JSON (status={resp.status_code})") from e

        if resp.status_code >= 400:
            logger.warning("Gemini returned HTTP %s for model=%s", resp.status_code, self.model)
        return extract_text(data)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
