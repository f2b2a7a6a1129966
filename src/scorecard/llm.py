"""Chat-completions client used for the caller's lines and the scoring judge."""

import json
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class ChatClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def _post(self, payload: dict) -> str:
        resp = await self._client.post(
            f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"model": self.model, **payload},
        )
        resp.raise_for_status()
        return resp.json()["choices"][0]["message"]["content"] or ""

    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.7,
        max_tokens: int = 150,
    ) -> str:
        """Return the assistant's reply text. Raises on transport or HTTP errors."""
        content = await self._post({
            "temperature": temperature,
            "max_tokens": max_tokens,
            "messages": messages,
        })
        return content.strip()

    async def complete_json(self, messages: list[dict], temperature: float = 0.3) -> str:
        """Ask for a JSON object and return the raw content for the caller to parse."""
        return await self._post({
            "temperature": temperature,
            "response_format": {"type": "json_object"},
            "messages": messages,
        })

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def describe_error(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, json.JSONDecodeError):
        return "invalid JSON body"
    return f"{type(exc).__name__}: {exc}"
