"""
HTTP clients for hosted LLM decision providers.
Engine code never calls these directly; the provider chain does.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from decision_gateway import config
from engine.errors import (
    ProviderError,
    ProviderMalformedResponse,
    ProviderRateLimited,
    ProviderTimeout,
)

LOGGER = logging.getLogger("decision_gateway.llm_client")


def is_rate_limit_code(error: Dict[str, Any]) -> bool:
    """True when a provider error object carries a rate-limit status, type or code."""
    for field in ("status", "type", "code"):
        value = error.get(field)
        if value is not None and str(value).strip().lower() in config.RATE_LIMIT_CODES:
            return True
    return False


def is_rate_limit_error(exc: BaseException) -> bool:
    return isinstance(exc, ProviderRateLimited)


class ChatClient:
    """Minimal JSON-over-HTTPS chat client. Subclasses map the wire format."""

    name = "chat"

    def __init__(
        self,
        api_key: str,
        model: str,
        host: str,
        timeout: float = config.AI_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.host = host.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def complete(self, system: str, user: str, max_tokens: int = 200) -> str:
        raise NotImplementedError

    def _post(self, url: str, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            raise ProviderTimeout(self.name, f"HTTP timeout after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise ProviderError(self.name, f"request failed: {exc}") from exc

        if resp.status_code == 429:
            raise ProviderRateLimited(self.name, f"HTTP 429: {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ProviderMalformedResponse(
                self.name, f"HTTP {resp.status_code} body is not JSON"
            ) from exc

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if isinstance(error, dict) and is_rate_limit_code(error):
                raise ProviderRateLimited(self.name, message)
            raise ProviderError(self.name, message)
        if resp.status_code >= 400:
            raise ProviderError(self.name, f"HTTP {resp.status_code}: {resp.text[:200]}")
        if not isinstance(data, dict):
            raise ProviderMalformedResponse(self.name, "response body is not an object")
        return data


class AnthropicClient(ChatClient):
    name = "anthropic"

    def complete(self, system: str, user: str, max_tokens: int = 200) -> str:
        data = self._post(
            f"{self.host}/v1/messages",
            {
                "model": self.model,
                "max_tokens": max_tokens,
                "system": system,
                "messages": [{"role": "user", "content": user}],
            },
            {
                "x-api-key": self.api_key,
                "anthropic-version": config.ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )
        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderMalformedResponse(self.name, "missing content text") from exc


class GeminiClient(ChatClient):
    name = "gemini"

    def complete(self, system: str, user: str, max_tokens: int = 200) -> str:
        data = self._post(
            f"{self.host}/v1beta/models/{self.model}:generateContent",
            {
                "systemInstruction": {"parts": [{"text": system}]},
                "contents": [{"role": "user", "parts": [{"text": user}]}],
                "generationConfig": {
                    "maxOutputTokens": max_tokens,
                    "responseMimeType": "application/json",
                },
            },
            {"x-goog-api-key": self.api_key, "content-type": "application/json"},
        )
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderMalformedResponse(self.name, "missing candidate text") from exc


class GroqClient(ChatClient):
    name = "groq"

    def complete(self, system: str, user: str, max_tokens: int = 200) -> str:
        data = self._post(
            f"{self.host}/chat/completions",
            {
                "model": self.model,
                "max_tokens": max_tokens,
                "temperature": 0.7,
                "response_format": {"type": "json_object"},
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            },
            {
                "Authorization": f"Bearer {self.api_key}",
                "content-type": "application/json",
            },
        )
        try:
            return data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderMalformedResponse(self.name, "missing choice content") from exc


def build_clients(session: Optional[requests.Session] = None) -> list:
    """Instantiate clients in PROVIDER_ORDER for every provider with a key."""
    available = {
        "anthropic": (AnthropicClient, config.ANTHROPIC_API_KEY, config.ANTHROPIC_MODEL, config.ANTHROPIC_HOST),
        "gemini": (GeminiClient, config.GEMINI_API_KEY, config.GEMINI_MODEL, config.GEMINI_HOST),
        "groq": (GroqClient, config.GROQ_API_KEY, config.GROQ_MODEL, config.GROQ_HOST),
    }
    clients = []
    for name in config.PROVIDER_ORDER:
        entry = available.get(name)
        if entry is None:
            LOGGER.warning("Unknown provider in ARENA_PROVIDER_ORDER: %s", name)
            continue
        cls, key, model, host = entry
        if not key:
            continue
        clients.append(cls(api_key=key, model=model, host=host, session=session))
    return clients
