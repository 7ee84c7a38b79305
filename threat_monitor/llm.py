"""
OpenAI-compatible chat completions client.

Used for structured event classification and primary-location picking.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from threat_monitor.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class ChatClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4.1-nano",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 200,
        temperature: float = 0.0,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> str:
        if not self.configured:
            raise UpstreamUnavailable("OPENAI_API_KEY is not set")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_format:
            payload["response_format"] = response_format

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/chat/completions", json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"chat completion timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"chat completion failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamUnavailable(f"chat completion HTTP {response.status_code}: {response.text[:300]}")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"chat completion returned invalid JSON: {response.text[:300]}") from e
        if not isinstance(data, dict):
            raise UpstreamUnavailable("chat completion returned an unexpected body")
        if "error" in data:
            raise UpstreamUnavailable(f"chat completion error: {data['error']}")

        choices = data.get("choices") or []
        if not choices:
            raise UpstreamUnavailable("chat completion returned no choices")

        message = choices[0].get("message") or {}
        if message.get("refusal"):
            raise UpstreamUnavailable(f"chat completion refused: {message['refusal']}")
        return (message.get("content") or "").strip()
