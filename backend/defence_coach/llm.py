"""Thin async wrapper around an OpenAI-compatible chat completions endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

LOG = logging.getLogger("defence_coach.llm")


class LLMError(RuntimeError):
    """Raised when the language model cannot produce usable content."""


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        purpose: str,
        max_tokens: int = 512,
        temperature: float = 0.7,
    ) -> str:
        if not self.api_key:
            raise LLMError("LLM_API_KEY missing")
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": 1.0,
            "stream": False,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                LOG.info("Calling LLM (%s): model=%s prompt_len=%s", purpose, self.model, len(user_prompt))
                resp = await client.post(self.url, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            raise LLMError(f"{purpose} request failed: {exc}") from exc

        if resp.status_code != 200:
            raise LLMError(f"{purpose} responded with {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
            choices = data.get("choices") or []
            content = (choices[0].get("message", {}).get("content") or "").strip() if choices else ""
        except (ValueError, AttributeError, IndexError):
            content = ""
        if not content:
            raise LLMError(f"{purpose} returned empty content")
        return content
