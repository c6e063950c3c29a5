"""Anthropic Messages API client."""

from __future__ import annotations

import json
import os
from typing import Any, Callable, Dict, Optional

from ..errors import ConfigError
from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["AnthropicClient"]

DEFAULT_MODEL = "claude-opus-4-6"
API_VERSION = "2023-06-01"

Transport = Callable[[Dict[str, Any]], str]


class AnthropicClient(LLMClient):
    """Thin adapter around the Messages API."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://api.anthropic.com/v1/messages",
        model: str = DEFAULT_MODEL,
        transport: Optional[Transport] = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(model=model)
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ConfigError("ANTHROPIC_API_KEY missing", context="config:anthropic")

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Send the request over the configured transport."""
        try:
            raw_response = self._transport(payload)
        except LLMTransportError:
            raise
        except Exception as error:  # pragma: no cover - transport specific
            raise LLMTransportError(f"Transport rejected the request: {error}") from error

        text = self._extract_text(raw_response)
        if text is None:
            raise LLMResponseFormatError("Model response did not contain a text block.")
        return text

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        """Default HTTP transport using the standard library."""
        import urllib.error
        import urllib.request

        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            self._base_url,
            data=data,
            headers={
                "Content-Type": "application/json",
                "x-api-key": self._api_key or "",
                "anthropic-version": API_VERSION,
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                raw = response.read()
        except TimeoutError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError("Model response timed out.") from error
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            message = error.read().decode("utf-8", errors="ignore")
            raise LLMTransportError(f"HTTP {error.code}: {message[:500]}") from error
        except urllib.error.URLError as error:  # pragma: no cover - network-dependent
            raise LLMTransportError(f"Failed to reach model endpoint: {error.reason}") from error

        return raw.decode("utf-8")

    @staticmethod
    def _extract_text(raw_response: str) -> Optional[str]:
        """Return the first text content block, or the raw body when not JSON."""
        if not raw_response:
            return None
        try:
            data = json.loads(raw_response)
        except json.JSONDecodeError:
            return raw_response

        if not isinstance(data, dict):
            return raw_response
        if data.get("type") == "error":
            error = data.get("error") or {}
            raise LLMTransportError(f"Model API error: {error.get('message', 'unknown')}")

        contents = data.get("content")
        if isinstance(contents, list):
            for block in contents:
                if isinstance(block, dict) and block.get("type") == "text":
                    text = block.get("text")
                    if isinstance(text, str):
                        return text
            return ""
        return None
