"""Client base class shared by all language-model integrations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
]

LOGGER = logging.getLogger(__name__)


class LLMClientError(RuntimeError):
    """Base error raised for model client failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails to return a response."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the response envelope carries no text output."""


@dataclass(slots=True)
class LLMRequest:
    """Text completion request sent to a model."""

    prompt: str
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = 4096

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render a Messages API payload."""
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": self.prompt}],
        }
        if self.system_prompt:
            payload["system"] = self.system_prompt
        return payload


class LLMClient:
    """High-level helper returning the model's raw text output.

    Structured parsing is left to callers: the planner owns its own
    extraction and repair policy.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def complete(self, request: LLMRequest) -> str:
        """Invoke the model once and return its text output."""
        payload = request.to_payload(self._model)
        raw = self._raw_invoke(payload)
        LOGGER.debug("Model %s returned %d character(s)", payload["model"], len(raw or ""))
        return (raw or "").strip()

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")
