"""Recover a plan object from raw model text.

Each helper is a pure function; the chain is
``raw text -> candidate JSON substring -> parsed mapping | None``. Models wrap
JSON in fences, add commentary, or get cut off by the token limit partway
through a string; the chain tolerates all three.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

__all__ = [
    "REPAIR_SUFFIXES",
    "extract_json_text",
    "looks_like_plan",
    "normalise_json_string",
    "parse_plan_json",
    "recover_plan_payload",
    "strip_code_fence",
]

_OPENING_FENCE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)

# Closers for the common truncation shapes: inside a string value, after a
# value, inside an array of strings, after an array.
REPAIR_SUFFIXES: tuple[str, ...] = ('"}', "}", '"]}', ']"}', "]}", '"]}]}', '"}]}')

MIN_REPAIR_LENGTH = 20


def normalise_json_string(payload: str) -> str:
    """Normalise typographic characters models sometimes emit around JSON."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def strip_code_fence(text: str) -> str:
    """Drop a leading code fence and anything from the closing fence onward."""
    content = _OPENING_FENCE.sub("", text.strip(), count=1).strip()
    closing = content.find("```")
    if closing != -1:
        content = content[:closing].strip()
    return content


def extract_json_text(text: Optional[str]) -> str:
    """Return the most plausible JSON object substring from ``text``.

    Falls back to everything after the first ``{`` when no closing brace
    follows it, so truncated output can still reach the repair step.
    """
    content = strip_code_fence(normalise_json_string(text or ""))
    start = content.find("{")
    end = content.rfind("}")
    if start != -1 and end > start:
        return content[start : end + 1].strip()
    if start != -1:
        return content[start:].strip()
    return content


def looks_like_plan(value: Any) -> bool:
    return isinstance(value, dict) and value.get("prTitle") is not None and isinstance(value.get("steps"), list)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def parse_plan_json(extracted: str) -> Optional[Dict[str, Any]]:
    """Parse ``extracted`` strictly, then retry with minimal closing suffixes."""
    parsed = _loads(extracted)
    if isinstance(parsed, dict):
        return parsed
    candidate = (extracted or "").strip()
    if len(candidate) < MIN_REPAIR_LENGTH:
        return None
    for suffix in REPAIR_SUFFIXES:
        repaired = _loads(candidate + suffix)
        if looks_like_plan(repaired):
            return repaired
    return None


def recover_plan_payload(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Full chain: extract then parse; ``None`` when nothing usable remains."""
    return parse_plan_json(extract_json_text(raw))
