"""Structured per-job execution logs."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)

__all__ = ["JobLogEntry", "load_job_log", "write_job_log"]


@dataclass(slots=True)
class JobLogEntry:
    """In-memory representation of a stored job log."""

    path: Path
    payload: Mapping[str, Any]

    @property
    def job_id(self) -> str | None:
        value = self.payload.get("job_id")
        return value if isinstance(value, str) and value else None

    @property
    def phase(self) -> str | None:
        value = self.payload.get("phase")
        return value if isinstance(value, str) and value else None

    @property
    def succeeded(self) -> bool:
        return isinstance(self.payload.get("result"), Mapping) and "error" not in self.payload

    @property
    def steps(self) -> list[Mapping[str, Any]]:
        value = self.payload.get("steps")
        if isinstance(value, list):
            return [item for item in value if isinstance(item, Mapping)]
        return []


def _json_safe(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return _json_safe(value.model_dump(mode="json", by_alias=True))
    if is_dataclass(value) and not isinstance(value, type):
        return _json_safe(asdict(value))
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Path, datetime)):
        return str(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


def write_job_log(
    logs_root: Path | str,
    *,
    job_id: str,
    target: str,
    task: str,
    phase: str,
    plan: Any = None,
    steps: Iterable[Any] = (),
    result: Any = None,
    error: Optional[BaseException] = None,
) -> Optional[Path]:
    """Persist a job log under ``<logs_root>/jobs``; returns ``None`` when the write fails."""
    jobs_root = Path(logs_root) / "jobs"
    try:
        jobs_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create job log directory %s: %s", jobs_root, exc)
        return None

    now = datetime.now(timezone.utc)
    entry: dict[str, Any] = {
        "timestamp": now.isoformat(),
        "job_id": job_id,
        "target": target,
        "task": task,
        "phase": phase,
        "plan": _json_safe(plan),
        "steps": _json_safe(list(steps)),
    }
    if result is not None:
        entry["result"] = _json_safe(result)
    if error is not None:
        entry["error"] = {
            "type": type(error).__name__,
            "message": str(error),
            "context": getattr(error, "context", None),
        }

    parts = ["job", slugify(target, fallback="repo", max_length=60), job_id, now.strftime("%Y%m%dT%H%M%S%fZ")]
    log_path = jobs_root / ("__".join(filter(None, parts)) + ".json")
    try:
        with log_path.open("w", encoding="utf-8") as handle:
            json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
    except OSError as exc:
        LOGGER.warning("Unable to write job log %s: %s", log_path, exc)
        return None
    return log_path


def load_job_log(path: Path | str) -> JobLogEntry:
    """Load a job log written by :func:`write_job_log`."""
    log_path = Path(path)
    with log_path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if not isinstance(payload, Mapping):
        raise ValueError(f"Job log {log_path} is not a JSON object.")
    return JobLogEntry(path=log_path, payload=payload)
