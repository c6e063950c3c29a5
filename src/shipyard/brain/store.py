"""Durable merge-on-write record store keyed by thread and by repository.

Records live as one JSON object per key at
``<namespace>/<threads|repos>/<sanitized key>.json`` inside an object backend.
Writes are read-merge-write without locking: two writers racing on the same
key both read the old record, and whichever writes last wins for the whole
object.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from .gcs import GcsObjectBackend
from .schema import ERROR_FIELDS, SCHEMA_VERSION, THREAD_FIELDS, ScopeKind, utc_now_iso

LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "shipyard-brain"

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._:@-]")
_SAFE_NAMESPACE = re.compile(r"^[A-Za-z0-9._:@/-]+$")


class ObjectBackend(Protocol):
    """Minimal object storage interface used by :class:`StateStore`."""

    def read_text(self, path: str) -> Optional[str]: ...

    def write_text(self, path: str, text: str) -> None: ...


class LocalObjectBackend:
    """Object backend storing each record as a file below ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root not in target.parents:
            raise ValueError(f"Object path escapes backend root: {path}")
        return target

    def read_text(self, path: str) -> Optional[str]:
        target = self._resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_text(self, path: str, text: str) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(temp_name, target)
        except BaseException:
            Path(temp_name).unlink(missing_ok=True)
            raise


@dataclass(slots=True)
class WriteResult:
    """Outcome of a best-effort write; consumed for logging only."""

    ok: bool
    error: Optional[str] = None


def sanitize_key(key: str) -> str:
    """Map a logical key onto the safe object-name alphabet.

    Plain keys map to themselves. Keys containing ``_`` or any replaced
    character get a digest of the raw key appended, so ``a/b`` and ``a_b``
    land on different objects.
    """
    raw = str(key)
    if not raw:
        raise ValueError("State keys must not be empty.")
    sanitized = _UNSAFE_KEY_CHARS.sub("_", raw)
    if "_" in sanitized:
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
        sanitized = f"{sanitized}@{digest}"
    return sanitized


def normalise_namespace(namespace: str) -> str:
    cleaned = (namespace or "").strip().strip("/")
    if not cleaned:
        raise ValueError("Brain namespace must not be empty.")
    if not _SAFE_NAMESPACE.match(cleaned):
        raise ValueError(f"Brain namespace contains unsupported characters: {namespace!r}")
    segments = cleaned.split("/")
    if any(segment in {"", ".", ".."} for segment in segments):
        raise ValueError(f"Brain namespace has an invalid path segment: {namespace!r}")
    return cleaned


def object_path(namespace: str, kind: ScopeKind | str, key: str) -> str:
    scope = ScopeKind(kind)
    return f"{normalise_namespace(namespace)}/{scope.value}/{sanitize_key(key)}.json"


def thread_key(team: str | None, channel: str, thread_ts: str) -> str:
    return f"{team or 'team'}:{channel}:{thread_ts}"


def repo_key(owner: str, repo: str) -> str:
    return f"{owner}/{repo}"


class StateStore:
    """Brain facade; the only component that touches the backing objects."""

    def __init__(self, backend: ObjectBackend | None, *, namespace: str = DEFAULT_NAMESPACE) -> None:
        self._backend = backend
        self.namespace = normalise_namespace(namespace)

    @classmethod
    def disabled(cls) -> "StateStore":
        return cls(None)

    @classmethod
    def from_directory(cls, root: Path | str | None, *, namespace: str = DEFAULT_NAMESPACE) -> "StateStore":
        if not root:
            return cls.disabled()
        return cls(LocalObjectBackend(root), namespace=namespace)

    @classmethod
    def from_config(
        cls,
        *,
        bucket: Optional[str] = None,
        root: Path | str | None = None,
        namespace: str = DEFAULT_NAMESPACE,
        project: Optional[str] = None,
        client: Any = None,
    ) -> "StateStore":
        """Pick the backend: a GCS bucket when named, else a local directory."""
        if bucket:
            return cls(GcsObjectBackend(bucket, client=client, project=project), namespace=namespace)
        return cls.from_directory(root, namespace=namespace)

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    def path_for(self, kind: ScopeKind | str, key: str) -> str:
        return object_path(self.namespace, kind, key)

    # ------------------------------------------------------------------ core
    def load(self, kind: ScopeKind | str, key: str) -> Optional[Dict[str, Any]]:
        """Return the stored record, or ``None`` when absent or unreadable."""
        if self._backend is None:
            return None
        path = self.path_for(kind, key)
        try:
            text = self._backend.read_text(path)
        except (OSError, ValueError) as error:
            LOGGER.warning("Unable to read brain object %s: %s", path, error)
            return None
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as error:
            LOGGER.warning("Ignoring corrupt brain object %s: %s", path, error)
            return None
        if not isinstance(data, dict):
            return None
        return data

    def save(self, kind: ScopeKind | str, key: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Shallow-merge ``patch`` over the stored record and persist it."""
        existing = self.load(kind, key) or {}
        merged: Dict[str, Any] = {
            **existing,
            **dict(patch),
            "updatedAt": utc_now_iso(),
            "version": SCHEMA_VERSION,
        }
        if self._backend is None:
            return merged
        path = self.path_for(kind, key)
        text = json.dumps(merged, indent=2, ensure_ascii=False, default=str)
        self._backend.write_text(path, text)
        LOGGER.debug("Saved brain object %s (%d field(s) patched)", path, len(patch))
        return merged

    # ------------------------------------------------------------- threads
    def load_thread(self, key: str) -> Optional[Dict[str, Any]]:
        return self.load(ScopeKind.THREADS, key)

    def save_thread(self, key: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        return self.save(ScopeKind.THREADS, key, patch)

    def record_error(self, key: Optional[str], patch: Mapping[str, Any]) -> WriteResult:
        """Write the thread error slot; never raises."""
        if not key:
            return WriteResult(ok=False, error="no thread key")
        try:
            self.save_thread(key, {"lastErrorAt": utc_now_iso(), **dict(patch)})
        except Exception as error:  # noqa: BLE001
            LOGGER.warning("Failed to record error for thread %s: %s", key, error)
            return WriteResult(ok=False, error=str(error))
        return WriteResult(ok=True)

    def clear_error(self, key: Optional[str]) -> WriteResult:
        return self.record_error(key, {field: None for field in ERROR_FIELDS})

    def reset_thread(self, key: str) -> Dict[str, Any]:
        patch: Dict[str, Any] = {field: None for field in (*THREAD_FIELDS, *ERROR_FIELDS)}
        patch["clearedAt"] = utc_now_iso()
        return self.save_thread(key, patch)

    # --------------------------------------------------------------- repos
    def load_repo(self, owner: str, repo: str) -> Optional[Dict[str, Any]]:
        return self.load(ScopeKind.REPOS, repo_key(owner, repo))

    def save_repo(self, owner: str, repo: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        return self.save(ScopeKind.REPOS, repo_key(owner, repo), patch)


def _clamp(value: Any, limit: int) -> str:
    return "" if value is None else str(value)[:limit]


def _strings(value: Any, count: int, limit: int) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [_clamp(item, limit) for item in list(value)[:count]]


def sanitize_plan_for_storage(plan: Any) -> Dict[str, Any]:
    """Return a size-capped, credential-free copy of a plan for the brain."""
    if hasattr(plan, "to_wire"):
        payload = plan.to_wire()
    elif isinstance(plan, Mapping):
        payload = dict(plan)
    else:
        payload = {}

    verify = payload.get("verify") if isinstance(payload.get("verify"), Mapping) else {}
    steps = payload.get("steps") if isinstance(payload.get("steps"), list) else []
    commands = verify.get("commands") if isinstance(verify.get("commands"), list) else []
    return {
        "prTitle": _clamp(payload.get("prTitle"), 200),
        "prBody": _clamp(payload.get("prBody"), 6000),
        "commitMessage": _clamp(payload.get("commitMessage"), 200),
        "summaryBullets": _strings(payload.get("summaryBullets"), 30, 300),
        "testPlanBullets": _strings(payload.get("testPlanBullets"), 30, 300),
        "steps": [
            {
                "cmd": _clamp(step.get("cmd") if isinstance(step, Mapping) else None, 20),
                "args": _strings(step.get("args") if isinstance(step, Mapping) else None, 30, 300),
            }
            for step in steps[:40]
        ],
        "verify": {
            "failed": bool(verify.get("failed")),
            "logs": _clamp(verify.get("logs"), 8000),
            "commands": [_strings(command, 30, 200) for command in commands[:10]],
        },
    }


__all__ = [
    "DEFAULT_NAMESPACE",
    "LocalObjectBackend",
    "ObjectBackend",
    "StateStore",
    "WriteResult",
    "normalise_namespace",
    "object_path",
    "repo_key",
    "sanitize_key",
    "sanitize_plan_for_storage",
    "thread_key",
]
