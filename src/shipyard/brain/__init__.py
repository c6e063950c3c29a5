"""Persistent per-thread and per-repository memory."""

from .schema import ErrorSlot, RepoState, ScopeKind, ThreadState
from .gcs import GcsObjectBackend
from .store import (
    LocalObjectBackend,
    ObjectBackend,
    StateStore,
    WriteResult,
    repo_key,
    sanitize_key,
    sanitize_plan_for_storage,
    thread_key,
)

__all__ = [
    "ErrorSlot",
    "GcsObjectBackend",
    "LocalObjectBackend",
    "ObjectBackend",
    "RepoState",
    "ScopeKind",
    "StateStore",
    "ThreadState",
    "WriteResult",
    "repo_key",
    "sanitize_key",
    "sanitize_plan_for_storage",
    "thread_key",
]
