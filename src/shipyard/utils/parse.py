"""Parsing helpers for task messages typed by people."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_MENTION = re.compile(r"<@[^>]+>\s*")
_REPO_URL = re.compile(r"https://github\.com/([^/\s]+)/([^/\s#?]+)", re.IGNORECASE)
_OWNER_REPO = re.compile(r"\b([a-z0-9_.-]+)/([a-z0-9_.-]+)\b", re.IGNORECASE)
_REPO_LINE = re.compile(r"^\s*repo\s*:\s*([^\n]+?)\s*$", re.IGNORECASE | re.MULTILINE)
_TASK_LINE = re.compile(r"^\s*task\s*:\s*([^\n]+?)\s*$", re.IGNORECASE | re.MULTILINE)


@dataclass(slots=True, frozen=True)
class RepoRef:
    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(slots=True, frozen=True)
class TaskBlock:
    task: str
    repo: Optional[RepoRef] = None


def _strip_git_suffix(name: str) -> str:
    return re.sub(r"\.git$", "", name, flags=re.IGNORECASE)


def strip_mentions(text: Optional[str]) -> str:
    return _MENTION.sub("", text or "").strip()


def parse_repo_url(text: Optional[str]) -> Optional[RepoRef]:
    match = _REPO_URL.search(text or "")
    if not match:
        return None
    return RepoRef(owner=match.group(1), repo=_strip_git_suffix(match.group(2)))


def parse_owner_repo(text: Optional[str]) -> Optional[RepoRef]:
    """Find ``owner/repo`` in free text; a GitHub URL wins over a bare pair."""
    from_url = parse_repo_url(text)
    if from_url is not None:
        return from_url
    match = _OWNER_REPO.search(text or "")
    if not match:
        return None
    return RepoRef(owner=match.group(1), repo=_strip_git_suffix(match.group(2)))


def parse_task_block(text: Optional[str]) -> Optional[TaskBlock]:
    """Parse ``repo: owner/name`` and ``task: ...`` lines; the repo line is optional."""
    cleaned = strip_mentions(text)
    task_match = _TASK_LINE.search(cleaned)
    if not task_match:
        return None
    repo_match = _REPO_LINE.search(cleaned)
    repo = parse_owner_repo(repo_match.group(1)) if repo_match else None
    return TaskBlock(task=task_match.group(1).strip(), repo=repo)


__all__ = [
    "RepoRef",
    "TaskBlock",
    "parse_owner_repo",
    "parse_repo_url",
    "parse_task_block",
    "strip_mentions",
]
