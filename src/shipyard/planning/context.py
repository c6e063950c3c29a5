"""Repository facts handed to the planner."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(slots=True)
class RepoContext:
    """Top-level listing and README excerpt of the target repository."""

    root_paths: List[str] = field(default_factory=list)
    description: str = ""
    readme_snippet: str = ""


@dataclass(slots=True)
class PlanTarget:
    """Repository the plan is written against."""

    owner: str
    repo: str
    default_branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"
