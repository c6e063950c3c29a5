"""Progress events published by the engine for whatever transport listens."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    job_id: str
    phase: str
    message: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def render(self) -> str:
        return f"[{self.job_id}] {self.message}"


Subscriber = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """Fan-out of :class:`ProgressEvent` to registered subscribers.

    A failing subscriber is logged and skipped; rendering problems never
    abort a job.
    """

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def publish(self, job_id: str, phase: str, message: str, **detail: Any) -> ProgressEvent:
        event = ProgressEvent(job_id=job_id, phase=phase, message=message, detail=detail)
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception:  # noqa: BLE001
                LOGGER.warning("Progress subscriber failed for job %s", job_id, exc_info=True)
        return event


def logging_subscriber(event: ProgressEvent) -> None:
    LOGGER.info("%s", event.render())


__all__ = ["ProgressEmitter", "ProgressEvent", "Subscriber", "logging_subscriber"]
