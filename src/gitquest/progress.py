"""Progress reporting for stats runs.

A run reports through a ``ProgressReporter`` handed to it by the caller. The
reporter forwards events to a pluggable ``ProgressSink``; ``ProgressStore``
keeps the latest event per user for polling clients.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Stages of a stats run, in the order they normally occur."""

    INITIALIZING = "initializing"
    DISCOVERING_REPOS = "discovering-repos"
    PROCESSING_REPOS = "processing-repos"
    CALCULATING_STREAK = "calculating-streak"
    CALCULATING_IMPACT = "calculating-impact"
    SAVING = "saving"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"
    TIMED_OUT = "timed-out"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.FAILED, Stage.TIMED_OUT)


class ProgressEvent(BaseModel):
    """Snapshot of a run's progress."""

    stage: Stage
    completed: int = 0
    total: int = 0
    detail: str = ""
    organization: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 100.0 if self.stage.is_terminal else 0.0
        return min(100.0, self.completed * 100.0 / self.total)


@runtime_checkable
class ProgressSink(Protocol):
    """Receives progress events."""

    def report(self, event: ProgressEvent) -> None: ...

    def is_active(self) -> bool: ...


class CallbackProgressSink:
    """Sink that hands every event to a callable."""

    def __init__(self, callback: Callable[[ProgressEvent], None]):
        self.callback = callback

    def report(self, event: ProgressEvent) -> None:
        self.callback(event)

    def is_active(self) -> bool:
        return True


class ProgressStore:
    """Latest progress event and an active flag per user.

    Only the most recent event is kept; there is no history.
    """

    def __init__(self):
        self._latest: dict[str, ProgressEvent] = {}
        self._active: set[str] = set()

    def start(self, user_id: str) -> None:
        self._active.add(user_id)
        self._latest.pop(user_id, None)

    def finish(self, user_id: str) -> None:
        self._active.discard(user_id)

    def is_active(self, user_id: str) -> bool:
        return user_id in self._active

    def update(self, user_id: str, event: ProgressEvent) -> None:
        self._latest[user_id] = event

    def get(self, user_id: str) -> ProgressEvent | None:
        return self._latest.get(user_id)

    def clear(self, user_id: str) -> None:
        self._active.discard(user_id)
        self._latest.pop(user_id, None)

    def sink_for(self, user_id: str) -> "StoreProgressSink":
        return StoreProgressSink(self, user_id)


class StoreProgressSink:
    """Sink writing into one user's slot of a ``ProgressStore``."""

    def __init__(self, store: ProgressStore, user_id: str):
        self.store = store
        self.user_id = user_id

    def report(self, event: ProgressEvent) -> None:
        self.store.update(self.user_id, event)

    def is_active(self) -> bool:
        return self.store.is_active(self.user_id)


class ProgressReporter:
    """Progress context for a single run.

    Created per run and passed down explicitly. Without a sink, events are
    only logged.
    """

    def __init__(self, sink: ProgressSink | None = None):
        self.sink = sink
        self.last_event: ProgressEvent | None = None

    @classmethod
    def from_callback(
        cls, callback: Callable[[ProgressEvent], None] | None
    ) -> "ProgressReporter":
        return cls(CallbackProgressSink(callback) if callback else None)

    @property
    def stage(self) -> Stage | None:
        return self.last_event.stage if self.last_event else None

    def emit(
        self,
        stage: Stage,
        completed: int = 0,
        total: int = 0,
        detail: str = "",
        organization: str | None = None,
    ) -> ProgressEvent:
        """Record and forward a progress event."""
        event = ProgressEvent(
            stage=stage,
            completed=completed,
            total=total,
            detail=detail,
            organization=organization,
        )
        self.last_event = event
        logger.debug("[%s] %d/%d %s", stage.value, completed, total, detail)

        if self.sink is not None and self.sink.is_active():
            try:
                self.sink.report(event)
            except Exception as e:
                # A broken sink must not fail the run it is observing
                logger.warning("Progress sink failed for stage %s: %s", stage.value, e)
        return event
