#!/usr/bin/env python3
"""Run stages, progress events and cooperative cancellation."""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .errors import TranslationCancelledError

logger = logging.getLogger(__name__)


class Stage(Enum):
    IDLE = "idle"
    PARTITIONING = "partitioning"
    DISPATCHING = "dispatching"
    COLLECTING = "collecting"
    MERGING = "merging"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    language: Optional[str] = None
    batch_index: Optional[int] = None
    percent: float = 0.0
    message: str = ""


ProgressListener = Callable[[ProgressEvent], None]


class ProgressQueue:
    """
    Thread-safe progress channel.

    Pass the instance itself as the orchestrator's listener; a consumer
    thread drains it with ``get`` or ``drain``.
    """

    def __init__(self):
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue()

    def __call__(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> ProgressEvent:
        return self._queue.get(timeout=timeout)

    def drain(self) -> List[ProgressEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class CancellationToken:
    """Cancellation flag shared between the caller and worker threads."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranslationCancelledError()

    def wait(self, seconds: float) -> None:
        """Sleep up to ``seconds``, waking early and raising if cancelled."""
        if seconds > 0:
            self._event.wait(seconds)
        self.raise_if_cancelled()
