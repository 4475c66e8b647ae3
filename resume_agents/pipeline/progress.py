"""Progress events for pipeline runs

Events form an append-only ordered sequence per run. Exactly one event
has done=True and it is always the last one emitted.
"""

import logging
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class ProgressEvent(BaseModel):
    """A stage-labelled progress notification"""

    model_config = ConfigDict(frozen=True)

    stage: str
    message: str
    done: bool = False


ProgressSink = Callable[[ProgressEvent], None]


class ProgressEmitter:
    """
    Ordered, synchronous progress sink wrapper.

    The sink is called inline, so the run does not continue until the
    caller's callback returns. A missing sink makes every emit a no-op
    apart from the event history kept for diagnostics.
    """

    def __init__(self, sink: Optional[ProgressSink] = None):
        self._sink = sink
        self._events: List[ProgressEvent] = []

    @property
    def events(self) -> Tuple[ProgressEvent, ...]:
        return tuple(self._events)

    @property
    def finished(self) -> bool:
        return bool(self._events) and self._events[-1].done

    def emit(self, stage: str, message: str, done: bool = False) -> ProgressEvent:
        """
        Emit one event.

        Raises:
            RuntimeError: If the terminal event has already been emitted
        """
        if self.finished:
            raise RuntimeError(
                f"Progress already finished; refusing event {stage}: {message}"
            )

        event = ProgressEvent(stage=stage, message=message, done=done)
        self._events.append(event)
        if self._sink is not None:
            self._sink(event)
        return event

    def finish(self, stage: str, message: str) -> ProgressEvent:
        """Emit the single terminal event"""
        return self.emit(stage, message, done=True)


def relay_to(emitter: ProgressEmitter) -> ProgressSink:
    """
    Sink that forwards a nested run's events through an outer emitter.

    The nested run's terminal event arrives as an ordinary event, so the
    outer run keeps the only done=True event.
    """

    def forward(event: ProgressEvent) -> None:
        emitter.emit(event.stage, event.message)

    return forward
