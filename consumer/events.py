"""Events emitted by the scrape pipeline while it runs.

The pipeline never writes the job record itself. It emits these events
and the orchestrator applies them, in order, to the job.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Union

from api.models.checkpoint import Checkpoint


@dataclass(frozen=True)
class LogEvent:
    message: str


@dataclass(frozen=True)
class ProgressEvent:
    current_index: int
    total: int
    extracted: int
    failed: int
    message: Optional[str] = None

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return min(100, round(self.current_index * 100 / self.total))


@dataclass(frozen=True)
class CheckpointEvent:
    checkpoint: Checkpoint


PipelineEvent = Union[LogEvent, ProgressEvent, CheckpointEvent]
EventSink = Callable[[PipelineEvent], None]


def discard_event(event: PipelineEvent) -> None:
    """Sink used when nobody listens."""
