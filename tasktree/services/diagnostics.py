"""
Structured diagnostic events for reorder reconciliation.

Drift and reconciliation failures are emitted as ``{type, message, details}``
events for an external notification or logging collaborator. This module
never renders UI itself.
"""

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, Field

from tasktree.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_HISTORY_SIZE = 100


class DiagnosticEventType(str, Enum):
    """Kinds of diagnostic events."""
    DRIFT = "drift"
    RECONCILIATION_FAILURE = "reconciliation_failure"


class DiagnosticEvent(BaseModel):
    """A structured diagnostic event."""

    type: DiagnosticEventType
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


DiagnosticSink = Callable[[DiagnosticEvent], None]


class DiagnosticsEmitter:
    """
    Logs diagnostic events and forwards them to registered sinks.

    A failing sink is logged and skipped; it never breaks the reorder
    operation that produced the event.
    """

    def __init__(
        self,
        sinks: Optional[List[DiagnosticSink]] = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self._sinks: List[DiagnosticSink] = list(sinks or [])
        self._history: Deque[DiagnosticEvent] = deque(maxlen=history_size)

    @property
    def history(self) -> List[DiagnosticEvent]:
        """Most recent events, oldest first."""
        return list(self._history)

    def add_sink(self, sink: DiagnosticSink) -> None:
        self._sinks.append(sink)

    def remove_sink(self, sink: DiagnosticSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def emit(self, event: DiagnosticEvent) -> None:
        """
        Record, log and forward an event.

        Args:
            event: Event to emit
        """
        self._history.append(event)

        if event.type == DiagnosticEventType.RECONCILIATION_FAILURE:
            logger.error(f"{event.message} details={event.details}")
        else:
            logger.warning(f"{event.message} details={event.details}")

        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception as e:
                logger.warning(f"Diagnostic sink failed for {event.type.value} event: {e}", exc_info=True)
