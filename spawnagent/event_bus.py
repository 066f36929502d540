import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

from loguru import logger
from pydantic import BaseModel, Field


class HandoffEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_type: str
    stage: str
    payload: Dict[str, Any]


class EventBus:
    """A lightweight, synchronous event bus for observing handoff pipelines."""

    def __init__(self):
        self._subscribers: List[Callable[[HandoffEvent], None]] = []

    def subscribe(self, callback: Callable[[HandoffEvent], None]) -> None:
        """Register a callback to be executed when an event is emitted."""
        self._subscribers.append(callback)

    def emit(self, event_type: str, stage: str, payload: Dict[str, Any]) -> HandoffEvent:
        """Construct and broadcast a HandoffEvent to all subscribers."""
        event = HandoffEvent(
            event_type=event_type,
            stage=stage,
            payload=payload,
        )

        for subscriber in self._subscribers:
            try:
                subscriber(event)
            except Exception as e:
                # A broken observer must not change the outcome of a handoff
                logger.warning(f"[EVENTS] Subscriber failed on {event_type}: {e}")

        return event

