"""
Pipeline states, error kinds and stage outcomes.

Every stage of a handoff returns an Outcome: a value, a cancel reason,
or a HandoffError. Cancellation is never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    EXTRACTING = "extracting"
    SYNTHESIZING = "synthesizing"
    REVIEWING = "reviewing"
    READY = "ready"
    SPAWNING = "spawning"
    SPAWNED = "spawned"
    CANCELLED = "cancelled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({
    PipelineState.SPAWNED,
    PipelineState.CANCELLED,
    PipelineState.FAILED,
})

# Allowed forward edges. Nothing is ever revisited.
TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.VALIDATING}),
    PipelineState.VALIDATING: frozenset({PipelineState.EXTRACTING, PipelineState.FAILED}),
    PipelineState.EXTRACTING: frozenset({PipelineState.SYNTHESIZING, PipelineState.FAILED}),
    PipelineState.SYNTHESIZING: frozenset({
        PipelineState.REVIEWING, PipelineState.CANCELLED, PipelineState.FAILED,
    }),
    PipelineState.REVIEWING: frozenset({PipelineState.READY, PipelineState.CANCELLED}),
    PipelineState.READY: frozenset({PipelineState.SPAWNING}),
    PipelineState.SPAWNING: frozenset({PipelineState.SPAWNED, PipelineState.FAILED}),
    PipelineState.SPAWNED: frozenset(),
    PipelineState.CANCELLED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class ErrorKind(str, Enum):
    MISSING_ENVIRONMENT = "MissingEnvironment"
    NO_ACTIVE_MODEL = "NoActiveModel"
    EMPTY_GOAL = "EmptyGoal"
    EMPTY_CONVERSATION = "EmptyConversation"
    GENERATION_FAILED = "GenerationFailed"
    SPAWN_FAILED = "SpawnFailed"


class CancelReason(str, Enum):
    GENERATION_ABORTED = "GenerationAborted"
    REVIEW_CANCELLED = "ReviewCancelled"


@dataclass(frozen=True)
class HandoffError:
    kind: ErrorKind
    message: str
    detail: str = ""


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of one pipeline stage."""
    value: T | None = None
    error: HandoffError | None = None
    cancelled: CancelReason | None = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, detail: str = "") -> "Outcome[T]":
        return cls(error=HandoffError(kind=kind, message=message, detail=detail))

    @classmethod
    def cancel(cls, reason: CancelReason) -> "Outcome[T]":
        return cls(cancelled=reason)

    @property
    def is_ok(self) -> bool:
        return self.error is None and self.cancelled is None


class HandoffResult(BaseModel):
    """What a single handoff invocation ended with."""
    state: PipelineState
    message: str
    error: ErrorKind | None = None
    detail: str = ""
    cancel_reason: CancelReason | None = None
    location: str | None = None
    artifact_path: Path | None = None
    tokens_used: int = 0
    cost: float = 0.0
    events: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.SPAWNED
