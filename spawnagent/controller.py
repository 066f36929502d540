"""
spawn-agent Controller — The Handoff Pipeline

It is NOT smart. It is deterministic.

  Validate → Extract → Synthesize → Review → Spawn

Each stage returns a value, a cancellation or an error kind. Nothing is
retried and no stage re-enters an earlier one. Exactly one notification
reaches the user per handoff.

It never writes the brief. It only coordinates.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger

from spawnagent.agents import AgentContext
from spawnagent.agents.briefer import BriefAgent
from spawnagent.config_loader import SpawnAgentConfig
from spawnagent.event_bus import EventBus
from spawnagent.host import (
    CompletionService,
    ModelRef,
    ModelRegistry,
    Multiplexer,
    Notifier,
    Reviewer,
    SessionSource,
)
from spawnagent.launcher import Launcher, SpawnReceipt
from spawnagent.router import Router
from spawnagent.session import ConversationSnapshot, extract_snapshot
from spawnagent.state import (
    TERMINAL_STATES,
    TRANSITIONS,
    CancelReason,
    ErrorKind,
    HandoffError,
    HandoffResult,
    Outcome,
    PipelineState,
)
from spawnagent.tmux import TmuxClient

USAGE = "Usage: spawn-agent run <goal for new agent>"


class HandoffController:
    """
    One handoff per `run()` call.

    Depends only on host capabilities, so every collaborator can be a fake:
    session source, model registry, completion service, reviewer,
    notifier and multiplexer.
    """

    def __init__(
        self,
        config: SpawnAgentConfig,
        session: SessionSource,
        models: ModelRegistry,
        reviewer: Reviewer,
        notifier: Notifier,
        multiplexer: Multiplexer | None = None,
        completion: CompletionService | None = None,
        cwd: Path | None = None,
        events: EventBus | None = None,
    ):
        self.config = config
        self.session = session
        self.models = models
        self.reviewer = reviewer
        self.notifier = notifier
        self.mux = multiplexer or TmuxClient(config.multiplexer.binary)
        self.router = completion or Router(config)
        self.cwd = (cwd or Path.cwd()).resolve()
        self.events = events or EventBus()

        self.briefer = BriefAgent(self.router)
        self.launcher = Launcher(config, self.mux)

        # Run state (reset per handoff)
        self._state = PipelineState.IDLE
        self._log: list[dict[str, Any]] = []
        self._tokens_used = 0
        self._cost = 0.0

    @property
    def state(self) -> PipelineState:
        return self._state

    def run(self, goal: str, cancel: threading.Event | None = None) -> HandoffResult:
        """Execute the full handoff pipeline for one goal."""
        self._state = PipelineState.IDLE
        self._log = []
        self._tokens_used = 0
        self._cost = 0.0
        cancel = cancel or threading.Event()

        # ── 1. Validate (before any irreversible work) ──
        self._transition(PipelineState.VALIDATING)
        validated = self._validate(goal)
        if not validated.is_ok:
            return self._finish_failed(validated.error)
        model = validated.value
        goal = goal.strip()

        # ── 2. Extract ──
        self._transition(PipelineState.EXTRACTING)
        extracted = extract_snapshot(self.session)
        if not extracted.is_ok:
            return self._finish_failed(extracted.error)
        snapshot = extracted.value
        self._log_event("snapshot_taken", {"messages": len(snapshot)})

        # ── 3. Synthesize ──
        self._transition(PipelineState.SYNTHESIZING)
        generated = self._synthesize(snapshot, goal, model, cancel)
        if generated.cancelled:
            return self._finish_cancelled(generated.cancelled)
        if generated.error:
            return self._finish_failed(generated.error)
        self._log_event("brief_generated", {
            "chars": len(generated.value),
            "tokens": self._tokens_used,
            "cost": self._cost,
        })

        # ── 4. Review ──
        self._transition(PipelineState.REVIEWING)
        reviewed = self._review(generated.value)
        if not reviewed.is_ok:
            return self._finish_cancelled(reviewed.cancelled)
        self._transition(PipelineState.READY)

        # ── 5. Spawn ──
        self._transition(PipelineState.SPAWNING)
        spawned = self.launcher.launch(reviewed.value, model.id, self.cwd)
        if not spawned.is_ok:
            return self._finish_failed(spawned.error)
        return self._finish_spawned(spawned.value)

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------

    def _validate(self, goal: str) -> Outcome[ModelRef]:
        model = self.models.selected_model()
        if model is None:
            return Outcome.fail(ErrorKind.NO_ACTIVE_MODEL, "No model selected")

        if not self.mux.available():
            return Outcome.fail(
                ErrorKind.MISSING_ENVIRONMENT,
                f"spawn-agent requires {self.mux.binary} to be installed",
            )

        if not goal or not goal.strip():
            return Outcome.fail(ErrorKind.EMPTY_GOAL, USAGE)

        logger.debug(f"[PIPELINE] Validated — model={model}, {self.mux.binary} found")
        return Outcome.ok(model)

    def _synthesize(
        self,
        snapshot: ConversationSnapshot,
        goal: str,
        model: ModelRef,
        cancel: threading.Event,
    ) -> Outcome[str]:
        context = AgentContext(
            model=model.litellm_name,
            conversation=snapshot.text,
            goal=goal,
            api_key=self.models.get_api_key(model),
        )
        usage = getattr(self.router, "usage", None)
        tokens_before = usage.total_tokens if usage is not None else 0
        cost_before = usage.estimated_cost if usage is not None else 0.0

        with self.notifier.working("Generating context prompt..."):
            outcome = self.briefer.run(context, cancel=cancel)

        if usage is not None:
            self._tokens_used = usage.total_tokens - tokens_before
            self._cost = usage.estimated_cost - cost_before
        return outcome

    def _review(self, brief: str) -> Outcome[str]:
        final = self.reviewer.review("Edit context prompt", brief)
        if final is None or not final.strip():
            logger.info("[REVIEW] Cancelled by human")
            return Outcome.cancel(CancelReason.REVIEW_CANCELLED)
        if final != brief:
            self._log_event("brief_edited", {"chars": len(final)})
        return Outcome.ok(final)

    # -----------------------------------------------------------------------
    # Terminal states (one notification each)
    # -----------------------------------------------------------------------

    def _finish_spawned(self, receipt: SpawnReceipt) -> HandoffResult:
        self._transition(PipelineState.SPAWNED)
        message = f"Agent spawned in {receipt.location}"
        self._log_event("spawned", {
            "strategy": receipt.target.strategy.value,
            "location": receipt.location,
            "artifact": str(receipt.artifact.path),
        })
        self.notifier.notify(message, "info")
        return HandoffResult(
            state=self._state,
            message=message,
            location=receipt.location,
            artifact_path=receipt.artifact.path,
            tokens_used=self._tokens_used,
            cost=self._cost,
            events=self._log,
        )

    def _finish_cancelled(self, reason: CancelReason | None) -> HandoffResult:
        self._transition(PipelineState.CANCELLED)
        self._log_event("cancelled", {"reason": reason.value if reason else None})
        self.notifier.notify("Cancelled", "info")
        return HandoffResult(
            state=self._state,
            message="Cancelled",
            cancel_reason=reason,
            tokens_used=self._tokens_used,
            cost=self._cost,
            events=self._log,
        )

    def _finish_failed(self, error: HandoffError | None) -> HandoffResult:
        if error is None:
            raise RuntimeError(f"Stage failed without an error in state {self._state.value}")
        self._transition(PipelineState.FAILED)
        self._log_event("failed", {"kind": error.kind.value, "message": error.message})
        self.notifier.notify(error.message, "error")
        return HandoffResult(
            state=self._state,
            message=error.message,
            error=error.kind,
            detail=error.detail,
            tokens_used=self._tokens_used,
            cost=self._cost,
            events=self._log,
        )

    # -----------------------------------------------------------------------
    # Utilities
    # -----------------------------------------------------------------------

    def _transition(self, new_state: PipelineState) -> None:
        if new_state not in TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal transition {self._state.value} → {new_state.value}")
        previous, self._state = self._state, new_state
        logger.debug(f"[PIPELINE] {previous.value} → {new_state.value}")
        self._log_event("state_changed", {
            "from": previous.value,
            "to": new_state.value,
            "terminal": new_state in TERMINAL_STATES,
        })

    def _log_event(self, event_type: str, data: dict | None = None) -> None:
        event = {
            "type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "state": self._state.value,
            "data": data or {},
        }
        self._log.append(event)
        self.events.emit(event_type, self._state.value, data or {})
