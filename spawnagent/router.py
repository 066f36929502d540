"""
spawn-agent Router — Vendor-Agnostic Completion

Routes the brief request through LiteLLM so the pipeline never knows
which vendor is backing the selected model. Handles cancellation,
usage tracking and structured logging.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

import litellm
from loguru import logger
from pydantic import BaseModel

from spawnagent.config_loader import SpawnAgentConfig


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0

    def record(self, response: Any) -> None:
        """Record usage from a LiteLLM response."""
        usage = getattr(response, "usage", None)
        if usage:
            self.prompt_tokens += getattr(usage, "prompt_tokens", 0) or 0
            self.completion_tokens += getattr(usage, "completion_tokens", 0) or 0
            self.total_tokens += getattr(usage, "total_tokens", 0) or 0

        try:
            self.estimated_cost += litellm.completion_cost(completion_response=response)
        except Exception as e:
            # Unknown pricing for custom/local models
            logger.debug(f"[ROUTER] No cost estimate: {e}")

        self.call_count += 1


# ---------------------------------------------------------------------------
# Model capability helpers
# ---------------------------------------------------------------------------

def _bare_model(model: str) -> str:
    return model.lower().split("/", 1)[-1]


def _is_gpt5_model(model: str) -> bool:
    """GPT-5 family models have restricted parameter support."""
    return _bare_model(model).startswith("gpt-5")


def _is_o_series_model(model: str) -> bool:
    """OpenAI o-series reasoning models don't support temperature."""
    return _bare_model(model).startswith(("o1", "o3", "o4"))


def _build_kwargs(
    model: str,
    messages: list[dict[str, str]],
    temperature: float,
    max_tokens: int,
    api_key: str | None,
    num_retries: int,
) -> dict[str, Any]:
    """
    Build LiteLLM kwargs with per-model param filtering.
    Different model families support different parameters.
    """
    kwargs: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": max_tokens,
    }

    if not _is_gpt5_model(model) and not _is_o_series_model(model):
        kwargs["temperature"] = temperature

    if api_key:
        kwargs["api_key"] = api_key

    if num_retries > 0:
        kwargs["num_retries"] = num_retries

    return kwargs


def _response_text(response: Any) -> str:
    """Concatenate every returned text segment, in order."""
    segments = []
    for choice in getattr(response, "choices", None) or []:
        content = choice.message.content
        if isinstance(content, str):
            segments.append(content)
        elif isinstance(content, list):
            segments.extend(
                part.get("text", "") for part in content
                if isinstance(part, dict) and part.get("type") == "text"
            )
    return "\n".join(s for s in segments if s)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class RouterResponse(BaseModel):
    content: str
    model: str
    stop_reason: str = "stop"
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0

    @property
    def aborted(self) -> bool:
        return self.stop_reason == "aborted"


class Router:
    """
    Vendor-agnostic completion router.

    `router.complete(model, messages, cancel)` issues exactly one request.
    Setting `cancel` (or Ctrl-C while waiting) returns an aborted response
    instead of raising; any other failure propagates to the caller.
    """

    def __init__(
        self,
        config: SpawnAgentConfig,
        completion_fn: Callable[..., Any] | None = None,
    ):
        self.config = config
        self.usage = UsageRecord()
        self._completion = completion_fn or litellm.completion

        litellm.suppress_debug_info = True

    def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        cancel: threading.Event | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> RouterResponse:
        """Send one completion request through LiteLLM.

        Args:
            model (str): LiteLLM model string, e.g. 'openai/gpt-5'.
            messages (list[dict[str, str]]): Standard chat messages.
            cancel (threading.Event | None): Abort signal. The request runs on a
                daemon thread so an abandoned call never blocks shutdown.
            api_key (str | None): Explicit key; LiteLLM falls back to env vars.
            temperature (float | None): Dropped for models that don't support it.
            max_tokens (int | None): Max response tokens.

        Returns:
            RouterResponse: content plus stop reason; `stop_reason == "aborted"`
                when cancelled before a result arrived.
        """
        cancel = cancel or threading.Event()
        limits = self.config.limits

        if cancel.is_set():
            logger.debug("[ROUTER] Cancelled before request")
            return RouterResponse(content="", model=model, stop_reason="aborted")

        kwargs = _build_kwargs(
            model,
            messages,
            temperature if temperature is not None else limits.temperature,
            max_tokens or limits.max_tokens,
            api_key,
            limits.completion_retries,
        )

        logger.debug(f"[ROUTER] brief → {model} ({len(messages)} messages)")
        start = time.monotonic()

        future: concurrent.futures.Future = concurrent.futures.Future()

        def _call() -> None:
            try:
                future.set_result(self._completion(**kwargs))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=_call, name="brief-completion", daemon=True).start()

        response = None
        while response is None:
            if cancel.is_set():
                logger.info(f"[ROUTER] Request to {model} aborted")
                return RouterResponse(
                    content="",
                    model=model,
                    stop_reason="aborted",
                    latency_ms=int((time.monotonic() - start) * 1000),
                )
            try:
                response = future.result(timeout=limits.poll_interval)
            except concurrent.futures.TimeoutError:
                continue
            except KeyboardInterrupt:
                cancel.set()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        self.usage.record(response)

        choices = getattr(response, "choices", None) or []
        stop_reason = (getattr(choices[0], "finish_reason", None) if choices else None) or "stop"

        logger.debug(
            f"[ROUTER] brief complete — "
            f"{self.usage.total_tokens} tokens, "
            f"${self.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        return RouterResponse(
            content=_response_text(response),
            model=model,
            stop_reason=stop_reason,
            tokens_used=getattr(getattr(response, "usage", None), "total_tokens", 0) or 0,
            cost=self.usage.estimated_cost,
            latency_ms=elapsed_ms,
        )
