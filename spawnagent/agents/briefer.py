"""
The Briefer — context transfer.

Reads the conversation so far plus the user's goal and writes a
self-contained brief a brand-new agent can start from. One request,
no retries; cancellation is an outcome, not an error.
"""

from __future__ import annotations

import threading

from loguru import logger

from spawnagent.agents import AgentContext, BaseAgent
from spawnagent.router import RouterResponse
from spawnagent.state import CancelReason, ErrorKind, Outcome


class BriefAgent(BaseAgent):
    role = "briefer"

    system_prompt = """You are a context transfer assistant. Given a conversation history and the user's goal for a new thread, generate a focused prompt that:

1. Summarizes relevant context from the conversation (decisions made, approaches taken, key findings)
2. Lists any relevant files that were discussed or modified
3. Clearly states the next task based on the user's goal
4. Is self-contained - the new thread should be able to proceed without the old conversation

Format your response as a prompt the user can send to start the new thread. Be concise but include all necessary context. Do not include any preamble like "Here's the prompt" - just output the prompt itself.

Example output format:
## Context
We've been working on X. Key decisions:
- Decision 1
- Decision 2

Files involved:
- path/to/file1.py
- path/to/file2.py

## Task
[Clear description of what to do next based on user's goal]"""

    def run(self, context: AgentContext, cancel: threading.Event | None = None) -> Outcome[str]:
        """Synthesize the brief. Never raises for completion-service failures."""
        try:
            return super().run(context, cancel=cancel)
        except Exception as e:
            logger.error(f"[BRIEF] Context prompt generation failed: {e}")
            return Outcome.fail(
                ErrorKind.GENERATION_FAILED,
                f"Context prompt generation failed: {e}",
                detail=repr(e),
            )

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        user_content = (
            f"## Conversation History\n\n{context.conversation}"
            f"\n\n## User's Goal for New Thread\n\n{context.goal}"
        )
        return [self._system_msg(), self._user_msg(user_content)]

    def parse_response(self, response: RouterResponse, context: AgentContext) -> Outcome[str]:
        if response.stop_reason == "aborted":
            logger.info("[BRIEF] Generation aborted")
            return Outcome.cancel(CancelReason.GENERATION_ABORTED)

        brief = response.content.strip()
        if not brief:
            logger.error(f"[BRIEF] {response.model} returned an empty brief")
            return Outcome.fail(
                ErrorKind.GENERATION_FAILED,
                "Context prompt generation failed: the model returned an empty brief",
            )

        logger.info(
            f"[BRIEF] Brief ready — {len(brief)} chars, "
            f"{response.tokens_used} tokens, {response.latency_ms}ms"
        )
        return Outcome.ok(brief)
