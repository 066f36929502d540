"""
spawn-agent Agents

Each agent is:
  - A system prompt
  - A structured input template
  - A parser for what comes back

Agents are stateless between runs. State lives in the pipeline.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from spawnagent.host import CompletionService
from spawnagent.router import RouterResponse


class AgentContext(BaseModel):
    """Context passed to an agent invocation."""
    model: str
    conversation: str
    goal: str
    api_key: str | None = None


class BaseAgent(ABC):
    """
    Base class for spawn-agent agents.

    Subclasses define:
      - role: str — used in log tags
      - system_prompt: str — agent instructions
      - build_messages() — constructs the chat messages
      - parse_response() — extracts the agent's output
    """

    role: str = "unknown"
    system_prompt: str = "You are a helpful assistant."

    def __init__(self, router: CompletionService):
        self.router = router

    def run(self, context: AgentContext, cancel: threading.Event | None = None) -> Any:
        """Execute the agent: build messages → call model → parse."""
        messages = self.build_messages(context)
        response = self.router.complete(
            model=context.model,
            messages=messages,
            cancel=cancel,
            api_key=context.api_key,
        )
        return self.parse_response(response, context)

    @abstractmethod
    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        """Build the message list for the LLM call."""
        ...

    @abstractmethod
    def parse_response(self, response: RouterResponse, context: AgentContext) -> Any:
        """Parse the LLM response into the agent's output."""
        ...

    def _system_msg(self) -> dict[str, str]:
        return {"role": "system", "content": self.system_prompt}

    def _user_msg(self, content: str) -> dict[str, str]:
        return {"role": "user", "content": content}
