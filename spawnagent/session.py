"""
Context Extractor.

Reads the active branch of an agent session, keeps the entries that
carry a conversational message, converts them to a canonical LLM
message form and serializes them into one text blob, turn order intact.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from spawnagent.host import ModelRef, SessionSource
from spawnagent.state import ErrorKind, Outcome

# ── session files ─────────────────────────────────────────────────────────────


def session_dir_for(cwd: Path, sessions_dir: Path) -> Path:
    """Directory the host keeps sessions for `cwd` in."""
    safe = re.sub(r"[/\\:]", "-", re.sub(r"^[/\\]", "", str(cwd)))
    return sessions_dir / f"--{safe}--"


def find_latest_session(cwd: Path, sessions_dir: Path) -> Path | None:
    """Most recently modified session file for `cwd`, if any."""
    directory = session_dir_for(cwd, sessions_dir)
    if not directory.is_dir():
        return None
    candidates = sorted(
        directory.glob("*.jsonl"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    return candidates[0] if candidates else None


class JsonlSessionSource:
    """
    Session stored as JSONL, one entry per line.

    Entries link to their parent through `id` / `parentId`; the active
    branch is the chain ending at the last entry written. Files without
    ids are read as a single linear branch.
    """

    def __init__(self, path: Path):
        self.path = path

    def _entries(self) -> list[dict[str, Any]]:
        entries = []
        for lineno, line in enumerate(self.path.read_text(errors="replace").splitlines(), 1):
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"[EXTRACT] Skipping malformed line {lineno} in {self.path.name}")
                continue
            if isinstance(entry, dict):
                entries.append(entry)
        return entries

    def get_branch(self) -> list[dict[str, Any]]:
        entries = self._entries()
        by_id = {e["id"]: e for e in entries if e.get("id")}
        if not by_id:
            return entries

        leaf = next(e for e in reversed(entries) if e.get("id"))
        branch = []
        seen: set[str] = set()
        node: dict[str, Any] | None = leaf
        while node is not None and node["id"] not in seen:
            seen.add(node["id"])
            branch.append(node)
            parent_id = node.get("parentId")
            node = by_id.get(parent_id) if parent_id else None
        branch.reverse()
        return branch

    def current_model(self) -> ModelRef | None:
        for entry in reversed(self.get_branch()):
            if entry.get("type") == "model_change" and entry.get("modelId"):
                return ModelRef(id=entry["modelId"], provider=entry.get("provider"))
            message = entry.get("message") or {}
            if entry.get("type") == "message" and message.get("role") == "assistant" and message.get("model"):
                return ModelRef(id=message["model"], provider=message.get("provider"))
        return None


# ── canonical LLM messages ────────────────────────────────────────────────────

class LlmMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "toolResult"]
    content: tuple[dict[str, Any], ...] = ()
    tool_name: str = ""


def _blocks(content: Any) -> tuple[dict[str, Any], ...]:
    if isinstance(content, str):
        return ({"type": "text", "text": content},)
    if isinstance(content, list):
        return tuple(b for b in content if isinstance(b, dict))
    return ()


def _text_block(text: str) -> tuple[dict[str, Any], ...]:
    return ({"type": "text", "text": text},)


def convert_to_llm(messages: list[dict[str, Any]]) -> list[LlmMessage]:
    """Map host messages onto the three roles a model understands."""
    converted: list[LlmMessage] = []
    for msg in messages:
        role = msg.get("role")

        if role in ("user", "assistant"):
            converted.append(LlmMessage(role=role, content=_blocks(msg.get("content"))))

        elif role == "toolResult":
            converted.append(LlmMessage(
                role="toolResult",
                content=_blocks(msg.get("content")),
                tool_name=msg.get("toolName", ""),
            ))

        elif role == "bashExecution":
            if msg.get("excludeFromContext"):
                continue
            text = f"Ran `{msg.get('command', '')}`\n"
            output = (msg.get("output") or "").rstrip()
            text += f"```\n{output}\n```" if output else "(no output)"
            exit_code = msg.get("exitCode")
            if exit_code not in (None, 0):
                text += f"\n\nCommand exited with code {exit_code}"
            converted.append(LlmMessage(role="user", content=_text_block(text)))

        elif role == "compactionSummary":
            converted.append(LlmMessage(role="user", content=_text_block(
                "The conversation history before this point was compacted into the following summary:"
                f"\n\n<summary>\n{msg.get('summary', '')}\n</summary>"
            )))

        elif role == "branchSummary":
            converted.append(LlmMessage(role="user", content=_text_block(
                "The following is a summary of a branch that this conversation came back from:"
                f"\n\n<summary>\n{msg.get('summary', '')}\n</summary>"
            )))

        elif role == "custom":
            converted.append(LlmMessage(role="user", content=_blocks(msg.get("content"))))

        else:
            logger.debug(f"[EXTRACT] Dropping message with role {role!r}")

    return converted


def _format_arguments(arguments: Any) -> str:
    if not isinstance(arguments, dict):
        return json.dumps(arguments)
    return ", ".join(f"{k}={json.dumps(v)}" for k, v in arguments.items())


def serialize_conversation(messages: list[LlmMessage]) -> str:
    parts: list[str] = []
    for msg in messages:
        texts = [b.get("text", "") for b in msg.content if b.get("type") == "text" and b.get("text")]

        if msg.role == "user":
            if texts:
                parts.append(f"[User]: {''.join(texts)}")

        elif msg.role == "assistant":
            thinking = [b.get("thinking", "") for b in msg.content if b.get("type") == "thinking" and b.get("thinking")]
            calls = [
                f"{b.get('name', '')}({_format_arguments(b.get('arguments', {}))})"
                for b in msg.content if b.get("type") == "toolCall"
            ]
            if thinking:
                parts.append(f"[Assistant thinking]: {chr(10).join(thinking)}")
            if texts:
                parts.append(f"[Assistant]: {chr(10).join(texts)}")
            if calls:
                parts.append(f"[Assistant tool calls]: {'; '.join(calls)}")

        elif msg.role == "toolResult":
            if texts:
                parts.append(f"[Tool result]: {''.join(texts)}")

    return "\n\n".join(parts)


# ── snapshot ──────────────────────────────────────────────────────────────────

class ConversationSnapshot(BaseModel):
    """Point-in-time capture of the conversation. Never mutated."""
    model_config = ConfigDict(frozen=True)

    messages: tuple[LlmMessage, ...]
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def text(self) -> str:
        return serialize_conversation(list(self.messages))

    def __len__(self) -> int:
        return len(self.messages)


def extract_snapshot(source: SessionSource) -> Outcome[ConversationSnapshot]:
    """Build the snapshot the brief is synthesized from."""
    messages = [
        entry["message"]
        for entry in source.get_branch()
        if entry.get("type") == "message" and isinstance(entry.get("message"), dict)
    ]
    llm_messages = convert_to_llm(messages)

    if not llm_messages:
        return Outcome.fail(ErrorKind.EMPTY_CONVERSATION, "No conversation to hand off")

    snapshot = ConversationSnapshot(messages=tuple(llm_messages))
    logger.info(f"[EXTRACT] Snapshot of {len(snapshot)} messages ({len(snapshot.text)} chars)")
    return Outcome.ok(snapshot)
