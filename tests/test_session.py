import json
import os

from conftest import FakeSession, message_entry

from spawnagent.host import ModelRef
from spawnagent.session import (
    JsonlSessionSource,
    convert_to_llm,
    extract_snapshot,
    find_latest_session,
    serialize_conversation,
    session_dir_for,
)
from spawnagent.state import ErrorKind


def _write_jsonl(path, entries):
    path.write_text("\n".join(json.dumps(e) for e in entries) + "\n")
    return path


def test_snapshot_keeps_only_message_entries_in_order(conversation):
    outcome = extract_snapshot(conversation)

    assert outcome.is_ok
    snapshot = outcome.value
    assert len(snapshot) == 2
    assert snapshot.text == (
        "[User]: Add a billing page for users\n\n"
        "[Assistant]: Added src/billing.py and wired the route."
    )


def test_empty_conversation_is_an_error():
    source = FakeSession([{"type": "session", "id": "s1"}, {"type": "model_change", "modelId": "gpt-5"}])

    outcome = extract_snapshot(source)

    assert not outcome.is_ok
    assert outcome.error.kind == ErrorKind.EMPTY_CONVERSATION
    assert outcome.error.message == "No conversation to hand off"


def test_serialize_assistant_thinking_tools_and_results():
    messages = convert_to_llm([
        {"role": "user", "content": "fix the bug"},
        {"role": "assistant", "content": [
            {"type": "thinking", "thinking": "Probably an off-by-one"},
            {"type": "text", "text": "Reading the file."},
            {"type": "toolCall", "id": "t1", "name": "read", "arguments": {"path": "src/app.py"}},
        ]},
        {"role": "toolResult", "toolCallId": "t1", "toolName": "read", "content": [{"type": "text", "text": "def main(): ..."}]},
    ])

    text = serialize_conversation(messages)

    assert text.split("\n\n") == [
        "[User]: fix the bug",
        "[Assistant thinking]: Probably an off-by-one",
        "[Assistant]: Reading the file.",
        '[Assistant tool calls]: read(path="src/app.py")',
        "[Tool result]: def main(): ...",
    ]


def test_convert_maps_host_only_roles():
    messages = convert_to_llm([
        {"role": "bashExecution", "command": "pytest", "output": "1 failed", "exitCode": 1},
        {"role": "bashExecution", "command": "ls", "output": "x", "excludeFromContext": True},
        {"role": "compactionSummary", "summary": "Earlier we set up CI."},
        {"role": "branchSummary", "summary": "Tried a cache, reverted."},
        {"role": "somethingElse", "content": "ignored"},
    ])

    assert [m.role for m in messages] == ["user", "user", "user"]
    assert "Ran `pytest`" in messages[0].content[0]["text"]
    assert "exited with code 1" in messages[0].content[0]["text"]
    assert "<summary>\nEarlier we set up CI.\n</summary>" in messages[1].content[0]["text"]
    assert "Tried a cache, reverted." in messages[2].content[0]["text"]


def test_jsonl_branch_follows_parent_links(tmp_path):
    path = _write_jsonl(tmp_path / "s.jsonl", [
        {"type": "session", "version": 3, "cwd": "/work"},
        {"type": "message", "id": "a", "parentId": None, "message": {"role": "user", "content": "root"}},
        {"type": "message", "id": "b", "parentId": "a", "message": {"role": "assistant", "content": [{"type": "text", "text": "abandoned"}]}},
        {"type": "message", "id": "c", "parentId": "a", "message": {"role": "assistant", "content": [{"type": "text", "text": "kept"}]}},
    ])

    branch = JsonlSessionSource(path).get_branch()

    assert [e["id"] for e in branch] == ["a", "c"]


def test_jsonl_skips_malformed_lines_and_reads_linear_files(tmp_path):
    path = tmp_path / "s.jsonl"
    path.write_text(
        json.dumps(message_entry("user", "one")) + "\n"
        "{not json\n"
        + json.dumps(message_entry("assistant", "two")) + "\n"
    )

    outcome = extract_snapshot(JsonlSessionSource(path))

    assert outcome.is_ok
    assert len(outcome.value) == 2


def test_current_model_prefers_latest_entry(tmp_path):
    path = _write_jsonl(tmp_path / "s.jsonl", [
        {"type": "model_change", "provider": "anthropic", "modelId": "claude-sonnet-4-5"},
        message_entry("assistant", "hi", provider="openai", model="gpt-5"),
    ])

    assert JsonlSessionSource(path).current_model() == ModelRef(id="gpt-5", provider="openai")


def test_find_latest_session(tmp_path):
    cwd = tmp_path / "proj"
    sessions_dir = tmp_path / "sessions"
    directory = session_dir_for(cwd, sessions_dir)
    directory.mkdir(parents=True)
    older = _write_jsonl(directory / "1.jsonl", [message_entry("user", "old")])
    newer = _write_jsonl(directory / "2.jsonl", [message_entry("user", "new")])
    os.utime(older, (1_000_000, 1_000_000))

    assert directory.name.startswith("--") and directory.name.endswith("--")
    assert find_latest_session(cwd, sessions_dir) == newer
    assert find_latest_session(tmp_path / "elsewhere", sessions_dir) is None


def test_image_only_turn_still_counts_as_conversation():
    source = FakeSession([
        {"type": "message", "message": {"role": "user", "content": [{"type": "image", "data": "iVBOR", "mimeType": "image/png"}]}},
    ])

    outcome = extract_snapshot(source)

    assert outcome.is_ok
    assert len(outcome.value) == 1
