"""Tests for the transport normalizer."""

from tests.fixtures import BASE_TIME, frames

from agentsync.sync import (
    NormalizedAgentMessage,
    NormalizedEventMessage,
    NormalizedUserMessage,
    SidechainContent,
    SummaryContent,
    TextContent,
    ToolCallContent,
    ToolResultContent,
    normalize_messages,
    normalize_raw_message,
)


class TestUserText:
    """Tests for plain user text extraction."""

    def test_string_content(self):
        result = normalize_raw_message("m1", None, 1, {"role": "user", "content": "hi"})

        assert isinstance(result, NormalizedUserMessage)
        assert result.content.text == "hi"
        assert result.is_sidechain is False

    def test_text_content_block(self):
        result = normalize_raw_message(
            "m1", "local-1", 1, {"role": "user", "content": {"type": "text", "text": "hello"}}
        )

        assert result.content.text == "hello"
        assert result.local_id == "local-1"

    def test_legacy_text_field(self):
        """Optimistic frames carry text instead of content."""
        result = normalize_raw_message("m1", None, 1, {"role": "user", "text": "typed"})

        assert result.content.text == "typed"

    def test_whitespace_only_text_is_dropped(self):
        assert normalize_raw_message("m1", None, 1, {"role": "user", "content": "   \n"}) is None
        assert normalize_raw_message("m1", None, 1, {"role": "user", "content": {}}) is None

    def test_missing_role_is_dropped(self):
        assert normalize_raw_message("m1", None, 1, {"content": "hi"}) is None
        assert normalize_raw_message("m1", None, 1, None) is None

    def test_meta_is_kept(self):
        result = normalize_raw_message(
            "m1", None, 1, {"role": "user", "content": "hi", "meta": {"displayText": "Hi!"}}
        )

        assert result.meta == {"displayText": "Hi!"}

    def test_user_role_with_output_envelope_is_reclassified(self):
        """The transport overloads the user role for agent payloads."""
        raw = frames.assistant([frames.text_block("from agent")])
        raw["role"] = "user"

        result = normalize_messages([raw])

        assert len(result) == 1
        assert isinstance(result[0], NormalizedAgentMessage)
        assert result[0].content[0].text == "from agent"


class TestOutputEnvelope:
    """Tests for the output envelope."""

    def test_assistant_splits_blocks(self):
        raw = frames.assistant(
            [
                frames.text_block("Let me look."),
                frames.tool_use("t1", "Bash", {"command": "ls", "description": "List files"}),
            ],
            id="m1",
            uuid="u1",
            parent_uuid="p1",
        )

        (result,) = normalize_messages([raw])

        assert isinstance(result, NormalizedAgentMessage)
        text, call = result.content
        assert isinstance(text, TextContent)
        assert text.text == "Let me look."
        assert isinstance(call, ToolCallContent)
        assert call.id == "t1"
        assert call.name == "Bash"
        assert call.input == {"command": "ls", "description": "List files"}
        assert call.description == "List files"
        assert {text.uuid, call.uuid} == {"u1"}
        assert {text.parent_uuid, call.parent_uuid} == {"p1"}

    def test_assistant_uuid_falls_back_to_message_id(self):
        (result,) = normalize_messages([frames.assistant([frames.text_block("x")], id="m9")])

        assert result.content[0].uuid == "m9"
        assert result.content[0].parent_uuid is None

    def test_non_string_description_is_ignored(self):
        raw = frames.assistant([frames.tool_use("t1", input={"description": 42})])

        (result,) = normalize_messages([raw])

        assert result.content[0].description is None

    def test_assistant_usage_is_carried(self):
        usage = {"input_tokens": 10, "output_tokens": 5}
        (result,) = normalize_messages([frames.assistant([], usage=usage)])

        assert result.usage == usage
        assert result.content == []

    def test_meta_and_compact_summary_are_dropped(self):
        meta = frames.assistant([frames.text_block("x")])
        meta["content"]["data"]["isMeta"] = True
        compact = frames.assistant([frames.text_block("y")])
        compact["content"]["data"]["isCompactSummary"] = True

        assert normalize_messages([meta, compact]) == []

    def test_summary(self):
        raw = {
            "role": "agent",
            "id": "m1",
            "content": {"type": "output", "data": {"type": "summary", "summary": "Fixed the bug"}},
        }

        (result,) = normalize_messages([raw])

        assert isinstance(result.content[0], SummaryContent)
        assert result.content[0].summary == "Fixed the bug"

    def test_tool_result(self):
        raw = frames.tool_result("t1", content="a.txt", is_error=False, id="m2")

        (result,) = normalize_messages([raw])

        (item,) = result.content
        assert isinstance(item, ToolResultContent)
        assert item.tool_use_id == "t1"
        assert item.content == "a.txt"
        assert item.is_error is False
        assert item.permissions is None

    def test_tool_use_result_takes_precedence(self):
        raw = frames.tool_result("t1", content="short", tool_use_result={"stdout": "long"})

        (result,) = normalize_messages([raw])

        assert result.content[0].content == {"stdout": "long"}

    def test_list_result_collapses_to_first_text(self):
        raw = frames.tool_result("t1", content=[{"type": "text", "text": "first"}, {"type": "text", "text": "second"}])

        (result,) = normalize_messages([raw])

        assert result.content[0].content == "first"

    def test_tool_result_permissions_are_copied(self):
        raw = frames.tool_result(
            "t1",
            permissions={
                "date": 123,
                "result": "approved",
                "mode": "default",
                "allowedTools": ["Bash"],
                "decision": "approved_for_session",
            },
        )

        (result,) = normalize_messages([raw])

        permissions = result.content[0].permissions
        assert permissions.date == 123
        assert permissions.result == "approved"
        assert permissions.mode == "default"
        assert permissions.allowed_tools == ["Bash"]
        assert permissions.decision == "approved_for_session"

    def test_sidechain_prompt(self):
        raw = frames.sidechain_prompt("Search the repo", uuid="side-1")

        (result,) = normalize_messages([raw])

        assert result.is_sidechain is True
        (item,) = result.content
        assert isinstance(item, SidechainContent)
        assert item.uuid == "side-1"
        assert item.prompt == "Search the repo"

    def test_relayed_user_text(self):
        raw = {
            "role": "agent",
            "id": "m1",
            "content": {
                "type": "output",
                "data": {"type": "user", "message": {"role": "user", "content": "relayed"}},
            },
        }

        (result,) = normalize_messages([raw])

        assert isinstance(result, NormalizedUserMessage)
        assert result.content.text == "relayed"

    def test_user_record_without_results_is_dropped(self):
        raw = {
            "role": "agent",
            "id": "m1",
            "content": {
                "type": "output",
                "data": {"type": "user", "message": {"content": [{"type": "image"}]}},
            },
        }

        assert normalize_messages([raw]) == []

    def test_unknown_output_type_is_dropped(self):
        raw = {"role": "agent", "id": "m1", "content": {"type": "output", "data": {"type": "system"}}}

        assert normalize_messages([raw]) == []


class TestEventsAndCodex:
    """Tests for event passthrough and codex frames."""

    def test_event_envelope_passes_through(self):
        payload = {"type": "switch", "mode": "plan"}

        (result,) = normalize_messages([frames.event(payload, id="e1")])

        assert isinstance(result, NormalizedEventMessage)
        assert result.content == payload
        assert result.id == "e1"

    def test_event_role_passes_through(self):
        (result,) = normalize_messages([{"role": "event", "id": "e1", "content": {"type": "ready"}}])

        assert isinstance(result, NormalizedEventMessage)
        assert result.content == {"type": "ready"}

    def test_codex_message_and_reasoning(self):
        message = frames.codex({"type": "message", "message": "done"}, id="c1")
        reasoning = frames.codex({"type": "reasoning", "message": "thinking"}, id="c2")

        result = normalize_messages([message, reasoning])

        assert [m.content[0].text for m in result] == ["done", "thinking"]
        assert result[0].content[0].uuid == "c1"

    def test_codex_tool_call_id_resolution(self):
        by_call_id = frames.codex({"type": "tool-call", "callId": "call-1", "id": "x", "name": "shell", "input": {"cmd": "ls"}})
        by_id = frames.codex({"type": "tool-call", "id": "id-2", "arguments": {"cmd": "pwd"}})

        first, second = normalize_messages([by_call_id, by_id])

        assert first.content[0].id == "call-1"
        assert first.content[0].input == {"cmd": "ls"}
        assert second.content[0].id == "id-2"
        assert second.content[0].name == "unknown"
        assert second.content[0].input == {"cmd": "pwd"}

    def test_codex_tool_call_fallback_id(self):
        first, second = normalize_messages(
            [frames.codex({"type": "tool-call", "name": "a"}), frames.codex({"type": "tool-call", "name": "b"})]
        )

        assert first.content[0].id.startswith("tool-")
        assert first.content[0].id != second.content[0].id

    def test_codex_tool_result(self):
        raw = frames.codex({"type": "tool-call-result", "callId": "call-1", "output": "files", "error": True})

        (result,) = normalize_messages([raw])

        item = result.content[0]
        assert isinstance(item, ToolResultContent)
        assert item.tool_use_id == "call-1"
        assert item.content == "files"
        assert item.is_error is True

    def test_unknown_codex_type_is_dropped(self):
        assert normalize_messages([frames.codex({"type": "token-count"})]) == []


class TestNormalizeMessages:
    """Tests for the batch entry point."""

    def test_assistant_role_is_mapped_to_agent(self):
        raw = frames.assistant([frames.text_block("hi")])
        raw["role"] = "assistant"

        (result,) = normalize_messages([raw])

        assert isinstance(result, NormalizedAgentMessage)

    def test_message_id_preferred_over_id(self):
        (result,) = normalize_messages([{"role": "user", "messageId": "srv-1", "id": "x", "content": "hi"}])

        assert result.id == "srv-1"

    def test_optimistic_id_is_stable(self):
        """Same text and timestamp produce the same id, so echoes dedup."""
        first = normalize_messages([frames.optimistic_user("hello", timestamp=5)])
        second = normalize_messages([frames.optimistic_user("hello", timestamp=5)])
        other = normalize_messages([frames.optimistic_user("hello", timestamp=6)])

        assert first[0].id == second[0].id
        assert first[0].id.startswith("user-")
        assert first[0].id != other[0].id

    def test_skip_optimistic_user_messages(self):
        raws = [frames.optimistic_user("typed"), frames.user_text("echoed", id="srv-1")]

        live = normalize_messages(raws, skip_optimistic_user_messages=True)
        history = normalize_messages(raws)

        assert [m.content.text for m in live] == ["echoed"]
        assert [m.content.text for m in history] == ["typed", "echoed"]

    def test_created_at_from_iso_string(self):
        (result,) = normalize_messages([{"role": "user", "id": "m1", "content": "hi", "createdAt": "2024-01-01T00:00:00Z"}])

        assert result.created_at == 1704067200000

    def test_created_at_from_timestamp(self):
        (result,) = normalize_messages([frames.optimistic_user("hi", timestamp=BASE_TIME)])

        assert result.created_at == BASE_TIME

    def test_local_id_is_carried(self):
        (result,) = normalize_messages([frames.user_text("hi", local_id="L1")])

        assert result.local_id == "L1"

    def test_malformed_frames_do_not_break_batch(self):
        raws = [
            "not a dict",
            {"role": "agent", "id": "m1", "content": "bare string"},
            {"role": "agent", "id": "m2", "content": {"type": "output", "data": {"type": "assistant", "message": {"content": "oops"}}}},
            {"role": "mystery", "id": "m3", "content": {"type": "x"}},
            frames.user_text("still here", id="m4"),
        ]

        result = normalize_messages(raws)

        assert [m.id for m in result] == ["m2", "m4"]
        assert result[0].content == []
