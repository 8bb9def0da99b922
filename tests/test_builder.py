"""
Tests for revision resolution, event construction and session aggregation.

Usage:
    pytest tests/test_builder.py -v
"""

import json

import pytest

from cclive.builder import (
    build_session,
    decode_project_path,
    estimate_cost,
    get_short_name,
    parse_session_file,
)
from cclive.decoder import decode_entry
from cclive.models import (
    CompactionEvent,
    EventType,
    TextEvent,
    ThinkingEvent,
    ToolResultEvent,
    ToolUseEvent,
    UserPromptEvent,
)
from cclive.resolver import resolve_revisions

from conftest import assistant, tool_result, tool_use, user


def records(*lines):
    return [decode_entry(json.dumps(line)) for line in lines]


class TestWorkedExample:
    def test_prompt_tool_use_and_result(self, write_session):
        path = write_session([
            user("u-1", "2026-02-24T10:00:00Z", [{"type": "text", "text": "hi"}]),
            assistant(
                "a-1", "2026-02-24T10:00:01Z", "m1",
                [tool_use("toolu_1", "Bash", command="ls")],
                usage={"input_tokens": 10, "output_tokens": 5},
            ),
            user("u-2", "2026-02-24T10:00:02Z", [tool_result("toolu_1", "file.txt")]),
        ])
        session = parse_session_file(path)

        assert [e.type for e in session.events] == [
            EventType.USER_PROMPT, EventType.TOOL_USE, EventType.TOOL_RESULT,
        ]
        info = session.summary
        assert info.tool_call_count == 1
        assert info.bash_commands == 1
        assert info.input_tokens == 10
        assert info.output_tokens == 5
        assert info.user_prompts == 1
        assert info.errors == 0
        assert info.event_count == 3
        assert session.events[1].tool_input == {"command": "ls"}
        assert session.events[2].tool_id == "toolu_1"
        assert session.events[2].output == "file.txt"


class TestRevisionCollapse:
    def test_only_latest_revision_is_emitted(self, tmp_path):
        recs = records(
            user("u-1", "2026-02-24T10:00:00Z", "go"),
            assistant("a-1", "2026-02-24T10:00:01Z", "m1",
                      [{"type": "thinking", "thinking": "hmm"}]),
            assistant("a-2", "2026-02-24T10:00:02Z", "m1",
                      [{"type": "thinking", "thinking": "hmm"},
                       {"type": "text", "text": "Sure"}]),
            assistant("a-3", "2026-02-24T10:00:03Z", "m1",
                      [{"type": "thinking", "thinking": "hmm"},
                       {"type": "text", "text": "Sure"},
                       tool_use("toolu_1", "Read", file_path="/a.py")]),
        )
        session = build_session(tmp_path / "s.jsonl", recs)

        assistant_events = [e for e in session.events if not isinstance(e, UserPromptEvent)]
        assert [type(e) for e in assistant_events] == [ThinkingEvent, TextEvent, ToolUseEvent]
        assert all(e.uuid == "a-3" for e in assistant_events)
        assert session.summary.tool_call_count == 1

    def test_equal_timestamps_later_line_wins(self):
        recs = records(
            assistant("a-1", "2026-02-24T10:00:01Z", "m1", [{"type": "text", "text": "a"}]),
            assistant("a-2", "2026-02-24T10:00:01Z", "m1", [{"type": "text", "text": "ab"}]),
        )
        assert resolve_revisions(recs)["m1"].record.uuid == "a-2"

    def test_older_revision_written_later_is_ignored(self):
        recs = records(
            assistant("a-2", "2026-02-24T10:00:05Z", "m1", [{"type": "text", "text": "new"}]),
            assistant("a-1", "2026-02-24T10:00:01Z", "m1", [{"type": "text", "text": "old"}]),
        )
        revision = resolve_revisions(recs)["m1"]
        assert revision.record.uuid == "a-2"
        assert revision.position == 0

    def test_duplicate_of_authoritative_record_emitted_once(self, tmp_path):
        line = assistant("a-1", "2026-02-24T10:00:01Z", "m1", [{"type": "text", "text": "once"}],
                         usage={"input_tokens": 7, "output_tokens": 1})
        session = build_session(tmp_path / "s.jsonl", records(line, line))
        assert len(session.events) == 1
        assert session.summary.input_tokens == 7

    def test_assistant_without_message_id_is_skipped(self, tmp_path):
        line = assistant("a-1", "2026-02-24T10:00:01Z", None, [{"type": "text", "text": "x"}])
        assert build_session(tmp_path / "s.jsonl", records(line)) is None


class TestTokenAccounting:
    def test_usage_counted_once_per_message(self, tmp_path):
        recs = []
        for i, (a, b, c, d) in enumerate([(10, 1, 100, 5), (20, 2, 200, 6)]):
            usage = {
                "input_tokens": a,
                "output_tokens": b,
                "cache_read_input_tokens": c,
                "cache_creation_input_tokens": d,
            }
            for rev in range(3):
                recs.append(assistant(
                    f"a-{i}-{rev}", f"2026-02-24T10:0{i}:0{rev}Z", f"m{i}",
                    [{"type": "text", "text": "partial " * (rev + 1)},
                     tool_use(f"toolu_{i}", "Grep", pattern="x")],
                    usage=usage,
                ))
        info = build_session(tmp_path / "s.jsonl", records(*recs)).summary

        assert (info.input_tokens, info.output_tokens) == (30, 3)
        assert (info.cache_read_tokens, info.cache_write_tokens) == (300, 11)
        assert info.total_tokens == 344
        assert info.cost_usd == pytest.approx(estimate_cost(30, 3, 300, 11))

    def test_assistant_events_carry_record_usage(self, tmp_path):
        recs = records(assistant(
            "a-1", "2026-02-24T10:00:01Z", "m1",
            [{"type": "text", "text": "a"}, tool_use("t", "Bash", command="pwd")],
            usage={"input_tokens": 4, "output_tokens": 2},
        ))
        events = build_session(tmp_path / "s.jsonl", recs).events
        assert [(e.input_tokens, e.output_tokens) for e in events] == [(4, 2), (4, 2)]

    def test_cost_uses_fixed_rates(self):
        assert estimate_cost(1_000_000, 0, 0, 0) == pytest.approx(15.0)
        assert estimate_cost(0, 1_000_000, 0, 0) == pytest.approx(75.0)
        assert estimate_cost(0, 0, 1_000_000, 0) == pytest.approx(1.5)
        assert estimate_cost(0, 0, 0, 1_000_000) == pytest.approx(18.75)


class TestFiltering:
    @pytest.mark.parametrize("block", [
        {"type": "text", "text": ""},
        {"type": "text", "text": "  \n\t"},
        {"type": "thinking", "thinking": ""},
        {"type": "thinking", "thinking": "   "},
    ])
    def test_blank_assistant_blocks_dropped(self, tmp_path, block):
        recs = records(
            user("u-1", "2026-02-24T10:00:00Z", "hello"),
            assistant("a-1", "2026-02-24T10:00:01Z", "m1", [block]),
        )
        session = build_session(tmp_path / "s.jsonl", recs)
        assert [e.type for e in session.events] == [EventType.USER_PROMPT]

    def test_blank_user_prompts_dropped(self, tmp_path):
        recs = records(
            user("u-1", "2026-02-24T10:00:00Z", "   "),
            user("u-2", "2026-02-24T10:00:01Z", [{"type": "text", "text": "\n"}]),
        )
        assert build_session(tmp_path / "s.jsonl", recs) is None

    def test_empty_tool_input_is_kept(self, tmp_path):
        recs = records(assistant("a-1", "2026-02-24T10:00:01Z", "m1",
                                 [{"type": "tool_use", "id": "t", "name": "TodoRead"}]))
        event = build_session(tmp_path / "s.jsonl", recs).events[0]
        assert isinstance(event, ToolUseEvent)
        assert event.tool_input == {}

    def test_compact_summary_produces_no_events(self, tmp_path):
        recs = records(
            user("u-1", "2026-02-24T10:00:00Z", "This session is being continued...",
                 isCompactSummary=True),
            user("u-2", "2026-02-24T10:00:01Z",
                 [{"type": "text", "text": "summary"}, tool_result("t", "x", is_error=True)],
                 isCompactSummary=True),
            user("u-3", "2026-02-24T10:00:02Z", "real prompt"),
        )
        session = build_session(tmp_path / "s.jsonl", recs)
        assert [e.uuid for e in session.events] == ["u-3"]
        assert session.summary.user_prompts == 1
        assert session.summary.errors == 0


class TestContentExpansion:
    def test_tool_result_list_content_concatenated(self, tmp_path):
        recs = records(user("u-1", "2026-02-24T10:00:00Z", [tool_result(
            "t1", [{"type": "text", "text": "line1\n"}, {"type": "image"}, {"type": "text", "text": "line2"}],
            is_error=True,
        )]))
        session = build_session(tmp_path / "s.jsonl", recs)
        event = session.events[0]
        assert isinstance(event, ToolResultEvent)
        assert event.output == "line1\nline2"
        assert event.is_error is True
        assert session.summary.errors == 1

    def test_orphan_tool_result_is_accepted(self, tmp_path):
        recs = records(user("u-1", "2026-02-24T10:00:00Z", [tool_result("never-seen", "ok")]))
        assert build_session(tmp_path / "s.jsonl", recs).events[0].tool_id == "never-seen"

    def test_compaction_boundary(self, tmp_path):
        recs = records(
            {"type": "system", "subtype": "compact_boundary", "uuid": "s-1",
             "timestamp": "2026-02-24T10:00:00Z",
             "compactMetadata": {"trigger": "manual", "preTokens": 120000}},
            {"type": "system", "subtype": "compact_boundary", "uuid": "s-2",
             "timestamp": "2026-02-24T10:00:01Z"},
            {"type": "system", "subtype": "informational", "uuid": "s-3",
             "timestamp": "2026-02-24T10:00:02Z", "content": "hello"},
        )
        events = build_session(tmp_path / "s.jsonl", recs).events
        assert events == (
            CompactionEvent(timestamp=events[0].timestamp, uuid="s-1", pre_tokens=120000, trigger="manual"),
            CompactionEvent(timestamp=events[1].timestamp, uuid="s-2", pre_tokens=0, trigger=""),
        )

    def test_file_sets_and_tool_counters(self, tmp_path):
        recs = records(assistant("a-1", "2026-02-24T10:00:01Z", "m1", [
            tool_use("t1", "Read", file_path="/p/a.py"),
            tool_use("t2", "Read", file_path="/p/a.py"),
            tool_use("t3", "Edit", file_path="/p/b.py", old_string="x", new_string="y"),
            tool_use("t4", "Write", file_path="/p/c.py", content="..."),
            tool_use("t5", "Bash", command="make"),
            tool_use("t6", "Read", file_path=42),
            tool_use("t7", "WebFetch", url="https://example.com", options={"deep": [1, True, None]}),
        ]))
        info = build_session(tmp_path / "s.jsonl", recs).summary
        assert info.tool_call_count == 7
        assert info.bash_commands == 1
        assert info.files_read == ("/p/a.py",)
        assert info.files_written == ("/p/b.py",)
        assert info.files_created == ("/p/c.py",)


class TestOrderingAndMetadata:
    def test_events_sorted_with_stable_ties(self, tmp_path):
        recs = records(
            user("u-2", "2026-02-24T10:00:05Z", "later"),
            user("u-1", "2026-02-24T10:00:01Z", "earlier"),
            assistant("a-1", "2026-02-24T10:00:05Z", "m1",
                      [{"type": "text", "text": "x"}, {"type": "text", "text": "y"}]),
        )
        events = build_session(tmp_path / "s.jsonl", recs).events
        assert [getattr(e, "text") for e in events] == ["earlier", "later", "x", "y"]
        stamps = [e.timestamp for e in events]
        assert stamps == sorted(stamps)

    def test_events_without_timestamp_sort_first(self, tmp_path):
        recs = records(
            user("u-1", "2026-02-24T10:00:01Z", "stamped"),
            user("u-2", None, "unstamped"),
            user("u-3", "not a time", "garbled"),
        )
        session = build_session(tmp_path / "s.jsonl", recs)
        assert [e.text for e in session.events] == ["unstamped", "garbled", "stamped"]
        assert session.events[0].timestamp is None
        assert session.summary.start_time == session.summary.last_update
        assert session.summary.start_time.second == 1

    def test_oversized_line_skipped(self, write_session):
        path = write_session(
            [user("u-1", "2026-02-24T10:00:00Z", "kept")],
            raw_lines=[
                json.dumps(user("u-2", "2026-02-24T10:00:01Z", "x" * 4096)),
                json.dumps(user("u-3", "2026-02-24T10:00:02Z", "also kept")),
            ],
        )
        session = parse_session_file(path, max_line_bytes=1024)
        assert [e.text for e in session.events] == ["kept", "also kept"]
        assert parse_session_file(path).summary.user_prompts == 3

    def test_summary_metadata(self, write_session):
        path = write_session([
            {"type": "system", "subtype": "init", "uuid": "s-0", "timestamp": "2026-02-24T09:59:00Z"},
            user("u-1", "2026-02-24T10:00:00Z", "hello"),
            assistant("a-1", "2026-02-24T10:05:00Z", "m1", [{"type": "text", "text": "hey"}],
                      model="<synthetic>"),
            assistant("a-2", "2026-02-24T10:06:00Z", "m2", [{"type": "text", "text": "hey"}]),
        ], session_id="agent-abc", project="-nonexistent-root-my-proj")
        info = parse_session_file(path).summary

        assert info.id == "agent-abc"
        assert info.is_agent is True
        assert info.cwd == "/work/demo"
        assert info.model == "claude-opus-4"
        assert info.start_time.minute == 59
        assert info.last_update.minute == 6
        assert info.duration_seconds == 420
        assert info.file_path == str(path)
        assert info.project_name == get_short_name(info.project_dir)

    def test_determinism(self, write_session):
        path = write_session([
            user("u-1", "2026-02-24T10:00:00Z", "go"),
            assistant("a-1", "2026-02-24T10:00:01Z", "m1", [
                tool_use("t1", "Read", file_path="/z.py"),
                tool_use("t2", "Read", file_path="/a.py"),
            ], usage={"input_tokens": 1, "output_tokens": 1}),
        ])
        first, second = parse_session_file(path), parse_session_file(path)
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()


class TestProjectPath:
    def test_missing_components_split_on_hyphens(self):
        assert decode_project_path("-nonexistent-root-proj") == "/nonexistent/root/proj"

    def test_hidden_component(self):
        assert decode_project_path("-nonexistent-me--claude") == "/nonexistent/me/.claude"

    def test_existing_parent_keeps_hyphenated_leaf(self, tmp_path):
        encoded = str(tmp_path).replace("/", "-") + "-my-project"
        assert decode_project_path(encoded) == str(tmp_path / "my-project")

    def test_root(self):
        assert decode_project_path("-") == "/"
        assert get_short_name("/") == "/"
