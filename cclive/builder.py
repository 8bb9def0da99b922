"""
Event timeline construction and session aggregation.

build_session() is the second pass over a file's records: it expands content
blocks into events, emits each assistant message once (at its authoritative
revision) and accumulates the summary counters in the same walk.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from cclive.config import DEFAULT_MAX_LINE_BYTES
from cclive.decoder import read_records
from cclive.models import (
    CompactionEvent,
    Event,
    RawRecord,
    RecordType,
    Session,
    SessionSummary,
    TextEvent,
    ThinkingEvent,
    ToolResultEvent,
    ToolUseEvent,
    UserPromptEvent,
    sort_key,
)
from cclive.resolver import resolve_revisions

logger = logging.getLogger("cclive.builder")

# Published Opus list prices, USD per million tokens.
INPUT_PRICE_PER_M = 15.0
OUTPUT_PRICE_PER_M = 75.0
CACHE_READ_PRICE_PER_M = 1.5
CACHE_WRITE_PRICE_PER_M = 18.75

SYNTHETIC_MODEL = "<synthetic>"


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: int,
    cache_write_tokens: int,
) -> float:
    """Rough API-equivalent cost in USD. Not an invoice."""
    return (
        input_tokens * INPUT_PRICE_PER_M
        + output_tokens * OUTPUT_PRICE_PER_M
        + cache_read_tokens * CACHE_READ_PRICE_PER_M
        + cache_write_tokens * CACHE_WRITE_PRICE_PER_M
    ) / 1_000_000


# ═══════════════════════════════════════════════════════════════════════════════
# Project paths
# ═══════════════════════════════════════════════════════════════════════════════


def decode_project_path(dir_name: str) -> str:
    """Decode a Claude project directory name back to a filesystem path.

    Claude Code encodes absolute paths by replacing '/' and '.' with '-':
        '-Users-me-code'         -> '/Users/me/code'
        '-Users-me--claude'      -> '/Users/me/.claude'

    A hyphen could also be a literal '-', so components are matched greedily
    against the filesystem, longest first. Components that no longer exist
    fall back to one directory per hyphen, except that the remainder under an
    existing parent is taken as a single (possibly deleted) leaf.
    """
    stripped = dir_name.lstrip("-")
    if not stripped:
        return "/"

    parts = stripped.split("-")
    path = "/"
    i = 0
    while i < len(parts):
        # consecutive dashes mark a dot-prefixed (hidden) component
        prefix = ""
        if parts[i] == "":
            prefix = "."
            i += 1
            if i >= len(parts):
                break

        found = False
        for j in range(len(parts), i, -1):
            candidate = os.path.join(path, prefix + "-".join(parts[i:j]))
            if os.path.exists(candidate):
                path = candidate
                i = j
                found = True
                break
        if found:
            continue

        if os.path.isdir(path) and path != "/":
            path = os.path.join(path, prefix + "-".join(parts[i:]))
            i = len(parts)
        else:
            path = os.path.join(path, prefix + parts[i])
            i += 1

    return path


def get_short_name(decoded_path: str) -> str:
    """Last meaningful component of a decoded path."""
    parts = decoded_path.rstrip("/").rsplit("/", 1)
    return parts[-1] if parts[-1] else "/"


def is_valid_session_file(filename: str) -> bool:
    return filename.endswith(".jsonl") and not filename.startswith(".")


# ═══════════════════════════════════════════════════════════════════════════════
# Content block expansion
# ═══════════════════════════════════════════════════════════════════════════════


def _tool_result_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            item["text"]
            for item in content
            if isinstance(item, dict) and isinstance(item.get("text"), str)
        )
    return json.dumps(content)


def _user_events(record: RawRecord) -> list[Event]:
    content = record.message.content if record.message else None
    ts = record.timestamp

    if isinstance(content, str):
        if not content.strip():
            return []
        return [UserPromptEvent(timestamp=ts, uuid=record.uuid, text=content)]
    if not isinstance(content, list):
        return []

    events: list[Event] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "tool_result":
            tool_use_id = block.get("tool_use_id")
            events.append(ToolResultEvent(
                timestamp=ts,
                uuid=record.uuid,
                tool_id=tool_use_id if isinstance(tool_use_id, str) else "",
                output=_tool_result_text(block.get("content")),
                is_error=block.get("is_error") is True,
            ))
        elif block_type == "text":
            text = block.get("text")
            if isinstance(text, str) and text.strip():
                events.append(UserPromptEvent(timestamp=ts, uuid=record.uuid, text=text))
    return events


def _assistant_events(record: RawRecord, ts: datetime | None, uuid: str) -> list[Event]:
    """Expand the authoritative revision's blocks; ts/uuid come from the emitting line."""
    message = record.message
    if message is None or not isinstance(message.content, list):
        return []

    usage = message.usage
    tokens = {
        "input_tokens": usage.input_tokens if usage else 0,
        "output_tokens": usage.output_tokens if usage else 0,
    }

    events: list[Event] = []
    for block in message.content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "thinking":
            thinking = block.get("thinking")
            if isinstance(thinking, str) and thinking.strip():
                events.append(ThinkingEvent(timestamp=ts, uuid=uuid, text=thinking, **tokens))
        elif block_type == "text":
            text = block.get("text")
            if isinstance(text, str) and text.strip():
                events.append(TextEvent(timestamp=ts, uuid=uuid, text=text, **tokens))
        elif block_type == "tool_use":
            name = block.get("name")
            tool_id = block.get("id")
            tool_input = block.get("input")
            events.append(ToolUseEvent(
                timestamp=ts,
                uuid=uuid,
                tool_name=name if isinstance(name, str) else "",
                tool_input=tool_input if isinstance(tool_input, dict) else {},
                tool_id=tool_id if isinstance(tool_id, str) else "",
                **tokens,
            ))
    return events


def _system_events(record: RawRecord) -> list[Event]:
    if record.subtype != "compact_boundary":
        return []
    meta = record.compact_metadata
    return [CompactionEvent(
        timestamp=record.timestamp,
        uuid=record.uuid,
        pre_tokens=meta.pre_tokens if meta else 0,
        trigger=meta.trigger if meta else "",
    )]


# ═══════════════════════════════════════════════════════════════════════════════
# Aggregation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _Totals:
    start_time: datetime | None = None
    last_update: datetime | None = None
    cwd: str | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    tool_calls: int = 0
    user_prompts: int = 0
    bash_commands: int = 0
    errors: int = 0
    files_read: set[str] = field(default_factory=set)
    files_written: set[str] = field(default_factory=set)
    files_created: set[str] = field(default_factory=set)

    def observe(self, record: RawRecord) -> None:
        ts = record.timestamp
        if ts is not None:
            if self.start_time is None or ts < self.start_time:
                self.start_time = ts
            if self.last_update is None or ts > self.last_update:
                self.last_update = ts
        if self.cwd is None and record.cwd:
            self.cwd = record.cwd

    def count(self, event: Event) -> None:
        if isinstance(event, UserPromptEvent):
            self.user_prompts += 1
        elif isinstance(event, ToolResultEvent):
            if event.is_error:
                self.errors += 1
        elif isinstance(event, ToolUseEvent):
            self.tool_calls += 1
            if event.tool_name == "Bash":
                self.bash_commands += 1
                return
            target = {
                "Read": self.files_read,
                "Write": self.files_created,
                "Edit": self.files_written,
            }.get(event.tool_name)
            file_path = event.tool_input.get("file_path")
            if target is not None and isinstance(file_path, str):
                target.add(file_path)

    def add_usage(self, record: RawRecord) -> None:
        message = record.message
        if message is None:
            return
        if self.model is None and message.model and message.model != SYNTHETIC_MODEL:
            self.model = message.model
        if message.usage is None:
            return
        self.input_tokens += message.usage.input_tokens
        self.output_tokens += message.usage.output_tokens
        self.cache_read_tokens += message.usage.cache_read_input_tokens
        self.cache_write_tokens += message.usage.cache_creation_input_tokens


# ═══════════════════════════════════════════════════════════════════════════════
# Session construction
# ═══════════════════════════════════════════════════════════════════════════════


def build_session(path: Path, records: Sequence[RawRecord]) -> Session | None:
    """Build a Session from one file's decoded records.

    Returns None when the file yields no events at all.
    """
    revisions = resolve_revisions(records)
    emitted: set[str] = set()
    totals = _Totals()
    events: list[Event] = []

    for position, record in enumerate(records):
        totals.observe(record)

        if record.type is RecordType.SYSTEM:
            new_events = _system_events(record)
        elif record.type is RecordType.USER:
            if record.message is None or record.is_compact_summary:
                continue
            new_events = _user_events(record)
        else:
            message_id = record.message_id
            if message_id is None or message_id in emitted:
                continue
            revision = revisions[message_id]
            if not revision.matches(record, position):
                continue
            emitted.add(message_id)
            new_events = _assistant_events(revision.record, record.timestamp, record.uuid)
            totals.add_usage(revision.record)

        for event in new_events:
            totals.count(event)
        events.extend(new_events)

    if not events:
        return None

    # stable sort keeps file order for equal timestamps
    events.sort(key=lambda e: sort_key(e.timestamp))

    project_dir = decode_project_path(path.parent.name)
    summary = SessionSummary(
        id=path.stem,
        project_dir=project_dir,
        project_name=get_short_name(project_dir),
        file_path=str(path),
        cwd=totals.cwd,
        model=totals.model,
        is_agent=path.name.startswith("agent-"),
        start_time=totals.start_time,
        last_update=totals.last_update,
        input_tokens=totals.input_tokens,
        output_tokens=totals.output_tokens,
        cache_read_tokens=totals.cache_read_tokens,
        cache_write_tokens=totals.cache_write_tokens,
        cost_usd=estimate_cost(
            totals.input_tokens,
            totals.output_tokens,
            totals.cache_read_tokens,
            totals.cache_write_tokens,
        ),
        event_count=len(events),
        tool_call_count=totals.tool_calls,
        user_prompts=totals.user_prompts,
        bash_commands=totals.bash_commands,
        errors=totals.errors,
        files_read=tuple(sorted(totals.files_read)),
        files_written=tuple(sorted(totals.files_written)),
        files_created=tuple(sorted(totals.files_created)),
    )
    return Session(summary=summary, events=tuple(events))


def parse_session_file(path: Path, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> Session | None:
    """Decode, resolve and build one transcript file. OSError propagates."""
    records = read_records(path, max_line_bytes)
    return build_session(path, records)
