"""
Typed records, events and session models.

Raw records mirror one JSONL line as written by Claude Code. Events and
sessions are what the index serves; all of them are frozen once built.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, computed_field, field_validator

EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(ts: Any) -> datetime | None:
    """Parse timestamp from the formats found in JSONL (ISO strings or epoch seconds)."""
    if isinstance(ts, datetime):
        parsed = ts
    elif isinstance(ts, str) and ts:
        try:
            parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        except ValueError:
            return None
    elif isinstance(ts, (int, float)) and not isinstance(ts, bool) and ts > 0:
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OSError, ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def sort_key(ts: datetime | None) -> datetime:
    """Missing timestamps order before every real one."""
    return ts if ts is not None else EPOCH


# ═══════════════════════════════════════════════════════════════════════════════
# Raw records
# ═══════════════════════════════════════════════════════════════════════════════


class RecordType(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Usage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_input_tokens: int = 0
    cache_creation_input_tokens: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class CompactMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    trigger: str = ""
    pre_tokens: int = Field(default=0, alias="preTokens")

    @field_validator("trigger", mode="before")
    @classmethod
    def _null_trigger(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("pre_tokens", mode="before")
    @classmethod
    def _null_pre_tokens(cls, v: Any) -> Any:
        return 0 if v is None else v


class RawMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str | None = None
    # str for plain user prompts, list of content blocks otherwise
    content: str | list[Any] | None = None
    model: str | None = None
    id: str | None = None
    usage: Usage | None = None


class RawRecord(BaseModel):
    """One decoded transcript line."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: RecordType
    uuid: str = ""
    parent_uuid: str | None = Field(default=None, alias="parentUuid")
    session_id: str | None = Field(default=None, alias="sessionId")
    timestamp: datetime | None = None
    cwd: str | None = None
    version: str | None = None
    git_branch: str | None = Field(default=None, alias="gitBranch")
    subtype: str | None = None
    message: RawMessage | None = None
    compact_metadata: CompactMetadata | None = Field(default=None, alias="compactMetadata")
    is_compact_summary: bool = Field(default=False, alias="isCompactSummary")
    is_sidechain: bool = Field(default=False, alias="isSidechain")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_ts(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("uuid", mode="before")
    @classmethod
    def _null_uuid(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("is_compact_summary", "is_sidechain", mode="before")
    @classmethod
    def _null_flag(cls, v: Any) -> Any:
        return False if v is None else v

    @property
    def message_id(self) -> str | None:
        if self.message is None:
            return None
        return self.message.id or None


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


class EventType(str, Enum):
    USER_PROMPT = "user_prompt"
    THINKING = "thinking"
    TEXT = "text"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    SYSTEM = "system"
    COMPACTION = "compaction"


class _EventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None
    uuid: str = ""


class UserPromptEvent(_EventBase):
    type: Literal[EventType.USER_PROMPT] = EventType.USER_PROMPT
    text: str


class ThinkingEvent(_EventBase):
    type: Literal[EventType.THINKING] = EventType.THINKING
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class TextEvent(_EventBase):
    type: Literal[EventType.TEXT] = EventType.TEXT
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class ToolUseEvent(_EventBase):
    type: Literal[EventType.TOOL_USE] = EventType.TOOL_USE
    tool_name: str
    tool_input: dict[str, JsonValue] = Field(default_factory=dict)
    tool_id: str = ""
    input_tokens: int = 0
    output_tokens: int = 0


class ToolResultEvent(_EventBase):
    type: Literal[EventType.TOOL_RESULT] = EventType.TOOL_RESULT
    tool_id: str = ""
    output: str = ""
    is_error: bool = False


class SystemEvent(_EventBase):
    type: Literal[EventType.SYSTEM] = EventType.SYSTEM
    subtype: str = ""
    text: str = ""


class CompactionEvent(_EventBase):
    type: Literal[EventType.COMPACTION] = EventType.COMPACTION
    pre_tokens: int = 0
    trigger: str = ""


Event = Annotated[
    Union[
        UserPromptEvent,
        ThinkingEvent,
        TextEvent,
        ToolUseEvent,
        ToolResultEvent,
        SystemEvent,
        CompactionEvent,
    ],
    Field(discriminator="type"),
]


# ═══════════════════════════════════════════════════════════════════════════════
# Sessions
# ═══════════════════════════════════════════════════════════════════════════════


class SessionSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    project_dir: str
    project_name: str
    file_path: str
    cwd: str | None = None
    model: str | None = None
    is_agent: bool = False
    start_time: datetime | None = None
    last_update: datetime | None = None

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    cost_usd: float = 0.0

    event_count: int = 0
    tool_call_count: int = 0
    user_prompts: int = 0
    bash_commands: int = 0
    errors: int = 0
    files_read: tuple[str, ...] = ()
    files_written: tuple[str, ...] = ()
    files_created: tuple[str, ...] = ()

    @computed_field
    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )

    @computed_field
    @property
    def duration_seconds(self) -> int | None:
        if not self.start_time or not self.last_update:
            return None
        delta = (self.last_update - self.start_time).total_seconds()
        return int(delta) if delta > 0 else None


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: SessionSummary
    events: tuple[Event, ...] = ()

    @property
    def id(self) -> str:
        return self.summary.id


class SessionListResponse(BaseModel):
    sessions: list[SessionSummary]
    total_count: int
    project: str | None = None
