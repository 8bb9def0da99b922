"""
Revision resolution for assistant messages.

Claude Code writes the same assistant message several times while it is
streamed: each line carries the same message id and progressively more
content. Only one of them, the authoritative revision, may reach the
timeline.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from cclive.models import RawRecord, RecordType, sort_key


@dataclass(frozen=True)
class Revision:
    record: RawRecord
    position: int

    def matches(self, record: RawRecord, position: int) -> bool:
        """True if record is this revision (or a byte-for-byte repeat of it)."""
        if self.record.uuid:
            return record.uuid == self.record.uuid
        return position == self.position


def resolve_revisions(records: Sequence[RawRecord]) -> dict[str, Revision]:
    """Map each assistant message id to its authoritative revision.

    A strictly later timestamp replaces the current candidate; on equal
    timestamps the record found later in the file wins. Assistant records
    without a message id have no revisions and are left out.
    """
    resolved: dict[str, Revision] = {}
    for position, record in enumerate(records):
        if record.type is not RecordType.ASSISTANT:
            continue
        message_id = record.message_id
        if message_id is None:
            continue
        current = resolved.get(message_id)
        if current is None or sort_key(record.timestamp) >= sort_key(current.record.timestamp):
            resolved[message_id] = Revision(record=record, position=position)
    return resolved
