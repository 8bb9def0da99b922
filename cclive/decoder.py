"""
Entry decoding: one JSONL line in, one RawRecord out.

Transcript files are rewritten by Claude Code while we read them, so a line
may be truncated mid-flush. Such lines fail to decode and are skipped by
read_records(); they never abort the rest of the file.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError

from cclive.config import DEFAULT_MAX_LINE_BYTES
from cclive.models import RawRecord, RecordType

logger = logging.getLogger("cclive.decoder")

_RECORD_TYPES = frozenset(t.value for t in RecordType)
_BOM = "\ufeff"
_CHUNK = 64 * 1024


class EntryDecodeError(ValueError):
    """A transcript line could not be turned into a RawRecord."""


def decode_entry(line: str | bytes) -> RawRecord:
    """Decode a single transcript line.

    Raises EntryDecodeError for malformed JSON, non-object payloads, record
    kinds outside user/assistant/system, and payloads that fail validation.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if line.startswith(_BOM):
        line = line[1:]
    if not line:
        raise EntryDecodeError("empty line")

    try:
        obj = json.loads(line, strict=False)
    except (ValueError, RecursionError) as e:
        # oversized integers and runaway nesting fail here too
        raise EntryDecodeError(f"invalid JSON: {e}") from e

    if not isinstance(obj, dict):
        raise EntryDecodeError(f"expected an object, got {type(obj).__name__}")

    line_type = obj.get("type")
    if not isinstance(line_type, str) or line_type not in _RECORD_TYPES:
        raise EntryDecodeError(f"not a transcript record: {line_type!r}")

    try:
        return RawRecord.model_validate(obj)
    except ValidationError as e:
        raise EntryDecodeError(f"invalid {line_type} record: {e.error_count()} errors") from e


def iter_lines(f: BinaryIO, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> Iterator[bytes]:
    """Yield lines from a binary stream, dropping any longer than max_line_bytes.

    An oversized line is consumed in chunks up to its newline and never held
    in memory as a whole.
    """
    while True:
        line = f.readline(max_line_bytes + 1)
        if not line:
            return
        if len(line) > max_line_bytes and not line.endswith(b"\n"):
            skipped = len(line)
            while True:
                rest = f.readline(_CHUNK)
                skipped += len(rest)
                if not rest or rest.endswith(b"\n"):
                    break
            logger.warning(f"Skipping oversized line ({skipped} bytes) in {getattr(f, 'name', '?')}")
            continue
        yield line


def read_records(path: Path, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> list[RawRecord]:
    """Decode every line of a transcript file, skipping the ones that fail.

    OSError (file vanished, permission denied) propagates to the caller.
    """
    records: list[RawRecord] = []
    skipped = 0
    with open(path, "rb") as f:
        for line in iter_lines(f, max_line_bytes):
            if not line.strip():
                continue
            try:
                records.append(decode_entry(line))
            except EntryDecodeError:
                skipped += 1
    if skipped:
        logger.debug(f"{path.name}: skipped {skipped} undecodable lines")
    return records
