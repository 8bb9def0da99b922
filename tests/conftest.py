import json

import pytest


# Lines that json.loads or the kind check reject with something other than
# a JSONDecodeError.
HOSTILE_LINES = [
    pytest.param('{"type": ["user"]}', id="list-type"),
    pytest.param("[" + "1" * 5000 + "]", id="huge-integer"),
    pytest.param("[" * 100_000 + "]" * 100_000, id="deep-nesting"),
]


def user(uuid, ts, content, **extra):
    return {
        "type": "user",
        "uuid": uuid,
        "timestamp": ts,
        "cwd": "/work/demo",
        "message": {"role": "user", "content": content},
        **extra,
    }


def assistant(uuid, ts, message_id, content, usage=None, model="claude-opus-4"):
    message = {"role": "assistant", "id": message_id, "model": model, "content": content}
    if usage is not None:
        message["usage"] = usage
    return {
        "type": "assistant",
        "uuid": uuid,
        "timestamp": ts,
        "cwd": "/work/demo",
        "message": message,
    }


def tool_use(tool_id, name, **params):
    return {"type": "tool_use", "id": tool_id, "name": name, "input": params}


def tool_result(tool_id, content, is_error=False):
    return {"type": "tool_result", "tool_use_id": tool_id, "content": content, "is_error": is_error}


@pytest.fixture
def projects_dir(tmp_path):
    d = tmp_path / "projects"
    d.mkdir()
    return d


@pytest.fixture
def write_session(projects_dir):
    """Write records as a JSONL transcript and return its path."""

    def _write(records, session_id="sess-1", project="-work-demo", raw_lines=()):
        project_dir = projects_dir / project
        project_dir.mkdir(exist_ok=True)
        path = project_dir / f"{session_id}.jsonl"
        lines = [json.dumps(r) for r in records] + list(raw_lines)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
