"""Shared fixtures for ccrecall tests."""

import json
import os
from pathlib import Path

import pytest

from ccrecall.index import SessionDatabase

BASE_TS = 1_700_000_000_000


class TranscriptFactory:
    """Builds Claude Code style JSONL records and writes them under a projects dir."""

    def __init__(self, projects_dir: Path):
        self.projects_dir = projects_dir
        self._mtime_ns = 1_700_000_000 * 1_000_000_000

    def user(self, uuid, text, ts=BASE_TS, session_id="session-1", **extra):
        record = {
            "type": "user",
            "uuid": uuid,
            "sessionId": session_id,
            "timestamp": ts,
            "cwd": "/home/user/webapp",
            "gitBranch": "main",
            "message": {"role": "user", "content": text},
        }
        record.update(extra)
        return record

    def assistant(
        self,
        uuid,
        content,
        ts=BASE_TS,
        session_id="session-1",
        input_tokens=100,
        output_tokens=50,
        **extra,
    ):
        if isinstance(content, str):
            content = [{"type": "text", "text": content}]
        record = {
            "type": "assistant",
            "uuid": uuid,
            "sessionId": session_id,
            "timestamp": ts,
            "message": {
                "role": "assistant",
                "model": "claude-sonnet-4-20250514",
                "content": content,
                "usage": {
                    "input_tokens": input_tokens,
                    "output_tokens": output_tokens,
                    "cache_read_input_tokens": 10,
                    "cache_creation_input_tokens": 5,
                },
            },
        }
        record.update(extra)
        return record

    def path(self, project="-home-user-webapp", session="session-1") -> Path:
        return self.projects_dir / project / f"{session}.jsonl"

    def write(self, records, project="-home-user-webapp", session="session-1") -> Path:
        path = self.path(project, session)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(json.dumps(r) + "\n" for r in records))
        self.touch(path)
        return path

    def append(self, path: Path, text: str) -> None:
        with open(path, "a") as f:
            f.write(text)
        self.touch(path)

    def append_records(self, path: Path, records) -> None:
        self.append(path, "".join(json.dumps(r) + "\n" for r in records))

    def touch(self, path: Path) -> None:
        """Give the file a strictly newer modification time."""
        self._mtime_ns += 1_000_000_000
        os.utime(path, ns=(self._mtime_ns, self._mtime_ns))


@pytest.fixture
def db(tmp_path):
    """An initialized database in a temporary directory."""
    database = SessionDatabase(tmp_path / "test.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def projects_dir(tmp_path):
    path = tmp_path / "projects"
    path.mkdir()
    return path


@pytest.fixture
def transcripts(projects_dir):
    return TranscriptFactory(projects_dir)
