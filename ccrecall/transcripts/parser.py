"""Incremental parser for Claude Code JSONL transcripts."""

import json
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from ..exceptions import TranscriptReadError
from ..models import ParsedMessage, ToolCall, ToolResult

logger = logging.getLogger(__name__)

# Bookkeeping records that carry no conversation content
IGNORED_TYPES = ("file-history-snapshot", "progress", "queue-operation")

# SQLite INTEGER is a signed 64-bit value
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


def _as_int64(value) -> Optional[int]:
    """Integer value of a JSON number, or None if it cannot be stored."""
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = int(value)
    if INT64_MIN <= value <= INT64_MAX:
        return value
    return None


def parse_timestamp(value) -> Optional[int]:
    """Convert a record timestamp (ms number or ISO-8601 string) to epoch ms."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _as_int64(value)
    if isinstance(value, str):
        value = value.strip()
        if value.isdecimal():
            return _as_int64(int(value))
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return None


def _text(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _token_count(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    count = _as_int64(value)
    return count if count is not None else 0


def _tool_result_text(content) -> Optional[str]:
    if content is None:
        return None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        texts = [
            _text(item.get("text"))
            for item in content
            if isinstance(item, dict) and item.get("type") == "text"
        ]
        return "\n".join(t for t in texts if t) or None
    return json.dumps(content)


def extract_content(content) -> dict:
    """Split message content into text, thinking, raw JSON and tool entities.

    String content is plain text. List content is a sequence of typed blocks
    (``text``, ``thinking``, ``tool_use``, ``tool_result``); it is also kept
    verbatim as JSON.
    """
    extracted = {
        "content_text": None,
        "content_json": None,
        "thinking": None,
        "tool_calls": [],
        "tool_results": [],
    }
    if content is None:
        return extracted
    if isinstance(content, str):
        extracted["content_text"] = content or None
        return extracted
    if not isinstance(content, list):
        extracted["content_json"] = json.dumps(content)
        return extracted

    extracted["content_json"] = json.dumps(content)
    texts = []
    thoughts = []
    for block in content:
        if isinstance(block, str):
            texts.append(block)
            continue
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            if _text(block.get("text")):
                texts.append(block["text"])
        elif block_type == "thinking":
            if _text(block.get("thinking")):
                thoughts.append(block["thinking"])
        elif block_type == "tool_use" and _text(block.get("id")):
            extracted["tool_calls"].append(ToolCall(
                id=block["id"],
                tool_name=_text(block.get("name")) or "unknown",
                tool_input=json.dumps(block.get("input", {})),
            ))
        elif block_type == "tool_result" and _text(block.get("tool_use_id")):
            extracted["tool_results"].append(ToolResult(
                tool_call_id=block["tool_use_id"],
                content=_tool_result_text(block.get("content")),
                is_error=bool(block.get("is_error")),
            ))

    extracted["content_text"] = "\n".join(texts) or None
    extracted["thinking"] = "\n".join(thoughts) or None
    return extracted


def _flat_tool_entities(data: dict) -> tuple[list[ToolCall], list[ToolResult]]:
    """Tool entities given as top-level lists instead of content blocks."""
    calls = []
    for item in data.get("tool_calls") or []:
        if isinstance(item, dict) and _text(item.get("id")):
            tool_input = item.get("tool_input", item.get("input"))
            if tool_input is not None and not isinstance(tool_input, str):
                tool_input = json.dumps(tool_input)
            calls.append(ToolCall(
                id=item["id"],
                tool_name=_text(item.get("tool_name")) or _text(item.get("name")) or "unknown",
                tool_input=tool_input,
            ))
    results = []
    for item in data.get("tool_results") or []:
        if isinstance(item, dict) and _text(item.get("tool_call_id")):
            results.append(ToolResult(
                tool_call_id=item["tool_call_id"],
                content=_tool_result_text(item.get("content")),
                is_error=bool(item.get("is_error")),
            ))
    return calls, results


def parse_record(data: dict, fallback_session_id: str) -> Optional[ParsedMessage]:
    """Turn one decoded JSON line into a ParsedMessage.

    Returns None for records that carry no conversation content.
    """
    record_type = _text(data.get("type")) or "unknown"
    session_id = (
        _text(data.get("sessionId")) or _text(data.get("session_id")) or fallback_session_id
    )
    timestamp = parse_timestamp(data.get("timestamp"))

    if record_type == "summary":
        summary = _text(data.get("summary"))
        if not summary:
            return None
        return ParsedMessage(
            uuid=None,
            session_id=session_id,
            type=record_type,
            summary=summary,
            timestamp=timestamp,
        )

    uuid = _text(data.get("uuid"))
    if not uuid or record_type in IGNORED_TYPES:
        return None
    if timestamp is None:
        logger.warning(f"Skipping record {uuid}: missing or invalid timestamp")
        return None

    message = data.get("message")
    if not isinstance(message, dict):
        message = {}

    if "content" in message:
        extracted = extract_content(message.get("content"))
    else:
        extracted = extract_content(data.get("content"))
        for key in ("content_text", "content_json", "thinking"):
            if _text(data.get(key)):
                extracted[key] = data[key]
        flat_calls, flat_results = _flat_tool_entities(data)
        extracted["tool_calls"].extend(flat_calls)
        extracted["tool_results"].extend(flat_results)

    usage = message.get("usage")
    if not isinstance(usage, dict):
        usage = data

    return ParsedMessage(
        uuid=uuid,
        session_id=session_id,
        type=record_type,
        parent_uuid=_text(data.get("parentUuid")) or _text(data.get("parent_uuid")),
        cwd=_text(data.get("cwd")),
        git_branch=_text(data.get("gitBranch")) or _text(data.get("git_branch")),
        model=_text(message.get("model")) or _text(data.get("model")),
        content_text=extracted["content_text"],
        content_json=extracted["content_json"],
        thinking=extracted["thinking"],
        summary=_text(data.get("summary")),
        timestamp=timestamp,
        input_tokens=_token_count(usage.get("input_tokens")),
        output_tokens=_token_count(usage.get("output_tokens")),
        cache_read_tokens=_token_count(
            usage.get("cache_read_input_tokens", usage.get("cache_read_tokens"))
        ),
        cache_creation_tokens=_token_count(
            usage.get("cache_creation_input_tokens", usage.get("cache_creation_tokens"))
        ),
        tool_calls=extracted["tool_calls"],
        tool_results=extracted["tool_results"],
    )


class TranscriptReader:
    """Forward-only cursor over one transcript file.

    Iterating yields ``(record, offset)`` pairs, where ``offset`` is the byte
    position just past the record's line. ``self.offset`` tracks every fully
    consumed line, including blank, malformed and ignored ones, so it is the
    position to resume from once iteration ends. An unterminated trailing
    line is left unread: the writer may still be appending to it.
    """

    def __init__(self, path: Path, start_offset: int = 0):
        self.path = Path(path)
        self.offset = start_offset
        self.fallback_session_id = self.path.stem

    def __iter__(self) -> Iterator[tuple[ParsedMessage, int]]:
        try:
            f = open(self.path, "rb")
        except OSError as e:
            raise TranscriptReadError(self.path, e) from e

        with f:
            try:
                f.seek(self.offset)
                while True:
                    line = f.readline()
                    if not line:
                        break
                    if not line.endswith(b"\n"):
                        logger.debug(
                            f"Holding back partial line at {self.path}:{self.offset}"
                        )
                        break
                    line_offset = self.offset
                    self.offset += len(line)
                    record = self._parse_line(line, line_offset)
                    if record is not None:
                        yield record, self.offset
            except OSError as e:
                raise TranscriptReadError(self.path, e) from e

    def _parse_line(self, line: bytes, line_offset: int) -> Optional[ParsedMessage]:
        if not line.strip():
            return None
        try:
            data = json.loads(line)
        except ValueError as e:
            logger.warning(f"Skipping malformed line at {self.path}:{line_offset}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Skipping non-object line at {self.path}:{line_offset}")
            return None
        return parse_record(data, self.fallback_session_id)


def parse_file(path: Path, start_offset: int = 0) -> Iterator[tuple[ParsedMessage, int]]:
    """Yield ``(record, offset)`` pairs from ``path`` starting at ``start_offset``."""
    yield from TranscriptReader(path, start_offset)
