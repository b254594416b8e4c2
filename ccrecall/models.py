"""Records produced by the transcript parser."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ToolCall:
    """A tool invocation embedded in an assistant message."""

    id: str
    tool_name: str
    tool_input: Optional[str] = None  # JSON-encoded input arguments


@dataclass
class ToolResult:
    """The result of a tool invocation, embedded in a user message."""

    tool_call_id: str
    content: Optional[str] = None
    is_error: bool = False


@dataclass
class ParsedMessage:
    """One structured record read from a transcript line."""

    # Identity
    uuid: Optional[str]  # None for summary records
    session_id: str
    type: str  # "user", "assistant", "system", "summary", ...
    parent_uuid: Optional[str] = None

    # Session context
    cwd: Optional[str] = None
    git_branch: Optional[str] = None

    # Content
    model: Optional[str] = None
    content_text: Optional[str] = None
    content_json: Optional[str] = None
    thinking: Optional[str] = None
    summary: Optional[str] = None

    # Timing (milliseconds since epoch)
    timestamp: Optional[int] = None

    # Usage
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    # Secondary entities
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)

    @property
    def is_summary(self) -> bool:
        return self.type == "summary"
