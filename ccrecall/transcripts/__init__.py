"""Discovery and parsing of JSONL transcript files."""

from .parser import TranscriptReader, parse_file, parse_record
from .scanner import discover_transcripts, project_path_for

__all__ = [
    "TranscriptReader",
    "parse_file",
    "parse_record",
    "discover_transcripts",
    "project_path_for",
]
