"""Transcript discovery under a Claude projects directory."""

from pathlib import Path


def decode_path(encoded: str) -> str:
    """Decode a project directory name back to the original path."""
    return encoded.replace("-", "/")


def discover_transcripts(root: Path) -> list[Path]:
    """Discover all JSONL transcript files below ``root``.

    A missing root yields an empty list. Results are sorted so repeated calls
    within one run see the same order.
    """
    root = Path(root)
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*.jsonl") if p.is_file())


def project_path_for(root: Path, file_path: Path) -> str:
    """Derive the project path from the directory a transcript lives in.

    Claude Code stores transcripts as ``<root>/<encoded-project>/<session>.jsonl``
    where the encoded name is the absolute project path with ``/`` replaced by
    ``-`` (``-home-user-webapp``).
    """
    file_path = Path(file_path)
    try:
        parts = file_path.relative_to(root).parts
    except ValueError:
        parts = (file_path.parent.name, file_path.name)
    if len(parts) < 2:
        return ""
    project_dir = parts[0]
    if project_dir.startswith("-"):
        return decode_path(project_dir)
    return project_dir
