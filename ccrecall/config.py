"""Default locations used by the command line front end.

Library classes never read these; they always take explicit paths.
"""

import os
from pathlib import Path
from typing import Optional

DB_ENV_VAR = "CCRECALL_DB"
CLAUDE_DIR_ENV_VAR = "CLAUDE_CONFIG_DIR"


def claude_dir(env: Optional[dict] = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(CLAUDE_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".claude"


def default_db_path(env: Optional[dict] = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(DB_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return claude_dir(env) / "cclog.db"


def projects_dir(env: Optional[dict] = None) -> Path:
    return claude_dir(env) / "projects"


def teams_dirs(env: Optional[dict] = None) -> list[Path]:
    return [claude_dir(env) / "teams"]


def tasks_dirs(env: Optional[dict] = None) -> list[Path]:
    return [claude_dir(env) / "tasks"]
