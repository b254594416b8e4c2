"""Sync of agent team configs and team task files."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .database import SessionDatabase

logger = logging.getLogger(__name__)


@dataclass
class TeamSyncResult:
    teams_synced: int = 0
    members_synced: int = 0
    tasks_synced: int = 0


def _load_json(path: Path) -> Optional[dict]:
    try:
        with open(path) as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Skipping {path}: {e}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Skipping {path}: expected a JSON object")
        return None
    return data


def _subdirs(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir())


def sync_teams(
    db: SessionDatabase,
    teams_dirs: Iterable[Path],
    tasks_dirs: Iterable[Path],
) -> TeamSyncResult:
    """Upsert teams, members and tasks found on disk.

    Layout:
        <teams_dir>/<team>/config.json     team name, lead and members
        <tasks_dir>/<team>/<task>.json     one task per file

    The team directory name is the team id. Unreadable files are skipped.
    """
    result = TeamSyncResult()

    with db.transaction():
        for teams_dir in teams_dirs:
            for team_dir in _subdirs(Path(teams_dir)):
                config_path = team_dir / "config.json"
                if not config_path.exists():
                    continue
                config = _load_json(config_path)
                if config is None or not config.get("name"):
                    continue

                team_id = team_dir.name
                logger.debug(f"Team: {config['name']}")
                db.upsert_team(
                    team_id,
                    config["name"],
                    description=config.get("description"),
                    lead_session_id=config.get("leadSessionId"),
                    created_at=config.get("createdAt"),
                )
                result.teams_synced += 1

                for member in config.get("members") or []:
                    if not isinstance(member, dict) or not member.get("agentId"):
                        continue
                    db.upsert_team_member(
                        member["agentId"],
                        team_id,
                        member.get("name") or member["agentId"],
                        agent_type=member.get("agentType"),
                        model=member.get("model"),
                        prompt=member.get("prompt"),
                        color=member.get("color"),
                        cwd=member.get("cwd"),
                        joined_at=member.get("joinedAt", config.get("createdAt")),
                    )
                    result.members_synced += 1

        for tasks_dir in tasks_dirs:
            for team_dir in _subdirs(Path(tasks_dir)):
                for task_path in sorted(team_dir.glob("*.json")):
                    task = _load_json(task_path)
                    if task is None or not task.get("id") or not task.get("subject"):
                        continue
                    db.upsert_team_task(
                        f"{team_dir.name}:{task['id']}",
                        team_dir.name,
                        task["subject"],
                        owner_name=task.get("owner"),
                        description=task.get("description"),
                        status=task.get("status"),
                    )
                    result.tasks_synced += 1

    logger.info(
        f"Team sync complete: {result.teams_synced} teams, "
        f"{result.members_synced} members, {result.tasks_synced} tasks"
    )
    return result
