from __future__ import annotations

"""
Shared wiring and rendering for scripts/backup_*.py, migrate_*.py, portable_*.py.

Keys are never taken from argv (shell history, process list): they come from an
environment variable named on the command line, or an interactive prompt.
"""

import argparse
import dataclasses
import getpass
import json
import os
import time
from typing import Any, List, Optional, Tuple

from automaton.core.backup.api import BackupService
from automaton.core.backup.models import BackupInfo
from automaton.core.config.paths import StatePaths
from automaton.core.logger import setup_logging
from automaton.core.migration.migrate import MigrationManager
from automaton.core.ops_log import OpsLogger


def add_common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--root", default=None, help="Durable-state root (default: $AUTOMATON_DIR or ~/.automaton)")


def add_key_args(ap: argparse.ArgumentParser, *, flag: str = "--key-env", prompt_flag: str = "--ask-key", what: str = "key") -> None:
    ap.add_argument(flag, default=None, help=f"Name of an environment variable holding the {what}")
    ap.add_argument(prompt_flag, action="store_true", help=f"Prompt for the {what} interactively")


def build_services(root: Optional[str] = None) -> Tuple[BackupService, MigrationManager]:
    paths = StatePaths(root=os.path.abspath(os.path.expanduser(root))) if root else StatePaths.from_env()
    logger = setup_logging(paths.logs_dir)
    ops = OpsLogger(path=paths.ops_log)
    svc = BackupService(paths=paths, logger=logger.getChild("backup"), ops=ops)
    return svc, MigrationManager(backups=svc, logger=logger.getChild("migration"), ops=ops)


def read_key(env_name: Optional[str], ask: bool, *, prompt: str = "Key: ", confirm: bool = False) -> Optional[str]:
    if env_name:
        val = os.environ.get(env_name)
        if not val:
            raise SystemExit(f"Environment variable {env_name} is empty or unset.")
        return val
    if not ask:
        return None
    val = getpass.getpass(prompt)
    if confirm and getpass.getpass("Repeat: ") != val:
        raise SystemExit("Keys do not match.")
    return val or None


def backups_lines(items: List[BackupInfo]) -> List[str]:
    """
    Render backup listings.
    Columns: id | type | files | size_kb | created_at | sandbox_id
    """
    lines = ["id | type | files | size_kb | created_at | sandbox_id"]
    for b in items:
        ts = _iso(b.created_at)
        lines.append(f"{b.id} | {b.type} | {b.file_count} | {b.size / 1024:.1f} | {ts} | {b.sandbox_id}")
    return lines


def to_json(obj: Any) -> str:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = dataclasses.asdict(obj)
    return json.dumps(obj, indent=2, ensure_ascii=False, sort_keys=True)


def _iso(ts: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))
