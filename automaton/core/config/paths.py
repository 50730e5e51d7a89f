from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_STATE_DIR = os.path.join("~", ".automaton")
STATE_DIR_ENV = "AUTOMATON_DIR"


@dataclass(frozen=True)
class StatePaths:
    """Layout of the instance's durable-state root."""

    root: str

    @classmethod
    def from_env(cls) -> "StatePaths":
        root = os.environ.get(STATE_DIR_ENV) or DEFAULT_STATE_DIR
        return cls(root=os.path.abspath(os.path.expanduser(root)))

    def resolve(self, relative_path: str) -> str:
        return os.path.join(self.root, *relative_path.split("/"))

    # Files
    @property
    def identity(self) -> str:
        return os.path.join(self.root, "automaton.json")

    @property
    def wallet(self) -> str:
        return os.path.join(self.root, "wallet.json")

    @property
    def soul(self) -> str:
        return os.path.join(self.root, "SOUL.md")

    @property
    def backup_config(self) -> str:
        return os.path.join(self.root, "backup.json")

    # Directories
    @property
    def skills_dir(self) -> str:
        return os.path.join(self.root, "skills")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    @property
    def ops_log(self) -> str:
        return os.path.join(self.logs_dir, "ops.jsonl")

    def backups_dir(self, default_dir: str = "backups") -> str:
        d = os.path.expanduser(default_dir)
        return d if os.path.isabs(d) else os.path.join(self.root, d)
