from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from automaton.core.backup.models import Category
from automaton.core.errors import SourceReadError


# Top-level durable-state files (relative to the state root)
FIXED_TARGETS: Dict[str, Category] = {
    "automaton.json": Category.identity,
    "wallet.json": Category.secrets,
    "heartbeat.yml": Category.memory,
    "state.db": Category.memory,
    "chain-history.json": Category.memory,
    "SOUL.md": Category.soul,
}

SKILLS_DIR = "skills"
EXCLUDED_DIRS = {"__pycache__", ".git", "node_modules", "cache", "tmp"}


@dataclass(frozen=True)
class SourceFile:
    relative_path: str
    abs_path: str
    category: Category


def classify(relative_path: str) -> Optional[Category]:
    rel = relative_path.replace("\\", "/")
    if rel in FIXED_TARGETS:
        return FIXED_TARGETS[rel]
    if rel.startswith(SKILLS_DIR + "/"):
        parts = rel.split("/")
        if any(p in EXCLUDED_DIRS for p in parts[:-1]) or rel.endswith(".pyc"):
            return None
        return Category.skills
    return None


def collect_files(root: str) -> Tuple[List[SourceFile], List[str]]:
    """
    Returns (files, warnings). Files are sorted by relative path.
    Anything that does not classify is not durable state and is ignored.
    """
    warnings: List[str] = []
    files: List[SourceFile] = []

    for rel, cat in FIXED_TARGETS.items():
        p = os.path.join(root, rel)
        if os.path.isfile(p):
            files.append(SourceFile(relative_path=rel, abs_path=p, category=cat))
        elif os.path.exists(p):
            warnings.append(f"Not a regular file: {rel}")

    skills = os.path.join(root, SKILLS_DIR)
    if os.path.islink(skills):
        warnings.append(f"Skipping symlink: {SKILLS_DIR}")
    elif os.path.isdir(skills):
        for dirpath, dirnames, filenames in os.walk(skills):
            dirnames[:] = sorted(d for d in dirnames if d not in EXCLUDED_DIRS)
            for fn in sorted(filenames):
                p = os.path.join(dirpath, fn)
                rel = os.path.relpath(p, root).replace("\\", "/")
                cat = classify(rel)
                if cat is None or not os.path.isfile(p):
                    continue
                if os.path.islink(p):
                    # only content that lives in the state root is captured
                    warnings.append(f"Skipping symlink: {rel}")
                    continue
                files.append(SourceFile(relative_path=rel, abs_path=p, category=cat))

    files.sort(key=lambda f: f.relative_path)
    return files, warnings


def read_source(src: SourceFile) -> Tuple[bytes, float]:
    """Returns (content, mtime). Any failure aborts the whole capture."""
    try:
        with open(src.abs_path, "rb") as f:
            data = f.read()
        mtime = os.stat(src.abs_path).st_mtime
    except OSError as e:
        raise SourceReadError(f"Cannot read {src.relative_path}: {e.strerror or e}", path=src.relative_path) from e
    return data, float(mtime)
