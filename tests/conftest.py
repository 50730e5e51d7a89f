from __future__ import annotations

import json
import logging
import os

import pytest

from automaton.core.backup.api import BackupService
from automaton.core.config.models import BackupConfigFile
from automaton.core.config.paths import StatePaths
from automaton.core.migration.migrate import MigrationManager
from automaton.core.ops_log import OpsLogger


IDENTITY = {"sandboxId": "sandbox-1", "name": "test", "address": "0xabc"}
WALLET = {"privateKey": "0xdeadbeef"}


def _write(root: str, rel: str, data: bytes) -> None:
    p = os.path.join(root, *rel.split("/"))
    os.makedirs(os.path.dirname(p), exist_ok=True)
    with open(p, "wb") as f:
        f.write(data)


def _mk_state(root: str) -> None:
    _write(root, "automaton.json", json.dumps(IDENTITY, indent=2).encode("utf-8"))
    _write(root, "wallet.json", json.dumps(WALLET).encode("utf-8"))
    _write(root, "heartbeat.yml", b"interval: 60\n")
    _write(root, "SOUL.md", b"# Soul\nBe kind.\n")
    _write(root, "state.db", b"SQLite format 3\x00" + bytes(range(256)))
    _write(root, "skills/web/SKILL.md", b"# Web skill\n")


@pytest.fixture
def fast_cfg():
    """Low KDF work factor; everything else default."""
    return BackupConfigFile(kdf_iterations=1_000)


@pytest.fixture
def state_paths(tmp_path):
    """A populated durable-state root under tmp_path/state."""
    root = str(tmp_path / "state")
    _mk_state(root)
    return StatePaths(root=root)


@pytest.fixture
def target_paths(tmp_path):
    """An empty durable-state root (migration target)."""
    root = str(tmp_path / "target")
    os.makedirs(root, exist_ok=True)
    return StatePaths(root=root)


@pytest.fixture
def make_service(fast_cfg):
    def _make(paths: StatePaths, **kw) -> BackupService:
        kw.setdefault("cfg", fast_cfg)
        return BackupService(paths=paths, ops=OpsLogger(path=paths.ops_log), **kw)

    return _make


@pytest.fixture
def service(make_service, state_paths):
    return make_service(state_paths)


@pytest.fixture
def target_service(make_service, target_paths):
    return make_service(target_paths)


@pytest.fixture
def migration(service):
    return MigrationManager(backups=service)


@pytest.fixture
def target_migration(target_service):
    return MigrationManager(backups=target_service)


@pytest.fixture
def write_state():
    """write_state(paths, rel, data) writes one file under a state root."""

    def _w(paths: StatePaths, rel: str, data: bytes) -> None:
        _write(paths.root, rel, data)

    return _w


@pytest.fixture
def read_state():
    def _r(paths: StatePaths, rel: str) -> bytes:
        with open(paths.resolve(rel), "rb") as f:
            return f.read()

    return _r


@pytest.fixture
def rewrite_manifest():
    """rewrite_manifest(backup_path, fn) edits manifest.json as a dict, in place."""

    def _rw(backup_path: str, fn) -> None:
        p = os.path.join(backup_path, "manifest.json")
        with open(p, "r", encoding="utf-8") as f:
            obj = json.load(f)
        fn(obj)
        with open(p, "w", encoding="utf-8") as f:
            json.dump(obj, f, indent=2)

    return _rw


@pytest.fixture(autouse=True)
def _reset_automaton_logger():
    """setup_logging() (CLI entry points) attaches handlers to a tmp root; detach them."""
    yield
    lg = logging.getLogger("automaton")
    for h in list(lg.handlers):
        lg.removeHandler(h)
        h.close()
    lg.propagate = True
