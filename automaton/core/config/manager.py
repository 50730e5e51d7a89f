from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import ValidationError

from automaton.core.config.io import read_json_file
from automaton.core.config.models import BackupConfigFile
from automaton.core.config.paths import StatePaths
from automaton.core.errors import ConfigError


def get_backup_config(paths: StatePaths, *, overrides: Optional[Dict[str, Any]] = None, logger: Any = None) -> BackupConfigFile:
    """
    Load <root>/backup.json. A missing file means defaults; a corrupt or
    invalid one is a ConfigError (never silently replaced by defaults).
    """
    rr = read_json_file(paths.backup_config)
    raw: Dict[str, Any] = {}
    if rr.ok:
        raw = dict(rr.data)
    elif rr.error != "missing":
        raise ConfigError("backup.json is unreadable.", path=paths.backup_config, error=rr.error)
    if overrides:
        raw.update(overrides)
    try:
        cfg = BackupConfigFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigError("backup.json is invalid.", path=paths.backup_config, error=str(e)) from e
    if logger is not None and rr.ok:
        logger.info("Loaded backup config from %s", paths.backup_config)
    return cfg
