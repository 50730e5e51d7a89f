from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from automaton.core.ops_log import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class AutomatonError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.user_message)

    def __str__(self) -> str:
        return self.user_message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ConfigError(AutomatonError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class ValidationError(AutomatonError):
    def __init__(self, user_message: str = "Invalid request.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


# ---- Backup / restore / migration ----
class IntegrityError(AutomatonError):
    """Manifest or payload cannot be trusted. Always fatal to the operation."""

    def __init__(self, user_message: str = "Backup integrity check failed.", **ctx: Any):
        super().__init__("integrity_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class EncryptionKeyError(AutomatonError):
    def __init__(self, user_message: str = "Encryption key missing or wrong.", **ctx: Any):
        super().__init__("encryption_key_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class SourceReadError(AutomatonError):
    def __init__(self, user_message: str = "Cannot read a file to back up.", **ctx: Any):
        super().__init__("source_read_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class TargetWriteError(AutomatonError):
    def __init__(self, user_message: str = "Cannot write a restored file.", **ctx: Any):
        super().__init__("target_write_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


class IdentityUpdateError(AutomatonError):
    def __init__(self, user_message: str = "Cannot update the identity descriptor.", **ctx: Any):
        super().__init__("identity_update_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)
