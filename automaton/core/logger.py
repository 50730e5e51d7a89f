from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler


# Operations tag their log lines with the same trace_id they write to ops.jsonl,
# so a line in automaton.log can be matched to its ops record.
TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | trace=%(trace_id)s | %(message)s"


class TraceIdFilter(logging.Filter):
    """Fills in trace_id for records logged without extra={"trace_id": ...}."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "trace_id", None):
            record.trace_id = "-"
        return True


def setup_logging(log_dir: str = "logs", *, level: int = logging.INFO) -> logging.Logger:
    """
    automaton.log (rotating, full format) plus a bare console stream.
    Idempotent: calling it again does not stack handlers.
    """
    os.makedirs(log_dir, exist_ok=True)
    logger = logging.getLogger("automaton")
    logger.setLevel(level)
    logger.propagate = False

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        fh = RotatingFileHandler(os.path.join(log_dir, "automaton.log"), maxBytes=2_000_000, backupCount=3, encoding="utf-8")
        fh.addFilter(TraceIdFilter())
        fh.setFormatter(logging.Formatter(TEXT_FORMAT))
        logger.addHandler(fh)

    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        logger.addHandler(console)

    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"automaton.{name}")


def trace(trace_id: str) -> dict:
    """extra= mapping for a log call that belongs to an operation."""
    return {"trace_id": trace_id}
