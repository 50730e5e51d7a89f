from __future__ import annotations

import json

from automaton.core.errors import EncryptionKeyError, IntegrityError, SourceReadError
from automaton.core.ops_log import OpsLogger, redact


def test_error_to_dict_redacts_context():
    e = EncryptionKeyError("Decryption failed: wallet.json", path="wallet.json", decryption_key="hunter2")
    d = e.to_dict()
    assert d["code"] == "encryption_key_error"
    assert d["user_message"] == "Decryption failed: wallet.json"
    assert d["context"]["path"] == "wallet.json"
    assert d["context"]["decryption_key"] == "***REDACTED***"
    assert str(e) == "Decryption failed: wallet.json"


def test_error_codes_and_severity():
    assert IntegrityError().to_dict()["severity"] == "CRITICAL"
    assert IntegrityError().recoverable is False
    assert SourceReadError("x").code == "source_read_error"


def test_redact_nested():
    out = redact({"details": [{"privateKey": "0x1", "ok": 1}], "new_key": "n"})
    assert out == {"details": [{"privateKey": "***REDACTED***", "ok": 1}], "new_key": "***REDACTED***"}


def test_ops_logger_appends_jsonl(tmp_path):
    ops = OpsLogger(path=str(tmp_path / "logs" / "ops.jsonl"))
    ops.log(trace_id="t1", event="backup.verify", outcome="ok", details={"encryption_key": "k"})
    ops.log(trace_id="t2", event="backup.prune", outcome="ok")
    with open(tmp_path / "logs" / "ops.jsonl", "r", encoding="utf-8") as f:
        lines = [json.loads(x) for x in f]
    assert [x["trace_id"] for x in lines] == ["t1", "t2"]
    assert lines[0]["details"]["encryption_key"] == "***REDACTED***"
