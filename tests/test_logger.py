# tests/test_logger.py
import json
import logging

from app.infra.logger import _record, emit


def test_record_is_one_json_line_with_secrets_redacted():
    line = _record("machine_create", "INFO", {"machine_id": "m1", "password": "pw", "token": None})
    rec = json.loads(line)
    assert rec["event"] == "machine_create"
    assert rec["level"] == "INFO"
    assert rec["machine_id"] == "m1"
    assert rec["password"] == "***"
    assert rec["token"] is None
    assert "ts" in rec


def test_emit_goes_through_app_logger(caplog):
    with caplog.at_level(logging.WARNING, logger="vnc_manager"):
        emit("something_odd", level="WARNING", detail="x")
    assert any('"event": "something_odd"' in r.getMessage() for r in caplog.records)
