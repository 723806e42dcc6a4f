from __future__ import annotations

import logging

import pytest

from mes_api import celery_app


class _SessionStub:
    def __init__(self):
        self.rollback_calls = 0
        self.closed = False

    def rollback(self):
        self.rollback_calls += 1

    def close(self):
        self.closed = True


def test_purge_logs_with_deferred_formatting(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    db = _SessionStub()
    captured = {}

    def _purge(*, db, older_than):
        captured["older_than"] = older_than
        return 4

    monkeypatch.setattr(celery_app, "SessionLocal", lambda: db)
    monkeypatch.setattr(celery_app, "purge_api_key_usage", _purge)

    with caplog.at_level(logging.INFO, logger=celery_app.logger.name):
        result = celery_app.purge_api_key_usage_task(retention_days=30)

    assert result == {"deleted": 4, "cutoff": captured["older_than"].isoformat()}
    record = caplog.records[-1]
    assert record.msg == "Purged %s api_key_usage rows older than %s"
    assert record.args[0] == 4
    assert db.closed is True


def test_purge_failure_rolls_back_and_reraises(monkeypatch: pytest.MonkeyPatch, caplog) -> None:
    db = _SessionStub()

    def _fail(*, db, older_than):
        raise RuntimeError("lost connection")

    monkeypatch.setattr(celery_app, "SessionLocal", lambda: db)
    monkeypatch.setattr(celery_app, "purge_api_key_usage", _fail)

    with pytest.raises(RuntimeError, match="lost connection"):
        celery_app.purge_api_key_usage_task()

    assert db.rollback_calls == 1
    assert db.closed is True
    assert caplog.records[-1].exc_info is not None
