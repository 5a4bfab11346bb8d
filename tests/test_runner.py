from __future__ import annotations

import json

from rental_outbox.workers import runner


def test_default_command_is_worker() -> None:
    assert runner.parse_args([]).command == "worker"
    assert runner.parse_args(["cleanup", "--retention-days", "3"]).retention_days == 3


def test_cleanup_command_prints_deleted_count(monkeypatch, capsys) -> None:
    monkeypatch.setenv("STORE_BACKEND", "inmemory")

    assert runner.main(["cleanup"]) == 0
    assert capsys.readouterr().out.strip().splitlines()[-1] == "0"


def test_stats_command_prints_health_report(monkeypatch, capsys) -> None:
    monkeypatch.setenv("STORE_BACKEND", "inmemory")
    monkeypatch.setenv("BATCH_SIZE", "25")

    assert runner.main(["stats"]) == 0

    out = capsys.readouterr().out
    report = json.loads(out[out.index("{"):])
    assert report["status"] == "degraded"
    assert report["outbox"]["batch_size"] == 25
    assert report["outbox"]["pending_count"] == 0


def test_init_db_needs_postgres(monkeypatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "inmemory")

    assert runner.main(["init-db"]) == 1
