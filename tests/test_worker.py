"""Tests for the scheduled backup task."""

from __future__ import annotations

import pytest

import worker
from observability.audit import AuditRecorder


def test_beat_schedule_runs_daily_backup() -> None:
    entry = worker.celery.conf.beat_schedule["backup-scheduled-daily"]
    assert entry["task"] == "backup.scheduled"
    assert "backup.scheduled" in worker.celery.tasks


@pytest.mark.asyncio
async def test_scheduled_backups_continue_after_failure(service, fake_tools, audit_collection) -> None:
    recorder = AuditRecorder(audit_collection)

    outcomes = await worker._run_scheduled_backups(service, recorder, ["shop", "bad name", "crm"])

    assert outcomes["bad name"] == "error"
    assert outcomes["shop"].startswith("shop_")
    assert outcomes["crm"].startswith("crm_")
    assert [doc["status"] for doc in audit_collection.docs] == ["success", "error", "success"]
    assert {doc["actionType"] for doc in audit_collection.docs} == {"cron"}
    assert {doc["userEmail"] for doc in audit_collection.docs} == {"cron-job"}


@pytest.mark.asyncio
async def test_scheduled_job_without_databases_is_noop(monkeypatch) -> None:
    monkeypatch.setattr(worker.settings, "cron_databases", "")
    assert await worker._scheduled_backup_job() == {}
