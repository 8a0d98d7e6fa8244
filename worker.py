"""Celery worker running the daily scheduled backups."""

from __future__ import annotations

import asyncio

import structlog
from celery import Celery
from celery.schedules import crontab
from starlette.concurrency import run_in_threadpool

from app.services.auth import CRON_ACTOR
from backup import BackupError, BackupService
from models import ActionType
from mongo import MongoConnection
from observability.audit import AuditRecorder
from observability.logging import configure_logging
from settings import get_settings


settings = get_settings()
configure_logging(settings.debug)

logger = structlog.get_logger(__name__)

SCHEDULED_ENDPOINT = "celery:backup.scheduled"

celery = Celery(__name__)
celery.conf.broker_url = settings.celery.broker
celery.conf.result_backend = settings.celery.result
celery.conf.beat_schedule = {
    "backup-scheduled-daily": {
        "task": "backup.scheduled",
        "schedule": crontab(hour=settings.cron_hour, minute=0),
    },
}


async def _run_scheduled_backups(
    service: BackupService,
    recorder: AuditRecorder,
    databases: list[str],
) -> dict[str, str]:
    """Back up each database in turn; one failure does not stop the rest.

    Returns the outcome per database: the artifact name or ``error``.
    """

    outcomes: dict[str, str] = {}
    for database in databases:
        try:
            async with recorder.track(
                endpoint=SCHEDULED_ENDPOINT,
                method="TASK",
                action="Cron backup",
                action_type=ActionType.cron,
                target=database,
                database=database,
                user_email=CRON_ACTOR,
            ) as audit:
                result = await run_in_threadpool(service.create_backup, database)
                audit.succeed(f"Cron backup of {database} completed.", result.details())
        except BackupError as exc:
            logger.error("scheduled_backup_failed", database=database, error=str(exc), phase=exc.phase)
            outcomes[database] = "error"
            continue
        logger.info(
            "scheduled_backup_completed",
            database=database,
            name=result.entry.name,
            pruned=result.retention.deleted,
        )
        outcomes[database] = result.entry.name
    return outcomes


async def _scheduled_backup_job() -> dict[str, str]:
    databases = settings.cron_database_names
    if not databases:
        logger.debug("scheduled_backup_skipped", reason="no_databases")
        return {}
    mongo = MongoConnection.from_settings(settings)
    try:
        recorder = AuditRecorder(mongo.audit_collection)
        service = BackupService.from_settings(settings)
        return await _run_scheduled_backups(service, recorder, databases)
    finally:
        await mongo.close()


@celery.task(name="backup.scheduled")
def backup_scheduled() -> dict[str, str]:
    try:
        return asyncio.run(_scheduled_backup_job())
    except Exception as exc:  # noqa: BLE001
        logger.exception("backup_scheduled_unhandled", error=str(exc))
        return {}
