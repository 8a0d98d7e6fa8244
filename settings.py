"""Application settings models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


DEFAULT_MONGODB_URI = "mongodb://localhost:27017/mongodb_manager"


class CelerySettings(BaseSettings):
    """Celery broker and result backend configuration."""

    broker: str = Field(default="redis://localhost:6379", alias="CELERY_BROKER")
    result: str = Field(default="redis://localhost:6379", alias="CELERY_RESULT")

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Settings(BaseSettings):
    """Top level application settings loaded from ``.env``.

    ``MONGODB_URI`` is shared by the driver and the command-line tools. When
    it is absent the driver falls back to :data:`DEFAULT_MONGODB_URI` and the
    tools to ``--host localhost --port 27017``.

    ``BACKUP_DIR`` is the artifact root; full backups live under
    ``allbackup/`` and collection snapshots under ``snapshot/``.
    """

    debug: bool = False
    mongodb_uri: str | None = Field(default=None, alias="MONGODB_URI")
    backup_dir: Path = Field(
        default_factory=lambda: Path.cwd() / "backups",
        alias="BACKUP_DIR",
    )

    mongodump_bin: str = Field(default="mongodump", alias="MONGODUMP_BIN")
    mongorestore_bin: str = Field(default="mongorestore", alias="MONGORESTORE_BIN")
    mongosh_bin: str = Field(default="mongosh", alias="MONGOSH_BIN")
    backup_timeout_seconds: float = Field(default=900.0, alias="BACKUP_TIMEOUT_SECONDS")

    backup_keep_limit: int = Field(default=7, alias="BACKUP_KEEP_LIMIT")
    snapshot_keep_limit: int = Field(default=10, alias="SNAPSHOT_KEEP_LIMIT")
    strict_drop_check: bool = Field(default=True, alias="BACKUP_STRICT_DROP_CHECK")

    audit_database: str = Field(default="mongodb_manager", alias="AUDIT_DATABASE")
    audit_collection: str = Field(default="api_history", alias="AUDIT_COLLECTION")

    allowed_email_domain: str = Field(default="", alias="ALLOWED_EMAIL_DOMAIN")
    identity_header: str = Field(default="X-Auth-Request-Email", alias="IDENTITY_HEADER")
    cron_databases: str = Field(default="", alias="BACKUP_CRON_DATABASES")
    cron_hour: int = Field(default=3, alias="BACKUP_CRON_HOUR")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")

    celery: CelerySettings = Field(default_factory=CelerySettings)

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def driver_uri(self) -> str:
        return self.mongodb_uri or DEFAULT_MONGODB_URI

    @property
    def cron_database_names(self) -> list[str]:
        """Return databases configured for scheduled backups."""

        return [name.strip() for name in self.cron_databases.split(",") if name.strip()]


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached application settings."""

    return Settings()
