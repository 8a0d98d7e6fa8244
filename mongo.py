"""MongoDB client helpers used by the application."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import structlog
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from settings import Settings


logger = structlog.get_logger(__name__)

SYSTEM_DATABASES = frozenset({"admin", "local", "config"})


class MongoConnection:
    """Wrapper around the asynchronous MongoDB client.

    Parameters
    ----------
    uri:
        Full MongoDB URI used by the driver.
    audit_database, audit_collection:
        Where :class:`observability.audit.AuditRecorder` keeps its records.
    client:
        Optional ready client; when omitted one is created lazily on first use
        and shared for the lifetime of this object.

    Notes
    -----
    All database operations log exceptions before re-raising so the caller
    can surface actionable diagnostics to the end user.
    """

    def __init__(
        self,
        uri: str,
        *,
        audit_database: str = "mongodb_manager",
        audit_collection: str = "api_history",
        client: Any | None = None,
    ) -> None:
        self.url = uri
        self.audit_database = audit_database
        self.audit_collection_name = audit_collection
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoConnection":
        return cls(
            settings.driver_uri,
            audit_database=settings.audit_database,
            audit_collection=settings.audit_collection,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = AsyncIOMotorClient(self.url)
            except Exception as exc:
                logger.error("mongo_client_init_failed", error=str(exc))
                raise
        return self._client

    @property
    def audit_collection(self) -> Any:
        return self.client[self.audit_database][self.audit_collection_name]

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    async def ensure_indexes(self) -> None:
        """Create the audit indexes used by history queries if they are missing."""

        for keys, name in (
            ([("timestamp", DESCENDING)], "api_history_timestamp"),
            ([("endpoint", ASCENDING), ("timestamp", DESCENDING)], "api_history_endpoint"),
        ):
            try:
                await self.audit_collection.create_index(keys, name=name)
            except Exception as exc:  # noqa: BLE001
                logger.debug(
                    "mongo_index_create_failed",
                    collection=self.audit_collection_name,
                    index=name,
                    error=str(exc),
                )

    async def list_databases(self) -> list[dict[str, Any]]:
        """Return user databases with their on-disk size."""

        try:
            result = await self.client.admin.command("listDatabases")
        except Exception as exc:
            logger.error("mongo_list_databases_failed", error=str(exc))
            raise
        return [
            {
                "name": item["name"],
                "sizeOnDisk": item.get("sizeOnDisk", 0) or 0,
                "empty": bool(item.get("empty", False)),
            }
            for item in result.get("databases", [])
            if item.get("name") not in SYSTEM_DATABASES
        ]

    async def server_status(self) -> dict[str, Any]:
        """Summarise the server and user databases for the dashboard.

        A failing ``serverStatus`` command is reported as ``serverStatus:
        error`` rather than raised; a failing database listing is raised.
        """

        databases = await self.list_databases()
        state = "connected"
        server_info: dict[str, Any] = {
            "version": "Unknown",
            "uptime": 0,
            "memory": {"resident": 0, "virtual": 0},
            "connections": {"current": 0, "available": 0},
        }
        try:
            status = await self.client.admin.command("serverStatus")
        except Exception as exc:  # noqa: BLE001
            logger.warning("mongo_server_status_failed", error=str(exc))
            state = "error"
        else:
            mem = status.get("mem") or {}
            connections = status.get("connections") or {}
            server_info = {
                "version": status.get("version") or "Unknown",
                "uptime": status.get("uptime") or 0,
                "memory": {
                    "resident": mem.get("resident") or 0,
                    "virtual": mem.get("virtual") or 0,
                },
                "connections": {
                    "current": connections.get("current") or 0,
                    "available": connections.get("available") or 0,
                },
            }

        summaries = []
        for item in databases:
            try:
                names = await self.client[item["name"]].list_collection_names()
                count = len(names)
            except Exception as exc:  # noqa: BLE001
                logger.warning("mongo_collection_count_failed", database=item["name"], error=str(exc))
                count = 0
            summaries.append({**item, "collections": count})

        return {
            "totalDatabases": len(databases),
            "totalSize": sum(item["sizeOnDisk"] for item in databases),
            "activeConnections": server_info["connections"]["current"],
            "serverStatus": state,
            "lastUpdate": datetime.now(timezone.utc),
            "databases": summaries,
            "serverInfo": server_info,
        }

    async def list_collections(self, database: str) -> list[dict[str, Any]]:
        """Return collections of ``database`` with size, storage and count.

        Statistics that cannot be read are reported as zero.
        """

        db = self.client[database]
        try:
            cursor = await db.list_collections()
            infos = [info async for info in cursor]
        except Exception as exc:
            logger.error("mongo_list_collections_failed", database=database, error=str(exc))
            raise

        collections = []
        for info in infos:
            name = info["name"]
            entry = {
                "name": name,
                "type": info.get("type") or "collection",
                "size": 0,
                "storageSize": 0,
                "count": 0,
            }
            try:
                stats = await db.command("collStats", name)
            except Exception as exc:  # noqa: BLE001
                logger.warning("mongo_coll_stats_failed", database=database, collection=name, error=str(exc))
            else:
                entry["size"] = stats.get("size") or 0
                entry["storageSize"] = stats.get("storageSize") or 0
                entry["count"] = stats.get("count") or 0
            collections.append(entry)
        return collections

    async def insert_documents(self, database: str, collection: str, documents: list[dict]) -> int:
        """Insert ``documents`` with one ``insert_many`` call and return the count."""

        if not documents:
            return 0
        try:
            result = await self.client[database][collection].insert_many(documents)
        except Exception as exc:
            logger.error(
                "mongo_insert_many_failed",
                database=database,
                collection=collection,
                count=len(documents),
                error=str(exc),
            )
            raise
        return len(result.inserted_ids)
