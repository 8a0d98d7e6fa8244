"""HTTP tests for the API routers."""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import create_app
from backup.service import BackupService
from observability.audit import AuditRecorder
from settings import Settings


USER = {"X-Auth-Request-Email": "ops@example.com"}


class _FakeMongo:
    def __init__(self) -> None:
        self.inserted: list[tuple[str, str, int]] = []

    async def list_databases(self):
        return [{"name": "shop", "sizeOnDisk": 1024, "empty": False}]

    async def server_status(self):
        return {"totalDatabases": 1, "serverStatus": "connected", "databases": []}

    async def list_collections(self, database):
        return [{"name": "users", "type": "collection", "size": 10, "storageSize": 20, "count": 1}]

    async def insert_documents(self, database, collection, documents):
        self.inserted.append((database, collection, len(documents)))
        return len(documents)

    async def ensure_indexes(self):
        return None

    async def close(self):
        return None


def _build_app(tmp_path, runner, audit_collection, **overrides):
    settings = Settings(BACKUP_DIR=str(tmp_path), **overrides)
    app = create_app(settings)
    app.state.backup_service = BackupService(tmp_path, runner)
    app.state.mongo = _FakeMongo()
    app.state.audit = AuditRecorder(audit_collection)
    return app


@asynccontextmanager
async def _client(app, client=("127.0.0.1", 123)):
    transport = ASGITransport(app=app, client=client)
    async with AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def app(tmp_path, runner, audit_collection):
    return _build_app(tmp_path, runner, audit_collection)


@pytest.mark.asyncio
async def test_guarded_routes_require_identity(app) -> None:
    async with _client(app) as client:
        for method, path in (
            ("GET", "/api/backup"),
            ("GET", "/api/snapshot"),
            ("GET", "/api/databases"),
            ("GET", "/api/storage/backup"),
            ("GET", "/api/history"),
        ):
            response = await client.request(method, path)
            assert response.status_code == 401, path


@pytest.mark.asyncio
async def test_disallowed_domain_is_rejected(tmp_path, runner, audit_collection) -> None:
    app = _build_app(tmp_path, runner, audit_collection, ALLOWED_EMAIL_DOMAIN="corp.example")
    async with _client(app) as client:
        denied = await client.get("/api/backup", headers=USER)
        allowed = await client.get("/api/backup", headers={"X-Auth-Request-Email": "ana@corp.example"})
    assert denied.status_code == 403
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_create_list_and_delete_backup(app, fake_tools, audit_collection) -> None:
    async with _client(app) as client:
        created = await client.post("/api/backup", json={"databaseName": "shop"}, headers=USER)
        assert created.status_code == 200
        name = created.json()["backup"]["name"]

        listing = (await client.get("/api/backup", headers=USER)).json()
        assert [item["name"] for item in listing["backups"]] == [name]
        assert listing["maxBackupsPerDatabase"] == 7
        assert listing["backupStats"]["shop"]["total"] == 1

        deleted = await client.delete(f"/api/backup/{name}", headers=USER)
        assert deleted.status_code == 200
        missing = await client.delete(f"/api/backup/{name}", headers=USER)
        assert missing.status_code == 404

    statuses = [(doc["action"], doc["status"]) for doc in audit_collection.docs]
    assert statuses == [
        ("Create backup", "success"),
        ("Delete backup", "success"),
        ("Delete backup", "error"),
    ]
    assert audit_collection.docs[0]["userEmail"] == "ops@example.com"


@pytest.mark.asyncio
async def test_tool_failure_maps_to_500_and_is_audited(app, fake_tools, audit_collection) -> None:
    fake_tools.fail("mongodump", "Failed: error connecting to db server")
    async with _client(app) as client:
        response = await client.post("/api/backup", json={"databaseName": "shop"}, headers=USER)

    assert response.status_code == 500
    assert response.json() == {"detail": "External tool failed to run."}
    doc = audit_collection.docs[0]
    assert doc["status"] == "error"
    assert "error connecting" in doc["details"]["diagnostic"]


@pytest.mark.asyncio
async def test_invalid_database_is_400(app, fake_tools, audit_collection) -> None:
    async with _client(app) as client:
        response = await client.post("/api/backup", json={"databaseName": "shop eu"}, headers=USER)
    assert response.status_code == 400
    assert fake_tools.calls == []
    assert len(audit_collection.docs) == 1


@pytest.mark.asyncio
async def test_restore_unknown_backup_is_404(app, fake_tools) -> None:
    async with _client(app) as client:
        response = await client.post(
            "/api/backup/restore",
            json={"backupName": "shop_2020-01-01T00-00-00-000Z", "databaseName": "shop"},
            headers=USER,
        )
    assert response.status_code == 404
    assert fake_tools.calls == []


@pytest.mark.asyncio
async def test_restore_into_other_database_is_400(app, fake_tools, audit_collection) -> None:
    name = app.state.backup_service.create_backup("shop").entry.name
    fake_tools.calls.clear()
    async with _client(app) as client:
        response = await client.post(
            "/api/backup/restore",
            json={"backupName": name, "databaseName": "crm"},
            headers=USER,
        )
    assert response.status_code == 400
    assert "cannot be restored into crm.*" in response.json()["detail"]
    assert fake_tools.calls == []
    assert audit_collection.docs[-1]["status"] == "error"


@pytest.mark.asyncio
async def test_restore_conflict_is_409(app, fake_tools) -> None:
    service = app.state.backup_service
    name = service.create_backup("shop").entry.name
    async with _client(app) as client:
        with service.locks.hold("shop"):
            response = await client.post(
                "/api/backup/restore",
                json={"backupName": name, "databaseName": "shop"},
                headers=USER,
            )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_snapshot_create_restore_and_list(app, fake_tools, audit_collection) -> None:
    async with _client(app) as client:
        created = await client.post(
            "/api/snapshot",
            json={"databaseName": "shop", "collectionName": "users", "label": "v1"},
            headers=USER,
        )
        assert created.status_code == 200
        name = created.json()["snapshot"]["name"]

        listed = await client.get("/api/snapshot", params={"database": "shop", "collection": "users"}, headers=USER)
        assert [item["name"] for item in listed.json()["snapshots"]] == [name]

        restored = await client.post(
            "/api/snapshot/restore",
            json={"snapshotName": name, "databaseName": "shop", "collectionName": "users"},
            headers=USER,
        )
        assert restored.status_code == 200

    assert fake_tools.tools == ["mongodump", "mongosh", "mongorestore"]
    assert [doc["actionType"] for doc in audit_collection.docs] == ["snapshot", "restore"]


@pytest.mark.asyncio
async def test_databases_routes(app, fake_tools) -> None:
    async with _client(app) as client:
        listed = await client.get("/api/databases", headers=USER)
        status = await client.get("/api/databases/status", headers=USER)
        collections = await client.get("/api/databases/collections", params={"database": "shop"}, headers=USER)
        seeded = await client.post(
            "/api/databases/dummy-data",
            json={"databaseName": "shop", "collectionName": "users", "count": 5, "dataType": "orders"},
            headers=USER,
        )
        cloned = await client.post(
            "/api/databases/clone",
            json={"sourceDatabase": "shop", "targetDatabase": "shop-copy"},
            headers=USER,
        )
        too_many = await client.post(
            "/api/databases/dummy-data",
            json={"databaseName": "shop", "collectionName": "users", "count": 10001},
            headers=USER,
        )

    assert listed.json()["databases"][0]["name"] == "shop"
    assert status.json()["serverStatus"] == "connected"
    assert collections.json()["collections"][0]["storageSize"] == 20
    assert seeded.json()["insertedCount"] == 5
    assert app.state.mongo.inserted == [("shop", "users", 5)]
    assert cloned.status_code == 200
    assert fake_tools.tools == ["mongodump", "mongorestore"]
    assert too_many.status_code == 422


@pytest.mark.asyncio
async def test_storage_usage(app) -> None:
    async with _client(app) as client:
        response = await client.get("/api/storage/snapshot", headers=USER)
        unknown = await client.get("/api/storage/other", headers=USER)
    payload = response.json()
    assert set(payload) == {"used", "total", "available", "usagePercentage"}
    assert unknown.status_code == 422


@pytest.mark.asyncio
async def test_history_with_stats(app, fake_tools) -> None:
    async with _client(app) as client:
        await client.post("/api/backup", json={"databaseName": "shop"}, headers=USER)
        await client.post("/api/backup", json={"databaseName": "bad name"}, headers=USER)
        response = await client.get(
            "/api/history",
            params={"stats": "true", "method": "backup", "limit": "1"},
            headers=USER,
        )
        invalid = await client.get("/api/history", params={"limit": "0"}, headers=USER)

    payload = response.json()
    assert payload["totalCount"] == 2
    assert payload["totalPages"] == 2
    assert len(payload["history"]) == 1
    assert payload["stats"]["overall"]["totalCalls"] == 2
    assert payload["stats"]["overall"]["errorCalls"] == 1
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_cron_backup_from_loopback(app, fake_tools, audit_collection) -> None:
    async with _client(app) as client:
        response = await client.post("/api/cron/backup", params={"database": "shop"})
        info = await client.get("/api/cron/backup")

    assert response.status_code == 200
    assert info.json()["success"] is True
    doc = audit_collection.docs[0]
    assert doc["actionType"] == "cron"
    assert doc["userEmail"] == "cron-job"


@pytest.mark.asyncio
async def test_cron_rejects_external_callers(app, fake_tools) -> None:
    async with _client(app) as client:
        forwarded = await client.post(
            "/api/cron/backup",
            params={"database": "shop"},
            headers={"X-Forwarded-For": "203.0.113.9"},
        )
    async with _client(app, client=("198.51.100.7", 5000)) as client:
        remote = await client.get("/api/cron/backup")

    assert forwarded.status_code == 403
    assert remote.status_code == 403
    assert fake_tools.calls == []


@pytest.mark.asyncio
async def test_cron_validates_database(app, fake_tools) -> None:
    async with _client(app) as client:
        missing = await client.post("/api/cron/backup")
        invalid = await client.post("/api/cron/backup", params={"database": "shop;drop"})
    assert missing.status_code == 400
    assert invalid.status_code == 400


@pytest.mark.asyncio
async def test_cron_reports_missing_database(app, fake_tools) -> None:
    fake_tools.fail("mongodump", "Failed: database ghost not found")
    async with _client(app) as client:
        response = await client.post("/api/cron/backup", params={"database": "ghost"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Database 'ghost' does not exist."


@pytest.mark.asyncio
async def test_metrics_endpoint_is_mounted(app) -> None:
    async with _client(app) as client:
        response = await client.get("/metrics/")
    assert response.status_code == 200
    assert "http_requests_total" in response.text
