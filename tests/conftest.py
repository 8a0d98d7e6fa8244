"""Pytest configuration with basic asyncio support and in-memory fakes."""

from __future__ import annotations

import asyncio
import re
import subprocess
from pathlib import Path
from types import SimpleNamespace

import pytest

from backup.credentials import default_tool_args
from backup.runner import ExternalToolRunner
from backup.service import BackupService


def pytest_configure(config):
    """Register the ``asyncio`` marker for asynchronous tests."""
    config.addinivalue_line(
        "markers", "asyncio: mark async test to run in event loop"
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Run functions marked with ``asyncio`` in a new event loop."""
    if pyfuncitem.get_closest_marker("asyncio"):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            funcargs = {
                name: pyfuncitem.funcargs[name]
                for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(pyfuncitem.obj(**funcargs))
        finally:
            loop.close()
            asyncio.set_event_loop(None)
        return True


class FakeTools:
    """Stand-in for ``subprocess.run`` that records MongoDB tool invocations.

    ``mongodump`` writes a small BSON file under ``--out`` unless
    ``create_artifacts`` is off, even when it then fails, like a dump cut off
    halfway. ``stderr`` and ``failures`` are keyed by tool name.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.stderr: dict[str, str] = {}
        self.failures: dict[str, BaseException] = {}
        self.create_artifacts = True

    def __call__(self, cmd, check, capture_output, timeout):  # noqa: ANN001
        self.calls.append(list(cmd))
        tool = Path(cmd[0]).name
        if tool == "mongodump" and self.create_artifacts:
            out = Path(cmd[cmd.index("--out") + 1])
            database = cmd[cmd.index("--db") + 1]
            target = out / database
            target.mkdir(parents=True, exist_ok=True)
            (target / "data.bson").write_bytes(b"x" * 16)
        if tool in self.failures:
            raise self.failures[tool]
        return SimpleNamespace(
            returncode=0,
            stdout=b"",
            stderr=self.stderr.get(tool, "").encode(),
        )

    @property
    def tools(self) -> list[str]:
        return [Path(cmd[0]).name for cmd in self.calls]

    def fail(self, tool: str, stderr: str = "boom", returncode: int = 1) -> None:
        self.failures[tool] = subprocess.CalledProcessError(
            returncode, [tool], output=b"", stderr=stderr.encode()
        )


@pytest.fixture
def fake_tools(monkeypatch) -> FakeTools:
    tools = FakeTools()
    monkeypatch.setattr("backup.runner.subprocess.run", tools)
    return tools


@pytest.fixture
def runner(fake_tools) -> ExternalToolRunner:
    return ExternalToolRunner(auth_args=default_tool_args(), timeout=5)


@pytest.fixture
def service(tmp_path, runner) -> BackupService:
    return BackupService(tmp_path / "backups", runner)


class _AsyncCursor:
    def __init__(self, docs):
        self._docs = list(docs)
        self._index = 0

    def sort(self, field: str, direction: int):
        self._docs.sort(
            key=lambda doc: (doc.get(field) is None, doc.get(field)),
            reverse=direction < 0,
        )
        return self

    def skip(self, count: int):
        self._docs = self._docs[count:]
        return self

    def limit(self, count: int):
        self._docs = self._docs[:count]
        return self

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._index >= len(self._docs):
            raise StopAsyncIteration
        value = self._docs[self._index]
        self._index += 1
        return value


def _matches(doc: dict, query: dict) -> bool:
    for key, condition in query.items():
        if key == "$or":
            if not any(_matches(doc, sub) for sub in condition):
                return False
            continue
        value = doc.get(key)
        if isinstance(condition, dict):
            if "$regex" in condition:
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if value is None or not re.search(condition["$regex"], str(value), flags):
                    return False
            if "$gte" in condition and (value is None or value < condition["$gte"]):
                return False
            if "$lte" in condition and (value is None or value > condition["$lte"]):
                return False
        elif value != condition:
            return False
    return True


class FakeAuditCollection:
    """In-memory subset of a motor collection used by the audit recorder."""

    def __init__(self) -> None:
        self.docs: list[dict] = []
        self.fail_inserts = False
        self.queries: list[dict] = []

    async def insert_one(self, doc: dict):
        if self.fail_inserts:
            raise RuntimeError("mongo unavailable")
        stored = dict(doc)
        stored.setdefault("_id", f"id-{len(self.docs) + 1}")
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def count_documents(self, query: dict) -> int:
        self.queries.append(query)
        return sum(1 for doc in self.docs if _matches(doc, query))

    def find(self, query: dict):
        return _AsyncCursor(dict(doc) for doc in self.docs if _matches(doc, query))

    def aggregate(self, pipeline: list[dict]):
        group = pipeline[0]["$group"]
        key = group["_id"]
        buckets: dict = {}
        for doc in self.docs:
            bucket_key = doc.get(key[1:]) if isinstance(key, str) else None
            buckets.setdefault(bucket_key, []).append(doc)
        rows = []
        for bucket_key, docs in buckets.items():
            success = sum(1 for doc in docs if doc.get("status") == "success")
            row = {"_id": bucket_key, "count": len(docs), "totalCalls": len(docs)}
            row["successCount"] = row["successCalls"] = success
            row["errorCount"] = row["errorCalls"] = len(docs) - success
            row["avgDuration"] = sum(doc.get("duration", 0) for doc in docs) / len(docs)
            rows.append(row)
        rows.sort(key=lambda row: row["count"], reverse=True)
        for stage in pipeline[1:]:
            if "$limit" in stage:
                rows = rows[: stage["$limit"]]
        return _AsyncCursor(rows)


@pytest.fixture
def audit_collection() -> FakeAuditCollection:
    return FakeAuditCollection()
