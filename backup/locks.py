"""Single-flight guard keyed by ``(database, collection)``."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from .errors import OperationInProgressError


logger = structlog.get_logger(__name__)

TargetKey = tuple[str, str | None]


def _conflicts(held: TargetKey, wanted: TargetKey) -> bool:
    if held[0] != wanted[0]:
        return False
    # ``None`` covers the whole database.
    return held[1] is None or wanted[1] is None or held[1] == wanted[1]


class TargetLocks:
    """Reject a second operation on a target that is already busy.

    A database-wide key conflicts with every key of that database; a
    collection key conflicts with itself and the database-wide key.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._held: set[TargetKey] = set()

    def busy(self, database: str, collection: str | None = None) -> bool:
        wanted = (database, collection)
        with self._mutex:
            return any(_conflicts(held, wanted) for held in self._held)

    @contextmanager
    def hold(self, database: str, collection: str | None = None) -> Iterator[None]:
        wanted = (database, collection)
        with self._mutex:
            if any(_conflicts(held, wanted) for held in self._held):
                logger.warning("target_busy", database=database, collection=collection)
                raise OperationInProgressError(f"target_busy: {database}.{collection or '*'}")
            self._held.add(wanted)
        try:
            yield
        finally:
            with self._mutex:
                self._held.discard(wanted)
