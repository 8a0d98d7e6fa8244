"""Artifact name grammar shared by every producer and consumer.

Grammar::

    timestamp := YYYY-MM-DD "T" HH-MM-SS "-" mmm "Z"
    backup    := database "_" timestamp
    snapshot  := database "_" collection "_" label "_" timestamp

``database`` of a snapshot and ``label`` never contain ``_``; ``collection``
may. A full-backup ``database`` may contain ``_`` because the timestamp is
split off from the right.
"""

from __future__ import annotations

import re
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import InvalidArtifactNameError


TIMESTAMP_PATTERN = r"\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z"
_TIMESTAMP_RE = re.compile(rf"^{TIMESTAMP_PATTERN}$")
_DATABASE_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_LABEL_RE = re.compile(r"^[A-Za-z0-9-]+$")
_BASE36 = string.digits + string.ascii_lowercase


@dataclass(slots=True, frozen=True)
class ArtifactName:
    """Fields recovered from an artifact directory name."""

    database: str
    timestamp: str
    collection: str | None = None
    label: str | None = None

    @property
    def is_snapshot(self) -> bool:
        return self.collection is not None


def format_timestamp(moment: datetime | None = None) -> str:
    """Return ISO-8601 UTC with ``:`` and ``.`` replaced by ``-``."""

    current = moment or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    current = current.astimezone(timezone.utc)
    millis = current.microsecond // 1000
    return f"{current:%Y-%m-%dT%H-%M-%S}-{millis:03d}Z"


def parse_timestamp(value: str) -> datetime:
    if not _TIMESTAMP_RE.match(value):
        raise InvalidArtifactNameError(f"invalid_timestamp: {value}")
    stamp = datetime.strptime(value[:19], "%Y-%m-%dT%H-%M-%S")
    return stamp.replace(microsecond=int(value[20:23]) * 1000, tzinfo=timezone.utc)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_label() -> str:
    """Return a short time-ordered identifier such as ``lq2x8k1a-4fz0qe``."""

    stamp = _to_base36(time.time_ns() // 1_000_000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{stamp}-{suffix}"


def validate_database(name: str, *, snapshot: bool = False) -> str:
    candidate = (name or "").strip()
    if not _DATABASE_RE.match(candidate):
        raise InvalidArtifactNameError(f"invalid_database_name: {name!r}")
    if snapshot and "_" in candidate:
        raise InvalidArtifactNameError(
            f"invalid_database_name: {name!r}",
            user_message="Snapshot database names cannot contain underscores.",
        )
    return candidate


def validate_collection(name: str) -> str:
    candidate = (name or "").strip()
    if not candidate or any(ch in candidate for ch in ("/", "\\", "\0", "$", "*")):
        raise InvalidArtifactNameError(f"invalid_collection_name: {name!r}")
    return candidate


def validate_label(label: str) -> str:
    candidate = (label or "").strip()
    if not _LABEL_RE.match(candidate):
        raise InvalidArtifactNameError(f"invalid_snapshot_label: {label!r}")
    return candidate


def format_backup_name(database: str, moment: datetime | None = None) -> str:
    return f"{validate_database(database)}_{format_timestamp(moment)}"


def format_snapshot_name(
    database: str,
    collection: str,
    label: str | None = None,
    moment: datetime | None = None,
) -> str:
    db_name = validate_database(database, snapshot=True)
    coll_name = validate_collection(collection)
    tag = validate_label(label) if label else generate_label()
    return f"{db_name}_{coll_name}_{tag}_{format_timestamp(moment)}"


def parse_artifact_name(name: str, *, snapshot: bool = False) -> ArtifactName:
    """Split ``name`` back into its fields.

    Raises
    ------
    InvalidArtifactNameError
        If ``name`` does not follow the grammar.
    """

    head, sep, stamp = (name or "").rpartition("_")
    if not sep or not head or not _TIMESTAMP_RE.match(stamp):
        raise InvalidArtifactNameError(f"invalid_artifact_name: {name!r}")
    if not snapshot:
        return ArtifactName(database=validate_database(head), timestamp=stamp)

    database, sep, rest = head.partition("_")
    collection, sep2, label = rest.rpartition("_")
    if not sep or not sep2 or not collection or not _LABEL_RE.match(label):
        raise InvalidArtifactNameError(f"invalid_snapshot_name: {name!r}")
    return ArtifactName(
        database=validate_database(database, snapshot=True),
        collection=collection,
        label=label,
        timestamp=stamp,
    )
