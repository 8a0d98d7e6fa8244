"""Translate a MongoDB connection URI into command-line tool flags."""

from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlsplit

import structlog

from .errors import ConfigParseError


logger = structlog.get_logger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 27017
DEFAULT_AUTH_DATABASE = "admin"
_REDACTED = "***"


def default_tool_args() -> list[str]:
    return ["--host", DEFAULT_HOST, "--port", str(DEFAULT_PORT)]


def _parse_uri(uri: str) -> list[str]:
    try:
        parts = urlsplit(uri)
        if parts.scheme not in {"mongodb", "mongodb+srv"}:
            raise ConfigParseError(f"unsupported_scheme: {parts.scheme!r}")
        host = parts.hostname
        port = parts.port or DEFAULT_PORT
    except ValueError as exc:
        raise ConfigParseError(str(exc)) from exc
    if not host:
        raise ConfigParseError("host_missing")

    args = ["--host", host, "--port", str(port)]
    username = unquote(parts.username or "")
    password = unquote(parts.password or "")
    if username and password:
        args += ["--username", username, "--password", password]

    auth_source = (parse_qs(parts.query).get("authSource") or [""])[0]
    args += ["--authenticationDatabase", auth_source or DEFAULT_AUTH_DATABASE]
    return args


def resolve_tool_auth_args(uri: str | None) -> list[str]:
    """Return host, port and credential flags for ``mongodump``-style tools.

    Falls back to ``--host localhost --port 27017`` when ``uri`` is empty or
    cannot be parsed; parse failures are logged and never propagated.
    """

    if not uri or not uri.strip():
        return default_tool_args()
    try:
        return _parse_uri(uri.strip())
    except ConfigParseError as exc:
        logger.warning("mongo_uri_parse_failed", error=str(exc))
        return default_tool_args()


def redact_args(args: list[str]) -> list[str]:
    """Return a copy of ``args`` with the ``--password`` value masked."""

    redacted: list[str] = []
    mask_next = False
    for arg in args:
        if mask_next:
            redacted.append(_REDACTED)
            mask_next = False
            continue
        if arg == "--password":
            mask_next = True
        elif arg.startswith("--password="):
            arg = f"--password={_REDACTED}"
        redacted.append(arg)
    return redacted
