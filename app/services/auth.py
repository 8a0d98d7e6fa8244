"""Authentication and authorization helpers for routers.

Users are authenticated by an upstream proxy which forwards the signed-in
e-mail in an identity header. Scheduled backups are triggered by a local
cron job which carries no identity and is admitted by address instead.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)

CRON_ACTOR = "cron-job"
_FORWARDING_HEADERS = ("X-Forwarded-For", "X-Real-IP", "X-Forwarded-Host")


@dataclass(frozen=True)
class Identity:
    """Represents the authenticated caller."""

    email: str
    is_cron: bool = False


def email_allowed(email: str, allowed_domain: str) -> bool:
    """Return ``True`` when ``email`` belongs to ``allowed_domain``.

    An empty domain admits every address.
    """

    if not allowed_domain:
        return True
    domain = allowed_domain.strip().lower().lstrip("@")
    return email.lower().endswith(f"@{domain}")


class IdentityMiddleware(BaseHTTPMiddleware):
    """Attach :class:`Identity` from the upstream identity header."""

    def __init__(self, app, *, header: str = "X-Auth-Request-Email", allowed_domain: str = "") -> None:
        super().__init__(app)
        self.header = header
        self.allowed_domain = allowed_domain

    async def dispatch(self, request: Request, call_next):
        email = (request.headers.get(self.header) or "").strip()
        if email:
            if not email_allowed(email, self.allowed_domain):
                logger.warning(
                    "identity_domain_rejected",
                    email=email,
                    path=request.url.path,
                    method=request.method,
                )
                return ORJSONResponse({"detail": "Access denied"}, status_code=403)
            request.state.identity = Identity(email=email.lower())
        return await call_next(request)


def get_identity(request: Request) -> Identity | None:
    identity = getattr(request.state, "identity", None)
    return identity if isinstance(identity, Identity) else None


def require_user(request: Request) -> Identity:
    """Require an authenticated user, raise 401 otherwise."""

    identity = get_identity(request)
    if identity is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity


def _is_loopback(value: str) -> bool:
    value = value.strip()
    if not value:
        return True
    if value.lower().startswith("localhost"):
        return True
    host = value
    if host.startswith("[") and "]" in host:
        host = host[1 : host.index("]")]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def is_local_request(request: Request) -> bool:
    """Return ``True`` when neither the peer nor any forwarding header is remote."""

    for header in _FORWARDING_HEADERS:
        raw = request.headers.get(header)
        if raw and not all(_is_loopback(part) for part in raw.split(",")):
            return False
    if request.client and request.client.host:
        return _is_loopback(request.client.host)
    return True


def require_local_caller(request: Request) -> Identity:
    """Admit loopback callers as the cron actor, raise 403 otherwise."""

    if not is_local_request(request):
        logger.warning(
            "cron_external_access_blocked",
            path=request.url.path,
            forwarded_for=request.headers.get("X-Forwarded-For"),
            real_ip=request.headers.get("X-Real-IP"),
            forwarded_host=request.headers.get("X-Forwarded-Host"),
            client=request.client.host if request.client else None,
        )
        raise HTTPException(status_code=403, detail="Cron endpoint is only available locally")
    return Identity(email=CRON_ACTOR, is_cron=True)
