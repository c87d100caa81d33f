from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from jobly.errors import Unauthorized

logger = logging.getLogger(__name__)


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        if value.strip().isdigit():
            return int(value.strip())
    return None


@dataclass(frozen=True)
class Identity:
    subject: str
    is_privileged: bool = False
    issued_at: int | None = None


@dataclass(frozen=True)
class RequestContext:
    """Per-request state threaded from identity derivation to the handler.

    ``identity`` is ``None`` for anonymous requests (no credential, or one
    that failed verification). ``params`` carries path parameters that
    ownership checks compare against.
    """

    identity: Identity | None = None
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


@dataclass
class JwtSecurityConfig:
    shared_secret: str
    issuer: str = ""
    audience: str = ""
    required_claims: list[str] = field(default_factory=lambda: ["username"])
    subject_claim: str = "username"
    admin_claim: str = "isAdmin"
    ttl_seconds: int = 0

    @classmethod
    def from_env(cls) -> "JwtSecurityConfig":
        subject_claim = os.environ.get("JWT_SUBJECT_CLAIM", "username").strip() or "username"
        return cls(
            shared_secret=os.environ.get("JWT_SHARED_SECRET", "").strip(),
            issuer=os.environ.get("JWT_ISSUER", "").strip(),
            audience=os.environ.get("JWT_AUDIENCE", "").strip(),
            required_claims=_split_csv(os.environ.get("JWT_REQUIRED_CLAIMS", subject_claim)),
            subject_claim=subject_claim,
            admin_claim=os.environ.get("JWT_ADMIN_CLAIM", "isAdmin").strip() or "isAdmin",
            ttl_seconds=_env_int("JWT_TTL_SECONDS", 0),
        )


def parse_bearer_header(authorization: str | None) -> str | None:
    """Return the token of a ``Bearer <token>`` header value, or None."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def issue_token(*, subject: str, is_privileged: bool, cfg: JwtSecurityConfig, now: datetime | None = None) -> str:
    if not cfg.shared_secret:
        raise ValueError("JWT_SHARED_SECRET must not be empty")
    issued = now or datetime.now(UTC)
    payload: dict[str, Any] = {
        cfg.subject_claim: subject,
        cfg.admin_claim: bool(is_privileged),
        "iat": int(issued.timestamp()),
    }
    if cfg.issuer:
        payload["iss"] = cfg.issuer
    if cfg.audience:
        payload["aud"] = cfg.audience
    if cfg.ttl_seconds > 0:
        payload["exp"] = int((issued + timedelta(seconds=cfg.ttl_seconds)).timestamp())
    return jwt.encode(payload, cfg.shared_secret, algorithm="HS256")


def decode_token(token: str, cfg: JwtSecurityConfig) -> Identity:
    """Strictly verify an HS256 token; raises Unauthorized on any defect."""
    if not cfg.shared_secret:
        raise Unauthorized("jwt shared secret not configured")
    options: dict[str, Any] = {"require": list(cfg.required_claims)}
    kwargs: dict[str, Any] = {}
    if cfg.audience:
        kwargs["audience"] = cfg.audience
    else:
        options["verify_aud"] = False
    if cfg.issuer:
        kwargs["issuer"] = cfg.issuer
    try:
        claims = jwt.decode(token, cfg.shared_secret, algorithms=["HS256"], options=options, **kwargs)
    except jwt.ExpiredSignatureError:
        raise Unauthorized("token expired") from None
    except jwt.MissingRequiredClaimError as exc:
        raise Unauthorized(f"missing required claim: {exc.claim}") from None
    except jwt.InvalidTokenError as exc:
        raise Unauthorized(f"invalid token: {type(exc).__name__}") from None

    subject = claims.get(cfg.subject_claim)
    if not isinstance(subject, str) or not subject.strip():
        raise Unauthorized("missing subject claim")
    return Identity(
        subject=subject.strip(),
        is_privileged=claims.get(cfg.admin_claim) is True,
        issued_at=_as_int(claims.get("iat")),
    )


def derive_identity(token: str | None, cfg: JwtSecurityConfig) -> Identity | None:
    """Non-failing decode: absent or rejected credentials both yield None."""
    if not token:
        return None
    try:
        return decode_token(token, cfg)
    except Unauthorized as exc:
        logger.debug("bearer credential rejected: %s", exc.message)
        return None


def build_request_context(
    *,
    authorization: str | None,
    cfg: JwtSecurityConfig,
    params: Mapping[str, str] | None = None,
) -> RequestContext:
    identity = derive_identity(parse_bearer_header(authorization), cfg)
    return RequestContext(identity=identity, params=dict(params or {}))
