"""Layered access predicates evaluated against a per-request context.

Each predicate returns a ``Decision``; ``evaluate`` stops at the first
denial. A missing identity is always ``unauthorized``; ``forbidden`` is
reserved for an identity that lacks privilege or ownership.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Literal

from jobly.errors import Forbidden, Unauthorized
from jobly.security import RequestContext

logger = logging.getLogger(__name__)

DenyKind = Literal["unauthorized", "forbidden"]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    kind: DenyKind | None = None
    message: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, kind: DenyKind, message: str) -> "Decision":
        return cls(allowed=False, kind=kind, message=message)


Policy = Callable[[RequestContext], Decision]

_ALLOW = Decision.allow()


def allow_anonymous(ctx: RequestContext) -> Decision:
    return _ALLOW


def require_authenticated(ctx: RequestContext) -> Decision:
    if ctx.identity is None:
        return Decision.deny("unauthorized", "authentication required")
    return _ALLOW


def require_admin(ctx: RequestContext) -> Decision:
    if ctx.identity is None:
        return Decision.deny("unauthorized", "authentication required")
    if not ctx.identity.is_privileged:
        return Decision.deny("forbidden", "admin privilege required")
    return _ALLOW


def require_admin_or_self(param: str = "username") -> Policy:
    """Build a predicate passing admins and the subject named by ``ctx.params[param]``."""

    def _check(ctx: RequestContext) -> Decision:
        if ctx.identity is None:
            return Decision.deny("unauthorized", "authentication required")
        if ctx.identity.is_privileged:
            return _ALLOW
        target = ctx.params.get(param)
        if target is not None and ctx.identity.subject == target:
            return _ALLOW
        return Decision.deny("forbidden", "admin privilege or ownership required")

    _check.__name__ = f"require_admin_or_self[{param}]"
    return _check


def evaluate(ctx: RequestContext, policies: Sequence[Policy]) -> Decision:
    for policy in policies:
        decision = policy(ctx)
        if not decision.allowed:
            logger.info(
                "access denied kind=%s policy=%s subject=%s",
                decision.kind,
                getattr(policy, "__name__", repr(policy)),
                ctx.identity.subject if ctx.identity else "-",
            )
            return decision
    return _ALLOW


def enforce(ctx: RequestContext, policies: Sequence[Policy]) -> RequestContext:
    decision = evaluate(ctx, policies)
    if decision.allowed:
        return ctx
    if decision.kind == "unauthorized":
        raise Unauthorized(decision.message)
    raise Forbidden(decision.message)
