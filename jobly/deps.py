from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from jobly.errors import ApiError
from jobly.policy import Policy, enforce
from jobly.schemas import error_envelope
from jobly.security import JwtSecurityConfig, RequestContext, build_request_context

logger = logging.getLogger(__name__)

_SECURITY_CODES = {"AUTH_UNAUTHORIZED", "AUTH_FORBIDDEN"}


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None) or request.headers.get("x-trace-id")
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def security_config(request: Request) -> JwtSecurityConfig:
    cfg = getattr(request.app.state, "security_cfg", None)
    if cfg is None:
        cfg = JwtSecurityConfig.from_env()
        request.app.state.security_cfg = cfg
    return cfg


def request_context(
    request: Request,
    authorization: str | None = Header(default=None),
    cfg: JwtSecurityConfig = Depends(security_config),
) -> RequestContext:
    return build_request_context(
        authorization=authorization,
        cfg=cfg,
        params={k: str(v) for k, v in request.path_params.items()},
    )


def require(*policies: Policy) -> Callable[..., RequestContext]:
    """Dependency factory: ``Depends(require(require_admin))``."""

    def _dependency(ctx: RequestContext = Depends(request_context)) -> RequestContext:
        return enforce(ctx, policies)

    return _dependency


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.code in _SECURITY_CODES:
            logger.info("security_blocked code=%s path=%s", exc.code, request.url.path)
        return JSONResponse(
            status_code=exc.http_status,
            content=error_envelope(
                code=exc.code,
                message=exc.message,
                error_class=exc.error_class,
                retryable=exc.retryable,
                trace_id=trace_id_from_request(request),
            ),
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content=error_envelope(
                code="REQ_VALIDATION_FAILED",
                message="invalid payload",
                error_class="validation",
                retryable=False,
                trace_id=trace_id_from_request(request),
            ),
        )
