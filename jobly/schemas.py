from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from jobly.errors import FieldNotAllowedError

ModelT = TypeVar("ModelT", bound=BaseModel)


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class JobSearchQuery(_Strict):
    title: str | None = Field(default=None, min_length=1)
    minSalary: int | None = Field(default=None, ge=0)
    hasEquity: bool | None = None


class JobUpdateRequest(_Strict):
    title: str | None = Field(default=None, min_length=1)
    salary: int | None = Field(default=None, ge=0)
    equity: float | None = Field(default=None, ge=0, le=1)


class UserUpdateRequest(_Strict):
    firstName: str | None = Field(default=None, min_length=1, max_length=30)
    lastName: str | None = Field(default=None, min_length=1, max_length=30)
    password: str | None = Field(default=None, min_length=5, max_length=20)
    email: str | None = Field(default=None, min_length=6, max_length=60)


class ApplicationStatusRequest(_Strict):
    status: str = Field(min_length=1)


def parse_fields(model: type[ModelT], payload: Mapping[str, Any]) -> dict[str, Any]:
    """Validate ``payload`` against ``model`` and return the supplied fields in input order.

    Values come back coerced (``"true"`` -> ``True``); fields the client did
    not send are left out so partial updates stay partial.
    """
    try:
        parsed = model.model_validate(dict(payload))
    except ValidationError as exc:
        extras = [".".join(str(x) for x in err["loc"]) for err in exc.errors() if err["type"] == "extra_forbidden"]
        if extras:
            raise FieldNotAllowedError(f"fields not allowed: {sorted(extras)}") from None
        raise
    return {name: getattr(parsed, name) for name in payload if name in parsed.model_fields_set}


def success_envelope(data: Any, trace_id: str, message: str = "ok") -> dict[str, Any]:
    return {
        "success": True,
        "data": data,
        "message": message,
        "meta": {
            "trace_id": trace_id,
        },
    }


def error_envelope(
    *,
    code: str,
    message: str,
    error_class: str,
    retryable: bool,
    trace_id: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "retryable": retryable,
        "class": error_class,
    }
    if details is not None:
        error["details"] = details
    return {
        "success": False,
        "error": error,
        "meta": {
            "trace_id": trace_id,
        },
    }
