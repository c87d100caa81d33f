from __future__ import annotations


class ApiError(Exception):
    """Base error carrying everything the request layer needs to build an error envelope."""

    def __init__(
        self,
        *,
        code: str,
        message: str,
        error_class: str,
        retryable: bool,
        http_status: int,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_class = error_class
        self.retryable = retryable
        self.http_status = http_status


class _KindError(ApiError):
    code = "INTERNAL_ERROR"
    error_class = "internal"
    http_status = 500
    default_message = "internal error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            code=type(self).code,
            message=message or type(self).default_message,
            error_class=type(self).error_class,
            retryable=False,
            http_status=type(self).http_status,
        )


class EmptyInputError(_KindError):
    code = "REQ_EMPTY_INPUT"
    error_class = "validation"
    http_status = 400
    default_message = "no data"


class UnmappedFieldError(_KindError):
    # programming error: a filter field reached the clause builder without a whitelist entry
    code = "REQ_UNMAPPED_FIELD"
    error_class = "internal"
    http_status = 500
    default_message = "field has no column mapping"


class FieldNotAllowedError(_KindError):
    code = "REQ_FIELD_NOT_ALLOWED"
    error_class = "validation"
    http_status = 400
    default_message = "field not allowed"


class InvalidReferenceError(_KindError):
    code = "REQ_INVALID_REFERENCE"
    error_class = "validation"
    http_status = 400
    default_message = "invalid reference"


class Unauthorized(_KindError):
    code = "AUTH_UNAUTHORIZED"
    error_class = "security_sensitive"
    http_status = 401
    default_message = "authentication required"


class Forbidden(_KindError):
    code = "AUTH_FORBIDDEN"
    error_class = "security_sensitive"
    http_status = 403
    default_message = "insufficient privilege"


class NotFound(_KindError):
    code = "RESOURCE_NOT_FOUND"
    error_class = "business_rule"
    http_status = 404
    default_message = "not found"


class DuplicateAssociation(_KindError):
    code = "APPLICATION_DUPLICATE"
    error_class = "business_rule"
    http_status = 409
    default_message = "duplicate application"


class InvalidStatus(_KindError):
    code = "APPLICATION_INVALID_STATUS"
    error_class = "validation"
    http_status = 400
    default_message = "invalid status"

