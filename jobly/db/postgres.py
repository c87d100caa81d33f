from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from jobly.errors import ApiError, DuplicateAssociation, InvalidStatus, NotFound

logger = logging.getLogger(__name__)

FOREIGN_KEY_VIOLATION = "23503"
UNIQUE_VIOLATION = "23505"
INVALID_TEXT_REPRESENTATION = "22P02"


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


class PostgresTxRunner:
    """Run callback logic in one PostgreSQL transaction using native ``$n`` placeholders."""

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()

    @classmethod
    def from_env(cls) -> "PostgresTxRunner":
        return cls(os.environ.get("POSTGRES_DSN", ""))

    def run_in_tx(self, fn: Callable[[Any], Any]) -> Any:
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn, cursor_factory=psycopg.RawCursor) as conn:
            result = fn(conn)
            conn.commit()
            return result


def classify_integrity_error(
    exc: BaseException,
    *,
    not_found_message: str = "referenced record does not exist",
) -> ApiError | None:
    """Map a driver error's SQLSTATE to a domain error, or None when unrecognised."""
    sqlstate = getattr(exc, "sqlstate", None)
    if sqlstate == FOREIGN_KEY_VIOLATION:
        classified: ApiError = NotFound(not_found_message)
    elif sqlstate == UNIQUE_VIOLATION:
        classified = DuplicateAssociation()
    elif sqlstate == INVALID_TEXT_REPRESENTATION:
        classified = InvalidStatus()
    else:
        return None
    logger.info("store integrity failure sqlstate=%s code=%s", sqlstate, classified.code)
    return classified
