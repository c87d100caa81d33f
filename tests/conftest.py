import pathlib
import sys
from typing import Any

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jobly.security import JwtSecurityConfig

JWT_TEST_SECRET = "jwt_test_secret_0123456789abcdefghij"


class DriverError(Exception):
    """Stand-in for a psycopg error: only ``sqlstate`` is inspected."""

    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


class FakeCursor:
    def __init__(self, runner: "FakeRunner") -> None:
        self._runner = runner
        self._result: Any = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query: str, params=None):
        self._runner.statements.append((query, params))
        outcome = self._runner.outcomes.pop(0) if self._runner.outcomes else None
        if isinstance(outcome, BaseException):
            raise outcome
        self._result = outcome

    def fetchone(self):
        if isinstance(self._result, list):
            return self._result[0] if self._result else None
        return self._result

    def fetchall(self):
        if self._result is None:
            return []
        if isinstance(self._result, list):
            return self._result
        return [self._result]


class FakeConnection:
    def __init__(self, runner: "FakeRunner") -> None:
        self._runner = runner

    def cursor(self):
        return FakeCursor(self._runner)


class FakeRunner:
    """Records every (sql, params) pair; each execute consumes one queued outcome.

    An outcome is a row tuple, a list of rows, ``None`` (no row) or an
    exception to raise from ``execute``.
    """

    def __init__(self, outcomes: list[Any] | None = None) -> None:
        self.statements: list[tuple[str, Any]] = []
        self.outcomes = list(outcomes or [])
        self.tx_count = 0

    def run_in_tx(self, fn):
        self.tx_count += 1
        return fn(FakeConnection(self))


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def driver_error():
    return DriverError


@pytest.fixture(autouse=True)
def jwt_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("JWT_SHARED_SECRET", JWT_TEST_SECRET)
    monkeypatch.setenv("JWT_ISSUER", "jobly.test")
    monkeypatch.setenv("JWT_AUDIENCE", "jobly.api")
    monkeypatch.delenv("JWT_REQUIRED_CLAIMS", raising=False)
    monkeypatch.delenv("JWT_SUBJECT_CLAIM", raising=False)
    monkeypatch.delenv("JWT_ADMIN_CLAIM", raising=False)
    monkeypatch.delenv("JWT_TTL_SECONDS", raising=False)
    yield


@pytest.fixture
def security_cfg() -> JwtSecurityConfig:
    return JwtSecurityConfig.from_env()
