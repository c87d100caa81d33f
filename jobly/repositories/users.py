from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any

from jobly.db.postgres import PostgresTxRunner
from jobly.errors import EmptyInputError, NotFound
from jobly.sql import build_assignment_clause, ensure_allowed_fields

# Admin promotion is not a self-service field.
USER_UPDATE_FIELDS: frozenset[str] = frozenset({"firstName", "lastName", "password", "email"})
USER_COLUMNS: dict[str, str] = {
    "firstName": "first_name",
    "lastName": "last_name",
}


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _row_to_user(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "username": row[0],
        "firstName": row[1],
        "lastName": row[2],
        "email": row[3],
        "isAdmin": row[4],
        "jobs": list(row[5] or []),
    }


def _prepare_update(
    data: Mapping[str, Any],
    hash_password: Callable[[str], str] | None,
) -> dict[str, Any]:
    fields = ensure_allowed_fields(data, USER_UPDATE_FIELDS)
    if "password" in fields:
        if hash_password is None:
            raise ValueError("hash_password is required to update a password")
        fields["password"] = hash_password(fields["password"])
    return fields


class InMemoryUsersRepository:
    """Users keyed by username; ``applications`` is the dict shared with the applications store."""

    def __init__(
        self,
        users: dict[str, dict[str, Any]],
        *,
        applications: dict[tuple[str, Any], str] | None = None,
        hash_password: Callable[[str], str] | None = None,
    ) -> None:
        self._users = users
        self._applications = {} if applications is None else applications
        self._hash_password = hash_password

    def _public(self, user: Mapping[str, Any]) -> dict[str, Any]:
        row = {k: user.get(k) for k in ("username", "firstName", "lastName", "email", "isAdmin")}
        row["jobs"] = sorted(job_id for owner, job_id in self._applications if owner == user["username"])
        return row

    def find_all(self) -> list[dict[str, Any]]:
        return [self._public(self._users[k]) for k in sorted(self._users)]

    def get(self, *, username: str) -> dict[str, Any]:
        row = self._users.get(username)
        if row is None:
            raise NotFound(f"No user: {username}")
        return self._public(row)

    def update(self, *, username: str, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = _prepare_update(data, self._hash_password)
        if not fields:
            raise EmptyInputError("no data to update")
        row = self._users.get(username)
        if row is None:
            raise NotFound(f"No user: {username}")
        row.update(fields)
        return self._public(row)

    def remove(self, *, username: str) -> None:
        if self._users.pop(username, None) is None:
            raise NotFound(f"No user: {username}")
        for key in [k for k in self._applications if k[0] == username]:
            del self._applications[key]


class PostgresUsersRepository:
    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "users",
        applications_table: str = "applications",
        hash_password: Callable[[str], str] | None = None,
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)
        self._applications_table = _validate_identifier(applications_table)
        self._hash_password = hash_password

    def _columns(self) -> str:
        # ARRAY(subquery) yields '{}' for a user without applications
        jobs = (
            f"ARRAY(SELECT a.job_id FROM {self._applications_table} AS a"
            f" WHERE a.username = {self._table_name}.username ORDER BY a.job_id) AS jobs"
        )
        return f"username, first_name, last_name, email, is_admin, {jobs}"

    def find_all(self) -> list[dict[str, Any]]:
        sql = f"SELECT {self._columns()} FROM {self._table_name} ORDER BY username"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall() or []
            return [_row_to_user(row) for row in rows]

        return self._tx_runner.run_in_tx(_op)

    def get(self, *, username: str) -> dict[str, Any]:
        sql = f"SELECT {self._columns()} FROM {self._table_name} WHERE username = $1"

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (username,))
                return cur.fetchone()

        row = self._tx_runner.run_in_tx(_op)
        if row is None:
            raise NotFound(f"No user: {username}")
        return _row_to_user(row)

    def update(self, *, username: str, data: Mapping[str, Any]) -> dict[str, Any]:
        clause = build_assignment_clause(_prepare_update(data, self._hash_password), USER_COLUMNS)
        username_idx = len(clause.values) + 1
        sql = f"""
            UPDATE {self._table_name}
            SET {clause.text}
            WHERE username = ${username_idx}
            RETURNING {self._columns()}
        """

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (*clause.values, username))
                return cur.fetchone()

        row = self._tx_runner.run_in_tx(_op)
        if row is None:
            raise NotFound(f"No user: {username}")
        return _row_to_user(row)

    def remove(self, *, username: str) -> None:
        sql = f"DELETE FROM {self._table_name} WHERE username = $1 RETURNING username"

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (username,))
                return cur.fetchone()

        if self._tx_runner.run_in_tx(_op) is None:
            raise NotFound(f"No user: {username}")
