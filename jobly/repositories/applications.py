from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from jobly.db.postgres import PostgresTxRunner, classify_integrity_error
from jobly.errors import ApiError, DuplicateAssociation, InvalidStatus, NotFound
from jobly.sql import build_assignment_clause

APPLICATION_STATUSES: frozenset[str] = frozenset({"interested", "applied", "accepted", "rejected"})


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def _missing_application(username: str, job_id: Any) -> NotFound:
    return NotFound(f"No application for job {job_id} and user {username}")


class InMemoryApplicationsRepository:
    """Applications keyed by (username, job_id) over shared user and job dicts."""

    def __init__(
        self,
        *,
        users: dict[str, dict[str, Any]],
        jobs: dict[Any, dict[str, Any]],
        applications: dict[tuple[str, Any], str] | None = None,
        statuses: Iterable[str] = APPLICATION_STATUSES,
    ) -> None:
        self._users = users
        self._jobs = jobs
        self._applications = {} if applications is None else applications
        self._statuses = frozenset(statuses)

    def apply(self, *, username: str, job_id: Any, status: str) -> dict[str, Any]:
        if username not in self._users or job_id not in self._jobs:
            raise NotFound(f"No user {username} or job {job_id}")
        if status not in self._statuses:
            raise InvalidStatus(f"invalid status: {status}")
        if (username, job_id) in self._applications:
            raise DuplicateAssociation(f"Duplicate application by {username} to {job_id}")
        self._applications[(username, job_id)] = status
        return {"jobId": job_id, "username": username, "status": status}

    def find_all(self) -> list[dict[str, Any]]:
        keys = sorted(self._applications, key=lambda k: (k[1], k[0]))
        return [
            {"jobId": job_id, "username": username, "status": self._applications[(username, job_id)]}
            for username, job_id in keys
        ]

    def get(self, *, username: str, job_id: Any) -> dict[str, Any]:
        status = self._applications.get((username, job_id))
        job = self._jobs.get(job_id)
        user = self._users.get(username)
        if status is None or job is None or user is None:
            raise _missing_application(username, job_id)
        return {
            "status": status,
            "job": {
                "id": job["id"],
                "title": job.get("title"),
                "salary": job.get("salary"),
                "equity": job.get("equity"),
                "companyHandle": job.get("companyHandle"),
            },
            "user": {
                "username": user["username"],
                "firstName": user.get("firstName"),
                "lastName": user.get("lastName"),
                "email": user.get("email"),
            },
        }

    def list_by_subject(self, *, username: str) -> list[dict[str, Any]]:
        if username not in self._users:
            raise NotFound(f"No user: {username}")
        rows = []
        for (owner, job_id), status in self._applications.items():
            job = self._jobs.get(job_id)
            # inner join: rows whose job is gone are skipped
            if owner != username or job is None:
                continue
            rows.append(
                {
                    "status": status,
                    "jobId": job_id,
                    "title": job.get("title"),
                    "salary": job.get("salary"),
                    "equity": job.get("equity"),
                    "companyHandle": job.get("companyHandle"),
                }
            )
        return sorted(rows, key=lambda r: r["jobId"])

    def list_by_target(self, *, job_id: Any) -> list[dict[str, Any]]:
        if job_id not in self._jobs:
            raise NotFound(f"No job with id: {job_id}")
        rows = []
        for (username, target), status in self._applications.items():
            user = self._users.get(username)
            if target != job_id or user is None:
                continue
            rows.append(
                {
                    "status": status,
                    "username": username,
                    "firstName": user.get("firstName"),
                    "lastName": user.get("lastName"),
                    "email": user.get("email"),
                }
            )
        return sorted(rows, key=lambda r: r["username"])

    def transition(self, *, username: str, job_id: Any, status: str) -> dict[str, Any]:
        # status before key: same precedence as PostgresApplicationsRepository.transition
        if status not in self._statuses:
            raise InvalidStatus(f"invalid status: {status}")
        if (username, job_id) not in self._applications:
            raise _missing_application(username, job_id)
        self._applications[(username, job_id)] = status
        return {"jobId": job_id, "username": username, "status": status}

    def remove(self, *, username: str, job_id: Any) -> None:
        if self._applications.pop((username, job_id), None) is None:
            raise _missing_application(username, job_id)


class PostgresApplicationsRepository:
    """Applications backed by a constrained ``applications`` table.

    Existence, uniqueness and status membership are enforced by the table's
    foreign keys, primary key and enum type; violations are classified from
    the SQLSTATE rather than pre-checked.
    """

    def __init__(
        self,
        *,
        tx_runner: PostgresTxRunner,
        table_name: str = "applications",
        users_table: str = "users",
        jobs_table: str = "jobs",
    ) -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)
        self._users_table = _validate_identifier(users_table)
        self._jobs_table = _validate_identifier(jobs_table)

    def _run_classified(self, fn: Any, *, not_found_message: str) -> Any:
        try:
            return self._tx_runner.run_in_tx(fn)
        except ApiError:
            raise
        except Exception as exc:
            classified = classify_integrity_error(exc, not_found_message=not_found_message)
            if classified is None:
                raise
            raise classified from exc

    def apply(self, *, username: str, job_id: Any, status: str) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._table_name} (username, job_id, status)
            VALUES ($1, $2, $3)
            RETURNING job_id, username, status
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(sql, (username, job_id, status))
                row = cur.fetchone()
            return {"jobId": row[0], "username": row[1], "status": row[2]}

        return self._run_classified(_op, not_found_message=f"No user {username} or job {job_id}")

    def find_all(self) -> list[dict[str, Any]]:
        sql = f"""
            SELECT job_id, username, status
            FROM {self._table_name}
            ORDER BY job_id, username
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall() or []
            return [{"jobId": row[0], "username": row[1], "status": row[2]} for row in rows]

        return self._tx_runner.run_in_tx(_op)

    def get(self, *, username: str, job_id: Any) -> dict[str, Any]:
        sql = f"""
            SELECT a.status, j.id, j.title, j.salary, j.equity, j.company_handle,
                   u.username, u.first_name, u.last_name, u.email
            FROM {self._table_name} AS a
                JOIN {self._jobs_table} AS j ON (a.job_id = j.id)
                JOIN {self._users_table} AS u ON (a.username = u.username)
            WHERE a.username = $1 AND a.job_id = $2
        """

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (username, job_id))
                return cur.fetchone()

        row = self._tx_runner.run_in_tx(_op)
        if row is None:
            raise _missing_application(username, job_id)
        return {
            "status": row[0],
            "job": {"id": row[1], "title": row[2], "salary": row[3], "equity": row[4], "companyHandle": row[5]},
            "user": {"username": row[6], "firstName": row[7], "lastName": row[8], "email": row[9]},
        }

    def list_by_subject(self, *, username: str) -> list[dict[str, Any]]:
        probe = f"SELECT username FROM {self._users_table} WHERE username = $1"
        sql = f"""
            SELECT a.status, a.job_id, j.title, j.salary, j.equity, j.company_handle
            FROM {self._table_name} AS a
                JOIN {self._jobs_table} AS j ON (a.job_id = j.id)
            WHERE a.username = $1
            ORDER BY a.job_id
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(probe, (username,))
                if cur.fetchone() is None:
                    raise NotFound(f"No user: {username}")
                cur.execute(sql, (username,))
                rows = cur.fetchall() or []
            return [
                {
                    "status": row[0],
                    "jobId": row[1],
                    "title": row[2],
                    "salary": row[3],
                    "equity": row[4],
                    "companyHandle": row[5],
                }
                for row in rows
            ]

        return self._tx_runner.run_in_tx(_op)

    def list_by_target(self, *, job_id: Any) -> list[dict[str, Any]]:
        probe = f"SELECT id FROM {self._jobs_table} WHERE id = $1"
        sql = f"""
            SELECT a.status, a.username, u.first_name, u.last_name, u.email
            FROM {self._table_name} AS a
                JOIN {self._users_table} AS u ON (a.username = u.username)
            WHERE a.job_id = $1
            ORDER BY a.username
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(probe, (job_id,))
                if cur.fetchone() is None:
                    raise NotFound(f"No job with id: {job_id}")
                cur.execute(sql, (job_id,))
                rows = cur.fetchall() or []
            return [
                {"status": row[0], "username": row[1], "firstName": row[2], "lastName": row[3], "email": row[4]}
                for row in rows
            ]

        return self._tx_runner.run_in_tx(_op)

    def transition(self, *, username: str, job_id: Any, status: str) -> dict[str, Any]:
        clause = build_assignment_clause({"status": status})
        key_idx = len(clause.values) + 1
        sql = f"""
            UPDATE {self._table_name}
            SET {clause.text}
            WHERE username = ${key_idx} AND job_id = ${key_idx + 1}
            RETURNING job_id, username, status
        """

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (*clause.values, username, job_id))
                return cur.fetchone()

        row = self._run_classified(_op, not_found_message=f"No user {username} or job {job_id}")
        if row is None:
            raise _missing_application(username, job_id)
        return {"jobId": row[0], "username": row[1], "status": row[2]}

    def remove(self, *, username: str, job_id: Any) -> None:
        sql = f"DELETE FROM {self._table_name} WHERE username = $1 AND job_id = $2 RETURNING username"

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (username, job_id))
                return cur.fetchone()

        if self._tx_runner.run_in_tx(_op) is None:
            raise _missing_application(username, job_id)
