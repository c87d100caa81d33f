from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from jobly.db.postgres import FOREIGN_KEY_VIOLATION, PostgresTxRunner
from jobly.errors import EmptyInputError, InvalidReferenceError, NotFound
from jobly.sql import (
    FieldMap,
    FieldSpec,
    Operator,
    build_assignment_clause,
    build_filter_clause,
    ensure_allowed_fields,
)

JOB_SEARCH_FIELDS = FieldMap(
    [
        FieldSpec(name="title", column="title", operator=Operator.ILIKE),
        FieldSpec(name="minSalary", column="salary", operator=Operator.GTE),
    ]
)
JOB_UPDATE_FIELDS: frozenset[str] = frozenset({"title", "salary", "equity"})
HAS_EQUITY_TOGGLE = "hasEquity"
HAS_EQUITY_PREDICATE = "equity > 0"

_COLUMNS = "id, title, salary, equity, company_handle"


def _validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


def split_search_filters(filters: Mapping[str, Any]) -> tuple[dict[str, Any], bool]:
    """Pull the ``hasEquity`` toggle out of the filters and whitelist the rest.

    Only a literal ``True`` toggle constrains the search; ``False`` is ignored.
    """
    remaining = dict(filters)
    has_equity = remaining.pop(HAS_EQUITY_TOGGLE, False) is True
    return ensure_allowed_fields(remaining, JOB_SEARCH_FIELDS.names), has_equity


def _row_to_job(row: tuple[Any, ...]) -> dict[str, Any]:
    return {
        "id": row[0],
        "title": row[1],
        "salary": row[2],
        "equity": row[3],
        "companyHandle": row[4],
    }


def _as_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _matches(job: dict[str, Any], spec: FieldSpec, expected: Any) -> bool:
    actual = job.get(spec.column)
    if spec.operator is Operator.ILIKE:
        return actual is not None and str(expected).lower() in str(actual).lower()
    if spec.operator is Operator.EQUALS:
        return actual == expected
    actual_num = _as_number(actual)
    expected_num = _as_number(expected)
    if actual_num is None or expected_num is None:
        return False
    if spec.operator is Operator.GTE:
        return actual_num >= expected_num
    return actual_num <= expected_num


class InMemoryJobsRepository:
    def __init__(
        self,
        jobs: dict[Any, dict[str, Any]],
        *,
        companies: set[str] | None = None,
        applications: dict[tuple[str, Any], str] | None = None,
    ) -> None:
        self._jobs = jobs
        self._companies = companies
        self._applications = applications

    def create(self, *, job: Mapping[str, Any]) -> dict[str, Any]:
        handle = job.get("companyHandle")
        if self._companies is not None and handle not in self._companies:
            raise InvalidReferenceError(f"Invalid company handle: {handle}")
        job_id = max(self._jobs, default=0) + 1
        item = {
            "id": job_id,
            "title": job.get("title"),
            "salary": job.get("salary"),
            "equity": job.get("equity"),
            "companyHandle": handle,
        }
        self._jobs[job_id] = item
        return dict(item)

    def find_all(self) -> list[dict[str, Any]]:
        return [dict(self._jobs[k]) for k in sorted(self._jobs)]

    def search(self, *, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        remaining, has_equity = split_search_filters(filters)
        results = []
        for job in self.find_all():
            if has_equity and not (_as_number(job.get("equity")) or 0) > 0:
                continue
            if all(_matches(job, JOB_SEARCH_FIELDS.lookup(name), value) for name, value in remaining.items()):
                results.append(job)
        return results

    def get(self, *, job_id: Any) -> dict[str, Any]:
        row = self._jobs.get(job_id)
        if row is None:
            raise NotFound(f"No job with id: {job_id}")
        return dict(row)

    def update(self, *, job_id: Any, data: Mapping[str, Any]) -> dict[str, Any]:
        fields = ensure_allowed_fields(data, JOB_UPDATE_FIELDS)
        if not fields:
            raise EmptyInputError("no data to update")
        row = self._jobs.get(job_id)
        if row is None:
            raise NotFound(f"No job: {job_id}")
        row.update(fields)
        return dict(row)

    def remove(self, *, job_id: Any) -> None:
        if self._jobs.pop(job_id, None) is None:
            raise NotFound(f"No job: {job_id}")
        if self._applications is not None:
            for key in [k for k in self._applications if k[1] == job_id]:
                del self._applications[key]


class PostgresJobsRepository:
    def __init__(self, *, tx_runner: PostgresTxRunner, table_name: str = "jobs") -> None:
        self._tx_runner = tx_runner
        self._table_name = _validate_identifier(table_name)

    def create(self, *, job: Mapping[str, Any]) -> dict[str, Any]:
        sql = f"""
            INSERT INTO {self._table_name} (title, salary, equity, company_handle)
            VALUES ($1, $2, $3, $4)
            RETURNING {_COLUMNS}
        """

        def _op(conn: Any) -> dict[str, Any]:
            with conn.cursor() as cur:
                cur.execute(
                    sql,
                    (job.get("title"), job.get("salary"), job.get("equity"), job.get("companyHandle")),
                )
                row = cur.fetchone()
            return _row_to_job(row)

        try:
            return self._tx_runner.run_in_tx(_op)
        except Exception as exc:
            if getattr(exc, "sqlstate", None) != FOREIGN_KEY_VIOLATION:
                raise
            raise InvalidReferenceError(f"Invalid company handle: {job.get('companyHandle')}") from exc

    def find_all(self) -> list[dict[str, Any]]:
        sql = f"SELECT {_COLUMNS} FROM {self._table_name} ORDER BY id"

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall() or []
            return [_row_to_job(row) for row in rows]

        return self._tx_runner.run_in_tx(_op)

    def search(self, *, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        remaining, has_equity = split_search_filters(filters)
        conditions: list[str] = []
        values: list[Any] = []
        if remaining:
            clause = build_filter_clause(remaining, JOB_SEARCH_FIELDS)
            conditions.append(clause.text)
            values = clause.values
        if has_equity:
            conditions.append(HAS_EQUITY_PREDICATE)
        if not conditions:
            return self.find_all()
        where = " AND ".join(conditions)
        sql = f"""
            SELECT {_COLUMNS}
            FROM {self._table_name}
            WHERE {where}
            ORDER BY id
        """

        def _op(conn: Any) -> list[dict[str, Any]]:
            with conn.cursor() as cur:
                cur.execute(sql, tuple(values))
                rows = cur.fetchall() or []
            return [_row_to_job(row) for row in rows]

        return self._tx_runner.run_in_tx(_op)

    def get(self, *, job_id: Any) -> dict[str, Any]:
        sql = f"SELECT {_COLUMNS} FROM {self._table_name} WHERE id = $1"

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (job_id,))
                return cur.fetchone()

        row = self._tx_runner.run_in_tx(_op)
        if row is None:
            raise NotFound(f"No job with id: {job_id}")
        return _row_to_job(row)

    def update(self, *, job_id: Any, data: Mapping[str, Any]) -> dict[str, Any]:
        clause = build_assignment_clause(ensure_allowed_fields(data, JOB_UPDATE_FIELDS))
        id_idx = len(clause.values) + 1
        sql = f"""
            UPDATE {self._table_name}
            SET {clause.text}
            WHERE id = ${id_idx}
            RETURNING {_COLUMNS}
        """

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (*clause.values, job_id))
                return cur.fetchone()

        row = self._tx_runner.run_in_tx(_op)
        if row is None:
            raise NotFound(f"No job: {job_id}")
        return _row_to_job(row)

    def remove(self, *, job_id: Any) -> None:
        sql = f"DELETE FROM {self._table_name} WHERE id = $1 RETURNING id"

        def _op(conn: Any) -> tuple[Any, ...] | None:
            with conn.cursor() as cur:
                cur.execute(sql, (job_id,))
                return cur.fetchone()

        if self._tx_runner.run_in_tx(_op) is None:
            raise NotFound(f"No job: {job_id}")
