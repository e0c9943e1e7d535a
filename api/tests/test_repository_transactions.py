from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from asyncpg import exceptions as pg_exc

from cuepoint.services.repository import (
    GROUP_CASCADE_STEPS,
    PostgresRepository,
    RepositoryCascadeError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)
EARLIER = NOW - timedelta(days=10)


class FakeTransaction:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    async def __aenter__(self) -> FakeTransaction:
        self.conn.transactions_started += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.conn.committed = True
        else:
            self.conn.rolled_back = True
        return False


class FakeConnection:
    def __init__(
        self,
        *,
        current_job: dict[str, Any] | None = None,
        group: dict[str, Any] | None = None,
        fail_on_statement: str | None = None,
        fetchval_error: Exception | None = None,
        statement_error: Exception | None = None,
    ) -> None:
        self.current_job = current_job
        self.group = group
        self.fail_on_statement = fail_on_statement
        self.fetchval_error = fetchval_error
        self.statement_error = statement_error
        self.executed: list[tuple[str, tuple[Any, ...]]] = []
        self.transactions_started = 0
        self.committed = False
        self.rolled_back = False

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)

    async def fetchrow(self, sql: str, *args: Any) -> dict[str, Any] | None:
        if "from company_groups" in sql:
            return self.group
        if "for update" in sql:
            return self.current_job
        if "from job_postings jp" in sql:
            return _job_detail_row(id=args[0]) if self.current_job else None
        return None

    async def fetchval(self, sql: str, *args: Any) -> Any:
        if self.fetchval_error is not None:
            raise self.fetchval_error
        return None

    async def execute(self, sql: str, *args: Any) -> str:
        if self.fail_on_statement and self.fail_on_statement in sql:
            raise self.statement_error or pg_exc.ForeignKeyViolationError(
                "update or delete violates foreign key constraint"
            )
        self.executed.append((sql, args))
        return "DELETE 2" if sql.lstrip().startswith("delete") else "UPDATE 1"


class FakeAcquire:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    async def __aenter__(self) -> FakeConnection:
        return self.conn

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakePool:
    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    def acquire(self) -> FakeAcquire:
        return FakeAcquire(self.conn)

    async def close(self) -> None:
        return None


def _repository(conn: FakeConnection) -> PostgresRepository:
    repository = PostgresRepository(database_url="postgresql://fake", min_pool_size=1, max_pool_size=1)
    repository._pool = FakePool(conn)  # type: ignore[assignment]
    return repository


def _job_detail_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": "job-1",
        "company_account_id": "acct-1",
        "title": "Backend Engineer",
        "job_type": ["エンジニア"],
        "industry": ["IT"],
        "employment_type": "FULL_TIME",
        "employment_type_note": None,
        "work_location": ["東京都"],
        "location_note": None,
        "salary_min": 500,
        "salary_max": 800,
        "salary_note": None,
        "job_description": "Build APIs",
        "position_summary": "Small team",
        "required_skills": "Python",
        "preferred_skills": "Curiosity",
        "working_hours": "9-18",
        "overtime_info": None,
        "holidays": "土日祝",
        "remote_work_available": None,
        "selection_process": "2 interviews",
        "appeal_points": ["Remote"],
        "smoking_policy": None,
        "smoking_policy_note": None,
        "required_documents": None,
        "internal_memo": None,
        "image_urls": None,
        "application_deadline": None,
        "status": "PUBLISHED",
        "publication_type": "public",
        "group_id": "group-1",
        "group_name": "Sales",
        "published_at": EARLIER,
        "approved_at": None,
        "rejected_at": None,
        "created_at": EARLIER,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _job_update(conn: FakeConnection) -> tuple[str, tuple[Any, ...]]:
    updates = [item for item in conn.executed if item[0].startswith("update job_postings")]
    assert len(updates) == 1
    return updates[0]


def _assigned(sql: str, args: tuple[Any, ...], column: str) -> Any:
    match = re.search(rf"\b{column} = \$(\d+)", sql)
    assert match is not None, f"{column} not assigned"
    return args[int(match.group(1)) - 1]


@pytest.mark.parametrize(
    ("from_status", "to_status", "stored", "expected"),
    [
        ("PENDING_APPROVAL", "PUBLISHED", None, NOW),
        ("DRAFT", "PUBLISHED", EARLIER, NOW),
        ("PUBLISHED", "PUBLISHED", EARLIER, EARLIER),
        ("PUBLISHED", "CLOSED", EARLIER, EARLIER),
        (None, "PENDING_APPROVAL", None, None),
    ],
)
def test_resolve_published_at(from_status, to_status, stored, expected) -> None:
    resolved = PostgresRepository._resolve_published_at(
        from_status=from_status,
        to_status=to_status,
        published_at=stored,
        now=NOW,
    )
    assert resolved == expected


def test_republishing_keeps_original_published_at() -> None:
    conn = FakeConnection(current_job={"status": "PUBLISHED", "published_at": EARLIER})
    repository = _repository(conn)

    asyncio.run(
        repository.update_job_posting(
            job_id="job-1",
            company_account_id="acct-1",
            fields={"title": "Renamed", "status": "PUBLISHED"},
            now=NOW,
        )
    )

    sql, args = _job_update(conn)
    assert _assigned(sql, args, "published_at") == EARLIER
    assert _assigned(sql, args, "title") == "Renamed"
    assert conn.committed is True


def test_first_publication_stamps_published_at() -> None:
    conn = FakeConnection(current_job={"status": "DRAFT", "published_at": None})
    repository = _repository(conn)

    asyncio.run(
        repository.update_job_posting(
            job_id="job-1",
            company_account_id="acct-1",
            fields={"status": "PUBLISHED"},
            now=NOW,
        )
    )

    sql, args = _job_update(conn)
    assert _assigned(sql, args, "published_at") == NOW


def test_update_without_status_leaves_published_at_alone() -> None:
    conn = FakeConnection(current_job={"status": "PUBLISHED", "published_at": EARLIER})
    repository = _repository(conn)

    asyncio.run(
        repository.update_job_posting(
            job_id="job-1",
            company_account_id="acct-1",
            fields={"job_types": ["エンジニア", "デザイナー"], "work_locations": None},
            now=NOW,
        )
    )

    sql, args = _job_update(conn)
    assert "published_at" not in sql
    assert _assigned(sql, args, "job_type") == ["エンジニア", "デザイナー"]
    assert _assigned(sql, args, "work_location") == []


def test_update_of_unknown_job_raises_not_found() -> None:
    conn = FakeConnection(current_job=None)
    repository = _repository(conn)

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(
            repository.update_job_posting(
                job_id="job-404",
                company_account_id="acct-1",
                fields={"title": "x"},
                now=NOW,
            )
        )
    assert conn.executed == []


def test_malformed_group_id_is_a_validation_error() -> None:
    conn = FakeConnection(
        current_job={"status": "DRAFT", "published_at": None},
        fetchval_error=pg_exc.InvalidTextRepresentationError('invalid input syntax for type uuid: "abc"'),
    )
    repository = _repository(conn)

    with pytest.raises(RepositoryValidationError):
        asyncio.run(
            repository.update_job_posting(
                job_id="job-1",
                company_account_id="acct-1",
                fields={"group_id": "abc"},
                now=NOW,
            )
        )
    assert conn.rolled_back is True
    assert conn.executed == []


def test_out_of_range_value_is_a_validation_error() -> None:
    conn = FakeConnection(
        current_job={"status": "DRAFT", "published_at": None},
        fail_on_statement="update job_postings",
        statement_error=pg_exc.NumericValueOutOfRangeError("integer out of range"),
    )
    repository = _repository(conn)

    with pytest.raises(RepositoryValidationError):
        asyncio.run(
            repository.update_job_posting(
                job_id="job-1",
                company_account_id="acct-1",
                fields={"salary_min": 10**12},
                now=NOW,
            )
        )


def test_group_delete_runs_every_step_in_one_transaction() -> None:
    conn = FakeConnection(group={"id": "group-1", "company_account_id": "acct-1"})
    repository = _repository(conn)

    result = asyncio.run(repository.delete_company_group(group_id="group-1"))

    assert conn.transactions_started == 1
    assert conn.committed is True
    assert [sql for sql, _ in conn.executed] == [statement for _, statement in GROUP_CASCADE_STEPS]
    assert all(args == ("group-1",) for _, args in conn.executed)
    assert result["company_account_id"] == "acct-1"
    assert result["deleted"] == {step: 2 for step, _ in GROUP_CASCADE_STEPS}


def test_group_delete_order_removes_dependents_before_the_group() -> None:
    steps = [step for step, _ in GROUP_CASCADE_STEPS]
    assert steps.index("room_messages") < steps.index("rooms")
    assert steps.index("sent_messages") < steps.index("rooms")
    assert steps.index("application") < steps.index("job_postings")
    assert steps.index("company_user_group_permissions") < steps.index("company_groups")
    assert steps[-1] == "company_groups"


def test_group_delete_failure_rolls_back_and_names_the_step() -> None:
    conn = FakeConnection(
        group={"id": "group-1", "company_account_id": "acct-1"},
        fail_on_statement="delete from job_postings",
    )
    repository = _repository(conn)

    with pytest.raises(RepositoryCascadeError) as exc_info:
        asyncio.run(repository.delete_company_group(group_id="group-1"))

    assert exc_info.value.step == "job_postings"
    assert conn.rolled_back is True
    assert conn.committed is False
    executed_steps = [sql for sql, _ in conn.executed]
    assert "delete from company_groups where id = $1::uuid" not in executed_steps


def test_group_delete_of_unknown_group_raises_not_found() -> None:
    conn = FakeConnection(group=None)
    repository = _repository(conn)

    with pytest.raises(RepositoryNotFoundError):
        asyncio.run(repository.delete_company_group(group_id="group-404"))
    assert conn.executed == []


def test_parse_command_count() -> None:
    assert PostgresRepository._parse_command_count("DELETE 12") == 12
    assert PostgresRepository._parse_command_count("DELETE 0") == 0
    assert PostgresRepository._parse_command_count(None) == 0
