from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc
from opentelemetry import trace

from cuepoint.core.config import get_settings
from cuepoint.services.scout_stats import ApplicationEvent, ScoutMessageEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class RepositoryCascadeError(RepositoryError):
    """Raised when one step of a cascading delete fails; the whole delete is rolled back."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step}: {message}")
        self.step = step


@dataclass(slots=True)
class CompanyUserRecord:
    company_user_id: str
    company_account_id: str
    email: str | None
    full_name: str | None


JOB_STATUSES = {"DRAFT", "PENDING_APPROVAL", "PUBLISHED", "CLOSED"}
PUBLICATION_TYPES = {"public", "members", "scout", "stopped"}

# Draft field name -> (column, cast).
JOB_FIELD_COLUMNS: dict[str, tuple[str, str]] = {
    "title": ("title", "text"),
    "job_types": ("job_type", "text[]"),
    "industries": ("industry", "text[]"),
    "job_description": ("job_description", "text"),
    "position_summary": ("position_summary", "text"),
    "required_skills": ("required_skills", "text"),
    "preferred_skills": ("preferred_skills", "text"),
    "salary_min": ("salary_min", "integer"),
    "salary_max": ("salary_max", "integer"),
    "salary_note": ("salary_note", "text"),
    "employment_type": ("employment_type", "text"),
    "employment_type_note": ("employment_type_note", "text"),
    "work_locations": ("work_location", "text[]"),
    "location_note": ("location_note", "text"),
    "working_hours": ("working_hours", "text"),
    "overtime_info": ("overtime_info", "text"),
    "holidays": ("holidays", "text"),
    "remote_work_available": ("remote_work_available", "boolean"),
    "selection_process": ("selection_process", "text"),
    "appeal_points": ("appeal_points", "text[]"),
    "smoking_policy": ("smoking_policy", "text"),
    "smoking_policy_note": ("smoking_policy_note", "text"),
    "required_documents": ("required_documents", "text[]"),
    "internal_memo": ("internal_memo", "text"),
    "publication_type": ("publication_type", "text"),
    "status": ("status", "text"),
    "application_deadline": ("application_deadline", "date"),
    "group_id": ("company_group_id", "uuid"),
    "image_urls": ("image_urls", "text[]"),
}

# Ordered so that no step deletes a row another pending step still references.
GROUP_CASCADE_STEPS: tuple[tuple[str, str], ...] = (
    (
        "room_messages",
        "delete from messages where room_id in (select id from rooms where company_group_id = $1::uuid)",
    ),
    ("sent_messages", "delete from messages where sender_company_group_id = $1::uuid"),
    ("rooms", "delete from rooms where company_group_id = $1::uuid"),
    ("selection_progress", "delete from selection_progress where company_group_id = $1::uuid"),
    ("application", "delete from application where company_group_id = $1::uuid"),
    ("scout_sends", "delete from scout_sends where company_group_id = $1::uuid"),
    ("search_templates", "delete from search_templates where group_id = $1::uuid"),
    ("message_templates", "delete from message_templates where group_id = $1::uuid"),
    ("hidden_candidates", "delete from hidden_candidates where company_group_id = $1::uuid"),
    ("saved_candidates", "delete from saved_candidates where company_group_id = $1::uuid"),
    ("job_postings", "delete from job_postings where company_group_id = $1::uuid"),
    (
        "company_user_group_permissions",
        "delete from company_user_group_permissions where company_group_id = $1::uuid",
    ),
    ("company_groups", "delete from company_groups where id = $1::uuid"),
)

JOB_LIST_SELECT = """
    select
      jp.id::text as id,
      jp.title,
      jp.job_type,
      jp.industry,
      jp.employment_type,
      jp.work_location,
      jp.salary_min,
      jp.salary_max,
      jp.status,
      jp.publication_type,
      jp.company_group_id::text as group_id,
      cg.group_name,
      jp.published_at,
      jp.created_at,
      jp.updated_at
    from job_postings jp
    left join company_groups cg on cg.id = jp.company_group_id
"""

JOB_DETAIL_SELECT = """
    select
      jp.id::text as id,
      jp.company_account_id::text as company_account_id,
      jp.title,
      jp.job_type,
      jp.industry,
      jp.employment_type,
      jp.employment_type_note,
      jp.work_location,
      jp.location_note,
      jp.salary_min,
      jp.salary_max,
      jp.salary_note,
      jp.job_description,
      jp.position_summary,
      jp.required_skills,
      jp.preferred_skills,
      jp.working_hours,
      jp.overtime_info,
      jp.holidays,
      jp.remote_work_available,
      jp.selection_process,
      jp.appeal_points,
      jp.smoking_policy,
      jp.smoking_policy_note,
      jp.required_documents,
      jp.internal_memo,
      jp.image_urls,
      jp.application_deadline,
      jp.status,
      jp.publication_type,
      jp.company_group_id::text as group_id,
      cg.group_name,
      jp.published_at,
      jp.approved_at,
      jp.rejected_at,
      jp.created_at,
      jp.updated_at
    from job_postings jp
    left join company_groups cg on cg.id = jp.company_group_id
"""

CANDIDATE_COLUMNS = (
    "email",
    "last_name",
    "first_name",
    "last_name_kana",
    "first_name_kana",
    "gender",
    "birth_date",
    "prefecture",
    "phone_number",
    "current_income",
    "current_company",
    "current_position",
    "has_career_change",
    "job_change_timing",
    "current_activity_status",
    "recent_job_company_name",
    "recent_job_department_position",
    "recent_job_industries",
    "recent_job_types",
    "recent_job_is_currently_working",
    "job_summary",
    "self_pr",
    "management_experience_count",
)
CANDIDATE_JSON_COLUMNS = {"recent_job_industries", "recent_job_types"}


class PostgresRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_company_user(self, *, auth_user_id: str) -> CompanyUserRecord | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select
                  id::text as company_user_id,
                  company_account_id::text as company_account_id,
                  email,
                  full_name
                from company_users
                where auth_user_id = $1::uuid
                """,
                auth_user_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        if not row:
            return None
        return CompanyUserRecord(
            company_user_id=row["company_user_id"],
            company_account_id=row["company_account_id"],
            email=row["email"],
            full_name=row["full_name"],
        )

    async def list_company_groups(self, *, company_account_id: str, company_user_id: str) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              cg.id::text as id,
              cg.group_name,
              cg.description,
              p.permission_level,
              cg.created_at
            from company_groups cg
            join company_user_group_permissions p on p.company_group_id = cg.id
            where cg.company_account_id = $1::uuid
              and p.company_user_id = $2::uuid
            order by cg.created_at asc, cg.id asc
            """,
            company_account_id,
            company_user_id,
        )
        return [
            {
                "id": row["id"],
                "group_name": row["group_name"],
                "description": row["description"],
                "permission_level": row["permission_level"],
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    async def list_company_jobs(
        self,
        *,
        company_account_id: str,
        status: str | None,
        group_id: str | None,
        scope: str | None,
        q: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions = [f"jp.company_account_id = {bind(company_account_id)}::uuid"]
        if status:
            conditions.append(f"jp.status = {bind(status)}")
        normalized_group = self._coerce_text(group_id)
        if normalized_group:
            conditions.append(f"jp.company_group_id = {bind(normalized_group)}::uuid")
        if scope == "stopped":
            conditions.append("jp.status = 'CLOSED'")
        elif scope:
            conditions.append(f"jp.publication_type = {bind(scope)}")
        normalized_q = self._coerce_text(q)
        if normalized_q:
            like_token = bind(f"%{normalized_q}%")
            exact_token = bind(normalized_q)
            conditions.append(
                f"(jp.title ilike {like_token} or {exact_token} = any(jp.job_type) or {exact_token} = any(jp.industry))"
            )

        limit_token = bind(limit)
        offset_token = bind(offset)
        try:
            rows = await pool.fetch(
                f"""
                {JOB_LIST_SELECT}
                where {" and ".join(conditions)}
                order by jp.updated_at desc nulls last, jp.created_at desc nulls last, jp.id asc
                limit {limit_token}
                offset {offset_token}
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return []
        return [self._job_list_row_to_dict(row) for row in rows]

    async def get_company_job(self, *, job_id: str, company_account_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await self._fetch_job_detail_row(conn=pool, job_id=job_id, company_account_id=company_account_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("job posting not found") from exc
        if not row:
            raise RepositoryNotFoundError("job posting not found")
        return self._job_detail_row_to_dict(row)

    async def create_job_posting(
        self,
        *,
        company_account_id: str,
        fields: dict[str, Any],
        now: datetime,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        values = dict(fields)
        values.setdefault("status", "PENDING_APPROVAL")

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    group_id = await self._resolve_job_group(
                        conn=conn,
                        company_account_id=company_account_id,
                        group_id=self._coerce_text(values.get("group_id")),
                    )
                    values["group_id"] = group_id
                    values["published_at"] = self._resolve_published_at(
                        from_status=None,
                        to_status=values.get("status"),
                        published_at=None,
                        now=now,
                    )

                    params: list[Any] = [company_account_id, now]
                    columns = ["company_account_id", "created_at", "updated_at"]
                    placeholders = ["$1::uuid", "$2", "$2"]
                    for column, cast, value in self._job_assignments(values):
                        params.append(value)
                        columns.append(column)
                        placeholders.append(f"${len(params)}::{cast}")
                    if values["published_at"] is not None:
                        params.append(values["published_at"])
                        columns.append("published_at")
                        placeholders.append(f"${len(params)}::timestamptz")

                    job_id = await conn.fetchval(
                        f"""
                        insert into job_postings ({", ".join(columns)})
                        values ({", ".join(placeholders)})
                        returning id::text
                        """,
                        *params,
                    )
                    row = await self._fetch_job_detail_row(
                        conn=conn,
                        job_id=job_id,
                        company_account_id=company_account_id,
                    )
                    if not row:
                        raise RepositoryNotFoundError("job posting not found")
                    return self._job_detail_row_to_dict(row)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid job posting payload") from exc

    async def update_job_posting(
        self,
        *,
        job_id: str,
        company_account_id: str,
        fields: dict[str, Any],
        now: datetime,
    ) -> dict[str, Any]:
        """Apply a partial update; only keys present in ``fields`` are written."""
        pool = await self._get_pool()
        values = dict(fields)

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    try:
                        current = await conn.fetchrow(
                            """
                            select status, published_at
                            from job_postings
                            where id = $1::uuid
                              and company_account_id = $2::uuid
                            for update
                            """,
                            job_id,
                            company_account_id,
                        )
                    except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
                        raise RepositoryNotFoundError("job posting not found") from exc
                    if not current:
                        raise RepositoryNotFoundError("job posting not found")

                    if "group_id" in values:
                        values["group_id"] = await self._resolve_job_group(
                            conn=conn,
                            company_account_id=company_account_id,
                            group_id=self._coerce_text(values["group_id"]),
                        )
                    if "status" in values:
                        values["published_at"] = self._resolve_published_at(
                            from_status=current["status"],
                            to_status=values["status"],
                            published_at=current["published_at"],
                            now=now,
                        )

                    await self._update_job_row(conn=conn, job_id=job_id, values=values, now=now)
                    row = await self._fetch_job_detail_row(
                        conn=conn,
                        job_id=job_id,
                        company_account_id=company_account_id,
                    )
                    if not row:
                        raise RepositoryNotFoundError("job posting not found")
                    return self._job_detail_row_to_dict(row)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid job posting payload") from exc

    async def update_job_publication_type(
        self,
        *,
        job_id: str,
        company_account_id: str,
        publication_type: str,
        now: datetime,
    ) -> dict[str, Any]:
        if publication_type not in PUBLICATION_TYPES:
            raise RepositoryValidationError(f"unsupported publication type: {publication_type}")
        return await self.update_job_posting(
            job_id=job_id,
            company_account_id=company_account_id,
            fields={"publication_type": publication_type},
            now=now,
        )

    async def list_pending_jobs(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            {JOB_DETAIL_SELECT}
            where jp.status = 'PENDING_APPROVAL'
            order by jp.updated_at desc nulls last, jp.id asc
            limit $1
            offset $2
            """,
            limit,
            offset,
        )
        return [self._job_detail_row_to_dict(row) for row in rows]

    async def review_job_postings(
        self,
        *,
        job_ids: list[str],
        decision: str,
        reason: str | None,
        comment: str | None,
        now: datetime,
    ) -> list[dict[str, Any]]:
        """Approve or reject a batch of postings; an unknown id rolls back the batch."""
        if decision not in {"approve", "reject"}:
            raise RepositoryValidationError(f"unsupported review decision: {decision}")
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    reviewed: list[dict[str, Any]] = []
                    for job_id in dict.fromkeys(job_ids):
                        current = await conn.fetchrow(
                            """
                            select status, published_at
                            from job_postings
                            where id = $1::uuid
                            for update
                            """,
                            job_id,
                        )
                        if not current:
                            raise RepositoryNotFoundError(f"job posting not found: {job_id}")

                        if decision == "approve":
                            await conn.execute(
                                """
                                update job_postings
                                set
                                  status = 'PUBLISHED',
                                  published_at = $2,
                                  approved_at = $3,
                                  approval_reason = $4,
                                  approval_comment = $5,
                                  updated_at = $3
                                where id = $1::uuid
                                """,
                                job_id,
                                self._resolve_published_at(
                                    from_status=current["status"],
                                    to_status="PUBLISHED",
                                    published_at=current["published_at"],
                                    now=now,
                                ),
                                now,
                                reason,
                                comment,
                            )
                        else:
                            await conn.execute(
                                """
                                update job_postings
                                set
                                  status = 'DRAFT',
                                  rejected_at = $2,
                                  rejection_reason = $3,
                                  rejection_comment = $4,
                                  updated_at = $2
                                where id = $1::uuid
                                """,
                                job_id,
                                now,
                                reason,
                                comment,
                            )

                        row = await self._fetch_job_detail_row(conn=conn, job_id=job_id, company_account_id=None)
                        if row:
                            reviewed.append(self._job_detail_row_to_dict(row))
                    return reviewed
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("job posting not found") from exc

    async def list_scout_events(
        self,
        *,
        candidate_id: str,
    ) -> tuple[list[ScoutMessageEvent], list[ApplicationEvent]]:
        pool = await self._get_pool()
        try:
            candidate_exists = await pool.fetchval(
                "select exists(select 1 from candidates where id = $1::uuid)",
                candidate_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("candidate not found") from exc
        if not candidate_exists:
            raise RepositoryNotFoundError("candidate not found")

        message_rows = await pool.fetch(
            """
            select m.sent_at, m.read_at, m.replied_at
            from messages m
            join rooms r on r.id = m.room_id
            where r.candidate_id = $1::uuid
              and m.message_type = 'SCOUT'
              and m.sender_type = 'COMPANY_USER'
            """,
            candidate_id,
        )
        application_rows = await pool.fetch(
            """
            select created_at
            from application
            where candidate_id = $1::uuid
            """,
            candidate_id,
        )
        messages = [
            ScoutMessageEvent(
                sent_at=self._coerce_datetime(row["sent_at"]),
                read_at=self._coerce_datetime(row["read_at"]),
                replied_at=self._coerce_datetime(row["replied_at"]),
            )
            for row in message_rows
        ]
        applications = [ApplicationEvent(created_at=self._coerce_datetime(row["created_at"])) for row in application_rows]
        return messages, applications

    async def get_candidate_profile(self, *, candidate_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    select id::text as id, {", ".join(CANDIDATE_COLUMNS)}, created_at, updated_at
                    from candidates
                    where id = $1::uuid
                    """,
                    candidate_id,
                )
                if not row:
                    raise RepositoryNotFoundError("candidate not found")
                return await self._candidate_profile_to_dict(conn=conn, row=row)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("candidate not found") from exc

    async def candidate_email_exists(self, *, email: str, exclude_candidate_id: str) -> bool:
        pool = await self._get_pool()
        try:
            return bool(
                await pool.fetchval(
                    """
                    select exists(
                      select 1 from candidates
                      where lower(email) = lower($1)
                        and id <> $2::uuid
                    )
                    """,
                    email,
                    exclude_candidate_id,
                )
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("candidate not found") from exc

    async def update_candidate_profile(
        self,
        *,
        candidate_id: str,
        profile: dict[str, Any],
        now: datetime,
    ) -> dict[str, Any]:
        """Write the candidate row and replace its child rows in one transaction.

        ``career_status_entries`` is only replaced when present and not None.
        """
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "select exists(select 1 from candidates where id = $1::uuid)",
                        candidate_id,
                    )
                    if not exists:
                        raise RepositoryNotFoundError("candidate not found")

                    email = self._coerce_text(profile.get("email"))
                    if email:
                        duplicate = await conn.fetchval(
                            """
                            select exists(
                              select 1 from candidates
                              where lower(email) = lower($1)
                                and id <> $2::uuid
                            )
                            """,
                            email,
                            candidate_id,
                        )
                        if duplicate:
                            raise RepositoryConflictError("email is already used by another candidate")

                    params: list[Any] = [candidate_id, now]
                    assignments = ["updated_at = $2"]
                    for column in CANDIDATE_COLUMNS:
                        if column not in profile:
                            continue
                        value = profile[column]
                        if column in CANDIDATE_JSON_COLUMNS:
                            params.append(json.dumps(list(value or [])))
                            assignments.append(f"{column} = ${len(params)}::jsonb")
                        else:
                            params.append(value)
                            assignments.append(f"{column} = ${len(params)}")
                    await conn.execute(
                        f"update candidates set {', '.join(assignments)} where id = $1::uuid",
                        *params,
                    )

                    await self._replace_candidate_children(
                        conn=conn,
                        candidate_id=candidate_id,
                        profile=profile,
                        now=now,
                    )

                    row = await conn.fetchrow(
                        f"""
                        select id::text as id, {", ".join(CANDIDATE_COLUMNS)}, created_at, updated_at
                        from candidates
                        where id = $1::uuid
                        """,
                        candidate_id,
                    )
                    if not row:
                        raise RepositoryNotFoundError("candidate not found")
                    return await self._candidate_profile_to_dict(conn=conn, row=row)
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("email is already used by another candidate") from exc
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid candidate payload") from exc

    async def get_company_group(self, *, group_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select
                  id::text as id,
                  company_account_id::text as company_account_id,
                  group_name,
                  description
                from company_groups
                where id = $1::uuid
                """,
                group_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("company group not found") from exc
        if not row:
            raise RepositoryNotFoundError("company group not found")
        return dict(row)

    async def delete_company_group(self, *, group_id: str) -> dict[str, Any]:
        """Delete a group and everything scoped to it as a single transaction."""
        pool = await self._get_pool()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    group = await conn.fetchrow(
                        """
                        select id::text as id, company_account_id::text as company_account_id
                        from company_groups
                        where id = $1::uuid
                        for update
                        """,
                        group_id,
                    )
                    if not group:
                        raise RepositoryNotFoundError("company group not found")

                    deleted: dict[str, int] = {}
                    for step, statement in GROUP_CASCADE_STEPS:
                        with tracer.start_as_current_span("company_group.cascade_step") as step_span:
                            step_span.set_attribute("cascade.step", step)
                            try:
                                result = await conn.execute(statement, group_id)
                            except asyncpg.PostgresError as exc:
                                raise RepositoryCascadeError(step, str(exc)) from exc
                            deleted[step] = self._parse_command_count(result)
                            step_span.set_attribute("cascade.rows", deleted[step])

                    return {
                        "group_id": group["id"],
                        "company_account_id": group["company_account_id"],
                        "deleted": deleted,
                    }
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("company group not found") from exc

    async def invite_group_members(self, *, group_id: str, members: list[dict[str, Any]]) -> dict[str, Any]:
        """Grant group permissions to each member, creating company users as needed.

        Each member is written in its own transaction; failures are reported
        in ``skipped`` and do not affect the other members.
        """
        group = await self.get_company_group(group_id=group_id)
        pool = await self._get_pool()

        invited: list[dict[str, Any]] = []
        skipped: list[dict[str, Any]] = []
        for member in members:
            email = self._coerce_text(member.get("email"))
            role = "admin" if member.get("role") == "admin" else "scout"
            if not email:
                skipped.append({"email": member.get("email"), "reason": "email is required"})
                continue
            permission_level = "ADMINISTRATOR" if role == "admin" else "SCOUT_STAFF"
            try:
                async with pool.acquire() as conn:
                    async with conn.transaction():
                        company_user_id = await conn.fetchval(
                            "select id::text from company_users where lower(email) = lower($1)",
                            email,
                        )
                        if company_user_id is None:
                            # Placeholder credential; replaced when the member completes signup.
                            company_user_id = await conn.fetchval(
                                """
                                insert into company_users (company_account_id, email, full_name, password_hash)
                                values ($1::uuid, $2, '', $3)
                                returning id::text
                                """,
                                group["company_account_id"],
                                email,
                                secrets.token_hex(12),
                            )
                        await conn.execute(
                            """
                            insert into company_user_group_permissions (
                              company_user_id,
                              company_group_id,
                              permission_level
                            )
                            values ($1::uuid, $2::uuid, $3)
                            on conflict (company_user_id, company_group_id)
                            do update set permission_level = excluded.permission_level, updated_at = now()
                            """,
                            company_user_id,
                            group_id,
                            permission_level,
                        )
            except asyncpg.PostgresError as exc:
                logger.warning("group invitation failed", extra={"group_id": group_id, "email": email}, exc_info=exc)
                skipped.append({"email": email, "reason": "could not grant group permission"})
                continue

            invited.append(
                {
                    "email": email,
                    "role": role,
                    "company_user_id": company_user_id,
                    "permission_level": permission_level,
                }
            )

        return {
            "group_id": group["id"],
            "company_account_id": group["company_account_id"],
            "invited": invited,
            "skipped": skipped,
        }

    async def _resolve_job_group(
        self,
        *,
        conn: asyncpg.Connection,
        company_account_id: str,
        group_id: str | None,
    ) -> str:
        if group_id:
            owned = await conn.fetchval(
                """
                select id::text
                from company_groups
                where id = $1::uuid
                  and company_account_id = $2::uuid
                """,
                group_id,
                company_account_id,
            )
            if not owned:
                raise RepositoryValidationError("group does not belong to this company")
            return owned

        fallback = await conn.fetchval(
            """
            select id::text
            from company_groups
            where company_account_id = $1::uuid
            order by created_at asc, id asc
            limit 1
            """,
            company_account_id,
        )
        if not fallback:
            raise RepositoryValidationError("company has no groups")
        return fallback

    async def _update_job_row(
        self,
        *,
        conn: asyncpg.Connection,
        job_id: str,
        values: dict[str, Any],
        now: datetime,
    ) -> None:
        params: list[Any] = [job_id, now]
        assignments = ["updated_at = $2"]
        for column, cast, value in self._job_assignments(values):
            params.append(value)
            assignments.append(f"{column} = ${len(params)}::{cast}")
        if "published_at" in values:
            params.append(values["published_at"])
            assignments.append(f"published_at = ${len(params)}::timestamptz")

        await conn.execute(
            f"update job_postings set {', '.join(assignments)} where id = $1::uuid",
            *params,
        )

    @staticmethod
    def _job_assignments(values: dict[str, Any]) -> list[tuple[str, str, Any]]:
        assignments: list[tuple[str, str, Any]] = []
        for field_name, (column, cast) in JOB_FIELD_COLUMNS.items():
            if field_name not in values:
                continue
            value = values[field_name]
            if cast == "text[]":
                # Lists arrive canonical from the request models; only None needs mapping.
                value = list(value or [])
            assignments.append((column, cast, value))
        return assignments

    async def _replace_candidate_children(
        self,
        *,
        conn: asyncpg.Connection,
        candidate_id: str,
        profile: dict[str, Any],
        now: datetime,
    ) -> None:
        education = profile.get("education") or {}
        await conn.execute("delete from education where candidate_id = $1::uuid", candidate_id)
        if education.get("final_education") or education.get("school_name"):
            await conn.execute(
                """
                insert into education (
                  candidate_id, final_education, school_name, department,
                  graduation_year, graduation_month, created_at, updated_at
                )
                values ($1::uuid, $2, $3, $4, $5, $6, $7, $7)
                """,
                candidate_id,
                education.get("final_education") or "",
                education.get("school_name"),
                education.get("department"),
                education.get("graduation_year"),
                education.get("graduation_month"),
                now,
            )

        for table, name_column in (("work_experience", "industry_name"), ("job_type_experience", "job_type_name")):
            await conn.execute(f"delete from {table} where candidate_id = $1::uuid", candidate_id)
            rows = [
                (candidate_id, name, self._coerce_int(item.get("experience_years")) or 0, now)
                for item in profile.get(table) or []
                if (name := self._coerce_text(item.get("name")))
            ]
            if rows:
                await conn.executemany(
                    f"""
                    insert into {table} (candidate_id, {name_column}, experience_years, created_at, updated_at)
                    values ($1::uuid, $2, $3, $4, $4)
                    """,
                    rows,
                )

        skills = profile.get("skills") or {}
        await conn.execute("delete from skills where candidate_id = $1::uuid", candidate_id)
        if skills.get("english_level") or skills.get("qualifications") or skills.get("skills_list"):
            await conn.execute(
                """
                insert into skills (
                  candidate_id, english_level, other_languages, skills_list,
                  qualifications, created_at, updated_at
                )
                values ($1::uuid, $2, $3::jsonb, $4::text[], $5, $6, $6)
                """,
                candidate_id,
                skills.get("english_level") or "",
                json.dumps(self._coerce_json_list(skills.get("other_languages"))),
                list(skills.get("skills_list") or []),
                skills.get("qualifications"),
                now,
            )

        expectations = profile.get("expectations") or {}
        await conn.execute("delete from expectations where candidate_id = $1::uuid", candidate_id)
        expectation_lists = {
            key: list(expectations.get(key) or [])
            for key in (
                "desired_industries",
                "desired_job_types",
                "desired_work_locations",
                "desired_work_styles",
            )
        }
        if expectations.get("desired_income") or any(expectation_lists.values()):
            await conn.execute(
                """
                insert into expectations (
                  candidate_id, desired_income, desired_industries, desired_job_types,
                  desired_work_locations, desired_work_styles, created_at, updated_at
                )
                values ($1::uuid, $2, $3::jsonb, $4::jsonb, $5::jsonb, $6::jsonb, $7, $7)
                """,
                candidate_id,
                expectations.get("desired_income") or "",
                json.dumps(expectation_lists["desired_industries"]),
                json.dumps(expectation_lists["desired_job_types"]),
                json.dumps(expectation_lists["desired_work_locations"]),
                json.dumps(expectation_lists["desired_work_styles"]),
                now,
            )

        entries = profile.get("career_status_entries")
        if entries is None:
            return
        await conn.execute("delete from career_status_entries where candidate_id = $1::uuid", candidate_id)
        rows = [
            (
                candidate_id,
                entry.get("company_name"),
                entry.get("department"),
                json.dumps(list(entry.get("industries") or [])),
                self._coerce_bool(entry.get("is_private")),
                entry.get("progress_status"),
                now,
            )
            for entry in entries
            if self._coerce_text(entry.get("company_name"))
        ]
        if rows:
            await conn.executemany(
                """
                insert into career_status_entries (
                  candidate_id, company_name, department, industries,
                  is_private, progress_status, created_at, updated_at
                )
                values ($1::uuid, $2, $3, $4::jsonb, $5, $6, $7, $7)
                """,
                rows,
            )
        await conn.execute(
            "update candidates set career_status_updated_at = $2 where id = $1::uuid",
            candidate_id,
            now,
        )

    async def _candidate_profile_to_dict(self, *, conn: asyncpg.Connection, row: asyncpg.Record) -> dict[str, Any]:
        candidate_id = row["id"]
        profile: dict[str, Any] = {"id": candidate_id}
        for column in CANDIDATE_COLUMNS:
            value = row[column]
            if column in CANDIDATE_JSON_COLUMNS:
                value = self._coerce_text_list(self._coerce_json_value(value))
            profile[column] = value
        profile["created_at"] = row["created_at"]
        profile["updated_at"] = row["updated_at"]

        education = await conn.fetchrow(
            """
            select final_education, school_name, department, graduation_year, graduation_month
            from education
            where candidate_id = $1::uuid
            order by created_at desc nulls last
            limit 1
            """,
            candidate_id,
        )
        profile["education"] = dict(education) if education else {}

        work_rows = await conn.fetch(
            """
            select industry_name as name, experience_years
            from work_experience
            where candidate_id = $1::uuid
            order by created_at asc nulls last
            """,
            candidate_id,
        )
        profile["work_experience"] = [dict(item) for item in work_rows]

        job_type_rows = await conn.fetch(
            """
            select job_type_name as name, experience_years
            from job_type_experience
            where candidate_id = $1::uuid
            order by created_at asc nulls last
            """,
            candidate_id,
        )
        profile["job_type_experience"] = [dict(item) for item in job_type_rows]

        skills = await conn.fetchrow(
            """
            select english_level, other_languages, skills_list, qualifications
            from skills
            where candidate_id = $1::uuid
            order by created_at desc nulls last
            limit 1
            """,
            candidate_id,
        )
        profile["skills"] = (
            {
                "english_level": skills["english_level"],
                "other_languages": self._coerce_json_list(self._coerce_json_value(skills["other_languages"])),
                "skills_list": list(skills["skills_list"] or []),
                "qualifications": skills["qualifications"],
            }
            if skills
            else {}
        )

        expectations = await conn.fetchrow(
            """
            select desired_income, desired_industries, desired_job_types,
                   desired_work_locations, desired_work_styles
            from expectations
            where candidate_id = $1::uuid
            order by created_at desc nulls last
            limit 1
            """,
            candidate_id,
        )
        profile["expectations"] = (
            {
                "desired_income": expectations["desired_income"],
                **{
                    key: self._coerce_text_list(self._coerce_json_value(expectations[key]))
                    for key in (
                        "desired_industries",
                        "desired_job_types",
                        "desired_work_locations",
                        "desired_work_styles",
                    )
                },
            }
            if expectations
            else {}
        )

        entry_rows = await conn.fetch(
            """
            select company_name, department, industries, is_private, progress_status
            from career_status_entries
            where candidate_id = $1::uuid
            order by created_at asc nulls last
            """,
            candidate_id,
        )
        profile["career_status_entries"] = [
            {
                "company_name": item["company_name"],
                "department": item["department"],
                "industries": self._coerce_text_list(self._coerce_json_value(item["industries"])),
                "is_private": bool(item["is_private"]),
                "progress_status": item["progress_status"],
            }
            for item in entry_rows
        ]
        return profile

    async def _fetch_job_detail_row(
        self,
        *,
        conn: asyncpg.Connection | asyncpg.Pool,
        job_id: str,
        company_account_id: str | None,
    ) -> asyncpg.Record | None:
        if company_account_id is None:
            return await conn.fetchrow(f"{JOB_DETAIL_SELECT} where jp.id = $1::uuid", job_id)
        return await conn.fetchrow(
            f"{JOB_DETAIL_SELECT} where jp.id = $1::uuid and jp.company_account_id = $2::uuid",
            job_id,
            company_account_id,
        )

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("CP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _job_list_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "title": row["title"],
            "job_types": list(row["job_type"] or []),
            "industries": list(row["industry"] or []),
            "employment_type": row["employment_type"],
            "work_locations": list(row["work_location"] or []),
            "salary_min": row["salary_min"],
            "salary_max": row["salary_max"],
            "status": row["status"] or "DRAFT",
            "publication_type": row["publication_type"],
            "group_id": row["group_id"],
            "group_name": row["group_name"],
            "published_at": row["published_at"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        }

    @staticmethod
    def _job_detail_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        detail = PostgresRepository._job_list_row_to_dict(row)
        detail.update(
            {
                "company_account_id": row["company_account_id"],
                "job_description": row["job_description"],
                "position_summary": row["position_summary"],
                "required_skills": row["required_skills"],
                "preferred_skills": row["preferred_skills"],
                "salary_note": row["salary_note"],
                "employment_type_note": row["employment_type_note"],
                "location_note": row["location_note"],
                "working_hours": row["working_hours"],
                "overtime_info": row["overtime_info"],
                "holidays": row["holidays"],
                "remote_work_available": bool(row["remote_work_available"]),
                "selection_process": row["selection_process"],
                "appeal_points": list(row["appeal_points"] or []),
                "smoking_policy": row["smoking_policy"],
                "smoking_policy_note": row["smoking_policy_note"],
                "required_documents": list(row["required_documents"] or []),
                "internal_memo": row["internal_memo"],
                "image_urls": list(row["image_urls"] or []),
                "application_deadline": row["application_deadline"],
                "approved_at": row["approved_at"],
                "rejected_at": row["rejected_at"],
            }
        )
        return detail

    @staticmethod
    def _resolve_published_at(
        *,
        from_status: str | None,
        to_status: str | None,
        published_at: datetime | None,
        now: datetime,
    ) -> datetime | None:
        """Stamp ``published_at`` only on an actual transition into PUBLISHED."""
        if to_status == "PUBLISHED" and from_status != "PUBLISHED":
            return now
        return published_at

    @staticmethod
    def _parse_command_count(status: str | None) -> int:
        # asyncpg returns the command tag, e.g. "DELETE 3".
        if not status:
            return 0
        try:
            return int(status.rsplit(" ", maxsplit=1)[-1])
        except ValueError:
            return 0

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @staticmethod
    def _coerce_text_list(value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        items: list[str] = []
        for item in value:
            if not isinstance(item, str):
                continue
            stripped = item.strip()
            if stripped:
                items.append(stripped)
        return items

    @staticmethod
    def _coerce_int(value: Any) -> int | None:
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _coerce_bool(value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in {"1", "true", "yes", "on"}:
                return True
            if normalized in {"0", "false", "no", "off"}:
                return False
        return False

    @staticmethod
    def _coerce_datetime(value: Any) -> datetime | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                return None
            try:
                return datetime.fromisoformat(candidate.replace("Z", "+00:00"))
            except ValueError:
                return None
        return None

    @staticmethod
    def _coerce_json_value(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return value

    @staticmethod
    def _coerce_json_list(value: Any) -> list[dict[str, Any]]:
        if not isinstance(value, list):
            return []
        items: list[dict[str, Any]] = []
        for item in value:
            if isinstance(item, dict):
                items.append(item)
        return items


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
