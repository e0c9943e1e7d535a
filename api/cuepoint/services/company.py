from __future__ import annotations

from datetime import datetime
from typing import Any

from cuepoint.core.auth import CompanyContext
from cuepoint.schemas.jobs import JobPostingDraft
from cuepoint.services.cache import TTLCache, company_groups_tag, company_jobs_tag
from cuepoint.services.job_edit import job_fields_from_draft, validate_job_draft
from cuepoint.services.staging import DraftValidationError

NEW_JOB_IMAGE_PREFIX = "new"


async def list_company_groups(
    *,
    repository: Any,
    groups_cache: TTLCache,
    context: CompanyContext,
) -> list[dict[str, Any]]:
    cache_key = ("groups", context.company_account_id, context.company_user_id)
    cached = groups_cache.get(cache_key)
    if cached is not None:
        return cached

    groups = await repository.list_company_groups(
        company_account_id=context.company_account_id,
        company_user_id=context.company_user_id,
    )
    groups_cache.set(cache_key, groups, tags={company_groups_tag(context.company_account_id)})
    return groups


async def list_company_jobs(
    *,
    repository: Any,
    jobs_cache: TTLCache,
    context: CompanyContext,
    status: str | None,
    group_id: str | None,
    scope: str | None,
    q: str | None,
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    cache_key = ("jobs", context.company_account_id, status, group_id, scope, q, limit, offset)
    cached = jobs_cache.get(cache_key)
    if cached is not None:
        return cached

    jobs = await repository.list_company_jobs(
        company_account_id=context.company_account_id,
        status=status,
        group_id=group_id,
        scope=scope,
        q=q,
        limit=limit,
        offset=offset,
    )
    jobs_cache.set(cache_key, jobs, tags={company_jobs_tag(context.company_account_id)})
    return jobs


async def create_job(
    *,
    repository: Any,
    storage: Any,
    jobs_cache: TTLCache,
    context: CompanyContext,
    draft: JobPostingDraft,
    now: datetime,
) -> dict[str, Any]:
    errors = validate_job_draft(draft)
    if errors:
        raise DraftValidationError(errors)

    uploaded = await storage.upload_job_images(NEW_JOB_IMAGE_PREFIX, draft.new_images)
    posting = await repository.create_job_posting(
        company_account_id=context.company_account_id,
        fields=job_fields_from_draft(
            draft,
            image_urls=draft.existing_images + uploaded,
            default_employment_type="FULL_TIME",
        ),
        now=now,
    )
    jobs_cache.invalidate_tag(company_jobs_tag(context.company_account_id))
    return posting


async def close_job(
    *,
    repository: Any,
    jobs_cache: TTLCache,
    context: CompanyContext,
    job_id: str,
    now: datetime,
) -> dict[str, Any]:
    posting = await repository.update_job_posting(
        job_id=job_id,
        company_account_id=context.company_account_id,
        fields={"status": "CLOSED"},
        now=now,
    )
    jobs_cache.invalidate_tag(company_jobs_tag(context.company_account_id))
    return posting
