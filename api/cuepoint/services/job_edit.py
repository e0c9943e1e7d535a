"""Staged edit flow for company job postings.

A posting moves through ``editing -> staged -> scope_selection -> done``.
Staging only validates and stores the draft; nothing reaches the database
until the draft is committed. A commit uploads new images first and aborts
without any database write if one of them fails. The draft is cleared only
after the publication scope has been chosen.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from opentelemetry import trace

from cuepoint.core.auth import CompanyContext
from cuepoint.schemas.jobs import JobPostingDraft
from cuepoint.services.cache import TTLCache, company_jobs_tag
from cuepoint.services.staging import (
    DraftKey,
    DraftPhaseError,
    DraftStore,
    DraftValidationError,
    StagedDraft,
    StagedDraftMissingError,
    load_staged,
    save_staged,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JOB_ENTITY = "job"
EMPLOYMENT_TYPE_CODES = {"FULL_TIME", "CONTRACT", "PART_TIME", "INTERN"}
EMPLOYMENT_TYPE_LABELS = {
    "正社員": "FULL_TIME",
    "契約社員": "CONTRACT",
    "派遣社員": "CONTRACT",
    "業務委託": "CONTRACT",
    "アルバイト・パート": "PART_TIME",
    "インターン": "INTERN",
}
# Fields that are only written when the draft carries a value.
OPTIONAL_WRITE_FIELDS = {"status", "publication_type", "group_id"}


@dataclass(slots=True)
class JobEditState:
    job_id: str
    phase: str
    draft: JobPostingDraft


@dataclass(slots=True)
class JobCommitResult:
    job_id: str
    phase: str
    posting: dict[str, Any]


def job_draft_key(session_id: str, job_id: str) -> DraftKey:
    return DraftKey(session_id=session_id, entity_kind=JOB_ENTITY, entity_id=job_id)


def map_employment_type(label: str | None, *, default: str | None = None) -> str | None:
    if not label:
        return default
    if label in EMPLOYMENT_TYPE_CODES:
        return label
    mapped = EMPLOYMENT_TYPE_LABELS.get(label)
    if mapped:
        return mapped
    return default or label


def validate_job_draft(draft: JobPostingDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not draft.title:
        errors["title"] = "求人タイトルを入力してください。"
    if not draft.job_types:
        errors["job_types"] = "職種を1つ以上選択してください。"
    if not draft.industries:
        errors["industries"] = "業種を1つ以上選択してください。"
    if not draft.job_description:
        errors["job_description"] = "業務内容を入力してください。"
    if not draft.position_summary:
        errors["position_summary"] = "当ポジションの魅力を入力してください。"
    if not draft.required_skills:
        errors["required_skills"] = "必要または歓迎するスキル・経験を入力してください。"
    if not draft.preferred_skills:
        errors["preferred_skills"] = "求める人物像や価値観などを入力してください。"
    if draft.salary_min is None or draft.salary_max is None:
        errors["salary"] = "想定年収を選択してください。"
    elif draft.salary_min > draft.salary_max:
        errors["salary"] = "最大年収は最小年収よりも高く設定してください"
    if not draft.work_locations:
        errors["work_locations"] = "勤務地を1つ以上選択してください。"
    if not draft.working_hours:
        errors["working_hours"] = "就業時間を入力してください。"
    if not draft.holidays:
        errors["holidays"] = "休日・休暇について入力してください。"
    if not draft.selection_process:
        errors["selection_process"] = "選考情報を入力してください。"
    if not draft.appeal_points:
        errors["appeal_points"] = "アピールポイントを1つ以上選択してください。"
    return errors


def draft_from_posting(posting: dict[str, Any]) -> JobPostingDraft:
    values = dict(posting)
    values["images"] = list(posting.get("image_urls") or [])
    return JobPostingDraft.model_validate(values)


def job_fields_from_draft(
    draft: JobPostingDraft,
    *,
    image_urls: list[str],
    default_employment_type: str | None = None,
) -> dict[str, Any]:
    fields = draft.model_dump(exclude={"images"})
    for name in OPTIONAL_WRITE_FIELDS:
        if fields.get(name) is None:
            fields.pop(name, None)
    fields["employment_type"] = map_employment_type(draft.employment_type, default=default_employment_type)
    fields["image_urls"] = image_urls
    return fields


async def open_job_editor(
    *,
    repository: Any,
    store: DraftStore,
    context: CompanyContext,
    session_id: str,
    job_id: str,
) -> JobEditState:
    """Return the staged draft when one exists, else the stored posting."""
    staged = load_staged(store, job_draft_key(session_id, job_id))
    if staged is not None:
        return JobEditState(job_id=job_id, phase=staged.phase, draft=JobPostingDraft.model_validate(staged.draft))

    posting = await repository.get_company_job(job_id=job_id, company_account_id=context.company_account_id)
    return JobEditState(job_id=job_id, phase="editing", draft=draft_from_posting(posting))


async def stage_job_draft(
    *,
    repository: Any,
    store: DraftStore,
    context: CompanyContext,
    session_id: str,
    job_id: str,
    draft: JobPostingDraft,
) -> JobEditState:
    errors = validate_job_draft(draft)
    if errors:
        raise DraftValidationError(errors)

    await repository.get_company_job(job_id=job_id, company_account_id=context.company_account_id)
    save_staged(
        store,
        job_draft_key(session_id, job_id),
        StagedDraft(phase="staged", draft=draft.model_dump(mode="json")),
    )
    return JobEditState(job_id=job_id, phase="staged", draft=draft)


def review_job_draft(*, store: DraftStore, session_id: str, job_id: str) -> JobEditState | None:
    staged = load_staged(store, job_draft_key(session_id, job_id))
    if staged is None:
        return None
    return JobEditState(job_id=job_id, phase=staged.phase, draft=JobPostingDraft.model_validate(staged.draft))


async def commit_job_draft(
    *,
    repository: Any,
    store: DraftStore,
    storage: Any,
    jobs_cache: TTLCache,
    context: CompanyContext,
    session_id: str,
    job_id: str,
    now: datetime,
) -> JobCommitResult:
    """Persist the staged draft and advance it to scope selection.

    On any failure the stored draft is left exactly as it was staged.
    """
    key = job_draft_key(session_id, job_id)
    staged = load_staged(store, key)
    if staged is None:
        raise StagedDraftMissingError(job_id)

    draft = JobPostingDraft.model_validate(staged.draft)
    errors = validate_job_draft(draft)
    if errors:
        raise DraftValidationError(errors)

    with tracer.start_as_current_span("job_draft.commit") as span:
        span.set_attribute("job.id", job_id)
        uploaded = await storage.upload_job_images(job_id, draft.new_images)
        image_urls = draft.existing_images + uploaded

        posting = await repository.update_job_posting(
            job_id=job_id,
            company_account_id=context.company_account_id,
            fields=job_fields_from_draft(draft, image_urls=image_urls),
            now=now,
        )
    jobs_cache.invalidate_tag(company_jobs_tag(context.company_account_id))

    committed = draft.model_copy(update={"images": list(image_urls)})
    save_staged(store, key, StagedDraft(phase="scope_selection", draft=committed.model_dump(mode="json")))
    logger.info(
        "job draft committed",
        extra={"job_id": job_id, "company_account_id": context.company_account_id, "uploaded_images": len(uploaded)},
    )
    return JobCommitResult(job_id=job_id, phase="scope_selection", posting=posting)


async def select_job_scope(
    *,
    repository: Any,
    store: DraftStore,
    jobs_cache: TTLCache,
    context: CompanyContext,
    session_id: str,
    job_id: str,
    publication_type: str,
    now: datetime,
) -> JobCommitResult:
    key = job_draft_key(session_id, job_id)
    staged = load_staged(store, key)
    if staged is None:
        raise StagedDraftMissingError(job_id)
    if staged.phase != "scope_selection":
        raise DraftPhaseError("draft has not been committed yet")

    posting = await repository.update_job_publication_type(
        job_id=job_id,
        company_account_id=context.company_account_id,
        publication_type=publication_type,
        now=now,
    )
    store.clear(key)
    jobs_cache.invalidate_tag(company_jobs_tag(context.company_account_id))
    return JobCommitResult(job_id=job_id, phase="done", posting=posting)
