from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from cuepoint.core.config import Settings, get_settings
from cuepoint.core.security import get_edit_session, get_human_principal
from cuepoint.core.urls import build_group_join_url, candidate_detail_path, candidate_edit_path
from cuepoint.schemas.admin import GroupDeleteOut, GroupInvitationOut, GroupInviteOut, GroupInviteRequest
from cuepoint.schemas.candidates import (
    CandidateCommitOut,
    CandidateEditStateOut,
    CandidateProfileDraft,
    CandidateProfileOut,
    ScoutStatsOut,
    ScoutStatsWindowOut,
)
from cuepoint.schemas.jobs import JobPostingOut, JobReviewOut, JobReviewRequest
from cuepoint.services import candidate_edit
from cuepoint.services.cache import (
    company_groups_tag,
    company_jobs_tag,
    get_company_groups_cache,
    get_company_jobs_cache,
)
from cuepoint.services.repository import (
    RepositoryCascadeError,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from cuepoint.services.scout_stats import ScoutStatsWindow, aggregate_scout_stats, format_count_with_rate
from cuepoint.services.staging import DraftValidationError, StagedDraftMissingError, get_draft_store

router = APIRouter()


def _window_out(window: ScoutStatsWindow) -> ScoutStatsWindowOut:
    return ScoutStatsWindowOut(
        received=window.received,
        opened=window.opened,
        replied=window.replied,
        applications=window.applications,
        opened_rate=window.opened_rate,
        replied_rate=window.replied_rate,
        application_rate=window.application_rate,
        opened_display=format_count_with_rate(window.opened, window.received),
        replied_display=format_count_with_rate(window.replied, window.received),
        applications_display=format_count_with_rate(window.applications, window.received),
    )


@router.get("/jobs/pending", response_model=list[JobPostingOut])
async def list_pending_jobs(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobPostingOut]:
    try:
        principal.require_scopes({"admin:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_pending_jobs(limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [JobPostingOut(**row) for row in rows]


@router.post("/jobs/review", response_model=JobReviewOut)
async def review_jobs(
    payload: JobReviewRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    jobs_cache=Depends(get_company_jobs_cache),
) -> JobReviewOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.review_job_postings(
            job_ids=payload.job_ids,
            decision=payload.decision,
            reason=payload.reason,
            comment=payload.comment,
            now=datetime.now(timezone.utc),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    for row in rows:
        if row.get("company_account_id"):
            jobs_cache.invalidate_tag(company_jobs_tag(row["company_account_id"]))
    return JobReviewOut(decision=payload.decision, postings=[JobPostingOut(**row) for row in rows])


@router.get("/candidates/{candidate_id}/scout-stats", response_model=ScoutStatsOut)
async def get_candidate_scout_stats(
    candidate_id: str,
    now: datetime | None = Query(default=None),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> ScoutStatsOut:
    try:
        principal.require_scopes({"admin:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        messages, applications = await repository.list_scout_events(candidate_id=candidate_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    snapshot = aggregate_scout_stats(
        candidate_id,
        now or datetime.now(timezone.utc),
        messages,
        applications,
    )
    return ScoutStatsOut(
        candidate_id=snapshot.candidate_id,
        computed_at=snapshot.computed_at,
        seven_days=_window_out(snapshot.seven_days),
        thirty_days=_window_out(snapshot.thirty_days),
        total=_window_out(snapshot.total),
    )


@router.get("/candidates/{candidate_id}/edit", response_model=CandidateEditStateOut)
async def open_candidate_editor(
    candidate_id: str,
    principal=Depends(get_human_principal),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
) -> CandidateEditStateOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        state = await candidate_edit.open_candidate_editor(
            repository=repository,
            store=store,
            session_id=session_id,
            candidate_id=candidate_id,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CandidateEditStateOut(candidate_id=state.candidate_id, phase=state.phase, draft=state.draft)


@router.put("/candidates/{candidate_id}/draft", response_model=CandidateEditStateOut)
async def stage_candidate_draft(
    candidate_id: str,
    payload: CandidateProfileDraft,
    principal=Depends(get_human_principal),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
) -> CandidateEditStateOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        state = await candidate_edit.stage_candidate_draft(
            repository=repository,
            store=store,
            session_id=session_id,
            candidate_id=candidate_id,
            draft=payload,
        )
    except DraftValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"errors": exc.errors},
        ) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return CandidateEditStateOut(candidate_id=state.candidate_id, phase=state.phase, draft=state.draft)


@router.get("/candidates/{candidate_id}/confirm", response_model=CandidateEditStateOut)
async def review_candidate_draft(
    candidate_id: str,
    principal=Depends(get_human_principal),
    session_id: str = Depends(get_edit_session),
    store=Depends(get_draft_store),
):
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    state = candidate_edit.review_candidate_draft(store=store, session_id=session_id, candidate_id=candidate_id)
    if state is None:
        return RedirectResponse(candidate_edit_path(candidate_id), status_code=status.HTTP_303_SEE_OTHER)
    return CandidateEditStateOut(candidate_id=state.candidate_id, phase=state.phase, draft=state.draft)


@router.post("/candidates/{candidate_id}/confirm", response_model=CandidateCommitOut)
async def commit_candidate_draft(
    candidate_id: str,
    principal=Depends(get_human_principal),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
):
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        profile = await candidate_edit.commit_candidate_draft(
            repository=repository,
            store=store,
            session_id=session_id,
            candidate_id=candidate_id,
            now=datetime.now(timezone.utc),
        )
    except StagedDraftMissingError:
        return RedirectResponse(candidate_edit_path(candidate_id), status_code=status.HTTP_303_SEE_OTHER)
    except DraftValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail={"errors": exc.errors},
        ) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return CandidateCommitOut(
        candidate_id=candidate_id,
        phase="done",
        profile=CandidateProfileOut(**profile),
        redirect_to=candidate_detail_path(candidate_id),
    )


@router.delete("/groups/{group_id}", response_model=GroupDeleteOut)
async def delete_company_group(
    group_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    groups_cache=Depends(get_company_groups_cache),
    jobs_cache=Depends(get_company_jobs_cache),
) -> GroupDeleteOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await repository.delete_company_group(group_id=group_id)
    except RepositoryCascadeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": "group_delete_failed", "step": exc.step},
        ) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    groups_cache.invalidate_tag(company_groups_tag(result["company_account_id"]))
    jobs_cache.invalidate_tag(company_jobs_tag(result["company_account_id"]))
    return GroupDeleteOut(**result)


@router.post("/groups/{group_id}/invitations", response_model=GroupInviteOut)
async def invite_group_members(
    group_id: str,
    payload: GroupInviteRequest,
    principal=Depends(get_human_principal),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
    groups_cache=Depends(get_company_groups_cache),
) -> GroupInviteOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        result = await repository.invite_group_members(
            group_id=group_id,
            members=[member.model_dump() for member in payload.members],
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    groups_cache.invalidate_tag(company_groups_tag(result["company_account_id"]))
    invited = [
        GroupInvitationOut(
            **item,
            join_url=build_group_join_url(
                settings.public_base_url,
                group_id=result["group_id"],
                company_account_id=result["company_account_id"],
                email=item["email"],
            ),
        )
        for item in result["invited"]
    ]
    return GroupInviteOut(
        group_id=result["group_id"],
        company_account_id=result["company_account_id"],
        invited=invited,
        skipped=result["skipped"],
    )
