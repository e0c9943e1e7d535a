from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from cuepoint.core.auth import CompanyContext
from cuepoint.core.security import get_company_context, get_edit_session
from cuepoint.core.urls import job_detail_path, job_edit_path, job_scope_path
from cuepoint.schemas.jobs import (
    JobCommitOut,
    JobEditStateOut,
    JobPostingDraft,
    JobPostingListOut,
    JobPostingOut,
    JobScopeOut,
    JobScopeRequest,
    JobStatus,
    PublicationType,
)
from cuepoint.services import company, job_edit
from cuepoint.services.cache import get_company_jobs_cache
from cuepoint.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from cuepoint.services.staging import (
    DraftPhaseError,
    DraftValidationError,
    StagedDraftMissingError,
    get_draft_store,
)
from cuepoint.services.storage import ImageUploadError, get_image_storage

router = APIRouter()


def _validation_error(exc: DraftValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
        detail={"errors": exc.errors},
    )


def _image_upload_error(exc: ImageUploadError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"code": "image_upload_failed", "message": str(exc)},
    )


@router.get("", response_model=list[JobPostingListOut])
async def list_company_jobs(
    job_status: JobStatus | None = Query(default=None, alias="status"),
    group_id: str | None = Query(default=None, min_length=1),
    scope: PublicationType | None = Query(default=None),
    q: str | None = Query(default=None, min_length=1),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    context: CompanyContext = Depends(get_company_context),
    repository=Depends(get_repository),
    jobs_cache=Depends(get_company_jobs_cache),
) -> list[JobPostingListOut]:
    try:
        rows = await company.list_company_jobs(
            repository=repository,
            jobs_cache=jobs_cache,
            context=context,
            status=job_status,
            group_id=group_id,
            scope=scope,
            q=q,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [JobPostingListOut(**row) for row in rows]


@router.post("", response_model=JobPostingOut, status_code=status.HTTP_201_CREATED)
async def create_company_job(
    payload: JobPostingDraft,
    context: CompanyContext = Depends(get_company_context),
    repository=Depends(get_repository),
    storage=Depends(get_image_storage),
    jobs_cache=Depends(get_company_jobs_cache),
) -> JobPostingOut:
    try:
        row = await company.create_job(
            repository=repository,
            storage=storage,
            jobs_cache=jobs_cache,
            context=context,
            draft=payload,
            now=datetime.now(timezone.utc),
        )
    except DraftValidationError as exc:
        raise _validation_error(exc) from exc
    except ImageUploadError as exc:
        raise _image_upload_error(exc) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return JobPostingOut(**row)


@router.get("/{job_id}", response_model=JobPostingOut)
async def get_company_job(
    job_id: str,
    context: CompanyContext = Depends(get_company_context),
    repository=Depends(get_repository),
) -> JobPostingOut:
    try:
        row = await repository.get_company_job(job_id=job_id, company_account_id=context.company_account_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobPostingOut(**row)


@router.delete("/{job_id}", response_model=JobPostingOut)
async def close_company_job(
    job_id: str,
    context: CompanyContext = Depends(get_company_context),
    repository=Depends(get_repository),
    jobs_cache=Depends(get_company_jobs_cache),
) -> JobPostingOut:
    try:
        row = await company.close_job(
            repository=repository,
            jobs_cache=jobs_cache,
            context=context,
            job_id=job_id,
            now=datetime.now(timezone.utc),
        )
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobPostingOut(**row)


@router.get("/{job_id}/edit", response_model=JobEditStateOut)
async def open_job_editor(
    job_id: str,
    context: CompanyContext = Depends(get_company_context),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
) -> JobEditStateOut:
    try:
        state = await job_edit.open_job_editor(
            repository=repository,
            store=store,
            context=context,
            session_id=session_id,
            job_id=job_id,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobEditStateOut(job_id=state.job_id, phase=state.phase, draft=state.draft)


@router.put("/{job_id}/draft", response_model=JobEditStateOut)
async def stage_job_draft(
    job_id: str,
    payload: JobPostingDraft,
    context: CompanyContext = Depends(get_company_context),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
) -> JobEditStateOut:
    try:
        state = await job_edit.stage_job_draft(
            repository=repository,
            store=store,
            context=context,
            session_id=session_id,
            job_id=job_id,
            draft=payload,
        )
    except DraftValidationError as exc:
        raise _validation_error(exc) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return JobEditStateOut(job_id=state.job_id, phase=state.phase, draft=state.draft)


@router.get("/{job_id}/confirm", response_model=JobEditStateOut)
async def review_job_draft(
    job_id: str,
    context: CompanyContext = Depends(get_company_context),
    session_id: str = Depends(get_edit_session),
    store=Depends(get_draft_store),
):
    state = job_edit.review_job_draft(store=store, session_id=session_id, job_id=job_id)
    if state is None:
        return RedirectResponse(job_edit_path(job_id), status_code=status.HTTP_303_SEE_OTHER)
    return JobEditStateOut(job_id=state.job_id, phase=state.phase, draft=state.draft)


@router.post("/{job_id}/confirm", response_model=JobCommitOut)
async def commit_job_draft(
    job_id: str,
    context: CompanyContext = Depends(get_company_context),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
    storage=Depends(get_image_storage),
    jobs_cache=Depends(get_company_jobs_cache),
):
    try:
        result = await job_edit.commit_job_draft(
            repository=repository,
            store=store,
            storage=storage,
            jobs_cache=jobs_cache,
            context=context,
            session_id=session_id,
            job_id=job_id,
            now=datetime.now(timezone.utc),
        )
    except StagedDraftMissingError:
        return RedirectResponse(job_edit_path(job_id), status_code=status.HTTP_303_SEE_OTHER)
    except DraftValidationError as exc:
        raise _validation_error(exc) from exc
    except ImageUploadError as exc:
        raise _image_upload_error(exc) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError:
        return RedirectResponse(job_edit_path(job_id), status_code=status.HTTP_303_SEE_OTHER)

    return JobCommitOut(
        job_id=result.job_id,
        phase=result.phase,
        posting=JobPostingOut(**result.posting),
        next_step=job_scope_path(job_id),
    )


@router.post("/{job_id}/scope", response_model=JobScopeOut)
async def select_job_scope(
    job_id: str,
    payload: JobScopeRequest,
    context: CompanyContext = Depends(get_company_context),
    session_id: str = Depends(get_edit_session),
    repository=Depends(get_repository),
    store=Depends(get_draft_store),
    jobs_cache=Depends(get_company_jobs_cache),
):
    try:
        result = await job_edit.select_job_scope(
            repository=repository,
            store=store,
            jobs_cache=jobs_cache,
            context=context,
            session_id=session_id,
            job_id=job_id,
            publication_type=payload.publication_type,
            now=datetime.now(timezone.utc),
        )
    except StagedDraftMissingError:
        return RedirectResponse(job_edit_path(job_id), status_code=status.HTTP_303_SEE_OTHER)
    except DraftPhaseError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except (RepositoryValidationError, RepositoryConflictError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return JobScopeOut(
        job_id=result.job_id,
        phase=result.phase,
        posting=JobPostingOut(**result.posting),
        redirect_to=job_detail_path(job_id),
    )
