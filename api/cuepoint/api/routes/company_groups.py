from fastapi import APIRouter, Depends, HTTPException, status

from cuepoint.core.auth import CompanyContext
from cuepoint.core.security import get_company_context
from cuepoint.schemas.admin import CompanyGroupOut
from cuepoint.services import company
from cuepoint.services.cache import get_company_groups_cache
from cuepoint.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("", response_model=list[CompanyGroupOut])
async def list_company_groups(
    context: CompanyContext = Depends(get_company_context),
    repository=Depends(get_repository),
    groups_cache=Depends(get_company_groups_cache),
) -> list[CompanyGroupOut]:
    try:
        rows = await company.list_company_groups(
            repository=repository,
            groups_cache=groups_cache,
            context=context,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [CompanyGroupOut(**row) for row in rows]
