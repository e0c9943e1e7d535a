from typing import Any

import httpx
from fastapi import Depends, Header, HTTPException, status

from cuepoint.core.auth import CompanyContext, Principal, Role, parse_role
from cuepoint.core.config import Settings, get_settings
from cuepoint.services.repository import RepositoryUnavailableError, get_repository

ROLE_SCOPES: dict[Role, set[str]] = {
    Role.CANDIDATE: {"profile:read"},
    Role.COMPANY: {"jobs:read", "jobs:write", "groups:read"},
    Role.ADMIN: {
        "jobs:read",
        "jobs:write",
        "groups:read",
        "admin:read",
        "admin:write",
    },
}
ROLE_PRECEDENCE = (Role.ADMIN, Role.COMPANY, Role.CANDIDATE)


async def get_human_principal(
    settings: Settings = Depends(get_settings),
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> Principal:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="human auth requires bearer token",
        )

    token = authorization.split(" ", maxsplit=1)[1].strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="empty bearer token")

    if not settings.supabase_url or not settings.supabase_anon_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth is not configured",
        )

    user = await _fetch_supabase_user(
        supabase_url=settings.supabase_url,
        supabase_anon_key=settings.supabase_anon_key,
        token=token,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    role = _resolve_human_role(user)

    return Principal(
        subject=user_id,
        role=role,
        scopes=set(ROLE_SCOPES[role]),
        actor_id=user_id,
    )


async def get_company_context(
    principal: Principal = Depends(get_human_principal),
    repository=Depends(get_repository),
) -> CompanyContext:
    if principal.role not in {Role.COMPANY, Role.ADMIN}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="company account required")

    try:
        record = await repository.get_company_user(auth_user_id=principal.subject)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    if record is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="company user not found")

    return CompanyContext(
        auth_user_id=principal.subject,
        company_user_id=record.company_user_id,
        company_account_id=record.company_account_id,
    )


def resolve_edit_session(principal: Principal, x_edit_session: str | None) -> str:
    # Sessions are always scoped to the caller so a guessed header cannot read another user's drafts.
    if x_edit_session and x_edit_session.strip():
        return f"{principal.subject}:{x_edit_session.strip()}"
    return principal.subject


async def get_edit_session(
    principal: Principal = Depends(get_human_principal),
    x_edit_session: str | None = Header(default=None, alias="X-Edit-Session"),
) -> str:
    return resolve_edit_session(principal, x_edit_session)


async def _fetch_supabase_user(
    *,
    supabase_url: str,
    supabase_anon_key: str,
    token: str,
    timeout_seconds: float,
) -> dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {token}",
        "apikey": supabase_anon_key,
    }
    url = f"{supabase_url.rstrip('/')}/auth/v1/user"

    try:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network dependent
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification unavailable",
        ) from exc

    if response.status_code in {401, 403}:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")
    if response.status_code != 200:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase auth verification failed",
        )

    return response.json()


def _resolve_human_role(user: dict[str, Any]) -> Role:
    # user_metadata is writable by the user, so only app_metadata can grant a role.
    app_metadata = user.get("app_metadata")
    if not isinstance(app_metadata, dict):
        return Role.CANDIDATE

    role = app_metadata.get("role")
    if isinstance(role, str) and role:
        return parse_role(role)

    roles = app_metadata.get("roles")
    if isinstance(roles, list):
        granted = {parse_role(item) for item in roles if isinstance(item, str)}
        for candidate_role in ROLE_PRECEDENCE:
            if candidate_role in granted:
                return candidate_role

    return Role.CANDIDATE
