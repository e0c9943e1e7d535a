from __future__ import annotations

import asyncio
from typing import Any

import pytest
from fastapi import HTTPException

from cuepoint.core.auth import CompanyContext, Principal, Role
from cuepoint.core.security import (
    ROLE_SCOPES,
    _resolve_human_role,
    get_company_context,
    resolve_edit_session,
)
from cuepoint.services.repository import CompanyUserRecord, RepositoryUnavailableError


class FakeCompanyUsers:
    def __init__(self, record: CompanyUserRecord | None = None, error: Exception | None = None) -> None:
        self.record = record
        self.error = error
        self.lookups: list[str] = []

    async def get_company_user(self, *, auth_user_id: str) -> CompanyUserRecord | None:
        self.lookups.append(auth_user_id)
        if self.error is not None:
            raise self.error
        return self.record


def _principal(role: Role, subject: str = "user-1") -> Principal:
    return Principal(subject=subject, role=role, scopes=set(ROLE_SCOPES[role]), actor_id=subject)


@pytest.mark.parametrize(
    ("user", "expected"),
    [
        ({"app_metadata": {"role": "admin"}}, Role.ADMIN),
        ({"app_metadata": {"role": "company"}}, Role.COMPANY),
        ({"app_metadata": {"roles": ["candidate", "company"]}}, Role.COMPANY),
        ({"app_metadata": {"roles": ["company", "admin"]}}, Role.ADMIN),
        ({"app_metadata": {"role": "superuser"}}, Role.CANDIDATE),
        ({"user_metadata": {"role": "admin"}}, Role.CANDIDATE),
        ({}, Role.CANDIDATE),
    ],
)
def test_resolve_human_role(user: dict[str, Any], expected: Role) -> None:
    assert _resolve_human_role(user) is expected


def test_edit_session_defaults_to_subject() -> None:
    principal = _principal(Role.COMPANY)
    assert resolve_edit_session(principal, None) == "user-1"
    assert resolve_edit_session(principal, "   ") == "user-1"


def test_edit_session_header_is_scoped_to_subject() -> None:
    first = resolve_edit_session(_principal(Role.COMPANY, "user-1"), "tab-a")
    second = resolve_edit_session(_principal(Role.COMPANY, "user-2"), "tab-a")

    assert first == "user-1:tab-a"
    assert first != second


def test_company_context_is_built_from_company_user() -> None:
    repository = FakeCompanyUsers(
        CompanyUserRecord(company_user_id="cu-1", company_account_id="acct-1", email=None, full_name=None)
    )

    context = asyncio.run(get_company_context(principal=_principal(Role.COMPANY), repository=repository))

    assert context == CompanyContext(auth_user_id="user-1", company_user_id="cu-1", company_account_id="acct-1")


def test_company_context_rejects_candidates_without_lookup() -> None:
    repository = FakeCompanyUsers()

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(get_company_context(principal=_principal(Role.CANDIDATE), repository=repository))

    assert exc_info.value.status_code == 403
    assert repository.lookups == []


def test_company_context_requires_linked_company_user() -> None:
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(get_company_context(principal=_principal(Role.COMPANY), repository=FakeCompanyUsers()))

    assert exc_info.value.status_code == 403


def test_company_context_maps_unavailable_database() -> None:
    repository = FakeCompanyUsers(error=RepositoryUnavailableError("CP_DATABASE_URL is required"))

    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(get_company_context(principal=_principal(Role.ADMIN), repository=repository))

    assert exc_info.value.status_code == 503
