from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from cuepoint.schemas.jobs import OptionalText

MemberRole = Literal["admin", "scout"]


class CompanyGroupOut(BaseModel):
    id: str
    group_name: str
    description: str | None = None
    permission_level: str | None = None
    created_at: datetime | None = None


class GroupDeleteOut(BaseModel):
    group_id: str
    company_account_id: str
    deleted: dict[str, int] = Field(default_factory=dict)


class GroupInviteMemberIn(BaseModel):
    email: OptionalText = None
    role: MemberRole = "scout"


class GroupInviteRequest(BaseModel):
    members: list[GroupInviteMemberIn] = Field(min_length=1, max_length=100)


class GroupInvitationOut(BaseModel):
    email: str
    role: MemberRole
    company_user_id: str
    permission_level: str
    join_url: str


class GroupInviteSkippedOut(BaseModel):
    email: str | None = None
    reason: str


class GroupInviteOut(BaseModel):
    group_id: str
    company_account_id: str
    invited: list[GroupInvitationOut] = Field(default_factory=list)
    skipped: list[GroupInviteSkippedOut] = Field(default_factory=list)
