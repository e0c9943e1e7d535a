from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    CANDIDATE = "candidate"
    COMPANY = "company"
    ADMIN = "admin"


@dataclass(slots=True)
class Principal:
    subject: str
    role: Role
    scopes: set[str]
    actor_id: str | None = None

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


@dataclass(frozen=True, slots=True)
class CompanyContext:
    """Company user acting on behalf of one company account.

    Passed explicitly into every company-side handler and service call.
    """

    auth_user_id: str
    company_user_id: str
    company_account_id: str


def parse_role(value: str | None) -> Role:
    if not value:
        return Role.CANDIDATE
    try:
        return Role(value)
    except ValueError:
        return Role.CANDIDATE
