from urllib.parse import urlencode


def job_detail_path(job_id: str) -> str:
    return f"/company/jobs/{job_id}"


def job_edit_path(job_id: str) -> str:
    return f"/company/jobs/{job_id}/edit"


def job_scope_path(job_id: str) -> str:
    return f"/company/jobs/{job_id}/scope"


def candidate_detail_path(candidate_id: str) -> str:
    return f"/admin/candidates/{candidate_id}"


def candidate_edit_path(candidate_id: str) -> str:
    return f"/admin/candidates/{candidate_id}/edit"


def build_group_join_url(base_url: str, *, group_id: str, company_account_id: str, email: str | None = None) -> str:
    """Link an invited member follows to join a company group."""
    params = [("groupId", group_id), ("companyId", company_account_id)]
    if email:
        params.append(("email", email))
    return f"{base_url.rstrip('/')}/signup/group?{urlencode(params)}"
