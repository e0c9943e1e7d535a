from urllib.parse import parse_qs, urlsplit

from cuepoint.core.urls import build_group_join_url, candidate_edit_path, job_edit_path, job_scope_path


def test_group_join_url_carries_group_company_and_email() -> None:
    url = build_group_join_url(
        "https://app.example.com/",
        group_id="group-1",
        company_account_id="acct-1",
        email="new+member@example.com",
    )

    parts = urlsplit(url)
    assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "https://app.example.com/signup/group"
    assert parse_qs(parts.query) == {
        "groupId": ["group-1"],
        "companyId": ["acct-1"],
        "email": ["new+member@example.com"],
    }


def test_group_join_url_omits_missing_email() -> None:
    url = build_group_join_url("https://app.example.com", group_id="g", company_account_id="c")
    assert url == "https://app.example.com/signup/group?groupId=g&companyId=c"


def test_edit_paths() -> None:
    assert job_edit_path("job-1") == "/company/jobs/job-1/edit"
    assert job_scope_path("job-1") == "/company/jobs/job-1/scope"
    assert candidate_edit_path("cand-1") == "/admin/candidates/cand-1/edit"
