from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "bootstrap_admin.py"


def _run_script(*args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=check,
        capture_output=True,
        text=True,
    )


def test_bootstrap_script_emits_sql_for_user_id_target() -> None:
    user_id = "00000000-0000-0000-0000-000000000123"
    output = _run_script("--user-id", user_id, "--role", "admin").stdout

    assert "update auth.users" in output
    assert f"where id = '{user_id}'::uuid;" in output
    assert "jsonb_build_object('role', 'admin')" in output
    assert "company_users" not in output


def test_bootstrap_script_links_company_user_by_email() -> None:
    output = _run_script(
        "--email",
        "o'brien@example.com",
        "--role",
        "company",
        "--company-user-id",
        "00000000-0000-0000-0000-000000000456",
    ).stdout

    assert "where email = 'o''brien@example.com';" in output
    assert "jsonb_build_object('role', 'company')" in output
    assert "set auth_user_id = (select id from auth.users where email = 'o''brien@example.com')" in output
    assert "where id = '00000000-0000-0000-0000-000000000456'::uuid;" in output


def test_bootstrap_script_rejects_company_link_for_other_roles() -> None:
    completed = _run_script(
        "--email",
        "admin@example.com",
        "--role",
        "admin",
        "--company-user-id",
        "00000000-0000-0000-0000-000000000456",
        check=False,
    )

    assert completed.returncode == 2
    assert "only applies to the company role" in completed.stderr
