#!/usr/bin/env python3
"""Emit SQL that grants a CuePoint role to a Supabase auth user."""

from __future__ import annotations

import argparse

ROLES = ("candidate", "company", "admin")


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(
    *,
    role: str,
    user_id: str | None,
    email: str | None,
    company_user_id: str | None = None,
) -> str:
    if role not in ROLES:
        raise ValueError(f"unknown role: {role}")
    if company_user_id and role != "company":
        raise ValueError("--company-user-id only applies to the company role")

    if user_id:
        target_where = f"id = {_quote_sql(user_id)}::uuid"
        auth_user_ref = f"{_quote_sql(user_id)}::uuid"
    else:
        assert email is not None
        target_where = f"email = {_quote_sql(email)}"
        auth_user_ref = f"(select id from auth.users where email = {_quote_sql(email)})"

    statements = [
        "-- CuePoint role bootstrap SQL",
        "-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).",
        "",
        "update auth.users",
        "set raw_app_meta_data = coalesce(raw_app_meta_data, '{}'::jsonb)"
        f" || jsonb_build_object('role', {_quote_sql(role)})",
        f"where {target_where};",
    ]
    if company_user_id:
        statements.extend(
            [
                "",
                "update company_users",
                f"set auth_user_id = {auth_user_ref}, updated_at = now()",
                f"where id = {_quote_sql(company_user_id)}::uuid;",
            ]
        )
    return "\n".join(statements) + "\n"


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a CuePoint role to a Supabase user.")
    parser.add_argument(
        "--role",
        choices=ROLES,
        default="admin",
        help="Role to assign in auth.users.raw_app_meta_data.role",
    )
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument(
        "--company-user-id",
        help="company_users id to link to the auth user (company role only)",
    )
    args = parser.parse_args()

    try:
        sql = render_sql(
            role=args.role,
            user_id=args.user_id,
            email=args.email,
            company_user_id=args.company_user_id,
        )
    except ValueError as exc:
        parser.error(str(exc))
    print(sql)


if __name__ == "__main__":
    main()
