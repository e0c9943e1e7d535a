from typing import Any

from cuepoint.schemas.jobs import ImageUpload, JobPostingDraft
from cuepoint.services.job_edit import (
    draft_from_posting,
    job_fields_from_draft,
    map_employment_type,
    validate_job_draft,
)


def _valid_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Backend Engineer",
        "job_types": ["エンジニア"],
        "industries": ["IT"],
        "job_description": "Build APIs",
        "position_summary": "Small team",
        "required_skills": "Python",
        "preferred_skills": "Curiosity",
        "salary_min": "500",
        "salary_max": "800",
        "employment_type": "正社員",
        "work_locations": ["東京都"],
        "working_hours": "9:00-18:00",
        "holidays": "土日祝",
        "selection_process": "2 interviews",
        "appeal_points": ["Remote friendly"],
    }
    payload.update(overrides)
    return payload


def test_valid_draft_has_no_errors() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload())
    assert validate_job_draft(draft) == {}


def test_empty_draft_reports_every_required_field() -> None:
    errors = validate_job_draft(JobPostingDraft())
    assert set(errors) == {
        "title",
        "job_types",
        "industries",
        "job_description",
        "position_summary",
        "required_skills",
        "preferred_skills",
        "salary",
        "work_locations",
        "working_hours",
        "holidays",
        "selection_process",
        "appeal_points",
    }


def test_salary_min_above_max_is_rejected() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(salary_min="900", salary_max="800"))
    errors = validate_job_draft(draft)
    assert list(errors) == ["salary"]
    assert errors["salary"] == "最大年収は最小年収よりも高く設定してください"


def test_salary_equal_bounds_are_accepted() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(salary_min=600, salary_max=600))
    assert validate_job_draft(draft) == {}


def test_whitespace_only_text_counts_as_missing() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(title="   ", holidays="\n"))
    assert set(validate_job_draft(draft)) == {"title", "holidays"}


def test_list_fields_accept_strings_and_picker_objects() -> None:
    draft = JobPostingDraft.model_validate(
        _valid_payload(
            job_types="エンジニア",
            industries=[{"id": "it", "name": "IT"}, {"id": "finance"}, "", None],
            work_locations=[" 東京都 ", "大阪府"],
        )
    )
    assert draft.job_types == ["エンジニア"]
    assert draft.industries == ["IT", "finance"]
    assert draft.work_locations == ["東京都", "大阪府"]


def test_text_fields_join_lists() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(required_skills=["Python", "SQL"]))
    assert draft.required_skills == "Python, SQL"


def test_salary_strings_with_separators_are_parsed() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(salary_min="1,200", salary_max="not a number"))
    assert draft.salary_min == 1200
    assert draft.salary_max is None


def test_images_split_into_existing_and_new() -> None:
    draft = JobPostingDraft.model_validate(
        _valid_payload(
            images=[
                "https://cdn.example.com/a.jpg",
                {"data": "aGVsbG8=", "contentType": "image/png", "fileName": "b.png"},
            ]
        )
    )
    assert draft.existing_images == ["https://cdn.example.com/a.jpg"]
    assert len(draft.new_images) == 1
    assert isinstance(draft.new_images[0], ImageUpload)
    assert draft.new_images[0].content_type == "image/png"


def test_employment_type_labels_are_mapped() -> None:
    assert map_employment_type("正社員") == "FULL_TIME"
    assert map_employment_type("派遣社員") == "CONTRACT"
    assert map_employment_type("アルバイト・パート") == "PART_TIME"
    assert map_employment_type("INTERN") == "INTERN"
    assert map_employment_type("その他") == "その他"
    assert map_employment_type("その他", default="FULL_TIME") == "FULL_TIME"
    assert map_employment_type(None, default="FULL_TIME") == "FULL_TIME"


def test_job_fields_omit_unset_status_and_scope() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload())
    fields = job_fields_from_draft(draft, image_urls=["https://cdn.example.com/a.jpg"])

    assert "status" not in fields
    assert "publication_type" not in fields
    assert "group_id" not in fields
    assert "images" not in fields
    assert fields["employment_type"] == "FULL_TIME"
    assert fields["image_urls"] == ["https://cdn.example.com/a.jpg"]


def test_job_fields_keep_explicit_status() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(status="PUBLISHED"))
    assert job_fields_from_draft(draft, image_urls=[])["status"] == "PUBLISHED"


def test_draft_from_posting_carries_stored_images() -> None:
    draft = draft_from_posting(
        {
            "id": "job-1",
            "title": "Stored",
            "job_types": ["エンジニア"],
            "status": "PUBLISHED",
            "image_urls": ["https://cdn.example.com/a.jpg"],
        }
    )
    assert draft.title == "Stored"
    assert draft.existing_images == ["https://cdn.example.com/a.jpg"]
    assert draft.status == "PUBLISHED"


def test_non_finite_salaries_become_missing() -> None:
    draft = JobPostingDraft.model_validate(_valid_payload(salary_min="inf", salary_max="1e400"))
    assert draft.salary_min is None
    assert draft.salary_max is None
    assert "salary" in validate_job_draft(draft)

    from_floats = JobPostingDraft.model_validate(_valid_payload(salary_min=float("inf"), salary_max=float("nan")))
    assert from_floats.salary_min is None
    assert from_floats.salary_max is None
