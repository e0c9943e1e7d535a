from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cuepoint.schemas.jobs import EditPhase, Flag, OptionalDate, OptionalInt, OptionalText, TextList


class EducationIn(BaseModel):
    final_education: OptionalText = None
    school_name: OptionalText = None
    department: OptionalText = None
    graduation_year: OptionalInt = None
    graduation_month: OptionalInt = None


class ExperienceIn(BaseModel):
    name: OptionalText = None
    experience_years: OptionalInt = None


class SkillsIn(BaseModel):
    english_level: OptionalText = None
    other_languages: list[dict[str, Any]] = Field(default_factory=list)
    skills_list: TextList = Field(default_factory=list)
    qualifications: OptionalText = None


class ExpectationsIn(BaseModel):
    desired_income: OptionalText = None
    desired_industries: TextList = Field(default_factory=list)
    desired_job_types: TextList = Field(default_factory=list)
    desired_work_locations: TextList = Field(default_factory=list)
    desired_work_styles: TextList = Field(default_factory=list)


class CareerStatusEntryIn(BaseModel):
    company_name: OptionalText = None
    department: OptionalText = None
    industries: TextList = Field(default_factory=list)
    is_private: Flag = False
    progress_status: OptionalText = None


class CandidateProfileDraft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: OptionalText = None
    last_name: OptionalText = None
    first_name: OptionalText = None
    last_name_kana: OptionalText = None
    first_name_kana: OptionalText = None
    gender: OptionalText = None
    birth_date: OptionalDate = None
    prefecture: OptionalText = None
    phone_number: OptionalText = None
    current_income: OptionalText = None
    current_company: OptionalText = None
    current_position: OptionalText = None
    has_career_change: OptionalText = None
    job_change_timing: OptionalText = None
    current_activity_status: OptionalText = None
    recent_job_company_name: OptionalText = None
    recent_job_department_position: OptionalText = None
    recent_job_industries: TextList = Field(default_factory=list)
    recent_job_types: TextList = Field(default_factory=list)
    recent_job_is_currently_working: Flag = False
    job_summary: OptionalText = None
    self_pr: OptionalText = None
    management_experience_count: OptionalInt = None
    education: EducationIn = Field(default_factory=EducationIn)
    work_experience: list[ExperienceIn] = Field(default_factory=list)
    job_type_experience: list[ExperienceIn] = Field(default_factory=list)
    skills: SkillsIn = Field(default_factory=SkillsIn)
    expectations: ExpectationsIn = Field(default_factory=ExpectationsIn)
    # None leaves stored entries untouched; a list (even empty) replaces them.
    career_status_entries: list[CareerStatusEntryIn] | None = None


class CandidateProfileOut(CandidateProfileDraft):
    id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CandidateEditStateOut(BaseModel):
    candidate_id: str
    phase: EditPhase
    draft: CandidateProfileDraft


class CandidateCommitOut(BaseModel):
    candidate_id: str
    phase: EditPhase
    profile: CandidateProfileOut
    redirect_to: str


class ScoutStatsWindowOut(BaseModel):
    received: int
    opened: int
    replied: int
    applications: int
    opened_rate: int
    replied_rate: int
    application_rate: int
    opened_display: str
    replied_display: str
    applications_display: str


class ScoutStatsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    candidate_id: str
    computed_at: datetime
    seven_days: ScoutStatsWindowOut = Field(alias="7days")
    thirty_days: ScoutStatsWindowOut = Field(alias="30days")
    total: ScoutStatsWindowOut
