from datetime import date, datetime
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field

from cuepoint.services.normalize import normalize_bool, normalize_optional_int, normalize_text, normalize_text_list

JobStatus = Literal["DRAFT", "PENDING_APPROVAL", "PUBLISHED", "CLOSED"]
PublicationType = Literal["public", "members", "scout", "stopped"]
EmploymentType = Literal["FULL_TIME", "CONTRACT", "PART_TIME", "INTERN"]
EditPhase = Literal["editing", "staged", "scope_selection", "done"]
ReviewDecision = Literal["approve", "reject"]

TextList = Annotated[list[str], BeforeValidator(normalize_text_list)]
OptionalText = Annotated[str | None, BeforeValidator(normalize_text)]
OptionalInt = Annotated[int | None, BeforeValidator(normalize_optional_int)]
Flag = Annotated[bool, BeforeValidator(normalize_bool)]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


OptionalDate = Annotated[date | None, BeforeValidator(_blank_to_none)]


class ImageUpload(BaseModel):
    """A newly attached image, base64-encoded by the browser."""

    data: str = Field(min_length=1)
    content_type: str = Field(
        default="image/jpeg",
        validation_alias=AliasChoices("content_type", "contentType"),
    )
    file_name: str | None = Field(default=None, validation_alias=AliasChoices("file_name", "fileName"))
    size: int | None = None


class JobPostingDraft(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: OptionalText = None
    job_types: TextList = Field(default_factory=list)
    industries: TextList = Field(default_factory=list)
    job_description: OptionalText = None
    position_summary: OptionalText = None
    required_skills: OptionalText = None
    preferred_skills: OptionalText = None
    salary_min: OptionalInt = None
    salary_max: OptionalInt = None
    salary_note: OptionalText = None
    employment_type: OptionalText = None
    employment_type_note: OptionalText = None
    work_locations: TextList = Field(default_factory=list)
    location_note: OptionalText = None
    working_hours: OptionalText = None
    overtime_info: OptionalText = None
    holidays: OptionalText = None
    remote_work_available: Flag = False
    selection_process: OptionalText = None
    appeal_points: TextList = Field(default_factory=list)
    smoking_policy: OptionalText = None
    smoking_policy_note: OptionalText = None
    required_documents: TextList = Field(default_factory=list)
    internal_memo: OptionalText = None
    publication_type: PublicationType | None = None
    status: JobStatus | None = None
    application_deadline: OptionalDate = None
    group_id: OptionalText = None
    # Strings are already-stored image URLs; objects are new uploads.
    images: list[str | ImageUpload] = Field(default_factory=list)

    @property
    def existing_images(self) -> list[str]:
        return [item for item in self.images if isinstance(item, str) and item.strip()]

    @property
    def new_images(self) -> list[ImageUpload]:
        return [item for item in self.images if isinstance(item, ImageUpload)]


class JobPostingListOut(BaseModel):
    id: str
    title: str
    job_types: list[str] = Field(default_factory=list)
    industries: list[str] = Field(default_factory=list)
    employment_type: str | None = None
    work_locations: list[str] = Field(default_factory=list)
    salary_min: int | None = None
    salary_max: int | None = None
    status: str
    publication_type: str | None = None
    group_id: str | None = None
    group_name: str | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobPostingOut(JobPostingListOut):
    company_account_id: str | None = None
    job_description: str | None = None
    position_summary: str | None = None
    required_skills: str | None = None
    preferred_skills: str | None = None
    salary_note: str | None = None
    employment_type_note: str | None = None
    location_note: str | None = None
    working_hours: str | None = None
    overtime_info: str | None = None
    holidays: str | None = None
    remote_work_available: bool = False
    selection_process: str | None = None
    appeal_points: list[str] = Field(default_factory=list)
    smoking_policy: str | None = None
    smoking_policy_note: str | None = None
    required_documents: list[str] = Field(default_factory=list)
    internal_memo: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    application_deadline: date | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None


class JobEditStateOut(BaseModel):
    job_id: str
    phase: EditPhase
    draft: JobPostingDraft


class JobCommitOut(BaseModel):
    job_id: str
    phase: EditPhase
    posting: JobPostingOut
    next_step: str


class JobScopeRequest(BaseModel):
    publication_type: PublicationType


class JobScopeOut(BaseModel):
    job_id: str
    phase: EditPhase
    posting: JobPostingOut
    redirect_to: str


class JobReviewRequest(BaseModel):
    job_ids: list[str] = Field(min_length=1, max_length=200)
    decision: ReviewDecision
    reason: str | None = None
    comment: str | None = None


class JobReviewOut(BaseModel):
    decision: ReviewDecision
    postings: list[JobPostingOut] = Field(default_factory=list)
