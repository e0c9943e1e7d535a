from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from cuepoint.schemas.candidates import CandidateProfileDraft
from cuepoint.services.staging import (
    DraftKey,
    DraftStore,
    DraftValidationError,
    StagedDraft,
    StagedDraftMissingError,
    load_staged,
    save_staged,
)

logger = logging.getLogger(__name__)

CANDIDATE_ENTITY = "candidate"
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(slots=True)
class CandidateEditState:
    candidate_id: str
    phase: str
    draft: CandidateProfileDraft


def candidate_draft_key(session_id: str, candidate_id: str) -> DraftKey:
    return DraftKey(session_id=session_id, entity_kind=CANDIDATE_ENTITY, entity_id=candidate_id)


def validate_candidate_draft(draft: CandidateProfileDraft) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not draft.last_name:
        errors["last_name"] = "姓を入力してください。"
    if not draft.first_name:
        errors["first_name"] = "名を入力してください。"
    if not draft.email:
        errors["email"] = "メールアドレスを入力してください。"
    elif not EMAIL_RE.match(draft.email):
        errors["email"] = "メールアドレスの形式が正しくありません。"
    return errors


async def open_candidate_editor(
    *,
    repository: Any,
    store: DraftStore,
    session_id: str,
    candidate_id: str,
) -> CandidateEditState:
    staged = load_staged(store, candidate_draft_key(session_id, candidate_id))
    if staged is not None:
        return CandidateEditState(
            candidate_id=candidate_id,
            phase=staged.phase,
            draft=CandidateProfileDraft.model_validate(staged.draft),
        )

    profile = await repository.get_candidate_profile(candidate_id=candidate_id)
    return CandidateEditState(
        candidate_id=candidate_id,
        phase="editing",
        draft=CandidateProfileDraft.model_validate(profile),
    )


async def stage_candidate_draft(
    *,
    repository: Any,
    store: DraftStore,
    session_id: str,
    candidate_id: str,
    draft: CandidateProfileDraft,
) -> CandidateEditState:
    errors = validate_candidate_draft(draft)
    if errors:
        raise DraftValidationError(errors)

    if await repository.candidate_email_exists(email=draft.email, exclude_candidate_id=candidate_id):
        raise DraftValidationError({"email": "このメールアドレスは既に他の候補者に使用されています。"})

    save_staged(
        store,
        candidate_draft_key(session_id, candidate_id),
        StagedDraft(phase="staged", draft=draft.model_dump(mode="json")),
    )
    return CandidateEditState(candidate_id=candidate_id, phase="staged", draft=draft)


def review_candidate_draft(*, store: DraftStore, session_id: str, candidate_id: str) -> CandidateEditState | None:
    staged = load_staged(store, candidate_draft_key(session_id, candidate_id))
    if staged is None:
        return None
    return CandidateEditState(
        candidate_id=candidate_id,
        phase=staged.phase,
        draft=CandidateProfileDraft.model_validate(staged.draft),
    )


async def commit_candidate_draft(
    *,
    repository: Any,
    store: DraftStore,
    session_id: str,
    candidate_id: str,
    now: datetime,
) -> dict[str, Any]:
    """Write the staged profile and clear the draft; a failed write keeps it staged."""
    key = candidate_draft_key(session_id, candidate_id)
    staged = load_staged(store, key)
    if staged is None:
        raise StagedDraftMissingError(candidate_id)

    draft = CandidateProfileDraft.model_validate(staged.draft)
    errors = validate_candidate_draft(draft)
    if errors:
        raise DraftValidationError(errors)

    profile = await repository.update_candidate_profile(
        candidate_id=candidate_id,
        profile=draft.model_dump(),
        now=now,
    )
    store.clear(key)
    logger.info("candidate profile committed", extra={"candidate_id": candidate_id})
    return profile
