from __future__ import annotations

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol

from cuepoint.core.config import get_settings


@dataclass(frozen=True, slots=True)
class DraftKey:
    session_id: str
    entity_kind: str
    entity_id: str

    @property
    def storage_key(self) -> str:
        return f"editData-{self.entity_id}"


class DraftStore(Protocol):
    def save(self, key: DraftKey, draft: dict[str, Any]) -> None: ...

    def load(self, key: DraftKey) -> dict[str, Any] | None: ...

    def clear(self, key: DraftKey) -> None: ...


class InMemoryDraftStore:
    """Per-session staging area for edits that span several requests.

    Entries live in a namespace per (session, entity kind) and expire after
    ``ttl_seconds``, which plays the part of the browser session ending.
    Writes are last-writer-wins: two tabs sharing a session and entity id
    overwrite each other without conflict detection.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[tuple[str, str], dict[str, tuple[float, dict[str, Any]]]] = {}

    def save(self, key: DraftKey, draft: dict[str, Any]) -> None:
        now = self._clock()
        # Abandoned drafts are never loaded again, so expiry also runs on write.
        self._sweep(now)
        namespace = self._sessions.setdefault((key.session_id, key.entity_kind), {})
        namespace[key.storage_key] = (now + self.ttl_seconds, copy.deepcopy(draft))

    def load(self, key: DraftKey) -> dict[str, Any] | None:
        namespace = self._sessions.get((key.session_id, key.entity_kind))
        if not namespace:
            return None
        entry = namespace.get(key.storage_key)
        if entry is None:
            return None
        expires_at, draft = entry
        if self._clock() >= expires_at:
            self.clear(key)
            return None
        return copy.deepcopy(draft)

    def clear(self, key: DraftKey) -> None:
        namespace_key = (key.session_id, key.entity_kind)
        namespace = self._sessions.get(namespace_key)
        if not namespace:
            return
        namespace.pop(key.storage_key, None)
        if not namespace:
            del self._sessions[namespace_key]

    def __len__(self) -> int:
        return sum(len(namespace) for namespace in self._sessions.values())

    def _sweep(self, now: float) -> None:
        for namespace_key in list(self._sessions):
            namespace = self._sessions[namespace_key]
            for storage_key in [name for name, (expires_at, _) in namespace.items() if now >= expires_at]:
                del namespace[storage_key]
            if not namespace:
                del self._sessions[namespace_key]


class DraftValidationError(Exception):
    """Raised when a draft fails validation; ``errors`` maps field to message."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("draft validation failed")
        self.errors = errors


class StagedDraftMissingError(Exception):
    """Raised when a confirm step finds nothing staged for the entity."""


class DraftPhaseError(Exception):
    """Raised when a step is attempted from the wrong edit phase."""


@dataclass(slots=True)
class StagedDraft:
    phase: str
    draft: dict[str, Any]


def load_staged(store: DraftStore, key: DraftKey) -> StagedDraft | None:
    entry = store.load(key)
    if not entry or not isinstance(entry.get("draft"), dict):
        return None
    return StagedDraft(phase=str(entry.get("phase") or "staged"), draft=entry["draft"])


def save_staged(store: DraftStore, key: DraftKey, staged: StagedDraft) -> None:
    store.save(key, {"phase": staged.phase, "draft": staged.draft})


@lru_cache
def get_draft_store() -> InMemoryDraftStore:
    return InMemoryDraftStore(ttl_seconds=get_settings().draft_ttl_seconds)
