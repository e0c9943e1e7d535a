from cuepoint.services.staging import (
    DraftKey,
    InMemoryDraftStore,
    StagedDraft,
    load_staged,
    save_staged,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_storage_key_uses_edit_data_prefix() -> None:
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-42")
    assert key.storage_key == "editData-job-42"


def test_save_load_clear_round_trip() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")

    store.save(key, {"title": "Backend engineer"})
    assert store.load(key) == {"title": "Backend engineer"}

    store.clear(key)
    assert store.load(key) is None
    assert len(store) == 0


def test_loaded_draft_is_a_copy() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")
    store.save(key, {"job_types": ["engineer"]})

    loaded = store.load(key)
    assert loaded is not None
    loaded["job_types"].append("designer")

    assert store.load(key) == {"job_types": ["engineer"]}


def test_sessions_and_entity_kinds_are_isolated() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    job_key = DraftKey(session_id="session-1", entity_kind="job", entity_id="42")
    candidate_key = DraftKey(session_id="session-1", entity_kind="candidate", entity_id="42")
    other_session_key = DraftKey(session_id="session-2", entity_kind="job", entity_id="42")

    store.save(job_key, {"title": "job"})
    store.save(candidate_key, {"last_name": "candidate"})

    assert store.load(job_key) == {"title": "job"}
    assert store.load(candidate_key) == {"last_name": "candidate"}
    assert store.load(other_session_key) is None


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    store = InMemoryDraftStore(ttl_seconds=30, clock=clock)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")
    store.save(key, {"title": "draft"})

    clock.now += 29
    assert store.load(key) == {"title": "draft"}

    clock.now += 1
    assert store.load(key) is None
    assert len(store) == 0


def test_abandoned_drafts_are_swept_on_save() -> None:
    clock = FakeClock()
    store = InMemoryDraftStore(ttl_seconds=10, clock=clock)
    for index in range(1000):
        store.save(DraftKey(session_id=f"session-{index}", entity_kind="job", entity_id="job-1"), {"title": "x"})
    assert len(store) == 1000

    clock.now += 10_000
    fresh = DraftKey(session_id="session-new", entity_kind="job", entity_id="job-1")
    store.save(fresh, {"title": "fresh"})

    assert len(store) == 1
    assert store.load(fresh) == {"title": "fresh"}


def test_save_keeps_unexpired_drafts_of_other_sessions() -> None:
    clock = FakeClock()
    store = InMemoryDraftStore(ttl_seconds=30, clock=clock)
    older = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")
    store.save(older, {"title": "older"})

    clock.now += 20
    store.save(DraftKey(session_id="session-2", entity_kind="job", entity_id="job-1"), {"title": "newer"})

    assert len(store) == 2
    assert store.load(older) == {"title": "older"}


def test_second_save_overwrites_first() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")

    store.save(key, {"title": "from tab one"})
    store.save(key, {"title": "from tab two"})

    assert store.load(key) == {"title": "from tab two"}


def test_staged_draft_keeps_phase() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")

    save_staged(store, key, StagedDraft(phase="scope_selection", draft={"title": "x"}))
    staged = load_staged(store, key)

    assert staged is not None
    assert staged.phase == "scope_selection"
    assert staged.draft == {"title": "x"}


def test_load_staged_ignores_malformed_entries() -> None:
    store = InMemoryDraftStore(ttl_seconds=60)
    key = DraftKey(session_id="session-1", entity_kind="job", entity_id="job-1")
    store.save(key, {"phase": "staged"})

    assert load_staged(store, key) is None
