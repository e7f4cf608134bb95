import pytest

from agent.store import DuplicateInsightError, InMemoryInsightStore, InsightNotFoundError


def _record(user_id="u1", file_id="f1", generated_at="2024-01-01T00:00:00", **extra):
    return {"id": f"{user_id}-{file_id}", "userId": user_id, "fileId": file_id, "generatedAt": generated_at, **extra}


def test_insert_if_absent_enforces_uniqueness(store):
    first = store.insert_if_absent(_record())
    assert store.find("u1", "f1") is first

    with pytest.raises(DuplicateInsightError) as exc_info:
        store.insert_if_absent(_record(summary="second"))

    assert exc_info.value.dataset_id == "f1"
    assert store.get("u1", "f1") is first
    assert len(store) == 1


def test_missing_record(store):
    assert store.find("u1", "nope") is None
    with pytest.raises(InsightNotFoundError):
        store.get("u1", "nope")
    with pytest.raises(InsightNotFoundError):
        store.delete("u1", "nope")


def test_list_for_user_newest_first(store):
    store.insert_if_absent(_record(file_id="old", generated_at="2024-01-01T00:00:00"))
    store.insert_if_absent(_record(file_id="new", generated_at="2024-06-01T00:00:00"))
    store.insert_if_absent(_record(user_id="u2", file_id="old"))

    assert [r["fileId"] for r in store.list_for_user("u1")] == ["new", "old"]
    assert [r["userId"] for r in store.list_for_user("u2")] == ["u2"]


def test_delete_allows_regeneration(store):
    store.insert_if_absent(_record())
    store.delete("u1", "f1")
    assert len(store) == 0
    store.insert_if_absent(_record())
    assert len(store) == 1


def test_base_store_is_abstract():
    from agent.store import InsightStore

    with pytest.raises(NotImplementedError):
        InsightStore().find("u1", "f1")
