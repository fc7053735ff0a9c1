"""Device-side key/value store over SQLAlchemy."""

from local_store import STORAGE_KEYS


def test_get_missing_returns_default(local_store):
    assert local_store.get("missing") is None
    assert local_store.get("missing", []) == []


def test_set_and_overwrite(local_store):
    local_store.set("k", {"a": 1})
    local_store.set("k", {"a": 2, "b": [1, 2]})
    assert local_store.get("k") == {"a": 2, "b": [1, 2]}


def test_remove(local_store):
    local_store.set("k", [1])
    local_store.remove("k")
    local_store.remove("never-there")
    assert local_store.get("k") is None


def test_clear_all_wipes_everything(local_store):
    for key in STORAGE_KEYS.values():
        local_store.set(key, {"x": 1})
    assert len(local_store.keys()) == len(STORAGE_KEYS)
    local_store.clear_all()
    assert local_store.keys() == []
