import json

import pytest

from cryptochat.storage import DERIVED_KEY, STORAGE_KEYS, JsonFileSnapshotStore


@pytest.fixture
def store(tmp_path):
    return JsonFileSnapshotStore(tmp_path / "crypto")


def test_storage_keys_cover_raw_sources_and_derived():
    assert STORAGE_KEYS[-1] == DERIVED_KEY
    for key in ("global", "topCoins", "bitcoinChart", "coinbaseSpot", "krakenTicker", "binancePrice"):
        assert key in STORAGE_KEYS
    assert len(STORAGE_KEYS) == 9


def test_write_then_read(store):
    store.write("global", {"foo": 1})
    assert store.read("global") == {"foo": 1}
    assert json.loads((store.root / "global.json").read_text()) == {"foo": 1}


def test_write_overwrites(store):
    store.write("derived", {"computedAt": 1})
    store.write("derived", {"computedAt": 2})
    assert store.read("derived") == {"computedAt": 2}
    assert sorted(p.name for p in store.root.iterdir()) == ["derived.json"]


def test_read_missing_returns_none(store):
    assert store.read("topCoins") is None


def test_corrupt_file_reads_as_none(store, caplog):
    (store.root / "trending.json").write_text("{not json", encoding="utf-8")
    assert store.read("trending") is None
    assert "unreadable" in caplog.text


def test_unknown_key_rejected(store):
    with pytest.raises(ValueError):
        store.write("secrets", {})
    with pytest.raises(ValueError):
        store.read("../etc/passwd")


def test_read_all_skips_missing(store):
    store.write("global", {"a": 1})
    store.write("topCoins", [])
    assert store.read_all() == {"global": {"a": 1}, "topCoins": []}
    assert store.read_all(["global"]) == {"global": {"a": 1}}


def test_delete_all(store):
    store.write("global", {"a": 1})
    store.write("derived", {"b": 2})
    assert store.delete_all() == 2
    assert store.read_all() == {}
    assert store.delete_all() == 0
