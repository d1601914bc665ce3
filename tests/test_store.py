"""Tests for the optional fingerprint store."""

import json

from thumbwatch.store import FingerprintRecord, JsonFingerprintStore, MemoryFingerprintStore, merge_origin

FP = "0123456789abcdef"


class TestMergeOrigin:
    def test_new_record(self):
        record = merge_origin(None, FP, "https://a.example")
        assert record.count == 1
        assert record.origins == ("https://a.example",)
        assert record.first_seen_at == record.last_seen_at

    def test_known_origin_leaves_record_untouched(self):
        record = merge_origin(None, FP, "https://a.example")
        assert merge_origin(record, FP, "https://a.example") is record

    def test_new_origin_increments_count(self):
        record = merge_origin(None, FP, "https://a.example")
        updated = merge_origin(record, FP, "https://b.example")
        assert updated.count == 2
        assert updated.origins == ("https://a.example", "https://b.example")
        assert updated.first_seen_at == record.first_seen_at


class TestMemoryFingerprintStore:
    def test_get_upsert_list_clear(self):
        store = MemoryFingerprintStore()
        assert store.get(FP) is None

        store.upsert(FP, "page1")
        store.upsert(FP, "page2")
        store.upsert("fedcba9876543210", "page1")

        assert store.get(FP).count == 2
        assert [record.fingerprint for record in store.list_all()] == [FP, "fedcba9876543210"]

        store.clear()
        assert store.list_all() == []


class TestJsonFingerprintStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "store.json"
        JsonFingerprintStore(path).upsert(FP, "page1")
        JsonFingerprintStore(path).upsert(FP, "page2")

        reloaded = JsonFingerprintStore(path)
        assert reloaded.get(FP).origins == ("page1", "page2")
        assert reloaded.get(FP).count == 2

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonFingerprintStore(tmp_path / "nothing.json")
        assert store.list_all() == []
        assert not (tmp_path / "nothing.json").exists()

    def test_legacy_record_without_origins(self, tmp_path):
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps({"records": [{"fingerprint": FP, "count": 3, "last_seen_at": "2024-01-01T00:00:00+00:00"}]}))

        store = JsonFingerprintStore(path)
        record = store.get(FP)
        assert record.origins == ()
        assert record.count == 3
        assert record.first_seen_at == "2024-01-01T00:00:00+00:00"

        updated = store.upsert(FP, "page1")
        assert updated.origins == ("page1",)
        assert updated.count == 1

    def test_clear_persists(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFingerprintStore(path)
        store.upsert(FP, "page1")
        store.clear()

        assert JsonFingerprintStore(path).list_all() == []
        assert json.loads(path.read_text())["records"] == []

    def test_record_round_trips_through_dict(self):
        record = FingerprintRecord(FP, 1, ("page1",), "2024-01-01T00:00:00+00:00", "2024-01-02T00:00:00+00:00")
        assert FingerprintRecord.from_dict(record.to_dict()) == record
