"""Tests for the local and cloud record store variants."""

import json

from conftest import FakeSupabase

from trackexpense.models.enums import PersistOutcome, StoreMode
from trackexpense.storage.cloud_store import CLOUD_SAVE_FAILED_MESSAGE
from trackexpense.storage.local_store import LocalRecordStore


def _seed():
    return [{"id": "s1", "name": "seeded"}]


class Recorder:
    """Collects deliveries and errors from a subscription."""

    def __init__(self):
        self.deliveries = []
        self.errors = []

    def on_change(self, records):
        self.deliveries.append(records)

    def on_error(self, exc):
        self.errors.append(exc)

    @property
    def latest(self):
        return self.deliveries[-1]


class TestLocalRecordStore:
    def test_selected_without_cloud(self, local_db):
        assert local_db.mode == StoreMode.LOCAL
        assert isinstance(local_db.store, LocalRecordStore)

    def test_subscribe_delivers_seed_and_persists_it(self, local_db):
        rec = Recorder()
        local_db.store.subscribe("expenses", rec.on_change, seed=_seed)
        assert rec.deliveries == [_seed()]
        assert json.loads(local_db.storage.get_item("track_expense_data")) == _seed()

    def test_empty_snapshot_is_not_reseeded(self, local_db):
        local_db.storage.set_item("track_expense_data", "[]")
        rec = Recorder()
        local_db.store.subscribe("expenses", rec.on_change, seed=_seed)
        assert rec.latest == []

    def test_malformed_snapshot_is_reseeded(self, local_db):
        local_db.storage.set_item("track_expense_data", "{broken")
        rec = Recorder()
        local_db.store.subscribe("expenses", rec.on_change, seed=_seed)
        assert rec.latest == _seed()

    def test_writes_are_delivered_before_returning(self, local_db):
        store = local_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)

        assert store.put("expenses", "a", {"id": "a"}) == PersistOutcome.SAVED
        assert store.put("expenses", "b", {"id": "b"}, prepend=True) == PersistOutcome.SAVED
        assert [r["id"] for r in rec.latest] == ["b", "a"]

        store.patch("expenses", "a", {"status": "APPROVED"})
        assert rec.latest[1] == {"id": "a", "status": "APPROVED"}

        store.delete("expenses", "b")
        assert [r["id"] for r in rec.latest] == ["a"]

    def test_put_replaces_existing_record_in_place(self, local_db):
        store = local_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)
        store.put("expenses", "a", {"id": "a", "v": 1})
        store.put("expenses", "b", {"id": "b"})
        store.put("expenses", "a", {"id": "a", "v": 2}, prepend=True)
        assert rec.latest == [{"id": "a", "v": 2}, {"id": "b"}]

    def test_missing_targets_are_noops(self, local_db):
        store = local_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)
        assert store.patch("expenses", "ghost", {"x": 1}) == PersistOutcome.NOOP
        assert store.delete("expenses", "ghost") == PersistOutcome.NOOP
        assert store.delete_where("expenses", "userId", "ghost") == PersistOutcome.NOOP
        assert len(rec.deliveries) == 1

    def test_delete_where(self, local_db):
        store = local_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)
        for rid, owner in [("a", "u1"), ("b", "u2"), ("c", "u1")]:
            store.put("expenses", rid, {"id": rid, "userId": owner})

        assert store.delete_where("expenses", "userId", "u1") == PersistOutcome.SAVED
        assert rec.latest == [{"id": "b", "userId": "u2"}]

    def test_deliveries_are_copies(self, local_db):
        store = local_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)
        store.put("expenses", "a", {"id": "a"})
        rec.latest[0]["id"] = "mutated"
        store.put("expenses", "b", {"id": "b"})
        assert [r["id"] for r in rec.latest] == ["a", "b"]

    def test_unsubscribe_stops_deliveries(self, local_db):
        store = local_db.store
        rec = Recorder()
        handle = store.subscribe("expenses", rec.on_change)
        handle.unsubscribe()
        handle.unsubscribe()
        store.put("expenses", "a", {"id": "a"})
        assert len(rec.deliveries) == 1
        assert not handle.active

    def test_write_survives_restart(self, make_db, db_path):
        first = make_db()
        first.store.subscribe("users", Recorder().on_change)
        first.store.put("users", "u1", {"id": "u1"})

        rec = Recorder()
        make_db(path=db_path).store.subscribe("users", rec.on_change, seed=_seed)
        assert rec.latest == [{"id": "u1"}]


class TestCloudRecordStore:
    def test_selected_with_client(self, cloud_db):
        assert cloud_db.mode == StoreMode.CLOUD

    def test_write_is_deferred_until_redelivery(self, cloud_db, fake_cloud):
        store = cloud_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change, seed=_seed)
        store.flush(timeout=5)
        # Seeds are not applied to an empty cloud table.
        assert rec.deliveries == [[]]

        outcome = store.put("expenses", "a", {"id": "a", "userId": "u1"})
        assert outcome == PersistOutcome.DEFERRED

        store.flush(timeout=5)
        assert rec.latest == [{"id": "a", "userId": "u1"}]
        assert fake_cloud.tables["expenses"] == [{"id": "a", "userId": "u1"}]

    def test_patch_and_delete_target_one_row(self, make_db):
        cloud = FakeSupabase({"expenses": [{"id": "a", "status": "SUBMITTED"}, {"id": "b"}]})
        store = make_db(cloud=cloud).store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)

        store.patch("expenses", "a", {"status": "APPROVED"})
        store.delete("expenses", "b")
        store.flush(timeout=5)

        assert rec.latest == [{"id": "a", "status": "APPROVED"}]
        assert cloud.statements("expenses", "update") == [[("id", "a")]]
        assert cloud.statements("expenses", "delete") == [[("id", "b")]]

    def test_delete_where_is_a_single_statement(self, make_db):
        cloud = FakeSupabase(
            {"expenses": [{"id": "a", "userId": "u1"}, {"id": "b", "userId": "u2"},
                          {"id": "c", "userId": "u1"}]}
        )
        store = make_db(cloud=cloud).store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)

        assert store.delete_where("expenses", "userId", "u1") == PersistOutcome.DEFERRED
        store.flush(timeout=5)

        assert cloud.statements("expenses", "delete") == [[("userId", "u1")]]
        assert rec.latest == [{"id": "b", "userId": "u2"}]

    def test_rejected_write_alerts_and_changes_nothing(self, cloud_db, fake_cloud, alerts):
        store = cloud_db.store
        rec = Recorder()
        store.subscribe("expenses", rec.on_change)
        store.flush(timeout=5)

        fake_cloud.fail_writes = True
        store.put("expenses", "a", {"id": "a"})
        store.flush(timeout=5)

        assert alerts == [CLOUD_SAVE_FAILED_MESSAGE]
        assert rec.deliveries == [[]]

    def test_refresh_failure_reaches_on_error(self, cloud_db, fake_cloud):
        fake_cloud.fail_reads = True
        rec = Recorder()
        cloud_db.store.subscribe("expenses", rec.on_change, on_error=rec.on_error)
        cloud_db.store.flush(timeout=5)

        assert rec.deliveries == []
        assert len(rec.errors) == 1
        assert isinstance(rec.errors[0], ConnectionError)

    def test_writes_after_close_fail(self, cloud_db):
        store = cloud_db.store
        store.close()
        assert store.put("expenses", "a", {"id": "a"}) == PersistOutcome.FAILED
