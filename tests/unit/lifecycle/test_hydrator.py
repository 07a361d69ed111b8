"""
Tests for startup reconciliation and shutdown persistence.
"""

import threading
import time

import pytest

from recsys.db.metadata_store import MetadataStore
from recsys.ml.errors import HydrationError, NotReady
from recsys.ml.lifecycle import Hydrator, HydratorState
from recsys.ml.retrieval import KeywordIndex, LoadStatus, VectorIndex
from recsys.models.catalog import Item


def make_hydrator(store, ml_config, index_path=None):
    return Hydrator(
        vector_index=VectorIndex(ml_config.index),
        store=store,
        keyword_index=KeywordIndex(ml_config.keyword),
        index_path=index_path,
        config=ml_config,
    )


@pytest.fixture
def catalog_store(store, make_item):
    categories = ["Electronics", "Books", "Home", "Clothing"]
    for item_id in range(1, 41):
        store.upsert_item(make_item(item_id, category=categories[item_id % 4]))
    return store


class TestStartup:
    def test_fresh_start_rebuilds_from_store(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)

        report = hydrator.start()

        assert report.load_status == LoadStatus.CREATED_NEW.value
        assert report.rebuilt
        assert report.item_count == 40
        assert hydrator.state == HydratorState.READY
        assert hydrator.history == [
            HydratorState.COLD,
            HydratorState.LOADING,
            HydratorState.VERIFYING,
            HydratorState.REBUILDING,
            HydratorState.READY,
        ]
        assert hydrator.vector_index.ids() == catalog_store.item_ids()
        assert hydrator.keyword_index.ids() == catalog_store.item_ids()

    def test_empty_store_reaches_ready(self, store, ml_config):
        hydrator = make_hydrator(store, ml_config)

        report = hydrator.start()

        assert hydrator.is_ready
        assert report.item_count == 0
        assert hydrator.vector_index.count() == 0

    def test_gate_rejects_before_start(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)

        with pytest.raises(NotReady) as exc_info:
            with hydrator.acquire():
                pass
        assert exc_info.value.state == "cold"

    def test_gate_rejects_while_rebuilding(self, catalog_store, ml_config, monkeypatch):
        rebuilding = threading.Event()
        release = threading.Event()
        iter_items = catalog_store.iter_items

        def blocking_iter_items(batch_size=1000):
            rebuilding.set()
            assert release.wait(timeout=5)
            yield from iter_items(batch_size=batch_size)

        monkeypatch.setattr(catalog_store, "iter_items", blocking_iter_items)
        hydrator = make_hydrator(catalog_store, ml_config)
        starter = threading.Thread(target=hydrator.start)
        starter.start()

        try:
            assert rebuilding.wait(timeout=5)
            assert hydrator.state == HydratorState.REBUILDING
            with pytest.raises(NotReady) as exc_info:
                with hydrator.acquire():
                    pass
            assert exc_info.value.state == "rebuilding"
        finally:
            release.set()
            starter.join(timeout=10)

        assert hydrator.is_ready
        with hydrator.acquire():
            assert hydrator.in_flight == 1

    def test_double_start_fails(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)
        hydrator.start()

        with pytest.raises(HydrationError):
            hydrator.start()

    def test_persisted_index_is_reused(self, catalog_store, ml_config):
        first = make_hydrator(catalog_store, ml_config)
        first.start()
        assert first.stop()
        assert ml_config.index.index_path.exists()

        second = make_hydrator(catalog_store, ml_config)
        report = second.start()

        assert report.load_status == LoadStatus.LOADED.value
        assert not report.rebuilt
        assert HydratorState.CONSISTENT in second.history
        assert second.vector_index.count() == 40
        # Keyword index is always rebuilt from the store
        assert second.keyword_index.count() == 40

    def test_count_drift_triggers_rebuild(self, catalog_store, ml_config, make_item):
        first = make_hydrator(catalog_store, ml_config)
        first.start()
        first.stop()

        for item_id in range(41, 46):
            catalog_store.upsert_item(make_item(item_id, category="Books"))

        second = make_hydrator(catalog_store, ml_config)
        report = second.start()

        assert report.rebuilt
        assert "count mismatch" in report.reason
        assert second.vector_index.count() == 45
        for item in catalog_store.all_items():
            assert second.vector_index.search_knn(item.embedding, 1)[0].item_id == item.id

    def test_id_drift_triggers_rebuild(self, catalog_store, ml_config, make_item, tmp_path):
        first = make_hydrator(catalog_store, ml_config)
        first.start()
        first.stop()

        # Same number of items, one id differs
        other_store = MetadataStore(f"sqlite:///{tmp_path / 'other.db'}")
        for item in catalog_store.all_items():
            if item.id != 40:
                other_store.upsert_item(item)
        other_store.upsert_item(make_item(99, category="Home"))

        second = make_hydrator(other_store, ml_config)
        report = second.start()

        assert report.rebuilt
        assert "id mismatch" in report.reason
        assert second.vector_index.ids() == other_store.item_ids()
        other_store.flush()

    def test_corrupt_index_triggers_rebuild(self, catalog_store, ml_config):
        path = ml_config.index.index_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\x00garbage\x00" * 16)

        hydrator = make_hydrator(catalog_store, ml_config)
        report = hydrator.start()

        assert report.load_status == "corrupt"
        assert report.rebuilt
        assert hydrator.vector_index.count() == 40

    def test_rebuild_raises_capacity_to_fit_store(self, catalog_store, ml_config):
        ml_config.index.capacity = 10
        hydrator = make_hydrator(catalog_store, ml_config)

        hydrator.start()

        assert hydrator.vector_index.count() == 40
        assert hydrator.vector_index.capacity == 40

    def test_unindexable_record_fails_hydration(self, catalog_store, ml_config):
        catalog_store.upsert_item(
            Item(id=500, name="Broken", category="Home", embedding=[1.0] + [0.0] * 7)
        )
        hydrator = make_hydrator(catalog_store, ml_config)

        with pytest.raises(HydrationError):
            hydrator.start()
        assert not hydrator.is_ready


class TestShutdown:
    def test_gate_rejects_after_stop(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)
        hydrator.start()

        assert hydrator.stop()
        assert hydrator.state == HydratorState.FLUSHED
        assert hydrator.shutdown_ok is True
        with pytest.raises(NotReady):
            with hydrator.acquire():
                pass

    def test_stop_is_idempotent(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)
        hydrator.start()

        assert hydrator.stop()
        assert hydrator.stop()
        assert hydrator.history.count(HydratorState.FLUSHED) == 1

    def test_save_failure_is_reported(self, catalog_store, ml_config, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        hydrator = make_hydrator(catalog_store, ml_config, index_path=blocker / "index.faiss")
        hydrator.start()

        assert hydrator.stop() is False
        assert hydrator.shutdown_ok is False
        assert hydrator.state == HydratorState.FLUSHED

    def test_stop_before_ready_skips_save(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)

        assert hydrator.stop()
        assert hydrator.state == HydratorState.FLUSHED
        assert not ml_config.index.index_path.exists()

    def test_stop_waits_for_in_flight_requests(self, catalog_store, ml_config):
        hydrator = make_hydrator(catalog_store, ml_config)
        hydrator.start()
        outcome = {}

        def shutdown():
            outcome["ok"] = hydrator.stop()

        with hydrator.acquire():
            assert hydrator.in_flight == 1
            stopper = threading.Thread(target=shutdown)
            stopper.start()
            time.sleep(0.2)

            assert stopper.is_alive()
            assert hydrator.state == HydratorState.SHUTTING_DOWN
            # New requests are turned away while draining
            with pytest.raises(NotReady):
                with hydrator.acquire():
                    pass

        stopper.join(timeout=5)
        assert not stopper.is_alive()
        assert outcome["ok"] is True
        assert hydrator.in_flight == 0
        assert ml_config.index.index_path.exists()

    def test_drain_timeout_still_saves(self, catalog_store, ml_config):
        ml_config.lifecycle.drain_timeout_seconds = 0.1
        hydrator = make_hydrator(catalog_store, ml_config)
        hydrator.start()

        with hydrator.acquire():
            assert hydrator.stop()

        assert hydrator.state == HydratorState.FLUSHED
        assert ml_config.index.index_path.exists()


def test_stats_reports_state_and_hydration(catalog_store, ml_config):
    hydrator = make_hydrator(catalog_store, ml_config)
    assert hydrator.stats()["hydration"] is None

    hydrator.start()
    stats = hydrator.stats()

    assert stats["state"] == "ready"
    assert stats["in_flight"] == 0
    assert stats["hydration"]["item_count"] == 40
