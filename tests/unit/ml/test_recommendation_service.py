"""
Tests for the service write path: adding items while serving.
"""

import threading
import time

import pytest

from recsys.ml.errors import CapacityExceeded, DuplicateItem, NotNormalized
from recsys.ml.search import RecommendationService

DIM = 64


@pytest.fixture
def service(anchor_store, ml_config):
    recommendation_service = RecommendationService.build(anchor_store, config=ml_config)
    recommendation_service.start()
    yield recommendation_service
    recommendation_service.stop()


def test_add_item_indexes_both_sources(service, make_item):
    service.add_item(make_item(10, category="Clothing", name="Rain Poncho"))

    assert service.store.get_item(10) is not None
    assert service.vector_index.contains(10)
    assert service.search("poncho", k=3).item_ids()[0] == 10


def test_full_index_rejects_before_store_write(anchor_store, ml_config, make_item):
    ml_config.index.capacity = 3
    service = RecommendationService.build(anchor_store, config=ml_config)
    service.start()

    with pytest.raises(CapacityExceeded):
        service.add_item(make_item(9, category="Clothing"))

    assert anchor_store.get_item(9) is None
    assert not service.vector_index.contains(9)
    assert service.vector_index.count() == anchor_store.count_items()
    service.stop()


def test_unnormalized_embedding_is_not_stored(service, make_item):
    item = make_item(11, category="Books")
    item.embedding = [1.0] * DIM

    with pytest.raises(NotNormalized):
        service.add_item(item)

    assert service.store.get_item(11) is None


def test_duplicate_id_keeps_store_and_index_in_step(service, make_item, monkeypatch):
    upsert = service.store.upsert_item

    def slow_upsert(item):
        # Widen the window between the duplicate check and the index write
        time.sleep(0.1)
        upsert(item)

    monkeypatch.setattr(service.store, "upsert_item", slow_upsert)

    candidates = [make_item(20, category="Home"), make_item(20, category="Electronics")]
    outcomes = []

    def add(item):
        try:
            service.add_item(item)
            outcomes.append("added")
        except DuplicateItem:
            outcomes.append("duplicate")

    threads = [threading.Thread(target=add, args=(item,)) for item in candidates]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert sorted(outcomes) == ["added", "duplicate"]

    stored = service.store.get_item(20)
    top = service.vector_index.search_knn(stored.embedding, 1)[0]
    assert top.item_id == 20
    assert top.score == pytest.approx(1.0, abs=1e-4)
