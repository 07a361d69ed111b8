"""
End-to-end engine tests: seeded catalog, recommendation quality, restart cycle.
"""

import numpy as np
import pytest

from recsys.db.metadata_store import MetadataStore
from recsys.ml.embeddings import CATEGORIES, category_anchor
from recsys.ml.errors import NotReady
from recsys.ml.search import RecommendationService
from recsys.models.catalog import User
from recsys.scripts.seed_catalog import seed_catalog

DIM = 64


@pytest.fixture
def seeded_store(store):
    seed_catalog(store, items_per_category=30, num_users=5, dim=DIM, seed=3)
    return store


def test_seed_catalog_writes_items_and_users(seeded_store):
    assert seeded_store.count_items() == 30 * len(CATEGORIES)
    assert {item.category for item in seeded_store.all_items()} == set(CATEGORIES)
    for user_id in range(5):
        user = seeded_store.get_user(user_id)
        assert np.linalg.norm(user.embedding) == pytest.approx(1.0, abs=1e-5)


def test_recommendations_follow_user_preference(seeded_store, ml_config):
    seeded_store.upsert_user(User(id=900, embedding=category_anchor("Books", DIM)))
    service = RecommendationService.build(seeded_store, config=ml_config)
    service.start()

    result = service.recommend(900, k=10)
    items = service.get_items(result.item_ids())

    assert len(result.items) == 10
    assert all(items[i].category == "Books" for i in result.item_ids())
    assert [s.final_score for s in result.items] == sorted(
        (s.final_score for s in result.items), reverse=True
    )
    service.stop()


def test_seen_items_never_return(seeded_store, ml_config):
    seeded_store.upsert_user(User(id=900, embedding=category_anchor("Home", DIM)))
    service = RecommendationService.build(seeded_store, config=ml_config)
    service.start()

    shown = set()
    for _ in range(3):
        result = service.recommend(900, k=5)
        assert not shown & set(result.item_ids())
        shown.update(result.item_ids())
        service.mark_seen(900, result.item_ids())

    assert len(shown) == 15
    service.stop()


def test_restart_reuses_persisted_index(seeded_store, ml_config, tmp_path):
    first = RecommendationService.build(seeded_store, config=ml_config)
    assert first.start().rebuilt
    before = first.search("wireless headphones", k=5).item_ids()
    assert first.stop()

    with pytest.raises(NotReady):
        first.recommend(0)

    # Fresh process: new store handle, new indexes
    reopened = MetadataStore(f"sqlite:///{tmp_path / 'metadata.db'}")
    second = RecommendationService.build(reopened, config=ml_config)
    report = second.start()

    assert report.load_status == "loaded"
    assert not report.rebuilt
    assert second.vector_index.count() == 120
    assert second.search("wireless headphones", k=5).item_ids() == before
    assert second.stop()


def test_item_added_while_serving_survives_restart(seeded_store, ml_config, make_item, tmp_path):
    service = RecommendationService.build(seeded_store, config=ml_config)
    service.start()
    service.add_item(make_item(5000, category="Clothing", name="Rain Poncho"))
    service.stop()

    reopened = MetadataStore(f"sqlite:///{tmp_path / 'metadata.db'}")
    restarted = RecommendationService.build(reopened, config=ml_config)
    report = restarted.start()

    assert not report.rebuilt
    assert restarted.vector_index.contains(5000)
    assert restarted.search("poncho", k=3).item_ids()[0] == 5000
    restarted.stop()
