"""
Tests for the HNSW vector index wrapper.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from recsys.ml.config import IndexConfig
from recsys.ml.errors import (
    CapacityExceeded,
    CorruptIndex,
    DimensionMismatch,
    DuplicateItem,
    InvalidConfig,
    NotInitialized,
    NotNormalized,
)
from recsys.ml.retrieval import LoadStatus, VectorIndex

DIM = 32


def random_unit_vectors(rng, n, dim=DIM):
    vectors = rng.normal(size=(n, dim)).astype(np.float32)
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


@pytest.fixture
def index():
    idx = VectorIndex(IndexConfig(dim=DIM))
    idx.init(DIM, capacity=1000)
    idx.set_search_breadth(256)
    return idx


@pytest.fixture
def populated(index, rng):
    vectors = random_unit_vectors(rng, 200)
    index.add_items(list(range(200)), vectors)
    return index, vectors


class TestInit:
    def test_rejects_non_positive_dimension(self):
        with pytest.raises(InvalidConfig):
            VectorIndex(IndexConfig(dim=DIM)).init(0, capacity=10)

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(InvalidConfig):
            VectorIndex(IndexConfig(dim=DIM)).init(DIM, capacity=0)

    def test_operations_before_init_fail(self, rng):
        idx = VectorIndex(IndexConfig(dim=DIM))
        vector = random_unit_vectors(rng, 1)[0]

        assert not idx.is_initialized
        with pytest.raises(NotInitialized):
            idx.add_item(1, vector)
        with pytest.raises(NotInitialized):
            idx.search_knn(vector, 5)
        with pytest.raises(NotInitialized):
            idx.count()

    def test_new_index_is_empty(self, index, rng):
        assert index.count() == 0
        assert index.search_knn(random_unit_vectors(rng, 1)[0], 5) == []


class TestAdd:
    def test_dimension_mismatch(self, index):
        with pytest.raises(DimensionMismatch) as exc_info:
            index.add_item(1, np.ones(DIM + 1) / np.sqrt(DIM + 1))
        assert exc_info.value.expected == DIM
        assert exc_info.value.actual == DIM + 1

    def test_rejects_unnormalized_vector(self, index):
        with pytest.raises(NotNormalized):
            index.add_item(1, np.ones(DIM))

    def test_rejects_non_finite_vector(self, index):
        vector = np.zeros(DIM)
        vector[0] = np.nan
        with pytest.raises(NotNormalized):
            index.add_item(1, vector)

    def test_rejects_duplicate_id(self, index, rng):
        vectors = random_unit_vectors(rng, 2)
        index.add_item(7, vectors[0])
        with pytest.raises(DuplicateItem):
            index.add_item(7, vectors[1])
        assert index.count() == 1

    def test_batch_is_validated_before_insert(self, index, rng):
        vectors = random_unit_vectors(rng, 3)
        vectors[2] *= 2.0
        with pytest.raises(NotNormalized):
            index.add_items([1, 2, 3], vectors)
        assert index.count() == 0

    def test_capacity_is_enforced(self, rng):
        idx = VectorIndex(IndexConfig(dim=DIM))
        idx.init(DIM, capacity=3)
        idx.add_items([1, 2, 3], random_unit_vectors(rng, 3))
        with pytest.raises(CapacityExceeded):
            idx.add_item(4, random_unit_vectors(rng, 1)[0])

    def test_contains_and_ids(self, index, rng):
        index.add_items([10, 20], random_unit_vectors(rng, 2))
        assert index.contains(10)
        assert not index.contains(30)
        assert index.ids() == {10, 20}

    def test_validate_does_not_insert(self, index, rng):
        index.validate(random_unit_vectors(rng, 1)[0])
        assert index.count() == 0
        with pytest.raises(DimensionMismatch):
            index.validate(np.ones(3) / np.sqrt(3))


class TestSearch:
    def test_self_query_returns_own_id_first(self, populated):
        index, vectors = populated
        for item_id, vector in enumerate(vectors):
            results = index.search_knn(vector, 1)
            assert results[0].item_id == item_id
            assert results[0].score == pytest.approx(1.0, abs=1e-4)

    def test_results_are_best_first(self, populated, rng):
        index, _ = populated
        results = index.search_knn(random_unit_vectors(rng, 1)[0], 20)
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_returns_at_most_count(self, index, rng):
        index.add_items([1, 2, 3], random_unit_vectors(rng, 3))
        results = index.search_knn(random_unit_vectors(rng, 1)[0], 10)
        assert len(results) == 3
        assert {r.item_id for r in results} == {1, 2, 3}

    def test_similarity_is_inner_product(self, index):
        e0 = np.zeros(DIM)
        e0[0] = 1.0
        e1 = np.zeros(DIM)
        e1[1] = 1.0
        index.add_items([1, 2], [e0, e1])

        results = index.search_knn(e0, 2)
        assert [r.item_id for r in results] == [1, 2]
        assert results[0].score == pytest.approx(1.0)
        assert results[1].score == pytest.approx(0.0, abs=1e-6)

    def test_rejects_non_positive_k(self, populated, rng):
        index, _ = populated
        with pytest.raises(ValueError):
            index.search_knn(random_unit_vectors(rng, 1)[0], 0)

    def test_query_is_validated(self, populated):
        index, _ = populated
        with pytest.raises(NotNormalized):
            index.search_knn(np.ones(DIM), 5)

    def test_concurrent_searches_and_adds(self, populated, rng):
        index, vectors = populated
        extra = random_unit_vectors(rng, 50)

        def search(i):
            return index.search_knn(vectors[i % len(vectors)], 5)

        def add(i):
            index.add_item(1000 + i, extra[i])

        with ThreadPoolExecutor(max_workers=8) as pool:
            searches = [pool.submit(search, i) for i in range(200)]
            adds = [pool.submit(add, i) for i in range(50)]
            for future in searches + adds:
                future.result()

        assert index.count() == 250


class TestPersistence:
    def test_save_load_round_trip(self, populated, rng, tmp_path):
        index, _ = populated
        path = tmp_path / "nested" / "index.faiss"
        queries = random_unit_vectors(rng, 10)
        before = [{r.item_id for r in index.search_knn(q, 10)} for q in queries]

        index.save(path)

        restored = VectorIndex(IndexConfig(dim=DIM, ef_search=256))
        status = restored.load(path, DIM, capacity=1000)

        assert status == LoadStatus.LOADED
        assert restored.count() == index.count()
        assert restored.ids() == index.ids()
        after = [{r.item_id for r in restored.search_knn(q, 10)} for q in queries]
        assert after == before

    def test_save_leaves_no_temp_file(self, populated, tmp_path):
        index, _ = populated
        path = tmp_path / "index.faiss"
        index.save(path)
        assert path.exists()
        assert not (tmp_path / "index.faiss.tmp").exists()

    def test_load_missing_file_creates_new(self, tmp_path):
        idx = VectorIndex(IndexConfig(dim=DIM))
        status = idx.load(tmp_path / "absent.faiss", DIM, capacity=10)
        assert status == LoadStatus.CREATED_NEW
        assert idx.count() == 0

    def test_load_wrong_dimension_is_corrupt(self, populated, tmp_path):
        index, _ = populated
        path = tmp_path / "index.faiss"
        index.save(path)

        with pytest.raises(CorruptIndex):
            VectorIndex(IndexConfig(dim=DIM * 2)).load(path, DIM * 2, capacity=1000)

    def test_load_garbage_is_corrupt(self, tmp_path):
        path = tmp_path / "garbage.faiss"
        path.write_bytes(b"not an index at all")
        with pytest.raises(CorruptIndex):
            VectorIndex(IndexConfig(dim=DIM)).load(path, DIM, capacity=10)

    def test_load_raises_capacity_to_persisted_count(self, populated, tmp_path):
        index, _ = populated
        path = tmp_path / "index.faiss"
        index.save(path)

        restored = VectorIndex(IndexConfig(dim=DIM))
        restored.load(path, DIM, capacity=5)
        assert restored.capacity == 200

    def test_save_uninitialized_fails(self, tmp_path):
        with pytest.raises(NotInitialized):
            VectorIndex(IndexConfig(dim=DIM)).save(tmp_path / "index.faiss")


def test_destroy_releases_index(populated):
    index, vectors = populated
    index.destroy()
    assert index.stats() == {"status": "not_initialized"}
    with pytest.raises(NotInitialized):
        index.search_knn(vectors[0], 1)


def test_stats(populated):
    index, _ = populated
    stats = index.stats()
    assert stats["status"] == "initialized"
    assert stats["num_vectors"] == 200
    assert stats["dimension"] == DIM
    assert stats["metric"] == "inner_product"
    assert stats["ef_search"] == 256
