"""
Tests for the BM25 keyword index with fuzzy term expansion.
"""

import pytest

from recsys.ml.config import KeywordConfig
from recsys.ml.retrieval import KeywordIndex, tokenize


@pytest.fixture
def keyword_index():
    index = KeywordIndex(KeywordConfig())
    index.add_items(
        [
            (1, "Wireless Headphones with noise cancelling", "Electronics"),
            (2, "Mystery Novel", "Books"),
            (3, "Table Lamp", "Home"),
            (4, "Wireless Charger", "Electronics"),
        ]
    )
    return index


def test_tokenize():
    assert tokenize("Wireless  Headphones, 2nd-gen!") == ["wireless", "headphones", "2nd", "gen"]
    assert tokenize("") == []
    assert tokenize(None) == []


def test_exact_match(keyword_index):
    results = keyword_index.search("headphones", k=10)
    assert [r.item_id for r in results] == [1]
    assert results[0].score > 0


def test_multiple_matches_are_best_first(keyword_index):
    results = keyword_index.search("wireless headphones", k=10)
    ids = [r.item_id for r in results]

    assert ids[0] == 1
    assert set(ids) == {1, 4}
    assert results[0].score > results[1].score


def test_fuzzy_match_recovers_typo(keyword_index):
    results = keyword_index.search("headphnes", k=10)
    assert [r.item_id for r in results] == [1]


def test_fuzzy_disabled(keyword_index):
    assert keyword_index.search("headphnes", k=10, fuzzy=False) == []


def test_short_tokens_are_not_expanded(keyword_index):
    # "lmp" is too short to be fuzzily expanded to "lamp"
    assert keyword_index.search("lmp", k=10) == []


def test_category_is_searchable(keyword_index):
    results = keyword_index.search("electronics", k=10)
    assert {r.item_id for r in results} == {1, 4}


def test_no_match_returns_empty(keyword_index):
    assert keyword_index.search("submarine", k=10) == []
    assert keyword_index.search("   ", k=10) == []


def test_respects_k(keyword_index):
    assert len(keyword_index.search("electronics", k=1)) == 1


def test_rejects_non_positive_k(keyword_index):
    with pytest.raises(ValueError):
        keyword_index.search("lamp", k=0)


def test_equal_scores_break_ties_by_lower_id():
    index = KeywordIndex(KeywordConfig())
    index.add_item(5, "Red Mug", "Home")
    index.add_item(2, "Red Mug", "Home")
    index.add_item(9, "Blue Kettle", "Home")

    results = index.search("mug", k=10)
    assert [r.item_id for r in results] == [2, 5]
    assert results[0].score == pytest.approx(results[1].score)


def test_re_adding_replaces_document(keyword_index):
    keyword_index.add_item(3, "Floor Lamp", "Home")
    keyword_index.add_item(2, "Cookbook", "Books")

    assert keyword_index.count() == 4
    assert keyword_index.search("mystery", k=10) == []
    assert [r.item_id for r in keyword_index.search("cookbook", k=10)] == [2]
    assert [r.item_id for r in keyword_index.search("floor", k=10)] == [3]


def test_empty_index():
    index = KeywordIndex(KeywordConfig())
    assert index.count() == 0
    assert index.search("anything", k=5) == []


def test_document_without_text_is_indexed():
    index = KeywordIndex(KeywordConfig())
    index.add_item(1, None, None)
    index.add_item(2, "Desk Lamp", "Home")

    assert index.ids() == {1, 2}
    assert [r.item_id for r in index.search("lamp", k=5)] == [2]


def test_clear(keyword_index):
    keyword_index.clear()
    assert keyword_index.count() == 0
    assert keyword_index.ids() == set()
    assert keyword_index.search("lamp", k=5) == []


def _add_before_next(index, monkeypatch, mode, item):
    """Make the next acquisition of the index lock in `mode` first index `item`."""
    acquire = getattr(index._lock, mode)
    pending = [item]

    def acquire_after_write():
        if pending:
            index.add_item(*pending.pop())
        return acquire()

    monkeypatch.setattr(index._lock, mode, acquire_after_write)


def test_write_before_scoring_is_seen_by_search(keyword_index, monkeypatch):
    # Model is fresh, then a document lands just before the search takes its read lock
    keyword_index.search("lamp", k=5)
    _add_before_next(keyword_index, monkeypatch, "read", (5, "green lamp", "Home"))

    results = keyword_index.search("lamp", k=5)

    assert sorted(r.item_id for r in results) == [3, 5]


def test_write_between_staleness_check_and_refit(keyword_index, monkeypatch):
    keyword_index.add_item(6, "desk lamp", "Home")
    _add_before_next(keyword_index, monkeypatch, "write", (5, "green lamp", "Home"))

    results = keyword_index.search("lamp", k=5)

    assert sorted(r.item_id for r in results) == [3, 5, 6]
