"""
Keyword Index
Inverted index over item text with BM25 relevance scoring and fuzzy term expansion.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from rank_bm25 import BM25Plus
from rapidfuzz import fuzz, process

from ..config import KeywordConfig, get_ml_config
from ..utils.locking import ReadWriteLock
from .types import RankedCandidate

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase word tokens."""
    if not text:
        return []
    return TOKEN_PATTERN.findall(text.lower())


class KeywordIndex:
    """
    Exact/fuzzy text matcher producing (item_id, score) lists, best-first.

    Documents are the item text plus its category. Only items containing at
    least one (possibly fuzzily expanded) query term are candidates; candidates
    are ranked by BM25+ score with ties broken by lower item id.
    """

    def __init__(self, config: Optional[KeywordConfig] = None):
        """
        Initialize an empty keyword index.

        Args:
            config: Keyword configuration (fuzzy matching thresholds)
        """
        self.config = config or get_ml_config().keyword

        self._doc_ids: List[int] = []  # position -> item_id
        self._positions: Dict[int, int] = {}  # item_id -> position
        self._corpus: List[List[str]] = []
        self._postings: Dict[str, Set[int]] = defaultdict(set)  # term -> positions

        self._bm25: Optional[BM25Plus] = None
        self._dirty = False

        self._lock = ReadWriteLock()

    def add_item(self, item_id: int, text: Optional[str], category: Optional[str] = None) -> None:
        """Index (or re-index) one item."""
        self.add_items([(item_id, text, category)])

    def add_items(self, items: Iterable[Tuple[int, Optional[str], Optional[str]]]) -> int:
        """
        Index a batch of (item_id, text, category) tuples.

        Re-adding an existing id replaces its document.

        Returns:
            Number of documents written
        """
        written = 0
        with self._lock.write():
            for item_id, text, category in items:
                tokens = tokenize(text) + tokenize(category)
                self._put(int(item_id), tokens)
                written += 1
            if written:
                self._dirty = True

        logger.debug(f"Indexed {written} documents for keyword search")
        return written

    def search(self, query: str, k: int, fuzzy: bool = True) -> List[RankedCandidate]:
        """
        Rank items matching the query.

        Args:
            query: Free-text query
            k: Maximum number of results
            fuzzy: Expand unmatched query tokens to similar vocabulary terms

        Returns:
            Up to k candidates ordered by descending relevance
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        query_tokens = tokenize(query)
        if not query_tokens:
            return []

        with self._lock.read():
            stale = self._dirty
            if not stale:
                hits = self._score(query_tokens, fuzzy)

        # A stale model is refit and scored against under one exclusive section
        if stale:
            with self._lock.write():
                if self._dirty:
                    self._refit()
                hits = self._score(query_tokens, fuzzy)

        hits.sort(key=lambda c: (-c.score, c.item_id))
        return hits[:k]

    def count(self) -> int:
        """Number of indexed documents."""
        with self._lock.read():
            return len(self._doc_ids)

    def ids(self) -> Set[int]:
        """Snapshot of indexed item ids."""
        with self._lock.read():
            return set(self._doc_ids)

    def clear(self) -> None:
        """Drop all documents."""
        with self._lock.write():
            self._doc_ids = []
            self._positions = {}
            self._corpus = []
            self._postings = defaultdict(set)
            self._bm25 = None
            self._dirty = False

    # ========== Internals ==========

    def _put(self, item_id: int, tokens: List[str]) -> None:
        """Write one document. Caller holds the write lock."""
        position = self._positions.get(item_id)

        if position is None:
            position = len(self._doc_ids)
            self._doc_ids.append(item_id)
            self._positions[item_id] = position
            self._corpus.append(tokens)
        else:
            for term in set(self._corpus[position]):
                self._postings[term].discard(position)
                if not self._postings[term]:
                    del self._postings[term]
            self._corpus[position] = tokens

        for term in set(tokens):
            self._postings[term].add(position)

    def _refit(self) -> None:
        """Rebuild the BM25 model over the current corpus. Caller holds the write lock."""
        # BM25Plus divides by the average document length, so empty documents
        # get a placeholder token that never matches a query
        corpus = [tokens or ["\x00"] for tokens in self._corpus]
        self._bm25 = BM25Plus(corpus) if corpus else None
        self._dirty = False
        logger.debug(f"Refit keyword scoring model over {len(corpus)} documents")

    def _score(self, query_tokens: List[str], fuzzy: bool) -> List[RankedCandidate]:
        """Score every document matching the query. Caller holds the lock and the model is fresh."""
        if not self._corpus or self._bm25 is None:
            return []

        terms = self._expand_terms(query_tokens, fuzzy)
        if not terms:
            return []

        positions: Set[int] = set()
        for term in terms:
            positions.update(self._postings.get(term, ()))
        if not positions:
            return []

        ordered_positions = sorted(positions)
        scores = self._bm25.get_batch_scores(terms, ordered_positions)
        return [
            RankedCandidate(item_id=self._doc_ids[pos], score=float(score))
            for pos, score in zip(ordered_positions, scores)
        ]

    def _expand_terms(self, query_tokens: List[str], fuzzy: bool) -> List[str]:
        """Map query tokens to vocabulary terms, exact first, then fuzzy."""
        terms: List[str] = []
        vocabulary = None

        for token in query_tokens:
            if token in self._postings:
                terms.append(token)
                continue

            if not fuzzy or len(token) < self.config.fuzzy_min_token_length:
                continue

            if vocabulary is None:
                vocabulary = list(self._postings.keys())

            matches = process.extract(
                token,
                vocabulary,
                scorer=fuzz.ratio,
                limit=self.config.fuzzy_max_expansions,
                score_cutoff=self.config.fuzzy_cutoff,
            )
            terms.extend(match for match, _score, _idx in matches)

        # Preserve order, drop duplicates
        return list(dict.fromkeys(terms))
