"""
Hydrator
Startup/shutdown lifecycle: reconciles the search indexes against the metadata
store before serving, and persists the vector index after serving stops.

States:
    Cold -> Loading -> Verifying -> Consistent | Rebuilding -> Ready
    (any) -> ShuttingDown -> Flushed

The metadata store is authoritative. Drift between it and the persisted vector
index is always repaired by rebuilding, never treated as fatal.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from ..config import MLConfig, get_ml_config
from ..errors import (
    CapacityExceeded,
    CorruptIndex,
    DimensionMismatch,
    DuplicateItem,
    HydrationError,
    MetadataStoreError,
    NotInitialized,
    NotNormalized,
    NotReady,
    PersistenceFailure,
)
from ..retrieval.keyword_index import KeywordIndex
from ..retrieval.vector_index import LoadStatus, VectorIndex

logger = logging.getLogger(__name__)


class HydratorState(str, Enum):
    """Lifecycle states."""

    COLD = "cold"
    LOADING = "loading"
    VERIFYING = "verifying"
    CONSISTENT = "consistent"
    REBUILDING = "rebuilding"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    FLUSHED = "flushed"


_TRANSITIONS: Dict[HydratorState, Set[HydratorState]] = {
    HydratorState.COLD: {HydratorState.LOADING},
    HydratorState.LOADING: {HydratorState.VERIFYING},
    HydratorState.VERIFYING: {HydratorState.CONSISTENT, HydratorState.REBUILDING},
    HydratorState.CONSISTENT: {HydratorState.READY},
    HydratorState.REBUILDING: {HydratorState.READY},
    HydratorState.READY: set(),
    HydratorState.SHUTTING_DOWN: {HydratorState.FLUSHED},
    HydratorState.FLUSHED: set(),
}


@dataclass
class HydrationReport:
    """Outcome of one startup reconciliation."""

    load_status: Optional[str] = None  # LoadStatus value, or "corrupt"
    rebuilt: bool = False
    reason: Optional[str] = None  # Why a rebuild was needed
    item_count: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "load_status": self.load_status,
            "rebuilt": self.rebuilt,
            "reason": self.reason,
            "item_count": self.item_count,
            "duration_ms": float(self.duration_ms),
        }


class Hydrator:
    """
    Lifecycle controller and readiness gate.

    Requests enter through acquire(), which admits them only in the Ready state
    and counts them while in flight so that shutdown can drain before saving.
    """

    def __init__(
        self,
        vector_index: VectorIndex,
        store,
        keyword_index: Optional[KeywordIndex] = None,
        index_path: Optional[Union[str, Path]] = None,
        config: Optional[MLConfig] = None,
    ):
        """
        Initialize hydrator.

        Args:
            vector_index: Index to load, verify and persist
            store: Metadata store (source of truth)
            keyword_index: Keyword index, rebuilt from the store on every start
            index_path: Persisted index file (default: config.index.index_path)
            config: ML configuration
        """
        self.config = config or get_ml_config()
        self.vector_index = vector_index
        self.keyword_index = keyword_index
        self.store = store
        self.index_path = Path(index_path or self.config.index.index_path)

        self._cond = threading.Condition()
        self._state = HydratorState.COLD
        self._history: List[Tuple[HydratorState, float]] = [(HydratorState.COLD, time.time())]
        self._in_flight = 0

        self.report: Optional[HydrationReport] = None
        self._shutdown_ok: Optional[bool] = None

    # ========== State ==========

    @property
    def state(self) -> HydratorState:
        with self._cond:
            return self._state

    @property
    def history(self) -> List[HydratorState]:
        """States visited, in order."""
        with self._cond:
            return [state for state, _ in self._history]

    @property
    def is_ready(self) -> bool:
        return self.state == HydratorState.READY

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def _transition(self, new_state: HydratorState) -> None:
        with self._cond:
            old_state = self._state
            if new_state != HydratorState.SHUTTING_DOWN and new_state not in _TRANSITIONS[old_state]:
                raise HydrationError(
                    f"Illegal lifecycle transition {old_state.value} -> {new_state.value}"
                )
            self._state = new_state
            self._history.append((new_state, time.time()))
            self._cond.notify_all()

        logger.info(
            f"Lifecycle: {old_state.value} -> {new_state.value}",
            extra={"from_state": old_state.value, "to_state": new_state.value},
        )

    # ========== Readiness gate ==========

    @contextmanager
    def acquire(self) -> Iterator[None]:
        """
        Admit one request.

        Raises:
            NotReady: Unless the lifecycle is in the Ready state
        """
        with self._cond:
            if self._state != HydratorState.READY:
                raise NotReady(self._state.value)
            self._in_flight += 1
        try:
            yield
        finally:
            with self._cond:
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._cond.notify_all()

    def _drain(self, timeout: float) -> bool:
        """Wait for in-flight requests to finish. False if the timeout elapsed first."""
        with self._cond:
            return self._cond.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    # ========== Startup ==========

    def start(self) -> HydrationReport:
        """
        Load, verify and if necessary rebuild the indexes, then open the gate.

        Returns:
            HydrationReport describing what happened

        Raises:
            HydrationError: If the indexes cannot be made consistent
            MetadataStoreError: If the store cannot be read at all
        """
        if self.state != HydratorState.COLD:
            raise HydrationError(f"Hydrator already started (state={self.state.value})")

        start_time = time.time()
        report = HydrationReport()
        index_config = self.config.index

        # Loading
        self._transition(HydratorState.LOADING)
        try:
            status = self.vector_index.load(self.index_path, index_config.dim, index_config.capacity)
            report.load_status = status.value
            if status == LoadStatus.CREATED_NEW:
                report.reason = "no persisted index"
        except CorruptIndex as e:
            logger.warning(f"Persisted index unusable, will rebuild: {e}")
            report.load_status = "corrupt"
            report.reason = f"corrupt index: {e}"

        # Verifying
        self._transition(HydratorState.VERIFYING)
        store_ids = self.store.item_ids()
        report.item_count = len(store_ids)

        if report.reason is None:
            report.reason = self._detect_drift(store_ids)

        if report.reason is None:
            self._transition(HydratorState.CONSISTENT)
            logger.info(f"Vector index consistent with metadata store ({len(store_ids)} items)")
        else:
            self._transition(HydratorState.REBUILDING)
            logger.warning(f"Rebuilding vector index: {report.reason}")
            report.rebuilt = True

        self._populate(store_ids, rebuild_vectors=report.rebuilt)

        report.duration_ms = (time.time() - start_time) * 1000
        self.report = report

        # Ready
        self._transition(HydratorState.READY)
        logger.info(
            f"Hydration complete in {report.duration_ms:.0f}ms "
            f"(items={report.item_count}, rebuilt={report.rebuilt})"
        )
        return report

    def _detect_drift(self, store_ids: Set[int]) -> Optional[str]:
        """Reason the loaded index disagrees with the store, or None."""
        index_count = self.vector_index.count()
        if index_count != len(store_ids):
            return f"count mismatch (index={index_count}, store={len(store_ids)})"

        index_ids = self.vector_index.ids()
        if index_ids != store_ids:
            missing = len(store_ids - index_ids)
            stale = len(index_ids - store_ids)
            return f"id mismatch ({missing} missing, {stale} stale)"

        return None

    def _populate(self, store_ids: Set[int], rebuild_vectors: bool) -> None:
        """
        Stream the store into the keyword index, and into a fresh vector index
        when rebuilding.
        """
        index_config = self.config.index

        if rebuild_vectors:
            capacity = index_config.capacity
            if len(store_ids) > capacity:
                logger.warning(
                    f"Store holds {len(store_ids)} items, above configured capacity {capacity}; "
                    f"raising capacity to fit"
                )
                capacity = len(store_ids)
            self.vector_index.init(
                index_config.dim, capacity, index_config.M, index_config.ef_construction
            )

        if self.keyword_index is not None:
            self.keyword_index.clear()

        batch_size = self.config.lifecycle.rebuild_batch_size
        indexed = 0
        try:
            for batch in self.store.iter_items(batch_size=batch_size):
                if rebuild_vectors:
                    self.vector_index.add_items(
                        [item.id for item in batch], [item.embedding for item in batch]
                    )
                if self.keyword_index is not None:
                    self.keyword_index.add_items(
                        (item.id, item.search_text, item.category) for item in batch
                    )
                indexed += len(batch)
                if rebuild_vectors:
                    logger.info(f"Rebuild progress: {indexed}/{len(store_ids)} items")
        except (DimensionMismatch, NotNormalized, DuplicateItem, CapacityExceeded) as e:
            raise HydrationError(f"Metadata store holds an unindexable item: {e}") from e
        except ValidationError as e:
            raise HydrationError(f"Metadata store holds an invalid item record: {e}") from e

        if rebuild_vectors:
            index_ids = self.vector_index.ids()
            if index_ids != store_ids:
                raise HydrationError(
                    f"Rebuilt index holds {len(index_ids)} items, store holds {len(store_ids)}"
                )

    # ========== Shutdown ==========

    def stop(self) -> bool:
        """
        Reject new requests, drain in-flight ones, persist the index and flush the store.

        Returns:
            True if everything was persisted; False if persistence failed (logged).
            The next startup rebuilds from the store in that case.
        """
        with self._cond:
            if self._state in (HydratorState.SHUTTING_DOWN, HydratorState.FLUSHED):
                return bool(self._shutdown_ok)
            was_ready = self._state == HydratorState.READY

        self._transition(HydratorState.SHUTTING_DOWN)

        timeout = self.config.lifecycle.drain_timeout_seconds
        if not self._drain(timeout):
            logger.warning(
                f"Drain timed out after {timeout}s with {self.in_flight} requests in flight"
            )

        ok = True

        if was_ready:
            try:
                self.vector_index.save(self.index_path)
            except (PersistenceFailure, NotInitialized) as e:
                logger.error(f"Failed to persist vector index: {e}")
                ok = False
        else:
            # A partially hydrated index must not replace the last good one
            logger.warning("Shutdown before Ready, skipping index save")

        try:
            self.store.flush()
        except MetadataStoreError as e:
            logger.error(f"Failed to flush metadata store: {e}")
            ok = False

        self._shutdown_ok = ok
        self._transition(HydratorState.FLUSHED)
        return ok

    @property
    def shutdown_ok(self) -> Optional[bool]:
        """Result of stop(), or None if it has not run."""
        return self._shutdown_ok

    def stats(self) -> dict:
        """Lifecycle status for health reporting."""
        return {
            "state": self.state.value,
            "in_flight": self.in_flight,
            "index_path": str(self.index_path),
            "hydration": self.report.to_dict() if self.report else None,
        }
