from __future__ import annotations

import threading
from datetime import timezone, tzinfo
from typing import Iterable, Mapping

from market_stream.data.entity import Entity, EntitySnapshot
from market_stream.data.series import PriceSeries, Sample
from market_stream.utils.config import DeltaPolicy
from market_stream.utils.logger import get_logger, log_data_integrity, log_debug, log_info


class EntityStore:
    """
    Key -> Entity collection with a single writer at a time.

    Writes (load / apply / apply_batch) and snapshot reads share one RLock,
    so a reader on another thread never sees a PriceSeries mid-append.
    Readers only ever receive copies: EntitySnapshot, PriceSeries.copy(),
    or plain Sample lists.
    """

    def __init__(
        self,
        capacity: int = 100,
        policy: DeltaPolicy | None = None,
        *,
        tz: tzinfo = timezone.utc,
    ):
        if int(capacity) <= 0:
            raise ValueError(f"EntityStore capacity must be > 0, got {capacity}")
        self.capacity = int(capacity)
        self.policy = policy or DeltaPolicy()
        self.tz = tz
        self._entities: dict[str, Entity] = {}
        self._lock = threading.RLock()
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def load(self, entities: Iterable[Entity]) -> None:
        """Replace the collection (initial snapshot / restart)."""
        with self._lock:
            self._entities = {e.key: self._adopt(e) for e in entities}
            count = len(self._entities)
        log_info(self._logger, "EntityStore loaded", entities=count)

    def add(self, entity: Entity) -> None:
        with self._lock:
            if entity.key in self._entities:
                raise ValueError(f"Entity already tracked: {entity.key}")
            self._entities[entity.key] = self._adopt(entity)

    def _adopt(self, entity: Entity) -> Entity:
        """Rebuild the entity's window at the store capacity, keeping the newest samples."""
        if entity.series.capacity != self.capacity:
            log_debug(
                self._logger,
                "EntityStore resized series",
                key=entity.key,
                from_capacity=entity.series.capacity,
                to_capacity=self.capacity,
            )
            entity.series = PriceSeries.from_samples(entity.series.all(), self.capacity, tz=entity.series.tz)
        return entity

    def apply(self, key: str, sample: Sample) -> bool:
        """Apply one sample; unknown keys are logged and skipped."""
        with self._lock:
            entity = self._entities.get(key)
            if entity is None:
                log_data_integrity(self._logger, "EntityStore unknown key", key=key, reason="not tracked")
                return False
            entity.apply(sample, self.policy)
            return True

    def apply_batch(self, batch: Mapping[str, Sample]) -> set[str]:
        """Apply a coalesced batch; each sample runs to completion before the next."""
        updated: set[str] = set()
        for key, sample in batch.items():
            if self.apply(key, sample):
                updated.add(key)
        log_debug(self._logger, "EntityStore batch applied", batch_size=len(batch), updated=len(updated))
        return updated

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entity(self, key: str) -> EntitySnapshot | None:
        with self._lock:
            entity = self._entities.get(key)
            return entity.snapshot() if entity is not None else None

    def entities(self) -> list[EntitySnapshot]:
        with self._lock:
            return [e.snapshot() for e in self._entities.values()]

    def series(self, key: str) -> PriceSeries | None:
        with self._lock:
            entity = self._entities.get(key)
            return entity.series.copy() if entity is not None else None

    def history(self, key: str) -> list[Sample]:
        with self._lock:
            entity = self._entities.get(key)
            return entity.series.all() if entity is not None else []

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entities)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entities

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)
