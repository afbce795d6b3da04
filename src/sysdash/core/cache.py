from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Sequence, Union

from .models import Unit, UnitProperties

log = logging.getLogger(__name__)


class Fetch(Enum):
    """Non-value results of a property lookup."""

    MISS = "miss"  # first request this epoch: caller must fetch
    PENDING = "pending"  # fetch already issued, not answered yet
    UNAVAILABLE = "unavailable"  # fetch failed this epoch


PropertiesLookup = Union[UnitProperties, Fetch]


class EntityCache:
    """Units of the current kind/scope plus lazily fetched per-unit details.

    Every stored value is tagged with the epoch it was fetched in.  Advancing
    the epoch makes all of them absent without touching the dict; stale
    entries are dropped opportunistically on the next store.
    """

    def __init__(self) -> None:
        self.epoch: int = 0
        self.units: list[Unit] = []
        self._properties: dict[str, tuple[int, UnitProperties | Fetch]] = {}
        self._in_flight: dict[str, int] = {}

    def invalidate(self, epoch: int | None = None) -> int:
        """Advance to ``epoch`` (or the next one) and return the new epoch."""
        target = self.epoch + 1 if epoch is None else max(epoch, self.epoch + 1)
        log.debug("cache epoch %d -> %d", self.epoch, target)
        self.epoch = target
        return self.epoch

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def replace_units(self, units: Sequence[Unit]) -> None:
        self.units = list(units)

    def clear_units(self) -> None:
        self.units = []

    @staticmethod
    def merge_file_states(units: Sequence[Unit], table: Mapping[str, str]) -> list[Unit]:
        """Attach file states by unit name; units absent from ``table`` get None."""
        return [u.with_file_state(table.get(u.name)) for u in units]

    def get_properties(self, name: str) -> PropertiesLookup:
        hit = self._properties.get(name)
        if hit is not None and hit[0] == self.epoch:
            return hit[1]
        if self._in_flight.get(name) == self.epoch:
            return Fetch.PENDING
        self._in_flight[name] = self.epoch
        return Fetch.MISS

    def peek_properties(self, name: str) -> PropertiesLookup:
        """Like ``get_properties`` but never marks a fetch as issued."""
        hit = self._properties.get(name)
        if hit is not None and hit[0] == self.epoch:
            return hit[1]
        if self._in_flight.get(name) == self.epoch:
            return Fetch.PENDING
        return Fetch.MISS

    def store_properties(self, name: str, epoch: int, value: UnitProperties | None) -> bool:
        """Record a fetch result; ``None`` records the unavailable sentinel.

        Results for an older epoch are discarded and False is returned.
        """
        if epoch != self.epoch:
            log.debug("dropping properties for %s from stale epoch %d", name, epoch)
            return False
        if self._in_flight.get(name) == epoch:
            del self._in_flight[name]
        self._evict_stale()
        self._properties[name] = (epoch, Fetch.UNAVAILABLE if value is None else value)
        return True

    def _evict_stale(self) -> None:
        stale = [k for k, (ep, _) in self._properties.items() if ep != self.epoch]
        for k in stale:
            del self._properties[k]
        stale = [k for k, ep in self._in_flight.items() if ep != self.epoch]
        for k in stale:
            del self._in_flight[k]
