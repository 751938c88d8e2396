"""Process-wide cache of immutable rule sets."""

from __future__ import annotations

import logging
import threading
from collections.abc import Awaitable, Callable
from datetime import date

from statutory_engine.calculators.types import RuleSet

logger = logging.getLogger(__name__)


class RuleSetCache:
    """Caches one RuleSet per (country, date).

    RuleSet instances are frozen, so a cached value can be read by any
    number of concurrent calculations without locking. The lock only
    guards the dictionary itself.
    """

    def __init__(self) -> None:
        self._rule_sets: dict[tuple[str, date], RuleSet] = {}
        self._lock = threading.Lock()

    def get(self, country_code: str, effective_date: date) -> RuleSet | None:
        with self._lock:
            return self._rule_sets.get((country_code, effective_date))

    def put(self, rule_set: RuleSet) -> RuleSet:
        """Store a rule set; an existing entry for the same key wins."""
        key = (rule_set.country_code, rule_set.effective_date)
        with self._lock:
            return self._rule_sets.setdefault(key, rule_set)

    async def get_or_load(
        self,
        country_code: str,
        effective_date: date,
        loader: Callable[[str, date], Awaitable[RuleSet]],
    ) -> RuleSet:
        """Return the cached rule set, loading it on a miss."""
        cached = self.get(country_code, effective_date)
        if cached is not None:
            return cached

        logger.debug("Rule set cache miss for %s on %s", country_code, effective_date)
        return self.put(await loader(country_code, effective_date))

    def invalidate(self, country_code: str | None = None) -> None:
        """Drop cached rule sets for one country, or all of them."""
        with self._lock:
            if country_code is None:
                self._rule_sets.clear()
                return
            for key in [k for k in self._rule_sets if k[0] == country_code]:
                del self._rule_sets[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rule_sets)
