"""
Persistent cache of successful locator strategies.

Entries are keyed by a fingerprint of the element description. The whole
cache is loaded at construction and rewritten to a JSON file after every
mutation; write failures are logged and never raised.
"""

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.healing_utils import sanitize
from ..core.models.healing_models import ElementDescription, LocatorStrategy, StrategyCacheEntry

logger = logging.getLogger(__name__)

UNKNOWN_FINGERPRINT = "unknown"


def fingerprint(description: Union[ElementDescription, str, Dict[str, Any], None]) -> str:
    """Compute the cache key for a description.

    A bare string, or a description holding only text, is its own sanitized
    value. Otherwise each present field is emitted as ``field:value`` and
    joined with ``_``. Sanitizing strips ``:``, so tagged and untagged keys
    never collide. A value made only of punctuation or symbols (``"+"``,
    ``"×"``) keeps a distinct key through a short hash of its raw text.
    """
    desc = ElementDescription.coerce(description)
    present = {name: _field_key(name, value) for name, value in desc.present_fields().items()}

    if not present:
        return UNKNOWN_FINGERPRINT
    if list(present) == ["text"]:
        return present["text"]
    return "_".join(f"{name}:{value}" for name, value in present.items())


def _field_key(name: str, value: str) -> str:
    slug = sanitize(value)
    if slug:
        return slug
    return f"{name}#{hashlib.sha1(value.strip().encode('utf-8')).hexdigest()[:12]}"


class StrategyCache:
    """Keyed store of strategies that have resolved elements before."""

    def __init__(
        self,
        cache_path: Union[str, Path] = "build/locator-cache.json",
        reinforcement_increment: int = 5,
        max_priority: int = 100,
        decay_step: int = 5
    ):
        """Initialize the cache and load any persisted entries.

        Args:
            cache_path: JSON file backing the cache
            reinforcement_increment: Priority added on each cache-hit success
            max_priority: Ceiling for reinforced priorities
            decay_step: Priority removed from cached strategies that failed
                ahead of the winner
        """
        self.cache_path = Path(cache_path)
        self.reinforcement_increment = reinforcement_increment
        self.max_priority = max_priority
        self.decay_step = decay_step
        self._entries: Dict[str, StrategyCacheEntry] = {}
        self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[List[LocatorStrategy]]:
        """Return cached strategies (highest priority first) or None on a miss."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return list(entry.strategies)

    def get_entry(self, key: str) -> Optional[StrategyCacheEntry]:
        return self._entries.get(key)

    def record_success(
        self,
        key: str,
        strategy: LocatorStrategy,
        failed_ahead: Optional[Iterable[LocatorStrategy]] = None
    ) -> None:
        """Reinforce a strategy that just matched from the cache.

        No-op when the fingerprint is absent.

        Args:
            key: Fingerprint of the resolved description
            strategy: Strategy that matched
            failed_ahead: Cached strategies tried before it in the same cycle
        """
        entry = self._entries.get(key)
        if entry is None:
            return

        cached = entry.find(strategy.selector)
        if cached is not None:
            cached.priority = min(self.max_priority, cached.priority + self.reinforcement_increment)

        for failed in failed_ahead or ():
            stale = entry.find(failed.selector)
            if stale is not None and stale is not cached:
                stale.priority = max(0, stale.priority - self.decay_step)

        entry.sort_strategies()
        entry.success_count += 1
        entry.last_used = datetime.now()
        self._save()

    def record_failure(self, key: str) -> None:
        """Count a cycle in which no cached strategy matched."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.failure_count += 1
        self._save()

    def put(self, key: str, strategies: List[LocatorStrategy], winner: Optional[LocatorStrategy] = None) -> None:
        """Store the strategies of a first successful generated cycle.

        The winner is stored first, followed by the alternatives ranked below
        it; strategies ranked above it already failed and are not kept.
        Counters of an existing entry carry over when it is replaced.

        Args:
            key: Fingerprint of the resolved description
            strategies: Generated strategies in the order they were tried
            winner: Strategy that matched; defaults to the first one
        """
        if not strategies:
            return

        winner = winner or strategies[0]
        alternatives = [
            s for s in strategies
            if s.selector != winner.selector and s.priority < winner.priority
        ]
        stored = [self._copy(winner)] + [self._copy(s) for s in alternatives]

        previous = self._entries.get(key)
        entry = StrategyCacheEntry(
            strategies=stored,
            success_count=(previous.success_count if previous else 0) + 1,
            failure_count=previous.failure_count if previous else 0,
            last_used=datetime.now()
        )
        entry.sort_strategies()
        self._entries[key] = entry
        self._save()

    def clear(self) -> None:
        """Empty the cache in memory and on disk."""
        self._entries = {}
        self._save()

    def get_stats(self) -> Dict[str, Any]:
        """Report cached entries, recorded successes and average success rate."""
        total_strategies = sum(len(entry.strategies) for entry in self._entries.values())
        total_success = sum(entry.success_count for entry in self._entries.values())

        return {
            "total_cached": len(self._entries),
            "successful_strategies": total_success,
            "average_success_rate": (total_success / total_strategies) * 100 if total_strategies else 0
        }

    @staticmethod
    def _copy(strategy: LocatorStrategy) -> LocatorStrategy:
        return LocatorStrategy.from_dict(strategy.to_dict())

    def _load(self) -> None:
        if not self.cache_path.exists():
            return

        try:
            with open(self.cache_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self._entries = {key: StrategyCacheEntry.from_dict(value) for key, value in data.items()}
            logger.debug(f"Loaded locator cache with {len(self._entries)} entries")
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Could not load locator cache from {self.cache_path}: {e}")
            self._entries = {}

    def _save(self) -> None:
        """Rewrite the whole cache file atomically."""
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            data = {key: entry.to_dict() for key, entry in self._entries.items()}

            fd, tmp_path = tempfile.mkstemp(
                dir=self.cache_path.parent, prefix=".locator-cache-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.cache_path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.warning(f"Could not save locator cache to {self.cache_path}: {e}")
