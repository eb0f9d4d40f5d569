"""In-memory cache of semantic match verdicts with hit/miss accounting."""
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

from pydantic import BaseModel, ConfigDict


def make_cache_key(patient_term: str, criterion_term: str, match_type: str = "") -> str:
    """Normalize the (patient term, criterion term, match type) triple."""
    return "|".join(
        part.lower().strip() for part in (patient_term, criterion_term, match_type or "")
    )


class CachedVerdict(BaseModel):
    """A successful oracle verdict as stored in the cache."""

    model_config = ConfigDict(frozen=True)

    match: bool
    confidence: float
    reasoning: str


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0


class SemanticMatchCache:
    """
    Key-value store for oracle verdicts.

    Unbounded unless ``max_entries`` is set, in which case the oldest entry is
    dropped first. Writes to an existing key replace it (last writer wins).
    Lookups do not touch the stats; the semantic match client records hits
    and misses itself.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self._entries: Dict[str, CachedVerdict] = {}
        self._max_entries = max_entries
        self.stats = CacheStats()

    def get(self, key: str) -> Optional[CachedVerdict]:
        return self._entries.get(key)

    def set(self, key: str, verdict: CachedVerdict) -> None:
        if key in self._entries:
            del self._entries[key]
        elif self._max_entries is not None and len(self._entries) >= self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = verdict

    def clear(self) -> None:
        """Drop every entry and reset the counters."""
        self._entries.clear()
        self.stats.reset()

    def items(self) -> Iterator[Tuple[str, CachedVerdict]]:
        return iter(list(self._entries.items()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
