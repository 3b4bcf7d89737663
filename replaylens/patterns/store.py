"""Bounded table of step-sequence patterns shared across workflows."""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from replaylens.core.types import Pattern, Step, now_ms
from replaylens.logging import get_logger

log = get_logger(__name__)


class PatternStore:
    """
    Signature → Pattern map with a hard capacity.

    When full, inserting a new signature evicts the entry with the lowest
    frequency, breaking ties by the oldest ``last_seen``.  Existing
    signatures are always updated in place.
    """

    def __init__(self, max_patterns: int = 1000) -> None:
        self.max_patterns = max_patterns
        self._patterns: dict[str, Pattern] = {}

    def upsert(self, signature: str, example: Sequence[Step], seen_at: int | None = None) -> Pattern:
        ts = seen_at if seen_at is not None else now_ms()
        pattern = self._patterns.get(signature)
        if pattern is not None:
            pattern.frequency += 1
            pattern.last_seen = ts
            return pattern

        if len(self._patterns) >= self.max_patterns:
            self._evict()
        pattern = Pattern(
            signature=signature,
            length=len(example),
            example=tuple(example),
            first_seen=ts,
            last_seen=ts,
        )
        self._patterns[signature] = pattern
        return pattern

    def _evict(self) -> None:
        victim = min(self._patterns.values(), key=lambda p: (p.frequency, p.last_seen))
        del self._patterns[victim.signature]
        log.debug("pattern_evicted", signature=victim.signature, frequency=victim.frequency)

    def get(self, signature: str) -> Pattern | None:
        return self._patterns.get(signature)

    def frequency(self, signature: str) -> int:
        pattern = self._patterns.get(signature)
        return pattern.frequency if pattern else 0

    def most_frequent(self, limit: int = 10) -> list[Pattern]:
        return sorted(self._patterns.values(), key=lambda p: (-p.frequency, -p.last_seen))[:limit]

    def clear(self) -> None:
        self._patterns.clear()

    def __len__(self) -> int:
        return len(self._patterns)

    def __iter__(self) -> Iterator[Pattern]:
        return iter(list(self._patterns.values()))

    def __contains__(self, signature: object) -> bool:
        return signature in self._patterns

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_list(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self._patterns.values()]

    def load(self, records: Sequence[dict[str, Any]]) -> int:
        """Replace the table with *records*; malformed entries are skipped."""
        self._patterns.clear()
        for record in records:
            try:
                pattern = Pattern.from_dict(record)
            except (KeyError, TypeError, ValueError) as exc:
                log.warning("pattern_record_skipped", error=str(exc))
                continue
            if len(self._patterns) >= self.max_patterns:
                self._evict()
            self._patterns[pattern.signature] = pattern
        return len(self._patterns)
