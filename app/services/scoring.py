"""Per-request score accumulator for recommendation candidates."""

from __future__ import annotations

import threading
from collections import defaultdict


class ScoringBoard:
    """Maps movie id to the sum of the signal weights it has received.

    Increments are additive, so the final score does not depend on the
    order in which concurrent branches report.
    """

    def __init__(self) -> None:
        self._weights: defaultdict[int, int] = defaultdict(int)
        self._lock = threading.Lock()

    def add_weight(self, movie_id: int, weight: int) -> None:
        with self._lock:
            self._weights[movie_id] += weight

    def weight_of(self, movie_id: int) -> int:
        with self._lock:
            return self._weights.get(movie_id, 0)

    def snapshot(self) -> dict[int, int]:
        with self._lock:
            return dict(self._weights)

    def __contains__(self, movie_id: object) -> bool:
        with self._lock:
            return movie_id in self._weights

    def __len__(self) -> int:
        with self._lock:
            return len(self._weights)
