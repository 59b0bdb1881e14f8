"""Fan-out/fan-in recommendation engine built on the TMDb signals."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Iterable, Sequence

from app.core.config import Settings, get_settings
from app.core.errors import ConfigurationMissing, InvalidInput
from app.services.models import Movie
from app.services.scoring import ScoringBoard
from app.services.tmdb import TMDbClient


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalWeights:
    director: int = 5
    similar: int = 4
    genre: int = 3
    actor: int = 2

    @classmethod
    def from_settings(cls, settings: Settings) -> SignalWeights:
        return cls(
            director=settings.weight_director,
            similar=settings.weight_similar,
            genre=settings.weight_genre,
            actor=settings.weight_actor,
        )


class _Candidates:
    """First-seen representative per movie id, shared by one request's branches."""

    def __init__(self) -> None:
        self._by_id: dict[int, Movie] = {}

    def add(self, movie: Movie) -> None:
        self._by_id.setdefault(movie.id, movie)

    def values(self) -> list[Movie]:
        return list(self._by_id.values())


class RecommendationOrchestrator:
    """Rank movies that share signals with a user's selection.

    Every selected movie fans out into one branch per signal instance
    (similar titles, each genre, each capped cast member, each capped
    director). All branches run concurrently and are joined before ranking.
    A branch that fails or misses the request deadline contributes nothing;
    the others still count.
    """

    def __init__(
        self,
        client: TMDbClient,
        *,
        weights: SignalWeights | None = None,
        signal_limit: int | None = None,
        max_results: int | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.client = client
        self.weights = weights or SignalWeights.from_settings(settings)
        self.signal_limit = settings.signal_limit if signal_limit is None else signal_limit
        self.max_results = settings.max_results if max_results is None else max_results
        self.timeout = settings.recommend_timeout_seconds if timeout is None else timeout

    async def recommend(
        self,
        selected_ids: Sequence[int],
        *,
        platform: str | None = None,
    ) -> list[Movie]:
        """Return at most ``max_results`` movies, best score first.

        Ties are broken by ascending id. Selected ids never appear in the
        result. An empty list is a normal outcome.
        """

        if not selected_ids:
            raise InvalidInput("At least one selected movie is required.")
        selection = list(dict.fromkeys(selected_ids))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        board = ScoringBoard()
        candidates = _Candidates()

        await asyncio.gather(
            *(self._expand_selected(movie_id, board, candidates, deadline) for movie_id in selection)
        )

        excluded = set(selection)
        survivors = [movie for movie in candidates.values() if movie.id not in excluded]
        ranked = sorted(survivors, key=lambda movie: (-board.weight_of(movie.id), movie.id))
        logger.info(
            "Recommendation for %s: %d candidates scored, %d after filtering",
            selection,
            len(board),
            len(ranked),
        )

        if platform and self.max_results > 0:
            return await self._filter_by_platform(ranked, platform, deadline)
        return ranked[: self.max_results]

    async def _expand_selected(
        self,
        movie_id: int,
        board: ScoringBoard,
        candidates: _Candidates,
        deadline: float,
    ) -> None:
        movie = await self._guarded(
            f"details:{movie_id}", self.client.get_movie_details(movie_id), deadline
        )
        if movie is None:
            logger.info("Selected movie %s not found, skipping its signals", movie_id)
            return

        limit = self.signal_limit
        branches: list[tuple[str, int, Awaitable[list[Movie] | None]]] = [
            (f"similar:{movie.id}", self.weights.similar, self.client.get_similar(movie.id, limit)),
        ]
        branches.extend(
            (f"genre:{genre}", self.weights.genre, self.client.discover_by_genre(genre, limit))
            for genre in movie.genres
        )
        branches.extend(
            (f"actor:{person.id}", self.weights.actor, self.client.discover_by_cast(person.id, limit))
            for person in movie.cast
        )
        branches.extend(
            (
                f"director:{person.id}",
                self.weights.director,
                self.client.get_director_credits(person.id, limit),
            )
            for person in movie.directors
        )

        await asyncio.gather(
            *(
                self._run_signal(label, weight, fetch, board, candidates, deadline)
                for label, weight, fetch in branches
            )
        )

    async def _run_signal(
        self,
        label: str,
        weight: int,
        fetch: Awaitable[list[Movie] | None],
        board: ScoringBoard,
        candidates: _Candidates,
        deadline: float,
    ) -> None:
        movies = await self._guarded(label, fetch, deadline)
        for movie in movies or []:
            board.add_weight(movie.id, weight)
            candidates.add(movie)

    async def _guarded(self, label: str, fetch: Awaitable, deadline: float):
        """Await ``fetch`` until ``deadline``; any failure yields ``None``."""

        remaining = deadline - asyncio.get_running_loop().time()
        try:
            return await asyncio.wait_for(fetch, timeout=max(remaining, 0))
        except asyncio.TimeoutError:
            logger.warning("Signal branch %s missed the recommendation deadline", label)
        except ConfigurationMissing:
            raise
        except Exception:
            logger.exception("Signal branch %s failed", label)
        return None

    async def _filter_by_platform(
        self, ranked: list[Movie], platform: str, deadline: float
    ) -> list[Movie]:
        wanted = platform.strip().casefold()
        loop = asyncio.get_running_loop()
        kept: list[Movie] = []
        for window in _windows(ranked, self.max_results):
            if loop.time() >= deadline:
                logger.warning("Platform filter stopped at the recommendation deadline")
                break
            providers = await asyncio.gather(
                *(
                    self._guarded(
                        f"providers:{movie.id}",
                        self.client.get_watch_providers(movie.id),
                        deadline,
                    )
                    for movie in window
                )
            )
            for movie, names in zip(window, providers):
                # Unknown availability counts as not offered.
                if names and wanted in {name.casefold() for name in names}:
                    kept.append(movie)
                    if len(kept) == self.max_results:
                        return kept
        return kept


def _windows(movies: list[Movie], size: int) -> Iterable[list[Movie]]:
    for start in range(0, len(movies), size):
        yield movies[start : start + size]
