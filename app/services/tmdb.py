"""Thin async wrapper around the TMDb API used for search and recommendations."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import asyncio
import logging

import httpx
from pydantic import BaseModel, ValidationError

from app.core.config import get_settings
from app.core.errors import ConfigurationMissing, InvalidInput
from app.services.cache import CacheStore, get_cache
from app.services.models import Movie, Person


logger = logging.getLogger(__name__)

SEARCH_TTL = 30 * 60
MOVIE_TTL = 60 * 60
SIMILAR_TTL = 60 * 60
GENRE_TTL = 30 * 60
ACTOR_TTL = 30 * 60
DIRECTOR_TTL = 60 * 60
PROVIDERS_TTL = 60 * 60

GENRE_IDS: dict[str, int] = {
    "Action": 28,
    "Adventure": 12,
    "Animation": 16,
    "Comedy": 35,
    "Crime": 80,
    "Documentary": 99,
    "Drama": 18,
    "Family": 10751,
    "Fantasy": 14,
    "History": 36,
    "Horror": 27,
    "Music": 10402,
    "Mystery": 9648,
    "Romance": 10749,
    "Science Fiction": 878,
    "TV Movie": 10770,
    "Thriller": 53,
    "War": 10752,
    "Western": 37,
}
DEFAULT_GENRE_ID = GENRE_IDS["Action"]

# Buckets of /watch/providers that count as "available on".
_PROVIDER_BUCKETS = ("flatrate", "free", "ads", "rent", "buy")


def genre_id_for(name: str) -> int:
    """Map a TMDb genre name to its id; unknown names fall back to Action."""

    return GENRE_IDS.get(name, DEFAULT_GENRE_ID)


class TMDbError(Exception):
    """Base exception for TMDb-related failures."""


class TMDbUnavailable(TMDbError):
    """Raised when TMDb cannot be reached or answers with a non-2xx status."""

    def __init__(self, endpoint: str, *, status: int | None = None, reason: str = "") -> None:
        self.endpoint = endpoint
        self.status = status
        self.reason = reason
        super().__init__(f"{endpoint} -> {status if status is not None else reason}")


class _GenrePayload(BaseModel):
    name: str | None = None


class _PersonPayload(BaseModel):
    id: int
    name: str | None = None


class _CrewPayload(_PersonPayload):
    job: str | None = None


class _CreditsPayload(BaseModel):
    cast: list[_PersonPayload] | None = None
    crew: list[_CrewPayload] | None = None


class _MoviePayload(BaseModel):
    id: int
    title: str | None = None
    poster_path: str | None = None
    overview: str | None = None
    popularity: float | None = None
    genres: list[_GenrePayload] | None = None
    credits: _CreditsPayload | None = None


class _MovieListPayload(BaseModel):
    results: list[_MoviePayload] | None = None


class _CrewCreditPayload(_MoviePayload):
    job: str | None = None


class _PersonCreditsPayload(BaseModel):
    crew: list[_CrewCreditPayload] | None = None


class _ProviderPayload(BaseModel):
    provider_name: str | None = None


class _RegionProvidersPayload(BaseModel):
    flatrate: list[_ProviderPayload] | None = None
    free: list[_ProviderPayload] | None = None
    ads: list[_ProviderPayload] | None = None
    rent: list[_ProviderPayload] | None = None
    buy: list[_ProviderPayload] | None = None


class _WatchProvidersPayload(BaseModel):
    results: dict[str, _RegionProvidersPayload] | None = None


_P = TypeVar("_P", bound=BaseModel)


class TMDbClient:
    """Cache-aside TMDb client using API key auth.

    Upstream failures never escape the public methods: they are logged and
    turned into an empty list (or ``None`` for details). Failed lookups are
    not cached, so the next call tries TMDb again.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        image_base: str | None = None,
        language: str | None = None,
        region: str | None = None,
        max_cast: int | None = None,
        max_directors: int | None = None,
        cache: CacheStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.tmdb_api_key
        self.base_url = (base_url or settings.tmdb_base_url).rstrip("/")
        self.image_base = (image_base or settings.tmdb_image_base).rstrip("/")
        self.language = language or settings.tmdb_language
        self.region = region or settings.tmdb_region
        self.max_cast = settings.max_cast if max_cast is None else max_cast
        self.max_directors = settings.max_directors if max_directors is None else max_directors
        self.timeout = settings.tmdb_timeout_seconds
        # An empty CacheStore is falsy, so compare against None explicitly.
        self.cache = cache if cache is not None else get_cache()
        self._http = http_client
        self._inflight: dict[str, asyncio.Future] = {}

    async def search_movies(self, query: str, *, limit: int | None = None) -> list[Movie]:
        """Search movies by title and return abbreviated matches."""

        if not query or not query.strip():
            raise InvalidInput("query must not be empty")
        movies = await self._cached(
            f"Search:{query}",
            SEARCH_TTL,
            lambda: self._fetch_movie_list("/search/movie", params={"query": query}),
        )
        return _truncate(movies, limit)

    async def get_movie_details(self, movie_id: int) -> Movie | None:
        """Return the full movie with genres and capped credits, or ``None``."""

        return await self._cached(
            f"Movie:{movie_id}",
            MOVIE_TTL,
            lambda: self._fetch_details(movie_id),
        )

    async def get_similar(self, movie_id: int, limit: int) -> list[Movie]:
        movies = await self._cached(
            f"Similar:{movie_id}",
            SIMILAR_TTL,
            lambda: self._fetch_movie_list(f"/movie/{movie_id}/similar"),
        )
        return _truncate(movies, limit)

    async def discover_by_genre(self, genre: str, limit: int) -> list[Movie]:
        genre_id = genre_id_for(genre)
        movies = await self._cached(
            f"Genre:{genre_id}",
            GENRE_TTL,
            lambda: self._fetch_movie_list("/discover/movie", params={"with_genres": genre_id}),
        )
        return _truncate(movies, limit)

    async def discover_by_cast(self, person_id: int, limit: int) -> list[Movie]:
        """Movies featuring ``person_id``, most popular first."""

        movies = await self._cached(
            f"Actor:{person_id}",
            ACTOR_TTL,
            lambda: self._fetch_movie_list(
                "/discover/movie",
                params={"with_cast": person_id, "sort_by": "popularity.desc"},
            ),
        )
        return _truncate(movies, limit)

    async def get_director_credits(self, person_id: int, limit: int) -> list[Movie]:
        """Movies ``person_id`` directed; other crew jobs are dropped before ``limit``."""

        movies = await self._cached(
            f"Director:{person_id}",
            DIRECTOR_TTL,
            lambda: self._fetch_director_credits(person_id),
        )
        return _truncate(movies, limit)

    async def get_watch_providers(self, movie_id: int) -> frozenset[str]:
        """Provider names offering ``movie_id`` in the configured region."""

        providers = await self._cached(
            f"Providers:{movie_id}",
            PROVIDERS_TTL,
            lambda: self._fetch_watch_providers(movie_id),
        )
        return providers or frozenset()

    async def _cached(
        self,
        key: str,
        ttl: float,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        value, found = self.cache.get(key)
        if found:
            return value
        task = self._inflight.get(key)
        if task is None or task.get_loop() is not asyncio.get_running_loop():
            logger.debug("Cache miss: %s", key)
            task = asyncio.ensure_future(self._load(key, ttl, loader))
            self._inflight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug("Joining in-flight fetch: %s", key)
        # One caller hitting its deadline must not cancel the fetch for the others.
        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        ttl: float,
        loader: Callable[[], Awaitable[Any]],
    ) -> Any:
        value = await loader()
        if value is not None:
            self.cache.set(key, value, ttl)
        return value

    def _forget(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the outcome retrieved even when every waiter gave up.
            task.exception()

    async def _fetch_movie_list(
        self, path: str, *, params: dict[str, Any] | None = None
    ) -> tuple[Movie, ...] | None:
        payload = await self._fetch(path, _MovieListPayload, params=params)
        if payload is None:
            return None
        return tuple(self._to_movie(item) for item in payload.results or [])

    async def _fetch_details(self, movie_id: int) -> Movie | None:
        payload = await self._fetch(
            f"/movie/{movie_id}",
            _MoviePayload,
            params={"append_to_response": "credits"},
        )
        if payload is None:
            return None
        credits = payload.credits or _CreditsPayload()
        return Movie(
            id=payload.id,
            title=payload.title or "",
            poster_url=self._build_poster_url(payload.poster_path),
            overview=payload.overview or "",
            genres=tuple(g.name for g in payload.genres or [] if g.name),
            cast=self._extract_cast(credits),
            directors=self._extract_directors(credits),
        )

    async def _fetch_director_credits(self, person_id: int) -> tuple[Movie, ...] | None:
        payload = await self._fetch(f"/person/{person_id}/movie_credits", _PersonCreditsPayload)
        if payload is None:
            return None
        seen: set[int] = set()
        directed: list[_CrewCreditPayload] = []
        for credit in payload.crew or []:
            if credit.job != "Director" or credit.id in seen:
                continue
            seen.add(credit.id)
            directed.append(credit)
        # Stable sort keeps TMDb order among equally popular titles.
        directed.sort(key=lambda credit: credit.popularity or 0.0, reverse=True)
        return tuple(self._to_movie(credit) for credit in directed)

    async def _fetch_watch_providers(self, movie_id: int) -> frozenset[str] | None:
        payload = await self._fetch(f"/movie/{movie_id}/watch/providers", _WatchProvidersPayload)
        if payload is None:
            return None
        region = (payload.results or {}).get(self.region)
        if region is None:
            return frozenset()
        names: set[str] = set()
        for bucket in _PROVIDER_BUCKETS:
            for provider in getattr(region, bucket) or []:
                if provider.provider_name:
                    names.add(provider.provider_name)
        return frozenset(names)

    async def _fetch(
        self,
        path: str,
        schema: type[_P],
        *,
        params: dict[str, Any] | None = None,
    ) -> _P | None:
        try:
            payload = await self._request(path, params=params)
            return schema.model_validate(payload)
        except TMDbUnavailable as exc:
            logger.warning(
                "TMDb request failed: endpoint=%s status=%s %s",
                exc.endpoint,
                exc.status,
                exc.reason,
            )
        except ValidationError as exc:
            logger.warning("TMDb payload from %s could not be decoded: %s", path, exc)
        return None

    async def _request(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise ConfigurationMissing("TMDB_API_KEY is not configured")
        url = f"{self.base_url}{path}"
        query: dict[str, Any] = {"api_key": self.api_key}
        if self.language:
            query["language"] = self.language
        if params:
            query.update({k: v for k, v in params.items() if v is not None})
        try:
            if self._http is not None:
                response = await self._http.get(url, params=query, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, params=query)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise TMDbUnavailable(path, status=exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise TMDbUnavailable(path, reason=type(exc).__name__) from exc
        except ValueError as exc:
            raise TMDbUnavailable(path, reason="invalid JSON body") from exc

    def _to_movie(self, item: _MoviePayload) -> Movie:
        return Movie(
            id=item.id,
            title=item.title or "",
            poster_url=self._build_poster_url(item.poster_path),
            overview=item.overview or "",
        )

    def _extract_cast(self, credits: _CreditsPayload) -> tuple[Person, ...]:
        cast = credits.cast or []
        return tuple(Person(id=p.id, name=p.name or "") for p in cast[: self.max_cast])

    def _extract_directors(self, credits: _CreditsPayload) -> tuple[Person, ...]:
        directors = [
            Person(id=member.id, name=member.name or "")
            for member in credits.crew or []
            if member.job == "Director"
        ]
        return tuple(directors[: self.max_directors])

    def _build_poster_url(self, path: str | None) -> str:
        if not path:
            return ""
        return f"{self.image_base}{path}"


def _truncate(movies: tuple[Movie, ...] | None, limit: int | None) -> list[Movie]:
    if not movies:
        return []
    if limit is None:
        return list(movies)
    return list(movies[: max(limit, 0)])
