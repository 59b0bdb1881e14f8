"""Test doubles shared by the test modules."""

import asyncio
from typing import Any

import httpx

from app.services.models import Movie, Person


TMDB_BASE = "https://api.themoviedb.org/3"


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTMDb:
    """Serves canned TMDb JSON through ``httpx.MockTransport`` and records requests."""

    def __init__(self) -> None:
        self.routes: list[tuple[str, dict[str, str], int, Any]] = []
        self.requests: list[httpx.Request] = []
        self.errors: dict[str, Exception] = {}

    def add(self, path: str, payload: Any, *, status: int = 200, **params: Any) -> None:
        self.routes.append((path, {k: str(v) for k, v in params.items()}, status, payload))

    def fail(self, path: str, exc: Exception) -> None:
        self.errors[path] = exc

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if _tmdb_path(r) == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _tmdb_path(request)
        if path in self.errors:
            raise self.errors[path]
        for route_path, params, status, payload in self.routes:
            if route_path != path:
                continue
            if all(request.url.params.get(k) == v for k, v in params.items()):
                return httpx.Response(status, json=payload)
        return httpx.Response(404, json={"status_code": 34, "status_message": "not found"})


def _tmdb_path(request: httpx.Request) -> str:
    return request.url.path.removeprefix("/3")


class StubCatalog:
    """In-memory stand-in for ``TMDbClient`` used by orchestrator and API tests."""

    def __init__(self) -> None:
        self.details: dict[int, Movie] = {}
        self.similar: dict[int, list[Movie]] = {}
        self.genres: dict[str, list[Movie]] = {}
        self.cast: dict[int, list[Movie]] = {}
        self.directed: dict[int, list[Movie]] = {}
        self.providers: dict[int, frozenset[str]] = {}
        self.search_results: list[Movie] = []
        self.delays: dict[str, float] = {}
        self.failures: set[str] = set()
        self.calls: list[str] = []

    async def _respond(self, label: str, value: Any) -> Any:
        self.calls.append(label)
        delay = self.delays.get(label)
        if delay:
            await asyncio.sleep(delay)
        if label in self.failures:
            raise RuntimeError(f"{label} exploded")
        return value

    async def search_movies(self, query: str, *, limit: int | None = None) -> list[Movie]:
        return await self._respond(f"search:{query}", list(self.search_results))

    async def get_movie_details(self, movie_id: int) -> Movie | None:
        return await self._respond(f"details:{movie_id}", self.details.get(movie_id))

    async def get_similar(self, movie_id: int, limit: int) -> list[Movie]:
        return await self._respond(f"similar:{movie_id}", self.similar.get(movie_id, [])[:limit])

    async def discover_by_genre(self, genre: str, limit: int) -> list[Movie]:
        return await self._respond(f"genre:{genre}", self.genres.get(genre, [])[:limit])

    async def discover_by_cast(self, person_id: int, limit: int) -> list[Movie]:
        return await self._respond(f"actor:{person_id}", self.cast.get(person_id, [])[:limit])

    async def get_director_credits(self, person_id: int, limit: int) -> list[Movie]:
        return await self._respond(f"director:{person_id}", self.directed.get(person_id, [])[:limit])

    async def get_watch_providers(self, movie_id: int) -> frozenset[str]:
        return await self._respond(f"providers:{movie_id}", self.providers.get(movie_id, frozenset()))


def movie(movie_id: int, title: str | None = None, **extra: Any) -> Movie:
    return Movie(id=movie_id, title=title or f"Movie {movie_id}", **extra)


def person(person_id: int, name: str | None = None) -> Person:
    return Person(id=person_id, name=name or f"Person {person_id}")

