"""FastAPI entrypoint exposing movie search, details and recommendations."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.errors import InvalidInput
from app.services.cache import get_cache
from app.services.models import Movie
from app.services.recommender import RecommendationOrchestrator
from app.services.tmdb import TMDbClient


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the TMDb credential and open the shared HTTP pool before serving."""

    settings = get_settings()
    settings.require_api_key()
    async with httpx.AsyncClient(timeout=settings.tmdb_timeout_seconds) as http_client:
        app.state.tmdb = TMDbClient(cache=get_cache(), http_client=http_client)
        logger.info("CineMatch API ready (cache entries: %d)", len(get_cache()))
        yield
    app.state.tmdb = None


app = FastAPI(title="CineMatch API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PersonResponse(BaseModel):
    id: int
    name: str


class MovieSummaryResponse(BaseModel):
    id: int
    title: str
    poster_url: str
    overview: str


class MovieDetailResponse(MovieSummaryResponse):
    genres: list[str] = Field(default_factory=list)
    cast: list[PersonResponse] = Field(default_factory=list)
    directors: list[PersonResponse] = Field(default_factory=list)


class RecommendationRequest(BaseModel):
    selected_movie_ids: list[int] = Field(
        default_factory=list, description="Movies the recommendations are based on"
    )
    platform_filter: str | None = Field(
        default=None, description="Only keep movies offered on this streaming platform"
    )


def get_tmdb_client(request: Request) -> TMDbClient:
    client = getattr(request.app.state, "tmdb", None)
    if client is None:
        client = TMDbClient(cache=get_cache())
    return client


def get_orchestrator(client: TMDbClient = Depends(get_tmdb_client)) -> RecommendationOrchestrator:
    return RecommendationOrchestrator(client)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api/movies/search", response_model=list[MovieSummaryResponse])
async def search_movies(
    query: str = "",
    client: TMDbClient = Depends(get_tmdb_client),
) -> list[MovieSummaryResponse]:
    normalized = query.strip()
    if not normalized:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Query cannot be empty.",
        )
    movies = await client.search_movies(normalized)
    return [_to_summary(movie) for movie in movies]


@app.get("/api/movies/{movie_id}", response_model=MovieDetailResponse)
async def get_movie(
    movie_id: int,
    client: TMDbClient = Depends(get_tmdb_client),
) -> MovieDetailResponse:
    movie = await client.get_movie_details(movie_id)
    if movie is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Movie {movie_id} was not found.",
        )
    return _to_detail(movie)


@app.post("/api/movies/recommendations", response_model=list[MovieSummaryResponse])
async def recommend(
    payload: RecommendationRequest,
    orchestrator: RecommendationOrchestrator = Depends(get_orchestrator),
) -> list[MovieSummaryResponse]:
    """Rank movies sharing similarity, genre, cast or director with the selection."""

    try:
        movies = await orchestrator.recommend(
            payload.selected_movie_ids,
            platform=payload.platform_filter or None,
        )
    except InvalidInput as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc
    return [_to_summary(movie) for movie in movies]


def _to_summary(movie: Movie) -> MovieSummaryResponse:
    return MovieSummaryResponse(
        id=movie.id,
        title=movie.title,
        poster_url=movie.poster_url,
        overview=movie.overview,
    )


def _to_detail(movie: Movie) -> MovieDetailResponse:
    return MovieDetailResponse(
        id=movie.id,
        title=movie.title,
        poster_url=movie.poster_url,
        overview=movie.overview,
        genres=list(movie.genres),
        cast=[PersonResponse(id=p.id, name=p.name) for p in movie.cast],
        directors=[PersonResponse(id=p.id, name=p.name) for p in movie.directors],
    )
