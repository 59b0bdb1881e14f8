"""Application configuration loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationMissing


class Settings(BaseSettings):
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_base_url: str = Field(default="https://api.themoviedb.org/3")
    tmdb_image_base: str = Field(default="https://image.tmdb.org/t/p/w500")
    tmdb_language: str | None = Field(default=None)
    tmdb_region: str = Field(default="US")
    tmdb_timeout_seconds: float = Field(default=10.0, gt=0)

    # Signal weights: director > similar > genre > actor.
    weight_director: int = Field(default=5, ge=0)
    weight_similar: int = Field(default=4, ge=0)
    weight_genre: int = Field(default=3, ge=0)
    weight_actor: int = Field(default=2, ge=0)

    signal_limit: int = Field(default=10, ge=1)
    max_cast: int = Field(default=5, ge=0)
    max_directors: int = Field(default=3, ge=0)
    max_results: int = Field(default=20, ge=1)
    recommend_timeout_seconds: float = Field(default=8.0, gt=0)

    cors_origins: list[str] = Field(default=["https://cine-match-rho.vercel.app"])
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    def require_api_key(self) -> str:
        """Return the TMDb key or fail fast when it is missing."""

        if not self.tmdb_api_key:
            raise ConfigurationMissing("TMDB_API_KEY environment variable is not set")
        return self.tmdb_api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
