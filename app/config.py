"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Mapping

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="VOD Sync", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    playlist_url: HttpUrl | None = Field(default=None, alias="PLAYLIST_URL")
    playlist_timeout_seconds: float = Field(
        default=60.0, alias="PLAYLIST_TIMEOUT", gt=0, le=600
    )

    catalog_dir: Path = Field(default=Path("public/data/enriched"), alias="CATALOG_DIR")
    items_per_shard: int = Field(default=50, alias="ITEMS_PER_SHARD", ge=1, le=10_000)
    category_map: Annotated[dict[str, str], NoDecode] = Field(
        default_factory=dict, alias="CATEGORY_MAP"
    )

    sync_interval_seconds: int = Field(default=21_600, alias="SYNC_INTERVAL", ge=0)
    sync_on_startup: bool = Field(default=False, alias="SYNC_ON_STARTUP")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="pt-BR", alias="TMDB_LANGUAGE")
    metadata_timeout_seconds: float = Field(
        default=15.0, alias="METADATA_TIMEOUT", gt=0, le=120
    )
    enrichment_batch_size: int = Field(
        default=20, alias="ENRICHMENT_BATCH_SIZE", ge=1, le=100
    )
    enrichment_batch_delay: float = Field(
        default=0.5, alias="ENRICHMENT_BATCH_DELAY", ge=0, le=60
    )
    failure_report_path: Path = Field(
        default=Path("missing_metadata_report.txt"), alias="FAILURE_REPORT_PATH"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("category_map", mode="before")
    @classmethod
    def _parse_category_map(cls, value: object) -> dict[str, str]:
        """Accept ``key=category`` pairs separated by commas, or a mapping."""

        if value is None or value == "":
            return {}
        if isinstance(value, Mapping):
            pairs = [(str(key), str(target)) for key, target in value.items()]
        elif isinstance(value, str):
            pairs = []
            for part in value.split(","):
                if not part.strip():
                    continue
                if "=" not in part:
                    raise ValueError("CATEGORY_MAP entries must look like key=category")
                key, target = part.split("=", 1)
                pairs.append((key, target))
        else:
            raise TypeError("CATEGORY_MAP must be a string or mapping")

        parsed: dict[str, str] = {}
        for key, target in pairs:
            key = key.strip().lower()
            target = target.strip()
            if not key or not target:
                raise ValueError("CATEGORY_MAP entries need both a key and a category")
            parsed[key] = target
        return parsed

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @property
    def metadata_enabled(self) -> bool:
        return bool(self.tmdb_api_key)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
