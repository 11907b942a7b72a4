"""Settings for the store assistant

Everything comes from environment variables or a ``.env`` next to the backend
A bad URL or an out of range knob fails when Settings() is built, not on the first request
"""

from __future__ import annotations
from functools import lru_cache
from pathlib import Path
from typing import List, Literal
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

BACKEND_DIR = Path(__file__).resolve().parent.parent


def check_base_url(url: str, what: str = "base URL") -> str:
    """Return the url without a trailing slash or raise ConfigurationError"""
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigurationError(f"Invalid {what}: {url!r} (expected http(s)://host[:port])")
    try:
        parsed.port  # raises on a non numeric port
    except ValueError as e:
        raise ConfigurationError(f"Invalid {what}: {url!r} ({e})") from e
    return url.rstrip("/")


class Settings(BaseSettings):
    # LLM server (Ollama compatible)
    LLM_BASE_URL: str = "http://localhost:11434"
    LLM_MODEL: str = "llama3.2:latest"
    LLM_TIMEOUT: float = Field(default=30.0, gt=0)

    # Sampling. Low temperature and a repeat penalty keep answers factual
    LLM_TEMPERATURE: float = Field(default=0.1, ge=0, le=2)
    LLM_TOP_P: float = Field(default=0.9, gt=0, le=1)
    LLM_REPEAT_PENALTY: float = Field(default=1.1, ge=1)
    LLM_NUM_CTX: int = Field(default=1000, ge=1)

    # Embeddings
    EMBEDDING_BACKEND: Literal["ollama", "sentence-transformers"] = "ollama"
    EMBEDDING_MODEL: str = "nomic-embed-text"
    LOCAL_EMBEDDING_MODEL: str = "all-mpnet-base-v2"
    EMBEDDING_CONCURRENCY: int = Field(default=3, ge=1, le=32)

    # Vector store
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_TIMEOUT: float = Field(default=30.0, gt=0)
    PRODUCTS_COLLECTION: str = "products"
    DOCUMENTS_COLLECTION: str = "documents"
    VECTOR_SIZE: int = Field(default=768, ge=1)
    # Retrieval reads one page of this size and never paginates past it
    SCROLL_LIMIT: int = Field(default=100, ge=1, le=1000)

    # Server
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"
    CATALOG_PATH: Path = BACKEND_DIR / "data" / "catalog.csv"
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    AGENT_NAME: str = "Store Assistant"

    model_config = SettingsConfigDict(env_file=BACKEND_DIR / ".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("LLM_BASE_URL", "QDRANT_URL")
    @classmethod
    def _absolute_url(cls, v: str) -> str:
        try:
            return check_base_url(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def sampling_options(self) -> dict:
        return {
            "temperature": self.LLM_TEMPERATURE,
            "top_p": self.LLM_TOP_P,
            "repeat_penalty": self.LLM_REPEAT_PENALTY,
            "num_ctx": self.LLM_NUM_CTX,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
