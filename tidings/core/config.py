"""
Tidings Configuration
---------------------
Centralized configuration for the record store, embedding cache, sync state,
AI classifier, source connectors and search. Loads from environment variables
(TIDINGS_*) or a YAML config file.
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from tidings.platform import get_data_dir

logger = logging.getLogger("Tidings.Config")

DEFAULT_DATA_DIR = str(get_data_dir())
DEFAULT_TIMEZONE = "Asia/Seoul"
DEFAULT_CLASSIFIER_MODEL = "gpt-4o-mini"


def _parse_optional_float_env(name: str) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Ignoring.",
            name,
            raw,
        )
        return None


class StoreConfig(BaseModel):
    """SQLite record store configuration."""
    path: str = os.path.join(DEFAULT_DATA_DIR, "records.db")


class VectorConfig(BaseModel):
    """Qdrant embedding cache configuration. ``path=":memory:"`` keeps it in RAM."""
    path: str = os.path.join(DEFAULT_DATA_DIR, "vectors")
    collection: str = "tidings_embeddings"
    dimensions: int = 64


class CursorConfig(BaseModel):
    """Sync cursor key-value file configuration."""
    path: str = os.path.join(DEFAULT_DATA_DIR, "sync_state.json")


class ClassifierConfig(BaseModel):
    """AI classifier (OpenAI-compatible endpoint via instructor)."""
    enabled: bool = True
    base_url: Optional[str] = None
    model: str = DEFAULT_CLASSIFIER_MODEL
    api_key: Optional[str] = None
    timeout_seconds: float = 30.0
    max_retries: int = 2


class GmailConfig(BaseModel):
    """Gmail REST connector configuration."""
    base_url: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    access_token: Optional[str] = None
    max_results: int = 50
    timeout_seconds: float = 20.0


class SearchConfig(BaseModel):
    """Hybrid search defaults."""
    default_limit: int = 5
    lookahead_days: int = 60


class TidingsConfig(BaseModel):
    """Root configuration for the entire Tidings system."""
    store: StoreConfig = Field(default_factory=StoreConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    cursor: CursorConfig = Field(default_factory=CursorConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    gmail: GmailConfig = Field(default_factory=GmailConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = "info"
    data_dir: str = DEFAULT_DATA_DIR

    @classmethod
    def from_env(cls) -> "TidingsConfig":
        """
        Load configuration from environment variables.

        Environment variables override defaults:
        - TIDINGS_DATA_DIR: Base data directory (store, vectors, sync state)
        - TIDINGS_TIMEZONE: Zone used to resolve dates written without one
        - TIDINGS_EMBEDDING_DIMS: Hash embedding dimensions
        - TIDINGS_CLASSIFIER_ENABLED / _URL / _MODEL / _API_KEY / _TIMEOUT
        - TIDINGS_GMAIL_TOKEN: OAuth access token for the Gmail connector
        - TIDINGS_GMAIL_MAX_RESULTS: Page size for incremental Gmail listing
        - TIDINGS_SEARCH_LIMIT: Default number of ranked results
        - TIDINGS_LOG_LEVEL: Logging level name
        """
        data_dir = os.environ.get("TIDINGS_DATA_DIR", DEFAULT_DATA_DIR)
        timeout = _parse_optional_float_env("TIDINGS_CLASSIFIER_TIMEOUT") or 30.0

        return cls(
            store=StoreConfig(path=os.path.join(data_dir, "records.db")),
            vector=VectorConfig(
                path=os.environ.get("TIDINGS_VECTOR_PATH", os.path.join(data_dir, "vectors")),
                dimensions=int(os.environ.get("TIDINGS_EMBEDDING_DIMS", "64")),
            ),
            cursor=CursorConfig(path=os.path.join(data_dir, "sync_state.json")),
            classifier=ClassifierConfig(
                enabled=os.environ.get("TIDINGS_CLASSIFIER_ENABLED", "true").lower() == "true",
                base_url=os.environ.get("TIDINGS_CLASSIFIER_URL") or None,
                model=os.environ.get("TIDINGS_CLASSIFIER_MODEL", DEFAULT_CLASSIFIER_MODEL),
                api_key=os.environ.get("TIDINGS_CLASSIFIER_API_KEY") or os.environ.get("OPENAI_API_KEY"),
                timeout_seconds=timeout,
            ),
            gmail=GmailConfig(
                access_token=os.environ.get("TIDINGS_GMAIL_TOKEN") or None,
                max_results=int(os.environ.get("TIDINGS_GMAIL_MAX_RESULTS", "50")),
            ),
            search=SearchConfig(
                default_limit=int(os.environ.get("TIDINGS_SEARCH_LIMIT", "5")),
            ),
            timezone=os.environ.get("TIDINGS_TIMEZONE", DEFAULT_TIMEZONE),
            log_level=os.environ.get("TIDINGS_LOG_LEVEL", "info"),
            data_dir=data_dir,
        )

    @classmethod
    def from_yaml(cls, path: str) -> "TidingsConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s; using environment defaults", path)
            return cls.from_env()
        return cls(**data)

    def ensure_directories(self) -> None:
        """Create data directories if they don't exist."""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        Path(self.store.path).parent.mkdir(parents=True, exist_ok=True)
        Path(self.cursor.path).parent.mkdir(parents=True, exist_ok=True)
        if self.vector.path != ":memory:":
            Path(self.vector.path).mkdir(parents=True, exist_ok=True)
        logger.info("Data directory: %s", self.data_dir)
