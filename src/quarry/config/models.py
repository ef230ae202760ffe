"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (QUARRY__SECTION__KEY)
3. Data-dir YAML (<data_dir>/config.yaml)
4. Global YAML (~/.config/quarry/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    QUARRY__<SECTION>__<KEY>=<VALUE>

Examples:
    QUARRY__LOGGING__LEVEL=DEBUG
    QUARRY__EMBEDDING__DEBOUNCE_SEC=0.5
    QUARRY__SEARCH__DEFAULT_LIMIT=10
    QUARRY__REINDEX__BATCH_SIZE=50
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_DATA_DIR = "~/.local/share/quarry"


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        QUARRY__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every queue job and query path.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class StorageConfig(BaseModel):
    """Where the vector database and keyword index live.

    Env vars:
        QUARRY__STORAGE__DATA_DIR: Directory holding both stores
    """

    data_dir: str = Field(
        default=DEFAULT_DATA_DIR,
        description="Directory for vectors.db and the keyword index.",
    )
    db_filename: str = Field(
        default="vectors.db",
        description="SQLite file holding the embeddings table.",
    )
    keyword_dirname: str = Field(
        default="keyword_index",
        description="Directory (under data_dir) for the Tantivy keyword index.",
    )

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_path / self.db_filename

    @property
    def keyword_path(self) -> Path:
        return self.data_path / self.keyword_dirname


class EmbeddingConfig(BaseModel):
    """Embedding model and queue configuration.

    Env vars:
        QUARRY__EMBEDDING__MODEL_NAME: fastembed model identifier
        QUARRY__EMBEDDING__DEBOUNCE_SEC: Per-entity debounce window
    """

    model_name: str = Field(
        default="BAAI/bge-small-en-v1.5",
        description="fastembed model. Changing it requires a full reindex "
        "(stored vectors are not comparable across models).",
    )
    debounce_sec: float = Field(
        default=2.0,
        description="Quiet period after the last edit before an entity is re-embedded. "
        "TRADEOFF: Lower values re-embed more often during typing.",
    )

    @field_validator("debounce_sec")
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"debounce_sec must be >= 0, got {v}")
        return v


class ChunkingConfig(BaseModel):
    """Text chunking configuration (1 token ~ 4 characters).

    Env vars:
        QUARRY__CHUNKING__MAX_TOKENS
        QUARRY__CHUNKING__OVERLAP_TOKENS
        QUARRY__CHUNKING__MIN_CHUNK_SIZE
    """

    max_tokens: int = Field(default=256, gt=0)
    overlap_tokens: int = Field(default=50, ge=0)
    min_chunk_size: int = Field(
        default=100,
        ge=0,
        description="Chunks shorter than this (characters, after trimming) are dropped.",
    )

    @model_validator(mode="after")
    def validate_overlap(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.max_tokens:
            raise ValueError("overlap_tokens must be smaller than max_tokens")
        return self


class SearchConfig(BaseModel):
    """Query limits.

    Env vars:
        QUARRY__SEARCH__DEFAULT_LIMIT: Results per ranking path
        QUARRY__SEARCH__MAX_LIMIT: Hard ceiling for caller-supplied limits
    """

    default_limit: int = Field(
        default=5,
        gt=0,
        description="Results per path (keyword and semantic are bounded independently).",
    )
    max_limit: int = Field(default=50, gt=0)


class ReindexConfig(BaseModel):
    """Full reindex sweep configuration.

    Env vars:
        QUARRY__REINDEX__BATCH_SIZE: Entities per progress step
    """

    batch_size: int = Field(
        default=20,
        gt=0,
        description="Entities processed between progress reports.",
    )


class QuarryConfig(BaseModel):
    """Root configuration for Quarry.

    All settings can be configured via:
    1. Environment variables: QUARRY__SECTION__KEY
    2. YAML config files (data dir or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    reindex: ReindexConfig = Field(default_factory=ReindexConfig)
