"""
Configuration for the Retrieval Core

Settings come from three layers, later ones winning:
1. RetrievalConfig defaults
2. YAML file (the `retrieval:` section, or the whole document)
3. RETRIEVAL_* environment variables (a .env file is loaded first if present)

Usage:
    from core.config import load_config, configure_logging, create_corpus_store

    config = load_config()                      # config/retrieval_config.yaml
    config = load_config("deploy/search.yaml")  # explicit file
    configure_logging(config)
    store = create_corpus_store(config)
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging
import os

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "retrieval_config.yaml"
DEFAULT_ENV_FILE = Path(__file__).parent.parent / ".env"
ENV_PREFIX = "RETRIEVAL_"

_OPTIONAL_FLOATS = frozenset({"bm25_idf_floor", "embed_timeout_seconds"})
_LIST_FIELDS = frozenset({"index_metadata_fields"})


@dataclass
class RetrievalConfig:
    """All tunables of the retrieval core."""
    # Lexical engine
    bm25_k1: float = 1.5
    bm25_b: float = 0.75
    bm25_idf_floor: Optional[float] = None
    index_metadata_fields: List[str] = field(default_factory=lambda: ["key_phrases", "filename"])

    # Semantic engine
    embedding_provider: str = "sentence-transformers"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    max_embed_chars: int = 512
    embed_timeout_seconds: Optional[float] = None
    embed_workers: int = 1

    # Queries and benchmarking
    search_limit: int = 20
    benchmark_iterations: int = 5
    benchmark_limit: int = 10

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RetrievalConfig':
        """Build a config from a mapping, ignoring unknown keys with a warning."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            values[key] = value
        return cls(**values)


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of a config field."""
    if name in _LIST_FIELDS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if name in _OPTIONAL_FLOATS:
        if raw.strip().lower() in ("", "none", "null"):
            return None
        return float(raw)
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def _env_overrides() -> Dict[str, Any]:
    overrides = {}
    for f in fields(RetrievalConfig):
        env_name = ENV_PREFIX + f.name.upper()
        raw = os.environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[f.name] = _coerce(f.name, raw, f.default)
        except ValueError:
            logger.warning(f"Ignoring invalid value for {env_name}: {raw!r}")
    return overrides


def load_config(
    path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = DEFAULT_ENV_FILE
) -> RetrievalConfig:
    """
    Load configuration.

    Args:
        path: YAML file; None uses the bundled default when it exists
        env_file: .env file loaded into the environment (None skips it)

    Returns:
        Resolved RetrievalConfig

    Raises:
        FileNotFoundError: If an explicit path does not exist
    """
    if env_file is not None and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    data: Dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        config_path = DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None

    if config_path is not None:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        data = dict(loaded.get("retrieval", loaded) or {})
        logger.debug(f"Loaded config from {config_path}")

    data.update(_env_overrides())
    return RetrievalConfig.from_dict(data)


def create_corpus_store(config: Optional[RetrievalConfig] = None, metrics=None):
    """
    Wire a CorpusStore from configuration.

    This is the composition root: the provider, both engines and the
    metrics collector are created here and handed to the store.

    Args:
        config: Resolved configuration (defaults if None)
        metrics: Optional shared MetricsCollector

    Returns:
        Configured CorpusStore
    """
    from search.corpus import CorpusStore
    from .embedding_provider import ProviderType, create_provider

    config = config or RetrievalConfig()

    provider_type = ProviderType(config.embedding_provider)
    if provider_type == ProviderType.SENTENCE_TRANSFORMERS:
        provider_config = {"model": config.embedding_model}
    else:
        provider_config = {"dimension": config.embedding_dimension}

    return CorpusStore(
        provider=create_provider(provider_type, provider_config),
        k1=config.bm25_k1,
        b=config.bm25_b,
        idf_floor=config.bm25_idf_floor,
        index_metadata_fields=config.index_metadata_fields,
        max_embed_chars=config.max_embed_chars,
        embed_timeout=config.embed_timeout_seconds,
        embed_workers=config.embed_workers,
        search_limit=config.search_limit,
        benchmark_iterations=config.benchmark_iterations,
        benchmark_limit=config.benchmark_limit,
        metrics=metrics,
    )


def configure_logging(config: RetrievalConfig, stream=None):
    """Install the root log handler described by the config."""
    from .logging_config import setup_logging

    return setup_logging(level=config.log_level, json_format=config.log_json, stream=stream)
