"""
Embedding Provider Abstraction for the Semantic Engine

Provides a unified interface over embedding backends with:
- Normalized, fixed-dimension float32 vectors
- Caller-supplied timeouts on every call
- Health and latency tracking
- A deterministic offline provider for tests and air-gapped installs

Supported providers:
- sentence-transformers (local transformer models)
- hashing (deterministic feature hashing, no model download)

Usage:
    from core.embedding_provider import create_provider, ProviderType

    provider = create_provider(ProviderType.SENTENCE_TRANSFORMERS, {})
    vec = provider.embed("política de contraseñas", timeout=5.0)
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
import functools
import hashlib
import logging
import re
import threading
import time

import numpy as np

from .errors import (
    EmbeddingDimensionMismatch,
    EmbeddingProviderTimeout,
    EmbeddingProviderUnavailable,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Enums and Data Models
# =============================================================================

class ProviderType(Enum):
    """Supported embedding providers."""
    SENTENCE_TRANSFORMERS = "sentence-transformers"
    HASHING = "hashing"


@dataclass
class ProviderHealth:
    """Health status of a provider."""
    provider: str
    is_available: bool
    last_check: datetime
    last_error: Optional[str] = None
    success_rate: float = 1.0
    avg_latency_ms: float = 0.0


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Scale a vector to unit length; the zero vector is returned unchanged."""
    vec = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec
    return vec / norm


# =============================================================================
# Abstract Provider Base Class
# =============================================================================

class EmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    Subclasses implement _encode(); the public embed() adds timeout
    handling, error wrapping, dimension checks and normalization.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize provider with configuration.

        Args:
            config: Provider-specific configuration dictionary
        """
        self.config = dict(config or {})
        self._health = ProviderHealth(
            provider=self.name,
            is_available=False,
            last_check=datetime.now()
        )
        self._stats_lock = threading.Lock()
        self._call_count = 0
        self._error_count = 0
        self._total_latency = 0.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging/metrics."""
        pass

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier of the model producing the vectors."""
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this provider returns."""
        pass

    @abstractmethod
    def _encode(self, text: str) -> np.ndarray:
        """Produce a raw (not necessarily normalized) vector for text."""
        pass

    @abstractmethod
    def _check_availability(self) -> bool:
        """Return True if the backend can serve requests."""
        pass

    def embed(self, text: str, timeout: Optional[float] = None) -> np.ndarray:
        """
        Embed a single text.

        Args:
            text: Input text
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            L2-normalized float32 vector of length `dimension`

        Raises:
            EmbeddingProviderTimeout: If the call exceeded timeout
            EmbeddingProviderUnavailable: If the backend failed
        """
        start_time = time.time()

        try:
            if timeout is None:
                raw = self._encode(text)
            else:
                raw = self._encode_with_timeout(text, timeout)

            vector = np.asarray(raw, dtype=np.float32).reshape(-1)
            if vector.shape[0] != self.dimension:
                raise EmbeddingDimensionMismatch(self.name, self.dimension, vector.shape[0])

        except EmbeddingProviderUnavailable:
            self._record_call((time.time() - start_time) * 1000, success=False)
            raise

        except Exception as e:
            self._record_call((time.time() - start_time) * 1000, success=False)
            raise EmbeddingProviderUnavailable(
                f"{self.name} failed to embed text: {e}",
                self.name,
                original_error=e
            ) from e

        self._record_call((time.time() - start_time) * 1000, success=True)
        return l2_normalize(vector)

    def embed_batch(
        self,
        texts: Sequence[str],
        timeout: Optional[float] = None
    ) -> List[np.ndarray]:
        """Embed texts one by one; the timeout applies to each call."""
        return [self.embed(text, timeout=timeout) for text in texts]

    def refresh_health(self) -> ProviderHealth:
        """Refresh and return health status."""
        try:
            self._health.is_available = self._check_availability()
            self._health.last_error = None
        except Exception as e:
            self._health.is_available = False
            self._health.last_error = str(e)

        self._health.last_check = datetime.now()

        with self._stats_lock:
            if self._call_count > 0:
                self._health.success_rate = 1 - (self._error_count / self._call_count)
                self._health.avg_latency_ms = self._total_latency / self._call_count

        return self._health

    def close(self):
        """Release backend resources (loaded models, caches)."""
        pass

    def _encode_with_timeout(self, text: str, timeout: float) -> np.ndarray:
        """
        Run _encode on a dedicated worker and wait at most timeout seconds.

        Each call gets its own worker, so the wait starts when the call
        starts running and a hung backend call only holds its own thread.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"embed-{self.name}")
        try:
            future = executor.submit(self._encode, text)
            try:
                return future.result(timeout=timeout)
            except FuturesTimeoutError:
                logger.warning(f"{self.name} call abandoned after {timeout:.3f}s")
                raise EmbeddingProviderTimeout(self.name, timeout)
        finally:
            executor.shutdown(wait=False)

    def _record_call(self, latency_ms: float, success: bool):
        """Record call metrics."""
        with self._stats_lock:
            self._call_count += 1
            self._total_latency += latency_ms
            if not success:
                self._error_count += 1


# =============================================================================
# Sentence-Transformers Provider
# =============================================================================

class SentenceTransformerProvider(EmbeddingProvider):
    """
    Local transformer embeddings via sentence-transformers.

    The model is loaded lazily on first use, so constructing the provider
    is cheap and never touches the network.
    """

    DEFAULT_MODEL = "all-MiniLM-L6-v2"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._model_name = self.config.get("model", self.DEFAULT_MODEL)
        self._device = self.config.get("device")
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def name(self) -> str:
        return "sentence-transformers"

    @property
    def model_id(self) -> str:
        return self._model_name

    @property
    def dimension(self) -> int:
        return int(self._get_model().get_sentence_embedding_dimension())

    def _get_model(self):
        """Lazy initialization of the sentence-transformers model."""
        if self._model is None:
            with self._load_lock:
                if self._model is None:
                    try:
                        from sentence_transformers import SentenceTransformer
                    except ImportError as e:
                        raise EmbeddingProviderUnavailable(
                            "sentence-transformers not installed. "
                            "Run: pip install sentence-transformers",
                            self.name,
                            retryable=False,
                            original_error=e
                        ) from e

                    try:
                        logger.info(f"Loading embedding model: {self._model_name}")
                        kwargs = {"device": self._device} if self._device else {}
                        self._model = SentenceTransformer(self._model_name, **kwargs)
                    except Exception as e:
                        raise EmbeddingProviderUnavailable(
                            f"Could not load model {self._model_name}: {e}",
                            self.name,
                            original_error=e
                        ) from e
        return self._model

    def _check_availability(self) -> bool:
        self._get_model()
        return True

    def _encode(self, text: str) -> np.ndarray:
        return self._get_model().encode(
            text,
            convert_to_numpy=True,
            normalize_embeddings=True
        )

    def close(self):
        with self._load_lock:
            self._model = None


# =============================================================================
# Hashing Provider (deterministic)
# =============================================================================

_WORD = re.compile(r'[^\W_]+')


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embeddings.

    Each lowercase word maps to a Gaussian vector seeded from its SHA-256
    digest; a text's vector is the normalized sum of its word vectors.
    Identical texts always embed identically and texts sharing words land
    close together. A text without words embeds to the zero vector.
    """

    DEFAULT_DIMENSION = 384
    DEFAULT_CACHE_SIZE = 4096

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._dimension = int(self.config.get("dimension", self.DEFAULT_DIMENSION))
        if self._dimension <= 0:
            raise ValueError(f"dimension must be positive, got {self._dimension}")
        cache_size = int(self.config.get("cache_size", self.DEFAULT_CACHE_SIZE))
        self._word_vector = functools.lru_cache(maxsize=cache_size)(self._compute_word_vector)

    @property
    def name(self) -> str:
        return "hashing"

    @property
    def model_id(self) -> str:
        return f"sha256-hashing-{self._dimension}"

    @property
    def dimension(self) -> int:
        return self._dimension

    def _check_availability(self) -> bool:
        return True

    def _compute_word_vector(self, word: str) -> np.ndarray:
        digest = hashlib.sha256(word.encode("utf-8")).digest()
        seed = int.from_bytes(digest[:8], "big") & 0x7FFFFFFFFFFFFFFF
        return np.random.default_rng(seed).standard_normal(self._dimension).astype(np.float32)

    def close(self):
        self._word_vector.cache_clear()

    def _encode(self, text: str) -> np.ndarray:
        total = np.zeros(self._dimension, dtype=np.float32)
        for word in _WORD.findall((text or "").lower()):
            total += self._word_vector(word)
        return total


# =============================================================================
# Factory Functions
# =============================================================================

def create_provider(
    provider_type: ProviderType,
    config: Optional[Dict[str, Any]] = None
) -> EmbeddingProvider:
    """
    Create a provider instance.

    Args:
        provider_type: Type of provider to create (enum or its value)
        config: Provider-specific configuration

    Returns:
        Configured provider instance
    """
    providers = {
        ProviderType.SENTENCE_TRANSFORMERS: SentenceTransformerProvider,
        ProviderType.HASHING: HashingEmbeddingProvider,
    }

    try:
        provider_type = ProviderType(provider_type)
    except ValueError:
        raise ValueError(f"Unknown provider type: {provider_type}")

    return providers[provider_type](config or {})
