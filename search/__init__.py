"""
Document Retrieval Core

Provides:
- BM25 lexical ranking (LexicalIndex)
- Embedding cosine-similarity ranking (EmbeddingIndex)
- A latency benchmark comparing engines (RetrievalBenchmark)
- Canonical document storage with engine fallback (CorpusStore)

Usage:
    from search import CorpusStore, Document
    from core.embedding_provider import create_provider

    store = CorpusStore(provider=create_provider("hashing"))
    store.add_document(Document("doc-1", "Política de control de acceso"))
    docs = store.search("acceso", engine="lexical")
"""

from .benchmark import RetrievalBenchmark
from .bm25 import LexicalIndex
from .corpus import CorpusStore
from .embeddings import EmbeddingIndex
from .engine import SearchEngine
from .models import (
    BenchmarkReport,
    Comparison,
    Document,
    EngineRun,
    EngineType,
    IndexState,
    SearchResult,
    TimingStats,
)
from .tokenizer import Tokenizer, tokenize

__all__ = [
    'BenchmarkReport',
    'Comparison',
    'CorpusStore',
    'Document',
    'EmbeddingIndex',
    'EngineRun',
    'EngineType',
    'IndexState',
    'LexicalIndex',
    'RetrievalBenchmark',
    'SearchEngine',
    'SearchResult',
    'TimingStats',
    'Tokenizer',
    'tokenize',
]
