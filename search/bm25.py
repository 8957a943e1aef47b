"""
BM25 Lexical Search Engine

Okapi BM25 over an in-memory inverted index:

    score(d) = Σ_t IDF(t) · f(t,d)·(k1+1) / (f(t,d) + k1·(1 - b + b·|d|/avgdl))
    IDF(t)   = ln((N - df(t) + 0.5) / (df(t) + 0.5))

IDF is not clamped by default: a term present in more than half of the
documents contributes negatively, exactly as in textbook BM25. Passing
idf_floor raises low IDF values to that floor instead (the rank-bm25
style of guarding small corpora). Only documents sharing at least
one term with the query are scored, and only positive scores are
returned.

Usage:
    from search.bm25 import LexicalIndex

    index = LexicalIndex()
    index.build(documents)
    results = index.search("control de acceso", limit=10)
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional
import logging
import math

from .engine import DocumentLookup, Ranking, SearchEngine
from .models import Document, EngineType
from .tokenizer import DEFAULT_TOKENIZER, Tokenizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LexicalSnapshot:
    """Immutable inverted index for one build."""
    term_doc_frequency: Mapping[str, Mapping[str, int]]  # term -> doc_id -> count
    doc_length: Mapping[str, int]
    avg_doc_length: float
    total_docs: int

    def document_frequency(self, term: str) -> int:
        return len(self.term_doc_frequency.get(term, ()))


class LexicalIndex(SearchEngine[LexicalSnapshot]):
    """
    BM25 ranking engine.

    k1 controls term-frequency saturation, b controls document-length
    normalization. Both default to the usual 1.5 / 0.75.
    """

    K1 = 1.5
    B = 0.75

    def __init__(
        self,
        k1: Optional[float] = None,
        b: Optional[float] = None,
        idf_floor: Optional[float] = None,
        tokenizer: Optional[Tokenizer] = None,
        document_lookup: Optional[DocumentLookup] = None
    ):
        """
        Args:
            k1: Term saturation parameter (default K1)
            b: Length normalization parameter (default B)
            idf_floor: Lower bound applied to IDF; None keeps raw BM25,
                including negative IDF for majority terms
            tokenizer: Shared document/query tokenizer
            document_lookup: Optional id -> Document resolver
        """
        super().__init__(document_lookup)
        self.k1 = self.K1 if k1 is None else float(k1)
        self.b = self.B if b is None else float(b)
        self.idf_floor = None if idf_floor is None else float(idf_floor)
        self.tokenizer = tokenizer or DEFAULT_TOKENIZER

    @property
    def engine_type(self) -> EngineType:
        return EngineType.LEXICAL

    def _build_snapshot(self, documents: List[Document]) -> LexicalSnapshot:
        term_doc_frequency: Dict[str, Dict[str, int]] = defaultdict(dict)
        doc_length: Dict[str, int] = {}

        for doc in documents:
            terms = self.tokenizer.tokenize(doc.content)
            doc_length[doc.id] = len(terms)
            for term, count in Counter(terms).items():
                term_doc_frequency[term][doc.id] = count

        total_docs = len(documents)
        avg_doc_length = sum(doc_length.values()) / total_docs if total_docs else 0.0

        logger.debug(
            f"Built BM25 index: {total_docs} documents, "
            f"{len(term_doc_frequency)} terms, avg length {avg_doc_length:.1f}"
        )

        return LexicalSnapshot(
            term_doc_frequency=MappingProxyType({
                term: MappingProxyType(postings)
                for term, postings in term_doc_frequency.items()
            }),
            doc_length=MappingProxyType(doc_length),
            avg_doc_length=avg_doc_length,
            total_docs=total_docs,
        )

    def idf(self, snapshot: LexicalSnapshot, term: str) -> float:
        """Inverse document frequency of a term (may be negative)."""
        df = snapshot.document_frequency(term)
        n = snapshot.total_docs
        idf = math.log((n - df + 0.5) / (df + 0.5))
        if self.idf_floor is not None and idf < self.idf_floor:
            return self.idf_floor
        return idf

    def term_score(self, snapshot: LexicalSnapshot, term: str, doc_id: str) -> float:
        """BM25 contribution of one term to one document."""
        freq = snapshot.term_doc_frequency.get(term, {}).get(doc_id, 0)
        if freq == 0:
            return 0.0

        avgdl = snapshot.avg_doc_length
        length_ratio = snapshot.doc_length[doc_id] / avgdl if avgdl > 0 else 0.0
        numerator = freq * (self.k1 + 1)
        denominator = freq + self.k1 * (1 - self.b + self.b * length_ratio)
        return self.idf(snapshot, term) * (numerator / denominator)

    def _search_snapshot(self, snapshot: LexicalSnapshot, query: str) -> Ranking:
        query_terms = self.tokenizer.tokenize(query)
        if not query_terms or snapshot.total_docs == 0:
            return []

        scores: Dict[str, float] = defaultdict(float)
        # Repeated query terms count once per occurrence
        for term in query_terms:
            postings = snapshot.term_doc_frequency.get(term)
            if not postings:
                continue
            for doc_id in postings:
                scores[doc_id] += self.term_score(snapshot, term, doc_id)

        ranked = [(doc_id, score) for doc_id, score in scores.items() if score > 0]
        ranked.sort(key=lambda item: (-item[1], item[0]))
        return ranked

    def _snapshot_stats(self, snapshot: LexicalSnapshot) -> Dict[str, Any]:
        return {
            'total_documents': snapshot.total_docs,
            'total_terms': len(snapshot.term_doc_frequency),
            'avg_doc_length': snapshot.avg_doc_length,
            'k1': self.k1,
            'b': self.b,
            'idf_floor': self.idf_floor,
        }

    def snapshot(self) -> LexicalSnapshot:
        """Current immutable index state (for inspection and tests)."""
        snapshot, _ = self._require_published()
        return snapshot
