"""
Tests for the BM25 lexical engine.

Covers scoring, ordering, IDF edge cases and rebuild behaviour.
"""

import math
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import DuplicateDocumentId, IndexNotBuilt
from search.bm25 import LexicalIndex
from search.models import Document
from search.tokenizer import tokenize
from fixtures.sample_data import sample_documents


def doc(doc_id, content, **metadata):
    return Document(id=doc_id, content=content, metadata=metadata)


PASSWORD_CORPUS = [
    doc("A", "contraseña contraseña contraseña contraseña contraseña política segura"),
    doc("B", "contraseña de usuario"),
    doc("C", "copias de seguridad nocturnas"),
]

UNRELATED = [
    doc("D", "registro de eventos centralizado"),
    doc("E", "formación anual obligatoria"),
    doc("F", "inventario de activos físicos"),
]


class TestBuild:
    """Tests for index construction."""

    def test_search_before_build(self):
        index = LexicalIndex()
        with pytest.raises(IndexNotBuilt):
            index.search("acceso")

    def test_stats_before_build(self):
        with pytest.raises(IndexNotBuilt):
            LexicalIndex().stats()

    def test_empty_corpus(self):
        """An empty build succeeds and answers nothing."""
        index = LexicalIndex()
        index.build([])

        assert index.is_built
        assert index.search("cualquier cosa") == []
        stats = index.stats()
        assert stats['total_documents'] == 0
        assert stats['total_terms'] == 0
        assert stats['avg_doc_length'] == 0.0

    def test_duplicate_ids_rejected(self):
        index = LexicalIndex()
        with pytest.raises(DuplicateDocumentId) as exc_info:
            index.build([doc("X", "uno dos tres"), doc("X", "cuatro cinco")])

        assert exc_info.value.doc_id == "X"
        assert not index.is_built

    def test_failed_build_keeps_previous_snapshot(self):
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS + UNRELATED)
        before = index.snapshot()

        with pytest.raises(DuplicateDocumentId):
            index.build([doc("X", "acceso"), doc("X", "acceso")])

        assert index.snapshot() is before
        assert index.version == 1

    def test_snapshot_contents(self):
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS)
        snapshot = index.snapshot()

        assert snapshot.total_docs == 3
        assert snapshot.term_doc_frequency['contraseña'] == {"A": 5, "B": 1}
        assert snapshot.doc_length == {"A": 7, "B": 2, "C": 3}
        assert snapshot.avg_doc_length == pytest.approx(4.0)

    def test_avg_doc_length_is_mean(self):
        documents = sample_documents()
        index = LexicalIndex()
        index.build(documents)

        lengths = [len(tokenize(d.content)) for d in documents]
        assert index.snapshot().avg_doc_length == pytest.approx(sum(lengths) / len(lengths))

    def test_single_document_corpus(self):
        """avgdl equals the only document's length and scores stay finite."""
        index = LexicalIndex()
        index.build([doc("solo", "política de acceso remoto")])
        snapshot = index.snapshot()

        assert snapshot.avg_doc_length == 3
        score = index.term_score(snapshot, 'acceso', 'solo')
        assert math.isfinite(score)

    def test_rebuild_is_idempotent(self):
        index = LexicalIndex()
        documents = sample_documents()

        index.build(documents)
        first_stats = index.stats()
        first_ranking = [(r.document_id, r.score) for r in index.search("contraseña acceso")]

        index.build(documents)
        assert index.stats() == first_stats
        assert [(r.document_id, r.score) for r in index.search("contraseña acceso")] == first_ranking
        assert index.version == 2


class TestScoring:
    """Tests for BM25 score computation."""

    def test_password_scenario(self):
        """Five occurrences outrank one; the document without the term is absent."""
        index = LexicalIndex(idf_floor=0.01)
        index.build(PASSWORD_CORPUS)

        results = index.search("contraseña")
        assert [r.document_id for r in results] == ["A", "B"]
        assert results[0].score > results[1].score > 0

    def test_password_scenario_larger_corpus(self):
        """With the term in a minority of documents raw BM25 ranks the same way."""
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS + UNRELATED)

        assert [r.document_id for r in index.search("contraseña")] == ["A", "B"]

    def test_majority_term_has_negative_idf(self):
        """IDF is not clamped by default: df > N/2 gives a negative weight."""
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS)
        snapshot = index.snapshot()

        expected = math.log((3 - 2 + 0.5) / (2 + 0.5))
        assert index.idf(snapshot, 'contraseña') == pytest.approx(expected)
        assert expected < 0
        assert index.search("contraseña") == []

    def test_term_in_every_document(self):
        index = LexicalIndex()
        index.build([doc("1", "acceso uno"), doc("2", "acceso dos"), doc("3", "acceso tres")])
        snapshot = index.snapshot()

        assert index.idf(snapshot, 'acceso') < 0
        assert index.search("acceso") == []

    def test_idf_floor_applied(self):
        index = LexicalIndex(idf_floor=0.25)
        index.build(PASSWORD_CORPUS)
        assert index.idf(index.snapshot(), 'contraseña') == 0.25

    def test_score_formula(self):
        """Score matches the textbook formula for a single-term query."""
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS + UNRELATED)
        snapshot = index.snapshot()

        n, df, tf = 6, 2, 5
        dl = snapshot.doc_length["A"]
        avgdl = snapshot.avg_doc_length
        idf = math.log((n - df + 0.5) / (df + 0.5))
        expected = idf * (tf * 2.5) / (tf + 1.5 * (1 - 0.75 + 0.75 * dl / avgdl))

        results = index.search("contraseña")
        assert results[0].score == pytest.approx(expected)

    def test_custom_parameters(self):
        index = LexicalIndex(k1=1.2, b=0.5)
        index.build(UNRELATED)
        stats = index.stats()
        assert stats['k1'] == 1.2
        assert stats['b'] == 0.5

    def test_score_non_decreasing_in_term_frequency(self):
        """More occurrences never lower the score (document length held fixed)."""
        others = [doc(f"o{i}", f"relleno{i} texto{i} extra{i}") for i in range(5)]
        scores = []
        for tf in range(1, 6):
            words = ["acceso"] * tf + [f"palabra{i}" for i in range(6 - tf)]
            index = LexicalIndex()
            index.build([doc("target", " ".join(words))] + others)
            scores.append(index.search("acceso")[0].score)

        assert all(b >= a for a, b in zip(scores, scores[1:]))
        assert scores[-1] > scores[0]

    def test_repeated_query_terms_count_each_time(self):
        index = LexicalIndex()
        index.build(PASSWORD_CORPUS + UNRELATED)

        single = index.search("contraseña")[0].score
        double = index.search("contraseña contraseña")[0].score
        assert double == pytest.approx(2 * single)

    def test_occurring_terms_are_retrievable(self):
        """Every normalized term of every document finds that document."""
        documents = sample_documents()
        index = LexicalIndex(idf_floor=0.01)
        index.build(documents)

        for document in documents:
            for term in set(tokenize(document.content)):
                hits = {r.document_id: r.score for r in index.search(term, limit=len(documents))}
                assert hits.get(document.id, 0) > 0, term


class TestSearch:
    """Tests for query handling and ordering."""

    @pytest.fixture
    def index(self):
        index = LexicalIndex()
        index.build(sample_documents())
        return index

    @pytest.mark.parametrize("query", ["", "   ", "de la y", "!!"])
    def test_empty_query(self, index, query):
        assert index.search(query) == []

    def test_unknown_term(self, index):
        assert index.search("blockchain") == []

    def test_limit(self, index):
        assert len(index.search("política procedimiento datos", limit=1)) == 1
        assert index.search("política", limit=0) == []

    def test_sorted_descending(self, index):
        results = index.search("política acceso contraseña incidente datos")
        keys = [(-r.score, r.document_id) for r in results]
        assert keys == sorted(keys)

    def test_ties_broken_by_id(self):
        index = LexicalIndex()
        index.build([doc("zeta", "cifrado total"), doc("alfa", "cifrado total")] + UNRELATED)

        results = index.search("cifrado")
        assert [r.document_id for r in results] == ["alfa", "zeta"]
        assert results[0].score == results[1].score

    def test_result_carries_document(self, index):
        result = index.search("contraseña")[0]
        assert result.document_id == "pol-001"
        assert "Política de contraseñas" in result.content
        assert result.metadata['type'] == 'policy'

    def test_document_lookup(self):
        """With a lookup, ids it cannot resolve are skipped."""
        store = {d.id: d for d in PASSWORD_CORPUS + UNRELATED}
        index = LexicalIndex(document_lookup=store.get)
        index.build(list(store.values()))

        del store["A"]
        assert [r.document_id for r in index.search("contraseña")] == ["B"]

    def test_stats(self, index):
        stats = index.stats()
        assert stats['engine'] == 'lexical'
        assert stats['total_documents'] == 6
        assert stats['k1'] == 1.5
        assert stats['b'] == 0.75
        assert stats['idf_floor'] is None
        assert stats['total_terms'] > 0
