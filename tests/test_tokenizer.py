"""
Tests for the lexical tokenizer.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from search.tokenizer import DEFAULT_STOPWORDS, Tokenizer, tokenize


class TestTokenize:
    """Tests for the default tokenize() function."""

    def test_lowercases_and_drops_stopwords(self):
        """Stopwords and case are normalized away."""
        assert tokenize("La Contraseña del Usuario") == ['contraseña', 'usuario']

    def test_preserves_diacritics(self):
        assert tokenize("gestión autenticación") == ['gestión', 'autenticación']

    def test_punctuation_splits_tokens(self):
        """Punctuation becomes whitespace rather than joining words."""
        assert tokenize("acceso,remoto;cifrado.") == ['acceso', 'remoto', 'cifrado']

    def test_underscore_is_separator(self):
        assert tokenize("control_acceso") == ['control', 'acceso']

    def test_short_tokens_dropped(self):
        """Tokens of two characters or fewer are removed."""
        assert tokenize("ab abc a1 xyz9") == ['abc', 'xyz9']

    def test_keeps_repeats_in_order(self):
        assert tokenize("datos personales datos") == ['datos', 'personales', 'datos']

    def test_digits_kept(self):
        assert tokenize("AES-256 ISO 27001") == ['aes', '256', 'iso', '27001']

    @pytest.mark.parametrize("text", ["", "   ", "de la y", "?!", None])
    def test_empty_results(self, text):
        """Blank, stopword-only or punctuation-only text yields no terms."""
        assert tokenize(text) == []


class TestTokenizer:
    """Tests for configurable Tokenizer instances."""

    def test_default_stopwords(self):
        tokenizer = Tokenizer()
        assert tokenizer.stopwords == DEFAULT_STOPWORDS

    def test_custom_stopwords(self):
        """Custom stopwords replace the default list and are lowercased."""
        tokenizer = Tokenizer(stopwords=["POLÍTICA"])
        assert tokenizer.tokenize("Política para todos") == ['para', 'todos']

    def test_custom_min_length(self):
        tokenizer = Tokenizer(stopwords=[], min_length=1)
        assert tokenizer.tokenize("a de x") == ['a', 'de', 'x']

    def test_callable(self):
        tokenizer = Tokenizer()
        assert tokenizer("registro de eventos") == tokenizer.tokenize("registro de eventos")

    def test_deterministic(self):
        text = "Informe de auditoría interna: cuentas inactivas"
        assert tokenize(text) == tokenize(text)
