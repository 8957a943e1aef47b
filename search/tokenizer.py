"""
Tokenizer for Lexical Search

Normalizes raw text into index terms. The same Tokenizer instance is used
by an index for both documents and queries, so a term that survives
normalization in a document is always matchable by querying it.

Steps:
- lowercase
- replace every character that is not a letter, digit or whitespace
  with a space (accented letters are kept)
- split on whitespace runs
- drop tokens of length <= 2 and stopwords

Usage:
    from search.tokenizer import tokenize

    tokenize("La contraseña del usuario")  # ['contraseña', 'usuario']
"""

import re
from typing import FrozenSet, Iterable, List, Optional

# High-frequency Spanish function words of the audited corpus
DEFAULT_STOPWORDS: FrozenSet[str] = frozenset({
    'el', 'la', 'los', 'las', 'de', 'del', 'y', 'o', 'a', 'en', 'un', 'una',
    'con', 'por', 'para', 'es', 'son', 'que', 'como',
})

DEFAULT_MIN_LENGTH = 3

# \w is unicode-aware, so diacritics survive; underscore is not a letter
_NON_TERM_CHARS = re.compile(r'[^\w\s]|_')


class Tokenizer:
    """Stateless text normalizer producing index terms."""

    def __init__(
        self,
        stopwords: Optional[Iterable[str]] = None,
        min_length: int = DEFAULT_MIN_LENGTH
    ):
        """
        Args:
            stopwords: Words to drop (defaults to DEFAULT_STOPWORDS)
            min_length: Minimum token length kept
        """
        self.stopwords = frozenset(
            DEFAULT_STOPWORDS if stopwords is None else (w.lower() for w in stopwords)
        )
        self.min_length = min_length

    def tokenize(self, text: str) -> List[str]:
        """Split text into normalized terms, preserving order and repeats."""
        if not text:
            return []

        cleaned = _NON_TERM_CHARS.sub(' ', text.lower())
        return [
            token for token in cleaned.split()
            if len(token) >= self.min_length and token not in self.stopwords
        ]

    __call__ = tokenize


DEFAULT_TOKENIZER = Tokenizer()


def tokenize(text: str) -> List[str]:
    """Tokenize with the default stopword list and length filter."""
    return DEFAULT_TOKENIZER.tokenize(text)
