"""TF-IDF vocabulary and lexical similarity over a batch of documents.

A Vocabulary is a property of the batch being scored, not a trained model:
build a fresh one from the viewer text plus every candidate text before each
scoring pass, and pass it explicitly to ``vectorize``/``text_similarity``.

Term weight = (count in text / tokens in text) * ln(total_documents / df).
A term present in every document (or any term of a one-document corpus) gets
idf 0 and therefore no weight, unless ``idf_floor`` is raised above zero.
"""

import logging
import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping

from src.core.schemas import Vocabulary
from src.pipeline.similarity import cosine_similarity

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with",
    "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "can", "this", "that", "these", "those", "a", "an", "as", "if", "then",
})

MIN_TOKEN_LENGTH = 3

_NON_WORD = re.compile(r"[^\w\s]")

# A document is (id, text) or a mapping with a "text" key.
Document = tuple[str, str] | Mapping[str, str]


def tokenize(text: str) -> list[str]:
    """Lowercase, turn punctuation into spaces, drop short words and stop words."""
    tokens = _NON_WORD.sub(" ", (text or "").lower()).split()
    return [t for t in tokens if len(t) >= MIN_TOKEN_LENGTH and t not in STOP_WORDS]


def _document_text(doc: Document) -> str:
    if isinstance(doc, Mapping):
        return doc.get("text", "") or ""
    return doc[1] or ""


def build_vocabulary(documents: Iterable[Document]) -> Vocabulary:
    """Index every distinct token of the corpus with its document frequency.

    Terms are numbered in first-seen order, so the same corpus always yields
    the same vocabulary.
    """
    terms: dict[str, int] = {}
    document_frequency: Counter[str] = Counter()
    total = 0
    for doc in documents:
        total += 1
        for token in dict.fromkeys(tokenize(_document_text(doc))):
            if token not in terms:
                terms[token] = len(terms)
            document_frequency[token] += 1
    vocabulary = Vocabulary(
        terms=terms,
        document_frequency=dict(document_frequency),
        total_documents=total,
    )
    logger.debug(
        "Built vocabulary: %d terms over %d documents", vocabulary.size, total,
    )
    return vocabulary


def idf(term: str, vocabulary: Vocabulary, idf_floor: float = 0.0) -> float:
    """Inverse document frequency of a vocabulary term, floored at ``idf_floor``."""
    df = vocabulary.document_frequency.get(term, 0)
    if df <= 0 or vocabulary.total_documents <= 0:
        return 0.0
    return max(idf_floor, math.log(vocabulary.total_documents / df))


def vectorize(text: str, vocabulary: Vocabulary, idf_floor: float = 0.0) -> dict[str, float]:
    """Sparse TF-IDF vector of ``text``; tokens outside the vocabulary are ignored.

    Term frequency is normalized by the full token count of the text, unknown
    tokens included.
    """
    tokens = tokenize(text)
    if not tokens:
        return {}
    counts = Counter(t for t in tokens if t in vocabulary.terms)
    n_tokens = len(tokens)
    return {
        term: (count / n_tokens) * idf(term, vocabulary, idf_floor)
        for term, count in counts.items()
    }


def text_similarity(
    text_a: str,
    text_b: str,
    vocabulary: Vocabulary,
    idf_floor: float = 0.0,
) -> float:
    """Cosine similarity of two texts' TF-IDF vectors, in [0, 1]."""
    similarity = cosine_similarity(
        vectorize(text_a, vocabulary, idf_floor),
        vectorize(text_b, vocabulary, idf_floor),
    )
    return min(1.0, similarity)
