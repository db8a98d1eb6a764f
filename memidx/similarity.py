"""
TF-IDF text similarity for memory search.

Three pure building blocks, composed by memidx.memory:
- **tokenize**: text → term-frequency mapping (lowercase ASCII words, 2+ letters).
- **build_idf**: corpus of term mappings → inverse document frequency table.
- **compute_vector / cosine_similarity**: TF-IDF weighting and ranking score.

No external dependency; standard double-precision arithmetic throughout.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, Iterable, Mapping

# ---------------------------------------------------------------------------
# Tokenization
# ---------------------------------------------------------------------------

# ASCII word boundaries: "abc1" and "x_y" contribute no term
_TERM_RE = re.compile(r"\b[a-z]{2,}\b", re.ASCII)


def tokenize(text: str) -> Dict[str, int]:
    """Map each term of *text* to its occurrence count.

    Steps:
      1. Lowercase
      2. Extract runs of 2+ ASCII letters delimited by word boundaries
      3. Count occurrences

    Digits, punctuation and single letters never form terms.
    Returns an empty dict for empty or term-less input.
    """
    if not text:
        return {}
    return dict(Counter(_TERM_RE.findall(text.lower())))


# ---------------------------------------------------------------------------
# Corpus statistics
# ---------------------------------------------------------------------------


def build_idf(documents: Iterable[Mapping[str, int]]) -> Dict[str, float]:
    """Inverse document frequency over a whole corpus.

    idf(t) = ln(N / df(t))

    where N is the number of documents and df(t) the number of documents
    whose term mapping contains t.  A term present in every document gets
    0.0.  An empty corpus yields an empty table.
    """
    df: Dict[str, int] = {}
    n_docs = 0
    for terms in documents:
        n_docs += 1
        for term in terms:
            df[term] = df.get(term, 0) + 1

    if n_docs == 0:
        return {}
    return {term: math.log(n_docs / count) for term, count in df.items()}


# ---------------------------------------------------------------------------
# Vectors
# ---------------------------------------------------------------------------


def compute_vector(
    term_freq: Mapping[str, int], idf: Mapping[str, float],
) -> Dict[str, float]:
    """TF-IDF vector: raw count × idf weight (unknown terms weigh 0)."""
    return {term: freq * idf.get(term, 0.0) for term, freq in term_freq.items()}


def cosine_similarity(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Cosine of the angle between two sparse vectors.

    Dot product over the union of terms divided by the product of the
    Euclidean norms.  Returns exactly 0.0 if either norm is zero.
    """
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for term in set(a) | set(b):
        va = a.get(term, 0.0)
        vb = b.get(term, 0.0)
        dot += va * vb
        norm_a += va * va
        norm_b += vb * vb

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
