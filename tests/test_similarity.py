"""
Tests for memidx.similarity — tokenizer, IDF table, TF-IDF vectors, cosine.
"""

import math

import pytest
from memidx.similarity import (
    build_idf,
    compute_vector,
    cosine_similarity,
    tokenize,
)


# ── Tokenize ───────────────────────────────────────────────────────────────


class TestTokenize:
    def test_case_folding(self):
        assert tokenize("Cat cat CATS") == {"cat": 2, "cats": 1}

    def test_short_and_digit_tokens_dropped(self):
        assert tokenize("a1 I go") == {"go": 1}

    def test_empty(self):
        assert tokenize("") == {}

    def test_no_terms(self):
        assert tokenize("1 2 3 ... ! ?") == {}

    def test_punctuation_splits_terms(self):
        assert tokenize("hello,world! event-sourcing") == {
            "hello": 1, "world": 1, "event": 1, "sourcing": 1,
        }

    def test_letters_glued_to_digits_excluded(self):
        assert tokenize("abc1 x2y python3 go") == {"go": 1}

    def test_underscore_joins_word(self):
        assert tokenize("snake_case word") == {"word": 1}

    def test_non_ascii_letters_break_runs(self):
        # "é" is not an ASCII letter: "café" yields only "caf"
        assert tokenize("café") == {"caf": 1}

    def test_deterministic(self):
        text = "The quick brown fox jumps over the lazy dog the end"
        assert tokenize(text) == tokenize(text)
        assert tokenize(text)["the"] == 3


# ── IDF ────────────────────────────────────────────────────────────────────


class TestBuildIdf:
    def test_empty_corpus(self):
        assert build_idf([]) == {}

    def test_universal_term_is_zero(self):
        idf = build_idf([{"cat": 1, "dog": 2}, {"cat": 5}, {"cat": 1, "fox": 1}])
        assert idf["cat"] == 0.0

    def test_rare_term(self):
        idf = build_idf([{"cat": 1}, {"dog": 1}, {"dog": 3}, {"dog": 1}])
        assert idf["cat"] == pytest.approx(math.log(4))
        assert idf["dog"] == pytest.approx(math.log(4 / 3))

    def test_document_frequency_not_term_frequency(self):
        # 10 occurrences in one doc still count once
        idf = build_idf([{"cat": 10}, {"dog": 1}])
        assert idf["cat"] == pytest.approx(math.log(2))

    def test_single_document(self):
        idf = build_idf([{"only": 3, "terms": 1}])
        assert idf == {"only": 0.0, "terms": 0.0}

    def test_accepts_generator(self):
        idf = build_idf(d for d in [{"a": 1}, {"b": 1}])
        assert set(idf) == {"a", "b"}


# ── Vectors ────────────────────────────────────────────────────────────────


class TestComputeVector:
    def test_weights(self):
        vec = compute_vector({"cat": 2, "dog": 1}, {"cat": 0.5, "dog": 2.0})
        assert vec == {"cat": 1.0, "dog": 2.0}

    def test_unknown_term_weighs_zero(self):
        vec = compute_vector({"cat": 2, "zebra": 4}, {"cat": 1.0})
        assert vec["cat"] == 2.0
        assert vec.get("zebra", 0.0) == 0.0

    def test_empty(self):
        assert compute_vector({}, {"cat": 1.0}) == {}


class TestCosineSimilarity:
    def test_self_similarity(self):
        v = {"cat": 1.5, "dog": 0.3, "fox": 2.0}
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_zero_vector(self):
        v = {"cat": 1.0}
        assert cosine_similarity(v, {}) == 0.0
        assert cosine_similarity({}, v) == 0.0
        assert cosine_similarity({"cat": 0.0}, v) == 0.0

    def test_both_zero(self):
        assert cosine_similarity({}, {}) == 0.0

    def test_orthogonal(self):
        assert cosine_similarity({"cat": 1.0}, {"dog": 1.0}) == 0.0

    def test_known_angle(self):
        # (1, 1) vs (1, 0) → cos 45°
        score = cosine_similarity({"a": 1.0, "b": 1.0}, {"a": 1.0})
        assert score == pytest.approx(1 / math.sqrt(2))

    def test_symmetric(self):
        a = {"x": 0.2, "y": 3.0}
        b = {"y": 1.0, "z": 4.0}
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_range(self):
        a = {"x": 0.2, "y": 3.0}
        b = {"y": 1.0, "z": 4.0}
        assert 0.0 <= cosine_similarity(a, b) <= 1.0

    def test_scale_invariant(self):
        a = {"x": 1.0, "y": 2.0}
        b = {"x": 10.0, "y": 20.0}
        assert cosine_similarity(a, b) == pytest.approx(1.0)
