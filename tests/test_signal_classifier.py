"""
Tests for Signal Classifiers
"""

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from models.signal_classifier import (
    CategoryClassifier,
    CategoryRule,
    KeywordExtractor,
    SentimentClassifier,
    TermMatcher,
    signal_text,
    tokenize
)


class TestTokenize:
    """Tests for tokenization helpers."""

    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("New AI-framework, v2!") == ["new", "ai", "framework", "v2"]

    def test_non_strings_yield_no_tokens(self):
        assert tokenize(None) == []
        assert tokenize(42) == []

    def test_signal_text_skips_missing_parts(self):
        assert signal_text("Title", None) == "Title"
        assert signal_text("", "Body") == "Body"
        assert signal_text("Title", "Body") == "Title Body"


class TestTermMatcher:
    """Tests for whole-word matching."""

    def test_whole_word_only(self):
        """'ai' must not fire inside other words."""
        matcher = TermMatcher(["ai"])

        assert matcher.matches(tokenize("He said it was fine")) == []
        assert matcher.matches(tokenize("An AI model")) == ["ai"]

    def test_plural_form_matches(self):
        matcher = TermMatcher(["tool", "framework"])

        assert matcher.matches(tokenize("Great tools and frameworks")) == ["tool", "framework"]

    def test_phrase_terms(self):
        matcher = TermMatcher(["artificial intelligence"])

        assert matcher.count(tokenize("Advances in artificial intelligence")) == 1
        assert matcher.count(tokenize("intelligence that is artificial")) == 0

    def test_each_term_counted_once(self):
        matcher = TermMatcher(["tool"])

        assert matcher.count(tokenize("tool tool tool")) == 1
        assert len(matcher) == 1


class TestSentimentClassifier:
    """Tests for lexicon sentiment."""

    def test_positive(self):
        result = SentimentClassifier().classify("Great library, amazing docs")

        assert result.label == "positive"
        assert result.score == pytest.approx(0.4)
        assert "positive_great" in result.factors

    def test_negative(self):
        result = SentimentClassifier().classify("Frustrated with terrible software, same issue again.")

        assert result.label == "negative"
        assert result.score == pytest.approx(0.6)
        assert result.polarity == pytest.approx(-0.6)

    def test_single_word_crosses_band(self):
        """One lexicon word (0.2) is outside the neutral band (0.1)."""
        assert SentimentClassifier().classify("This is great").label == "positive"
        assert SentimentClassifier().classify("This is a problem").label == "negative"

    def test_mixed_cancels_to_neutral(self):
        result = SentimentClassifier().classify("great but terrible")

        assert result.label == "neutral"
        assert result.score == 0.0

    def test_empty_text_is_neutral(self):
        result = SentimentClassifier().classify(None)

        assert result.label == "neutral"
        assert result.score == 0.0
        assert result.factors == ()

    def test_score_is_capped(self):
        text = "great amazing excellent love fantastic awesome"
        result = SentimentClassifier(word_weight=0.3).classify(text)

        assert result.score == 1.0


class TestCategoryClassifier:
    """Tests for first-match category buckets."""

    def test_ai_wins_over_tools(self):
        result = CategoryClassifier().classify("AI tool for autonomous agents")

        assert result.category == "ai_development"
        assert result.confidence == 0.9

    def test_autonomous_before_developer_tools(self):
        result = CategoryClassifier().classify("Automation framework")

        assert result.category == "autonomous_systems"
        assert result.confidence == 0.8

    def test_developer_tools(self):
        result = CategoryClassifier().classify("A new library for parsing")

        assert result.category == "developer_tools"
        assert result.confidence == 0.7

    def test_fallback(self):
        result = CategoryClassifier().classify("Quarterly billing update")

        assert result.category == "other"
        assert result.confidence == 0.5
        assert result.matched_terms == ()

    def test_custom_rules(self):
        classifier = CategoryClassifier(rules=[CategoryRule("finance", ("billing",), 0.6)])

        assert classifier.classify("billing problem").category == "finance"
        assert classifier.categories == ["finance", "other"]


class TestKeywordExtractor:
    """Tests for tracked keyword extraction."""

    def test_vocabulary_order(self):
        keywords = KeywordExtractor().extract(
            "New AI framework tool for development. Great software system."
        )

        assert keywords == ["ai", "development", "framework", "tool", "system"]

    def test_no_keywords(self):
        assert KeywordExtractor().extract("Nothing relevant here") == []
