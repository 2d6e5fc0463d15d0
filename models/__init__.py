"""
Models Module

Rule-table classifiers used by the scorer:
- Sentiment: lexicon polarity
- Category: ordered keyword buckets
- Keywords: tracked domain vocabulary
"""

from .signal_classifier import (
    CategoryClassifier,
    CategoryResult,
    CategoryRule,
    KeywordExtractor,
    SentimentClassifier,
    SentimentResult,
    TermMatcher,
    signal_text,
    tokenize,
)

__all__ = [
    "CategoryClassifier",
    "CategoryResult",
    "CategoryRule",
    "KeywordExtractor",
    "SentimentClassifier",
    "SentimentResult",
    "TermMatcher",
    "signal_text",
    "tokenize",
]
