"""
Signal Classifier Module

Heuristic classifiers for incoming signals, each expressed as a small,
ordered rule table so the rules are data rather than control flow:

- Sentiment: lexicon polarity (positive/negative/neutral)
- Category: first-match keyword buckets with a fixed confidence per bucket
- Keywords: hits against the tracked domain vocabulary

Matching is done on whole words of the lowercased title + description,
with a trailing plural "s" accepted, so "ai" does not fire inside "said"
while "tools" still counts as "tool". Multi-word terms match as phrases.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase word tokens of text; non-strings yield no tokens."""
    if not isinstance(text, str):
        return []
    return _TOKEN_PATTERN.findall(text.lower())


def signal_text(title: Optional[str], description: Optional[str]) -> str:
    """Title and description joined the way every classifier reads them."""
    parts = [p for p in (title, description) if isinstance(p, str) and p]
    return " ".join(parts)


class TermMatcher:
    """
    Whole-word matcher for a fixed vocabulary.

    Single-word terms match a token or its plural; multi-word terms match
    consecutive tokens.
    """

    def __init__(self, terms: Sequence[str]):
        self.terms: Tuple[str, ...] = tuple(t.lower() for t in terms)
        self._phrases: Dict[str, Tuple[str, ...]] = {
            t: tuple(tokenize(t)) for t in self.terms
        }

    @staticmethod
    def _token_set(tokens: Sequence[str]) -> FrozenSet[str]:
        variants = set(tokens)
        variants.update(t[:-1] for t in tokens if len(t) > 2 and t.endswith("s"))
        return frozenset(variants)

    def _phrase_present(self, phrase: Tuple[str, ...], tokens: Sequence[str]) -> bool:
        n = len(phrase)
        return any(tuple(tokens[i:i + n]) == phrase for i in range(len(tokens) - n + 1))

    def matches(self, tokens: Sequence[str]) -> List[str]:
        """Vocabulary terms present in tokens, in vocabulary order."""
        token_set = self._token_set(tokens)
        found = []
        for term in self.terms:
            phrase = self._phrases[term]
            if not phrase:
                continue
            if len(phrase) == 1:
                if phrase[0] in token_set:
                    found.append(term)
            elif self._phrase_present(phrase, tokens):
                found.append(term)
        return found

    def count(self, tokens: Sequence[str]) -> int:
        return len(self.matches(tokens))

    def __len__(self) -> int:
        return len(self.terms)


# ============================================================
# Sentiment
# ============================================================

POSITIVE_WORDS = ("great", "amazing", "excellent", "love", "fantastic", "awesome")
NEGATIVE_WORDS = ("frustrated", "hate", "terrible", "awful", "problem", "issue")


@dataclass(frozen=True)
class SentimentResult:
    """Polarity label plus its magnitude."""
    label: str          # positive, negative, neutral
    score: float        # |polarity|, capped at 1.0
    polarity: float     # signed sum of word contributions
    factors: Tuple[str, ...] = ()


class SentimentClassifier:
    """
    Lexicon-based sentiment.

    Every lexicon word present adds +/- word_weight to the polarity.
    Polarity above +neutral_band is positive, below -neutral_band negative.
    """

    def __init__(
        self,
        positive_words: Sequence[str] = POSITIVE_WORDS,
        negative_words: Sequence[str] = NEGATIVE_WORDS,
        word_weight: float = 0.2,
        neutral_band: float = 0.1
    ):
        self.positive = TermMatcher(positive_words)
        self.negative = TermMatcher(negative_words)
        self.word_weight = word_weight
        self.neutral_band = neutral_band

    def classify_tokens(self, tokens: Sequence[str]) -> SentimentResult:
        pos_hits = self.positive.matches(tokens)
        neg_hits = self.negative.matches(tokens)

        polarity = self.word_weight * (len(pos_hits) - len(neg_hits))
        # Guard against float residue around the band edges
        polarity = round(polarity, 10)

        if polarity > self.neutral_band:
            label = "positive"
        elif polarity < -self.neutral_band:
            label = "negative"
        else:
            label = "neutral"

        factors = tuple(
            [f"positive_{w}" for w in pos_hits] + [f"negative_{w}" for w in neg_hits]
        )
        return SentimentResult(
            label=label,
            score=min(abs(polarity), 1.0),
            polarity=polarity,
            factors=factors
        )

    def classify(self, text: Optional[str]) -> SentimentResult:
        """
        Classify the sentiment of text.

        Args:
            text: Free text (title + description)

        Returns:
            SentimentResult with label and magnitude
        """
        return self.classify_tokens(tokenize(text))


# ============================================================
# Category
# ============================================================

@dataclass(frozen=True)
class CategoryRule:
    """One keyword bucket. Earlier rules win ties."""
    category: str
    keywords: Tuple[str, ...]
    confidence: float


# Ordered by priority: first match wins
DEFAULT_CATEGORY_RULES: Tuple[CategoryRule, ...] = (
    CategoryRule("ai_development", ("ai", "artificial intelligence"), 0.9),
    CategoryRule("autonomous_systems", ("autonomous", "automation"), 0.8),
    CategoryRule("developer_tools", ("tool", "framework", "library"), 0.7),
)

FALLBACK_CATEGORY = "other"
FALLBACK_CONFIDENCE = 0.5


@dataclass(frozen=True)
class CategoryResult:
    category: str
    confidence: float
    matched_terms: Tuple[str, ...] = ()


class CategoryClassifier:
    """First-match classification against ordered keyword buckets."""

    def __init__(
        self,
        rules: Sequence[CategoryRule] = DEFAULT_CATEGORY_RULES,
        fallback_category: str = FALLBACK_CATEGORY,
        fallback_confidence: float = FALLBACK_CONFIDENCE
    ):
        self.rules = tuple(rules)
        self._matchers = [TermMatcher(rule.keywords) for rule in self.rules]
        self.fallback_category = fallback_category
        self.fallback_confidence = fallback_confidence

    def classify_tokens(self, tokens: Sequence[str]) -> CategoryResult:
        for rule, matcher in zip(self.rules, self._matchers):
            hits = matcher.matches(tokens)
            if hits:
                return CategoryResult(rule.category, rule.confidence, tuple(hits))
        return CategoryResult(self.fallback_category, self.fallback_confidence)

    def classify(self, text: Optional[str]) -> CategoryResult:
        return self.classify_tokens(tokenize(text))

    @property
    def categories(self) -> List[str]:
        return [rule.category for rule in self.rules] + [self.fallback_category]


# ============================================================
# Keywords
# ============================================================

TRACKED_KEYWORDS = (
    "ai", "autonomous", "development", "framework", "tool", "system", "automation"
)


@dataclass
class KeywordExtractor:
    """Extracts tracked domain keywords present in a signal's text."""
    vocabulary: Sequence[str] = TRACKED_KEYWORDS
    _matcher: TermMatcher = field(init=False, repr=False)

    def __post_init__(self):
        self._matcher = TermMatcher(self.vocabulary)

    def extract_tokens(self, tokens: Sequence[str]) -> List[str]:
        return self._matcher.matches(tokens)

    def extract(self, text: Optional[str]) -> List[str]:
        return self.extract_tokens(tokenize(text))
