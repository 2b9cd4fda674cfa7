"""Heuristic emotion estimation from prosodic features and transcript text.

The estimate combines two axes:
1. Arousal: weighted mix of normalized pitch, loudness and speech rate
2. Valence: positive/negative lexicon hits in the transcript

Both are fixed-weight heuristics. Valence scoring is pluggable through
``SentimentScorer`` so a real sentiment model can replace the lexicon.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from .models import EmotionResult

# Normalization references
F0_BASELINE_HZ = 120.0
F0_RANGE_HZ = 120.0
RMS_FULL_SCALE = 0.2
SPEECH_RATE_FULL_SCALE = 8.0  # syllables (morae) per second

# Arousal weights
LOUDNESS_WEIGHT = 0.5
PITCH_WEIGHT = 0.3
RATE_WEIGHT = 0.2

POLARITY_THRESHOLD = 0.15
HIGH_AROUSAL = 0.6
LOW_AROUSAL = 0.4
VALENCE_LABEL_THRESHOLD = 0.2

NUMERIC_FEATURES = ("f0_mean", "rms_mean", "speech_rate")

POSITIVE_TERMS: Tuple[str, ...] = (
    "嬉しい", "うれしい", "楽しい", "たのしい", "ありがとう", "良い", "いいね",
    "最高", "好き", "幸せ", "助かる", "素晴らしい", "安心", "面白い", "よかった",
)

NEGATIVE_TERMS: Tuple[str, ...] = (
    "悲しい", "かなしい", "辛い", "つらい", "疲れ", "嫌", "最悪", "怒",
    "困る", "困った", "不安", "寂しい", "無理", "ムカつく", "残念",
)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass
class SentimentScore:
    valence: float
    positive_hits: int = 0
    negative_hits: int = 0


class SentimentScorer(Protocol):
    def score_text(self, text: str) -> SentimentScore:
        ...


class LexiconSentimentScorer:
    """Counts lexicon term occurrences in the text.

    valence = (pos - neg) / (pos + neg + 1), clamped to [-1, 1].
    """

    def __init__(
        self,
        positive_terms: Tuple[str, ...] = POSITIVE_TERMS,
        negative_terms: Tuple[str, ...] = NEGATIVE_TERMS,
    ):
        self.positive_terms = positive_terms
        self.negative_terms = negative_terms

    def score_text(self, text: str) -> SentimentScore:
        if not text:
            return SentimentScore(valence=0.0)
        lowered = text.lower()
        pos = sum(lowered.count(term) for term in self.positive_terms)
        neg = sum(lowered.count(term) for term in self.negative_terms)
        valence = clamp((pos - neg) / (pos + neg + 1), -1.0, 1.0)
        return SentimentScore(valence=valence, positive_hits=pos, negative_hits=neg)


@dataclass
class EmotionFeatures:
    """Parsed request features. ``supplied`` counts the finite numeric inputs."""

    f0_mean: float = 0.0
    rms_mean: float = 0.0
    speech_rate: float = 0.0
    transcript: str = ""
    supplied: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "EmotionFeatures":
        """Build features from a decoded JSON body.

        Anything other than an object yields all defaults. Absent,
        non-numeric and non-finite values become 0 and are not counted
        as supplied.
        """
        if not isinstance(payload, Mapping):
            return cls()

        values: Dict[str, float] = {}
        supplied = 0
        for name in NUMERIC_FEATURES:
            number = _finite_number(payload.get(name))
            if number is None:
                values[name] = 0.0
            else:
                values[name] = number
                supplied += 1

        transcript = payload.get("transcript")
        return cls(
            transcript=transcript if isinstance(transcript, str) else "",
            supplied=supplied,
            **values,
        )


def _finite_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def polarity_label(valence: float) -> str:
    if valence > POLARITY_THRESHOLD:
        return "positive"
    if valence < -POLARITY_THRESHOLD:
        return "negative"
    return "neutral"


def primary_label(arousal: float, valence: float) -> str:
    # First matching rule wins; high arousal with near-zero valence is calm/neutral
    if arousal >= HIGH_AROUSAL and valence >= VALENCE_LABEL_THRESHOLD:
        return "excited/happy"
    if arousal >= HIGH_AROUSAL and valence <= -VALENCE_LABEL_THRESHOLD:
        return "angry/frustrated"
    if arousal <= LOW_AROUSAL and valence <= -VALENCE_LABEL_THRESHOLD:
        return "sad/tired"
    return "calm/neutral"


class EmotionAnalyzer:
    """Stateless arousal/valence estimator."""

    def __init__(self, sentiment_scorer: Optional[SentimentScorer] = None):
        self.sentiment_scorer = sentiment_scorer or LexiconSentimentScorer()

    def analyze(self, features: EmotionFeatures) -> EmotionResult:
        """Estimate affect for one utterance.

        Args:
            features: Parsed prosodic features and transcript.

        Returns:
            EmotionResult with labels, scores and the normalized features.
        """
        f0_norm = clamp((features.f0_mean - F0_BASELINE_HZ) / F0_RANGE_HZ)
        rms_norm = clamp(features.rms_mean / RMS_FULL_SCALE)
        rate_norm = clamp(features.speech_rate / SPEECH_RATE_FULL_SCALE)

        arousal = clamp(
            LOUDNESS_WEIGHT * rms_norm
            + PITCH_WEIGHT * f0_norm
            + RATE_WEIGHT * rate_norm
        )

        sentiment = self.sentiment_scorer.score_text(features.transcript)
        valence = clamp(sentiment.valence, -1.0, 1.0)

        info_strength = clamp(
            0.4 * arousal
            + 0.3 * abs(valence)
            + 0.3 * (features.supplied / len(NUMERIC_FEATURES))
        )
        confidence = clamp(0.4 + 0.5 * info_strength)

        return EmotionResult(
            primary=primary_label(arousal, valence),
            polarity=polarity_label(valence),
            valence=valence,
            arousal=arousal,
            confidence=confidence,
            features={
                "f0_mean": features.f0_mean,
                "rms_mean": features.rms_mean,
                "speech_rate": features.speech_rate,
                "supplied": features.supplied,
                "f0_norm": f0_norm,
                "rms_norm": rms_norm,
                "rate_norm": rate_norm,
                "positive_hits": sentiment.positive_hits,
                "negative_hits": sentiment.negative_hits,
            },
        )
