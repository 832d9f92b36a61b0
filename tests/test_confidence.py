import pytest

from streamling.confidence import ConfidenceEvaluator, level_for_score, normalize, score_confidence
from streamling.models import Confidence
from streamling.status import ConfidenceLevel


def test_normalize_strips_punctuation_and_case():
    assert normalize("Hello,   World!\n(Again)") == "hello world again"


@pytest.mark.parametrize(
    "score, level",
    [
        (1.0, ConfidenceLevel.HIGH),
        (0.8, ConfidenceLevel.HIGH),
        (0.79, ConfidenceLevel.MEDIUM),
        (0.5, ConfidenceLevel.MEDIUM),
        (0.49, ConfidenceLevel.LOW),
        (0.0, ConfidenceLevel.LOW),
    ],
)
def test_level_thresholds(score, level):
    assert level_for_score(score) == level


def test_identical_text_scores_high():
    text = "The quick brown fox jumps over the lazy dog."
    confidence = score_confidence(text, text.upper())
    assert confidence.score == 1.0
    assert confidence.level == ConfidenceLevel.HIGH


def test_unrelated_text_scores_low():
    confidence = score_confidence("rivers and mountains", "completely different words")
    assert confidence.score == 0.0
    assert confidence.level == ConfidenceLevel.LOW


def test_empty_text_scores_zero():
    assert score_confidence("", "something").score == 0.0
    assert score_confidence("something", "").score == 0.0


def test_only_the_tail_is_compared():
    ending = "final paragraph about forests"
    original = "alpha beta gamma " * 50 + ending
    truncated_start = "different opening " * 50 + ending
    assert score_confidence(original, truncated_start, tail_length=len(ending)).score == 1.0
    assert score_confidence(original, "alpha beta gamma", tail_length=len(ending)).score == 0.0


def test_partial_overlap_is_jaccard():
    # {a, b, c} vs {b, c, d}: 2 shared out of 4
    confidence = score_confidence("a b c", "b c d")
    assert confidence.score == pytest.approx(0.5)
    assert confidence.level == ConfidenceLevel.MEDIUM


def test_evaluator_retries_low_confidence_until_cap():
    evaluator = ConfidenceEvaluator(max_retries=3)
    low = Confidence(score=0.1, level=ConfidenceLevel.LOW)
    medium = Confidence(score=0.6, level=ConfidenceLevel.MEDIUM)

    assert evaluator.should_retry(confidence=low, retry_count=0)
    assert evaluator.should_retry(confidence=low, retry_count=2)
    assert not evaluator.should_retry(confidence=low, retry_count=3)
    assert not evaluator.should_retry(confidence=medium, retry_count=0)


def test_evaluator_uses_custom_scorer():
    calls = []

    def scorer(original: str, processed: str) -> Confidence:
        calls.append((original, processed))
        return Confidence(score=0.9, level=ConfidenceLevel.HIGH)

    evaluator = ConfidenceEvaluator(scorer=scorer)
    assert evaluator.evaluate(original="x", processed="y").level == ConfidenceLevel.HIGH
    assert calls == [("x", "y")]
