"""
Heuristic confidence that a response covers its document through to the end.

Compares the trailing window of the original text with the trailing window of
the response using a Jaccard similarity of their unique normalized words.
"""

from __future__ import annotations

import re
import typing as t

import structlog

from streamling.models import Confidence
from streamling.status import ConfidenceLevel

log = structlog.get_logger(__name__)

DEFAULT_TAIL_LENGTH = 250
HIGH_THRESHOLD = 0.8
MEDIUM_THRESHOLD = 0.5

_NON_WORD = re.compile(r"[^\w\s]+|_+")
_WHITESPACE = re.compile(r"\s+")

Scorer = t.Callable[[str, str], Confidence]


def normalize(text: str) -> str:
    """
    Lowercase, replace punctuation and symbols by spaces, collapse whitespace.
    """
    lowered = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def _word_set(text: str) -> set[str]:
    return {word for word in text.split(" ") if word}


def level_for_score(score: float) -> ConfidenceLevel:
    if score >= HIGH_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def score_confidence(
    original: str,
    processed: str,
    tail_length: int = DEFAULT_TAIL_LENGTH,
) -> Confidence:
    """
    Score how well the end of ``processed`` matches the end of ``original``.

    Parameters
    ----------
    original : str
        Original document text.
    processed : str
        Model response text.
    tail_length : int, optional
        Number of trailing normalized characters to compare.

    Returns
    -------
    Confidence
        Jaccard score in ``[0, 1]`` and its level. Empty tails score ``0``.
    """
    original_words = _word_set(normalize(original)[-tail_length:])
    processed_words = _word_set(normalize(processed)[-tail_length:])
    if not original_words or not processed_words:
        return Confidence(score=0.0, level=ConfidenceLevel.LOW)

    intersection = len(original_words & processed_words)
    union = len(original_words) + len(processed_words) - intersection
    score = intersection / union if union else 0.0
    return Confidence(score=score, level=level_for_score(score))


class ConfidenceEvaluator:
    """
    Decide whether a successful output should be retried for low confidence.

    Parameters
    ----------
    scorer : Scorer | None, optional
        Pure function ``(original, processed) -> Confidence``. Defaults to
        ``score_confidence`` with ``tail_length``.
    tail_length : int, optional
        Tail length passed to the default scorer.
    max_retries : int, optional
        Maximum number of low-confidence retries per job.
    """

    def __init__(
        self,
        scorer: Scorer | None = None,
        tail_length: int = DEFAULT_TAIL_LENGTH,
        max_retries: int = 3,
    ) -> None:
        if scorer is None:

            def scorer(original: str, processed: str) -> Confidence:
                return score_confidence(original, processed, tail_length=tail_length)

        self._scorer = scorer
        self._max_retries = max_retries

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def evaluate(self, *, original: str, processed: str) -> Confidence:
        return self._scorer(original, processed)

    def should_retry(self, *, confidence: Confidence, retry_count: int) -> bool:
        """
        Return ``True`` when the output is low confidence and retries remain.

        Parameters
        ----------
        confidence : Confidence
            Score of the latest output.
        retry_count : int
            Low-confidence retries already performed for the job.
        """
        return confidence.level == ConfidenceLevel.LOW and retry_count < self._max_retries
