"""
Concrete scoring strategies.

Each strategy is stateless and satisfies ``ScoringStrategy``; they share no
base class and can be swapped freely on a ``ScoringEngine``.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

from .config import ScoringWeights
from .scoring_engine import clamp_score
from .types import QAPair, ScoringContext

REASONING_MARKERS = ("because", "therefore", "since")
EXAMPLE_MARKERS = ("example", "for instance")
NUANCE_MARKERS = ("however", "although", "but")
NON_EXPLANATORY_ANSWERS = frozenset({"yes", "no", "maybe"})

TECHNICAL_TERMS = ("algorithm", "implementation", "architecture", "pattern", "framework")

REFERENCE_PHRASES = ("as mentioned", "previously", "earlier", "building on", "following up")
HISTORY_STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were",
})


class QualityScoringStrategy:
    """
    Scores an answer from quality indicators.

    Starts at 50; rewards reasoning, examples, detail and nuance; penalises
    very short and one-word answers.
    """

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        answer = qa_pair.answer.lower()
        score = 50.0

        if any(marker in answer for marker in REASONING_MARKERS):
            score += 15
        if any(marker in answer for marker in EXAMPLE_MARKERS):
            score += 10
        if len(answer) > 100:
            score += 10
        if any(marker in answer for marker in NUANCE_MARKERS):
            score += 5

        if len(answer) < 20:
            score -= 20
        if answer.strip() in NON_EXPLANATORY_ANSWERS:
            score -= 30

        return clamp_score(score)


class ComplexityScoringStrategy:
    """Rewards longer answers on deeper topics and technical vocabulary."""

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        depth_multiplier = min(3.0, context.topic_depth * 0.5)
        base_score = min(70.0, len(qa_pair.answer) / 15)
        complexity_bonus = depth_multiplier * 10

        answer = qa_pair.answer.lower()
        technical_bonus = 5 * sum(1 for term in TECHNICAL_TERMS if term in answer)

        return float(round(clamp_score(base_score + complexity_bonus + technical_bonus)))


class ContextAwareScoringStrategy:
    """
    Rewards answers that build on the earlier conversation.

    The last entry of ``conversation_history`` is the pair being scored and
    is excluded from the comparison.
    """

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        score = 60.0
        previous_answers = [qa.answer.lower() for qa in context.conversation_history[:-1]]
        current_answer = qa_pair.answer.lower()

        if any(phrase in current_answer for phrase in REFERENCE_PHRASES):
            score += 15

        if previous_answers:
            common = self._find_common_words(previous_answers, current_answer)
            score += min(20, len(common) * 2)

        score += min(20.0, len(qa_pair.answer) / 20)
        return float(round(clamp_score(score)))

    def _find_common_words(self, previous_answers: list[str], current_answer: str) -> list[str]:
        def significant(text: str) -> list[str]:
            return [w for w in text.split() if len(w) > 3 and w not in HISTORY_STOP_WORDS]

        previous = set(significant(" ".join(previous_answers)))
        return [w for w in significant(current_answer) if w in previous]


class WeightedScoringStrategy:
    """Weighted composite of length, quality, depth and context scores."""

    def __init__(self, weights: ScoringWeights | None = None):
        self.weights = weights or ScoringWeights()
        self._quality = QualityScoringStrategy()
        self._context = ContextAwareScoringStrategy()

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        length_score = min(100.0, len(qa_pair.answer) / 10)
        quality_score = await self._quality.calculate_score(qa_pair, context)
        depth_score = min(100.0, context.topic_depth * 20.0)
        context_score = await self._context.calculate_score(qa_pair, context)

        w = self.weights
        total = (
            length_score * w.length
            + quality_score * w.quality
            + depth_score * w.depth
            + context_score * w.context
        )
        return float(round(clamp_score(total)))


ScoreFunction = Callable[[QAPair, ScoringContext], "float | Awaitable[float]"]


class FunctionScoringStrategy:
    """Adapts a plain (sync or async) function into a scoring strategy."""

    def __init__(self, score_fn: ScoreFunction):
        self._score_fn = score_fn

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        result = self._score_fn(qa_pair, context)
        if inspect.isawaitable(result):
            result = await result
        return result
