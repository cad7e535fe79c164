"""
Pluggable scoring of Q&A pairs with a degrading fallback chain.

The engine tries its primary strategy, then each fallback strategy in
order, and finally returns a neutral score. Every downgrade is logged.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from .config import LimitsConfig
from .types import QAPair, ScoringContext, ScoringError, ValidationError
from .validation import (
    safe_error_message,
    validate_qa_pair,
    validate_score,
    validate_scoring_context,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0


@runtime_checkable
class ScoringStrategy(Protocol):
    """
    Protocol for scoring strategies.

    ``calculate_score`` may be a coroutine or a plain function returning a
    number in [0, 100].
    """

    def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> Any:
        ...


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def _validate_against(qa_pair: QAPair, limits: LimitsConfig) -> None:
    validate_qa_pair(qa_pair, limits.max_question_length, limits.max_answer_length)


class BaseScoringStrategy:
    """Answer length weighted by topic depth."""

    def __init__(self, limits: LimitsConfig | None = None):
        self.limits = limits or LimitsConfig()

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        try:
            _validate_against(qa_pair, self.limits)
            validate_scoring_context(context)

            depth_factor = max(1, context.topic_depth)
            base_score = min(100.0, len(qa_pair.answer) / 10)
            adjusted = base_score * (1 + (depth_factor - 1) * 0.1)
            score = float(round(clamp_score(adjusted)))
            validate_score(score)
            return score
        except Exception as e:
            raise ScoringError(
                f"Base scoring strategy failed: {safe_error_message(e)}", e
            ) from e


class LengthOnlyScoringStrategy:
    """Last scoring tier before the neutral score: answer length only."""

    def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        return float(round(min(100.0, max(10.0, len(qa_pair.answer) / 20))))


def _has_scoring_method(strategy: Any) -> bool:
    return strategy is not None and callable(getattr(strategy, "calculate_score", None))


class ScoringEngine:
    """
    Scores Q&A pairs through a primary strategy and an ordered fallback chain.

    Example:
        engine = ScoringEngine(QualityScoringStrategy())
        score = await engine.calculate_score(qa_pair, context)
    """

    def __init__(
        self,
        strategy: ScoringStrategy | None = None,
        fallbacks: Sequence[ScoringStrategy] | None = None,
        neutral_score: float = NEUTRAL_SCORE,
        limits: LimitsConfig | None = None,
    ):
        """
        Initialize ScoringEngine.

        Args:
            strategy: Primary strategy (defaults to BaseScoringStrategy)
            fallbacks: Strategies tried in order when the primary fails
                (defaults to BaseScoringStrategy then LengthOnlyScoringStrategy)
            neutral_score: Returned when every strategy fails
            limits: Question and answer length limits checked before scoring
        """
        validate_score(neutral_score)
        self.limits = limits or LimitsConfig()
        if fallbacks is None:
            fallbacks = [BaseScoringStrategy(self.limits), LengthOnlyScoringStrategy()]
        for fallback in fallbacks:
            if not _has_scoring_method(fallback):
                raise ValidationError(
                    "Fallback strategy must implement calculate_score", "fallbacks", fallback
                )
        self._fallbacks = list(fallbacks)
        self._strategy: ScoringStrategy = BaseScoringStrategy(self.limits)
        self.neutral_score = neutral_score
        if strategy is not None:
            self.set_strategy(strategy)

    @property
    def strategy(self) -> ScoringStrategy:
        return self._strategy

    @property
    def fallbacks(self) -> list[ScoringStrategy]:
        return list(self._fallbacks)

    def set_strategy(self, strategy: ScoringStrategy) -> None:
        """
        Replace the primary strategy.

        Raises:
            ValidationError: If ``strategy`` has no callable ``calculate_score``
        """
        if not _has_scoring_method(strategy):
            raise ValidationError(
                "Strategy must implement calculate_score method", "strategy", strategy
            )
        self._strategy = strategy

    async def calculate_score(self, qa_pair: QAPair, context: ScoringContext) -> float:
        """
        Score ``qa_pair`` in ``context``.

        Returns:
            A score in [0, 100]; the neutral score only if every tier fails

        Raises:
            ScoringError: If the inputs are invalid (before any strategy runs)
        """
        try:
            _validate_against(qa_pair, self.limits)
            validate_scoring_context(context)
        except ValidationError as e:
            raise ScoringError(f"Invalid input for scoring: {safe_error_message(e)}", e) from e

        tiers = [("primary", self._strategy)] + [
            (f"fallback {i + 1}", s) for i, s in enumerate(self._fallbacks)
        ]
        for name, strategy in tiers:
            try:
                return await self._run(strategy, qa_pair, context)
            except Exception as e:
                logger.warning(f"Scoring tier '{name}' failed: {safe_error_message(e)}")

        logger.error(f"All scoring methods failed, using neutral score {self.neutral_score}")
        return self.neutral_score

    async def _run(self, strategy: ScoringStrategy, qa_pair: QAPair, context: ScoringContext) -> float:
        result = strategy.calculate_score(qa_pair, context)
        if inspect.isawaitable(result):
            result = await result
        validate_score(result)
        if result is None:
            raise ValidationError("Strategy returned no score", "score", result)
        return float(result)
