"""
Configuration management for the conversation grading system.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path


@dataclass
class AnalyzerConfig:
    """
    Thresholds for the default topic analyzer.

    Similarity scores are in [0, 1]; child > sibling > related.
    """

    child_similarity_threshold: float = 0.6
    sibling_similarity_threshold: float = 0.4
    related_similarity_threshold: float = 0.25
    continuation_window_seconds: float = 300.0
    max_topics: int = 3


@dataclass
class LimitsConfig:
    """Size and content limits enforced on input and on the tree."""

    max_tree_depth: int = 50
    max_tree_size: int = 10000
    max_question_length: int = 10000
    max_answer_length: int = 50000
    max_topic_length: int = 500
    max_id_length: int = 255
    enforce_security_checks: bool = True


@dataclass
class ScoringWeights:
    """Weights of the composite scoring strategy."""

    length: float = 0.3
    quality: float = 0.4
    depth: float = 0.2
    context: float = 0.1


@dataclass
class ScoringConfig:
    """Configuration for the scoring engine."""

    neutral_score: float = 50.0
    weights: ScoringWeights = field(default_factory=ScoringWeights)


@dataclass
class SessionConfig:
    """Configuration for session lifecycle."""

    auto_save: bool = False
    default_max_age_ms: int = 24 * 60 * 60 * 1000


@dataclass
class GradingConfig:
    """Complete grading configuration."""

    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    sessions: SessionConfig = field(default_factory=SessionConfig)

    @staticmethod
    def default_path() -> Path:
        """Config file location, overridable via CONVERSATION_GRADING_CONFIG."""
        env_path = os.environ.get("CONVERSATION_GRADING_CONFIG")
        if env_path:
            return Path(env_path)
        return Path.home() / ".conversation-grading" / "config.json"

    @classmethod
    def load(cls, path: Path | None = None) -> "GradingConfig":
        """Load configuration from file."""
        if path is None:
            path = cls.default_path()

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        scoring_data = dict(data.get("scoring", {}))
        weights = ScoringWeights(**scoring_data.pop("weights", {}))

        return cls(
            analyzer=AnalyzerConfig(**data.get("analyzer", {})),
            limits=LimitsConfig(**data.get("limits", {})),
            scoring=ScoringConfig(weights=weights, **scoring_data),
            sessions=SessionConfig(**data.get("sessions", {})),
        )

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = self.default_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)


# Default configuration instance
default_config = GradingConfig()
