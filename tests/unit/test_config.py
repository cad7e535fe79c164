"""
Unit tests for config module.
"""

import json
import pytest
import sys
import tempfile
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conversation_grading.config import (
    AnalyzerConfig,
    GradingConfig,
    LimitsConfig,
    ScoringConfig,
    ScoringWeights,
    SessionConfig,
    default_config,
)


class TestAnalyzerConfig:
    """Tests for AnalyzerConfig."""

    def test_default_values(self):
        """Thresholds are ordered child > sibling > related."""
        config = AnalyzerConfig()

        assert config.child_similarity_threshold == 0.6
        assert config.sibling_similarity_threshold == 0.4
        assert config.related_similarity_threshold == 0.25
        assert config.continuation_window_seconds == 300.0
        assert config.max_topics == 3


class TestLimitsConfig:
    """Tests for LimitsConfig."""

    def test_default_values(self):
        """Has expected default limits."""
        config = LimitsConfig()

        assert config.max_tree_depth == 50
        assert config.max_tree_size == 10000
        assert config.max_question_length == 10000
        assert config.max_answer_length == 50000
        assert config.max_topic_length == 500
        assert config.max_id_length == 255
        assert config.enforce_security_checks is True


class TestScoringConfig:
    """Tests for ScoringConfig."""

    def test_default_values(self):
        """Neutral score is 50 and weights sum to 1."""
        config = ScoringConfig()

        assert config.neutral_score == 50.0
        weights = config.weights
        assert weights.length + weights.quality + weights.depth + weights.context == pytest.approx(1.0)

    def test_custom_weights(self):
        """Can override individual weights."""
        config = ScoringConfig(weights=ScoringWeights(quality=0.7, context=0.0))

        assert config.weights.quality == 0.7
        assert config.weights.length == 0.3


class TestSessionConfig:
    """Tests for SessionConfig."""

    def test_default_values(self):
        """Auto-save is off and sessions expire after a day."""
        config = SessionConfig()

        assert config.auto_save is False
        assert config.default_max_age_ms == 24 * 60 * 60 * 1000


class TestGradingConfig:
    """Tests for GradingConfig."""

    def test_default_values(self):
        """Has all sub-configs with defaults."""
        config = GradingConfig()

        assert isinstance(config.analyzer, AnalyzerConfig)
        assert isinstance(config.limits, LimitsConfig)
        assert isinstance(config.scoring, ScoringConfig)
        assert isinstance(config.sessions, SessionConfig)

    def test_load_nonexistent_returns_defaults(self):
        """Load from nonexistent file returns defaults."""
        config = GradingConfig.load(Path("/nonexistent/path/config.json"))

        assert config.limits.max_tree_depth == 50
        assert config.sessions.auto_save is False

    def test_load_from_file(self):
        """Can load config from JSON file."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(
                {
                    "analyzer": {"child_similarity_threshold": 0.7},
                    "limits": {"max_tree_depth": 10},
                    "scoring": {"neutral_score": 40, "weights": {"quality": 0.5}},
                    "sessions": {"auto_save": True},
                },
                f,
            )
            f.flush()
            config_path = Path(f.name)

        try:
            config = GradingConfig.load(config_path)

            assert config.analyzer.child_similarity_threshold == 0.7
            assert config.limits.max_tree_depth == 10
            assert config.scoring.neutral_score == 40
            assert config.scoring.weights.quality == 0.5
            assert config.sessions.auto_save is True
            # Non-specified values should be defaults
            assert config.analyzer.sibling_similarity_threshold == 0.4
            assert config.scoring.weights.length == 0.3
        finally:
            config_path.unlink()

    def test_save_and_load_roundtrip(self):
        """Config survives save/load roundtrip."""
        original = GradingConfig(
            limits=LimitsConfig(max_tree_size=500, enforce_security_checks=False),
            sessions=SessionConfig(default_max_age_ms=60_000),
        )

        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"
            original.save(config_path)
            loaded = GradingConfig.load(config_path)

        assert loaded == original

    def test_save_creates_parent_dirs(self):
        """Save creates parent directories if needed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "nested" / "dir" / "config.json"
            GradingConfig().save(config_path)

            assert config_path.exists()

    def test_default_path_from_env(self, monkeypatch, tmp_path):
        """Environment variable overrides the default location."""
        target = tmp_path / "custom.json"
        monkeypatch.setenv("CONVERSATION_GRADING_CONFIG", str(target))

        assert GradingConfig.default_path() == target

    def test_default_path_in_home(self, monkeypatch):
        """Without the environment variable the file lives in the home directory."""
        monkeypatch.delenv("CONVERSATION_GRADING_CONFIG", raising=False)

        path = GradingConfig.default_path()

        assert path.name == "config.json"
        assert path.parent.name == ".conversation-grading"


class TestDefaultConfig:
    """Tests for module-level default config."""

    def test_default_config_exists(self):
        """default_config is a GradingConfig."""
        assert isinstance(default_config, GradingConfig)
