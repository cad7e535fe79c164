"""
Unit tests for types module.
"""

import pytest
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import pydantic

from conversation_grading.types import (
    ConversationStats,
    ConversationTree,
    GradingError,
    NodeMetadata,
    NodeNotFoundError,
    PersistenceError,
    QAPair,
    RelationshipType,
    ScoringError,
    SessionInfo,
    SessionNotFoundError,
    TopicRelationship,
    TreeIntegrityError,
    ValidationError,
    utcnow,
)


class TestQAPair:
    """Tests for QAPair dataclass."""

    def test_defaults(self):
        """Timestamp defaults to now; metadata to None."""
        before = utcnow()
        pair = QAPair(question="Why?", answer="Because.")

        assert pair.timestamp >= before
        assert pair.timestamp.tzinfo is not None
        assert pair.metadata is None


class TestNodeMetadata:
    """Tests for NodeMetadata dataclass."""

    def test_defaults(self):
        """Starts unvisited with no pairs."""
        meta = NodeMetadata()

        assert meta.qa_pairs == []
        assert meta.visit_count == 0
        assert meta.last_visited is None
        assert meta.is_exhausted is False

    def test_lists_not_shared(self):
        """Each instance gets its own list."""
        a, b = NodeMetadata(), NodeMetadata()
        a.qa_pairs.append(QAPair("q", "a"))

        assert b.qa_pairs == []


class TestConversationTree:
    """Tests for ConversationTree dataclass."""

    def test_empty_tree(self):
        """New tree is empty."""
        tree = ConversationTree(session_id="s1")

        assert tree.nodes == {}
        assert tree.root_nodes == []
        assert tree.current_path == []
        assert isinstance(tree.created_at, datetime)


class TestSessionInfo:
    """Tests for SessionInfo dataclass."""

    def test_defaults(self):
        info = SessionInfo(session_id="s1")

        assert info.metadata == {}
        assert info.created_at <= info.last_accessed_at


class TestTopicRelationship:
    """Tests for TopicRelationship model."""

    def test_defaults(self):
        relation = TopicRelationship(type=RelationshipType.NEW_ROOT)

        assert relation.parent_node_id is None
        assert relation.related_node_id is None
        assert relation.confidence == 1.0

    def test_type_from_string(self):
        """Type accepts the string value."""
        relation = TopicRelationship(type="child_of", parent_node_id="n1", confidence=0.7)

        assert relation.type is RelationshipType.CHILD_OF
        assert relation.type == "child_of"

    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test_confidence_bounds(self, confidence):
        """Confidence outside [0, 1] is rejected."""
        with pytest.raises(pydantic.ValidationError):
            TopicRelationship(type=RelationshipType.NEW_ROOT, confidence=confidence)

    def test_unknown_type_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            TopicRelationship(type="cousin_of")


class TestStats:
    """Tests for stats dataclasses."""

    def test_conversation_stats_extends_tree_stats(self):
        stats = ConversationStats(total_nodes=3, total_qa_pairs=4, average_score=70.0)

        assert stats.total_nodes == 3
        assert stats.root_nodes == 0
        assert stats.total_qa_pairs == 4
        assert stats.average_score == 70.0


class TestErrors:
    """Tests for the error hierarchy."""

    def test_all_derive_from_grading_error(self):
        for error_cls in (
            ValidationError,
            TreeIntegrityError,
            ScoringError,
            NodeNotFoundError,
            SessionNotFoundError,
            PersistenceError,
        ):
            assert issubclass(error_cls, GradingError)

    def test_validation_error_fields(self):
        error = ValidationError("bad score", "score", 150)

        assert str(error) == "bad score"
        assert error.field == "score"
        assert error.value == 150

    def test_tree_integrity_error_node_id(self):
        error = TreeIntegrityError("broken", "n1")

        assert error.node_id == "n1"

    def test_scoring_error_cause(self):
        cause = RuntimeError("boom")
        error = ScoringError("scoring failed", cause)

        assert error.cause is cause

    def test_not_found_errors_are_key_errors(self):
        """Not-found errors can be caught as KeyError."""
        with pytest.raises(KeyError):
            raise NodeNotFoundError("n1")
        with pytest.raises(KeyError):
            raise SessionNotFoundError("s1")

    def test_not_found_messages_are_plain(self):
        """Messages are not wrapped in quotes like a bare KeyError."""
        assert str(NodeNotFoundError("n1")) == "Node with ID n1 not found"
        assert str(SessionNotFoundError("s1")) == "Session s1 not found"

    def test_persistence_error_fields(self):
        cause = ValueError("bad json")
        error = PersistenceError("load failed", "s1", cause)

        assert error.session_id == "s1"
        assert error.cause is cause
