"""
Shared type definitions for the conversation grading system.

Tree entities are addressed by string id through a shared node map, so
these records never hold references to one another.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .topic_node import TopicNode


def utcnow() -> datetime:
    """Timezone-aware current time used for every timestamp."""
    return datetime.now(timezone.utc)


@dataclass
class QAPair:
    """A single question/answer exchange."""

    question: str
    answer: str
    timestamp: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] | None = None


@dataclass
class NodeMetadata:
    """Conversation bookkeeping attached to a topic node."""

    qa_pairs: list[QAPair] = field(default_factory=list)
    visit_count: int = 0
    last_visited: datetime | None = None
    is_exhausted: bool = False


@dataclass
class ConversationTree:
    """
    Complete conversation tree for one session.

    ``nodes`` is the arena; ``root_nodes`` and ``current_path`` hold ids into it.
    """

    session_id: str
    nodes: dict[str, TopicNode] = field(default_factory=dict)
    root_nodes: list[str] = field(default_factory=list)
    current_path: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ScoringContext:
    """Context handed to scoring strategies."""

    current_topic: TopicNode
    conversation_history: list[QAPair]
    topic_depth: int


@dataclass
class SessionInfo:
    """Lifecycle record for a session, tracked apart from its tree."""

    session_id: str
    created_at: datetime = field(default_factory=utcnow)
    last_accessed_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)


class RelationshipType(str, Enum):
    """How a new topic relates to the existing tree."""

    NEW_ROOT = "new_root"
    CHILD_OF = "child_of"
    SIBLING_OF = "sibling_of"
    CONTINUATION = "continuation"


class TopicRelationship(BaseModel):
    """Result of relationship classification."""

    type: RelationshipType
    parent_node_id: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    related_node_id: str | None = None


@dataclass
class TreeStats:
    """Structural statistics of a tree."""

    total_nodes: int = 0
    root_nodes: int = 0
    max_depth: int = 0
    leaf_nodes: int = 0


@dataclass
class ConversationStats(TreeStats):
    """Tree statistics plus conversation totals."""

    total_qa_pairs: int = 0
    average_score: float | None = None


@dataclass
class MemoryStats:
    """Memory usage across all live sessions."""

    total_sessions: int = 0
    total_nodes: int = 0
    average_nodes_per_session: float = 0.0
    oldest_session: datetime | None = None
    newest_session: datetime | None = None


# Grading Error Classes


class GradingError(Exception):
    """Base class for conversation grading errors."""

    pass


class ValidationError(GradingError):
    """Input failed validation."""

    def __init__(self, message: str, field: str | None = None, value: Any = None):
        self.field = field
        self.value = value
        super().__init__(message)


class TreeIntegrityError(GradingError):
    """Tree structure is (or would become) inconsistent."""

    def __init__(self, message: str, node_id: str | None = None):
        self.node_id = node_id
        super().__init__(message)


class ScoringError(GradingError):
    """Scoring could not be performed."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)


class NodeNotFoundError(GradingError, KeyError):
    """Referenced node id is not in the tree."""

    def __init__(self, node_id: str, message: str | None = None):
        self.node_id = node_id
        super().__init__(message or f"Node with ID {node_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class SessionNotFoundError(GradingError, KeyError):
    """Referenced session id is unknown."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")

    def __str__(self) -> str:
        return self.args[0]


class PersistenceError(GradingError):
    """A persistence adapter operation failed."""

    def __init__(
        self, message: str, session_id: str | None = None, cause: BaseException | None = None
    ):
        self.session_id = session_id
        self.cause = cause
        super().__init__(message)
