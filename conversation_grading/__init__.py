"""
Conversation Grading: topic trees and answer scoring for Q&A conversations.

Ingests question/answer exchanges, grows a hierarchical topic tree from
them and scores every answer, so a conversational front-end can decide
what to ask next.

Provides:
- Pluggable topic analysis and scoring strategies
- Tree navigation queries (deepest unvisited branch, current position)
- Isolated sessions with pluggable persistence
"""

__version__ = "0.1.0"

# Configuration
from .config import (
    AnalyzerConfig,
    GradingConfig,
    LimitsConfig,
    ScoringConfig,
    ScoringWeights,
    SessionConfig,
    default_config,
)

# Façades
from .grading_system import ConversationGradingSystem, TopicSelector, first_topic
from .session_grading_system import (
    AllSessionsStats,
    ConversationGradingSystemWithSessions,
    SessionStats,
)

# Chat integration
from .integration import (
    ChatMessage,
    ConversationGradingIntegration,
    IntegrationConfig,
    ProcessingResult,
    Suggestions,
    convert_chat_messages_to_qa_pairs,
)

# Persistence and sessions
from .persistence import InMemoryPersistenceAdapter, PersistenceAdapter
from .session_manager import SessionManager

# Scoring
from .scoring_engine import (
    BaseScoringStrategy,
    LengthOnlyScoringStrategy,
    ScoringEngine,
    ScoringStrategy,
)
from .scoring_strategies import (
    ComplexityScoringStrategy,
    ContextAwareScoringStrategy,
    FunctionScoringStrategy,
    QualityScoringStrategy,
    WeightedScoringStrategy,
)

# Topic analysis
from .topic_analyzer import FunctionTopicAnalyzer, TopicAnalyzer, TopicAnalyzerProtocol

# Tree
from .topic_node import TopicNode
from .tree_manager import TopicTreeManager
from .tree_navigator import CurrentPosition, TreeNavigator

# Types and errors
from .types import (
    ConversationStats,
    ConversationTree,
    GradingError,
    MemoryStats,
    NodeMetadata,
    NodeNotFoundError,
    PersistenceError,
    QAPair,
    RelationshipType,
    ScoringContext,
    ScoringError,
    SessionInfo,
    SessionNotFoundError,
    TopicRelationship,
    TreeIntegrityError,
    TreeStats,
    ValidationError,
)

__all__ = [
    # Configuration
    "AnalyzerConfig",
    "GradingConfig",
    "LimitsConfig",
    "ScoringConfig",
    "ScoringWeights",
    "SessionConfig",
    "default_config",
    # Façades
    "ConversationGradingSystem",
    "ConversationGradingSystemWithSessions",
    "AllSessionsStats",
    "SessionStats",
    "TopicSelector",
    "first_topic",
    # Chat integration
    "ChatMessage",
    "ConversationGradingIntegration",
    "IntegrationConfig",
    "ProcessingResult",
    "Suggestions",
    "convert_chat_messages_to_qa_pairs",
    # Persistence and sessions
    "InMemoryPersistenceAdapter",
    "PersistenceAdapter",
    "SessionManager",
    # Scoring
    "BaseScoringStrategy",
    "ComplexityScoringStrategy",
    "ContextAwareScoringStrategy",
    "FunctionScoringStrategy",
    "LengthOnlyScoringStrategy",
    "QualityScoringStrategy",
    "ScoringEngine",
    "ScoringStrategy",
    "WeightedScoringStrategy",
    # Topic analysis
    "FunctionTopicAnalyzer",
    "TopicAnalyzer",
    "TopicAnalyzerProtocol",
    # Tree
    "CurrentPosition",
    "TopicNode",
    "TopicTreeManager",
    "TreeNavigator",
    # Types and errors
    "ConversationStats",
    "ConversationTree",
    "GradingError",
    "MemoryStats",
    "NodeMetadata",
    "NodeNotFoundError",
    "PersistenceError",
    "QAPair",
    "RelationshipType",
    "ScoringContext",
    "ScoringError",
    "SessionInfo",
    "SessionNotFoundError",
    "TopicRelationship",
    "TreeIntegrityError",
    "TreeStats",
    "ValidationError",
]
