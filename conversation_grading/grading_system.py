"""
Single-session conversation grading façade.

Composes the topic analyzer, tree manager and scoring engine into the
add-a-Q&A-pair pipeline:

    validate -> extract topic -> classify relationship -> score -> attach

Validation happens before the tree is touched, so a rejected pair leaves
no trace.
"""

from __future__ import annotations

import copy
import inspect
import logging
import time
import uuid
from collections.abc import Callable, Sequence

from .config import GradingConfig
from .scoring_engine import ScoringEngine, ScoringStrategy
from .topic_analyzer import DEFAULT_TOPIC, TopicAnalyzer, TopicAnalyzerProtocol
from .topic_node import TopicNode
from .tree_manager import TopicTreeManager
from .tree_navigator import CurrentPosition
from .types import (
    ConversationStats,
    ConversationTree,
    GradingError,
    NodeNotFoundError,
    QAPair,
    RelationshipType,
    ScoringContext,
    TopicRelationship,
    TreeIntegrityError,
    ValidationError,
)
from .validation import (
    check_security_constraints,
    safe_error_message,
    sanitize_qa_pair,
    validate_node_id,
    validate_qa_pair,
    validate_score,
    validate_topic_name,
    validate_tree_size,
)

logger = logging.getLogger(__name__)

FALLBACK_TOPIC = "conversation topic"
FALLBACK_RELATIONSHIP_CONFIDENCE = 0.5
# Minimum confidence for attaching a parentless child_of/continuation to the current topic
HIERARCHY_CONFIDENCE = 0.4

TopicSelector = Callable[[list[str]], str]


def first_topic(topics: list[str]) -> str:
    """Default topic selection policy: the analyzer's top-ranked candidate."""
    return topics[0]


def generate_node_id() -> str:
    return f"node_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class ConversationGradingSystem:
    """
    Grades one conversation by building its topic tree.

    Example:
        system = ConversationGradingSystem("interview-42")
        node_id = await system.add_qa_pair(QAPair("What is machine learning?", answer))
        next_topic = system.get_deepest_unvisited_branch()
    """

    def __init__(
        self,
        session_id: str = "default",
        config: GradingConfig | None = None,
        scoring_strategy: ScoringStrategy | None = None,
        topic_analyzer: TopicAnalyzerProtocol | None = None,
        topic_selector: TopicSelector | None = None,
    ):
        """
        Initialize ConversationGradingSystem.

        Args:
            session_id: Session the conversation belongs to
            config: Grading configuration (defaults to GradingConfig())
            scoring_strategy: Primary scoring strategy
            topic_analyzer: Topic analyzer (defaults to TopicAnalyzer)
            topic_selector: Picks the node topic from the extracted candidates

        Raises:
            ValidationError: If session_id is malformed
        """
        self.config = config or GradingConfig()
        self._tree_manager = TopicTreeManager(session_id, self.config.limits)
        self._scoring_engine = ScoringEngine(
            scoring_strategy,
            neutral_score=self.config.scoring.neutral_score,
            limits=self.config.limits,
        )
        self._topic_analyzer: TopicAnalyzerProtocol = topic_analyzer or TopicAnalyzer(
            self.config.analyzer
        )
        self._select_topic: TopicSelector = topic_selector or first_topic

    @property
    def session_id(self) -> str:
        return self._tree_manager.session_id

    @property
    def tree_manager(self) -> TopicTreeManager:
        return self._tree_manager

    @property
    def scoring_engine(self) -> ScoringEngine:
        return self._scoring_engine

    @property
    def topic_analyzer(self) -> TopicAnalyzerProtocol:
        return self._topic_analyzer

    # =========================================================================
    # Processing
    # =========================================================================

    async def add_qa_pair(
        self, qa_pair: QAPair, score: float | None = None, *, auto_score: bool = True
    ) -> str:
        """
        Add a Q&A pair to the conversation tree.

        The pair becomes a new topic node placed according to the analyzer's
        relationship classification, scored (unless ``score`` is given) and
        appended to the current path.

        Args:
            qa_pair: The exchange to add
            score: Score override; skips the scoring engine
            auto_score: When False and no score is given, the node stays unscored

        Returns:
            Id of the new node

        Raises:
            ValidationError: If the pair or the score is invalid, or a limit is hit
            TreeIntegrityError: If the node could not be attached consistently
        """
        limits = self.config.limits
        validate_qa_pair(qa_pair, limits.max_question_length, limits.max_answer_length)
        validate_score(score)
        if limits.enforce_security_checks:
            check_security_constraints(qa_pair.question)
            check_security_constraints(qa_pair.answer)

        sanitized = sanitize_qa_pair(
            qa_pair,
            max_question_length=limits.max_question_length,
            max_answer_length=limits.max_answer_length,
        )
        validate_tree_size(self._tree_manager.node_count() + 1, limits.max_tree_size)

        topic = await self._extract_primary_topic(sanitized)
        existing_nodes = self._tree_manager.get_all_nodes()
        relationship = self._determine_relationship(topic, existing_nodes)
        parent = self._resolve_parent(relationship, existing_nodes)

        node = TopicNode(
            id=generate_node_id(),
            topic=topic,
            parent_topic=parent.id if parent else None,
            depth=parent.depth + 1 if parent else 1,
        )
        node.add_qa_pair(sanitized)

        if score is None and auto_score:
            context = ScoringContext(
                current_topic=copy.deepcopy(node),
                conversation_history=self.get_conversation_history() + [sanitized],
                topic_depth=node.depth,
            )
            score = await self._scoring_engine.calculate_score(sanitized, context)
        if score is not None:
            node.update_score(score)

        self._tree_manager.add_node(node)
        try:
            path = [a.id for a in reversed(self._tree_manager.get_ancestors(node.id))]
            self._tree_manager.set_current_path(path + [node.id])
            self._tree_manager.check_integrity()
        except GradingError as e:
            logger.error(f"Rolling back node {node.id}: {safe_error_message(e)}")
            self._tree_manager.remove_node(node.id)
            raise TreeIntegrityError(
                f"Tree integrity compromised after adding node: {safe_error_message(e)}",
                node.id,
            ) from e

        return node.id

    async def _extract_primary_topic(self, qa_pair: QAPair) -> str:
        try:
            topics = self._topic_analyzer.extract_topics(qa_pair)
            if inspect.isawaitable(topics):
                topics = await topics
            if not topics:
                raise ValueError("No topics extracted from Q&A pair")
            topic = self._select_topic(list(topics))
            validate_topic_name(topic, self.config.limits.max_topic_length)
            return topic
        except Exception as e:
            logger.warning(f"Topic analysis failed, using fallback: {safe_error_message(e)}")
            return self._fallback_topic(qa_pair)

    def _fallback_topic(self, qa_pair: QAPair) -> str:
        topic = " ".join(qa_pair.question.split()[:3]).lower()
        if not topic:
            return DEFAULT_TOPIC
        try:
            validate_topic_name(topic, self.config.limits.max_topic_length)
        except ValidationError:
            return FALLBACK_TOPIC
        return topic

    def _determine_relationship(
        self, topic: str, existing_nodes: Sequence[TopicNode]
    ) -> TopicRelationship:
        try:
            return self._topic_analyzer.determine_relationship(topic, existing_nodes)
        except Exception as e:
            logger.warning(
                f"Relationship analysis failed, defaulting to new root: {safe_error_message(e)}"
            )
            return TopicRelationship(
                type=RelationshipType.NEW_ROOT, confidence=FALLBACK_RELATIONSHIP_CONFIDENCE
            )

    def _resolve_parent(
        self, relationship: TopicRelationship, existing_nodes: Sequence[TopicNode]
    ) -> TopicNode | None:
        """Map a relationship onto the parent node the new topic attaches to."""
        hierarchical = relationship.type in (
            RelationshipType.CHILD_OF,
            RelationshipType.CONTINUATION,
        )

        parent_id: str | None = None
        if hierarchical:
            parent_id = relationship.parent_node_id
        elif relationship.type == RelationshipType.SIBLING_OF and relationship.parent_node_id:
            sibling = self._tree_manager.get_node(relationship.parent_node_id)
            if sibling is None:
                logger.warning(
                    f"Sibling {relationship.parent_node_id} not found, creating as root node"
                )
            else:
                parent_id = sibling.parent_topic

        if parent_id is not None:
            parent = self._tree_manager.get_node(parent_id)
            if parent is not None:
                return parent
            logger.warning(f"Specified parent {parent_id} not found, creating as root node")

        if (
            hierarchical
            and existing_nodes
            and relationship.confidence > HIERARCHY_CONFIDENCE
        ):
            fallback = self._tree_manager.get_current_topic() or max(
                existing_nodes, key=lambda n: n.updated_at
            )
            if fallback.depth + 1 <= self.config.limits.max_tree_depth:
                return fallback

        return None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_topic_tree(self) -> ConversationTree:
        """Snapshot of the whole tree."""
        return self._tree_manager.get_tree()

    def get_node(self, node_id: str) -> TopicNode | None:
        node = self._tree_manager.get_node(node_id)
        return copy.deepcopy(node) if node is not None else None

    def get_depth_from_root(self, node_id: str) -> int:
        validate_node_id(node_id, self.config.limits.max_id_length)
        return self._tree_manager.get_depth_from_root(node_id)

    def get_deepest_unvisited_branch(self) -> TopicNode | None:
        return self._tree_manager.get_deepest_unvisited_branch()

    def get_current_topic(self) -> TopicNode | None:
        node = self._tree_manager.get_current_topic()
        return copy.deepcopy(node) if node is not None else None

    def get_current_position(self) -> CurrentPosition:
        return self._tree_manager.get_current_position()

    def get_conversation_history(self) -> list[QAPair]:
        """All Q&A pairs in the tree, oldest first."""
        pairs = [qa for node in self._tree_manager.get_all_nodes() for qa in node.metadata.qa_pairs]
        return sorted(pairs, key=lambda qa: qa.timestamp)

    def get_stats(self) -> ConversationStats:
        tree_stats = self._tree_manager.get_stats()
        nodes = self._tree_manager.get_all_nodes()
        scores = [n.score for n in nodes if n.score is not None]
        return ConversationStats(
            total_nodes=tree_stats.total_nodes,
            root_nodes=tree_stats.root_nodes,
            max_depth=tree_stats.max_depth,
            leaf_nodes=tree_stats.leaf_nodes,
            total_qa_pairs=sum(len(n.metadata.qa_pairs) for n in nodes),
            average_score=sum(scores) / len(scores) if scores else None,
        )

    # =========================================================================
    # State changes
    # =========================================================================

    def mark_topic_as_visited(self, node_id: str) -> None:
        """
        Record a visit so the topic drops out of unvisited-branch queries.

        Raises:
            NodeNotFoundError: If the node is missing
        """
        node = self._require_node(node_id)
        node.mark_as_visited()
        self._tree_manager.update_node(node_id, {"metadata": node.metadata})

    def mark_topic_as_exhausted(self, node_id: str) -> None:
        node = self._require_node(node_id)
        node.mark_as_exhausted()
        self._tree_manager.update_node(node_id, {"metadata": node.metadata})

    def set_scoring_strategy(self, strategy: ScoringStrategy) -> None:
        self._scoring_engine.set_strategy(strategy)

    def set_topic_analyzer(self, analyzer: TopicAnalyzerProtocol) -> None:
        """
        Replace the topic analyzer.

        Raises:
            ValidationError: If ``analyzer`` lacks extract_topics or determine_relationship
        """
        if not (
            callable(getattr(analyzer, "extract_topics", None))
            and callable(getattr(analyzer, "determine_relationship", None))
        ):
            raise ValidationError(
                "Topic analyzer must implement extract_topics and determine_relationship",
                "analyzer",
                analyzer,
            )
        self._topic_analyzer = analyzer

    def set_topic_selector(self, selector: TopicSelector) -> None:
        if not callable(selector):
            raise ValidationError("Topic selector must be callable", "selector", selector)
        self._select_topic = selector

    def load_tree(self, tree: ConversationTree) -> None:
        """Replace the conversation with a validated copy of ``tree``."""
        self._tree_manager.load_tree(tree)

    def clear(self) -> None:
        self._tree_manager.clear()

    def _require_node(self, node_id: str) -> TopicNode:
        validate_node_id(node_id, self.config.limits.max_id_length)
        node = self._tree_manager.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node
