"""
Integration helpers for chat-style conversation systems.

Turns user/assistant message streams into Q&A pairs, feeds them to a
grading façade and derives follow-up suggestions and analytics from the
resulting topic tree.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .config import GradingConfig
from .grading_system import ConversationGradingSystem
from .persistence import PersistenceAdapter
from .scoring_engine import ScoringStrategy
from .session_grading_system import ConversationGradingSystemWithSessions
from .topic_analyzer import TopicAnalyzerProtocol
from .topic_node import TopicNode
from .types import ConversationStats, ConversationTree, GradingError, QAPair, utcnow
from .validation import safe_error_message

logger = logging.getLogger(__name__)

MessageRole = Literal["user", "assistant", "system"]

MAX_NEXT_QUESTIONS = 3
MAX_INSIGHTS = 5

# Extra follow-ups keyed by substrings of the topic
TOPIC_QUESTIONS = (
    (
        ("machine learning", "ml"),
        (
            "What are the different types of machine learning algorithms?",
            "How do you evaluate machine learning models?",
        ),
    ),
    (
        ("neural network", "deep learning"),
        (
            "What are the different types of neural network architectures?",
            "How do you train neural networks effectively?",
        ),
    ),
    (
        ("programming", "code"),
        (
            "What are the best practices for this approach?",
            "Can you show an example implementation?",
        ),
    ),
)


class ChatMessage(BaseModel):
    """A single chat message from a conversation front-end."""

    content: str
    role: MessageRole
    id: str | None = None
    timestamp: datetime | None = None
    metadata: dict[str, Any] | None = None


class Suggestions(BaseModel):
    """Hints for steering the next question."""

    next_questions: list[str] = Field(default_factory=list)
    related_topics: list[str] = Field(default_factory=list)
    deepest_unvisited_topic: str | None = None


class ProcessingResult(BaseModel):
    """Outcome of grading one Q&A pair."""

    node_id: str
    topic: str
    score: float | None
    depth: int
    is_new_branch: bool
    suggestions: Suggestions = Field(default_factory=Suggestions)


@dataclass
class IntegrationConfig:
    """Configuration for ConversationGradingIntegration."""

    session_id: str = "default"
    auto_score: bool = True
    enable_sessions: bool = False
    scoring_strategy: ScoringStrategy | None = None
    topic_analyzer: TopicAnalyzerProtocol | None = None
    adapter: PersistenceAdapter | None = None
    grading: GradingConfig | None = None


def convert_chat_messages_to_qa_pairs(messages: list[ChatMessage]) -> list[QAPair]:
    """
    Pair every user message with the assistant message right after it.

    Message ids land in the pair metadata next to both messages' own
    metadata (assistant keys win on conflict).
    """
    pairs: list[QAPair] = []
    for user, assistant in zip(messages, messages[1:]):
        if user.role != "user" or assistant.role != "assistant":
            continue
        metadata: dict[str, Any] = {
            "user_message_id": user.id,
            "assistant_message_id": assistant.id,
        }
        metadata.update(user.metadata or {})
        metadata.update(assistant.metadata or {})
        pairs.append(
            QAPair(
                question=user.content,
                answer=assistant.content,
                timestamp=user.timestamp or utcnow(),
                metadata=metadata,
            )
        )
    return pairs


def generate_next_questions(topic: str) -> list[str]:
    """Generic follow-ups for ``topic`` plus topic-specific ones, capped at three."""
    questions = [
        f"Can you provide more details about {topic}?",
        f"What are some examples of {topic}?",
        f"How does {topic} work in practice?",
    ]
    lowered = topic.lower()
    for markers, extra in TOPIC_QUESTIONS:
        if any(marker in lowered for marker in markers):
            questions.extend(extra)
    return questions[:MAX_NEXT_QUESTIONS]


class ConversationGradingIntegration:
    """
    Grades chat transcripts through either grading façade.

    Example:
        integration = ConversationGradingIntegration()
        results = await integration.process_conversation(messages)
        analytics = integration.get_analytics()
    """

    def __init__(self, config: IntegrationConfig | None = None):
        self.config = config or IntegrationConfig()
        grading = self.config.grading or GradingConfig()

        self.system: ConversationGradingSystem | ConversationGradingSystemWithSessions
        if self.config.enable_sessions:
            self.system = ConversationGradingSystemWithSessions(
                self.config.session_id, adapter=self.config.adapter, config=grading
            )
        else:
            self.system = ConversationGradingSystem(self.config.session_id, grading)

        if self.config.scoring_strategy is not None:
            self.system.set_scoring_strategy(self.config.scoring_strategy)
        if self.config.topic_analyzer is not None:
            self.system.set_topic_analyzer(self.config.topic_analyzer)

    async def process_conversation(self, messages: list[ChatMessage]) -> list[ProcessingResult]:
        """Grade every Q&A pair in ``messages``; rejected pairs are logged and skipped."""
        results = []
        for qa_pair in convert_chat_messages_to_qa_pairs(messages):
            try:
                results.append(await self.process_qa_pair(qa_pair))
            except GradingError as e:
                logger.error(f"Error processing Q&A pair: {safe_error_message(e)}")
        return results

    async def process_qa_pair(self, qa_pair: QAPair) -> ProcessingResult:
        node_id = await self.system.add_qa_pair(qa_pair, auto_score=self.config.auto_score)
        tree = self.system.get_topic_tree()
        node = tree.nodes[node_id]

        return ProcessingResult(
            node_id=node_id,
            topic=node.topic,
            score=node.score,
            depth=node.depth,
            is_new_branch=node.parent_topic is None,
            suggestions=self._generate_suggestions(node, tree),
        )

    def _generate_suggestions(self, node: TopicNode, tree: ConversationTree) -> Suggestions:
        related: list[str] = []
        if node.parent_topic is not None and node.parent_topic in tree.nodes:
            related.extend(
                tree.nodes[sibling_id].topic
                for sibling_id in tree.nodes[node.parent_topic].children
                if sibling_id != node.id and sibling_id in tree.nodes
            )
        related.extend(
            tree.nodes[child_id].topic for child_id in node.children if child_id in tree.nodes
        )

        deepest = self.system.get_deepest_unvisited_branch()
        return Suggestions(
            next_questions=generate_next_questions(node.topic),
            related_topics=related,
            deepest_unvisited_topic=deepest.topic if deepest else None,
        )

    def get_analytics(self) -> dict[str, Any]:
        """
        Conversation statistics plus per-topic insights.

        Returns:
            Dict with ``stats`` (ConversationStats) and ``insights``:
            most discussed topics, average depth by topic, highest scored
            topics (top five each) and the parent -> child topic flow
        """
        stats: ConversationStats = self.system.get_stats()
        tree = self.system.get_topic_tree()

        qa_counts: dict[str, int] = defaultdict(int)
        depths: dict[str, list[int]] = defaultdict(list)
        scores: dict[str, list[float]] = defaultdict(list)
        flow = []

        for node in tree.nodes.values():
            qa_counts[node.topic] += len(node.metadata.qa_pairs)
            depths[node.topic].append(node.depth)
            if node.score is not None:
                scores[node.topic].append(node.score)
            parent = tree.nodes.get(node.parent_topic) if node.parent_topic else None
            if parent is not None:
                flow.append({"from": parent.topic, "to": node.topic, "relationship": "child_of"})

        most_discussed = sorted(
            ({"topic": t, "qa_pair_count": c} for t, c in qa_counts.items()),
            key=lambda item: item["qa_pair_count"],
            reverse=True,
        )
        average_depth = sorted(
            ({"topic": t, "average_depth": sum(d) / len(d)} for t, d in depths.items()),
            key=lambda item: item["average_depth"],
            reverse=True,
        )
        highest_scored = sorted(
            ({"topic": t, "score": sum(s) / len(s)} for t, s in scores.items()),
            key=lambda item: item["score"],
            reverse=True,
        )

        return {
            "stats": stats,
            "insights": {
                "most_discussed_topics": most_discussed[:MAX_INSIGHTS],
                "average_depth_by_topic": average_depth[:MAX_INSIGHTS],
                "highest_scored_topics": highest_scored[:MAX_INSIGHTS],
                "conversation_flow": flow,
            },
        }

    def export_conversation_data(self) -> dict[str, Any]:
        """Tree snapshot, time-ordered Q&A pairs and a flat topic hierarchy."""
        tree = self.system.get_topic_tree()
        hierarchy = [
            {
                "id": node_id,
                "topic": node.topic,
                "parent_id": node.parent_topic,
                "depth": node.depth,
                "children": list(node.children),
            }
            for node_id, node in tree.nodes.items()
        ]
        return {
            "tree": tree,
            "qa_pairs": self.system.get_conversation_history(),
            "topic_hierarchy": hierarchy,
        }

    def reset(self) -> None:
        self.system.clear()
