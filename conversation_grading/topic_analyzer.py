"""
Topic extraction and relationship classification.

The default analyzer uses lexical heuristics only: stop-word filtering,
n-gram frequency for extraction and word-overlap similarity for placement.
Any object satisfying ``TopicAnalyzerProtocol`` can replace it.
"""

from __future__ import annotations

import inspect
import re
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, runtime_checkable

from .config import AnalyzerConfig
from .topic_node import TopicNode
from .types import QAPair, RelationshipType, TopicRelationship, utcnow

DEFAULT_TOPIC = "general discussion"

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "this", "that", "these", "those",
})

# Extracted phrases too vague to name a topic
STOP_PHRASES = frozenset({
    "what", "understand", "what don", "don", "know", "think",
    "like", "want", "need", "get", "make", "take", "come", "see",
    "don understand", "what don understand",
})

CONTINUATION_CUES = (
    "also", "additionally", "furthermore", "moreover", "besides",
    "what about", "how about", "tell me more", "can you explain",
    "what else", "anything else", "else", "more details", "elaborate",
    "follow up", "building on", "expanding on", "related to",
)
_CONTINUATION_PATTERN = re.compile(
    r"\b(?:" + "|".join(re.escape(cue) for cue in CONTINUATION_CUES) + r")\b"
)

RELATED_TERM_GROUPS = (
    ("machine", "learning", "ml"),
    ("neural", "network", "deep"),
    ("artificial", "intelligence", "ai"),
    ("supervised", "unsupervised", "reinforcement"),
    ("algorithm", "model", "training"),
    ("web", "frontend", "backend", "development", "website"),
    ("programming", "coding", "software", "program"),
    ("computer", "science", "technology"),
    ("mobile", "app", "application"),
    ("data", "database", "storage"),
    ("language", "languages", "code"),
)
RELATED_TERM_BOOST = 0.3
PARTIAL_MATCH_WEIGHT = 0.2
CONTINUATION_CONFIDENCE = 0.8

_NON_WORD = re.compile(r"[^\w\s]")


@runtime_checkable
class TopicAnalyzerProtocol(Protocol):
    """Protocol for pluggable topic analyzers."""

    async def extract_topics(self, qa_pair: QAPair) -> list[str]:
        """Return up to three candidate topics, never an empty list."""
        ...

    def determine_relationship(
        self, topic: str, existing_nodes: Sequence[TopicNode]
    ) -> TopicRelationship:
        """Classify how ``topic`` relates to the existing nodes."""
        ...


def significant_words(text: str) -> list[str]:
    """Lower-cased words longer than two characters that are not stop words."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [w for w in cleaned.split() if len(w) > 2 and w not in STOP_WORDS]


class TopicAnalyzer:
    """
    Default keyword-based topic analyzer.

    Example:
        analyzer = TopicAnalyzer()
        topics = await analyzer.extract_topics(QAPair("What is ML?", "..."))
        relation = analyzer.determine_relationship(topics[0], tree_nodes)
    """

    def __init__(self, config: AnalyzerConfig | None = None):
        self.config = config or AnalyzerConfig()

    async def extract_topics(self, qa_pair: QAPair) -> list[str]:
        """
        Extract candidate topics from a Q&A pair.

        Builds 1-, 2- and 3-gram phrases from the significant words of the
        question and answer and ranks them by frequency (first occurrence
        breaks ties).

        Returns:
            Up to ``max_topics`` topics, or ``["general discussion"]``
        """
        words = significant_words(f"{qa_pair.question} {qa_pair.answer}")
        phrases = self._extract_key_phrases(words)
        topics = self._rank_topics(phrases)
        return topics or [DEFAULT_TOPIC]

    def determine_relationship(
        self, topic: str, existing_nodes: Sequence[TopicNode]
    ) -> TopicRelationship:
        """
        Decide where ``topic`` belongs relative to ``existing_nodes``.

        Continuation cues aimed at a recently touched node win outright.
        Otherwise the most similar node decides: above the child threshold
        the topic becomes its child, above the sibling threshold its sibling
        (or child, when that node is a root), and below both a new root.
        """
        if not existing_nodes:
            return TopicRelationship(type=RelationshipType.NEW_ROOT, confidence=1.0)

        continuation = self._check_for_continuation(topic, existing_nodes)
        if continuation is not None:
            return continuation

        best_node = existing_nodes[0]
        best_score = -1.0
        for node in existing_nodes:
            similarity = self.calculate_topic_similarity(topic, node.topic)
            if similarity > best_score:
                best_node, best_score = node, similarity

        if best_score >= self.config.child_similarity_threshold:
            return TopicRelationship(
                type=RelationshipType.CHILD_OF,
                parent_node_id=best_node.id,
                confidence=best_score,
            )

        if best_score >= self.config.sibling_similarity_threshold:
            if best_node.parent_topic is None:
                return TopicRelationship(
                    type=RelationshipType.CHILD_OF,
                    parent_node_id=best_node.id,
                    confidence=best_score,
                )
            return TopicRelationship(
                type=RelationshipType.SIBLING_OF,
                parent_node_id=best_node.id,
                confidence=best_score,
            )

        related = best_score >= self.config.related_similarity_threshold
        return TopicRelationship(
            type=RelationshipType.NEW_ROOT,
            confidence=1.0 - best_score,
            related_node_id=best_node.id if related else None,
        )

    def calculate_topic_similarity(self, topic1: str, topic2: str) -> float:
        """
        Jaccard overlap of significant words, boosted for related terms and
        partial word matches. Capped at 1.0.
        """
        words1 = set(significant_words(topic1))
        words2 = set(significant_words(topic2))

        if not words1 and not words2:
            return 1.0
        if not words1 or not words2:
            return 0.0

        similarity = len(words1 & words2) / len(words1 | words2)
        similarity = min(1.0, similarity + self._related_terms_boost(words1, words2))
        similarity = min(1.0, similarity + self._partial_match_boost(words1, words2))
        return similarity

    def _extract_key_phrases(self, words: list[str]) -> list[str]:
        phrases = [w for w in words if len(w) > 3]
        for i in range(len(words) - 1):
            phrase = f"{words[i]} {words[i + 1]}"
            if len(phrase) > 6:
                phrases.append(phrase)
        for i in range(len(words) - 2):
            phrase = f"{words[i]} {words[i + 1]} {words[i + 2]}"
            if len(phrase) > 10:
                phrases.append(phrase)
        return phrases

    def _rank_topics(self, phrases: list[str]) -> list[str]:
        counts = Counter(phrases)
        meaningful = [
            (phrase, count)
            for phrase, count in counts.items()
            if len(phrase) > 3 and phrase not in STOP_PHRASES
        ]
        # sorted() is stable, so first occurrence breaks ties
        meaningful.sort(key=lambda item: item[1], reverse=True)
        return [phrase for phrase, _ in meaningful[: self.config.max_topics]]

    def _check_for_continuation(
        self, topic: str, existing_nodes: Sequence[TopicNode]
    ) -> TopicRelationship | None:
        if not _CONTINUATION_PATTERN.search(topic.lower()):
            return None

        most_recent = existing_nodes[0]
        for node in existing_nodes:
            if node.updated_at > most_recent.updated_at:
                most_recent = node

        age = (utcnow() - most_recent.updated_at).total_seconds()
        if age > self.config.continuation_window_seconds:
            return None

        return TopicRelationship(
            type=RelationshipType.CONTINUATION,
            parent_node_id=most_recent.id,
            confidence=CONTINUATION_CONFIDENCE,
        )

    def _related_terms_boost(self, words1: set[str], words2: set[str]) -> float:
        for group in RELATED_TERM_GROUPS:
            in1 = any(w.startswith(term) for term in group for w in words1)
            in2 = any(w.startswith(term) for term in group for w in words2)
            if in1 and in2:
                return RELATED_TERM_BOOST
        return 0.0

    def _partial_match_boost(self, words1: set[str], words2: set[str]) -> float:
        matches = 0.0
        comparisons = 0
        for w1 in words1:
            if len(w1) < 4:
                continue
            for w2 in words2:
                if len(w2) < 4:
                    continue
                comparisons += 1
                if w1 in w2 or w2 in w1:
                    matches += 1
                elif len(w1) > 4 and len(w2) > 4 and w1[:4] == w2[:4]:
                    matches += 0.5
        if comparisons == 0:
            return 0.0
        return (matches / comparisons) * PARTIAL_MATCH_WEIGHT


ExtractFunction = Callable[[QAPair], "list[str] | Awaitable[list[str]]"]
RelationshipFunction = Callable[[str, Sequence[TopicNode]], TopicRelationship]


class FunctionTopicAnalyzer:
    """
    Analyzer built from plain callables.

    Without a relationship function, a topic contained in (or containing) an
    existing node's topic becomes that node's child; anything else is a new root.
    """

    def __init__(
        self,
        extract_fn: ExtractFunction,
        relationship_fn: RelationshipFunction | None = None,
    ):
        self._extract_fn = extract_fn
        self._relationship_fn = relationship_fn

    async def extract_topics(self, qa_pair: QAPair) -> list[str]:
        result = self._extract_fn(qa_pair)
        if inspect.isawaitable(result):
            result = await result
        return list(result) or [DEFAULT_TOPIC]

    def determine_relationship(
        self, topic: str, existing_nodes: Sequence[TopicNode]
    ) -> TopicRelationship:
        if self._relationship_fn is not None:
            return self._relationship_fn(topic, existing_nodes)

        if not existing_nodes:
            return TopicRelationship(type=RelationshipType.NEW_ROOT, confidence=1.0)

        needle = topic.lower()
        for node in existing_nodes:
            haystack = node.topic.lower()
            if needle in haystack or haystack in needle:
                return TopicRelationship(
                    type=RelationshipType.CHILD_OF, parent_node_id=node.id, confidence=0.7
                )
        return TopicRelationship(type=RelationshipType.NEW_ROOT, confidence=0.6)
