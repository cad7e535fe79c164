"""
Validation utilities for the conversation grading system.

Validators raise eagerly, before any state is touched. The tree-integrity
checker never repairs anything; it reports the first violation it finds.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping

from .types import (
    ConversationTree,
    QAPair,
    ScoringContext,
    TreeIntegrityError,
    ValidationError,
)

if TYPE_CHECKING:
    from .topic_node import TopicNode

MAX_QUESTION_LENGTH = 10000
MAX_ANSWER_LENGTH = 50000
MAX_TOPIC_LENGTH = 500
MAX_ID_LENGTH = 255
MAX_TREE_DEPTH = 50
MAX_TREE_SIZE = 10000

_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# Control characters except \t, \n and \r
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_SCRIPT_PATTERN = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_SQL_PATTERNS = (
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|UNION)\b", re.IGNORECASE),
    re.compile(r"(--|/\*|\*/|;)"),
)
_SPECIAL_CHARS = re.compile(r"[<>'\";&|`$(){}\[\]\\]")
SPECIAL_CHAR_RATIO = 0.1

_REDACTIONS = (
    (re.compile(r"\b\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})?"), "[TIMESTAMP]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN]"),
    (re.compile(r"\b\d{4}[- ]\d{4}[- ]\d{4}[- ]\d{4}\b"), "[CARD]"),
)


# =============================================================================
# Field validators
# =============================================================================


def _validate_text(value: Any, field: str, label: str, max_length: int) -> None:
    if value is None:
        raise ValidationError(f"{label} is required", field, value)
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string", field, value)
    if not value.strip():
        raise ValidationError(f"{label} cannot be empty", field, value)
    if len(value) > max_length:
        raise ValidationError(
            f"{label} exceeds maximum length of {max_length} characters", field, value
        )


def validate_qa_pair(
    qa_pair: Any,
    max_question_length: int = MAX_QUESTION_LENGTH,
    max_answer_length: int = MAX_ANSWER_LENGTH,
) -> None:
    """
    Validate Q&A pair structure and content.

    Raises:
        ValidationError: On the first violated constraint
    """
    if not isinstance(qa_pair, QAPair):
        raise ValidationError("Q&A pair must be a QAPair", "qa_pair", qa_pair)

    _validate_text(qa_pair.question, "question", "Question", max_question_length)
    _validate_text(qa_pair.answer, "answer", "Answer", max_answer_length)

    if qa_pair.timestamp is None:
        raise ValidationError("Timestamp is required", "timestamp", qa_pair.timestamp)
    if not isinstance(qa_pair.timestamp, datetime):
        raise ValidationError("Timestamp must be a datetime", "timestamp", qa_pair.timestamp)

    if qa_pair.metadata is not None and not isinstance(qa_pair.metadata, dict):
        raise ValidationError("Metadata must be a dict", "metadata", qa_pair.metadata)


def _validate_identifier(value: Any, field: str, label: str, max_length: int) -> None:
    if not value:
        raise ValidationError(f"{label} is required", field, value)
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string", field, value)
    if not value.strip():
        raise ValidationError(f"{label} cannot be empty or whitespace only", field, value)
    if len(value) > max_length:
        raise ValidationError(
            f"{label} exceeds maximum length of {max_length} characters", field, value
        )
    if not _ID_PATTERN.match(value):
        raise ValidationError(
            f"{label} can only contain alphanumeric characters, underscores, and hyphens",
            field,
            value,
        )


def validate_node_id(node_id: Any, max_length: int = MAX_ID_LENGTH) -> None:
    """Validate node id format (alnum, ``_`` and ``-``)."""
    _validate_identifier(node_id, "node_id", "Node ID", max_length)


def validate_session_id(session_id: Any, max_length: int = MAX_ID_LENGTH) -> None:
    """Validate session id format (alnum, ``_`` and ``-``)."""
    _validate_identifier(session_id, "session_id", "Session ID", max_length)


def validate_topic_name(topic: Any, max_length: int = MAX_TOPIC_LENGTH) -> None:
    """Validate a topic name."""
    if not topic:
        raise ValidationError("Topic name is required", "topic", topic)
    if not isinstance(topic, str):
        raise ValidationError("Topic name must be a string", "topic", topic)
    if not topic.strip():
        raise ValidationError("Topic name cannot be empty or whitespace only", "topic", topic)
    if len(topic) > max_length:
        raise ValidationError(
            f"Topic name exceeds maximum length of {max_length} characters", "topic", topic
        )


def validate_score(score: Any) -> None:
    """Validate a score; ``None`` means unscored and is allowed."""
    if score is None:
        return
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise ValidationError("Score must be a number", "score", score)
    if not math.isfinite(score):
        raise ValidationError("Score must be a finite number", "score", score)
    if score < 0 or score > 100:
        raise ValidationError("Score must be between 0 and 100", "score", score)


def validate_tree_depth(depth: int, max_depth: int = MAX_TREE_DEPTH) -> None:
    if depth > max_depth:
        raise ValidationError(
            f"Tree depth {depth} exceeds maximum allowed depth of {max_depth}", "depth", depth
        )


def validate_tree_size(node_count: int, max_nodes: int = MAX_TREE_SIZE) -> None:
    if node_count > max_nodes:
        raise ValidationError(
            f"Tree size {node_count} exceeds maximum allowed nodes of {max_nodes}",
            "node_count",
            node_count,
        )


def validate_scoring_context(context: Any) -> None:
    """Validate a scoring context."""
    if not isinstance(context, ScoringContext):
        raise ValidationError("Scoring context must be a ScoringContext", "context", context)
    if context.current_topic is None:
        raise ValidationError(
            "Scoring context must include current_topic", "current_topic", context.current_topic
        )
    if not isinstance(context.conversation_history, list):
        raise ValidationError(
            "Scoring context conversation_history must be a list",
            "conversation_history",
            context.conversation_history,
        )
    depth = context.topic_depth
    if isinstance(depth, bool) or not isinstance(depth, int) or depth < 1:
        raise ValidationError(
            "Scoring context topic_depth must be a positive integer", "topic_depth", depth
        )


# =============================================================================
# Sanitisation and security
# =============================================================================


def sanitize_string(value: Any) -> str:
    """Strip control characters (keeping newlines and tabs) and trim."""
    if not isinstance(value, str):
        return ""
    return _CONTROL_CHARS.sub("", value).strip()


def normalize_timestamp(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def sanitize_qa_pair(qa_pair: QAPair, **limits: int) -> QAPair:
    """
    Validate and return a sanitised copy of ``qa_pair``.

    Naive timestamps are taken to be UTC so stored pairs stay comparable.
    """
    validate_qa_pair(qa_pair, **limits)
    return QAPair(
        question=sanitize_string(qa_pair.question),
        answer=sanitize_string(qa_pair.answer),
        timestamp=normalize_timestamp(qa_pair.timestamp),
        metadata=dict(qa_pair.metadata) if qa_pair.metadata is not None else None,
    )


def check_security_constraints(text: str) -> None:
    """
    Reject input that looks like an injection attempt.

    Flags script tags, SQL keywords or comment/terminator tokens, and a
    special-character density above ``SPECIAL_CHAR_RATIO``.

    Any standalone keyword such as "select", "update" or "create" is
    rejected, as is any ``;`` or ``--``, so ordinary prose using them fails
    too. Set ``LimitsConfig.enforce_security_checks`` to False to accept
    such text.

    Raises:
        ValidationError: If any pattern matches
    """
    if _SCRIPT_PATTERN.search(text):
        raise ValidationError(
            "Input contains potentially malicious script content", "input", text
        )

    for pattern in _SQL_PATTERNS:
        if pattern.search(text):
            raise ValidationError(
                "Input contains potentially malicious SQL patterns", "input", text
            )

    special_count = len(_SPECIAL_CHARS.findall(text))
    if special_count > len(text) * SPECIAL_CHAR_RATIO:
        raise ValidationError("Input contains excessive special characters", "input", text)


def safe_error_message(error: BaseException, context: str | None = None) -> str:
    """Render an error for logging with timestamps, emails, SSNs and card numbers redacted."""
    message = f"{context}: {error}" if context else str(error)
    for pattern, replacement in _REDACTIONS:
        message = pattern.sub(replacement, message)
    return message


# =============================================================================
# Tree integrity
# =============================================================================


def validate_tree_integrity(tree: ConversationTree) -> None:
    """
    Check every structural invariant of ``tree``.

    Raises:
        TreeIntegrityError: Naming the first offending node
    """
    nodes = tree.nodes

    for root_id in tree.root_nodes:
        root = nodes.get(root_id)
        if root is None:
            raise TreeIntegrityError(f"Root node {root_id} not found in nodes map", root_id)
        if root.parent_topic is not None:
            raise TreeIntegrityError(f"Root node {root_id} has a parent topic", root_id)

    declared_roots = set(tree.root_nodes)
    for node_id, node in nodes.items():
        if node.id != node_id:
            raise TreeIntegrityError(
                f"Node ID mismatch: map key {node_id} vs node.id {node.id}", node_id
            )

        if node.parent_topic is None:
            if node_id not in declared_roots:
                raise TreeIntegrityError(f"Parentless node {node_id} is not a root", node_id)
        else:
            parent = nodes.get(node.parent_topic)
            if parent is None:
                raise TreeIntegrityError(
                    f"Node {node_id} references non-existent parent {node.parent_topic}", node_id
                )
            if node_id not in parent.children:
                raise TreeIntegrityError(
                    f"Parent {node.parent_topic} doesn't list {node_id} as child", node_id
                )

        if len(set(node.children)) != len(node.children):
            raise TreeIntegrityError(f"Node {node_id} lists a child twice", node_id)

        for child_id in node.children:
            child = nodes.get(child_id)
            if child is None:
                raise TreeIntegrityError(
                    f"Node {node_id} references non-existent child {child_id}", node_id
                )
            if child.parent_topic != node_id:
                raise TreeIntegrityError(
                    f"Child {child_id} doesn't reference {node_id} as parent", node_id
                )

        if _has_circular_reference(node_id, nodes, set()):
            raise TreeIntegrityError(
                f"Circular reference detected starting from node {node_id}", node_id
            )

        calculated = _calculate_node_depth(node_id, nodes)
        if node.depth != calculated:
            raise TreeIntegrityError(
                f"Node {node_id} depth mismatch: stored {node.depth} vs calculated {calculated}",
                node_id,
            )

    for index, node_id in enumerate(tree.current_path):
        node = nodes.get(node_id)
        if node is None:
            raise TreeIntegrityError(f"Current path node {node_id} not found", node_id)
        if index > 0 and node.parent_topic != tree.current_path[index - 1]:
            raise TreeIntegrityError(
                f"Current path breaks at {node_id}: not a child of {tree.current_path[index - 1]}",
                node_id,
            )


def _has_circular_reference(
    node_id: str, nodes: Mapping[str, TopicNode], path: set[str]
) -> bool:
    # ``path`` holds the ids on the current DFS branch only
    if node_id in path:
        return True
    node = nodes.get(node_id)
    if node is None:
        return False
    path.add(node_id)
    try:
        return any(_has_circular_reference(c, nodes, path) for c in node.children)
    finally:
        path.discard(node_id)


def _calculate_node_depth(node_id: str, nodes: Mapping[str, TopicNode]) -> int:
    depth = 0
    seen: set[str] = set()
    current: str | None = node_id
    while current is not None:
        if current in seen:
            raise TreeIntegrityError(f"Circular parent chain at node {current}", current)
        seen.add(current)
        node = nodes.get(current)
        if node is None:
            raise TreeIntegrityError(f"Node {current} not found", current)
        depth += 1
        current = node.parent_topic
    return depth
