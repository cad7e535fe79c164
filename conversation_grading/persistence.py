"""
Persistence adapters for conversation trees.

Trees are serialized through pydantic records: the node map becomes a list
of ``[id, node]`` pairs and datetimes become ISO-8601 strings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .topic_node import TopicNode
from .types import ConversationTree, PersistenceError


@runtime_checkable
class PersistenceAdapter(Protocol):
    """Protocol for durable storage of session trees."""

    async def save(self, session_id: str, tree: ConversationTree) -> None: ...

    async def load(self, session_id: str) -> ConversationTree | None: ...

    async def delete(self, session_id: str) -> None: ...

    async def list(self) -> list[str]: ...

    async def exists(self, session_id: str) -> bool: ...


# =============================================================================
# Serialized records
# =============================================================================


class QAPairRecord(BaseModel):
    question: str
    answer: str
    timestamp: datetime
    metadata: dict[str, Any] | None = None


class NodeMetadataRecord(BaseModel):
    qa_pairs: list[QAPairRecord] = Field(default_factory=list)
    visit_count: int = 0
    last_visited: datetime | None = None
    is_exhausted: bool = False


class TopicNodeRecord(BaseModel):
    id: str
    topic: str
    parent_topic: str | None = None
    children: list[str] = Field(default_factory=list)
    depth: int = 1
    score: float | None = None
    created_at: datetime
    updated_at: datetime
    metadata: NodeMetadataRecord = Field(default_factory=NodeMetadataRecord)

    @classmethod
    def from_node(cls, node: TopicNode) -> "TopicNodeRecord":
        return cls.model_validate(node.to_dict())

    def to_node(self) -> TopicNode:
        return TopicNode.from_dict(self.model_dump())


class ConversationTreeRecord(BaseModel):
    nodes: list[tuple[str, TopicNodeRecord]] = Field(default_factory=list)
    root_nodes: list[str] = Field(default_factory=list)
    current_path: list[str] = Field(default_factory=list)
    session_id: str
    created_at: datetime

    @classmethod
    def from_tree(cls, tree: ConversationTree) -> "ConversationTreeRecord":
        return cls(
            nodes=[(node_id, TopicNodeRecord.from_node(n)) for node_id, n in tree.nodes.items()],
            root_nodes=list(tree.root_nodes),
            current_path=list(tree.current_path),
            session_id=tree.session_id,
            created_at=tree.created_at,
        )

    def to_tree(self) -> ConversationTree:
        return ConversationTree(
            session_id=self.session_id,
            nodes={node_id: record.to_node() for node_id, record in self.nodes},
            root_nodes=list(self.root_nodes),
            current_path=list(self.current_path),
            created_at=self.created_at,
        )


def serialize_tree(tree: ConversationTree) -> str:
    return ConversationTreeRecord.from_tree(tree).model_dump_json()


def deserialize_tree(data: str) -> ConversationTree:
    return ConversationTreeRecord.model_validate_json(data).to_tree()


# =============================================================================
# In-memory adapter
# =============================================================================


class InMemoryPersistenceAdapter:
    """
    Reference adapter keeping serialized trees in a dict.

    Trees go through the same JSON encoding a durable store would use, so
    loaded trees never share state with saved ones.
    """

    def __init__(self) -> None:
        self._storage: dict[str, str] = {}

    async def save(self, session_id: str, tree: ConversationTree) -> None:
        try:
            self._storage[session_id] = serialize_tree(tree)
        except Exception as e:
            raise PersistenceError(
                f"Failed to save session {session_id}: {e}", session_id, e
            ) from e

    async def load(self, session_id: str) -> ConversationTree | None:
        serialized = self._storage.get(session_id)
        if serialized is None:
            return None
        try:
            return deserialize_tree(serialized)
        except Exception as e:
            raise PersistenceError(
                f"Failed to load session {session_id}: {e}", session_id, e
            ) from e

    async def delete(self, session_id: str) -> None:
        self._storage.pop(session_id, None)

    async def list(self) -> list[str]:
        return list(self._storage)

    async def exists(self, session_id: str) -> bool:
        return session_id in self._storage

    def clear(self) -> None:
        self._storage.clear()

    def get_stats(self) -> dict[str, int]:
        """Session count and approximate stored size in characters."""
        return {
            "total_sessions": len(self._storage),
            "total_size": sum(len(data) for data in self._storage.values()),
        }
