"""
Topic node entity for the conversation tree.

Nodes link to each other by id only. Structural mutators take the shared
node map (``nodes``) so they can resolve and update the other side of a
link and cascade depth changes to descendants.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator, MutableMapping

from .types import NodeMetadata, QAPair, TreeIntegrityError, utcnow

NodeMap = MutableMapping[str, "TopicNode"]


@dataclass
class TopicNode:
    """
    A vertex in the conversation topic tree.

    ``depth`` is 1 for roots and parent depth + 1 otherwise. ``children``
    is ordered and never holds duplicates.
    """

    id: str
    topic: str
    parent_topic: str | None = None
    children: list[str] = field(default_factory=list)
    depth: int = 1
    score: float | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    def _touch(self) -> None:
        self.updated_at = utcnow()

    # =========================================================================
    # Structure
    # =========================================================================

    def set_parent(self, parent: TopicNode | None, nodes: NodeMap) -> None:
        """
        Move this node under ``parent`` (or make it a root).

        Detaches from the old parent's children, attaches to the new one and
        recalculates depth for this node and every descendant.

        Raises:
            TreeIntegrityError: If ``parent`` is this node or one of its descendants
        """
        if parent is not None:
            if parent.id == self.id:
                raise TreeIntegrityError(f"Node {self.id} cannot be its own parent", self.id)
            if self.find_descendant(parent.id, nodes) is not None:
                raise TreeIntegrityError(
                    f"Cannot move node {self.id} under {parent.id}: would create circular reference",
                    self.id,
                )

        if self.parent_topic is not None:
            old_parent = nodes.get(self.parent_topic)
            if old_parent is not None and self.id in old_parent.children:
                old_parent.children.remove(self.id)
                old_parent._touch()

        if parent is None:
            self.parent_topic = None
            self.depth = 1
        else:
            if self.id not in parent.children:
                parent.children.append(self.id)
                parent._touch()
            self.parent_topic = parent.id
            self.depth = parent.depth + 1

        self._touch()
        self._update_children_depth(nodes)

    def add_child(self, child: TopicNode, nodes: NodeMap) -> None:
        """Attach ``child`` under this node; adding an existing child is a no-op."""
        if child.id in self.children:
            return
        child.set_parent(self, nodes)

    def remove_child(self, child: TopicNode, nodes: NodeMap) -> None:
        """Detach ``child``, which becomes a root at depth 1."""
        if child.id not in self.children:
            return
        child.set_parent(None, nodes)

    def is_leaf(self) -> bool:
        return not self.children

    def is_root(self) -> bool:
        return self.parent_topic is None

    def has_children(self) -> bool:
        return bool(self.children)

    def iter_children(self, nodes: NodeMap) -> Iterator[TopicNode]:
        for child_id in self.children:
            child = nodes.get(child_id)
            if child is not None:
                yield child

    def get_all_descendants(self, nodes: NodeMap) -> list[TopicNode]:
        """Children, grandchildren, ... in breadth-first order."""
        descendants: list[TopicNode] = []
        queue = deque(self.iter_children(nodes))
        while queue:
            node = queue.popleft()
            descendants.append(node)
            queue.extend(node.iter_children(nodes))
        return descendants

    def find_descendant(self, node_id: str, nodes: NodeMap) -> TopicNode | None:
        """Find ``node_id`` in this subtree (this node included)."""
        if self.id == node_id:
            return self
        for node in self.get_all_descendants(nodes):
            if node.id == node_id:
                return node
        return None

    def get_path_from_root(self, nodes: NodeMap) -> list[str]:
        """Ids from the root down to this node."""
        path = [self.id]
        current = self.parent_topic
        while current is not None:
            if current in path:
                raise TreeIntegrityError(f"Circular parent chain at node {current}", current)
            path.append(current)
            parent = nodes.get(current)
            if parent is None:
                raise TreeIntegrityError(
                    f"Node {current} not found while walking to root", current
                )
            current = parent.parent_topic
        path.reverse()
        return path

    def calculate_depth_from_root(self, nodes: NodeMap) -> int:
        """Recompute and store depth from the parent chain."""
        self.depth = len(self.get_path_from_root(nodes))
        self._touch()
        return self.depth

    def _update_children_depth(self, nodes: NodeMap) -> None:
        for child in self.iter_children(nodes):
            child.depth = self.depth + 1
            child._touch()
            child._update_children_depth(nodes)

    # =========================================================================
    # Conversation state
    # =========================================================================

    def add_qa_pair(self, qa_pair: QAPair) -> None:
        self.metadata.qa_pairs.append(qa_pair)
        self._touch()

    def mark_as_visited(self) -> None:
        self.metadata.visit_count += 1
        self.metadata.last_visited = utcnow()
        self._touch()

    def mark_as_exhausted(self) -> None:
        """Mark this topic as needing no more questions."""
        self.metadata.is_exhausted = True
        self._touch()

    def update_score(self, score: float) -> None:
        self.score = score
        self._touch()

    def clear_score(self) -> None:
        self.score = None
        self._touch()

    def has_score(self) -> bool:
        return self.score is not None

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict representation; nested lists are copied."""
        return {
            "id": self.id,
            "topic": self.topic,
            "parent_topic": self.parent_topic,
            "children": list(self.children),
            "depth": self.depth,
            "score": self.score,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": {
                "qa_pairs": [
                    {
                        "question": qa.question,
                        "answer": qa.answer,
                        "timestamp": qa.timestamp,
                        "metadata": dict(qa.metadata) if qa.metadata is not None else None,
                    }
                    for qa in self.metadata.qa_pairs
                ],
                "visit_count": self.metadata.visit_count,
                "last_visited": self.metadata.last_visited,
                "is_exhausted": self.metadata.is_exhausted,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopicNode:
        """Inverse of :meth:`to_dict`."""
        meta = data.get("metadata", {})
        return cls(
            id=data["id"],
            topic=data["topic"],
            parent_topic=data.get("parent_topic"),
            children=list(data.get("children", [])),
            depth=data.get("depth", 1),
            score=data.get("score"),
            created_at=data.get("created_at") or utcnow(),
            updated_at=data.get("updated_at") or utcnow(),
            metadata=NodeMetadata(
                qa_pairs=[
                    QAPair(
                        question=qa["question"],
                        answer=qa["answer"],
                        timestamp=qa["timestamp"],
                        metadata=qa.get("metadata"),
                    )
                    for qa in meta.get("qa_pairs", [])
                ],
                visit_count=meta.get("visit_count", 0),
                last_visited=meta.get("last_visited"),
                is_exhausted=meta.get("is_exhausted", False),
            ),
        )
