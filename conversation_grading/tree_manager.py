"""
Topic tree manager: owns the node map and enforces structural invariants.

Every mutation validates its input first, applies the change, and then
runs the tree-integrity checker. Nothing is auto-repaired.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from .config import LimitsConfig
from .topic_node import TopicNode
from .tree_navigator import CurrentPosition, TreeNavigator
from .types import (
    ConversationTree,
    NodeMetadata,
    NodeNotFoundError,
    TreeIntegrityError,
    TreeStats,
    ValidationError,
)
from .validation import (
    validate_node_id,
    validate_score,
    validate_session_id,
    validate_topic_name,
    validate_tree_depth,
    validate_tree_integrity,
    validate_tree_size,
)

logger = logging.getLogger(__name__)

# Fields update_node() may patch; structure is derived, never assigned
UPDATABLE_FIELDS = frozenset({"topic", "score", "parent_topic", "metadata", "updated_at"})


class TopicTreeManager:
    """
    Manages tree storage, node operations and tree integrity.

    Example:
        manager = TopicTreeManager("session-1")
        manager.add_node(TopicNode(id="root", topic="machine learning"))
        manager.add_node(TopicNode(id="algos", topic="algorithms", parent_topic="root"))
        manager.calculate_depth("algos")  # 2
    """

    def __init__(self, session_id: str = "default", limits: LimitsConfig | None = None):
        """
        Initialize TopicTreeManager.

        Args:
            session_id: Session the tree belongs to
            limits: Depth/size limits (defaults to LimitsConfig())

        Raises:
            ValidationError: If session_id is malformed
        """
        self.limits = limits or LimitsConfig()
        validate_session_id(session_id, self.limits.max_id_length)
        self._tree = ConversationTree(session_id=session_id)
        self._navigator = TreeNavigator()

    @property
    def session_id(self) -> str:
        return self._tree.session_id

    @property
    def navigator(self) -> TreeNavigator:
        return self._navigator

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_node(self, node: TopicNode) -> None:
        """
        Add a node, wiring it under its ``parent_topic`` or into the roots.

        Raises:
            ValidationError: On malformed fields, duplicate id, missing parent
                or exceeded limits
        """
        if not isinstance(node, TopicNode):
            raise ValidationError("Node must be a TopicNode", "node", node)

        validate_node_id(node.id, self.limits.max_id_length)
        validate_topic_name(node.topic, self.limits.max_topic_length)
        validate_score(node.score)
        if node.parent_topic is not None:
            validate_node_id(node.parent_topic, self.limits.max_id_length)

        if node.id in self._tree.nodes:
            raise ValidationError(f"Node with ID {node.id} already exists", "node_id", node.id)
        if node.children:
            raise ValidationError(
                f"Node {node.id} must be added without children", "children", node.children
            )

        validate_tree_size(len(self._tree.nodes) + 1, self.limits.max_tree_size)

        parent: TopicNode | None = None
        if node.parent_topic is not None:
            parent = self._tree.nodes.get(node.parent_topic)
            if parent is None:
                raise ValidationError(
                    f"Parent node {node.parent_topic} not found", "parent_topic", node.parent_topic
                )
            validate_tree_depth(parent.depth + 1, self.limits.max_tree_depth)

        self._tree.nodes[node.id] = node
        node.set_parent(parent, self._tree.nodes)
        if parent is None:
            self._tree.root_nodes.append(node.id)

        logger.debug(f"Added node {node.id} at depth {node.depth}")
        self.check_integrity()

    def update_node(self, node_id: str, updates: dict[str, Any]) -> None:
        """
        Patch node properties.

        A changed ``parent_topic`` detaches the node from its old parent (or
        the roots), reattaches it and recalculates depth for the whole subtree.

        Raises:
            NodeNotFoundError: If the node or the new parent is missing
            ValidationError: On unknown fields or invalid values
            TreeIntegrityError: If the new parent is a descendant of the node
        """
        node = self._require(node_id)

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}", "updates", sorted(unknown)
            )
        if "topic" in updates:
            validate_topic_name(updates["topic"], self.limits.max_topic_length)
        if "score" in updates:
            validate_score(updates["score"])
        if "metadata" in updates and not isinstance(updates["metadata"], NodeMetadata):
            raise ValidationError("Metadata must be NodeMetadata", "metadata", updates["metadata"])

        new_parent: TopicNode | None = None
        reparent = "parent_topic" in updates and updates["parent_topic"] != node.parent_topic
        if reparent and updates["parent_topic"] is not None:
            new_parent = self._require(updates["parent_topic"])
            if node.find_descendant(new_parent.id, self._tree.nodes) is not None:
                raise TreeIntegrityError(
                    f"Cannot move node {node_id}: would create circular reference", node_id
                )
            subtree_height = max(
                (d.depth - node.depth for d in node.get_all_descendants(self._tree.nodes)),
                default=0,
            )
            validate_tree_depth(new_parent.depth + 1 + subtree_height, self.limits.max_tree_depth)

        if reparent:
            was_root = node.parent_topic is None
            node.set_parent(new_parent, self._tree.nodes)
            if was_root:
                self._tree.root_nodes.remove(node_id)
            if new_parent is None:
                self._tree.root_nodes.append(node_id)
            self._prune_current_path()

        for key, value in updates.items():
            if key != "parent_topic":
                setattr(node, key, value)
        if "updated_at" not in updates:
            node._touch()

        self.check_integrity()

    def remove_node(self, node_id: str) -> None:
        """
        Remove a node, reparenting its children to its parent (or promoting
        them to roots). The current path is truncated where the node appeared.

        Raises:
            NodeNotFoundError: If the node is missing
        """
        node = self._require(node_id)
        parent = self._tree.nodes.get(node.parent_topic) if node.parent_topic else None

        for child in list(node.iter_children(self._tree.nodes)):
            child.set_parent(parent, self._tree.nodes)
            if parent is None:
                self._tree.root_nodes.append(child.id)

        if parent is not None:
            parent.remove_child(node, self._tree.nodes)
        else:
            self._tree.root_nodes.remove(node_id)

        if node_id in self._tree.current_path:
            index = self._tree.current_path.index(node_id)
            del self._tree.current_path[index:]

        del self._tree.nodes[node_id]
        self._prune_current_path()
        self.check_integrity()

    def set_current_path(self, path: list[str]) -> None:
        """
        Replace the current path.

        Raises:
            NodeNotFoundError: If an id is missing
            ValidationError: If a consecutive pair is not parent -> child
        """
        for index, node_id in enumerate(path):
            node = self._require(node_id)
            if index > 0 and node.parent_topic != path[index - 1]:
                raise ValidationError(
                    f"Invalid path: {node_id} is not a child of {path[index - 1]}",
                    "current_path",
                    list(path),
                )
        self._tree.current_path = list(path)

    def load_tree(self, tree: ConversationTree) -> None:
        """
        Replace the whole tree with a validated copy of ``tree``.

        Raises:
            TreeIntegrityError: If ``tree`` violates any invariant
        """
        validate_session_id(tree.session_id, self.limits.max_id_length)
        validate_tree_integrity(tree)
        self._tree = copy.deepcopy(tree)

    def check_integrity(self) -> None:
        """Raise TreeIntegrityError if any structural invariant is broken."""
        validate_tree_integrity(self._tree)

    def clear(self) -> None:
        self._tree.nodes.clear()
        self._tree.root_nodes.clear()
        self._tree.current_path.clear()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_node(self, node_id: str) -> TopicNode | None:
        return self._tree.nodes.get(node_id)

    def get_root_nodes(self) -> list[TopicNode]:
        return [self._tree.nodes[i] for i in self._tree.root_nodes if i in self._tree.nodes]

    def get_children(self, node_id: str) -> list[TopicNode]:
        node = self._tree.nodes.get(node_id)
        return list(node.iter_children(self._tree.nodes)) if node else []

    def get_parent(self, node_id: str) -> TopicNode | None:
        node = self._tree.nodes.get(node_id)
        if node is None or node.parent_topic is None:
            return None
        return self._tree.nodes.get(node.parent_topic)

    def calculate_depth(self, node_id: str) -> int:
        """Recalculate depth of ``node_id`` from its parent chain."""
        return self._require(node_id).calculate_depth_from_root(self._tree.nodes)

    def get_tree(self) -> ConversationTree:
        """Deep-copied snapshot of the tree."""
        return copy.deepcopy(self._tree)

    def get_current_path(self) -> list[str]:
        return list(self._tree.current_path)

    def get_current_topic(self) -> TopicNode | None:
        if not self._tree.current_path:
            return None
        return self._tree.nodes.get(self._tree.current_path[-1])

    def get_all_nodes(self) -> list[TopicNode]:
        return list(self._tree.nodes.values())

    def node_count(self) -> int:
        return len(self._tree.nodes)

    def find_deepest_unvisited_branch(self) -> TopicNode | None:
        """Live node for the deepest unvisited branch."""
        return self._navigator.get_deepest_unvisited_branch(self._tree)

    def get_stats(self) -> TreeStats:
        nodes = self._tree.nodes.values()
        return TreeStats(
            total_nodes=len(self._tree.nodes),
            root_nodes=len(self._tree.root_nodes),
            max_depth=max((n.depth for n in nodes), default=0),
            leaf_nodes=sum(1 for n in nodes if n.is_leaf()),
        )

    # Navigator pass-throughs. Node-returning queries run on a snapshot.

    def get_depth_from_root(self, node_id: str) -> int:
        return self._navigator.get_depth_from_root(node_id, self._tree)

    def find_path(self, from_node_id: str, to_node_id: str) -> list[str]:
        return self._navigator.find_path(from_node_id, to_node_id, self._tree)

    def get_leaf_nodes(self) -> list[TopicNode]:
        return self._navigator.get_leaf_nodes(self.get_tree())

    def get_unvisited_branches(self) -> list[TopicNode]:
        return self._navigator.get_unvisited_branches(self.get_tree())

    def get_deepest_unvisited_branch(self) -> TopicNode | None:
        return self._navigator.get_deepest_unvisited_branch(self.get_tree())

    def get_nodes_at_depth(self, depth: int) -> list[TopicNode]:
        return self._navigator.get_nodes_at_depth(depth, self.get_tree())

    def get_max_depth(self) -> int:
        return self._navigator.get_max_depth(self._tree)

    def get_ancestors(self, node_id: str) -> list[TopicNode]:
        return self._navigator.get_ancestors(node_id, self.get_tree())

    def get_descendants(self, node_id: str) -> list[TopicNode]:
        return self._navigator.get_descendants(node_id, self.get_tree())

    def get_siblings(self, node_id: str) -> list[TopicNode]:
        return self._navigator.get_siblings(node_id, self.get_tree())

    def is_ancestor(self, ancestor_id: str, descendant_id: str) -> bool:
        return self._navigator.is_ancestor(ancestor_id, descendant_id, self._tree)

    def is_descendant(self, descendant_id: str, ancestor_id: str) -> bool:
        return self._navigator.is_descendant(descendant_id, ancestor_id, self._tree)

    def get_current_position(self) -> CurrentPosition:
        return self._navigator.get_current_position(self.get_tree())

    # =========================================================================
    # Internals
    # =========================================================================

    def _require(self, node_id: str) -> TopicNode:
        node = self._tree.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _prune_current_path(self) -> None:
        # Keep the longest prefix that is still a consecutive parent -> child walk
        path = self._tree.current_path
        for index, node_id in enumerate(path):
            node = self._tree.nodes.get(node_id)
            if node is None or (index > 0 and node.parent_topic != path[index - 1]):
                del path[index:]
                return
