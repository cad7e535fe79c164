"""
Read-only traversal and query algorithms over a conversation tree.

The navigator holds no state: every query takes the tree value it works on
and never mutates it.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from .topic_node import TopicNode
from .types import ConversationTree, NodeNotFoundError, TreeIntegrityError


@dataclass
class CurrentPosition:
    """Where the conversation currently stands in the tree."""

    current_node: TopicNode | None = None
    depth: int = 0
    path_from_root: list[str] = field(default_factory=list)
    available_children: list[TopicNode] = field(default_factory=list)
    siblings: list[TopicNode] = field(default_factory=list)


class TreeNavigator:
    """Depth calculation and navigation utilities for the topic tree."""

    def _require(self, node_id: str, tree: ConversationTree) -> TopicNode:
        node = tree.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_depth_from_root(self, node_id: str, tree: ConversationTree) -> int:
        """
        Walk the parent chain of ``node_id`` and count the levels (root = 1).

        Raises:
            NodeNotFoundError: If the node or any ancestor is missing
        """
        self._require(node_id, tree)
        return len(self._path_to_root(node_id, tree))

    def find_path(self, from_node_id: str, to_node_id: str, tree: ConversationTree) -> list[str]:
        """
        Ids on the path from ``from_node_id`` up to the lowest common ancestor
        and back down to ``to_node_id``.

        Raises:
            NodeNotFoundError: If either node is missing
            TreeIntegrityError: If the nodes live in different trees
        """
        self._require(from_node_id, tree)
        self._require(to_node_id, tree)
        if from_node_id == to_node_id:
            return [from_node_id]

        # Root-first paths; trim the shared prefix
        from_path = list(reversed(self._path_to_root(from_node_id, tree)))
        to_path = list(reversed(self._path_to_root(to_node_id, tree)))

        shared = 0
        for a, b in zip(from_path, to_path):
            if a != b:
                break
            shared += 1

        if shared == 0:
            raise TreeIntegrityError(
                f"No common ancestor for {from_node_id} and {to_node_id}: nodes are in different trees",
                from_node_id,
            )

        up = list(reversed(from_path[shared - 1 :]))
        down = to_path[shared:]
        return up + down

    def get_leaf_nodes(self, tree: ConversationTree) -> list[TopicNode]:
        return [node for node in tree.nodes.values() if node.is_leaf()]

    def get_unvisited_branches(self, tree: ConversationTree) -> list[TopicNode]:
        """Leaves that were never visited and are not exhausted."""
        return [
            node
            for node in self.get_leaf_nodes(tree)
            if node.metadata.visit_count == 0 and not node.metadata.is_exhausted
        ]

    def get_deepest_unvisited_branch(self, tree: ConversationTree) -> TopicNode | None:
        """Deepest unvisited branch; the first one found wins a tie."""
        deepest: TopicNode | None = None
        for node in self.get_unvisited_branches(tree):
            if deepest is None or node.depth > deepest.depth:
                deepest = node
        return deepest

    def get_nodes_at_depth(self, depth: int, tree: ConversationTree) -> list[TopicNode]:
        return [node for node in tree.nodes.values() if node.depth == depth]

    def get_max_depth(self, tree: ConversationTree) -> int:
        return max((node.depth for node in tree.nodes.values()), default=0)

    def get_ancestors(self, node_id: str, tree: ConversationTree) -> list[TopicNode]:
        """Ancestors nearest-first, excluding the node itself."""
        node = self._require(node_id, tree)
        ancestors: list[TopicNode] = []
        seen = {node_id}
        current = node.parent_topic
        while current is not None:
            ancestor = tree.nodes.get(current)
            if ancestor is None:
                raise NodeNotFoundError(current, f"Ancestor node with ID {current} not found")
            if current in seen:
                raise TreeIntegrityError(f"Circular parent chain at node {current}", current)
            seen.add(current)
            ancestors.append(ancestor)
            current = ancestor.parent_topic
        return ancestors

    def get_descendants(self, node_id: str, tree: ConversationTree) -> list[TopicNode]:
        """All descendants in breadth-first order."""
        node = self._require(node_id, tree)
        descendants: list[TopicNode] = []
        queue = deque(node.children)
        while queue:
            child = tree.nodes.get(queue.popleft())
            if child is not None:
                descendants.append(child)
                queue.extend(child.children)
        return descendants

    def get_siblings(self, node_id: str, tree: ConversationTree) -> list[TopicNode]:
        """
        Nodes sharing this node's parent. For a root, the other roots.
        """
        node = self._require(node_id, tree)
        if node.parent_topic is None:
            sibling_ids = tree.root_nodes
        else:
            parent = tree.nodes.get(node.parent_topic)
            if parent is None:
                raise NodeNotFoundError(
                    node.parent_topic, f"Parent node with ID {node.parent_topic} not found"
                )
            sibling_ids = parent.children

        return [
            tree.nodes[sibling_id]
            for sibling_id in sibling_ids
            if sibling_id != node_id and sibling_id in tree.nodes
        ]

    def is_ancestor(self, ancestor_id: str, descendant_id: str, tree: ConversationTree) -> bool:
        if ancestor_id == descendant_id:
            return False
        return any(a.id == ancestor_id for a in self.get_ancestors(descendant_id, tree))

    def is_descendant(self, descendant_id: str, ancestor_id: str, tree: ConversationTree) -> bool:
        return self.is_ancestor(ancestor_id, descendant_id, tree)

    def get_current_position(self, tree: ConversationTree) -> CurrentPosition:
        """Derive the current position from ``tree.current_path``."""
        if not tree.current_path:
            return CurrentPosition()

        current_id = tree.current_path[-1]
        current = tree.nodes.get(current_id)
        if current is None:
            raise NodeNotFoundError(current_id, f"Current node with ID {current_id} not found")

        return CurrentPosition(
            current_node=current,
            depth=current.depth,
            path_from_root=list(tree.current_path),
            available_children=[
                tree.nodes[child_id] for child_id in current.children if child_id in tree.nodes
            ],
            siblings=self.get_siblings(current_id, tree),
        )

    def _path_to_root(self, node_id: str, tree: ConversationTree) -> list[str]:
        # Node first, root last
        path: list[str] = []
        current: str | None = node_id
        while current is not None:
            if current in path:
                raise TreeIntegrityError(f"Circular parent chain at node {current}", current)
            node = tree.nodes.get(current)
            if node is None:
                raise NodeNotFoundError(
                    current, f"Node with ID {current} not found during traversal"
                )
            path.append(current)
            current = node.parent_topic
        return path
