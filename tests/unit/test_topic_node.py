"""
Unit tests for topic_node module.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conversation_grading.topic_node import TopicNode
from conversation_grading.types import QAPair, TreeIntegrityError


def make_nodes(*ids):
    """Build an unlinked node map."""
    return {node_id: TopicNode(id=node_id, topic=f"topic {node_id}") for node_id in ids}


@pytest.fixture
def chain():
    """a -> b -> c, plus a detached d."""
    nodes = make_nodes("a", "b", "c", "d")
    nodes["b"].set_parent(nodes["a"], nodes)
    nodes["c"].set_parent(nodes["b"], nodes)
    return nodes


class TestDefaults:
    """Tests for a freshly created node."""

    def test_new_node_is_root(self):
        node = TopicNode(id="n1", topic="testing")

        assert node.parent_topic is None
        assert node.children == []
        assert node.depth == 1
        assert node.score is None
        assert node.is_root()
        assert node.is_leaf()
        assert not node.has_children()


class TestSetParent:
    """Tests for set_parent."""

    def test_attach_sets_both_sides(self, chain):
        assert chain["b"].parent_topic == "a"
        assert chain["a"].children == ["b"]
        assert chain["b"].depth == 2
        assert chain["c"].depth == 3

    def test_reparent_detaches_from_old_parent(self, chain):
        chain["c"].set_parent(chain["d"], chain)

        assert "c" not in chain["b"].children
        assert chain["d"].children == ["c"]
        assert chain["c"].depth == 2

    def test_depth_cascades_to_descendants(self, chain):
        """Moving a subtree recalculates every descendant depth."""
        chain["a"].set_parent(chain["d"], chain)

        assert chain["a"].depth == 2
        assert chain["b"].depth == 3
        assert chain["c"].depth == 4

    def test_set_parent_none_makes_root(self, chain):
        chain["b"].set_parent(None, chain)

        assert chain["b"].is_root()
        assert chain["b"].depth == 1
        assert chain["c"].depth == 2
        assert chain["a"].children == []

    def test_self_parent_rejected(self, chain):
        with pytest.raises(TreeIntegrityError):
            chain["a"].set_parent(chain["a"], chain)

    def test_descendant_parent_rejected(self, chain):
        """A node cannot move under its own descendant."""
        with pytest.raises(TreeIntegrityError, match="circular reference"):
            chain["a"].set_parent(chain["c"], chain)

        assert chain["a"].is_root()


class TestChildren:
    """Tests for add_child / remove_child."""

    def test_add_child(self):
        nodes = make_nodes("p", "c")
        nodes["p"].add_child(nodes["c"], nodes)

        assert nodes["p"].children == ["c"]
        assert nodes["c"].parent_topic == "p"

    def test_duplicate_add_is_noop(self):
        nodes = make_nodes("p", "c")
        nodes["p"].add_child(nodes["c"], nodes)
        nodes["p"].add_child(nodes["c"], nodes)

        assert nodes["p"].children == ["c"]

    def test_remove_child_promotes_to_root(self, chain):
        chain["a"].remove_child(chain["b"], chain)

        assert chain["a"].children == []
        assert chain["b"].is_root()
        assert chain["c"].depth == 2

    def test_remove_unknown_child_is_noop(self, chain):
        chain["a"].remove_child(chain["d"], chain)

        assert chain["a"].children == ["b"]


class TestTraversal:
    """Tests for descendant and path helpers."""

    def test_get_all_descendants_breadth_first(self):
        nodes = make_nodes("r", "x", "y", "z")
        nodes["x"].set_parent(nodes["r"], nodes)
        nodes["y"].set_parent(nodes["r"], nodes)
        nodes["z"].set_parent(nodes["x"], nodes)

        assert [n.id for n in nodes["r"].get_all_descendants(nodes)] == ["x", "y", "z"]

    def test_find_descendant(self, chain):
        assert chain["a"].find_descendant("c", chain) is chain["c"]
        assert chain["a"].find_descendant("a", chain) is chain["a"]
        assert chain["a"].find_descendant("d", chain) is None

    def test_get_path_from_root(self, chain):
        assert chain["c"].get_path_from_root(chain) == ["a", "b", "c"]
        assert chain["a"].get_path_from_root(chain) == ["a"]

    def test_path_with_missing_ancestor_raises(self, chain):
        del chain["a"]

        with pytest.raises(TreeIntegrityError):
            chain["c"].get_path_from_root(chain)

    def test_calculate_depth_from_root_repairs_stale_depth(self, chain):
        chain["c"].depth = 7

        assert chain["c"].calculate_depth_from_root(chain) == 3
        assert chain["c"].depth == 3


class TestConversationState:
    """Tests for Q&A, visit and score mutators."""

    def test_add_qa_pair(self):
        node = TopicNode(id="n1", topic="testing")
        pair = QAPair("What is testing?", "Checking behaviour.")
        node.add_qa_pair(pair)

        assert node.metadata.qa_pairs == [pair]

    def test_mark_as_visited(self):
        node = TopicNode(id="n1", topic="testing")
        node.mark_as_visited()
        node.mark_as_visited()

        assert node.metadata.visit_count == 2
        assert node.metadata.last_visited is not None

    def test_mark_as_exhausted(self):
        node = TopicNode(id="n1", topic="testing")
        node.mark_as_exhausted()

        assert node.metadata.is_exhausted is True

    def test_score_mutators_leave_structure_alone(self, chain):
        node = chain["b"]
        node.update_score(80)

        assert node.has_score()
        assert node.parent_topic == "a"
        assert node.children == ["c"]
        assert node.depth == 2

        node.clear_score()

        assert not node.has_score()

    def test_mutators_touch_updated_at(self):
        node = TopicNode(id="n1", topic="testing")
        before = node.updated_at
        node.mark_as_exhausted()

        assert node.updated_at >= before


class TestSerialization:
    """Tests for to_dict / from_dict."""

    def test_roundtrip_with_nulls(self):
        """All fields survive, including None values."""
        node = TopicNode(id="n1", topic="testing", parent_topic="p", children=["c1"], depth=2)
        node.add_qa_pair(QAPair("What is testing?", "Checking behaviour.", metadata={"k": 1}))
        node.add_qa_pair(QAPair("And fixtures?", "Shared setup."))

        restored = TopicNode.from_dict(node.to_dict())

        assert restored == node
        assert restored.score is None
        assert restored.metadata.last_visited is None
        assert restored.metadata.qa_pairs[1].metadata is None

    def test_to_dict_copies_lists(self):
        node = TopicNode(id="n1", topic="testing", children=["c1"])
        data = node.to_dict()
        data["children"].append("c2")

        assert node.children == ["c1"]
