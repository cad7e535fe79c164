"""
Pytest configuration and fixtures for conversation grading tests.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path so we can import the package
sys.path.insert(0, str(Path(__file__).parent.parent))

from conversation_grading.config import GradingConfig
from conversation_grading.persistence import InMemoryPersistenceAdapter
from conversation_grading.topic_node import TopicNode
from conversation_grading.tree_manager import TopicTreeManager
from conversation_grading.types import QAPair


@pytest.fixture
def qa_pair():
    """Provide a plain Q&A pair."""
    return QAPair(
        question="What is machine learning?",
        answer="Machine learning lets computers learn patterns from data without explicit rules.",
    )


@pytest.fixture
def tree_manager():
    """Provide an empty tree manager."""
    return TopicTreeManager("test-session")


@pytest.fixture
def populated_manager():
    """
    Provide a manager holding a small two-root tree:

        root (1)              other (1)
        ├── child-a (2)
        │   └── grandchild (3)
        └── child-b (2)
    """
    manager = TopicTreeManager("test-session")
    manager.add_node(TopicNode(id="root", topic="machine learning"))
    manager.add_node(TopicNode(id="child-a", topic="supervised learning", parent_topic="root"))
    manager.add_node(TopicNode(id="child-b", topic="unsupervised learning", parent_topic="root"))
    manager.add_node(TopicNode(id="grandchild", topic="decision trees", parent_topic="child-a"))
    manager.add_node(TopicNode(id="other", topic="web development"))
    return manager


@pytest.fixture
def memory_adapter():
    """Provide an empty in-memory persistence adapter."""
    return InMemoryPersistenceAdapter()


@pytest.fixture
def grading_config():
    """Provide a default grading config."""
    return GradingConfig()


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "hypothesis: property-based tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that take >1s"
    )
    config.addinivalue_line(
        "markers", "security: security-related tests"
    )
