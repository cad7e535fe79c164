"""
End-to-end integration tests for conversation grading.

Tests the full grading pipeline:
- Q&A pairs flowing through extraction, placement and scoring
- Navigation hints steering the next question
- Sessions saved, expired and restored through a persistence adapter
- Chat transcripts graded through the integration helper
"""

import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from conversation_grading import (
    ChatMessage,
    ConversationGradingIntegration,
    ConversationGradingSystem,
    ConversationGradingSystemWithSessions,
    GradingConfig,
    InMemoryPersistenceAdapter,
    IntegrationConfig,
    QAPair,
    QualityScoringStrategy,
    SessionConfig,
)
from conversation_grading.types import utcnow
from conversation_grading.validation import validate_tree_integrity


def longest(topics):
    return max(topics, key=len)


INTERVIEW = [
    QAPair("What is machine learning?", "Machine learning uses data."),
    QAPair(
        "What is supervised learning?",
        "Supervised learning uses labeled data because every example has a known answer.",
    ),
    QAPair("How do websites work?", "Web development builds websites with markup."),
]


class TestSingleSessionWorkflow:
    """A full interview graded in one session."""

    @pytest.mark.asyncio
    async def test_interview(self):
        system = ConversationGradingSystem(
            "interview", scoring_strategy=QualityScoringStrategy(), topic_selector=longest
        )

        ids = [await system.add_qa_pair(qa) for qa in INTERVIEW]
        tree = system.get_topic_tree()

        validate_tree_integrity(tree)
        assert tree.nodes[ids[1]].parent_topic == ids[0]
        assert tree.nodes[ids[2]].parent_topic is None
        assert tree.current_path == [ids[2]]

        # Quality strategy rewards the reasoning in the second answer
        assert tree.nodes[ids[1]].score > tree.nodes[ids[0]].score

        # Steer toward the deepest open branch until everything is covered
        visited = []
        while (branch := system.get_deepest_unvisited_branch()) is not None:
            visited.append(branch.id)
            system.mark_topic_as_visited(branch.id)

        assert visited[0] == ids[1]
        assert set(visited) == {ids[1], ids[2]}

        stats = system.get_stats()
        assert stats.total_nodes == 3
        assert stats.total_qa_pairs == 3
        assert stats.root_nodes == 2
        assert stats.max_depth == 2


class TestSessionWorkflow:
    """Sessions saved, expired and restored."""

    @pytest.mark.asyncio
    async def test_save_expire_restore(self):
        adapter = InMemoryPersistenceAdapter()
        config = GradingConfig(sessions=SessionConfig(auto_save=True))
        system = ConversationGradingSystemWithSessions("lobby", adapter, config)

        system.create_session("candidate-1")
        system.switch_session("candidate-1")
        first = await system.add_qa_pair(INTERVIEW[0])
        await system.add_qa_pair(INTERVIEW[1])
        snapshot = system.get_topic_tree()

        system.switch_session("lobby")
        info = system.session_manager.get_session("candidate-1")
        info.last_accessed_at = utcnow() - timedelta(days=2)

        assert system.cleanup_expired_sessions() == 1
        assert "candidate-1" not in [s.session_id for s in system.list_sessions()]
        assert await adapter.exists("candidate-1")

        assert await system.load_session("candidate-1") is True
        system.switch_session("candidate-1")

        assert system.get_topic_tree() == snapshot
        assert system.get_current_topic().parent_topic == first

        stats = system.get_all_sessions_stats()
        assert stats.total_sessions == 2
        assert stats.memory_stats.total_nodes == 2


class TestChatWorkflow:
    """Chat transcripts graded through the integration helper."""

    @pytest.mark.asyncio
    async def test_transcript(self):
        messages = []
        for index, qa in enumerate(INTERVIEW):
            messages.append(ChatMessage(content=qa.question, role="user", id=f"u{index}"))
            messages.append(ChatMessage(content=qa.answer, role="assistant", id=f"a{index}"))

        integration = ConversationGradingIntegration(
            IntegrationConfig(session_id="chat", enable_sessions=True)
        )
        integration.system.set_topic_selector(longest)

        results = await integration.process_conversation(messages)
        analytics = integration.get_analytics()
        export = integration.export_conversation_data()

        assert [r.is_new_branch for r in results] == [True, False, True]
        assert results[1].depth == 2
        assert analytics["stats"].total_nodes == 3
        assert len(analytics["insights"]["conversation_flow"]) == 1
        assert [qa.metadata["user_message_id"] for qa in export["qa_pairs"]] == ["u0", "u1", "u2"]
