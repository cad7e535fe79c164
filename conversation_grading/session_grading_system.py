"""
Multi-session conversation grading façade.

Owns one ConversationGradingSystem per session plus a pointer to the
active one. Everything not about sessions is delegated to the active
session's system.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .config import GradingConfig
from .grading_system import ConversationGradingSystem, TopicSelector
from .persistence import PersistenceAdapter
from .scoring_engine import ScoringStrategy
from .session_manager import SessionManager
from .topic_analyzer import TopicAnalyzerProtocol
from .topic_node import TopicNode
from .tree_navigator import CurrentPosition
from .types import (
    ConversationStats,
    ConversationTree,
    GradingError,
    MemoryStats,
    QAPair,
    SessionInfo,
    SessionNotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    session_id: str
    stats: ConversationStats
    session_info: SessionInfo


@dataclass
class AllSessionsStats:
    """Aggregate view over every live session."""

    total_sessions: int
    current_session: str
    memory_stats: MemoryStats
    session_stats: list[SessionStats] = field(default_factory=list)


class ConversationGradingSystemWithSessions:
    """
    Grades several isolated conversations, one active at a time.

    Example:
        system = ConversationGradingSystemWithSessions(
            "candidate-1", adapter=InMemoryPersistenceAdapter()
        )
        await system.add_qa_pair(qa_pair)
        await system.save_session()
        system.create_session("candidate-2")
        system.switch_session("candidate-2")
    """

    def __init__(
        self,
        initial_session_id: str = "default",
        adapter: PersistenceAdapter | None = None,
        config: GradingConfig | None = None,
    ):
        """
        Initialize ConversationGradingSystemWithSessions.

        Args:
            initial_session_id: Id of the session created and activated up front
            adapter: Persistence adapter used by save/load (optional)
            config: Configuration shared by every session
        """
        self.config = config or GradingConfig()
        self._session_manager = SessionManager(adapter, self.config.sessions)
        self._systems: dict[str, ConversationGradingSystem] = {}
        self._current_session_id = self.create_session(initial_session_id)

    @property
    def session_manager(self) -> SessionManager:
        return self._session_manager

    @property
    def current_session_id(self) -> str:
        return self._current_session_id

    def get_current_session_id(self) -> str:
        return self._current_session_id

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(
        self, session_id: str | None = None, metadata: dict[str, Any] | None = None
    ) -> str:
        """
        Create a session without activating it.

        Returns:
            The new session id (generated when ``session_id`` is omitted)
        """
        info = self._session_manager.create_session(session_id, metadata)
        self._systems[info.session_id] = ConversationGradingSystem(info.session_id, self.config)
        return info.session_id

    def switch_session(self, session_id: str) -> None:
        if session_id not in self._systems:
            raise SessionNotFoundError(session_id)
        self._current_session_id = session_id
        self._session_manager.update_session_access(session_id)

    def delete_session(self, session_id: str) -> None:
        """
        Delete a session held in memory.

        Raises:
            ValidationError: If ``session_id`` is the active session
            SessionNotFoundError: If the session does not exist
        """
        self._check_deletable(session_id)
        del self._systems[session_id]
        self._session_manager.delete_session(session_id)

    async def purge_session(self, session_id: str) -> None:
        """Delete a session from memory and from the persistence adapter."""
        self._check_deletable(session_id)
        del self._systems[session_id]
        await self._session_manager.purge_session(session_id)

    def list_sessions(self) -> list[SessionInfo]:
        return self._session_manager.list_sessions()

    async def save_session(self, session_id: str | None = None) -> None:
        """
        Persist a session (the active one by default).

        Raises:
            SessionNotFoundError: If the session does not exist
            PersistenceError: If no adapter is configured or saving fails
        """
        target = session_id or self._current_session_id
        system = self._systems.get(target)
        if system is None:
            raise SessionNotFoundError(target)
        self._session_manager.set_session_tree(target, system.get_topic_tree())
        await self._session_manager.save_session(target)

    async def load_session(self, session_id: str) -> bool:
        """
        Restore a persisted session exactly as saved (ids, scores, visit state).

        An existing in-memory session keeps its strategy and analyzer; only
        its tree is replaced.

        Returns:
            False if nothing is stored under ``session_id``

        Raises:
            PersistenceError: If no adapter is configured or loading fails
            TreeIntegrityError: If the stored tree is inconsistent
        """
        existed = self._session_manager.has_session(session_id)
        tree = await self._session_manager.load_session(session_id)
        if tree is None:
            return False

        system = self._systems.get(session_id) or ConversationGradingSystem(
            session_id, self.config
        )
        try:
            system.load_tree(tree)
        except GradingError:
            if existed:
                self._sync_tree(system)
            else:
                self._session_manager.delete_session(session_id)
            raise

        self._systems[session_id] = system
        return True

    def cleanup_expired_sessions(self, max_age_ms: int | None = None) -> int:
        """
        Delete idle sessions. The active session is refreshed first and never purged.

        Returns:
            Number of sessions removed
        """
        self._session_manager.update_session_access(self._current_session_id)
        removed = self._session_manager.cleanup_expired_sessions(max_age_ms)
        for session_id in list(self._systems):
            if not self._session_manager.has_session(session_id):
                del self._systems[session_id]
        return removed

    def get_all_sessions_stats(self) -> AllSessionsStats:
        sessions = self._session_manager.list_sessions()
        session_stats = [
            SessionStats(
                session_id=info.session_id,
                stats=self._systems[info.session_id].get_stats(),
                session_info=info,
            )
            for info in sessions
            if info.session_id in self._systems
        ]
        return AllSessionsStats(
            total_sessions=len(sessions),
            current_session=self._current_session_id,
            memory_stats=self._session_manager.get_memory_stats(),
            session_stats=session_stats,
        )

    def dispose(self) -> None:
        """Release every session. The instance is unusable afterwards."""
        self._systems.clear()
        self._session_manager.dispose()

    # =========================================================================
    # Delegation to the active session
    # =========================================================================

    async def add_qa_pair(
        self, qa_pair: QAPair, score: float | None = None, *, auto_score: bool = True
    ) -> str:
        """Add a Q&A pair to the active session, auto-saving it when configured."""
        system = self._current_system()
        node_id = await system.add_qa_pair(qa_pair, score, auto_score=auto_score)
        self._sync_tree(system)
        if self._session_manager.auto_save:
            await self._session_manager.save_session(self._current_session_id)
        return node_id

    def get_topic_tree(self) -> ConversationTree:
        return self._current_system().get_topic_tree()

    def get_node(self, node_id: str) -> TopicNode | None:
        return self._current_system().get_node(node_id)

    def get_depth_from_root(self, node_id: str) -> int:
        return self._current_system().get_depth_from_root(node_id)

    def get_deepest_unvisited_branch(self) -> TopicNode | None:
        return self._current_system().get_deepest_unvisited_branch()

    def get_current_topic(self) -> TopicNode | None:
        return self._current_system().get_current_topic()

    def get_current_position(self) -> CurrentPosition:
        return self._current_system().get_current_position()

    def get_conversation_history(self) -> list[QAPair]:
        return self._current_system().get_conversation_history()

    def get_stats(self) -> ConversationStats:
        return self._current_system().get_stats()

    def mark_topic_as_visited(self, node_id: str) -> None:
        system = self._current_system()
        system.mark_topic_as_visited(node_id)
        self._sync_tree(system)

    def mark_topic_as_exhausted(self, node_id: str) -> None:
        system = self._current_system()
        system.mark_topic_as_exhausted(node_id)
        self._sync_tree(system)

    def set_scoring_strategy(self, strategy: ScoringStrategy) -> None:
        self._current_system().set_scoring_strategy(strategy)

    def set_topic_analyzer(self, analyzer: TopicAnalyzerProtocol) -> None:
        self._current_system().set_topic_analyzer(analyzer)

    def set_topic_selector(self, selector: TopicSelector) -> None:
        self._current_system().set_topic_selector(selector)

    def clear(self) -> None:
        system = self._current_system()
        system.clear()
        self._sync_tree(system)

    # =========================================================================
    # Internals
    # =========================================================================

    def _current_system(self) -> ConversationGradingSystem:
        system = self._systems.get(self._current_session_id)
        if system is None:
            raise SessionNotFoundError(self._current_session_id)
        self._session_manager.update_session_access(self._current_session_id)
        return system

    def _sync_tree(self, system: ConversationGradingSystem) -> None:
        self._session_manager.set_session_tree(system.session_id, system.get_topic_tree())

    def _check_deletable(self, session_id: str) -> None:
        if session_id == self._current_session_id:
            raise ValidationError(
                "Cannot delete the current active session", "session_id", session_id
            )
        if session_id not in self._systems:
            raise SessionNotFoundError(session_id)
