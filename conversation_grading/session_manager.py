"""
Session lifecycle management.

Tracks session records apart from their tree snapshots, expires idle
sessions and bridges save/load to a configured persistence adapter.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import timedelta
from typing import Any

from .config import SessionConfig
from .persistence import PersistenceAdapter
from .types import (
    ConversationTree,
    MemoryStats,
    PersistenceError,
    SessionInfo,
    SessionNotFoundError,
    ValidationError,
    utcnow,
)
from .validation import safe_error_message, validate_session_id

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


class SessionManager:
    """
    Manages multiple isolated conversation sessions.

    Example:
        manager = SessionManager(InMemoryPersistenceAdapter())
        info = manager.create_session("interview-42")
        await manager.save_session(info.session_id)
    """

    def __init__(
        self,
        adapter: PersistenceAdapter | None = None,
        config: SessionConfig | None = None,
    ):
        self.config = config or SessionConfig()
        self._adapter = adapter
        self._sessions: dict[str, SessionInfo] = {}
        self._trees: dict[str, ConversationTree] = {}

    @property
    def adapter(self) -> PersistenceAdapter | None:
        return self._adapter

    @property
    def auto_save(self) -> bool:
        """True when trees should be saved after every change."""
        return self.config.auto_save and self._adapter is not None

    # =========================================================================
    # Session records
    # =========================================================================

    def create_session(
        self, session_id: str | None = None, metadata: dict[str, Any] | None = None
    ) -> SessionInfo:
        """
        Create a session with an empty tree.

        Args:
            session_id: Explicit id; generated when omitted
            metadata: Free-form session metadata

        Raises:
            ValidationError: If the id is malformed or already in use
        """
        session_id = session_id or generate_session_id()
        validate_session_id(session_id)
        if session_id in self._sessions:
            raise ValidationError(
                f"Session {session_id} already exists", "session_id", session_id
            )

        info = SessionInfo(session_id=session_id, metadata=dict(metadata or {}))
        self._sessions[session_id] = info
        self._trees[session_id] = ConversationTree(session_id=session_id)
        logger.info(f"Created session {session_id}")
        return info

    def get_session(self, session_id: str) -> SessionInfo | None:
        return self._sessions.get(session_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_sessions(self) -> list[SessionInfo]:
        return list(self._sessions.values())

    def update_session_access(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_accessed_at = utcnow()

    def delete_session(self, session_id: str) -> None:
        """Drop a session from memory. Persisted copies are left alone."""
        existed = self._sessions.pop(session_id, None) is not None
        self._trees.pop(session_id, None)
        if existed:
            logger.info(f"Deleted session {session_id}")

    async def purge_session(self, session_id: str) -> None:
        """Drop a session from memory and from the persistence adapter."""
        self.delete_session(session_id)
        if self._adapter is None:
            return
        try:
            await self._adapter.delete(session_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to delete persisted session {session_id}: {safe_error_message(e)}",
                session_id,
                e,
            ) from e

    def cleanup_expired_sessions(self, max_age_ms: int | None = None) -> int:
        """
        Delete sessions idle for longer than ``max_age_ms``.

        Returns:
            Number of sessions removed
        """
        if max_age_ms is None:
            max_age_ms = self.config.default_max_age_ms
        cutoff = utcnow() - timedelta(milliseconds=max_age_ms)

        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.last_accessed_at < cutoff
        ]
        for session_id in expired:
            self.delete_session(session_id)

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired sessions")
        return len(expired)

    # =========================================================================
    # Trees
    # =========================================================================

    def get_session_tree(self, session_id: str) -> ConversationTree | None:
        self.update_session_access(session_id)
        return self._trees.get(session_id)

    def set_session_tree(self, session_id: str, tree: ConversationTree) -> None:
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)
        self.update_session_access(session_id)
        self._trees[session_id] = tree

    async def save_session(self, session_id: str) -> None:
        """
        Persist the session's tree.

        Raises:
            PersistenceError: If no adapter is configured or the adapter fails
            SessionNotFoundError: If the session has no tree
        """
        adapter = self._require_adapter(session_id)
        tree = self._trees.get(session_id)
        if tree is None:
            raise SessionNotFoundError(session_id)

        try:
            await adapter.save(session_id, tree)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to save session {session_id}: {safe_error_message(e)}", session_id, e
            ) from e
        logger.info(f"Saved session {session_id} ({len(tree.nodes)} nodes)")

    async def load_session(self, session_id: str) -> ConversationTree | None:
        """
        Load a session's tree from the adapter, registering the session if needed.

        Returns:
            The loaded tree, or None if nothing is stored under ``session_id``

        Raises:
            PersistenceError: If no adapter is configured or the adapter fails
        """
        adapter = self._require_adapter(session_id)
        try:
            tree = await adapter.load(session_id)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to load session {session_id}: {safe_error_message(e)}", session_id, e
            ) from e

        if tree is None:
            return None

        if session_id not in self._sessions:
            self.create_session(session_id)
        self._trees[session_id] = tree
        self.update_session_access(session_id)
        logger.info(f"Loaded session {session_id} ({len(tree.nodes)} nodes)")
        return tree

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def get_memory_stats(self) -> MemoryStats:
        sessions = list(self._sessions.values())
        total_nodes = sum(len(tree.nodes) for tree in self._trees.values())
        created = [s.created_at for s in sessions]
        return MemoryStats(
            total_sessions=len(sessions),
            total_nodes=total_nodes,
            average_nodes_per_session=total_nodes / len(sessions) if sessions else 0.0,
            oldest_session=min(created) if created else None,
            newest_session=max(created) if created else None,
        )

    def dispose(self) -> None:
        self._sessions.clear()
        self._trees.clear()

    def _require_adapter(self, session_id: str) -> PersistenceAdapter:
        if self._adapter is None:
            raise PersistenceError("No persistence adapter configured", session_id)
        return self._adapter
