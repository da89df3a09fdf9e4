"""
Participant -> live session directory.

Maps a (role, participant id) pair to the Channels channel name of the
participant's current WebSocket. Reconnecting replaces the previous handle
(latest wins, no multi-device fan-out).

The in-memory implementation is process-local: every WebSocket client must be
served by the same process that sends notifications. Scaling out needs a shared
implementation of ``ConnectionRouter`` (e.g. Redis-backed) configured through
``DISPATCH["CONNECTION_ROUTER"]``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


# ---------------------- Roles ----------------------

RIDER = "RIDER"
DRIVER = "DRIVER"
ROLES = (RIDER, DRIVER)

# REST bodies carry ints, WebSocket joins may carry strings; keys use str
ParticipantId = Union[int, str]


@dataclass(frozen=True)
class ConnectionSession:
    """One participant's live transport handle."""
    participant_id: str
    role: str
    channel_name: str
    connected_at: datetime = field(default_factory=timezone.now)


def session_key(role: str, participant_id: ParticipantId) -> Tuple[str, str]:
    return role, str(participant_id)


class ConnectionRouter:
    """Interface for the participant -> session directory."""

    def join(self, session: ConnectionSession) -> Optional[ConnectionSession]:
        """Register a session, returning the one it replaced (if any)."""
        raise NotImplementedError

    def leave(self, role: str, participant_id: ParticipantId, channel_name: Optional[str] = None) -> bool:
        """
        Remove a participant's session.

        When channel_name is given, only remove the mapping if it still points at
        that channel, so a stale socket closing cannot evict a newer connection.
        """
        raise NotImplementedError

    def lookup(self, role: str, participant_id: ParticipantId) -> Optional[ConnectionSession]:
        raise NotImplementedError


class InMemoryConnectionRouter(ConnectionRouter):
    """Thread-safe dict-backed router, shared by consumers and sync views."""

    def __init__(self):
        self._sessions: Dict[Tuple[str, str], ConnectionSession] = {}
        self._lock = threading.Lock()

    def join(self, session: ConnectionSession) -> Optional[ConnectionSession]:
        key = session_key(session.role, session.participant_id)
        with self._lock:
            previous = self._sessions.get(key)
            self._sessions[key] = session

        if previous is not None and previous.channel_name != session.channel_name:
            logger.info("%s %s reconnected; replacing session %s",
                        session.role, session.participant_id, previous.channel_name)
        return previous

    def leave(self, role: str, participant_id: ParticipantId, channel_name: Optional[str] = None) -> bool:
        key = session_key(role, participant_id)
        with self._lock:
            current = self._sessions.get(key)
            if current is None:
                return False
            if channel_name is not None and current.channel_name != channel_name:
                return False
            del self._sessions[key]
        return True

    def lookup(self, role: str, participant_id: ParticipantId) -> Optional[ConnectionSession]:
        with self._lock:
            return self._sessions.get(session_key(role, participant_id))

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# ---------------------- Singleton Instance ----------------------

_connection_router: Optional[ConnectionRouter] = None
_router_lock = threading.Lock()


def get_connection_router() -> ConnectionRouter:
    """Get the process-wide ConnectionRouter configured in settings."""
    global _connection_router
    if _connection_router is None:
        with _router_lock:
            if _connection_router is None:
                _connection_router = import_string(settings.DISPATCH["CONNECTION_ROUTER"])()
    return _connection_router
