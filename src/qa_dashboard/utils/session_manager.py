"""
Session Manager
Per-browser server sessions: OAuth state, Jira credentials, the selected
project and chat conversations, with TTL for auto-cleanup
"""
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, List, Optional, Set

from qa_dashboard.core.exceptions import NotAuthenticatedError, OAuthStateError
from qa_dashboard.core.models import ChatMessage, MessageRole

logger = logging.getLogger(__name__)

GENERAL_CONTEXT = "general"


def conversation_context_key(story_key: Optional[str] = None, epic_key: Optional[str] = None) -> str:
    """Conversations are kept per story, else per epic, else in one general thread"""
    return story_key or epic_key or GENERAL_CONTEXT


@dataclass(frozen=True)
class JiraCredentials:
    access_token: str
    cloud_id: str
    site_name: str
    expires_at: datetime

    @property
    def expired(self) -> bool:
        return datetime.now() >= self.expires_at


class SessionManager:
    """
    In-memory session store keyed by an opaque session id.
    Sessions not accessed within the TTL are dropped.
    """

    def __init__(self, ttl_hours: int = 24):
        """
        Initialize session manager.

        Args:
            ttl_hours: Time-to-live in hours (default: 24 hours)
        """
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()
        self._ttl = timedelta(hours=ttl_hours)

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)

    def _session(self, session_id: str) -> Dict[str, Any]:
        """Get or create a session. Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None:
            session = {
                'oauth_state': None,
                'credentials': None,
                'selected_project': None,
                'conversations': {},
                'resolved_offers': {},
                'created_at': datetime.now(),
            }
            self._sessions[session_id] = session
        session['last_accessed'] = datetime.now()
        return session

    # OAuth state -----------------------------------------------------------

    def store_oauth_state(self, session_id: str, state: str) -> None:
        with self._lock:
            self._session(session_id)['oauth_state'] = state

    def consume_oauth_state(self, session_id: Optional[str], state: Optional[str]) -> None:
        """
        Check the callback's state against the one issued for this session.

        The stored state is single-use and removed whether or not it matches.

        Raises:
            OAuthStateError: state missing or different
        """
        with self._lock:
            session = self._sessions.get(session_id) if session_id else None
            expected = None
            if session is not None:
                expected, session['oauth_state'] = session['oauth_state'], None

        if not expected or not state or not secrets.compare_digest(expected, state):
            logger.warning("OAuth state mismatch for callback")
            raise OAuthStateError()

    # Credentials -----------------------------------------------------------

    def store_credentials(
        self,
        session_id: str,
        access_token: str,
        cloud_id: str,
        site_name: str,
        expires_in: Optional[int] = None
    ) -> JiraCredentials:
        lifetime = timedelta(seconds=expires_in) if expires_in else self._ttl
        creds = JiraCredentials(
            access_token=access_token,
            cloud_id=cloud_id,
            site_name=site_name,
            expires_at=datetime.now() + min(lifetime, self._ttl),
        )
        with self._lock:
            self._session(session_id)['credentials'] = creds
        logger.info("Stored Jira credentials for site %s", site_name)
        return creds

    def get_credentials(self, session_id: Optional[str], touch: bool = True) -> Optional[JiraCredentials]:
        """Credentials of a live session, or None. touch=False leaves the TTL clock alone."""
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if datetime.now() - session['last_accessed'] > self._ttl:
                del self._sessions[session_id]
                return None
            creds = session['credentials']
            if creds is not None and creds.expired:
                session['credentials'] = None
                return None
            if touch:
                session['last_accessed'] = datetime.now()
            return creds

    def require_credentials(self, session_id: Optional[str]) -> JiraCredentials:
        """
        Raises:
            NotAuthenticatedError: no session or no valid token
        """
        creds = self.get_credentials(session_id)
        if creds is None:
            raise NotAuthenticatedError()
        return creds

    # Selected project ------------------------------------------------------

    def get_selected_project(self, session_id: Optional[str]) -> Optional[str]:
        if not session_id:
            return None
        with self._lock:
            session = self._sessions.get(session_id)
            return session['selected_project'] if session else None

    def set_selected_project(self, session_id: str, project_key: Optional[str]) -> None:
        with self._lock:
            self._session(session_id)['selected_project'] = project_key

    # Conversations ---------------------------------------------------------

    def get_conversation(self, session_id: str, context_key: str) -> List[ChatMessage]:
        with self._lock:
            return list(self._session(session_id)['conversations'].get(context_key, []))

    def append_message(self, session_id: str, context_key: str, role: MessageRole, content: str) -> ChatMessage:
        message = ChatMessage(id=str(uuid.uuid4()), role=role, content=content)
        with self._lock:
            conversations = self._session(session_id)['conversations']
            conversations.setdefault(context_key, []).append(message)
        return message

    def resolve_export_offer(self, session_id: str, context_key: str, message_id: str) -> None:
        """Mark an assistant export offer as done so a later "yes" cannot export it again"""
        with self._lock:
            self._session(session_id)['resolved_offers'].setdefault(context_key, set()).add(message_id)

    def resolved_export_offers(self, session_id: str, context_key: str) -> Set[str]:
        with self._lock:
            return set(self._session(session_id)['resolved_offers'].get(context_key, ()))

    # Lifecycle -------------------------------------------------------------

    def clear_session(self, session_id: Optional[str]) -> bool:
        """
        Drop a session entirely (logout).

        Returns:
            True if a session was removed
        """
        if not session_id:
            return False
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("Cleared session")
        return removed

    def active_session_ids(self) -> List[str]:
        """Sessions that currently hold valid credentials"""
        now = datetime.now()
        with self._lock:
            return [
                sid for sid, session in self._sessions.items()
                if session['credentials'] is not None
                and not session['credentials'].expired
                and now - session['last_accessed'] <= self._ttl
            ]

    def cleanup_expired(self) -> int:
        """
        Remove sessions not accessed within the TTL.

        Returns:
            Number of sessions removed
        """
        with self._lock:
            cutoff = datetime.now() - self._ttl
            expired = [sid for sid, s in self._sessions.items() if s['last_accessed'] < cutoff]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'total_sessions': len(self._sessions),
                'authenticated_sessions': sum(
                    1 for s in self._sessions.values() if s['credentials'] is not None
                ),
                'ttl_hours': self._ttl.total_seconds() / 3600,
            }
