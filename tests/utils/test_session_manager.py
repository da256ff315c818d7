"""Tests for the session manager"""
from datetime import datetime, timedelta

import pytest

from qa_dashboard.core.exceptions import NotAuthenticatedError, OAuthStateError
from qa_dashboard.core.models import MessageRole
from qa_dashboard.utils.session_manager import SessionManager, conversation_context_key


@pytest.fixture
def manager():
    return SessionManager(ttl_hours=1)


class TestOAuthState:

    def test_matching_state(self, manager):
        manager.store_oauth_state("s1", "abc")

        manager.consume_oauth_state("s1", "abc")

    def test_state_is_single_use(self, manager):
        manager.store_oauth_state("s1", "abc")
        manager.consume_oauth_state("s1", "abc")

        with pytest.raises(OAuthStateError):
            manager.consume_oauth_state("s1", "abc")

    @pytest.mark.parametrize("session_id, state", [
        ("s1", "abd"),
        ("s1", None),
        ("s2", "abc"),
        (None, "abc"),
    ])
    def test_mismatch(self, manager, session_id, state):
        manager.store_oauth_state("s1", "abc")

        with pytest.raises(OAuthStateError) as exc_info:
            manager.consume_oauth_state(session_id, state)
        assert exc_info.value.status_code == 400


class TestCredentials:

    def test_store_and_get(self, manager):
        manager.store_credentials("s1", "token", "cloud-1", "Acme", expires_in=3600)
        creds = manager.get_credentials("s1")

        assert creds.access_token == "token"
        assert creds.cloud_id == "cloud-1"
        assert creds.site_name == "Acme"

    def test_expiry_is_capped_by_session_ttl(self, manager):
        creds = manager.store_credentials("s1", "token", "cloud-1", "Acme", expires_in=10 * 24 * 3600)

        assert creds.expires_at <= datetime.now() + timedelta(hours=1)

    def test_expired_token_is_dropped(self, manager):
        manager.store_credentials("s1", "token", "cloud-1", "Acme", expires_in=-1)

        assert manager.get_credentials("s1") is None

    def test_read_without_touch_keeps_last_access(self, manager):
        manager.store_credentials("s1", "token", "cloud-1", "Acme")
        earlier = datetime.now() - timedelta(minutes=30)
        manager._sessions["s1"]["last_accessed"] = earlier

        assert manager.get_credentials("s1", touch=False).site_name == "Acme"
        assert manager._sessions["s1"]["last_accessed"] == earlier

        manager.get_credentials("s1")
        assert manager._sessions["s1"]["last_accessed"] > earlier

    def test_require_credentials(self, manager):
        with pytest.raises(NotAuthenticatedError):
            manager.require_credentials(None)
        with pytest.raises(NotAuthenticatedError):
            manager.require_credentials("unknown")

    def test_active_sessions(self, manager):
        manager.store_credentials("s1", "token", "cloud-1", "Acme")
        manager.store_oauth_state("s2", "abc")

        assert manager.active_session_ids() == ["s1"]

    def test_clear_session(self, manager):
        manager.store_credentials("s1", "token", "cloud-1", "Acme")

        assert manager.clear_session("s1")
        assert manager.get_credentials("s1") is None
        assert not manager.clear_session("s1")


class TestSelectedProject:

    def test_round_trip(self, manager):
        assert manager.get_selected_project("s1") is None

        manager.set_selected_project("s1", "PROJ")

        assert manager.get_selected_project("s1") == "PROJ"


class TestConversations:

    def test_context_key(self):
        assert conversation_context_key("PROJ-2", "PROJ-1") == "PROJ-2"
        assert conversation_context_key(None, "PROJ-1") == "PROJ-1"
        assert conversation_context_key() == "general"

    def test_conversations_are_per_context(self, manager):
        manager.append_message("s1", "PROJ-2", MessageRole.USER, "hello")
        manager.append_message("s1", "PROJ-2", MessageRole.BOT, "hi")
        manager.append_message("s1", "PROJ-3", MessageRole.USER, "other")

        story = manager.get_conversation("s1", "PROJ-2")
        assert [(m.role, m.content) for m in story] == [
            (MessageRole.USER, "hello"), (MessageRole.BOT, "hi"),
        ]
        assert len(manager.get_conversation("s1", "PROJ-3")) == 1
        assert manager.get_conversation("s1", "general") == []

    def test_returned_conversation_is_a_copy(self, manager):
        manager.append_message("s1", "general", MessageRole.USER, "hello")
        manager.get_conversation("s1", "general").clear()

        assert len(manager.get_conversation("s1", "general")) == 1

    def test_resolved_export_offers_are_per_context(self, manager):
        assert manager.resolved_export_offers("s1", "PROJ-2") == set()

        manager.resolve_export_offer("s1", "PROJ-2", "m1")
        manager.resolve_export_offer("s1", "PROJ-2", "m2")

        assert manager.resolved_export_offers("s1", "PROJ-2") == {"m1", "m2"}
        assert manager.resolved_export_offers("s1", "PROJ-3") == set()


class TestCleanup:

    def test_cleanup_expired(self, manager):
        manager.store_oauth_state("s1", "abc")
        manager._sessions["s1"]["last_accessed"] = datetime.now() - timedelta(hours=2)

        assert manager.cleanup_expired() == 1
        assert manager.get_stats()["total_sessions"] == 0
