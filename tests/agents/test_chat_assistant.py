"""Unit tests for the chat assistant agent"""
from unittest.mock import Mock

import pytest

from qa_dashboard.agents.chat_assistant import HISTORY_LIMIT, ChatAssistantAgent
from qa_dashboard.core.models import ChatMessage, MessageRole
from qa_dashboard.utils.export_confirmation import offers_export


@pytest.fixture
def agent(mock_llm_client):
    return ChatAssistantAgent(mock_llm_client)


def _conversation(*contents):
    roles = [MessageRole.USER, MessageRole.BOT]
    return [ChatMessage(id=str(i), role=roles[i % 2], content=c) for i, c in enumerate(contents)]


class TestSystemPrompt:

    def test_prompt_teaches_parseable_layout(self, agent):
        prompt = agent.get_system_prompt()

        assert "**TEST CASES:**" in prompt
        assert "**Test Case 1:" in prompt
        assert "**User Story 1:" in prompt
        assert "- **Expected Result:**" in prompt

    def test_prompt_asks_the_recognized_follow_up(self, agent):
        assert offers_export(agent.get_system_prompt())


class TestBuildMessages:

    def test_roles(self, agent):
        messages = agent.build_messages({"conversation": _conversation("hi", "hello", "write tests")})

        assert messages[0]["role"] == "system"
        assert [m["role"] for m in messages[1:]] == ["user", "assistant", "user"]

    def test_story_context(self, agent):
        context = {
            "conversation": _conversation("write tests"),
            "story": {
                "key": "PROJ-2", "summary": "Login", "status": "In Progress",
                "testCases": [{"key": "PROJ-4", "summary": "Valid login", "status": "Passing"}],
            },
            "epic": {"key": "PROJ-1", "summary": "Auth"},
        }
        block = agent.build_messages(context)[1]["content"]

        assert "Selected epic: PROJ-1 - Auth" in block
        assert "Selected story: PROJ-2 - Login" in block
        assert "- PROJ-4: Valid login [Passing]" in block

    def test_history_is_bounded(self, agent):
        conversation = _conversation(*[f"m{i}" for i in range(HISTORY_LIMIT + 5)])
        messages = agent.build_messages({"conversation": conversation})

        assert len(messages) == 1 + HISTORY_LIMIT
        assert messages[-1]["content"] == f"m{HISTORY_LIMIT + 4}"


class TestRun:

    def test_reply(self, agent, mock_llm_client):
        reply, error = agent.run({"conversation": _conversation("hi")})

        assert reply == "Sure, here is an answer."
        assert error is None
        sent = mock_llm_client.chat.call_args.args[0]
        assert sent[-1] == {"role": "user", "content": "hi"}

    def test_empty_conversation(self, agent, mock_llm_client):
        reply, error = agent.run({"conversation": []})

        assert reply is None
        assert "No message" in error
        mock_llm_client.chat.assert_not_called()

    def test_llm_failure(self):
        llm = Mock()
        llm.chat.return_value = ("", "timeout")

        reply, error = ChatAssistantAgent(llm).run({"conversation": _conversation("hi")})

        assert reply is None
        assert error == "[ChatAssistantAgent] timeout"
