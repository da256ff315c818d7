"""
Chat Assistant Agent
Answers QA questions about the selected story or epic and drafts test cases
and user stories in a layout the export parser can read back.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from qa_dashboard.core.models import ChatMessage, MessageRole

from .base_agent import BaseAgent

logger = logging.getLogger(__name__)

# Oldest messages are dropped beyond this many
HISTORY_LIMIT = 20

FORMAT_INSTRUCTIONS = """
When asked for test cases, answer with exactly this layout:

**TEST CASES:**

**Test Case 1: <short title>**
- **Description:** <what is verified>
- **Steps:**
  1. <step>
  2. <step>
- **Expected Result:** <observable outcome>

When asked for user stories, answer with exactly this layout:

**USER STORIES:**

**User Story 1: <short title>**
- **Description:** As a <role>, I want <goal> so that <benefit>
- **Acceptance Criteria:**
  - <criterion>
- **Priority:** <High|Medium|Low>

After drafting test cases end with: "Would you like me to export these test cases to Jira?"
After drafting user stories end with: "Would you like me to export these user stories to Jira?"
Number items from 1 and keep every label on its own line."""


class ChatAssistantAgent(BaseAgent):
    """QA assistant for the dashboard chat"""

    def get_system_prompt(self) -> str:
        return (
            "You are a helpful QA assistant embedded in a Jira test dashboard. You help with "
            "generating test cases, user stories, reviewing coverage and answering technical "
            "questions. Provide clear, practical, and actionable responses."
            + FORMAT_INSTRUCTIONS
            + self.get_accuracy_principles()
        )

    @staticmethod
    def _context_block(context: Dict[str, Any]) -> Optional[str]:
        story = context.get("story")
        epic = context.get("epic")
        lines = []
        if epic:
            lines.append(f"Selected epic: {epic.get('key')} - {epic.get('summary', '')}")
        if story:
            lines.append(f"Selected story: {story.get('key')} - {story.get('summary', '')}")
            if story.get("status"):
                lines.append(f"Story status: {story['status']}")
            test_cases = story.get("testCases") or []
            if test_cases:
                lines.append("Existing test cases:")
                lines.extend(f"- {tc.get('key')}: {tc.get('summary', '')} [{tc.get('status', '')}]" for tc in test_cases)
        return "\n".join(lines) if lines else None

    def build_messages(self, context: Dict[str, Any]) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.get_system_prompt()}]
        block = self._context_block(context)
        if block:
            messages.append({"role": "system", "content": block})

        history: List[ChatMessage] = list(context.get("conversation") or [])[-HISTORY_LIMIT:]
        for message in history:
            role = "assistant" if message.role == MessageRole.BOT else "user"
            messages.append({"role": role, "content": message.content})
        return messages

    def run(self, context: Dict[str, Any], **kwargs) -> Tuple[Optional[str], Optional[str]]:
        """
        Produce the assistant's reply.

        Args:
            context: Dictionary with:
                - conversation: List[ChatMessage] ending with the user's message
                - story: Optional story dict (key, summary, status, testCases)
                - epic: Optional epic dict (key, summary)

        Returns:
            Tuple of (reply, error)
        """
        if not context.get("conversation"):
            return None, self._format_error("No message to answer")

        reply, error = self._call_llm(self.build_messages(context), max_tokens=kwargs.get("max_tokens", 1500))
        if error:
            logger.warning("Chat assistant failed: %s", error)
        return reply, error
