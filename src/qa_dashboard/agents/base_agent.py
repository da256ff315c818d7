"""
Base Agent Class
Provides common functionality for the dashboard's LLM-backed agents
"""

from typing import Any, Dict, List, Optional, Tuple


class BaseAgent:
    """Base class for all agents"""

    def __init__(self, llm):
        """
        Initialize the agent with an LLM client

        Args:
            llm: LLMClient instance for making API calls
        """
        self.llm = llm
        self.name = self.__class__.__name__

    def run(self, context: Dict[str, Any], **kwargs) -> Tuple[Any, Optional[str]]:
        """
        Main execution method - must be implemented by subclasses

        Args:
            context: Dictionary containing all necessary context for the agent
            **kwargs: Additional keyword arguments

        Returns:
            Tuple of (result, error) where error is None on success
        """
        raise NotImplementedError(f"{self.name} must implement run()")

    def _call_llm(self, messages: List[Dict[str, str]],
                  max_tokens: int = 1500, model: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
        """
        Standard LLM call with error handling

        Args:
            messages: Role-tagged messages, system prompt first
            max_tokens: Maximum tokens for the response
            model: Optional model override

        Returns:
            Tuple of (result, error) where error is None on success
        """
        try:
            result, error = self.llm.chat(messages, max_tokens=max_tokens, model=model)
            if error:
                return None, self._format_error(error)
            return result, None
        except Exception as e:
            return None, f"{self.name} LLM call failed: {str(e)}"

    def _format_error(self, error_msg: str) -> str:
        """
        Format error message with agent name

        Args:
            error_msg: Raw error message

        Returns:
            Formatted error message
        """
        return f"[{self.name}] {error_msg}"

    @staticmethod
    def get_accuracy_principles() -> str:
        """
        Accuracy rules appended to agent system prompts so drafts stay grounded
        in the selected Jira issue instead of inventing requirements.
        """
        return """

ACCURACY OVER COMPLETENESS:
- Base test cases and stories only on the issue details you were given
- If details are missing, say what is missing instead of inventing behavior
- Do NOT pad with generic checks ("verify all CRUD operations") that the issue does not call for
- A short, accurate answer is better than a long, speculative one"""
