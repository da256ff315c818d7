"""
OpenAI LLM Client
Chat completions for the dashboard's QA assistant
"""

import logging
import os
import time
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

STUB_REPLY = "(pretend AI reply)"


class LLMClient:
    """Client for OpenAI API interactions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: int = 30,
        enabled: bool = True
    ):
        """
        Initialize LLM client.

        Args:
            api_key: OpenAI API key (default: OPENAI_API_KEY)
            model: Model to use (default: OPENAI_MODEL or gpt-4o-mini)
            timeout: Request timeout in seconds
            enabled: Whether AI is enabled
        """
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.timeout = timeout
        self.enabled = enabled and bool(self.api_key)
        self._client = None

    def status_label(self) -> str:
        """Get a status label for the LLM."""
        if not self.api_key:
            return "AI: OFF (no key)"
        return f"AI: ON ({self.model})" if self.enabled else "AI: OFF"

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def chat(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 1500,
        temperature: float = 0.3,
        retries: int = 2,
        model: Optional[str] = None
    ) -> Tuple[str, Optional[str]]:
        """
        Send a chat conversation to the model.

        Args:
            messages: Role-tagged messages ({'role': ..., 'content': ...})
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            retries: Number of retries on failure
            model: Optional model override (defaults to self.model)

        Returns:
            Tuple of (response_text, error_message). Without an API key the
            stub reply is returned with no error.
        """
        if not self.enabled:
            return (STUB_REPLY, None)

        try:
            client = self._get_client()
        except Exception as e:
            return ("", f"OpenAI client setup failed: {e}")

        last_err = None
        for attempt in range(retries + 1):
            try:
                resp = client.chat.completions.create(
                    model=model or self.model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                return ((resp.choices[0].message.content or "").strip(), None)
            except Exception as e:
                last_err = str(e)
                logger.warning("OpenAI call failed (attempt %d): %s", attempt + 1, last_err)
                if attempt < retries:
                    time.sleep(0.8 * (attempt + 1))

        return ("", last_err or "Unknown OpenAI error")
