"""Formatting utilities for model output and Jira rich text"""
import json
import re
from typing import Any, Dict, List, Optional


def safe_json_extract(text: str) -> Optional[Any]:
    """
    Extract JSON from text that might contain markdown or other formatting.

    Args:
        text: Text that contains JSON (possibly with markdown code blocks)

    Returns:
        Parsed JSON value (object or array), or None if no valid JSON found

    Example:
        >>> safe_json_extract('```json\\n{"key": "value"}\\n```')
        {'key': 'value'}
    """
    if not text:
        return None

    # Remove markdown code blocks
    text = re.sub(r"^\s*```(?:json)?\s*|\s*```\s*$", "", text, flags=re.IGNORECASE)
    text = text.strip()

    # Try direct parse
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        pass

    # Try to find a JSON object or array in text
    for pattern in (r"(\{.*\})", r"(\[.*\])"):
        match = re.search(pattern, text, re.DOTALL)
        if match:
            try:
                return json.loads(match.group(1))
            except (json.JSONDecodeError, ValueError):
                pass

    return None


def text_to_adf(text: str) -> Dict[str, Any]:
    """
    Render plain text as an Atlassian Document Format document.

    Blank lines separate paragraphs; single newlines become hard breaks.

    Example:
        >>> text_to_adf("Hello")["content"][0]["content"]
        [{'type': 'text', 'text': 'Hello'}]
    """
    paragraphs: List[Dict[str, Any]] = []
    for block in re.split(r"\n\s*\n", (text or "").strip()):
        lines = [line.rstrip() for line in block.split("\n")]
        content: List[Dict[str, Any]] = []
        for i, line in enumerate(lines):
            if i > 0:
                content.append({"type": "hardBreak"})
            if line:
                content.append({"type": "text", "text": line})
        if content:
            paragraphs.append({"type": "paragraph", "content": content})

    return {"type": "doc", "version": 1, "content": paragraphs}
