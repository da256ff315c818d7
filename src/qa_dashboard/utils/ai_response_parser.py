"""
AI Response Parser
Pulls test case / user story drafts out of a chat completion.

The chat assistant asks the model for a fixed markdown layout:

    **TEST CASES:**

    **Test Case 1: Login with valid credentials**
    - **Description:** Verify a registered user can log in
    - **Steps:**
      1. Open the login page
      2. Submit valid credentials
    - **Expected Result:** The dashboard is shown

This is a best-effort reader for that layout, not a grammar. Text that does
not follow it yields an empty list, never an exception.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from qa_dashboard.core.models import ExportKind, ParsedItem
from qa_dashboard.utils.export_confirmation import EXPORT_PROMPT_PATTERNS
from qa_dashboard.utils.formatters import safe_json_extract

logger = logging.getLogger(__name__)

STEPS_PLACEHOLDER = "Steps to be defined"
EXPECTED_RESULT_PLACEHOLDER = "Expected result to be defined"
ACCEPTANCE_CRITERIA_PLACEHOLDER = "Acceptance criteria to be defined"
PRIORITY_PLACEHOLDER = "Medium"

BLOCK_PATTERNS = {
    ExportKind.TEST_CASE: re.compile(r"\*\*\s*Test\s+Case\s+\d+\s*[:.\-]\s*", re.IGNORECASE),
    ExportKind.STORY: re.compile(r"\*\*\s*User\s+Story\s+\d+\s*[:.\-]\s*", re.IGNORECASE),
}

LABEL_PATTERN = re.compile(
    r"^[\s\-*•]*\*\*\s*(?P<label>description|test steps|steps|expected results?|"
    r"acceptance criteria|priority)\s*:?\s*\*\*\s*:?\s*(?P<rest>.*)$",
    re.IGNORECASE,
)

SECTION_FOR_LABEL = {
    "description": "description",
    "steps": "steps",
    "test steps": "steps",
    "expected result": "expected_result",
    "expected results": "expected_result",
    "acceptance criteria": "acceptance_criteria",
    "priority": "priority",
}

SECTIONS_FOR_KIND = {
    ExportKind.TEST_CASE: ("description", "steps", "expected_result"),
    ExportKind.STORY: ("description", "acceptance_criteria", "priority"),
}

BULLET_PREFIX = re.compile(r"^\s*[-*•]\s+")
RULE_LINE = re.compile(r"^\s*(?:-{3,}|\*{2,}|_{3,})\s*$")

JSON_LIST_KEYS = {
    ExportKind.TEST_CASE: ("test_cases", "testCases", "items"),
    ExportKind.STORY: ("user_stories", "userStories", "stories", "items"),
}


def _is_follow_up(line: str) -> bool:
    return any(p.search(line) for p in EXPORT_PROMPT_PATTERNS)


def _clean_title(first_line: str) -> str:
    # "Title**" when the title is inside the bold intro, "** Title" when it follows it
    parts = [p.strip().strip(":").strip() for p in first_line.split("**")]
    return next((p for p in parts if p), "")


def _build_item(kind: ExportKind, title: str, sections: Dict[str, List[str]]) -> Optional[ParsedItem]:
    text = {name: "\n".join(lines).strip() for name, lines in sections.items()}
    description = text.get("description", "")
    if not title or not description:
        return None

    if kind == ExportKind.TEST_CASE:
        return ParsedItem(
            title=title,
            description=description,
            kind=kind,
            steps=text.get("steps") or STEPS_PLACEHOLDER,
            expected_result=text.get("expected_result") or EXPECTED_RESULT_PLACEHOLDER,
        )
    return ParsedItem(
        title=title,
        description=description,
        kind=kind,
        acceptance_criteria=text.get("acceptance_criteria") or ACCEPTANCE_CRITERIA_PLACEHOLDER,
        priority=text.get("priority") or PRIORITY_PLACEHOLDER,
    )


def _parse_block(kind: ExportKind, block: str) -> Optional[ParsedItem]:
    lines = block.split("\n")
    title = _clean_title(lines[0])
    allowed = SECTIONS_FOR_KIND[kind]
    sections: Dict[str, List[str]] = {}
    current = "description"

    for line in lines[1:]:
        if not line.strip() or RULE_LINE.match(line):
            continue
        if _is_follow_up(line):
            break

        label = LABEL_PATTERN.match(line)
        if label:
            current = SECTION_FOR_LABEL[label.group("label").lower()]
            rest = label.group("rest").strip()
            if rest and current in allowed:
                sections.setdefault(current, []).append(rest)
            continue

        if current in allowed:
            sections.setdefault(current, []).append(BULLET_PREFIX.sub("", line).strip())

    return _build_item(kind, title, sections)


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        return "\n".join(f"{i}. {v}" for i, v in enumerate(value, 1) if str(v).strip())
    return str(value).strip() if value is not None else ""


def _parse_json(kind: ExportKind, text: str) -> List[ParsedItem]:
    data = safe_json_extract(text)
    if isinstance(data, dict):
        data = next((data[k] for k in JSON_LIST_KEYS[kind] if isinstance(data.get(k), list)), None)
    if not isinstance(data, list):
        return []

    items = []
    for entry in data:
        if not isinstance(entry, dict):
            continue
        sections = {
            name: [_as_text(entry.get(name))]
            for name in SECTIONS_FOR_KIND[kind]
            if entry.get(name)
        }
        item = _build_item(kind, _as_text(entry.get("title")), sections)
        if item:
            items.append(item)
    return items


def parse_ai_response(text: str, kind: ExportKind) -> List[ParsedItem]:
    """
    Extract drafts of the requested kind from model output.

    Args:
        text: Raw completion text
        kind: ExportKind.TEST_CASE or ExportKind.STORY

    Returns:
        Parsed items; items without a title or description are dropped and
        missing optional sections are filled with placeholders
    """
    if not text or not text.strip():
        return []

    segments = BLOCK_PATTERNS[kind].split(text)
    if len(segments) > 1:
        # segments[0] is whatever preceded the first item
        items = [item for item in (_parse_block(kind, seg) for seg in segments[1:]) if item]
        logger.debug("Parsed %d of %d %s blocks", len(items), len(segments) - 1, kind.value)
        return items

    items = _parse_json(kind, text)
    if items:
        logger.debug("Parsed %d %s items from JSON output", len(items), kind.value)
    return items
