"""
Issue Normalizer
Turns raw Jira issue payloads into the dashboard's Issue records
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from qa_dashboard.core.models import (
    Assignee,
    Issue,
    IssuePriority,
    IssueType,
    TestCaseRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_EPIC_LINK_FIELD = "customfield_10014"

# Fields requested from the search endpoint for a bulk load
BULK_FIELDS = [
    "key", "summary", "issuetype", "project", "assignee",
    "priority", "updated", "parent", "status",
]


def classify_issue_type(type_name: Optional[str], parent_key: Optional[str]) -> Optional[IssueType]:
    """
    Place a Jira issue type in the dashboard hierarchy.

    Args:
        type_name: Jira issue type name (e.g. 'Story', 'Sub-task', 'Test')
        parent_key: Key of the parent issue, if any

    Returns:
        The IssueType, or None when the issue has no place in the hierarchy
    """
    name = type_name or ""
    if name == "Epic":
        return IssueType.EPIC
    if name == "Story":
        return IssueType.STORY
    if name == "Task":
        return IssueType.TASK
    if name == "Bug":
        return IssueType.BUG
    if parent_key:
        return IssueType.TEST_CASE
    return None


def _link_key(value: Any) -> Optional[str]:
    """Epic link fields hold either a bare key or an issue reference"""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        key = value.get("key")
        if isinstance(key, str) and key.strip():
            return key.strip()
    return None


def _assignee(raw: Any) -> Optional[Assignee]:
    if not isinstance(raw, dict) or not raw.get("displayName"):
        return None
    avatars = raw.get("avatarUrls") or {}
    return Assignee(display_name=raw["displayName"], avatar_url=avatars.get("24x24", "") or "")


def _priority(raw: Any) -> IssuePriority:
    if not isinstance(raw, dict):
        return IssuePriority()
    return IssuePriority(name=raw.get("name") or "Medium", icon_url=raw.get("iconUrl") or "")


def normalize_issue(raw: Dict[str, Any], epic_link_field: str = DEFAULT_EPIC_LINK_FIELD) -> Optional[Issue]:
    """
    Normalize one raw issue from a search or bulk endpoint.

    Args:
        raw: Jira issue payload ({'key': ..., 'fields': {...}})
        epic_link_field: Custom field id that holds the Epic Link on this site

    Returns:
        Issue, or None if the payload is invalid or outside the hierarchy
    """
    if not isinstance(raw, dict):
        logger.warning("Skipping issue payload that is not an object: %r", type(raw).__name__)
        return None

    key = raw.get("key")
    fields = raw.get("fields") if isinstance(raw.get("fields"), dict) else {}
    summary = fields.get("summary")
    if not key or not isinstance(summary, str) or not summary.strip():
        logger.warning("Skipping issue %s: missing key or summary", key or "<no key>")
        return None

    type_name = (fields.get("issuetype") or {}).get("name") or ""
    parent = fields.get("parent") if isinstance(fields.get("parent"), dict) else {}
    parent_key = _link_key(parent)
    parent_summary = (parent.get("fields") or {}).get("summary") if parent else None

    if type_name == "Story" and not parent_key:
        parent_key = _link_key(fields.get(epic_link_field))

    issue_type = classify_issue_type(type_name, parent_key)
    if issue_type is None:
        logger.debug("Ignoring %s: type '%s' has no place in the hierarchy", key, type_name)
        return None

    project = fields.get("project") or {}
    status = (fields.get("status") or {}).get("name") or "Unknown"

    return Issue(
        key=key,
        summary=summary,
        issue_type=issue_type,
        project_key=project.get("key") or key.split("-")[0],
        project_name=project.get("name", ""),
        parent_key=parent_key,
        parent_summary=parent_summary,
        status=status,
        assignee=_assignee(fields.get("assignee")),
        priority=_priority(fields.get("priority")),
        updated=fields.get("updated"),
        type_name=type_name,
    )


def normalize_issues(
    raws: Iterable[Dict[str, Any]],
    epic_link_field: str = DEFAULT_EPIC_LINK_FIELD
) -> Tuple[List[Issue], int]:
    """
    Normalize a batch of raw issues, dropping the ones that cannot be used.

    Returns:
        Tuple of (issues, skipped_count)
    """
    issues: List[Issue] = []
    skipped = 0
    for raw in raws:
        issue = normalize_issue(raw, epic_link_field)
        if issue is None:
            skipped += 1
        else:
            issues.append(issue)
    if skipped:
        logger.info("Normalized %d issues, skipped %d", len(issues), skipped)
    return issues, skipped


def normalize_project(raw: Dict[str, Any]) -> Optional[Issue]:
    """Normalize a project from the project search endpoint"""
    key = (raw or {}).get("key")
    name = (raw or {}).get("name") or key
    if not key:
        logger.warning("Skipping project without key")
        return None
    avatars = raw.get("avatarUrls") or {}
    return Issue(
        key=key,
        summary=name,
        issue_type=IssueType.PROJECT,
        project_key=key,
        project_name=name,
        avatar_url=avatars.get("24x24", "") or "",
        type_name="Project",
    )


def extract_test_cases_from_story(story_json: Dict[str, Any]) -> List[TestCaseRecord]:
    """
    Read test cases from a story's subtasks.

    Args:
        story_json: Issue payload fetched with fields=subtasks

    Returns:
        TestCaseRecords owned by the story
    """
    story_key = (story_json or {}).get("key", "")
    subtasks = ((story_json or {}).get("fields") or {}).get("subtasks") or []
    records = []
    for st in subtasks:
        if not st.get("key"):
            logger.warning("Skipping subtask of %s without key", story_key)
            continue
        st_fields = st.get("fields") or {}
        records.append(TestCaseRecord(
            key=st["key"],
            summary=st_fields.get("summary") or "",
            status=(st_fields.get("status") or {}).get("name") or "Unknown",
            parent_key=story_key,
        ))
    return records
