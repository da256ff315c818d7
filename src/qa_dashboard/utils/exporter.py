"""
Export Pipeline
Creates Jira issues from parsed AI drafts, one request per item
"""

import logging
from typing import Any, Dict, List, Sequence

import requests

from qa_dashboard.core.exceptions import DashboardError, NothingToExportError
from qa_dashboard.core.models import ExportItemResult, ExportKind, ExportReport, ParsedItem
from qa_dashboard.utils.formatters import text_to_adf
from qa_dashboard.utils.issue_normalizer import DEFAULT_EPIC_LINK_FIELD

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Successfully exported to Jira"
FAILURE_MESSAGE = "Failed to export to Jira"


def project_key_of(issue_key: str) -> str:
    return issue_key.split("-")[0]


def compose_description(item: ParsedItem, kind: ExportKind, parent_key: str) -> str:
    """Base description followed by the labeled sections of the item's kind"""
    text = item.description
    if kind == ExportKind.TEST_CASE:
        text += f"\n\nRelated to: {parent_key}"
        if item.steps:
            text += f"\n\nSteps:\n{item.steps}"
        if item.expected_result:
            text += f"\n\nExpected Result:\n{item.expected_result}"
    elif item.acceptance_criteria:
        text += f"\n\nAcceptance Criteria:\n{item.acceptance_criteria}"
    return text


def build_issue_payload(
    item: ParsedItem,
    kind: ExportKind,
    parent_key: str,
    epic_link_field: str = DEFAULT_EPIC_LINK_FIELD,
    test_case_issue_type: str = "Sub-task"
) -> Dict[str, Any]:
    """
    Build the 'fields' object of a create-issue request.

    Test cases become subtasks of the story; stories are linked to the epic
    through the epic link field.
    """
    fields: Dict[str, Any] = {
        "project": {"key": project_key_of(parent_key)},
        "summary": item.title,
        "description": text_to_adf(compose_description(item, kind, parent_key)),
    }
    if kind == ExportKind.TEST_CASE:
        fields["issuetype"] = {"name": test_case_issue_type}
        fields["parent"] = {"key": parent_key}
    else:
        fields["issuetype"] = {"name": "Story"}
        fields[epic_link_field] = parent_key
    return fields


def _error_of(exc: DashboardError) -> Any:
    """Prefer Jira's field errors, then its error messages, then our message"""
    details = exc.details
    if isinstance(details, dict):
        if details.get("errors"):
            return details["errors"]
        if details.get("errorMessages"):
            return details["errorMessages"]
    return exc.message


class ExportPipeline:
    """Best-effort batch export: every item is attempted, failures are recorded."""

    def __init__(
        self,
        jira_client,
        epic_link_field: str = DEFAULT_EPIC_LINK_FIELD,
        test_case_issue_type: str = "Sub-task"
    ):
        self.jira = jira_client
        self.epic_link_field = epic_link_field
        self.test_case_issue_type = test_case_issue_type

    def _export_one(self, item: ParsedItem, kind: ExportKind, parent_key: str) -> ExportItemResult:
        fields = build_issue_payload(
            item, kind, parent_key, self.epic_link_field, self.test_case_issue_type
        )
        try:
            created = self.jira.create_issue(fields)
        except DashboardError as e:
            logger.warning("Failed to create issue for '%s': %s", item.title, e.message)
            return ExportItemResult(item=item.title, success=False, message=FAILURE_MESSAGE, error=_error_of(e))
        except requests.RequestException as e:
            logger.warning("Failed to create issue for '%s': %s", item.title, e)
            return ExportItemResult(item=item.title, success=False, message=FAILURE_MESSAGE, error=str(e))

        issue_key = created.get("key")
        logger.info("Created %s under %s", issue_key, parent_key)
        return ExportItemResult(item=item.title, success=True, message=SUCCESS_MESSAGE, issue_key=issue_key)

    def export(self, kind: ExportKind, parent_key: str, items: Sequence[ParsedItem]) -> ExportReport:
        """
        Create one Jira issue per item.

        Args:
            kind: ExportKind.TEST_CASE (parent is a story) or ExportKind.STORY (parent is an epic)
            parent_key: Key of the story or epic
            items: Parsed drafts

        Returns:
            ExportReport with one result per item

        Raises:
            NothingToExportError: items is empty
        """
        if not items:
            raise NothingToExportError()

        results: List[ExportItemResult] = [self._export_one(item, kind, parent_key) for item in items]
        report = ExportReport(export_type=kind, parent_key=parent_key, results=results)
        logger.info(
            "Export to %s finished: %d/%d created",
            parent_key, report.successful, len(results),
        )
        return report
