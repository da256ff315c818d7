"""Tests for the export pipeline"""
from unittest.mock import Mock

import pytest
import requests

from qa_dashboard.core.exceptions import (
    NotAuthenticatedError,
    NothingToExportError,
    TrackerRequestError,
    TransientError,
)
from qa_dashboard.core.models import ExportKind, ParsedItem
from qa_dashboard.utils.exporter import (
    ExportPipeline,
    build_issue_payload,
    compose_description,
    project_key_of,
)


def _test_case(title="Login"):
    return ParsedItem(title=title, description="Verify login", steps="1. Open", expected_result="Logged in")


def _story(title="Reset"):
    return ParsedItem(
        title=title, description="As a user...", kind=ExportKind.STORY,
        acceptance_criteria="Email sent", priority="High",
    )


class TestPayload:

    def test_project_key_of(self):
        assert project_key_of("PROJ-12") == "PROJ"

    def test_test_case_description(self):
        text = compose_description(_test_case(), ExportKind.TEST_CASE, "PROJ-2")

        assert text == (
            "Verify login\n\nRelated to: PROJ-2\n\nSteps:\n1. Open\n\nExpected Result:\nLogged in"
        )

    def test_story_description(self):
        text = compose_description(_story(), ExportKind.STORY, "PROJ-1")

        assert text == "As a user...\n\nAcceptance Criteria:\nEmail sent"

    def test_test_case_payload(self):
        fields = build_issue_payload(_test_case(), ExportKind.TEST_CASE, "PROJ-2")

        assert fields["project"] == {"key": "PROJ"}
        assert fields["summary"] == "Login"
        assert fields["issuetype"] == {"name": "Sub-task"}
        assert fields["parent"] == {"key": "PROJ-2"}
        assert fields["description"]["type"] == "doc"
        assert "customfield_10014" not in fields

    def test_story_payload_uses_epic_link_field(self):
        fields = build_issue_payload(_story(), ExportKind.STORY, "PROJ-1", epic_link_field="customfield_10008")

        assert fields["issuetype"] == {"name": "Story"}
        assert fields["customfield_10008"] == "PROJ-1"
        assert "parent" not in fields

    def test_configured_test_case_issue_type(self):
        fields = build_issue_payload(_test_case(), ExportKind.TEST_CASE, "PROJ-2", test_case_issue_type="Test")

        assert fields["issuetype"] == {"name": "Test"}


class TestExportPipeline:

    def test_all_items_created(self, mock_jira_client):
        report = ExportPipeline(mock_jira_client).export(
            ExportKind.TEST_CASE, "PROJ-2", [_test_case("a"), _test_case("b")]
        )

        assert report.success
        assert [r.issue_key for r in report.results] == ["PROJ-100", "PROJ-101"]
        assert mock_jira_client.create_issue.call_count == 2

    def test_failure_is_isolated(self):
        jira = Mock()
        jira.create_issue.side_effect = [
            {"key": "PROJ-10"},
            TrackerRequestError(details={"errors": {"summary": "too long"}}),
            {"key": "PROJ-11"},
        ]
        report = ExportPipeline(jira).export(
            ExportKind.TEST_CASE, "PROJ-2", [_test_case("a"), _test_case("b"), _test_case("c")]
        )
        data = report.to_dict()

        assert jira.create_issue.call_count == 3
        assert data["success"] is True
        assert data["summary"] == {"total": 3, "successful": 2, "failed": 1}
        assert data["results"][1] == {
            "item": "b",
            "success": False,
            "message": "Failed to export to Jira",
            "error": {"summary": "too long"},
        }

    @pytest.mark.parametrize("error, expected", [
        (NotAuthenticatedError("Invalid or expired token"), "Invalid or expired token"),
        (TransientError(details={"errorMessages": ["Rate limited"]}), ["Rate limited"]),
        (requests.ConnectionError("reset"), "reset"),
    ])
    def test_error_kinds_are_recorded(self, error, expected):
        jira = Mock()
        jira.create_issue.side_effect = error
        report = ExportPipeline(jira).export(ExportKind.STORY, "PROJ-1", [_story()])

        assert not report.success
        assert report.results[0].error == expected

    def test_create_is_called_once_per_item(self):
        jira = Mock()
        jira.create_issue.side_effect = TransientError()
        ExportPipeline(jira).export(ExportKind.STORY, "PROJ-1", [_story()])

        assert jira.create_issue.call_count == 1

    def test_empty_items(self, mock_jira_client):
        with pytest.raises(NothingToExportError, match="No valid items found to export"):
            ExportPipeline(mock_jira_client).export(ExportKind.TEST_CASE, "PROJ-2", [])
