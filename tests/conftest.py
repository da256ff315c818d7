"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides
fixtures that can be used across all test files.
"""
import pytest
from unittest.mock import Mock

from qa_dashboard.core.models import BulkSnapshot
from qa_dashboard.utils.issue_normalizer import normalize_issues, normalize_project


# ===== Raw Jira payload builders =====

def raw_issue(key, summary, type_name, parent=None, status="To Do", project="PROJ", **extra_fields):
    """Build a raw issue as returned by the Jira search endpoint"""
    fields = {
        "summary": summary,
        "issuetype": {"name": type_name},
        "project": {"key": project, "name": f"{project} project"},
        "status": {"name": status},
        "updated": "2024-05-01T10:00:00.000+0000",
    }
    if parent:
        fields["parent"] = {"key": parent, "fields": {"summary": f"Parent {parent}"}}
    fields.update(extra_fields)
    return {"key": key, "fields": fields}


@pytest.fixture
def make_raw_issue():
    """Fixture providing the raw issue builder"""
    return raw_issue


# ===== Test Data Fixtures =====

@pytest.fixture
def raw_login_epic_issues():
    """
    One epic PROJ-1 'Login' with story PROJ-2 (2 passing, 1 breaking test case)
    and story PROJ-3 (no test cases).
    """
    return [
        raw_issue("PROJ-1", "Login", "Epic"),
        raw_issue("PROJ-2", "Login with password", "Story", parent="PROJ-1"),
        raw_issue("PROJ-3", "Remember me", "Story", parent="PROJ-1"),
        raw_issue("PROJ-4", "Valid credentials", "Sub-task", parent="PROJ-2", status="Passing"),
        raw_issue("PROJ-5", "Locked account", "Sub-task", parent="PROJ-2", status="Passed"),
        raw_issue("PROJ-6", "Wrong password", "Sub-task", parent="PROJ-2", status="Breaking"),
    ]


@pytest.fixture
def login_issues(raw_login_epic_issues):
    """Normalized issues of the login epic"""
    issues, _ = normalize_issues(raw_login_epic_issues)
    return issues


@pytest.fixture
def sample_snapshot(login_issues):
    """Fixture providing a snapshot with one project and the login epic"""
    project = normalize_project({"key": "PROJ", "name": "PROJ project"})
    return BulkSnapshot(
        projects=(project,),
        issues=tuple(login_issues),
        loaded_at="2024-05-01T10:00:00+00:00",
        load_time_ms=12,
    )


@pytest.fixture
def test_case_reply():
    """An assistant reply in the test case layout, ending with the export offer"""
    return (
        "Here are some test cases for the login story.\n\n"
        "**TEST CASES:**\n\n"
        "**Test Case 1: Login with valid credentials**\n"
        "- **Description:** Verify a registered user can log in\n"
        "- **Steps:**\n"
        "  1. Open the login page\n"
        "  2. Submit valid credentials\n"
        "- **Expected Result:** The dashboard is shown\n\n"
        "**Test Case 2: Login with wrong password**\n"
        "- **Description:** Verify a wrong password is rejected\n"
        "- **Steps:**\n"
        "  1. Open the login page\n"
        "  2. Submit a wrong password\n"
        "- **Expected Result:** An error message is shown\n\n"
        "Would you like me to export these test cases to Jira?"
    )


# ===== Mock Fixtures =====

@pytest.fixture
def mock_llm_client():
    """Fixture providing a mocked LLM client"""
    mock = Mock()
    mock.chat.return_value = ("Sure, here is an answer.", None)
    return mock


@pytest.fixture
def mock_jira_client():
    """Fixture providing a mocked Jira client that creates issues PROJ-100, PROJ-101, ..."""
    mock = Mock()
    counter = iter(range(100, 1000))
    mock.create_issue.side_effect = lambda fields: {"key": f"PROJ-{next(counter)}"}
    return mock


# ===== Pytest Configuration =====

def pytest_configure(config):
    """Pytest configuration hook"""
    # Add custom markers
    config.addinivalue_line(
        "markers",
        "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration tests (HTTP surface through TestClient)"
    )
