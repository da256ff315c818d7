"""QA Dashboard"""

from .core.models import (
    Issue,
    IssueType,
    StatusBucket,
    AggregatedStats,
    EpicWithStories,
    TestCaseRecord,
    ParsedItem,
    ExportKind,
)

from .clients.jira_client import JiraClient
from .clients.llm_client import LLMClient

__version__ = "1.0.0"

__all__ = [
    'Issue',
    'IssueType',
    'StatusBucket',
    'AggregatedStats',
    'EpicWithStories',
    'TestCaseRecord',
    'ParsedItem',
    'ExportKind',
    'JiraClient',
    'LLMClient',
]
