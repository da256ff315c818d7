"""
Core data models for the QA dashboard.

Normalized Jira records, hierarchy rollups, AI drafts and export results.
Everything here is plain data: Jira payloads are only touched by the
normalizer, and the aggregator builds these records without mutating them.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple
from enum import Enum


class IssueType(Enum):
    """Levels of the dashboard hierarchy"""
    PROJECT = "Project"
    EPIC = "Epic"
    STORY = "Story"
    TASK = "Task"
    BUG = "Bug"
    TEST_CASE = "TestCase"


class StatusBucket(Enum):
    """Canonical test result buckets"""
    PASSING = "passing"
    PARTIAL = "partial"
    BREAKING = "breaking"
    PENDING = "pending"


class ExportKind(Enum):
    """Kinds of AI drafts that can be written back to Jira"""
    TEST_CASE = "test_case"
    STORY = "story"


class MessageRole(Enum):
    USER = "user"
    BOT = "bot"


@dataclass(frozen=True)
class Assignee:
    display_name: str
    avatar_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"displayName": self.display_name, "avatarUrl": self.avatar_url}


@dataclass(frozen=True)
class IssuePriority:
    name: str = "Medium"
    icon_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "iconUrl": self.icon_url}


@dataclass(frozen=True)
class Issue:
    """A Jira issue (or project) in the dashboard's uniform shape"""
    key: str
    summary: str
    issue_type: IssueType
    project_key: str = ""
    project_name: str = ""
    parent_key: Optional[str] = None
    parent_summary: Optional[str] = None
    status: str = "Unknown"
    assignee: Optional[Assignee] = None
    priority: IssuePriority = field(default_factory=IssuePriority)
    updated: Optional[str] = None
    type_name: str = ""
    avatar_url: str = ""

    def __post_init__(self):
        """Validate issue data"""
        if not self.key or not self.key.strip():
            raise ValueError("Issue key cannot be empty")
        if not self.summary or not self.summary.strip():
            raise ValueError("Issue summary cannot be empty")

    @property
    def is_task(self) -> bool:
        return self.issue_type in (IssueType.TASK, IssueType.BUG)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "key": self.key,
            "summary": self.summary,
            "issueType": self.issue_type.value,
            "typeName": self.type_name or self.issue_type.value,
            "projectKey": self.project_key,
            "projectName": self.project_name,
            "parentKey": self.parent_key,
            "parentSummary": self.parent_summary,
            "status": self.status,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "priority": self.priority.to_dict(),
            "updated": self.updated,
            "avatarUrl": self.avatar_url,
        }


@dataclass(frozen=True)
class TestCaseRecord:
    """A test case attached to exactly one story"""
    key: str
    summary: str
    status: str
    parent_key: str

    __test__ = False  # keep pytest from collecting this as a test class

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "parentKey": self.parent_key,
        }


@dataclass(frozen=True)
class AggregatedStats:
    """
    Pass/partial/breaking/pending counts for a set of test cases.

    total is always the sum of the four buckets, so it is derived rather
    than stored.
    """
    passing: int = 0
    partial: int = 0
    breaking: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.passing + self.partial + self.breaking + self.pending

    @property
    def pass_rate(self) -> int:
        if self.total <= 0:
            return 0
        # Half rounds up, matching the dashboard's Math.round
        return int(self.passing * 100 / self.total + 0.5)

    def __add__(self, other: "AggregatedStats") -> "AggregatedStats":
        if not isinstance(other, AggregatedStats):
            return NotImplemented
        return AggregatedStats(
            passing=self.passing + other.passing,
            partial=self.partial + other.partial,
            breaking=self.breaking + other.breaking,
            pending=self.pending + other.pending,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passing": self.passing,
            "partial": self.partial,
            "breaking": self.breaking,
            "pending": self.pending,
            "total": self.total,
            "passRate": self.pass_rate,
        }


@dataclass(frozen=True)
class StoryNode:
    story: Issue
    test_cases: Tuple[TestCaseRecord, ...] = ()
    stats: AggregatedStats = field(default_factory=AggregatedStats)

    def to_dict(self) -> Dict[str, Any]:
        data = self.story.to_dict()
        data["epicLink"] = self.story.parent_key
        data["testCases"] = [tc.to_dict() for tc in self.test_cases]
        data["stats"] = self.stats.to_dict()
        return data


@dataclass(frozen=True)
class EpicWithStories:
    """An epic, its stories and the rollup over their test cases"""
    epic: Issue
    stories: Tuple[StoryNode, ...] = ()
    stats: AggregatedStats = field(default_factory=AggregatedStats)

    @property
    def key(self) -> str:
        return self.epic.key

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.epic.key,
            "summary": self.epic.summary,
            "projectKey": self.epic.project_key,
            "projectName": self.epic.project_name,
            "status": self.epic.status,
            "stories": [s.to_dict() for s in self.stories],
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class HierarchyView:
    """Epic tree and rollups for one project (or for everything)"""
    project_key: Optional[str]
    epics: Tuple[EpicWithStories, ...] = ()
    unlinked_stories: Tuple[StoryNode, ...] = ()
    stats: AggregatedStats = field(default_factory=AggregatedStats)

    def find_story(self, story_key: str) -> Optional[StoryNode]:
        for epic in self.epics:
            for node in epic.stories:
                if node.story.key == story_key:
                    return node
        for node in self.unlinked_stories:
            if node.story.key == story_key:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectKey": self.project_key,
            "epics": [e.to_dict() for e in self.epics],
            "unlinkedStories": [s.to_dict() for s in self.unlinked_stories],
            "stats": self.stats.to_dict(),
        }


@dataclass(frozen=True)
class BulkSnapshot:
    """One full load of projects and issues for a Jira site"""
    projects: Tuple[Issue, ...]
    issues: Tuple[Issue, ...]
    loaded_at: str
    load_time_ms: int = 0
    skipped: int = 0
    pagination: Dict[str, Any] = field(default_factory=dict)

    def of_type(self, *types: IssueType) -> List[Issue]:
        return [i for i in self.issues if i.issue_type in types]

    @property
    def epics(self) -> List[Issue]:
        return self.of_type(IssueType.EPIC)

    @property
    def stories(self) -> List[Issue]:
        return self.of_type(IssueType.STORY)

    @property
    def tasks(self) -> List[Issue]:
        return self.of_type(IssueType.TASK, IssueType.BUG)

    @property
    def test_cases(self) -> List[TestCaseRecord]:
        return [
            TestCaseRecord(
                key=i.key,
                summary=i.summary,
                status=i.status,
                parent_key=i.parent_key or "",
            )
            for i in self.of_type(IssueType.TEST_CASE)
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the bulk-data wire shape"""
        epics = self.epics
        stories = self.stories
        tasks = self.tasks
        test_cases = self.of_type(IssueType.TEST_CASE)
        return {
            "projects": [p.to_dict() for p in self.projects],
            "epics": [e.to_dict() for e in epics],
            "stories": [dict(s.to_dict(), epicLink=s.parent_key) for s in stories],
            "tasks": [t.to_dict() for t in tasks],
            "testCases": [tc.to_dict() for tc in test_cases],
            "metadata": {
                "totalProjects": len(self.projects),
                "totalIssues": len(self.issues),
                "skippedIssues": self.skipped,
                "loadTime": self.load_time_ms,
                "loadedAt": self.loaded_at,
                "breakdown": {
                    "epics": len(epics),
                    "stories": len(stories),
                    "tasks": len(tasks),
                    "testCases": len(test_cases),
                },
                "pagination": self.pagination,
            },
        }


@dataclass
class ParsedItem:
    """A test case or user story drafted by the language model"""
    title: str
    description: str
    kind: ExportKind = ExportKind.TEST_CASE
    steps: Optional[str] = None
    expected_result: Optional[str] = None
    acceptance_criteria: Optional[str] = None
    priority: Optional[str] = None

    def __post_init__(self):
        if not self.title or not self.title.strip():
            raise ValueError("Parsed item title cannot be empty")
        if not self.description or not self.description.strip():
            raise ValueError("Parsed item description cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title, "description": self.description}
        if self.kind == ExportKind.TEST_CASE:
            data["steps"] = self.steps
            data["expected_result"] = self.expected_result
        else:
            data["acceptance_criteria"] = self.acceptance_criteria
            data["priority"] = self.priority
        return data


@dataclass(frozen=True)
class ChatMessage:
    id: str
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ExportDecision:
    """Outcome of checking a chat reply for an export confirmation"""
    should_export: bool
    export_type: Optional[ExportKind] = None
    content: Optional[str] = None
    message_id: Optional[str] = None

    @classmethod
    def negative(cls) -> "ExportDecision":
        return cls(should_export=False)


@dataclass
class ExportItemResult:
    item: str
    success: bool
    message: str
    issue_key: Optional[str] = None
    error: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"item": self.item, "success": self.success, "message": self.message}
        if self.success:
            data["issueKey"] = self.issue_key
        else:
            data["error"] = self.error
        return data


@dataclass
class ExportReport:
    """Best-effort batch result: succeeds if any item was created"""
    export_type: ExportKind
    parent_key: str
    results: List[ExportItemResult] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    @property
    def success(self) -> bool:
        return self.successful > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "type": self.export_type.value,
            "parentKey": self.parent_key,
            "results": [r.to_dict() for r in self.results],
            "summary": {
                "total": len(self.results),
                "successful": self.successful,
                "failed": self.failed,
            },
        }
