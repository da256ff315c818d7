"""
Hierarchy Aggregator
Groups normalized issues into project -> epic -> story -> test case trees
and computes pass/fail rollups at every level.

All functions are pure: they read their inputs, never mutate them, and keep
input order, so the same snapshot always produces the same tree and stats.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from qa_dashboard.core.models import (
    AggregatedStats,
    BulkSnapshot,
    EpicWithStories,
    HierarchyView,
    Issue,
    IssueType,
    StatusBucket,
    StoryNode,
    TestCaseRecord,
)
from qa_dashboard.core.status import classify_status


def compute_stats(test_cases: Iterable[TestCaseRecord]) -> AggregatedStats:
    """
    Count test cases per status bucket.

    Args:
        test_cases: Test cases of one story (or any set of test cases)

    Returns:
        AggregatedStats for the set
    """
    counts = {bucket: 0 for bucket in StatusBucket}
    for tc in test_cases:
        counts[classify_status(tc.status)] += 1
    return AggregatedStats(
        passing=counts[StatusBucket.PASSING],
        partial=counts[StatusBucket.PARTIAL],
        breaking=counts[StatusBucket.BREAKING],
        pending=counts[StatusBucket.PENDING],
    )


def sum_stats(stats: Iterable[AggregatedStats]) -> AggregatedStats:
    total = AggregatedStats()
    for s in stats:
        total = total + s
    return total


def index_by_parent(issues: Iterable[Issue]) -> Dict[str, List[Issue]]:
    """Build a parent_key -> [children] index in one pass"""
    index: Dict[str, List[Issue]] = {}
    for issue in issues:
        if issue.parent_key:
            index.setdefault(issue.parent_key, []).append(issue)
    return index


def group_test_cases(test_cases: Iterable[TestCaseRecord]) -> Dict[str, List[TestCaseRecord]]:
    """Group test cases under the key of the story that owns them"""
    grouped: Dict[str, List[TestCaseRecord]] = {}
    for tc in test_cases:
        if tc.parent_key:
            grouped.setdefault(tc.parent_key, []).append(tc)
    return grouped


def build_story_node(
    story: Issue,
    test_cases_by_story: Mapping[str, Sequence[TestCaseRecord]]
) -> StoryNode:
    cases = tuple(test_cases_by_story.get(story.key, ()))
    return StoryNode(story=story, test_cases=cases, stats=compute_stats(cases))


def build_epic_tree(
    epics: Sequence[Issue],
    stories: Sequence[Issue],
    test_cases_by_story: Mapping[str, Sequence[TestCaseRecord]]
) -> List[EpicWithStories]:
    """
    Attach stories to their epics and roll their stats up.

    Args:
        epics: Epic issues
        stories: Story issues (parent_key is the epic link)
        test_cases_by_story: story key -> test cases

    Returns:
        One EpicWithStories per epic, in input order. Epics without stories
        get empty stats.
    """
    stories_by_epic = index_by_parent(stories)
    tree = []
    for epic in epics:
        nodes = tuple(
            build_story_node(story, test_cases_by_story)
            for story in stories_by_epic.get(epic.key, ())
        )
        tree.append(EpicWithStories(
            epic=epic,
            stories=nodes,
            stats=sum_stats(node.stats for node in nodes),
        ))
    return tree


def _belongs_to_project(epic: EpicWithStories, project_key: str) -> bool:
    prefix = f"{project_key}-"
    return any(node.story.key.startswith(prefix) for node in epic.stories)


def project_stats(epic_tree: Iterable[EpicWithStories], project_key: str) -> AggregatedStats:
    """
    Roll epic stats up to a project.

    An epic counts towards the project when any of its stories carries the
    project's key prefix.
    """
    return sum_stats(
        epic.stats for epic in epic_tree if _belongs_to_project(epic, project_key)
    )


def build_hierarchy(
    issues: Sequence[Issue],
    test_cases: Optional[Iterable[TestCaseRecord]] = None,
    project_key: Optional[str] = None
) -> HierarchyView:
    """
    Build the dashboard view for a project (or for every project).

    Args:
        issues: Normalized issues of a snapshot
        test_cases: Test cases to use; derived from the TestCase issues when None
        project_key: Restrict epics and stories to this project

    Returns:
        HierarchyView with the epic tree, unlinked stories and project stats
    """
    if test_cases is None:
        test_cases = (
            TestCaseRecord(key=i.key, summary=i.summary, status=i.status, parent_key=i.parent_key or "")
            for i in issues if i.issue_type == IssueType.TEST_CASE
        )
    test_cases_by_story = group_test_cases(test_cases)

    def in_scope(issue: Issue) -> bool:
        return project_key is None or issue.project_key == project_key

    epics = [i for i in issues if i.issue_type == IssueType.EPIC and in_scope(i)]
    stories = [i for i in issues if i.issue_type == IssueType.STORY and in_scope(i)]

    tree = build_epic_tree(epics, stories, test_cases_by_story)
    epic_keys = {e.key for e in epics}
    unlinked = tuple(
        build_story_node(story, test_cases_by_story)
        for story in stories
        if story.parent_key not in epic_keys
    )

    if project_key is None:
        stats = sum_stats(epic.stats for epic in tree)
    else:
        stats = project_stats(tree, project_key)

    return HierarchyView(
        project_key=project_key,
        epics=tuple(tree),
        unlinked_stories=unlinked,
        stats=stats,
    )


def build_snapshot_hierarchy(snapshot: BulkSnapshot, project_key: Optional[str] = None) -> HierarchyView:
    return build_hierarchy(snapshot.issues, snapshot.test_cases, project_key)
