"""
Unit tests for status classification
"""
import pytest

from qa_dashboard.core.models import StatusBucket
from qa_dashboard.core.status import STATUS_RULES, classify_status


class TestClassifyStatus:

    @pytest.mark.parametrize("status", ["Passing", "PASSED", "pass - verified"])
    def test_passing(self, status):
        assert classify_status(status) == StatusBucket.PASSING

    @pytest.mark.parametrize("status", ["Partial", "Partially done"])
    def test_partial(self, status):
        assert classify_status(status) == StatusBucket.PARTIAL

    @pytest.mark.parametrize("status", ["Breaking", "Build breaks", "FAILED", "fail"])
    def test_breaking(self, status):
        assert classify_status(status) == StatusBucket.BREAKING

    def test_broken_is_not_break(self):
        # "broken" does not contain "break"
        assert classify_status("Broken") == StatusBucket.PENDING

    @pytest.mark.parametrize("status", ["To Do", "In Progress", "Blocked", "Unknown", "", None])
    def test_everything_else_is_pending(self, status):
        assert classify_status(status) == StatusBucket.PENDING

    def test_pass_wins_over_partial(self):
        assert classify_status("Partially Passing") == StatusBucket.PASSING

    def test_partial_wins_over_fail(self):
        assert classify_status("Partial failure") == StatusBucket.PARTIAL

    def test_rules_are_ordered(self):
        assert [bucket for bucket, _ in STATUS_RULES] == [
            StatusBucket.PASSING,
            StatusBucket.PARTIAL,
            StatusBucket.BREAKING,
        ]
