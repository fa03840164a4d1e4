"""
Tests for stack status classification.
"""

import pytest

from cftail.errors import UnmappedStatusError
from cftail.status import StackStatus, StatusCategory

COMPLETE = {
    "CREATE_COMPLETE",
    "DELETE_COMPLETE",
    "ROLLBACK_COMPLETE",
    "UPDATE_COMPLETE",
    "UPDATE_ROLLBACK_COMPLETE",
    "IMPORT_COMPLETE",
    "IMPORT_ROLLBACK_COMPLETE",
}


class TestStackStatus:
    """Test parsing and derived properties of StackStatus."""

    @pytest.mark.parametrize("status", list(StackStatus))
    def test_parse_every_member(self, status):
        assert StackStatus.parse(status.value) is status

    def test_unknown_status_raises(self):
        with pytest.raises(UnmappedStatusError) as excinfo:
            StackStatus.parse("UPDATE_SOMETHING_NEW")
        assert excinfo.value.raw_status == "UPDATE_SOMETHING_NEW"

    def test_parse_is_case_sensitive(self):
        with pytest.raises(UnmappedStatusError):
            StackStatus.parse("update_complete")

    @pytest.mark.parametrize("status", list(StackStatus))
    def test_is_complete(self, status):
        """Only the seven terminal success states count as complete."""
        assert status.is_complete == (status.value in COMPLETE)

    def test_exactly_seven_complete(self):
        assert len([s for s in StackStatus if s.is_complete]) == 7

    @pytest.mark.parametrize("status", list(StackStatus))
    def test_in_progress_failed_skipped_never_complete(self, status):
        if status.value.endswith(("_IN_PROGRESS", "_FAILED", "_SKIPPED")):
            assert not status.is_complete

    def test_categories(self):
        assert StackStatus.UPDATE_IN_PROGRESS.category == StatusCategory.IN_PROGRESS
        assert StackStatus.UPDATE_COMPLETE_CLEANUP_IN_PROGRESS.category == StatusCategory.IN_PROGRESS
        assert StackStatus.DELETE_SKIPPED.category == StatusCategory.IN_PROGRESS
        assert StackStatus.CREATE_COMPLETE.category == StatusCategory.COMPLETE
        assert StackStatus.UPDATE_ROLLBACK_COMPLETE.category == StatusCategory.COMPLETE
        assert StackStatus.UPDATE_FAILED.category == StatusCategory.FAILED
        assert StackStatus.IMPORT_ROLLBACK_FAILED.category == StatusCategory.FAILED

    @pytest.mark.parametrize("status", list(StackStatus))
    def test_complete_category_matches_is_complete(self, status):
        assert (status.category == StatusCategory.COMPLETE) == status.is_complete
