"""
Tests for batch progress and the kanban board.
"""

import pytest

from delivery_lifecycle.lifecycle.enums import KanbanColumn, UnitStatus
from delivery_lifecycle.lifecycle.progress import (
    can_archive_batch,
    compute_progress,
    group_by_column,
    map_status_to_column,
)


class TestMapStatusToColumn:
    def test_every_status_is_mapped(self):
        for status in UnitStatus:
            column = map_status_to_column(status)
            if status == UnitStatus.CANCELLED:
                assert column is None
            else:
                assert isinstance(column, KanbanColumn)

    def test_mapping_is_deterministic(self):
        for status in UnitStatus:
            assert map_status_to_column(status) == map_status_to_column(status.value)

    def test_both_review_statuses_share_a_column(self):
        assert map_status_to_column("in_review") == KanbanColumn.IN_REVIEW
        assert map_status_to_column("pending_approval") == KanbanColumn.IN_REVIEW

    def test_pending_slot_awaits_editor(self):
        assert map_status_to_column("pending") == KanbanColumn.AWAITING_EDITOR

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            map_status_to_column("draft")


class TestComputeProgress:
    def test_mixed_batch_past_deadline(self):
        progress = compute_progress(["completed", "in_review", "pending"], deadline_days=-2)

        assert progress.percentage == 33
        assert progress.completed == 1
        assert progress.in_review == 1
        assert progress.in_progress == 0
        assert progress.has_delayed is True
        assert progress.total == 3
        assert progress.pending == 1
        assert progress.delayed_count == 2

    def test_empty_batch(self):
        progress = compute_progress([], deadline_days=-5)
        assert progress.percentage == 0
        assert progress.total == 0
        assert progress.has_delayed is False

    def test_finished_batch_is_never_delayed(self):
        progress = compute_progress(["completed", "completed"], deadline_days=-1)
        assert progress.percentage == 100
        assert progress.has_delayed is False
        assert progress.delayed_count == 0

    @pytest.mark.parametrize("deadline_days", [None, 0, 4])
    def test_not_delayed_before_deadline(self, deadline_days):
        progress = compute_progress(["in_progress"], deadline_days=deadline_days)
        assert progress.has_delayed is False

    def test_cancelled_slots_do_not_count(self):
        progress = compute_progress(["completed", "cancelled"])
        assert progress.total == 1
        assert progress.percentage == 100

    def test_rounds_half_up(self):
        statuses = ["completed"] + ["in_progress"] * 7
        assert compute_progress(statuses).percentage == 13

    def test_pending_approval_counts_as_in_review(self):
        progress = compute_progress(["pending_approval", "revision_requested"])
        assert progress.in_review == 1
        assert progress.revision_requested == 1

    def test_accepts_mappings_and_objects(self):
        class Slot:
            status = "completed"

        progress = compute_progress([{"status": "in_progress"}, Slot()])
        assert progress.completed == 1
        assert progress.in_progress == 1


class TestBoard:
    def test_every_column_present(self):
        columns = group_by_column([])
        assert list(columns) == list(KanbanColumn)
        assert all(items == [] for items in columns.values())

    def test_groups_in_input_order_and_skips_cancelled(self):
        videos = [
            {"id": "v1", "status": "in_review"},
            {"id": "v2", "status": "cancelled"},
            {"id": "v3", "status": "pending_approval"},
            {"id": "v4", "status": "pending"},
        ]
        columns = group_by_column(videos)
        assert [v["id"] for v in columns[KanbanColumn.IN_REVIEW]] == ["v1", "v3"]
        assert [v["id"] for v in columns[KanbanColumn.AWAITING_EDITOR]] == ["v4"]
        assert sum(len(items) for items in columns.values()) == 3

    def test_can_archive_batch(self):
        assert can_archive_batch(["completed", "completed"]) is True
        assert can_archive_batch(["completed", "in_review"]) is False
        assert can_archive_batch([]) is False
