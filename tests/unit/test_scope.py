"""Unit tests for scope selection, owner filters and read-side projections."""

from datetime import date

import pytest

from cadence.cycles import sync_all
from cadence.lifecycle import retire_milestone, retire_task
from cadence.manage import create_milestone, create_task, create_workstream, reassign_owner
from cadence.models import Selection
from cadence.scope import (
    due_counts,
    filter_by_owner,
    group_by_milestone,
    matches_owner,
    open_items,
    owner_summaries,
    owners_in,
    resolve_selection,
    review_rows,
    select_scope,
    tasks_in_scope,
)


@pytest.fixture
def two_stream_state(weekly_state, today):
    state, _ = create_workstream(
        weekly_state, "PROJ-1", "Reporting", "monthly", today,
        first_cycle_start_date="2025-02-01", workstream_id="WS-2",
    )
    state, _ = create_task(state, "WS-2", "Monthly report", "Unassigned", today, task_id="TASK-3")
    return state


class TestSelection:
    """Test cases for scope pointers."""

    def test_empty_selection_is_all_tasks(self, weekly_state):
        resolved = resolve_selection(weekly_state)
        assert resolved.project is None
        assert resolved.workstream is None
        assert resolved.label == "All tasks"

    def test_workstream_implies_project(self, weekly_state):
        resolved = resolve_selection(weekly_state, Selection(project_id=None, workstream_id="WS-1"))
        assert resolved.project.id == "PROJ-1"
        assert resolved.label == "Workstream: Backend"

    def test_dangling_pointer_resolves_to_none(self, weekly_state):
        resolved = resolve_selection(weekly_state, Selection(project_id="PROJ-404", workstream_id="WS-404"))
        assert resolved.to_selection() == Selection()

    def test_select_scope(self, weekly_state):
        state = select_scope(weekly_state, workstream_id="WS-1")
        assert state.selection == Selection(project_id="PROJ-1", workstream_id="WS-1")

        state = select_scope(state, project_id="PROJ-1")
        assert state.selection == Selection(project_id="PROJ-1", workstream_id=None)

    def test_select_unknown_scope(self, weekly_state):
        with pytest.raises(KeyError):
            select_scope(weekly_state, project_id="PROJ-404")

    def test_tasks_in_scope(self, two_stream_state):
        assert len(tasks_in_scope(two_stream_state)) == 3
        assert len(tasks_in_scope(two_stream_state, project_id="PROJ-1")) == 3
        assert [t.id for t in tasks_in_scope(two_stream_state, workstream_id="WS-2")] == ["TASK-3"]


class TestOwnerFilter:
    """Test cases for owner matching."""

    @pytest.mark.parametrize(
        "owner,owner_filter,expected",
        [
            ("Ana", "all", True),
            ("Ana", None, True),
            ("Ana", "Ana", True),
            (" Ana ", "Ana", True),
            ("Ana", "ana", False),
            ("", "unassigned", True),
            ("Unassigned", "unassigned", True),
            ("Ana", "unassigned", False),
        ],
    )
    def test_matches_owner(self, owner, owner_filter, expected):
        assert matches_owner(owner, owner_filter) is expected

    def test_owners_in_excludes_unassigned(self, two_stream_state):
        assert owners_in(two_stream_state.tasks) == ["Ana", "Bo"]

    def test_filter_uses_current_cycle_owner(self, weekly_state):
        state = reassign_owner(weekly_state, "TASK-2", "Ana")
        assert [t.id for t in filter_by_owner(state.tasks, "Ana")] == ["TASK-1", "TASK-2"]


class TestMilestoneGroups:
    """Test cases for milestone grouping."""

    def test_groups_ordered_by_due_date(self, weekly_state):
        state, _ = create_milestone(weekly_state, "WS-1", "Alpha", due_date="2025-03-20", milestone_id="MS-0")
        state, _ = create_milestone(state, "WS-1", "Someday", milestone_id="MS-9")
        groups = group_by_milestone(state, state.tasks, workstream_id="WS-1")

        assert [g.milestone.id if g.milestone else None for g in groups] == ["MS-0", "MS-1", "MS-9", None]
        assert [t.id for t in groups[1].tasks] == ["TASK-1"]
        assert [t.id for t in groups[-1].tasks] == ["TASK-2"]

    def test_retired_milestone_tasks_are_loose(self, weekly_state):
        state = retire_milestone(weekly_state, "MS-1")
        groups = group_by_milestone(state, state.tasks)
        assert len(groups) == 1
        assert [t.id for t in groups[0].tasks] == ["TASK-1", "TASK-2"]

    def test_retired_tasks_excluded(self, weekly_state):
        state = retire_task(weekly_state, "TASK-1")
        groups = group_by_milestone(state, state.tasks)
        assert groups[0].tasks == []

    def test_to_dict(self, weekly_state):
        data = group_by_milestone(weekly_state, weekly_state.tasks)[0].to_dict()
        assert data["milestone"]["id"] == "MS-1"
        assert data["tasks"] == ["TASK-1"]


class TestRows:
    """Test cases for review rows and cross-workstream views."""

    def test_review_rows_for_workstream(self, two_stream_state, today):
        rows = review_rows(two_stream_state, today, workstream_id="WS-1")

        assert [row.task.id for row in rows] == ["TASK-1", "TASK-2"]
        assert rows[0].due == "ontime"
        assert rows[0].to_dict()["period_label"] == "March 3 - March 9"

    def test_review_rows_filters(self, two_stream_state, today):
        assert [r.task.id for r in review_rows(two_stream_state, today, owner="unassigned")] == ["TASK-3"]
        assert [r.task.id for r in review_rows(two_stream_state, today, milestone_id="MS-1")] == ["TASK-1"]

    def test_review_rows_offset_shows_history(self, weekly_state):
        later = date(2025, 3, 12)
        state = sync_all(weekly_state, later)
        rows = review_rows(state, later, workstream_id="WS-1", offset=1)

        assert all(row.cycle.index == 0 for row in rows)
        assert all(row.due == "closed" for row in rows)

    def test_owner_summaries(self, two_stream_state, today):
        summaries = owner_summaries(two_stream_state, today)
        assert [s.owner for s in summaries] == ["Ana", "Bo", "Unassigned"]
        assert summaries[0].to_dict()["rows"][0]["task_id"] == "TASK-1"

    def test_open_items_filters(self, two_stream_state):
        today = date(2025, 3, 8)
        items = open_items(two_stream_state, today)
        assert len(items) == 3

        # Weekly cycles end 2025-03-09, the monthly one on 2025-03-31
        assert [r.task.id for r in open_items(two_stream_state, today, due="duesoon")] == ["TASK-1", "TASK-2"]
        assert [r.task.id for r in open_items(two_stream_state, today, cadence="monthly")] == ["TASK-3"]
        assert [r.task.id for r in open_items(two_stream_state, today, owner="Bo")] == ["TASK-2"]

    def test_due_counts(self, two_stream_state):
        today = date(2025, 3, 8)
        counts = due_counts(open_items(two_stream_state, today))

        assert counts == {"total": 3, "overdue": 0, "duesoon": 2, "earliest_end": "2025-03-09"}

    def test_open_items_rejects_unknown_due(self, weekly_state, today):
        with pytest.raises(ValueError, match="Unknown due state"):
            open_items(weekly_state, today, due="late")
