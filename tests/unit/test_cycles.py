"""Unit tests for the Cadence cycle store.

This module tests cycle materialization, carry-forward,
edits to open cycles and workstream synchronization.
"""

from dataclasses import replace
from datetime import date

import pytest

from cadence.cycles import (
    cycle_at,
    current_cycle,
    ensure_cycles_up_to,
    mark_reviewed,
    normalize_cycles,
    sync_all,
    sync_workstream,
    update_cycle,
    visible_cycle,
    workstream_index,
)
from cadence.errors import CycleIndexError
from cadence.lifecycle import retire_task
from cadence.models import CLOSED, OPEN, Cycle, Task


def _task(**kwargs):
    return Task(id="TASK-1", workstream_id="WS-1", name="API", owner="Ana", **kwargs)


class TestEnsureCyclesUpTo:
    """Test cases for ensure_cycles_up_to."""

    def test_materializes_gap_free_history(self):
        cycles = ensure_cycles_up_to(_task(), "weekly", "2025-03-03", 3)

        assert [cycle.index for cycle in cycles] == [0, 1, 2, 3]
        assert [cycle.status for cycle in cycles] == [CLOSED, CLOSED, CLOSED, OPEN]
        assert cycles[2].start_date == date(2025, 3, 17)
        assert cycles[2].end_date == date(2025, 3, 23)
        assert all(cycle.owner == "Ana" for cycle in cycles)

    def test_idempotent(self):
        task = _task()
        once = ensure_cycles_up_to(task, "weekly", "2025-03-03", 2)
        twice = ensure_cycles_up_to(replace(task, cycles=once), "weekly", "2025-03-03", 2)
        assert once == twice

    def test_advancing_closes_previous_open_cycle(self):
        task = replace(_task(), cycles=ensure_cycles_up_to(_task(), "weekly", "2025-03-03", 0))
        cycles = ensure_cycles_up_to(task, "weekly", "2025-03-03", 1)

        assert cycles[0].status == CLOSED
        assert cycles[1].status == OPEN
        assert sum(1 for cycle in cycles if cycle.is_open) == 1

    def test_carries_next_plan_forward(self):
        task = replace(_task(), cycles=ensure_cycles_up_to(_task(), "weekly", "2025-03-03", 0))
        task = update_cycle(task, 0, {"actuals": "shipped", "next_plan": "write docs"})
        cycles = ensure_cycles_up_to(task, "weekly", "2025-03-03", 2)

        assert cycles[1].previous_plan == "write docs"
        # Empty synthesized cycle carries an empty plan onwards
        assert cycles[2].previous_plan == ""
        assert cycles[0].previous_plan == ""

    def test_negative_target_rejected(self):
        with pytest.raises(CycleIndexError):
            ensure_cycles_up_to(_task(), "weekly", "2025-03-03", -1)

    def test_cannot_rewind(self):
        task = replace(_task(), cycles=ensure_cycles_up_to(_task(), "weekly", "2025-03-03", 2))
        with pytest.raises(CycleIndexError, match="cannot rewind"):
            ensure_cycles_up_to(task, "weekly", "2025-03-03", 1)

    def test_follow_up_before_first_index_untouched(self):
        task = replace(_task(first_index=3), cycles=ensure_cycles_up_to(_task(first_index=3), "weekly", "2025-03-03", 3))
        assert ensure_cycles_up_to(task, "weekly", "2025-03-03", 2) == task.cycles
        assert [cycle.index for cycle in task.cycles] == [3]

    def test_monthly_dates_from_anchor(self):
        cycles = ensure_cycles_up_to(_task(), "monthly", "2025-01-31", 1)
        assert cycles[1].start_date == date(2025, 2, 28)


class TestNormalizeCycles:
    """Test cases for normalize_cycles."""

    def test_sorts_and_rederives_previous_plan(self):
        first = Cycle(index=0, status=CLOSED, start_date=date(2025, 3, 3), end_date=date(2025, 3, 9), next_plan="a")
        second = Cycle(
            index=1, status=OPEN, start_date=date(2025, 3, 10), end_date=date(2025, 3, 16), previous_plan="stale"
        )
        cycles = normalize_cycles([second, first])

        assert [cycle.index for cycle in cycles] == [0, 1]
        assert cycles[1].previous_plan == "a"


class TestUpdateCycle:
    """Test cases for editing cycles."""

    @pytest.fixture
    def task(self):
        base = _task()
        return replace(base, cycles=ensure_cycles_up_to(base, "weekly", "2025-03-03", 1))

    def test_update_open_cycle(self, task):
        updated = update_cycle(task, 1, {"actuals": "done", "next_plan": "next"})
        assert cycle_at(updated, 1).actuals == "done"
        assert cycle_at(updated, 1).next_plan == "next"

    def test_closed_cycle_is_read_only(self, task):
        assert update_cycle(task, 0, {"actuals": "rewrite history"}) is task

    def test_missing_cycle_is_ignored(self, task):
        assert update_cycle(task, 9, {"actuals": "x"}) is task

    def test_unknown_field_rejected(self, task):
        with pytest.raises(ValueError, match="Cannot edit cycle fields"):
            update_cycle(task, 1, {"status": "closed"})

    def test_text_must_be_str(self, task):
        with pytest.raises(ValueError):
            update_cycle(task, 1, {"actuals": 42})

    def test_edit_resets_review(self, task):
        reviewed = mark_reviewed(task)
        assert cycle_at(reviewed, 1).reviewed

        edited = update_cycle(reviewed, 1, {"next_plan": "changed"})
        assert not cycle_at(edited, 1).reviewed

    def test_owner_change_resets_review(self, task):
        edited = update_cycle(mark_reviewed(task), 1, {"owner": "Bo"})
        assert not cycle_at(edited, 1).reviewed

    def test_explicit_review_in_patch_wins(self, task):
        edited = update_cycle(task, 1, {"actuals": "done", "reviewed": True})
        assert cycle_at(edited, 1).reviewed

    def test_no_op_returns_same_task(self, task):
        assert update_cycle(task, 1, {"actuals": ""}) is task

    def test_mark_reviewed_without_open_cycle(self):
        task = _task()
        assert mark_reviewed(task) is task


class TestCycleViews:
    """Test cases for cycle lookups."""

    @pytest.fixture
    def task(self):
        base = _task()
        return replace(base, cycles=ensure_cycles_up_to(base, "weekly", "2025-03-03", 2))

    def test_current_cycle_is_open_cycle(self, task):
        assert current_cycle(task).index == 2

    def test_current_cycle_falls_back_to_latest(self, task):
        closed = replace(task, cycles=tuple(replace(cycle, status=CLOSED) for cycle in task.cycles))
        assert current_cycle(closed).index == 2

    def test_visible_cycle_offsets(self, task):
        assert visible_cycle(task, 0).index == 2
        assert visible_cycle(task, 1).index == 1
        assert visible_cycle(task, 10).index == 0
        assert visible_cycle(_task()) is None


class TestSynchronization:
    """Test cases for workstream-level materialization."""

    def test_sync_follows_the_clock(self, weekly_state):
        state = sync_workstream(weekly_state, "WS-1", date(2025, 3, 19))

        for task in state.tasks:
            assert task.last_index == 2
            assert task.open_cycle.index == 2
            assert task.validate() == []

    def test_sync_unchanged_returns_same_state(self, weekly_state, today):
        assert sync_workstream(weekly_state, "WS-1", today) is weekly_state
        assert sync_all(weekly_state, today) is weekly_state

    def test_retired_task_is_frozen(self, weekly_state):
        state = retire_task(weekly_state, "TASK-2")
        state = sync_all(state, date(2025, 3, 19))

        assert state.task("TASK-1").last_index == 2
        assert state.task("TASK-2").last_index == 0
        assert state.task("TASK-2").open_cycle.index == 0

    def test_workstream_index_tracks_opened_periods(self, weekly_state, today):
        assert workstream_index(weekly_state, "WS-1", today) == 0
        state = sync_workstream(weekly_state, "WS-1", date(2025, 3, 12))
        # The clock going backwards never rewinds an opened period
        assert workstream_index(state, "WS-1", today) == 1
