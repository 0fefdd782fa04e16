"""Unit tests for task and milestone lifecycle."""

from datetime import date

import pytest

from cadence.cycles import sync_all, update_cycle
from cadence.errors import LifecycleError, UnknownEntityError
from cadence.lifecycle import (
    active_milestones,
    active_tasks,
    assign_milestone,
    reactivate_milestone,
    reactivate_task,
    retire_milestone,
    retire_task,
)
from cadence.manage import create_milestone, create_workstream, update_milestone
from cadence.models import INACTIVE


class TestTaskLifecycle:
    """Test cases for retiring and reactivating tasks."""

    def test_retire_keeps_history(self, weekly_state):
        state = retire_task(weekly_state, "TASK-1")
        task = state.task("TASK-1")

        assert task.lifecycle == INACTIVE
        assert task.cycles == weekly_state.task("TASK-1").cycles
        assert [t.id for t in active_tasks(state, "WS-1")] == ["TASK-2"]

    def test_retire_is_idempotent(self, weekly_state):
        state = retire_task(weekly_state, "TASK-1")
        assert retire_task(state, "TASK-1") is state

    def test_reactivate_catches_up(self, weekly_state):
        task = weekly_state.task("TASK-1")
        state = weekly_state.replace_task(update_cycle(task, 0, {"next_plan": "resume work"}))
        state = retire_task(state, "TASK-1")
        state = sync_all(state, date(2025, 3, 19))
        assert state.task("TASK-1").last_index == 0

        state = sync_all(reactivate_task(state, "TASK-1"), date(2025, 3, 19))
        task = state.task("TASK-1")

        assert task.is_active
        assert [cycle.index for cycle in task.cycles] == [0, 1, 2]
        assert task.cycles[1].previous_plan == "resume work"
        assert task.validate() == []

    def test_reactivate_active_task_is_noop(self, weekly_state):
        assert reactivate_task(weekly_state, "TASK-1") is weekly_state

    def test_unknown_task(self, weekly_state):
        with pytest.raises(UnknownEntityError):
            retire_task(weekly_state, "TASK-404")


class TestMilestoneLifecycle:
    """Test cases for retiring milestones and linking tasks."""

    def test_retire_unlinks_tasks(self, weekly_state):
        state = retire_milestone(weekly_state, "MS-1")

        assert not state.milestone("MS-1").is_active
        assert state.task("TASK-1").milestone_id is None
        assert active_milestones(state) == []

    def test_reactivate_does_not_relink(self, weekly_state):
        state = reactivate_milestone(retire_milestone(weekly_state, "MS-1"), "MS-1")

        assert state.milestone("MS-1").is_active
        assert state.task("TASK-1").milestone_id is None

    def test_assign_and_unlink(self, weekly_state):
        state = assign_milestone(weekly_state, "TASK-2", "MS-1")
        assert state.task("TASK-2").milestone_id == "MS-1"

        state = assign_milestone(state, "TASK-2", None)
        assert state.task("TASK-2").milestone_id is None

    def test_assign_retired_milestone_rejected(self, weekly_state):
        state = retire_milestone(weekly_state, "MS-1")
        with pytest.raises(LifecycleError, match="retired"):
            assign_milestone(state, "TASK-2", "MS-1")

    def test_assign_milestone_of_other_workstream_rejected(self, weekly_state, today):
        state, _ = create_workstream(weekly_state, "PROJ-1", "Frontend", "weekly", today, workstream_id="WS-2")
        state, _ = create_milestone(state, "WS-2", "Launch", milestone_id="MS-2")
        with pytest.raises(LifecycleError, match="belongs to workstream WS-2"):
            assign_milestone(state, "TASK-1", "MS-2")

    def test_update_milestone_due_date(self, weekly_state):
        state = update_milestone(weekly_state, "MS-1", due_date="2025-05-01")
        assert state.milestone("MS-1").due_date == date(2025, 5, 1)

        state = update_milestone(state, "MS-1", due_date=None)
        assert state.milestone("MS-1").due_date is None
        assert update_milestone(state, "MS-1") is state
