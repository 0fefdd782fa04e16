"""
Contract tests for the cycle store and closing workflow.

Every task history is gap-free, holds a single open cycle and carries each
next plan forward; a period can only be closed once it has started and
every task is reviewed.
"""

from dataclasses import replace
from datetime import date

import pytest

from cadence.closing import close_period
from cadence.cycles import ensure_cycles_up_to, mark_reviewed, update_cycle
from cadence.manage import create_project, create_task, create_workstream
from cadence.models import CLOSED, OPEN, AppState, Task
from cadence.periods import current_index_and_range, period_range

ANCHOR = "2025-01-06"


def _materialize(task, target, cadence="weekly", anchor=ANCHOR):
    return replace(task, cycles=ensure_cycles_up_to(task, cadence, anchor, target))


class TestCycleListContract:
    """Contract tests for the shape of every task's cycle list."""

    @pytest.fixture
    def task(self):
        return Task(id="TASK-1", workstream_id="WS-1", name="A", owner="Alex")

    @pytest.mark.parametrize("target", [0, 1, 5, 12])
    def test_contiguity(self, task, target):
        indices = [cycle.index for cycle in _materialize(task, target).cycles]
        assert indices == list(range(target + 1))

    @pytest.mark.parametrize("steps", [[0, 3], [2, 2, 4], [1, 7]])
    def test_single_open_cycle_at_latest_target(self, task, steps):
        for target in steps:
            task = _materialize(task, target)
        open_cycles = [cycle for cycle in task.cycles if cycle.status == OPEN]
        assert [cycle.index for cycle in open_cycles] == [steps[-1]]

    def test_carry_forward_after_every_mutation(self, task):
        task = _materialize(task, 0)
        task = update_cycle(task, 0, {"actuals": "a0", "next_plan": "p0"})
        task = _materialize(task, 2)
        task = update_cycle(task, 2, {"next_plan": "p2"})
        task = _materialize(task, 3)

        for previous, cycle in zip(task.cycles, task.cycles[1:]):
            assert cycle.previous_plan == previous.next_plan
        assert task.cycles[1].previous_plan == "p0"
        assert task.cycles[3].previous_plan == "p2"

    def test_idempotence(self, task):
        once = _materialize(task, 4)
        twice = _materialize(once, 4)
        assert once == twice

    def test_history_dates_follow_the_period_indexer(self, task):
        task = _materialize(task, 3)
        for cycle in task.cycles:
            period = period_range(ANCHOR, "weekly", cycle.index)
            assert (cycle.start_date, cycle.end_date) == (period.start, period.end)


class TestPeriodMathContract:
    """Contract tests for period arithmetic."""

    def test_weekly_anchor_day(self):
        period = current_index_and_range(ANCHOR, "weekly", "2025-01-06")
        assert period.index == 0
        assert (period.start, period.end) == (date(2025, 1, 6), date(2025, 1, 12))

    def test_weekly_next_week(self):
        period = current_index_and_range(ANCHOR, "weekly", "2025-01-13")
        assert period.index == 1
        assert (period.start, period.end) == (date(2025, 1, 13), date(2025, 1, 19))

    def test_monthly_uses_calendar_months(self):
        period = period_range("2025-01-31", "monthly", 1)
        assert period.start == date(2025, 2, 28)
        # A fixed 30-day step would land on March 2
        assert period.start != date(2025, 3, 2)


class TestClosingContract:
    """Contract tests for the closing gate and the post-close shape."""

    @pytest.fixture
    def scenario(self):
        today = date(2025, 3, 5)
        state, _ = create_project(AppState(), "Platform", project_id="PROJ-1")
        state, _ = create_workstream(
            state, "PROJ-1", "Team", "weekly", today, first_cycle_start_date="2025-03-03", workstream_id="WS-1"
        )
        state, task = create_task(state, "WS-1", "A", "Alex", today, task_id="TASK-A")
        return state, today

    def test_new_task_has_one_open_cycle(self, scenario):
        state, _ = scenario
        task = state.task("TASK-A")
        assert [(cycle.index, cycle.status) for cycle in task.cycles] == [(0, OPEN)]

    def test_close_is_noop_without_review(self, scenario):
        state, today = scenario
        task = update_cycle(state.task("TASK-A"), 0, {"actuals": "did it", "next_plan": "do more"})
        state = state.replace_task(task)
        assert close_period(state, "WS-1", today) is state

    def test_end_to_end_close(self, scenario):
        state, today = scenario
        task = update_cycle(state.task("TASK-A"), 0, {"actuals": "did it", "next_plan": "do more"})
        state = state.replace_task(mark_reviewed(task))

        closed = close_period(state, "WS-1", today)
        first, second = closed.task("TASK-A").cycles

        assert first.status == CLOSED
        assert (first.actuals, first.next_plan, first.reviewed) == ("did it", "do more", True)
        assert second.status == OPEN
        assert second.index == 1
        assert second.previous_plan == "do more"
        assert (second.actuals, second.next_plan, second.reviewed) == ("", "", False)

    def test_open_cycle_never_runs_ahead_of_clock(self, scenario):
        state, today = scenario
        for _ in range(3):
            task = state.task("TASK-A")
            task = update_cycle(task, task.open_cycle.index, {"actuals": "did it", "next_plan": "do more"})
            state = close_period(state.replace_task(mark_reviewed(task)), "WS-1", today)

        live = current_index_and_range("2025-03-03", "weekly", today).index
        assert state.task("TASK-A").open_cycle.index == live + 1
