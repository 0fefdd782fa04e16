"""Shared fixtures for Cadence tests."""

from datetime import date

import pytest

from cadence.manage import create_milestone, create_project, create_task, create_workstream
from cadence.models import AppState

# A Wednesday inside the first week of the weekly workstream below
TODAY = date(2025, 3, 5)
ANCHOR = "2025-03-03"


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def weekly_state():
    """One project, one weekly workstream anchored on a Monday, two tasks and a milestone."""
    state = AppState()
    state, _ = create_project(state, "Platform", project_id="PROJ-1")
    state, _ = create_workstream(
        state, "PROJ-1", "Backend", "weekly", TODAY,
        first_cycle_start_date=ANCHOR, lead="Lee", workstream_id="WS-1",
    )
    state, _ = create_milestone(state, "WS-1", "Beta", due_date="2025-04-01", milestone_id="MS-1")
    state, _ = create_task(state, "WS-1", "API", "Ana", TODAY, milestone_id="MS-1", task_id="TASK-1")
    state, _ = create_task(state, "WS-1", "Database", "Bo", TODAY, task_id="TASK-2")
    return state


@pytest.fixture
def onboarding_document():
    return {
        "version": 1,
        "projects": [
            {
                "name": "Platform",
                "workstreams": [
                    {
                        "name": "Backend",
                        "cadence": "weekly",
                        "lead": "Lee",
                        "milestone": "Beta",
                        "milestoneDate": "2025-04-01",
                        "tasks": [
                            {"name": "API", "owner": "Ana"},
                            {"name": "Database", "owner": "Bo"},
                        ],
                    },
                    {
                        "name": "Reporting",
                        "cadence": "monthly",
                        "milestone": "",
                        "milestoneDate": "",
                        "tasks": [{"name": "Monthly report", "owner": ""}],
                    },
                ],
            }
        ],
    }
