"""Check-in workflow management for Cadence.

``CheckinManager`` is the imperative shell around the pure engine: it holds
the published ``AppState``, runs every change through a reducer, publishes
the result in one assignment and writes it behind to the workspace store.
Responses are plain dictionaries so they can be returned from tools as-is.
"""

from __future__ import annotations

import logging
import os
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from . import closing, cycles, lifecycle, manage, scope
from .cadence_logging import (
    log_cycle_updated,
    log_error_with_context,
    log_lifecycle_change,
    log_operation,
    log_performance,
)
from .importer import build_workspace, load_document
from .models import AppState
from .periods import (
    cadence_label,
    current_index_and_range,
    format_human_range,
    format_iso_date,
    next_period_range,
    parse_iso_date,
    period_range,
)
from .workspace import Workspace

logger = logging.getLogger("cadence.workflow")

TODAY_ENV = "CADENCE_TODAY"

Response = Dict[str, Any]


def default_clock() -> date:
    """Today's local date, or the ``CADENCE_TODAY`` override."""
    override = os.getenv(TODAY_ENV)
    if override:
        return parse_iso_date(override)
    return date.today()


class CheckinManager:
    """Manages the check-in workflow for one workspace root."""

    def __init__(self, root: Path | str, clock: Optional[Callable[[], date]] = None):
        """Initialize the manager and hydrate state from the workspace store."""
        self.workspace = Workspace(root)
        self.clock = clock or default_clock
        loaded = self.workspace.load_state()
        self.state: AppState = loaded or AppState()

    # ------------------------------------------------------------------
    # State plumbing
    # ------------------------------------------------------------------

    @property
    def today(self) -> date:
        return self.clock()

    @property
    def needs_setup(self) -> bool:
        return self.state.is_empty

    def _publish(self, state: AppState) -> bool:
        """Publish a new snapshot and write it behind; ``False`` if unchanged."""
        if state is self.state or state == self.state:
            return False
        self.state = state
        if not self.workspace.save_state(state):
            logger.warning("Published state was not persisted; it will be retried on the next change")
        return True

    def _refresh(self) -> AppState:
        self._publish(cycles.sync_all(self.state, self.today))
        return self.state

    def _failure(self, operation: str, error: Exception, **context: Any) -> Response:
        log_error_with_context(error, {"operation": operation, **context})
        return {
            "error": str(error),
            "message": f"Error: {error}",
        }

    def _workstream_or_selected(self, workstream_id: Optional[str]) -> str:
        if workstream_id:
            return workstream_id
        selected = scope.resolve_selection(self.state).workstream
        if selected is None:
            raise ValueError("No workstream given and none selected")
        return selected.id

    # ------------------------------------------------------------------
    # Status and setup
    # ------------------------------------------------------------------

    def status(self) -> Response:
        state = self._refresh()
        resolved = scope.resolve_selection(state)
        return {
            "needs_setup": state.is_empty,
            "today": format_iso_date(self.today),
            "state_path": str(self.workspace.state_path),
            "projects": len(state.projects),
            "workstreams": len(state.workstreams),
            "milestones": len(state.milestones),
            "tasks": len(state.tasks),
            "active_tasks": len(lifecycle.active_tasks(state)),
            "selection": resolved.to_selection().to_dict(),
            "scope_label": resolved.label,
            "message": "No workspace yet. Import an onboarding document to begin."
            if state.is_empty
            else f"Workspace with {len(state.projects)} projects and {len(state.tasks)} tasks",
        }

    def import_onboarding(self, document: Union[str, Dict[str, Any]], replace_existing: bool = False) -> Response:
        """Build a fresh workspace from an onboarding document."""
        if not self.state.is_empty and not replace_existing:
            return {
                "error": "Workspace already set up",
                "message": "Pass replace_existing=True to discard the current workspace.",
            }
        try:
            with log_operation("import_onboarding"):
                parsed = load_document(document) if isinstance(document, str) else document
                state = build_workspace(parsed, self.today)
        except ValueError as e:
            return self._failure("import_onboarding", e)
        self._publish(state)
        return {
            "projects": [p.to_dict() for p in state.projects],
            "workstreams": [w.to_dict() for w in state.workstreams],
            "milestones": [m.to_dict() for m in state.milestones],
            "tasks": [t.to_dict() for t in state.tasks],
            "message": f"Imported {len(state.projects)} projects and {len(state.tasks)} tasks.",
        }

    def reset(self) -> Response:
        self.workspace.reset()
        self.state = AppState()
        logger.info("Workspace reset; setup is required")
        return {"needs_setup": True, "message": "Workspace cleared."}

    # ------------------------------------------------------------------
    # Manage operations
    # ------------------------------------------------------------------

    def create_project(self, name: str) -> Response:
        try:
            state, project = manage.create_project(self.state, name)
        except ValueError as e:
            return self._failure("create_project", e, name=name)
        self._publish(state)
        return {"project": project.to_dict(), "message": f"Created project {project.name}"}

    def create_workstream(
        self,
        project_id: str,
        name: str,
        cadence: str,
        first_cycle_start_date: Optional[str] = None,
        lead: str = "",
    ) -> Response:
        try:
            state, workstream = manage.create_workstream(
                self.state,
                project_id,
                name,
                cadence,
                self.today,
                first_cycle_start_date=first_cycle_start_date,
                lead=lead,
            )
        except (ValueError, KeyError) as e:
            return self._failure("create_workstream", e, project_id=project_id, cadence=cadence)
        self._publish(state)
        return {"workstream": workstream.to_dict(), "message": f"Created workstream {workstream.name}"}

    def create_task(
        self,
        workstream_id: str,
        name: str,
        owner: str = "",
        milestone_id: Optional[str] = None,
    ) -> Response:
        try:
            state, task = manage.create_task(
                self.state, workstream_id, name, owner, self.today, milestone_id=milestone_id
            )
        except (ValueError, KeyError) as e:
            return self._failure("create_task", e, workstream_id=workstream_id)
        self._publish(state)
        return {"task": task.to_dict(), "message": f"Created task {task.name}"}

    def create_milestone(self, workstream_id: str, title: str, due_date: Optional[str] = None) -> Response:
        try:
            state, milestone = manage.create_milestone(self.state, workstream_id, title, due_date=due_date)
        except (ValueError, KeyError) as e:
            return self._failure("create_milestone", e, workstream_id=workstream_id)
        self._publish(state)
        return {"milestone": milestone.to_dict(), "message": f"Created milestone {milestone.title}"}

    def update_milestone(
        self,
        milestone_id: str,
        title: Optional[str] = None,
        due_date: Optional[str] = None,
        clear_due_date: bool = False,
    ) -> Response:
        changes: Dict[str, Any] = {}
        if title is not None:
            changes["title"] = title
        if clear_due_date:
            changes["due_date"] = None
        elif due_date is not None:
            changes["due_date"] = due_date
        try:
            state = manage.update_milestone(self.state, milestone_id, **changes)
        except (ValueError, KeyError) as e:
            return self._failure("update_milestone", e, milestone_id=milestone_id)
        self._publish(state)
        return {"milestone": state.milestone(milestone_id).to_dict(), "message": "Milestone updated"}

    def select_scope(self, project_id: Optional[str] = None, workstream_id: Optional[str] = None) -> Response:
        try:
            state = scope.select_scope(self.state, project_id=project_id, workstream_id=workstream_id)
        except KeyError as e:
            return self._failure("select_scope", e, project_id=project_id, workstream_id=workstream_id)
        self._publish(state)
        resolved = scope.resolve_selection(state)
        return {"selection": state.selection.to_dict(), "scope_label": resolved.label}

    # ------------------------------------------------------------------
    # Cycle edits
    # ------------------------------------------------------------------

    def update_cycle(
        self,
        task_id: str,
        actuals: Optional[str] = None,
        next_plan: Optional[str] = None,
        cycle_index: Optional[int] = None,
    ) -> Response:
        """Edit Actuals / Next-Plan of a task's open cycle."""
        patch = {name: value for name, value in (("actuals", actuals), ("next_plan", next_plan)) if value is not None}
        try:
            state = self._refresh()
            task = state.task(task_id)
            index = cycle_index
            if index is None:
                open_cycle = task.open_cycle
                if open_cycle is None:
                    return {"task": task.to_dict(), "updated": False, "message": "Task has no open cycle"}
                index = open_cycle.index
            updated = cycles.update_cycle(task, index, patch)
        except (ValueError, KeyError) as e:
            return self._failure("update_cycle", e, task_id=task_id)

        changed = updated is not task
        if changed:
            self._publish(state.replace_task(updated))
            log_cycle_updated(task_id, index, sorted(patch))
        return {
            "task": updated.to_dict(),
            "updated": changed,
            "message": "Cycle updated" if changed else "Nothing changed; closed cycles are read-only",
        }

    def mark_reviewed(self, task_id: str, reviewed: bool = True) -> Response:
        try:
            state = self._refresh()
            task = state.task(task_id)
        except KeyError as e:
            return self._failure("mark_reviewed", e, task_id=task_id)
        updated = cycles.mark_reviewed(task, reviewed)
        if updated is not task:
            self._publish(state.replace_task(updated))
        cycle = cycles.current_cycle(updated)
        return {
            "task_id": task_id,
            "cycle": cycle.to_dict() if cycle else None,
            "message": "Review recorded" if reviewed else "Review cleared",
        }

    def rename_task(self, task_id: str, name: str) -> Response:
        try:
            state = manage.rename_task(self._refresh(), task_id, name)
        except (ValueError, KeyError) as e:
            return self._failure("rename_task", e, task_id=task_id)
        self._publish(state)
        task = state.task(task_id)
        return {"task": task.to_dict(), "message": f"Task renamed to {task.name}"}

    def reassign_owner(self, task_id: str, owner: str) -> Response:
        try:
            state = manage.reassign_owner(self._refresh(), task_id, owner)
        except KeyError as e:
            return self._failure("reassign_owner", e, task_id=task_id)
        self._publish(state)
        return {"task": state.task(task_id).to_dict(), "message": f"Owner set to {owner.strip() or 'nobody'}"}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _lifecycle(self, operation: str, reducer, entity_type: str, entity_id: str, lifecycle_value: str) -> Response:
        try:
            state = reducer(self._refresh(), entity_id)
        except KeyError as e:
            return self._failure(operation, e, entity_id=entity_id)
        changed = self._publish(state)
        if changed:
            log_lifecycle_change(entity_type, entity_id, lifecycle_value)
        if entity_type == "task":
            # A reactivated task catches up on the periods it missed
            self._refresh()
            entity = self.state.task(entity_id)
        else:
            entity = self.state.milestone(entity_id)
        return {
            entity_type: entity.to_dict(),
            "changed": changed,
            "message": f"{entity_type.capitalize()} is {entity.lifecycle}",
        }

    def retire_task(self, task_id: str) -> Response:
        return self._lifecycle("retire_task", lifecycle.retire_task, "task", task_id, "inactive")

    def reactivate_task(self, task_id: str) -> Response:
        return self._lifecycle("reactivate_task", lifecycle.reactivate_task, "task", task_id, "active")

    def retire_milestone(self, milestone_id: str) -> Response:
        return self._lifecycle("retire_milestone", lifecycle.retire_milestone, "milestone", milestone_id, "inactive")

    def reactivate_milestone(self, milestone_id: str) -> Response:
        return self._lifecycle(
            "reactivate_milestone", lifecycle.reactivate_milestone, "milestone", milestone_id, "active"
        )

    def assign_milestone(self, task_id: str, milestone_id: Optional[str]) -> Response:
        try:
            state = lifecycle.assign_milestone(self.state, task_id, milestone_id)
        except (ValueError, KeyError) as e:
            return self._failure("assign_milestone", e, task_id=task_id, milestone_id=milestone_id)
        self._publish(state)
        return {"task": state.task(task_id).to_dict(), "message": "Milestone assignment updated"}

    # ------------------------------------------------------------------
    # Closing workflow
    # ------------------------------------------------------------------

    def readiness(self, workstream_id: Optional[str] = None) -> Response:
        try:
            workstream_id = self._workstream_or_selected(workstream_id)
            status = closing.readiness(self._refresh(), workstream_id, self.today)
        except (ValueError, KeyError) as e:
            return self._failure("readiness", e, workstream_id=workstream_id)
        result = status.to_dict()
        result["message"] = f"{status.reviewed} of {status.total} tasks reviewed; {status.missing} missing updates"
        return result

    @log_performance("close_period")
    def close_period(self, workstream_id: Optional[str] = None) -> Response:
        """Close the current period of a workstream when every task is reviewed."""
        try:
            workstream_id = self._workstream_or_selected(workstream_id)
            state = self._refresh()
            before = closing.readiness(state, workstream_id, self.today)
            with log_operation("close_period", workstream_id=workstream_id, index=before.index):
                closed = closing.close_period(state, workstream_id, self.today)
        except (ValueError, KeyError) as e:
            return self._failure("close_period", e, workstream_id=workstream_id)

        if closed is state:
            if not before.started:
                message = (
                    f"Cannot close yet: period {before.index} starts on {before.period.start.isoformat()}"
                )
            else:
                message = f"Cannot close yet: {before.reviewed} of {before.total} tasks reviewed"
            return {"closed": False, "readiness": before.to_dict(), "message": message}
        self._publish(closed)
        after = closing.readiness(self.state, workstream_id, self.today)
        return {
            "closed": True,
            "closed_index": before.index,
            "readiness": after.to_dict(),
            "message": f"Closed period {before.index}; period {after.index} is open",
        }

    def capture_follow_up(
        self,
        workstream_id: str,
        name: str,
        owner: str = "",
        milestone_id: Optional[str] = None,
    ) -> Response:
        try:
            state, task = closing.capture_follow_up(
                self._refresh(), workstream_id, name, owner, self.today, milestone_id=milestone_id
            )
        except (ValueError, KeyError) as e:
            return self._failure("capture_follow_up", e, workstream_id=workstream_id)
        self._publish(state)
        return {"task": task.to_dict(), "message": f"Follow-up scheduled for period {task.first_index}"}

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def period(self, workstream_id: Optional[str] = None) -> Response:
        try:
            workstream_id = self._workstream_or_selected(workstream_id)
            state = self._refresh()
            workstream = state.workstream(workstream_id)
            index = cycles.workstream_index(state, workstream_id, self.today)
        except (ValueError, KeyError) as e:
            return self._failure("period", e, workstream_id=workstream_id)
        anchor = workstream.first_cycle_start_date
        live = current_index_and_range(anchor, workstream.cadence, self.today)
        current = period_range(anchor, workstream.cadence, index)
        upcoming = next_period_range(anchor, workstream.cadence, index)
        return {
            "workstream_id": workstream_id,
            "cadence": workstream.cadence,
            "cadence_label": cadence_label(workstream.cadence),
            "anchor": format_iso_date(anchor),
            "live_index": live.index,
            "current": current.to_dict(),
            "current_label": format_human_range(current.start, current.end),
            "next": upcoming.to_dict(),
            "next_label": format_human_range(upcoming.start, upcoming.end),
        }

    def review_rows(
        self,
        project_id: Optional[str] = None,
        workstream_id: Optional[str] = None,
        owner: str = scope.ALL_OWNERS,
        milestone_id: Optional[str] = None,
        offset: int = 0,
    ) -> Response:
        state = self._refresh()
        if project_id is None and workstream_id is None:
            resolved = scope.resolve_selection(state)
            project_id = resolved.project.id if resolved.project else None
            workstream_id = resolved.workstream.id if resolved.workstream else None
        rows = scope.review_rows(
            state,
            self.today,
            project_id=project_id,
            workstream_id=workstream_id,
            owner=owner,
            milestone_id=milestone_id,
            offset=offset,
        )
        tasks = scope.tasks_in_scope(state, project_id, workstream_id)
        return {
            "rows": [row.to_dict() for row in rows],
            "owners": scope.owners_in(tasks),
            "count": len(rows),
        }

    def owner_summaries(self) -> Response:
        summaries = scope.owner_summaries(self._refresh(), self.today)
        return {"owners": [summary.to_dict() for summary in summaries], "count": len(summaries)}

    def open_items(
        self,
        owner: Optional[str] = None,
        cadence: Optional[str] = None,
        due: Optional[str] = None,
    ) -> Response:
        state = self._refresh()
        try:
            items = scope.open_items(state, self.today, owner=owner, cadence=cadence, due=due)
        except ValueError as e:
            return self._failure("open_items", e, due=due)
        everything = scope.open_items(state, self.today)
        return {
            "items": [row.to_dict() for row in items],
            "summary": scope.due_counts(everything),
            "count": len(items),
        }

    def milestone_groups(self, workstream_id: Optional[str] = None) -> Response:
        state = self._refresh()
        tasks: List = scope.tasks_in_scope(state, workstream_id=workstream_id)
        groups = scope.group_by_milestone(state, tasks, workstream_id=workstream_id)
        return {"groups": [group.to_dict() for group in groups]}
