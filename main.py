"""MCP server exposing Cadence check-in tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from cadence.cadence_logging import setup_logging
from cadence.scope import ALL_OWNERS
from cadence.workflow import CheckinManager
from cadence.workspace import Workspace

mcp = FastMCP("cadence")


PROJECT_ROOT_ENV = "CADENCE_PROJECT_ROOT"
SERVER_ROOT = Path(__file__).resolve().parent


def _marker() -> str:
    return os.getenv(Workspace.STORAGE_DIR_ENV) or Workspace.DEFAULT_STORAGE_DIR


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _locate_workspace_root() -> Optional[Path]:
    marker = _marker()
    for base in _candidate_bases():
        if (base / marker).exists():
            return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _manager(root: Optional[str]) -> CheckinManager:
    return CheckinManager(_resolve_root(root))


def _requires_setup(manager: CheckinManager) -> Optional[Dict[str, Any]]:
    if manager.needs_setup:
        return {
            "error": "Workspace is not set up",
            "suggestion": "Call import_onboarding with an onboarding document first",
            "next_suggested_step": "import_onboarding",
        }
    return None


@mcp.resource("cadence://workspace")
def resource_workspace() -> str:
    """Resource view summarizing projects, workstreams and open check-ins."""

    try:
        manager = _manager(None)
    except ValueError:
        return f"No project root detected. Launch tools with a 'root' argument or set {PROJECT_ROOT_ENV}."

    if manager.needs_setup:
        return "No workspace has been set up yet."

    state = manager.state
    lines = ["Cadence Workspace"]
    for project in state.projects:
        lines.append("")
        lines.append(f"- {project.name} ({project.id})")
        for workstream in state.workstreams:
            if workstream.project_id != project.id:
                continue
            period = manager.period(workstream.id)
            readiness = manager.readiness(workstream.id)
            lines.append(
                f"  - {workstream.name} [{workstream.cadence}] {period.get('current_label')}: "
                f"{readiness.get('reviewed', 0)}/{readiness.get('total', 0)} reviewed"
            )
    return "\n".join(lines)


@mcp.tool()
def get_workspace_status(root: Optional[str] = None) -> Dict[str, Any]:
    """Report whether the workspace needs setup and summarize what it holds."""

    manager = _manager(root)
    status = manager.status()
    if status["needs_setup"]:
        status["next_suggested_step"] = "import_onboarding"
    else:
        status["next_suggested_step"] = "review_rows"
    return status


@mcp.tool()
def import_onboarding(
    document: str,
    replace_existing: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 1: Build the workspace from an onboarding JSON document.
    The document lists projects, their workstreams (cadence, lead, optional
    milestone and milestoneDate) and each workstream's tasks with owners."""

    manager = _manager(root)
    result = manager.import_onboarding(document, replace_existing=replace_existing)
    if "error" not in result:
        result["next_suggested_step"] = "review_rows"
        result["workflow_tip"] = "Next: Fill in actuals and next plans with update_cycle"
    return result


@mcp.tool()
def create_project(name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Create a new project."""

    return _manager(root).create_project(name)


@mcp.tool()
def create_workstream(
    project_id: str,
    name: str,
    cadence: str,
    first_cycle_start_date: Optional[str] = None,
    lead: str = "",
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a workstream with a cadence (daily, weekly, biweekly, monthly or quarterly).
    Without first_cycle_start_date the workstream starts at the current period."""

    return _manager(root).create_workstream(
        project_id, name, cadence, first_cycle_start_date=first_cycle_start_date, lead=lead
    )


@mcp.tool()
def create_task(
    workstream_id: str,
    name: str,
    owner: str = "",
    milestone_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a recurring task to a workstream; it opens a cycle in the current period."""

    return _manager(root).create_task(workstream_id, name, owner=owner, milestone_id=milestone_id)


@mcp.tool()
def create_milestone(
    workstream_id: str,
    title: str,
    due_date: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a milestone (YYYY-MM-DD due date optional) inside a workstream."""

    return _manager(root).create_milestone(workstream_id, title, due_date=due_date)


@mcp.tool()
def update_milestone(
    milestone_id: str,
    title: Optional[str] = None,
    due_date: Optional[str] = None,
    clear_due_date: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Rename a milestone or change its due date."""

    return _manager(root).update_milestone(
        milestone_id, title=title, due_date=due_date, clear_due_date=clear_due_date
    )


@mcp.tool()
def select_scope(
    project_id: Optional[str] = None,
    workstream_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Point the review scope at a project, a workstream, or everything."""

    return _manager(root).select_scope(project_id=project_id, workstream_id=workstream_id)


@mcp.tool()
def update_cycle(
    task_id: str,
    actuals: Optional[str] = None,
    next_plan: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 2: Record what happened (actuals) and what comes next (next_plan) for a task's open cycle.
    Any change clears the review flag of the cycle."""

    manager = _manager(root)
    blocked = _requires_setup(manager)
    if blocked:
        return blocked
    result = manager.update_cycle(task_id, actuals=actuals, next_plan=next_plan)
    if "error" not in result:
        result["next_suggested_step"] = "mark_reviewed"
    return result


@mcp.tool()
def mark_reviewed(task_id: str, reviewed: bool = True, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Mark a task's open cycle as reviewed (or clear the mark)."""

    manager = _manager(root)
    result = manager.mark_reviewed(task_id, reviewed=reviewed)
    if "error" not in result:
        result["next_suggested_step"] = "get_readiness"
    return result


@mcp.tool()
def rename_task(task_id: str, name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Rename a task. Its history and open cycle are unchanged."""

    return _manager(root).rename_task(task_id, name)


@mcp.tool()
def reassign_owner(task_id: str, owner: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Change who owns a task from its open cycle onwards."""

    return _manager(root).reassign_owner(task_id, owner)


@mcp.tool()
def retire_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Retire a task; its history is kept and it no longer takes part in closing."""

    return _manager(root).retire_task(task_id)


@mcp.tool()
def reactivate_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Bring a retired task back; missed periods are filled in."""

    return _manager(root).reactivate_task(task_id)


@mcp.tool()
def retire_milestone(milestone_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Retire a milestone and unlink the tasks that pointed at it."""

    return _manager(root).retire_milestone(milestone_id)


@mcp.tool()
def reactivate_milestone(milestone_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Bring a retired milestone back (tasks are not relinked)."""

    return _manager(root).reactivate_milestone(milestone_id)


@mcp.tool()
def assign_milestone(
    task_id: str,
    milestone_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Link a task to an active milestone of its workstream; omit milestone_id to unlink."""

    return _manager(root).assign_milestone(task_id, milestone_id)


@mcp.tool()
def get_readiness(workstream_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 4: Count prepared and reviewed tasks in the workstream's current period."""

    manager = _manager(root)
    result = manager.readiness(workstream_id)
    if result.get("can_close"):
        result["next_suggested_step"] = "close_period"
    return result


@mcp.tool()
def close_period(workstream_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 5: Close the current period and open the next one.
    Allowed only when every active task of the workstream has been reviewed."""

    manager = _manager(root)
    blocked = _requires_setup(manager)
    if blocked:
        return blocked
    result = manager.close_period(workstream_id)
    if result.get("closed"):
        result["workflow_tip"] = "Next: Capture follow-ups with capture_follow_up or start the new period"
    elif "error" not in result and not result["readiness"]["started"]:
        result["suggestion"] = "The next period is already open; close it once it has started"
        result["next_suggested_step"] = "update_cycle"
    elif "error" not in result:
        result["suggestion"] = "Review every task with mark_reviewed before closing"
        result["next_suggested_step"] = "mark_reviewed"
    return result


@mcp.tool()
def capture_follow_up(
    workstream_id: str,
    name: str,
    owner: str = "",
    milestone_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Create a task that starts in the workstream's next period."""

    return _manager(root).capture_follow_up(workstream_id, name, owner=owner, milestone_id=milestone_id)


@mcp.tool()
def review_rows(
    project_id: Optional[str] = None,
    workstream_id: Optional[str] = None,
    owner: str = ALL_OWNERS,
    milestone_id: Optional[str] = None,
    offset: int = 0,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List task rows for the review table.
    owner accepts 'all', 'unassigned' or a name; offset steps back through history."""

    return _manager(root).review_rows(
        project_id=project_id,
        workstream_id=workstream_id,
        owner=owner,
        milestone_id=milestone_id,
        offset=offset,
    )


@mcp.tool()
def owner_summaries(root: Optional[str] = None) -> Dict[str, Any]:
    """Group every active task's current cycle by owner."""

    return _manager(root).owner_summaries()


@mcp.tool()
def open_items(
    owner: Optional[str] = None,
    cadence: Optional[str] = None,
    due: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List open cycles across all workstreams, filtered by owner, cadence or due state
    (ontime, duesoon, overdue)."""

    return _manager(root).open_items(owner=owner, cadence=cadence, due=due)


@mcp.tool()
def milestone_groups(workstream_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Group active tasks by milestone, earliest due date first."""

    return _manager(root).milestone_groups(workstream_id)


@mcp.tool()
def get_period(workstream_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Show the current and next period of a workstream."""

    return _manager(root).period(workstream_id)


@mcp.tool()
def reset_workspace(confirm: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete the persisted workspace so setup starts over. Requires confirm=True."""

    if not confirm:
        return {
            "error": "Confirmation required",
            "suggestion": "Call reset_workspace with confirm=True to delete all check-in data",
        }
    return _manager(root).reset()


def run() -> None:
    log_file = os.getenv("CADENCE_LOG_FILE")
    setup_logging(os.getenv("CADENCE_LOG_LEVEL", "INFO"), Path(log_file) if log_file else None)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
