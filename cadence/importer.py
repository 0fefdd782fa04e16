"""Import builder: onboarding document -> initial workspace.

The onboarding document is produced by an external collaborator (a setup
wizard or a free-text parser). It is validated against ``ONBOARDING_SCHEMA``
and a few semantic rules before anything is built; a document that fails
any check is rejected as a whole.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Dict

import jsonschema

from .cadence_logging import log_import_completed
from .errors import ImportDocumentError
from .manage import create_milestone, create_project, create_task, create_workstream
from .models import AppState, Selection
from .periods import CADENCES, DateLike, is_iso_date

logger = logging.getLogger("cadence.importer")

ONBOARDING_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "cadence_onboarding_v1",
    "type": "object",
    "required": ["projects"],
    "properties": {
        "version": {"const": 1},
        "projects": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["name", "workstreams"],
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "workstreams": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["name", "cadence", "tasks"],
                            "properties": {
                                "name": {"type": "string", "minLength": 1},
                                "cadence": {"enum": list(CADENCES)},
                                "lead": {"type": "string"},
                                "milestone": {"type": "string"},
                                "milestoneDate": {
                                    "type": "string",
                                    "pattern": r"^(\d{4}-\d{2}-\d{2})?$",
                                },
                                "tasks": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "required": ["name", "owner"],
                                        "properties": {
                                            "name": {"type": "string", "minLength": 1},
                                            "owner": {"type": "string"},
                                        },
                                    },
                                },
                            },
                        },
                    },
                },
            },
        },
    },
}


def _json_path(path) -> str:
    return ".".join(str(part) for part in path) if path else "(root)"


def validate_document(document: Any) -> Dict[str, Any]:
    """Validate an onboarding document, raising ``ImportDocumentError``."""
    try:
        jsonschema.validate(instance=document, schema=ONBOARDING_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ImportDocumentError(e.message, _json_path(e.absolute_path)) from None

    for p, project in enumerate(document["projects"]):
        if not project["name"].strip():
            raise ImportDocumentError("Project name is blank", f"projects.{p}.name")
        for w, workstream in enumerate(project["workstreams"]):
            base = f"projects.{p}.workstreams.{w}"
            if not workstream["name"].strip():
                raise ImportDocumentError("Workstream name is blank", f"{base}.name")
            milestone_date = workstream.get("milestoneDate", "")
            if milestone_date and not is_iso_date(milestone_date):
                raise ImportDocumentError(f"'{milestone_date}' is not a calendar date", f"{base}.milestoneDate")
            for t, task in enumerate(workstream["tasks"]):
                if not task["name"].strip():
                    raise ImportDocumentError("Task name is blank", f"{base}.tasks.{t}.name")
    return document


def load_document(text: str) -> Dict[str, Any]:
    """Parse JSON text and validate it as an onboarding document."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportDocumentError(f"Invalid JSON: {e}") from None
    return validate_document(document)


def build_workspace(document: Dict[str, Any], today: DateLike) -> AppState:
    """Build a fresh workspace from a validated onboarding document.

    Each workstream is anchored at the start of the period containing
    ``today``; each task is active and holds its first open cycle.
    """
    validate_document(document)
    state = AppState()
    first_project_id = None
    first_workstream_id = None

    for project_doc in document["projects"]:
        state, project = create_project(state, project_doc["name"])
        first_project_id = first_project_id or project.id

        for ws_doc in project_doc["workstreams"]:
            state, workstream = create_workstream(
                state,
                project.id,
                ws_doc["name"],
                ws_doc["cadence"],
                today,
                lead=ws_doc.get("lead", ""),
            )
            first_workstream_id = first_workstream_id or workstream.id

            milestone = None
            title = (ws_doc.get("milestone") or "").strip()
            if title:
                state, milestone = create_milestone(
                    state,
                    workstream.id,
                    title,
                    due_date=ws_doc.get("milestoneDate") or None,
                )

            for task_doc in ws_doc["tasks"]:
                state, _ = create_task(
                    state,
                    workstream.id,
                    task_doc["name"],
                    task_doc["owner"],
                    today,
                    milestone_id=milestone.id if milestone else None,
                )

    selection = Selection(project_id=first_project_id, workstream_id=first_workstream_id)
    state = replace(state, selection=selection)

    logger.info(
        f"Imported {len(state.projects)} projects, {len(state.workstreams)} workstreams, "
        f"{len(state.tasks)} tasks"
    )
    log_import_completed(len(state.projects), len(state.workstreams), len(state.tasks))
    return state
