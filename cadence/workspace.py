"""Workspace storage for Cadence.

The whole workspace is one JSON document kept under the storage directory
of a project root. It is read once at startup and rewritten after every
published change. Reads fail open (a corrupt document means "needs setup")
and writes are best-effort.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from .cadence_logging import (
    log_error_with_context,
    log_performance,
    observability_hooks,
)
from .models import AppState

logger = logging.getLogger("cadence.workspace")


class Workspace:
    """Persist the check-in state of a repository or team directory."""

    STORAGE_DIR_ENV = "CADENCE_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".cadence"
    STATE_FILENAME = "workspace.json"

    def __init__(self, root: Path | str):
        """Initialize workspace with given root directory."""
        try:
            self.root = Path(root).resolve()
            storage_name = os.getenv(self.STORAGE_DIR_ENV) or self.DEFAULT_STORAGE_DIR

            self.base_dir = self.root / storage_name
            self.state_dir = self.base_dir / "state"

            try:
                self.state_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Failed to create workspace directories: {e}")
                raise RuntimeError(f"Could not initialize workspace at {self.root}: {e}")

            logger.info(f"Workspace initialized at {self.root}")
            observability_hooks.emit("workspace_initialized", root=str(self.root))

        except Exception as e:
            logger.error(f"Failed to initialize workspace: {e}")
            log_error_with_context(e, {"operation": "workspace_init", "root": str(root)})
            raise

    @property
    def state_path(self) -> Path:
        return self.state_dir / self.STATE_FILENAME

    def state_exists(self) -> bool:
        return self.state_path.exists()

    def load_state(self) -> Optional[AppState]:
        """Load the persisted state; ``None`` when absent or unreadable."""
        path = self.state_path
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            state = AppState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable workspace state at {path}: {e}")
            return None

        issues = state.validate()
        if issues:
            logger.warning(f"Ignoring invalid workspace state at {path}: {issues[0]}")
            return None
        return state

    @log_performance("save_state")
    def save_state(self, state: AppState) -> bool:
        """Write the state document; failures are logged and reported as ``False``."""
        path = self.state_path
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            log_error_with_context(e, {"operation": "save_state", "path": str(path)})
            return False
        return True

    def reset(self) -> None:
        """Remove the persisted state so the next start needs setup."""
        try:
            self.state_path.unlink()
        except FileNotFoundError:
            pass
        logger.info(f"Workspace state cleared at {self.root}")
