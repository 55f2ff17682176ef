from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from app.services.app_build_errors import ConfigurationError


logger = logging.getLogger(__name__)

# Populated by the content packager on every run, never copied from the template.
GENERATED_PACKS_DIR = PurePosixPath("assets/ota_packs")


@dataclass(frozen=True)
class CopyOutcome:
    relative_path: str
    status: str  # "copied" | "skipped_existing" | "excluded" | "directory" | "failed"
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status == "failed"


def validate_app_id(app_id: str) -> str:
    value = str(app_id or "").strip()
    if not value:
        raise ConfigurationError("App id is required", stage="workspace")
    if value in {".", ".."} or "/" in value or "\\" in value:
        raise ConfigurationError(f"Invalid app id `{value}`", stage="workspace")
    return value


def _is_excluded(relative: PurePosixPath) -> bool:
    parts = relative.parts
    excluded = GENERATED_PACKS_DIR.parts
    return parts[: len(excluded)] == excluded


def copy_template_tree(source_dir: Path, destination_dir: Path) -> List[CopyOutcome]:
    """Copy ``source_dir`` into ``destination_dir`` file by file.

    Directories are always created, files already present at the destination
    are left alone, and anything under the generated packs folder is skipped.
    A failed file copy is recorded and the walk continues; the caller decides
    whether any failure is fatal.
    """
    outcomes: List[CopyOutcome] = []
    destination_dir.mkdir(parents=True, exist_ok=True)

    def _walk(current: Path) -> None:
        for entry in sorted(current.iterdir(), key=lambda item: item.name):
            relative = PurePosixPath(entry.relative_to(source_dir).as_posix())
            target = destination_dir / relative
            if _is_excluded(relative):
                outcomes.append(CopyOutcome(str(relative), "excluded"))
                continue
            if entry.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                outcomes.append(CopyOutcome(str(relative), "directory"))
                _walk(entry)
                continue
            if target.exists():
                outcomes.append(CopyOutcome(str(relative), "skipped_existing"))
                continue
            try:
                shutil.copy2(entry, target)
            except OSError as exc:
                logger.warning("Failed to copy template file %s: %s", relative, exc)
                outcomes.append(CopyOutcome(str(relative), "failed", error=str(exc)))
                continue
            outcomes.append(CopyOutcome(str(relative), "copied"))

    _walk(source_dir)
    return outcomes


def ensure_workspace(app_id: str, template_dir: Path, workspaces_root: Path) -> Tuple[Path, bool]:
    """Return ``(workspace_dir, is_new)`` for ``app_id``, cloning the template on first use."""
    app_id = validate_app_id(app_id)
    template_dir = Path(template_dir)
    if not template_dir.is_dir():
        raise ConfigurationError(f"Template directory does not exist: {template_dir}", stage="workspace")

    workspace_dir = Path(workspaces_root) / app_id
    if workspace_dir.exists():
        logger.info("Reusing workspace for app %s at %s", app_id, workspace_dir)
        return workspace_dir, False

    outcomes = copy_template_tree(template_dir, workspace_dir)
    copied = sum(1 for item in outcomes if item.status == "copied")
    failed = [item.relative_path for item in outcomes if item.failed]
    if failed:
        logger.warning("Workspace for app %s created with %d failed copies: %s", app_id, len(failed), failed)
    logger.info("Created workspace for app %s at %s (%d files copied)", app_id, workspace_dir, copied)
    return workspace_dir, True
