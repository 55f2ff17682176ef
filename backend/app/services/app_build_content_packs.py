from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping

from app.services.app_build_errors import PackagingError
from app.services.app_build_workspace import GENERATED_PACKS_DIR


logger = logging.getLogger(__name__)

PACK_NAMES = ("design", "layout", "screens", "onboarding", "config")
ASSET_MANIFEST_FILENAME = "pubspec.yaml"
MANIFEST_MARKER = f"{GENERATED_PACKS_DIR.as_posix()}/"

_FLUTTER_SECTION = re.compile(r"^flutter:\s*(#.*)?$")
_ASSETS_KEY = re.compile(r"^(\s+)assets:\s*(#.*)?$")


def pack_relative_path(pack_name: str) -> str:
    return f"{GENERATED_PACKS_DIR.as_posix()}/{pack_name}_pack.json"


def _value_or_default(app_bundle: Mapping[str, Any], key: str, default: Any) -> Any:
    value = app_bundle.get(key)
    return default if value is None else value


def build_content_packs(app_bundle: Mapping[str, Any]) -> Dict[str, Any]:
    app = dict(app_bundle.get("app") or {})
    config = {**app, "id": str(app.get("id") if app.get("id") is not None else "")}
    packs = {
        "design": _value_or_default(app_bundle, "design", {}),
        "layout": _value_or_default(app_bundle, "layout", {}),
        "screens": _value_or_default(app_bundle, "screens", []),
        "onboarding": _value_or_default(app_bundle, "onboarding", []),
        "config": config,
    }
    if not packs:
        raise PackagingError("App bundle produced no content packs", stage="packaging")
    return packs


def _serialize_pack(pack_name: str, content: Any) -> str:
    try:
        return json.dumps(content, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as exc:
        raise PackagingError(f"Content pack `{pack_name}` is not serializable: {exc}", stage="packaging") from exc


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def patch_asset_manifest_text(manifest_text: str) -> str:
    """Register every pack file under ``flutter: assets:``; no-op when already registered."""
    if MANIFEST_MARKER in manifest_text:
        return manifest_text

    lines = manifest_text.splitlines()
    flutter_index = next((idx for idx, line in enumerate(lines) if _FLUTTER_SECTION.match(line)), None)
    if flutter_index is None:
        block = ["flutter:", "  assets:"] + [f"    - {pack_relative_path(name)}" for name in PACK_NAMES]
        prefix = manifest_text if manifest_text.endswith("\n") or not manifest_text else manifest_text + "\n"
        return prefix + "\n".join(block) + "\n"

    section_end = len(lines)
    for idx in range(flutter_index + 1, len(lines)):
        line = lines[idx]
        if line.strip() and not line[0].isspace() and not line.lstrip().startswith("#"):
            section_end = idx
            break

    assets_index = None
    assets_indent = "  "
    for idx in range(flutter_index + 1, section_end):
        match = _ASSETS_KEY.match(lines[idx])
        if match:
            assets_index = idx
            assets_indent = match.group(1)
            break

    entry_indent = assets_indent + "  "
    entries = [f"{entry_indent}- {pack_relative_path(name)}" for name in PACK_NAMES]
    if assets_index is None:
        patched = lines[: flutter_index + 1] + [f"{assets_indent}assets:"] + entries + lines[flutter_index + 1 :]
    else:
        patched = lines[: assets_index + 1] + entries + lines[assets_index + 1 :]
    return "\n".join(patched) + "\n"


def patch_asset_manifest(workspace_dir: Path) -> bool:
    manifest_path = Path(workspace_dir) / ASSET_MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise PackagingError(f"Asset manifest not found: {manifest_path}", stage="packaging")
    try:
        original = manifest_path.read_text(encoding="utf-8")
        patched = patch_asset_manifest_text(original)
        if patched == original:
            return False
        manifest_path.write_text(patched, encoding="utf-8")
    except (OSError, UnicodeError) as exc:
        raise PackagingError(f"Failed to patch asset manifest {manifest_path}: {exc}", stage="packaging") from exc
    logger.info("Registered content packs in %s", manifest_path)
    return True


async def write_packs(workspace_dir: Path, app_bundle: Mapping[str, Any]) -> Dict[str, str]:
    """Serialize every content pack into the workspace and return ``{pack_name: file_path}``."""
    workspace_dir = Path(workspace_dir)
    packs = build_content_packs(app_bundle)
    serialized = {pack_name: _serialize_pack(pack_name, content) for pack_name, content in packs.items()}
    pack_files: Dict[str, str] = {}
    writes: List[Any] = []
    for pack_name, text in serialized.items():
        target = workspace_dir / pack_relative_path(pack_name)
        pack_files[pack_name] = str(target)
        writes.append(asyncio.to_thread(_write_text, target, text))

    try:
        await asyncio.gather(*writes)
    except OSError as exc:
        raise PackagingError(f"Failed to write content packs: {exc}", stage="packaging") from exc

    await asyncio.to_thread(patch_asset_manifest, workspace_dir)
    logger.info("Wrote %d content packs into %s", len(pack_files), workspace_dir)
    return pack_files
