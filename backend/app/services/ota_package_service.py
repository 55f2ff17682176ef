from __future__ import annotations

import asyncio
import logging
import time
import zipfile
from pathlib import Path
from typing import Optional

from app.services.app_build_errors import OtaPackageError
from app.services.app_build_pipeline import AppBuildPipeline
from app.services.app_build_workspace import validate_app_id
from app.services.app_bundle_repository import AppBundleRepository


logger = logging.getLogger(__name__)


class AppBundleNotFound(Exception):
    pass


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def zip_directory(source_dir: Path, archive_path: Path) -> int:
    archive_path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(source_dir).as_posix())
                count += 1
    return count


def extract_archive(archive_path: Path, target_dir: Path) -> int:
    target_root = target_dir.resolve()
    target_dir.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path) as archive:
        members = archive.infolist()
        for member in members:
            destination = (target_root / member.filename).resolve()
            if destination != target_root and target_root not in destination.parents:
                raise OtaPackageError(f"Archive entry escapes target directory: {member.filename}", stage="inject")
        archive.extractall(target_root)
    return len(members)


class OtaPackageService:
    def __init__(self, pipeline: AppBuildPipeline, repository: Optional[AppBundleRepository] = None):
        self._pipeline = pipeline
        self._repository = repository or AppBundleRepository()

    @property
    def pipeline(self) -> AppBuildPipeline:
        return self._pipeline

    async def load_bundle(self, app_id: str) -> dict:
        bundle = await self._repository.get_full_app_data(app_id)
        if not bundle:
            raise AppBundleNotFound(f"No data found for appId {app_id}")
        return bundle

    async def generate_ota_package(self, app_id: str) -> str:
        """Build the app, then zip its workspace into ``<ota root>/<app_id>/OTA-<ms>.zip``."""
        app_id = validate_app_id(app_id)
        bundle = await self.load_bundle(app_id)
        await self._pipeline.generate_or_update_app(bundle)

        config = self._pipeline.config
        workspace_dir = config.workspace_dir_for(app_id)
        if not workspace_dir.is_dir():
            raise OtaPackageError(f"Build workspace is missing for appId {app_id}", stage="ota")
        ota_root = config.ota_packages_root or (Path.cwd() / "OTA_Packages")
        archive_path = ota_root / app_id / f"OTA-{_timestamp_ms()}.zip"
        try:
            file_count = await asyncio.to_thread(zip_directory, workspace_dir, archive_path)
        except OSError as exc:
            raise OtaPackageError(f"Failed to create OTA package: {exc}", stage="ota") from exc
        logger.info("OTA package created for app %s: %s (%d files)", app_id, archive_path, file_count)
        return str(archive_path)

    async def inject_ota_into_template(self, app_id: str, ota_package_path: str) -> str:
        app_id = validate_app_id(app_id)
        config = self._pipeline.config
        templates_root = config.injection_templates_root or (Path.cwd() / "flutter_templates")
        template_dir = templates_root / app_id
        if not template_dir.is_dir():
            raise OtaPackageError(f"No Flutter template found for appId {app_id}", stage="inject")
        archive_path = Path(ota_package_path)
        if not archive_path.is_file():
            raise OtaPackageError(f"OTA package not found: {ota_package_path}", stage="inject")

        injection_dir = template_dir / f"injection-{_timestamp_ms()}"
        try:
            await asyncio.to_thread(extract_archive, archive_path, injection_dir)
        except (OSError, zipfile.BadZipFile) as exc:
            raise OtaPackageError(f"Failed to extract OTA package: {exc}", stage="inject") from exc
        logger.info("Injected OTA from %s into template at %s", archive_path, template_dir)
        return str(template_dir)
