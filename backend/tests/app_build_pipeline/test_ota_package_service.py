from __future__ import annotations

import zipfile

import pytest

from app.services.app_build_errors import OtaPackageError
from app.services.app_build_pipeline import AppBuildPipeline
from app.services.ota_package_service import AppBundleNotFound, OtaPackageService
from tests.app_build_pipeline._helpers import FakeCIClient, RecordingSleep


class _FakeRepository:
    def __init__(self, bundles):
        self._bundles = bundles

    async def get_full_app_data(self, app_id):
        return self._bundles.get(app_id)


def _service(build_config, bundles):
    pipeline = AppBuildPipeline(build_config, ci_client=FakeCIClient(), sleep=RecordingSleep())
    return OtaPackageService(pipeline, repository=_FakeRepository(bundles))


@pytest.mark.asyncio
async def test_generate_ota_package_zips_workspace(build_config, bundle):
    service = _service(build_config, {"abc123": bundle})

    ota_path = await service.generate_ota_package("abc123")

    assert ota_path.startswith(str(build_config.ota_packages_root / "abc123" / "OTA-"))
    assert ota_path.endswith(".zip")
    with zipfile.ZipFile(ota_path) as archive:
        names = set(archive.namelist())
    assert "pubspec.yaml" in names
    assert "assets/ota_packs/config_pack.json" in names


@pytest.mark.asyncio
async def test_generate_ota_package_unknown_app(build_config):
    service = _service(build_config, {})
    with pytest.raises(AppBundleNotFound):
        await service.generate_ota_package("missing")


@pytest.mark.asyncio
async def test_inject_ota_extracts_into_template(build_config, bundle):
    service = _service(build_config, {"abc123": bundle})
    ota_path = await service.generate_ota_package("abc123")
    template_dir = build_config.injection_templates_root / "abc123"
    template_dir.mkdir(parents=True)

    final_path = await service.inject_ota_into_template("abc123", ota_path)

    assert final_path == str(template_dir)
    injections = [path for path in template_dir.iterdir() if path.name.startswith("injection-")]
    assert len(injections) == 1
    assert (injections[0] / "assets" / "ota_packs" / "design_pack.json").exists()


@pytest.mark.asyncio
async def test_inject_ota_requires_template_and_package(build_config, tmp_path):
    service = _service(build_config, {})
    with pytest.raises(OtaPackageError):
        await service.inject_ota_into_template("abc123", str(tmp_path / "missing.zip"))

    (build_config.injection_templates_root / "abc123").mkdir(parents=True)
    with pytest.raises(OtaPackageError):
        await service.inject_ota_into_template("abc123", str(tmp_path / "missing.zip"))


@pytest.mark.asyncio
async def test_inject_ota_rejects_path_traversal(build_config, tmp_path):
    template_dir = build_config.injection_templates_root / "abc123"
    template_dir.mkdir(parents=True)
    archive_path = tmp_path / "evil.zip"
    with zipfile.ZipFile(archive_path, "w") as archive:
        archive.writestr("../../escape.txt", "nope")

    service = _service(build_config, {})
    with pytest.raises(OtaPackageError):
        await service.inject_ota_into_template("abc123", str(archive_path))
    assert not (build_config.injection_templates_root / "escape.txt").exists()
