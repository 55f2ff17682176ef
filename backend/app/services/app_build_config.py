from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "off", "no", ""}


def _env_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        return default


def _env_path(name: str, default_dirname: str) -> Path:
    raw = (os.getenv(name) or "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return (Path.cwd() / default_dirname).resolve()


@dataclass(frozen=True)
class AppBuildPipelineConfig:
    template_dir: Path
    workspaces_root: Path
    ci_api_base_url: str
    ci_repository: str
    ci_token: Optional[str]
    event_type: str = "build_app"
    artifact_name: str = "flutter-apks"
    poll_interval_seconds: float = 10.0
    discovery_max_attempts: int = 30
    completion_max_attempts: int = 60
    artifact_max_attempts: int = 10
    request_timeout_seconds: float = 30.0
    fail_on_unsuccessful_conclusion: bool = False
    correlate_runs_by_app_id: bool = False
    ota_packages_root: Optional[Path] = None
    injection_templates_root: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "AppBuildPipelineConfig":
        token = (
            (os.getenv("APP_BUILD_CI_TOKEN") or "").strip()
            or (os.getenv("GITHUB_TOKEN") or "").strip()
            or None
        )
        return cls(
            template_dir=_env_path("APP_BUILD_TEMPLATE_DIR", "flutter_template"),
            workspaces_root=_env_path("APP_BUILD_WORKSPACES_ROOT", "generated_apps"),
            ci_api_base_url=(os.getenv("APP_BUILD_CI_API_URL") or "https://api.github.com").strip(),
            ci_repository=(os.getenv("APP_BUILD_CI_REPOSITORY") or "").strip().strip("/"),
            ci_token=token,
            event_type=(os.getenv("APP_BUILD_CI_EVENT_TYPE") or "build_app").strip(),
            artifact_name=(os.getenv("APP_BUILD_ARTIFACT_NAME") or "flutter-apks").strip(),
            poll_interval_seconds=float(_env_int("APP_BUILD_POLL_INTERVAL_SECONDS", 10, minimum=0)),
            discovery_max_attempts=_env_int("APP_BUILD_DISCOVERY_MAX_ATTEMPTS", 30),
            completion_max_attempts=_env_int("APP_BUILD_COMPLETION_MAX_ATTEMPTS", 60),
            artifact_max_attempts=_env_int("APP_BUILD_ARTIFACT_MAX_ATTEMPTS", 10),
            request_timeout_seconds=float(_env_int("APP_BUILD_CI_TIMEOUT_SECONDS", 30, minimum=3)),
            fail_on_unsuccessful_conclusion=_env_flag("APP_BUILD_FAIL_ON_UNSUCCESSFUL_CONCLUSION"),
            correlate_runs_by_app_id=_env_flag("APP_BUILD_CORRELATE_RUNS_BY_APP_ID"),
            ota_packages_root=_env_path("APP_BUILD_OTA_PACKAGES_ROOT", "OTA_Packages"),
            injection_templates_root=_env_path("APP_BUILD_INJECTION_TEMPLATES_ROOT", "flutter_templates"),
        )

    def workspace_dir_for(self, app_id: str) -> Path:
        return self.workspaces_root / app_id
