from pathlib import Path
from typing import Any, Dict, List, Optional

from app.services.app_build_config import AppBuildPipelineConfig
from app.services.app_build_errors import CIRequestError


PUBSPEC_TEXT = """name: demo_app
description: Demo app template

dependencies:
  flutter:
    sdk: flutter

flutter:
  uses-material-design: true
"""


def make_template(root: Path) -> Path:
    template_dir = root / "template"
    template_dir.mkdir(parents=True, exist_ok=True)
    (template_dir / "pubspec.yaml").write_text(PUBSPEC_TEXT, encoding="utf-8")
    return template_dir


def make_config(root: Path, **overrides: Any) -> AppBuildPipelineConfig:
    values: Dict[str, Any] = {
        "template_dir": root / "template",
        "workspaces_root": root / "workspaces",
        "ci_api_base_url": "http://ci.local",
        "ci_repository": "acme/app-builds",
        "ci_token": "ci-token",
        "poll_interval_seconds": 10.0,
        "ota_packages_root": root / "ota",
        "injection_templates_root": root / "injection_templates",
    }
    values.update(overrides)
    return AppBuildPipelineConfig(**values)


def demo_bundle(app_id: str = "abc123") -> Dict[str, Any]:
    return {
        "app": {"id": app_id, "appName": "Demo"},
        "design": {"theme": "dark"},
        "layout": {"tabs": []},
        "screens": [],
        "onboarding": [],
    }


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeCIClient:
    """Scripted stand-in for the GitHub Actions client."""

    def __init__(
        self,
        *,
        misses_before_run: int = 0,
        run_id: int = 42,
        polls_before_completed: int = 0,
        conclusion: Optional[str] = "success",
        artifacts: Optional[List[Dict[str, Any]]] = None,
        artifact_errors: int = 0,
        never_active: bool = False,
        never_completed: bool = False,
    ) -> None:
        self.misses_before_run = misses_before_run
        self.run_id = run_id
        self.polls_before_completed = polls_before_completed
        self.conclusion = conclusion
        self.artifacts = artifacts if artifacts is not None else [{"id": 7, "name": "flutter-apks"}]
        self.artifact_errors = artifact_errors
        self.never_active = never_active
        self.never_completed = never_completed
        self.dispatched: List[Dict[str, Any]] = []
        self.list_runs_calls = 0
        self.get_run_calls = 0
        self.list_artifacts_calls = 0

    @property
    def repository(self) -> str:
        return "acme/app-builds"

    async def dispatch(self, *, event_type: str, client_payload: Dict[str, Any]) -> None:
        self.dispatched.append({"event_type": event_type, "client_payload": client_payload})

    async def list_runs(self) -> List[Dict[str, Any]]:
        self.list_runs_calls += 1
        finished = {"id": 1, "status": "completed", "created_at": "2026-01-01T00:00:00Z"}
        if self.never_active or self.list_runs_calls <= self.misses_before_run:
            return [finished]
        return [
            finished,
            {"id": self.run_id, "status": "queued", "created_at": "2026-01-02T00:00:00Z"},
        ]

    async def get_run(self, run_id: int) -> Dict[str, Any]:
        self.get_run_calls += 1
        if self.never_completed or self.get_run_calls <= self.polls_before_completed:
            return {"id": run_id, "status": "in_progress", "conclusion": None}
        return {"id": run_id, "status": "completed", "conclusion": self.conclusion}

    async def list_artifacts(self, run_id: int) -> List[Dict[str, Any]]:
        self.list_artifacts_calls += 1
        if self.list_artifacts_calls <= self.artifact_errors:
            raise CIRequestError("CI request failed (502): Bad Gateway", status_code=502)
        return list(self.artifacts)

    def artifact_reference_url(self, run_id: int, artifact_id: int) -> str:
        return f"https://github.com/acme/app-builds/actions/runs/{run_id}/artifacts/{artifact_id}"
