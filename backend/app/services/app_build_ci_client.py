from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from app.services.app_build_config import AppBuildPipelineConfig
from app.services.app_build_errors import AuthenticationError, CIRequestError, ConfigurationError

# Runs started by a dispatch are listed under this trigger event.
DISPATCH_RUN_EVENT = "repository_dispatch"


class GitHubActionsClient:
    def __init__(self, config: AppBuildPipelineConfig):
        self._config = config

    @property
    def repository(self) -> str:
        return self._config.ci_repository

    def _require_ready(self) -> None:
        if not self._config.ci_token:
            raise AuthenticationError(
                "CI access token is not configured. Set APP_BUILD_CI_TOKEN or GITHUB_TOKEN.",
                stage="dispatch",
            )
        if not self._config.ci_repository or "/" not in self._config.ci_repository:
            raise ConfigurationError(
                "CI repository is not configured. Set APP_BUILD_CI_REPOSITORY to `owner/name`.",
                stage="dispatch",
            )

    def _headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._config.ci_token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        expect_json: bool = True,
    ) -> Dict[str, Any]:
        self._require_ready()
        url = f"{self._config.ci_api_base_url.rstrip('/')}/repos/{self._config.ci_repository}{path}"
        timeout = httpx.Timeout(float(self._config.request_timeout_seconds))
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(method, url, headers=self._headers(), json=json, params=params)
        except Exception as exc:
            detail = str(exc).strip() or exc.__class__.__name__
            raise CIRequestError(f"CI request failed: {detail}") from exc

        if response.status_code >= 400:
            body = response.text.strip()
            raise CIRequestError(
                f"CI request failed ({response.status_code}): {body or response.reason_phrase}",
                status_code=response.status_code,
            )
        if not expect_json or response.status_code == 204 or not response.content:
            return {}
        try:
            payload = response.json()
        except Exception as exc:
            raise CIRequestError("CI returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise CIRequestError("CI returned invalid payload")
        return payload

    async def dispatch(self, *, event_type: str, client_payload: Dict[str, Any]) -> None:
        await self._request(
            "POST",
            "/dispatches",
            json={"event_type": event_type, "client_payload": client_payload},
            expect_json=False,
        )

    async def list_runs(self, *, event: str = DISPATCH_RUN_EVENT, per_page: int = 30) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/actions/runs", params={"event": event, "per_page": per_page})
        runs = payload.get("workflow_runs") or []
        return [item for item in runs if isinstance(item, dict)]

    async def get_run(self, run_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/actions/runs/{run_id}")

    async def list_artifacts(self, run_id: int) -> List[Dict[str, Any]]:
        payload = await self._request("GET", f"/actions/runs/{run_id}/artifacts")
        artifacts = payload.get("artifacts") or []
        return [item for item in artifacts if isinstance(item, dict)]

    def artifact_reference_url(self, run_id: int, artifact_id: int) -> str:
        return f"https://github.com/{self._config.ci_repository}/actions/runs/{run_id}/artifacts/{artifact_id}"
