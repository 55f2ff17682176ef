from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from app.services.app_build_ci_client import GitHubActionsClient
from app.services.app_build_config import AppBuildPipelineConfig
from app.services.app_build_content_packs import write_packs
from app.services.app_build_dispatch import dispatch_build
from app.services.app_build_errors import AppBuildPipelineError, PackagingError
from app.services.app_build_result import BuildResult, finalize
from app.services.app_build_tracker import BuildTracker
from app.services.app_build_workspace import ensure_workspace, validate_app_id


logger = logging.getLogger(__name__)


def resolve_app_id(app_bundle: Mapping[str, Any]) -> str:
    app = app_bundle.get("app")
    if not isinstance(app, Mapping) or app.get("id") is None:
        raise PackagingError("App bundle is missing `app.id`", stage="prepare")
    return validate_app_id(str(app["id"]))


class AppBuildPipeline:
    """Materialize, package, dispatch, track and finalize one app build.

    At most one build per app id runs at a time; builds for different apps
    proceed concurrently.
    """

    def __init__(
        self,
        config: AppBuildPipelineConfig,
        *,
        ci_client: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config
        self._ci_client = ci_client or GitHubActionsClient(config)
        self._tracker = BuildTracker(self._ci_client, config, sleep=sleep)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @classmethod
    def from_env(cls) -> "AppBuildPipeline":
        return cls(AppBuildPipelineConfig.from_env())

    @property
    def config(self) -> AppBuildPipelineConfig:
        return self._config

    def _acquire_lock_slot(self, app_id: str) -> asyncio.Lock:
        lock = self._locks.get(app_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[app_id] = lock
        self._lock_users[app_id] = self._lock_users.get(app_id, 0) + 1
        return lock

    def _release_lock_slot(self, app_id: str) -> None:
        remaining = self._lock_users.get(app_id, 1) - 1
        if remaining > 0:
            self._lock_users[app_id] = remaining
            return
        # Last holder or waiter for this app; forget the lock.
        self._lock_users.pop(app_id, None)
        self._locks.pop(app_id, None)

    @property
    def active_app_ids(self) -> List[str]:
        return sorted(self._locks)

    async def generate_or_update_app(self, app_bundle: Mapping[str, Any]) -> BuildResult:
        app_id = resolve_app_id(app_bundle)
        lock = self._acquire_lock_slot(app_id)
        try:
            async with lock:
                return await self._run(app_id, app_bundle)
        finally:
            self._release_lock_slot(app_id)

    async def _run(self, app_id: str, app_bundle: Mapping[str, Any]) -> BuildResult:
        stage = "workspace"
        try:
            workspace_dir, is_new = await asyncio.to_thread(
                ensure_workspace,
                app_id,
                self._config.template_dir,
                self._config.workspaces_root,
            )

            stage = "packaging"
            pack_files = await write_packs(workspace_dir, app_bundle)

            stage = "dispatch"
            await dispatch_build(self._ci_client, event_type=self._config.event_type, app_bundle=app_bundle)

            stage = "tracking"
            artifact_url = await self._tracker.track_build(app_id)

            stage = "finalize"
            app = app_bundle.get("app") or {}
            app_name = str(app.get("appName") or app.get("name") or "")
            result = finalize(app_id, artifact_url, app_name=app_name, is_new=is_new, pack_files=pack_files)
        except AppBuildPipelineError as exc:
            if exc.stage is None:
                exc.stage = stage
            logger.exception("App build failed for app %s during %s: %s", app_id, stage, exc)
            raise
        except Exception:
            logger.exception("App build failed for app %s during %s", app_id, stage)
            raise

        logger.info("App build finished for app %s: %s", app_id, result.apk_url)
        return result
