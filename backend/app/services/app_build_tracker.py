from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from app.services.app_build_config import AppBuildPipelineConfig
from app.services.app_build_errors import (
    AppBuildPipelineError,
    ArtifactNotFound,
    RunDiscoveryTimeout,
    RunFailed,
    RunTimeout,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ACTIVE_RUN_STATUSES = {"queued", "in_progress"}
COMPLETED_RUN_STATUS = "completed"


class BuildTrackerState(str, enum.Enum):
    discovering = "discovering"
    waiting_completion = "waiting_completion"
    polling_artifact = "polling_artifact"
    done = "done"
    failed = "failed"


@dataclass
class BuildTrackingOutcome:
    app_id: str
    state: BuildTrackerState = BuildTrackerState.discovering
    run_id: Optional[int] = None
    artifact_id: Optional[int] = None
    artifact_url: Optional[str] = None
    conclusion: Optional[str] = None
    failure_code: Optional[str] = None
    attempts: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PollResult:
    value: Any
    attempts: int


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    select: Callable[[T], Optional[R]],
    *,
    interval_seconds: float,
    max_attempts: int,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    tolerate_errors: bool = False,
    label: str = "poll",
) -> Optional[PollResult]:
    """Call ``fetch`` until ``select`` returns a value or the attempt budget runs out.

    Returns None once the budget is exhausted. Fetch errors propagate unless
    ``tolerate_errors`` is set, in which case the attempt counts as a miss.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            fetched = await fetch()
        except AppBuildPipelineError as exc:
            if not tolerate_errors:
                raise
            logger.warning("%s attempt %d/%d failed: %s", label, attempt, max_attempts, exc)
        else:
            selected = select(fetched)
            if selected is not None:
                return PollResult(value=selected, attempts=attempt)
        if attempt < max_attempts:
            await sleep(interval_seconds)
    return None


def select_active_run(runs: List[Dict[str, Any]], *, app_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Pick the most recently created queued/in-progress run, optionally matched by app id in its name."""
    candidates = [run for run in runs if str(run.get("status") or "") in ACTIVE_RUN_STATUSES]
    if app_id:
        candidates = [
            run
            for run in candidates
            if app_id in str(run.get("display_name") or "") or app_id in str(run.get("name") or "")
        ]
    if not candidates:
        return None
    return max(candidates, key=lambda run: (str(run.get("created_at") or ""), int(run.get("id") or 0)))


def select_artifact(artifacts: List[Dict[str, Any]], *, name: str) -> Optional[Dict[str, Any]]:
    return next((item for item in artifacts if item.get("name") == name), None)


class BuildTracker:
    def __init__(
        self,
        client: Any,
        config: AppBuildPipelineConfig,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._config = config
        self._sleep = sleep

    async def track_build(self, app_id: str) -> str:
        outcome = await self.track(app_id)
        return str(outcome.artifact_url)

    async def track(self, app_id: str) -> BuildTrackingOutcome:
        outcome = BuildTrackingOutcome(app_id=app_id)
        try:
            await self._discover_run(outcome)
            await self._wait_for_completion(outcome)
            await self._poll_artifact(outcome)
        except AppBuildPipelineError as exc:
            outcome.state = BuildTrackerState.failed
            outcome.failure_code = exc.code
            raise
        outcome.state = BuildTrackerState.done
        return outcome

    async def _discover_run(self, outcome: BuildTrackingOutcome) -> None:
        correlation = outcome.app_id if self._config.correlate_runs_by_app_id else None
        result = await poll_until(
            self._client.list_runs,
            lambda runs: select_active_run(runs, app_id=correlation),
            interval_seconds=self._config.poll_interval_seconds,
            max_attempts=self._config.discovery_max_attempts,
            sleep=self._sleep,
            label="Run discovery",
        )
        if result is None:
            outcome.attempts["discovery"] = self._config.discovery_max_attempts
            raise RunDiscoveryTimeout(
                f"No active CI run found after {self._config.discovery_max_attempts} attempts",
                stage="tracking",
            )
        outcome.attempts["discovery"] = result.attempts
        outcome.run_id = int(result.value["id"])
        outcome.state = BuildTrackerState.waiting_completion
        logger.info("Discovered CI run %s for app %s", outcome.run_id, outcome.app_id)

    async def _wait_for_completion(self, outcome: BuildTrackingOutcome) -> None:
        run_id = outcome.run_id

        async def _fetch_run() -> Dict[str, Any]:
            return await self._client.get_run(run_id)

        result = await poll_until(
            _fetch_run,
            lambda run: run if str(run.get("status") or "") == COMPLETED_RUN_STATUS else None,
            interval_seconds=self._config.poll_interval_seconds,
            max_attempts=self._config.completion_max_attempts,
            sleep=self._sleep,
            label="Run completion",
        )
        if result is None:
            outcome.attempts["completion"] = self._config.completion_max_attempts
            raise RunTimeout(
                f"CI run {run_id} did not complete after {self._config.completion_max_attempts} attempts",
                stage="tracking",
            )
        outcome.attempts["completion"] = result.attempts
        outcome.conclusion = result.value.get("conclusion")
        if outcome.conclusion not in (None, "success"):
            logger.warning("CI run %s completed with conclusion `%s`", run_id, outcome.conclusion)
            if self._config.fail_on_unsuccessful_conclusion:
                raise RunFailed(
                    f"CI run {run_id} completed with conclusion `{outcome.conclusion}`",
                    stage="tracking",
                )
        outcome.state = BuildTrackerState.polling_artifact
        logger.info("CI run %s completed for app %s", run_id, outcome.app_id)

    async def _poll_artifact(self, outcome: BuildTrackingOutcome) -> None:
        run_id = outcome.run_id
        artifact_name = self._config.artifact_name

        async def _fetch_artifacts() -> List[Dict[str, Any]]:
            return await self._client.list_artifacts(run_id)

        result = await poll_until(
            _fetch_artifacts,
            lambda artifacts: select_artifact(artifacts, name=artifact_name),
            interval_seconds=self._config.poll_interval_seconds,
            max_attempts=self._config.artifact_max_attempts,
            sleep=self._sleep,
            tolerate_errors=True,
            label="Artifact lookup",
        )
        if result is None:
            outcome.attempts["artifact"] = self._config.artifact_max_attempts
            raise ArtifactNotFound(
                f"Artifact `{artifact_name}` not found on CI run {run_id}",
                stage="tracking",
            )
        outcome.attempts["artifact"] = result.attempts
        outcome.artifact_id = int(result.value["id"])
        outcome.artifact_url = self._client.artifact_reference_url(run_id, outcome.artifact_id)
        logger.info("Found artifact `%s` (%s) on CI run %s", artifact_name, outcome.artifact_id, run_id)
