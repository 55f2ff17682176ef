from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from app.services.app_build_ci_client import GitHubActionsClient
from app.services.app_build_errors import CIRequestError, DispatchError


logger = logging.getLogger(__name__)


async def dispatch_build(client: GitHubActionsClient, *, event_type: str, app_bundle: Mapping[str, Any]) -> None:
    """Send a single build trigger carrying the whole bundle. Never retried here."""
    client_payload: Dict[str, Any] = dict(app_bundle)
    try:
        await client.dispatch(event_type=event_type, client_payload=client_payload)
    except CIRequestError as exc:
        raise DispatchError(f"Failed to dispatch build: {exc}", stage="dispatch") from exc
    logger.info("Dispatched `%s` build event to %s", event_type, client.repository)
