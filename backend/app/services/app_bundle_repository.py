from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId

from app.db.connection import MongoDatabase


logger = logging.getLogger(__name__)

MOBILE_APPS_COLLECTION = "mobileapps"
APP_DESIGNS_COLLECTION = "appdesigns"
APP_LAYOUTS_COLLECTION = "applayouts"
SCREENS_COLLECTION = "screens"
ONBOARDING_COLLECTION = "onboardingscreens"


def to_jsonable(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def _normalize_document(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if document is None:
        return None
    payload = to_jsonable(dict(document))
    if "_id" in payload:
        payload["id"] = payload.pop("_id")
    payload.pop("__v", None)
    return payload


def _id_candidates(app_id: str) -> List[Any]:
    candidates: List[Any] = [app_id]
    try:
        candidates.append(ObjectId(app_id))
    except (InvalidId, TypeError):
        pass
    return candidates


class AppBundleRepository:
    """Reads everything a build needs for one app out of the document store."""

    def __init__(self, db: Any = None):
        self._db = db

    @property
    def db(self) -> Any:
        return self._db if self._db is not None else MongoDatabase.get_db()

    async def get_full_app_data(self, app_id: str) -> Optional[Dict[str, Any]]:
        ids = _id_candidates(str(app_id))
        app_doc = await self.db[MOBILE_APPS_COLLECTION].find_one({"_id": {"$in": ids}})
        if app_doc is None:
            logger.info("No mobile app found for id %s", app_id)
            return None

        app = _normalize_document(app_doc) or {}
        design = app.pop("design", None)
        if not design:
            design = _normalize_document(await self.db[APP_DESIGNS_COLLECTION].find_one({"appId": {"$in": ids}}))
        if design:
            design.pop("_id", None)
            design.pop("id", None)
            design.pop("appId", None)

        layout = _normalize_document(await self.db[APP_LAYOUTS_COLLECTION].find_one({"appId": {"$in": ids}}))

        screens_cursor = self.db[SCREENS_COLLECTION].find({"appId": {"$in": ids}}).sort("createdAt", 1)
        screens = [_normalize_document(item) for item in await screens_cursor.to_list(length=None)]

        onboarding_cursor = self.db[ONBOARDING_COLLECTION].find({"appId": {"$in": ids}}).sort("order", 1)
        onboarding = [_normalize_document(item) for item in await onboarding_cursor.to_list(length=None)]

        return {
            "app": app,
            "design": design or {},
            "layout": layout or {},
            "screens": screens,
            "onboarding": onboarding,
        }
