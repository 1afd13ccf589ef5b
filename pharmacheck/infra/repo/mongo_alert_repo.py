# pharmacheck/infra/repo/mongo_alert_repo.py
from __future__ import annotations

import logging
import os
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from pharmacheck.domain.errors import CorpusUnavailableError
from pharmacheck.domain.models import Alert
from pharmacheck.domain.ports import AlertCorpusPort
from pharmacheck.infra.repo.alert_docs import alert_from_doc

log = logging.getLogger("pharmacheck.corpus")

ALERT_PROJECTION = {
    "title": 1, "excerpt": 1, "url": 1, "date": 1, "batch_numbers": 1, "batchNumber": 1,
    "product_names": 1, "manufacturer": 1, "severity": 1, "active": 1, "alert_type": 1, "alertType": 1,
}


class MongoAlertCorpus(AlertCorpusPort):
    """
    Read-only view of the crawler's alert collection. The crawler owns writes;
    this adapter only lists and looks up.
    """

    def __init__(self, uri: Optional[str] = None, db: Optional[str] = None, coll: Optional[str] = None,
                 client: Optional[AsyncIOMotorClient] = None) -> None:
        self.client = client or AsyncIOMotorClient(
            uri or os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            serverSelectionTimeoutMS=int(os.getenv("MONGO_TIMEOUT_MS", "3000")),
        )
        self.db = self.client[db or os.getenv("MONGO_DB", "pharmacheck")]
        self.coll: AsyncIOMotorCollection = self.db[coll or os.getenv("MONGO_ALERTS_COLL", "nafdac_alerts")]

    # ──────────────────────────────────────────────────────────────
    #  Reads
    # ──────────────────────────────────────────────────────────────
    async def list_active_alerts(self) -> List[Alert]:
        try:
            cursor = self.coll.find({"active": {"$ne": False}}, ALERT_PROJECTION).sort("date", DESCENDING)
            docs = [doc async for doc in cursor]
        except PyMongoError as e:
            raise CorpusUnavailableError(f"mongo: {e}") from e
        alerts = [a for a in (alert_from_doc(d) for d in docs) if a is not None]
        log.info("[corpus] %d active alerts (%d docs)", len(alerts), len(docs))
        return alerts

    async def get_alert_by_id(self, alert_id: str) -> Optional[Alert]:
        try:
            key = ObjectId(alert_id)
        except (InvalidId, TypeError):
            key = alert_id
        try:
            doc = await self.coll.find_one({"_id": key}, ALERT_PROJECTION)
        except PyMongoError as e:
            raise CorpusUnavailableError(f"mongo: {e}") from e
        return alert_from_doc(doc) if doc else None

    async def find_by_url(self, url: str) -> Optional[Alert]:
        if not url:
            return None
        try:
            doc = await self.coll.find_one({"url": {"$in": [url, url.rstrip("/"), url.rstrip("/") + "/"]}},
                                           ALERT_PROJECTION)
        except PyMongoError as e:
            raise CorpusUnavailableError(f"mongo: {e}") from e
        return alert_from_doc(doc) if doc else None

    async def ping(self) -> bool:
        try:
            await self.db.command("ping")
            return True
        except PyMongoError as e:
            log.warning("[corpus] mongo ping failed: %s", e)
            return False

    async def aclose(self) -> None:
        self.client.close()
