# pharmacheck/infra/repo/static_alert_repo.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import yaml

from pharmacheck.domain.errors import CorpusUnavailableError
from pharmacheck.domain.models import Alert
from pharmacheck.domain.ports import AlertCorpusPort
from pharmacheck.infra.repo.alert_docs import alert_from_doc

log = logging.getLogger("pharmacheck.corpus")


class StaticAlertCorpus(AlertCorpusPort):
    """In-memory corpus. Used for local runs (ALERT_CORPUS=static) and tests."""

    def __init__(self, alerts: Iterable[Alert] = ()):
        self._alerts: List[Alert] = list(alerts)

    @classmethod
    def from_yaml(cls, path: str) -> "StaticAlertCorpus":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise CorpusUnavailableError(f"alerts file {path} not found") from e
        except yaml.YAMLError as e:
            raise CorpusUnavailableError(f"alerts file {path} is not valid YAML: {e}") from e
        rows = data.get("alerts", []) if isinstance(data, dict) else data
        alerts = [a for a in (alert_from_doc(r) for r in rows or [] if isinstance(r, dict)) if a is not None]
        log.info("[corpus] loaded %d alerts from %s", len(alerts), path)
        return cls(alerts)

    async def list_active_alerts(self) -> List[Alert]:
        return [a for a in self._alerts if a.active]

    async def get_alert_by_id(self, alert_id: str) -> Optional[Alert]:
        return next((a for a in self._alerts if a.id == alert_id), None)

    async def find_by_url(self, url: str) -> Optional[Alert]:
        want = (url or "").rstrip("/")
        return next((a for a in self._alerts if a.url.rstrip("/") == want), None)
