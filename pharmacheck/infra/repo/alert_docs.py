# pharmacheck/infra/repo/alert_docs.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from pharmacheck.domain.extraction import classify_alert_type
from pharmacheck.domain.models import Alert, Severity

log = logging.getLogger("pharmacheck.corpus")


def _as_list(v: Any) -> List[str]:
    if not v:
        return []
    if isinstance(v, str):
        return [p.strip() for p in v.replace(";", ",").split(",") if p.strip()]
    return [str(x) for x in v if x]


def alert_from_doc(doc: Dict[str, Any]) -> Optional[Alert]:
    """
    Map a crawler document (Mongo or YAML) to an Alert. Accepts both the
    snake_case fields and the crawler's legacy camelCase (batchNumber, alertType).
    Returns None for rows that cannot be turned into an alert.
    """
    title = (doc.get("title") or "").strip()
    url = (doc.get("url") or doc.get("source_url") or "").strip()
    if not title or not url:
        return None
    excerpt = doc.get("excerpt") or doc.get("summary") or ""
    batches = _as_list(doc.get("batch_numbers")) + _as_list(doc.get("batchNumber"))
    sev_raw = str(doc.get("severity") or "MEDIUM").upper()
    try:
        severity = Severity(sev_raw)
    except ValueError:
        severity = Severity.MEDIUM
    date = doc.get("date") or doc.get("published_at")
    try:
        return Alert(
            id=str(doc.get("_id") or doc.get("id") or url),
            title=title,
            excerpt=excerpt,
            url=url,
            date=date.isoformat() if hasattr(date, "isoformat") else (str(date) if date else None),
            batch_numbers=batches,
            product_names=_as_list(doc.get("product_names")),
            manufacturer=doc.get("manufacturer") or None,
            severity=severity,
            active=bool(doc.get("active", True)),
            alert_type=doc.get("alert_type") or doc.get("alertType") or classify_alert_type(f"{title} {excerpt}"),
        )
    except ValidationError as e:
        log.warning("[corpus] skipping malformed alert %s: %s", url, e.errors()[:1])
        return None
