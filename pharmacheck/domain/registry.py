# pharmacheck/domain/registry.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from pharmacheck.domain.models import Alert, KnownCounterfeitHit, Severity
from pharmacheck.domain.similarity import product_similarity

log = logging.getLogger("pharmacheck.registry")

REGISTRY_NAME_THRESHOLD = 0.7
REGISTRY_BATCH_MIN_WEIGHT = 0.6    # user, labelled and bare-pattern candidates only
MIN_CONTAINMENT_LEN = 5


def batch_matches(candidate: str, registered: str) -> bool:
    if candidate == registered:
        return True
    shorter, longer = sorted((candidate, registered), key=len)
    return len(shorter) >= MIN_CONTAINMENT_LEN and shorter in longer


@dataclass(frozen=True)
class KnownCounterfeit:
    product_name: str      # lower-case
    batch: str             # upper-case
    url: str
    title: str = ""


DEFAULT_KNOWN_COUNTERFEITS: List[KnownCounterfeit] = [
    KnownCounterfeit(
        product_name="postinor 2",
        batch="T36184B",
        url="https://nafdac.gov.ng/public-alert-no-027-2025-alert-on-confirmed-counterfeit-postinor2-levonorgestrel-0-75mg-in-nigeria/",
        title="Public Alert No. 027/2025 - Alert on Confirmed Counterfeit Postinor2 (Levonorgestrel 0.75mg) in Nigeria",
    ),
]


class KnownCounterfeitRegistry:
    """Read-only table of regulator-confirmed fakes. Shared across requests."""

    def __init__(self, entries: Optional[Iterable[KnownCounterfeit]] = None):
        self._entries = tuple(entries if entries is not None else DEFAULT_KNOWN_COUNTERFEITS)

    @classmethod
    def from_rows(cls, rows: Optional[List[dict]]) -> "KnownCounterfeitRegistry":
        if rows is None:
            return cls()
        entries = []
        for r in rows:
            try:
                entries.append(KnownCounterfeit(
                    product_name=str(r["product_name"]).strip().lower(),
                    batch=str(r["batch"]).strip().upper(),
                    url=str(r["url"]).strip(),
                    title=str(r.get("title") or ""),
                ))
            except (KeyError, TypeError) as e:
                log.warning("[registry] skipping malformed row %r: %s", r, e)
        return cls(entries)

    @property
    def entries(self) -> tuple:
        return self._entries

    def check_known_fake(self, product_name: str, candidate_batches: Iterable[str]) -> Optional[KnownCounterfeitHit]:
        batches = [b.strip().upper() for b in candidate_batches if b and b.strip()]
        if not batches:
            return None
        for e in self._entries:
            if product_similarity(product_name, e.product_name).score < REGISTRY_NAME_THRESHOLD:
                continue
            for b in batches:
                if batch_matches(b, e.batch):
                    log.info("[registry] known counterfeit hit %s / %s", e.product_name, e.batch)
                    return KnownCounterfeitHit(product_name=e.product_name, batch=e.batch, url=e.url)
        return None

    def is_known_batch(self, batch: str) -> bool:
        b = (batch or "").strip().upper()
        return bool(b) and any(b == e.batch for e in self._entries)

    def synthesize_alert(self, hit: KnownCounterfeitHit) -> Alert:
        """Alert stand-in used when the corpus has no record at the registry URL."""
        entry = next((e for e in self._entries if e.url == hit.url), None)
        title = (entry.title if entry and entry.title else f"Confirmed counterfeit {hit.product_name.title()}")
        return Alert(
            id=f"registry:{hit.batch}",
            title=title,
            excerpt=f"Counterfeit batch {hit.batch} confirmed by the regulator.",
            url=hit.url,
            batch_numbers=[hit.batch],
            product_names=[hit.product_name],
            severity=Severity.CRITICAL,
            alert_type="Safety Alert",
        )
