# pharmacheck/domain/alert_page.py
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Dict, Optional
from urllib.parse import urlparse

from pharmacheck.domain.entities import DetailedAlertInfo
from pharmacheck.domain.errors import PageFetchError
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.models import Alert
from pharmacheck.domain.ports import PageFetcherPort
from pharmacheck.domain.rules import RuleBook

log = logging.getLogger("pharmacheck.page")

BASE_CONFIDENCE = 50.0
FAILED_CONFIDENCE = 20.0
MAX_CONFIDENCE = 95.0
CONFIRM_THRESHOLD = 75.0
PAGE_BATCH_MIN_WEIGHT = 0.6
DESCRIPTION_CHARS = 500

_DATE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%d/%m/%Y", "%B %d, %Y", "%d %B %Y", "%b %d, %Y", "%d %b %Y")


def parse_alert_date(raw: Optional[str]) -> Optional[datetime]:
    s = (raw or "").strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def _count(keyword: str, text: str) -> int:
    # whole words with common inflections ("recalled", "banned")
    return len(re.findall(rf"\b{re.escape(keyword)}(?:s|es|d|ed|n|ned|ing)?\b", text))


class AlertPageAnalyzer:
    """
    Reads the alert's own page and turns it into DetailedAlertInfo.
    One instance per verification: the memo keeps a URL from being fetched twice.
    """

    def __init__(self, fetcher: Optional[PageFetcherPort], extractor: TextExtractor, rules: Optional[RuleBook] = None):
        self.fetcher = fetcher
        self.extractor = extractor
        self.rules = rules or extractor.rules
        self._memo: Dict[str, DetailedAlertInfo] = {}

    def _failed(self, url: str, reason: str) -> DetailedAlertInfo:
        return DetailedAlertInfo(
            url=url,
            full_description=f"Unable to retrieve detailed information from alert page ({reason}).",
            counterfeit_keyword_hits="N/A",
            regulatory_action_hits="N/A",
            strong_indicator_hits="N/A",
            page_confidence=FAILED_CONFIDENCE,
            tags=("error",),
        )

    def interpret(self, url: str, text: str) -> DetailedAlertInfo:
        low = (text or "").lower()
        batches = frozenset(
            c.value for c in self.extractor.extract_batches(text or "") if c.weight >= PAGE_BATCH_MIN_WEIGHT
        )
        risk_hits = [k for k in self.rules.risk_keywords if _count(k, low)]
        risk_count = sum(_count(k, low) for k in self.rules.risk_keywords)
        action_hits = [k for k in self.rules.action_keywords if _count(k, low)]
        strong_hits = [k for k in self.rules.strong_indicators if _count(k, low)]

        conf = BASE_CONFIDENCE
        if risk_count > 2:
            conf += 25
        elif risk_count > 0:
            conf += 10
        if batches:
            conf += 15
        conf = min(conf, MAX_CONFIDENCE)

        if batches:
            tags = ("batch_info",)
        elif risk_hits:
            tags = ("risk_indicators",)
        else:
            tags = ("basic_match",)

        desc = (text or "").strip()
        if len(desc) > DESCRIPTION_CHARS:
            desc = desc[:DESCRIPTION_CHARS] + "..."
        return DetailedAlertInfo(
            url=url,
            full_description=desc,
            affected_batches=batches,
            counterfeit_keyword_hits=", ".join(risk_hits),
            regulatory_action_hits=", ".join(action_hits),
            strong_indicator_hits=", ".join(strong_hits),
            risk_indicator_count=risk_count,
            page_confidence=conf,
            tags=tags,
        )

    async def analyze(self, url: str) -> DetailedAlertInfo:
        if url in self._memo:
            return self._memo[url]
        if self.fetcher is None:
            info = self._failed(url, "no page fetcher configured")
        else:
            try:
                text = await self.fetcher.fetch(url)
                info = self.interpret(url, text)
                log.info("[page] %s -> confidence=%.0f risk=%d batches=%d",
                         url, info.page_confidence, info.risk_indicator_count, len(info.affected_batches))
            except PageFetchError as e:
                log.warning("[page] fetch failed: %s", e)
                info = self._failed(url, "fetch failed")
            except Exception:
                log.exception("[page] unexpected error analysing %s", url)
                info = self._failed(url, "analysis error")
        self._memo[url] = info
        return info

    # ---------- confirmation ----------
    def is_authentic_source(self, alert: Alert, page_text: str = "") -> bool:
        """Regulator domain over https, official phrasing, parseable publication date."""
        parsed = urlparse(alert.url or "")
        host = (parsed.hostname or "").lower()
        domain = self.rules.regulator_domain
        if parsed.scheme != "https" or not (host == domain or host.endswith("." + domain)):
            return False
        text = f"{alert.full_text} {page_text}".lower()
        if not any(term in text for term in self.rules.official_terms):
            return False
        return parse_alert_date(alert.date) is not None

    def is_confirmed_fake(self, alert: Alert, detail: DetailedAlertInfo) -> bool:
        # a strong indicator and an action word are both required; a recall alone confirms nothing
        return (
            not detail.failed
            and detail.page_confidence > CONFIRM_THRESHOLD
            and bool(detail.strong_indicator_hits)
            and bool(detail.regulatory_action_hits)
            and self.is_authentic_source(alert, detail.full_description)
        )
