# pharmacheck/domain/services/candidate_ranker.py
from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from pharmacheck.domain.entities import EvidenceTag, MatchCandidate, ProductMetadata
from pharmacheck.domain.extraction import classify_alert_type
from pharmacheck.domain.models import Alert, ProductQuery, Severity
from pharmacheck.domain.rules import RuleBook
from pharmacheck.domain.similarity import batch_similarity, product_similarity

log = logging.getLogger("pharmacheck.ranker")

RANKER_BATCH_MIN_WEIGHT = 0.4

STRONG_TAGS = {
    EvidenceTag.EXACT_PRODUCT_MATCH,
    EvidenceTag.EXACT_BATCH_MATCH,
    EvidenceTag.MANUFACTURER_INFO,
}
SERIOUS_TYPES = {"Product Recall", "Safety Alert"}

_WORD = re.compile(r"[a-z0-9\-]+")


def _contains_word(needle: str, haystack: str) -> bool:
    return re.search(rf"\b{re.escape(needle)}\b", haystack) is not None


class CandidateRanker:
    """
    Scores every active alert against the query with additive evidence points,
    then applies the minimum-evidence gate. Order of the scoring steps matters:
    the counterfeit indicator only counts when the name signal counts.
    """

    def __init__(self, rules: Optional[RuleBook] = None):
        self.rules = rules or RuleBook()
        self.w = self.rules.ranker

    # ---------- individual signals ----------
    def name_score(self, product_name: str, alert: Alert) -> Tuple[float, bool]:
        best, high = 0.0, False
        for target in (alert.title, *sorted(alert.product_names)):
            sim = product_similarity(product_name, target, cutoff=self.rules.name_cutoff)
            if sim.score > best:
                best, high = sim.score, sim.is_high
        return best * 100.0, high

    def description_points(self, description: str, alert_text: str) -> float:
        words: List[str] = []
        for w in _WORD.findall((description or "").lower()):
            if len(w) > 4 and w not in words and _contains_word(w, alert_text):
                words.append(w)
        counted = words[: int(self.w["description_max_words"])]
        return len(counted) * self.w["description_word"]

    def best_batch_similarity(self, batches: Sequence[str], alert: Alert) -> float:
        if not batches:
            return 0.0
        targets: Iterable[Optional[str]] = sorted(alert.batch_numbers) or [None]
        best = 0.0
        for b in batches:
            for t in targets:
                best = max(best, batch_similarity(b, t, alert.full_text, cutoff=self.rules.batch_cutoff))
                if best >= 1.0:
                    return best
        return best

    def shares_manufacturer(self, query_text: str, mentions: Iterable[str], alert: Alert) -> bool:
        q = query_text.lower()
        a = f"{alert.full_text} {alert.manufacturer or ''}".lower()
        for manu in self.rules.manufacturers:
            m = manu.lower()
            if _contains_word(m, q) and _contains_word(m, a):
                return True
        if alert.manufacturer:
            am = alert.manufacturer.lower().strip()
            for mention in mentions:
                mm = mention.lower().strip()
                if len(mm) > 3 and (mm in am or am in mm):
                    return True
        return False

    def is_serious(self, alert: Alert) -> bool:
        kind = alert.alert_type or classify_alert_type(alert.full_text)
        return kind in SERIOUS_TYPES or alert.severity in (Severity.HIGH, Severity.CRITICAL)

    # ---------- scoring ----------
    def score_alert(self, query: ProductQuery, metadata: ProductMetadata, alert: Alert) -> MatchCandidate:
        tags: List[EvidenceTag] = []
        total = 0.0
        alert_text = alert.full_text.lower()

        name_pts, name_high = self.name_score(query.product_name, alert)
        if name_pts > self.w["name_floor"]:
            total += name_pts
            tags.append(EvidenceTag.EXACT_PRODUCT_MATCH if name_high else EvidenceTag.SEMANTIC_PRODUCT_MATCH)
            if any(_contains_word(t, alert_text) for t in self.rules.counterfeit_terms):
                total += self.w["counterfeit_indicator"]
                tags.append(EvidenceTag.COUNTERFEIT_INDICATOR)

        desc_pts = self.description_points(query.description, alert_text)
        if desc_pts > 0:
            total += desc_pts
            tags.append(EvidenceTag.DESCRIPTION_KEYWORDS)

        batch_sim = self.best_batch_similarity(metadata.batches_at_least(RANKER_BATCH_MIN_WEIGHT), alert)
        if batch_sim > 0:
            total += batch_sim * self.w["batch_multiplier"]
            if batch_sim >= 0.9:
                total += self.w["exact_batch_bonus"]
                tags.append(EvidenceTag.EXACT_BATCH_MATCH)
            elif batch_sim >= 0.7:
                total += self.w["fuzzy_batch_bonus"]
                tags.append(EvidenceTag.FUZZY_BATCH_MATCH)
            else:
                tags.append(EvidenceTag.WEAK_BATCH_MATCH)

        query_text = " ".join(s for s in (query.product_name, query.description, metadata.detected_text) if s)
        if self.shares_manufacturer(query_text, metadata.manufacturer_mentions, alert):
            total += self.w["manufacturer"]
            tags.append(EvidenceTag.MANUFACTURER_INFO)

        if self.is_serious(alert):
            total += self.w["serious_alert"]
            tags.append(EvidenceTag.SERIOUS_ALERT_TYPE)

        return MatchCandidate(alert=alert, score=total, matched_evidence=tags)

    def passes_gate(self, c: MatchCandidate) -> bool:
        tags = set(c.matched_evidence)
        if c.score <= self.w["min_score"]:
            return False
        # one signal alone is not corroboration unless it is a batch hit
        if len(tags) == 1 and EvidenceTag.EXACT_BATCH_MATCH not in tags:
            return False
        strong = bool(tags & STRONG_TAGS)
        exact_batch = EvidenceTag.EXACT_BATCH_MATCH in tags
        threat = bool(tags & {EvidenceTag.COUNTERFEIT_INDICATOR, EvidenceTag.EXACT_PRODUCT_MATCH})
        return (
            strong
            or exact_batch
            or (c.score > self.w["strong_score"] and threat)
            or (c.score > self.w["multi_tag_score"] and len(tags) >= 2)
        )

    def rank(self, query: ProductQuery, metadata: ProductMetadata, alerts: Iterable[Alert]) -> List[MatchCandidate]:
        kept: List[MatchCandidate] = []
        for alert in alerts:
            if not alert.active:
                continue
            c = self.score_alert(query, metadata, alert)
            if self.passes_gate(c):
                log.info("[ranker] kept %s score=%.1f tags=%s",
                         alert.id, c.score, ",".join(t.value for t in c.matched_evidence))
                kept.append(c)
            elif c.score > self.w["min_score"]:
                log.info("[ranker] rejected %s score=%.1f tags=%s (insufficient corroboration)",
                         alert.id, c.score, ",".join(t.value for t in c.matched_evidence))
        kept.sort(key=lambda c: c.score, reverse=True)
        return kept[: int(self.w["top_n"])]
