# pharmacheck/domain/services/corpus_scorer.py
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from pharmacheck.domain.alert_page import AlertPageAnalyzer
from pharmacheck.domain.entities import RankerVerdict, ScoringContext
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.ports import AlertCorpusPort, PageFetcherPort, Scorer
from pharmacheck.domain.rules import RuleBook
from pharmacheck.domain.services.candidate_ranker import CandidateRanker

log = logging.getLogger("pharmacheck.ranker")

NO_MATCH_BASE = 75.0
NO_MATCH_FLOOR = 25.0
SUSPICIOUS_TERM_PENALTY = 10.0
PRICE_TERM_PENALTY = 5.0
UNKNOWN_MANUFACTURER_PENALTY = 15.0
UNCONFIRMED_MATCH_CONFIDENCE = 50.0
UNCONFIRMED_DEGRADED_CONFIDENCE = 40.0
CONFIRMED_BONUS = 30.0
USER_BATCH_BONUS = 15.0
HIGH_SIMILARITY = 70.0
HIGH_PROBABILITY = 80
MEDIUM_PROBABILITY = 50

UNCONFIRMED_RECOMMENDATION = ("This product matches a regulator alert, but the evidence is insufficient to confirm "
                              "counterfeiting. Contact the regulator directly for verification.")
HIGH_ALERT_RECOMMENDATION = ("High alert: this product closely matches a regulator alert. Avoid it until the "
                             "manufacturer or the regulator has verified it.")


def no_match_penalty(product_name: str, description: str, rules: RuleBook) -> Tuple[float, List[str]]:
    """Uncertainty that remains when no alert matched, with the factors behind it."""
    text = f"{product_name} {description}".lower()
    penalty = 0.0
    factors: List[str] = []
    for term in rules.suspicious_terms:
        if re.search(rf"\b{re.escape(term)}\b", text):
            penalty += SUSPICIOUS_TERM_PENALTY
            factors.append(f"Suspicious marketing term: '{term}'")
    for term in rules.price_terms:
        if re.search(rf"\b{re.escape(term)}\b", text):
            penalty += PRICE_TERM_PENALTY
            factors.append(f"Price-related term: '{term}'")
    if not any(re.search(rf"\b{re.escape(m.lower())}\b", text) for m in rules.manufacturers):
        penalty += UNKNOWN_MANUFACTURER_PENALTY
        factors.append("Manufacturer not identified")
    return penalty, factors


def match_probability(confirmed: bool, page_confidence: float, similarity: float, ranker_score: float,
                      user_batch: bool) -> Tuple[int, str, List[str]]:
    """
    Probability (0-100) that the product is the one the matched alert is about,
    with its band (LOW/MEDIUM/HIGH) and the factors behind it.
    """
    score = (page_confidence + similarity + min(ranker_score, 100.0)) / 3
    factors: List[str] = []
    if confirmed:
        score += CONFIRMED_BONUS
        factors.append("Matches a confirmed regulator counterfeit alert")
    if user_batch:
        score += USER_BATCH_BONUS
        factors.append("Batch number provided for comparison")
    if similarity > HIGH_SIMILARITY:
        factors.append(f"High similarity to the alerted product ({similarity:.1f}%)")
    score = min(round(score), 100)
    band = "HIGH" if score >= HIGH_PROBABILITY else "MEDIUM" if score >= MEDIUM_PROBABILITY else "LOW"
    return score, band, factors


class CorpusMatchScorer(Scorer):
    """Opinion #1: does this product match a published regulator alert?"""

    name = "corpus_match"

    def __init__(
        self,
        corpus: AlertCorpusPort,
        ranker: CandidateRanker,
        extractor: TextExtractor,
        fetcher: Optional[PageFetcherPort] = None,
        rules: Optional[RuleBook] = None,
    ):
        self.corpus = corpus
        self.ranker = ranker
        self.extractor = extractor
        self.fetcher = fetcher
        self.rules = rules or ranker.rules

    async def evaluate(self, ctx: ScoringContext) -> RankerVerdict:
        # CorpusUnavailableError propagates; the use case turns it into a degraded verdict
        alerts = await self.corpus.list_active_alerts()
        candidates = self.ranker.rank(ctx.query, ctx.metadata, alerts)
        log.info("[ranker] %d alerts scanned, %d kept", len(alerts), len(candidates))

        if not candidates:
            penalty, factors = no_match_penalty(ctx.query.product_name, ctx.query.description, self.rules)
            conf = max(NO_MATCH_FLOOR, NO_MATCH_BASE - penalty)
            return RankerVerdict(
                is_counterfeit=False,
                confidence=conf,
                risk_factors=tuple(factors),
                recommendation="No regulator alert matches this product. Buy from licensed pharmacies and check the packaging.",
            )

        best = candidates[0]
        analyzer = AlertPageAnalyzer(self.fetcher, self.extractor, self.rules)
        detail = await analyzer.analyze(best.alert.url)
        confirmed = analyzer.is_confirmed_fake(best.alert, detail)
        name_pts, _ = self.ranker.name_score(ctx.query.product_name, best.alert)

        probability, band, prob_factors = match_probability(
            confirmed, detail.page_confidence, name_pts, best.score, bool(ctx.query.user_batch_number),
        )

        if confirmed:
            conf = detail.page_confidence
            rec = "Counterfeit product detected. Do not use it; report it to the regulator."
            factors = []
        else:
            conf = UNCONFIRMED_DEGRADED_CONFIDENCE if detail.failed else UNCONFIRMED_MATCH_CONFIDENCE
            rec = HIGH_ALERT_RECOMMENDATION if band == "HIGH" else UNCONFIRMED_RECOMMENDATION
            factors = ["Matches a regulator alert (not confirmed as counterfeit)"]
        factors += prob_factors
        factors.append(f"Match probability {probability}/100 ({band})")

        log.info("[ranker] best=%s score=%.1f confirmed=%s conf=%.0f probability=%d",
                 best.alert.id, best.score, confirmed, conf, probability)
        return RankerVerdict(
            is_counterfeit=confirmed,
            confidence=conf,
            matched_alert=best.alert,
            candidates=tuple(candidates),
            detail=detail,
            similarity=name_pts,
            risk_factors=tuple(factors),
            recommendation=rec,
            match_probability=probability,
            degraded=("alert_page",) if detail.failed else (),
        )
