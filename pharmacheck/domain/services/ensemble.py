# pharmacheck/domain/services/ensemble.py
from __future__ import annotations

import logging
from typing import List, Optional

from pharmacheck.domain.entities import HeuristicAssessment, RankerVerdict
from pharmacheck.domain.models import Alert, RiskLevel, Verdict

log = logging.getLogger("pharmacheck.ensemble")

HEURISTIC_WEIGHT = 0.6
RANKER_WEIGHT = 0.4

OVERRIDE_CONFIDENCE = 85.0
OVERRIDE_MIN_FACTORS = 2
FAIL_CLOSED_CONFIDENCE = 50.0
SAFE_RISK_SCORE = 15

OVERRULED_LOW = "A regulator alert names a similar product. Check your batch number against the alert before use."
OVERRULED_RECOMMENDATIONS = {
    RiskLevel.CRITICAL: "High alert: avoid this product until the manufacturer or the regulator has verified it.",
    RiskLevel.HIGH_RISK: "High alert: avoid this product until the manufacturer or the regulator has verified it.",
    RiskLevel.MEDIUM_RISK: "Medium caution: buy only from licensed sources and compare the pack with the regulator alert.",
}


def clamp(x: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, x))


def risk_score(ranker: RankerVerdict, heuristic: HeuristicAssessment) -> int:
    h_conf = heuristic.confidence * 100
    score = 0
    if ranker.is_counterfeit:
        score += 40
    if ranker.confidence > 80:
        score += 20
    if not heuristic.is_authentic:
        score += 30
    score += 5 * len(heuristic.risk_factors)
    if h_conf < 70:
        score += 10
    return score


def level_for(score: int) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH_RISK
    if score >= 30:
        return RiskLevel.MEDIUM_RISK
    return RiskLevel.LOW_RISK


class EnsembleDecisionMaker:
    """
    Combines the two independent opinions. Weighted vote and confidence blend,
    additive risk score, fail-closed on low-confidence ambiguity, and an
    override when the heuristic alone is confident the product is fake.
    """

    def combine(self, ranker: RankerVerdict, heuristic: HeuristicAssessment) -> Verdict:
        h_conf = heuristic.confidence * 100

        authentic_vote = (
            HEURISTIC_WEIGHT * (1.0 if heuristic.is_authentic else 0.0)
            + RANKER_WEIGHT * (0.0 if ranker.is_counterfeit else 1.0)
        )
        consensus_authentic = authentic_vote > 0.5
        confidence = clamp(HEURISTIC_WEIGHT * h_conf + RANKER_WEIGHT * ranker.confidence)

        score = risk_score(ranker, heuristic)
        level = level_for(score)
        if level is RiskLevel.LOW_RISK and score < SAFE_RISK_SCORE and ranker.matched_alert is None and consensus_authentic:
            level = RiskLevel.SAFE

        if confidence < FAIL_CLOSED_CONFIDENCE and not consensus_authentic:
            level = level.at_least(RiskLevel.HIGH_RISK)

        is_counterfeit = not consensus_authentic
        overridden = (
            h_conf > OVERRIDE_CONFIDENCE
            and not heuristic.is_authentic
            and len(heuristic.risk_factors) >= OVERRIDE_MIN_FACTORS
        )
        if overridden:
            level = RiskLevel.CRITICAL
            is_counterfeit = True

        anchor = self._anchor(ranker)
        suspect = is_counterfeit and anchor is None and heuristic.known_counterfeit is None
        if suspect:
            # no alert or registry entry to point at: keep the risk level, do not assert counterfeit
            is_counterfeit = False
        recs = self._recommendations(ranker, heuristic, is_counterfeit, level)
        if suspect:
            recs.insert(0, "Treat this product as suspect: strong warning signs, but no regulator alert names it")

        log.info("[ensemble] ranker=(%s, %.0f) heuristic=(%s, %.0f) risk=%d level=%s override=%s",
                 ranker.is_counterfeit, ranker.confidence, heuristic.is_authentic, h_conf,
                 score, level.value, overridden)

        sources = [a.url for a in [anchor] if a is not None]
        if heuristic.known_counterfeit is not None and heuristic.known_counterfeit.url not in sources:
            sources.append(heuristic.known_counterfeit.url)

        return Verdict(
            is_counterfeit=is_counterfeit,
            risk_level=level,
            confidence=round(confidence, 1),
            summary=self._summary(ranker, heuristic, is_counterfeit, level),
            matched_alert=anchor,
            recommendations=recs,
            known_counterfeit=heuristic.known_counterfeit,
            risk_factors=list(ranker.risk_factors) + list(heuristic.risk_factors),
            sources=sources,
            degraded=list(ranker.degraded) + list(heuristic.degraded),
        )

    @staticmethod
    def _anchor(ranker: RankerVerdict) -> Optional[Alert]:
        if ranker.matched_alert is not None:
            return ranker.matched_alert
        if ranker.candidates:
            return ranker.candidates[0].alert
        return None

    @staticmethod
    def _recommendations(ranker: RankerVerdict, heuristic: HeuristicAssessment,
                         is_counterfeit: bool, level: RiskLevel) -> List[str]:
        recs: List[str] = []
        if ranker.is_counterfeit and not is_counterfeit:
            # overruled by the vote: no counterfeit advice on a non-counterfeit verdict
            recs.append(OVERRULED_RECOMMENDATIONS.get(level, OVERRULED_LOW))
        elif ranker.recommendation:
            recs.append(ranker.recommendation)
        for r in heuristic.recommendations:
            if r not in recs:
                recs.append(r)
        return recs

    @staticmethod
    def _summary(ranker: RankerVerdict, heuristic: HeuristicAssessment, is_counterfeit: bool, level: RiskLevel) -> str:
        if ranker.matched_alert is not None:
            if ranker.is_counterfeit and not is_counterfeit:
                finding = "alert-page evidence indicates counterfeit, not upheld by the combined assessment"
            elif ranker.is_counterfeit:
                finding = "confirmed counterfeit"
            else:
                finding = "related alert, not confirmed"
            corpus = (f"Alert match: {finding} "
                      f"({ranker.matched_alert.title}), confidence {ranker.confidence:.0f}%.")
        else:
            corpus = f"Alert match: no matching regulator alert, confidence {ranker.confidence:.0f}%."
        h = (f"Heuristic analysis: {'authentic' if heuristic.is_authentic else 'not authentic'}, "
             f"confidence {heuristic.confidence * 100:.0f}%.")
        head = "Counterfeit risk detected." if is_counterfeit else f"Risk level {level.value}."
        parts = [head, corpus, h]
        if heuristic.risk_factors:
            parts.append("Risk factors: " + "; ".join(heuristic.risk_factors[:3]) + ".")
        return " ".join(parts)
