# pharmacheck/domain/services/heuristic_scorer.py
"""
Opinion #2: pattern/anomaly based authenticity, independent of the alert corpus.

Stages: registry short-circuit -> visual proxies -> text consistency ->
batch anomalies -> suspicious name -> cross-modal alignment -> weighted sum.
"""
from __future__ import annotations

import asyncio
import logging
import re
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from pharmacheck.domain.entities import HeuristicAssessment, ImageFeatures, ProductInfo, ScoringContext
from pharmacheck.domain.errors import ProviderUnavailableError
from pharmacheck.domain.models import ProductImage
from pharmacheck.domain.ports import ImageInspector, Scorer, SimilarityModel
from pharmacheck.domain.registry import KnownCounterfeitRegistry
from pharmacheck.domain.rules import RuleBook
from pharmacheck.domain.similarity import text_similarity

log = logging.getLogger("pharmacheck.heuristic")

WEIGHTS = {"visual": 0.25, "text": 0.35, "anomaly": 0.25, "multimodal": 0.15}

REGISTRY_CONFIDENCE = 0.95
NEUTRAL_VISUAL = 0.75          # no photos: neither good nor bad evidence
UNREADABLE_IMAGE = 0.3
SINGLE_TEXT_CONSISTENCY = 0.8
NO_BATCH_ANOMALY = 0.8
EVIDENCE_PENALTY = 0.1
SUSPICIOUS_NAME_FACTOR = 0.7

_BATCH_CHARS = re.compile(r"^[A-Z0-9\-/]+$")


def clamp(x: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, x))


def batch_anomaly(batch: str, registry: Optional[KnownCounterfeitRegistry] = None) -> Tuple[float, List[str]]:
    b = (batch or "").strip().upper()
    score = 0.0
    indicators: List[str] = []
    if registry is not None and registry.is_known_batch(b):
        indicators.append(f"CRITICAL: Batch {b} is a known counterfeit batch")
        score += 0.9
    if len(b) > 12:
        indicators.append("Unusually long batch number")
        score += 0.4
    if len(b) < 4:
        indicators.append("Batch number too short")
        score += 0.3
    if not _BATCH_CHARS.match(b):
        indicators.append("Batch contains invalid characters")
        score += 0.4
    if "FAKE" in b or "TEST" in b:
        indicators.append("Batch contains suspicious keywords")
        score += 0.7
    segments = re.split(r"[A-Z]", b)
    if len(segments) > 3 and not re.search(r"\d{4}", b):
        indicators.append("Irregular batch number pattern")
        score += 0.2
    return min(score, 1.0), indicators


def has_suspicious_name(product_name: str, patterns: Sequence[str]) -> bool:
    upper = (product_name or "").upper()
    return any(p.upper() in upper for p in patterns)


def cross_modal_score(visual: float, text: float, anomaly: float) -> float:
    hi = max(visual, text)
    correlation = min(visual, text) / hi if hi > 0 else 0.0
    scores = (visual, text, anomaly)
    alignment = 1.0 - (max(scores) - min(scores))
    return min(correlation * 0.4 + alignment * 0.6, 1.0)


class HeuristicScorer(Scorer):
    name = "heuristic"

    def __init__(
        self,
        registry: KnownCounterfeitRegistry,
        inspector: Optional[ImageInspector] = None,
        similarity_model: Optional[SimilarityModel] = None,
        rules: Optional[RuleBook] = None,
    ):
        self.registry = registry
        self.inspector = inspector
        self.similarity_model = similarity_model
        self.rules = rules or RuleBook()
        self._legit_batches = [re.compile(p) for p in self.rules.legit_batch_formats]

    async def evaluate(self, ctx: ScoringContext) -> HeuristicAssessment:
        return await self.assess(ctx.query.images, ctx.product_info())

    # ─────────────────────────────────────────────────────────────
    # stages
    # ─────────────────────────────────────────────────────────────
    async def visual_integrity(self, images: Sequence[ProductImage]) -> Tuple[float, Dict[int, ImageFeatures], List[str]]:
        """
        Proxy scores from the ImageInspector. These stand in for a real vision
        model and only reflect capture quality, not packaging authenticity.
        """
        if not images or self.inspector is None:
            return NEUTRAL_VISUAL, {}, []
        loop = asyncio.get_running_loop()
        total = 0.0
        features: Dict[int, ImageFeatures] = {}
        factors: List[str] = []
        for i, img in enumerate(images, start=1):
            try:
                f = await loop.run_in_executor(None, self.inspector.inspect, img)
            except Exception as e:
                log.warning("[heuristic] image %d could not be inspected: %s", i, e)
                factors.append(f"Failed to analyze image {i}")
                total += UNREADABLE_IMAGE
                continue
            features[i - 1] = f
            if f.quality < 0.6:
                factors.append(f"Low print quality in image {i}")
            if f.layout < 0.7:
                factors.append(f"Inconsistent layout in image {i}")
            if f.hologram < 0.5:
                factors.append(f"Hologram not detected or poor quality in image {i}")
            total += (f.quality + f.layout + f.hologram) / 3
        return total / len(images), features, factors

    async def _pair_similarity(self, a: str, b: str, degraded: List[str]) -> float:
        if self.similarity_model is not None and "embeddings" not in degraded:
            try:
                return clamp(await self.similarity_model.similarity(a, b))
            except ProviderUnavailableError as e:
                log.warning("[heuristic] %s, using lexical similarity", e)
                degraded.append("embeddings")
        return text_similarity(a, b)

    async def text_consistency(self, info: ProductInfo, degraded: List[str]) -> Tuple[float, List[str]]:
        factors: List[str] = []
        texts = [t for t in info.image_texts if t and t.strip()]
        if len(texts) < 2:
            score = SINGLE_TEXT_CONSISTENCY
        else:
            sims = [await self._pair_similarity(a, b, degraded) for a, b in combinations(texts, 2)]
            score = 0.6 + 0.4 * (sum(sims) / len(sims))
            if score < 0.8:
                factors.append("Text content inconsistent across images")

        if info.batch_numbers:
            if not any(p.match(b) for b in info.batch_numbers for p in self._legit_batches):
                score -= EVIDENCE_PENALTY
                factors.append("Batch number pattern suspicious or inconsistent")

        combined = " ".join(texts).lower()
        if combined:
            known = any(re.search(rf"\b{re.escape(m.lower())}\b", combined) for m in self.rules.manufacturers)
            named = info.product_name.lower() in combined
            if not known and not named:
                score -= EVIDENCE_PENALTY
                factors.append("Manufacturer information could not be validated")
        return clamp(score), factors

    def anomalies(self, info: ProductInfo) -> Tuple[float, List[str]]:
        indicators: List[str] = []
        if not info.batch_numbers:
            score = NO_BATCH_ANOMALY
        else:
            total = 0.0
            for b in info.batch_numbers:
                s, ind = batch_anomaly(b, self.registry)
                total += s
                indicators.extend(ind)
            score = max(0.0, 0.9 - total / len(info.batch_numbers))
        if has_suspicious_name(info.product_name, self.rules.suspicious_name_patterns):
            score *= SUSPICIOUS_NAME_FACTOR
            indicators.append("Product name contains a phrase common on counterfeit listings")
        return score, indicators

    # ─────────────────────────────────────────────────────────────
    async def assess(self, images: Sequence[ProductImage], info: ProductInfo) -> HeuristicAssessment:
        hit = self.registry.check_known_fake(info.product_name, info.batch_numbers)
        if hit is not None:
            log.info("[heuristic] registry short-circuit %s / %s", hit.product_name, hit.batch)
            return HeuristicAssessment(
                visual_integrity_score=0.2,
                text_consistency_score=0.1,
                anomaly_score=0.05,
                multimodal_score=0.1,
                is_authentic=False,
                confidence=REGISTRY_CONFIDENCE,
                risk_factors=(f"Known counterfeit product detected: {info.product_name} batch {hit.batch}",),
                recommendations=(
                    "This is a known counterfeit product confirmed by the regulator",
                    "Do not use this product",
                    "Contact healthcare authorities and dispose of the product safely",
                ),
                known_counterfeit=hit,
            )

        degraded: List[str] = []
        visual, features, vis_factors = await self.visual_integrity(images)
        text, text_factors = await self.text_consistency(info, degraded)
        anomaly, anomaly_factors = self.anomalies(info)
        multimodal = cross_modal_score(visual, text, anomaly)

        score = (
            visual * WEIGHTS["visual"]
            + text * WEIGHTS["text"]
            + anomaly * WEIGHTS["anomaly"]
            + multimodal * WEIGHTS["multimodal"]
        )
        threshold = self.rules.authenticity_threshold
        is_authentic = score > threshold

        factors = vis_factors + text_factors + anomaly_factors
        recs: List[str] = []
        if score < 0.45:
            factors.append("Strong evidence of counterfeiting detected")
            recs += ["Do not use this product", "Contact a healthcare provider immediately"]
        elif score < threshold:
            factors.append("Product authenticity could not be fully verified")
            recs += [
                "Compare with official product samples",
                "Contact the manufacturer for verification",
                "Consider consulting a pharmacist",
            ]
        elif score < 0.75:
            factors.append("Minor authenticity concerns detected")
            recs.append("Product appears authentic but verify batch details")

        log.info("[heuristic] visual=%.2f text=%.2f anomaly=%.2f multimodal=%.2f -> %.3f authentic=%s",
                 visual, text, anomaly, multimodal, score, is_authentic)
        return HeuristicAssessment(
            visual_integrity_score=visual,
            text_consistency_score=text,
            anomaly_score=anomaly,
            multimodal_score=multimodal,
            is_authentic=is_authentic,
            confidence=clamp(score),
            risk_factors=tuple(factors),
            recommendations=tuple(recs),
            image_features=features,
            degraded=tuple(degraded),
        )
