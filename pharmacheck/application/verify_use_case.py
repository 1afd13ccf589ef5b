# pharmacheck/application/verify_use_case.py
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Sequence

from pharmacheck.application.commands import VerifyProductCommand
from pharmacheck.domain.entities import ProductMetadata, ScoringContext
from pharmacheck.domain.errors import CorpusUnavailableError, ProviderUnavailableError
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.models import Alert, KnownCounterfeitHit, ProductImage, ProductQuery, RiskLevel, Verdict
from pharmacheck.domain.ports import AlertCorpusPort, OcrPort, TextAnalysisPort
from pharmacheck.domain.registry import REGISTRY_BATCH_MIN_WEIGHT, KnownCounterfeitRegistry
from pharmacheck.domain.services.corpus_scorer import CorpusMatchScorer
from pharmacheck.domain.services.ensemble import EnsembleDecisionMaker
from pharmacheck.domain.services.heuristic_scorer import HeuristicScorer

logger = logging.getLogger("pharmacheck.verify")

DEFAULT_OCR_TIMEOUT = 12.0
DEFAULT_OCR_MAX_IMAGES = 2

ANALYSIS_PROMPT = (
    "Extract structured information from this pharmaceutical product text. "
    "Reply with JSON only, keys: drug_names (list), manufacturers (list), batch_numbers (list). "
    "Only list batch numbers that appear verbatim in the text.\n\nTEXT:\n{text}"
)


class VerifyProductUseCase:
    def __init__(
        self,
        corpus: AlertCorpusPort,
        extractor: TextExtractor,
        registry: KnownCounterfeitRegistry,
        corpus_scorer: CorpusMatchScorer,
        heuristic_scorer: HeuristicScorer,
        ensemble: Optional[EnsembleDecisionMaker] = None,
        ocr: Optional[OcrPort] = None,
        text_analysis: Optional[TextAnalysisPort] = None,
        ocr_timeout: float = DEFAULT_OCR_TIMEOUT,
        ocr_max_images: int = DEFAULT_OCR_MAX_IMAGES,
    ):
        self.corpus = corpus
        self.extractor = extractor
        self.registry = registry
        self.corpus_scorer = corpus_scorer
        self.heuristic_scorer = heuristic_scorer
        self.ensemble = ensemble or EnsembleDecisionMaker()
        self.ocr = ocr
        self.text_analysis = text_analysis
        self.ocr_timeout = ocr_timeout
        self.ocr_max_images = ocr_max_images

    # ─────────────────────────────────────────────────────────────
    # OCR + extraction
    # ─────────────────────────────────────────────────────────────
    async def _read_images(self, images: Sequence[ProductImage], degraded: List[str]) -> List[str]:
        """Sequential OCR, one timeout per image. A failed image contributes no text."""
        if not images:
            return []
        if self.ocr is None:
            degraded.append("ocr")
            return []
        texts: List[str] = []
        failed = 0
        for i, img in enumerate(images[: self.ocr_max_images], start=1):
            try:
                text = await asyncio.wait_for(self.ocr.extract(img), timeout=self.ocr_timeout)
            except asyncio.TimeoutError:
                logger.warning("[verify] OCR timed out on image %d after %.0fs", i, self.ocr_timeout)
                failed += 1
                continue
            except Exception as e:
                logger.warning("[verify] OCR failed on image %d: %s", i, e)
                failed += 1
                continue
            texts.append((text or "").strip())
        if failed:
            degraded.append("ocr")
        return texts

    async def _enrich(self, metadata: ProductMetadata, source_text: str, degraded: List[str]) -> ProductMetadata:
        if self.text_analysis is None or not source_text.strip():
            return metadata
        try:
            analysis = await self.text_analysis.analyze(ANALYSIS_PROMPT.format(text=source_text[:4000]))
        except ProviderUnavailableError as e:
            logger.warning("[verify] text analysis skipped: %s", e)
            degraded.append("text_analysis")
            return metadata
        return self.extractor.merge_analysis(metadata, analysis or {}, source_text)

    # ─────────────────────────────────────────────────────────────
    # verdict builders
    # ─────────────────────────────────────────────────────────────
    async def _registry_alert(self, hit: KnownCounterfeitHit) -> Alert:
        try:
            alert = await self.corpus.find_by_url(hit.url)
        except CorpusUnavailableError as e:
            logger.warning("[verify] corpus lookup for registry url failed: %s", e)
            alert = None
        return alert or self.registry.synthesize_alert(hit)

    async def _known_counterfeit_verdict(self, query: ProductQuery, hit: KnownCounterfeitHit, degraded: List[str]) -> Verdict:
        alert = await self._registry_alert(hit)
        return Verdict(
            is_counterfeit=True,
            risk_level=RiskLevel.CRITICAL,
            confidence=100.0,
            summary=(f"CRITICAL: this product matches a known counterfeit batch confirmed by the regulator. "
                     f"Product: {query.product_name}. Batch: {hit.batch}. Source: {hit.url}"),
            matched_alert=alert,
            recommendations=[
                "Do not use this product",
                "Return it to the place of purchase and report it to the regulator",
                "Contact a healthcare provider if it has already been taken",
            ],
            known_counterfeit=hit,
            risk_factors=["Confirmed counterfeit product", "Known counterfeit batch match"],
            sources=[hit.url],
            degraded=degraded,
        )

    @staticmethod
    def degraded_verdict(reason: str, degraded: List[str]) -> Verdict:
        return Verdict(
            is_counterfeit=False,
            risk_level=RiskLevel.MEDIUM_RISK,
            confidence=50.0,
            summary=f"Verification degraded: {reason}. The product could not be checked against regulator alerts.",
            recommendations=[
                "Verification degraded: try again later",
                "Buy only from licensed pharmacies and check the packaging carefully",
            ],
            degraded=degraded + ["pipeline"],
        )

    # ─────────────────────────────────────────────────────────────
    async def _run(self, query: ProductQuery, degraded: List[str]) -> Verdict:
        texts = await self._read_images(query.images, degraded)
        ocr_text = "\n".join(t for t in texts if t)
        metadata = self.extractor.extract(query.product_name, query.description, query.user_batch_number, ocr_text)
        source_text = "\n".join(s for s in (query.product_name, query.description, ocr_text) if s)
        metadata = await self._enrich(metadata, source_text, degraded)
        logger.info("[verify] name=%r batches=%s drugs=%s ocr_chars=%d",
                    query.product_name, [c.value for c in metadata.batch_candidates],
                    sorted(metadata.drug_names), len(ocr_text))

        hit = self.registry.check_known_fake(query.product_name, metadata.batches_at_least(REGISTRY_BATCH_MIN_WEIGHT))
        if hit is not None:
            return await self._known_counterfeit_verdict(query, hit, degraded)

        ctx = ScoringContext(query=query, metadata=metadata, image_texts=texts)
        ranker_res, heur_res = await asyncio.gather(
            self.corpus_scorer.evaluate(ctx),
            self.heuristic_scorer.evaluate(ctx),
            return_exceptions=True,
        )
        if isinstance(ranker_res, CorpusUnavailableError):
            logger.warning("[verify] alert corpus unavailable: %s", ranker_res)
            return self.degraded_verdict("alert corpus unavailable", degraded)
        for res in (ranker_res, heur_res):
            if isinstance(res, BaseException):
                raise res

        verdict = self.ensemble.combine(ranker_res, heur_res)
        if degraded:
            verdict = verdict.model_copy(update={"degraded": degraded + [d for d in verdict.degraded if d not in degraded]})
        return verdict

    async def verify(
        self,
        product_name: str,
        description: str,
        images: Optional[Sequence[ProductImage]] = None,
        user_batch_number: Optional[str] = None,
    ) -> Verdict:
        # InvalidQueryError propagates to the caller (client error)
        query = VerifyProductCommand(
            product_name=product_name or "",
            description=description or "",
            user_batch_number=user_batch_number,
            images=list(images or []),
        ).to_query()

        degraded: List[str] = []
        try:
            verdict = await self._run(query, degraded)
        except Exception:
            logger.exception("[verify] pipeline failed for %r", query.product_name)
            return self.degraded_verdict("internal error", degraded)
        logger.info("[verify] %r -> counterfeit=%s level=%s confidence=%.1f",
                    query.product_name, verdict.is_counterfeit, verdict.risk_level.value, verdict.confidence)
        return verdict
