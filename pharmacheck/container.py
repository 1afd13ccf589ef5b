# pharmacheck/container.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pharmacheck.application.verify_use_case import VerifyProductUseCase
from pharmacheck.config import Settings, load_known_counterfeits, load_rulebook
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.ports import (
    AlertCorpusPort, ImageInspector, OcrPort, PageFetcherPort, SimilarityModel, TextAnalysisPort,
)
from pharmacheck.domain.registry import KnownCounterfeitRegistry
from pharmacheck.domain.rules import RuleBook
from pharmacheck.domain.services.candidate_ranker import CandidateRanker
from pharmacheck.domain.services.corpus_scorer import CorpusMatchScorer
from pharmacheck.domain.services.ensemble import EnsembleDecisionMaker
from pharmacheck.domain.services.heuristic_scorer import HeuristicScorer

log = logging.getLogger("pharmacheck.container")


@dataclass
class ServiceContainer:
    """
    Everything a request needs, built once at startup and shared read-only.
    Adapters with open connections are closed in aclose().
    """
    settings: Settings
    rules: RuleBook
    registry: KnownCounterfeitRegistry
    corpus: AlertCorpusPort
    verify_uc: VerifyProductUseCase
    ocr: Optional[OcrPort] = None
    text_analysis: Optional[TextAnalysisPort] = None
    similarity_model: Optional[SimilarityModel] = None
    fetcher: Optional[PageFetcherPort] = None
    closeables: List[Any] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        settings: Settings,
        corpus: AlertCorpusPort,
        *,
        rules: Optional[RuleBook] = None,
        registry: Optional[KnownCounterfeitRegistry] = None,
        ocr: Optional[OcrPort] = None,
        text_analysis: Optional[TextAnalysisPort] = None,
        similarity_model: Optional[SimilarityModel] = None,
        fetcher: Optional[PageFetcherPort] = None,
        inspector: Optional[ImageInspector] = None,
        closeables: Optional[List[Any]] = None,
    ) -> "ServiceContainer":
        """Wire the domain services around the given adapters. Tests call this directly with fakes."""
        rules = rules or RuleBook()
        registry = registry or KnownCounterfeitRegistry()
        extractor = TextExtractor(rules)
        uc = VerifyProductUseCase(
            corpus=corpus,
            extractor=extractor,
            registry=registry,
            corpus_scorer=CorpusMatchScorer(corpus, CandidateRanker(rules), extractor, fetcher, rules),
            heuristic_scorer=HeuristicScorer(registry, inspector, similarity_model, rules),
            ensemble=EnsembleDecisionMaker(),
            ocr=ocr,
            text_analysis=text_analysis,
            ocr_timeout=settings.ocr_timeout_seconds,
            ocr_max_images=settings.ocr_max_images,
        )
        return cls(
            settings=settings,
            rules=rules,
            registry=registry,
            corpus=corpus,
            verify_uc=uc,
            ocr=ocr,
            text_analysis=text_analysis,
            similarity_model=similarity_model,
            fetcher=fetcher,
            closeables=list(closeables or []),
        )

    @classmethod
    def from_env(cls, settings: Optional[Settings] = None) -> "ServiceContainer":
        # adapters imported here so the domain can be used without the infra stack installed
        from pharmacheck.infra.cache.redis_cache import CachedAlertCorpus, RedisCache
        from pharmacheck.infra.llm.openai_adapter import OpenAITextAnalysis
        from pharmacheck.infra.llm.openai_embedder import OpenAIEmbedder
        from pharmacheck.infra.ocr.tesseract_adapter import TesseractAdapter
        from pharmacheck.infra.repo.mongo_alert_repo import MongoAlertCorpus
        from pharmacheck.infra.repo.static_alert_repo import StaticAlertCorpus
        from pharmacheck.infra.vision.pillow_inspector import PillowImageInspector
        from pharmacheck.infra.web.alert_page_fetcher import HttpxAlertPageFetcher

        s = settings or Settings.from_env()
        rules = load_rulebook(s.rules_cfg, s.authenticity_threshold)
        registry = KnownCounterfeitRegistry.from_rows(load_known_counterfeits(s.known_fakes_cfg))

        if s.alert_corpus == "static":
            corpus: AlertCorpusPort = StaticAlertCorpus.from_yaml(s.alerts_file)
        else:
            corpus = MongoAlertCorpus(s.mongo_uri, s.mongo_db, s.mongo_alerts_coll)
        if s.redis_url:
            corpus = CachedAlertCorpus(corpus, RedisCache.from_env(s.redis_url), ttl=s.alert_cache_ttl)

        text_analysis = OpenAITextAnalysis(api_key=s.openai_api_key or "", model=s.llm_model, dev_mode=s.dev_mode)
        embedder = OpenAIEmbedder(model=s.embed_model, api_key=s.openai_api_key or "", dev_mode=s.dev_mode)
        fetcher = HttpxAlertPageFetcher(timeout=s.page_fetch_timeout)

        log.info("[container] corpus=%s redis=%s openai=%s dev_mode=%s",
                 s.alert_corpus, bool(s.redis_url), bool(s.openai_api_key), s.dev_mode)
        return cls.build(
            s, corpus,
            rules=rules,
            registry=registry,
            ocr=TesseractAdapter(),
            text_analysis=text_analysis,
            similarity_model=embedder,
            fetcher=fetcher,
            inspector=PillowImageInspector(),
            closeables=[corpus, text_analysis, embedder, fetcher],
        )

    async def aclose(self) -> None:
        for c in self.closeables:
            close = getattr(c, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception:
                log.exception("[container] error closing %s", type(c).__name__)
