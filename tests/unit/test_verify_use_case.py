# tests/unit/test_verify_use_case.py
import asyncio

import pytest

from pharmacheck.config import Settings
from pharmacheck.container import ServiceContainer
from pharmacheck.domain.errors import CorpusUnavailableError, InvalidQueryError, ProviderUnavailableError
from pharmacheck.domain.models import ProductImage, RiskLevel
from pharmacheck.domain.ports import AlertCorpusPort, OcrPort, PageFetcherPort, SimilarityModel, TextAnalysisPort
from pharmacheck.domain.registry import DEFAULT_KNOWN_COUNTERFEITS
from pharmacheck.infra.repo.static_alert_repo import StaticAlertCorpus

REGISTRY_URL = DEFAULT_KNOWN_COUNTERFEITS[0].url
IMG = ProductImage(data=b"\x89PNG fake bytes", content_type="image/png", filename="pack.png")


class FakeOcr(OcrPort):
    def __init__(self, text):
        self.text = text
        self.calls = 0

    async def extract(self, image):
        self.calls += 1
        return self.text


class FailingOcr(OcrPort):
    async def extract(self, image):
        raise RuntimeError("tesseract crashed")


class SlowOcr(OcrPort):
    async def extract(self, image):
        await asyncio.sleep(5)
        return "too late"


class OfflineAnalysis(TextAnalysisPort):
    async def analyze(self, prompt):
        raise ProviderUnavailableError("text_analysis", "DEV_MODE on")


class ExplodingModel(SimilarityModel):
    async def similarity(self, a, b):
        raise RuntimeError("unexpected")


class PageStub(PageFetcherPort):
    def __init__(self, text):
        self.text = text

    async def fetch(self, url):
        return self.text


class DownCorpus(AlertCorpusPort):
    async def list_active_alerts(self):
        raise CorpusUnavailableError("mongo down")

    async def get_alert_by_id(self, alert_id):
        raise CorpusUnavailableError("mongo down")

    async def find_by_url(self, url):
        raise CorpusUnavailableError("mongo down")


def _uc(alerts=(), corpus=None, settings=None, **kw):
    return ServiceContainer.build(settings or Settings(), corpus or StaticAlertCorpus(alerts), **kw).verify_uc


def _verify(uc, *args, **kw):
    return asyncio.run(uc.verify(*args, **kw))


# ── known counterfeit ────────────────────────────────────────────
def test_postinor_registry_hit_with_empty_corpus():
    v = _verify(_uc(), "Postinor 2", "Emergency contraceptive pill", user_batch_number="T36184B")
    assert v.is_counterfeit
    assert v.risk_level is RiskLevel.CRITICAL
    assert v.confidence == 100
    assert v.known_counterfeit.batch == "T36184B"
    assert v.matched_alert.url == REGISTRY_URL
    assert REGISTRY_URL in v.sources


def test_registry_hit_uses_corpus_alert_at_same_url(postinor_alert):
    v = _verify(_uc([postinor_alert]), "Postinor 2", "Emergency contraceptive pill", user_batch_number="T36184B")
    assert v.matched_alert.id == postinor_alert.id


def test_registry_hit_from_ocr_text():
    ocr = FakeOcr("POSTINOR 2\nLevonorgestrel 0.75mg\nBatch No: T36184B\nEXP: 03/2027")
    v = _verify(_uc(ocr=ocr), "Postinor 2", "Emergency contraceptive pill", images=[IMG])
    assert v.is_counterfeit
    assert v.confidence == 100
    assert v.degraded == []


def test_registry_hit_survives_corpus_outage():
    v = _verify(_uc(corpus=DownCorpus()), "Postinor 2", "Emergency contraceptive pill", user_batch_number="T36184B")
    assert v.is_counterfeit
    assert v.matched_alert.id == "registry:T36184B"


# ── no match ─────────────────────────────────────────────────────
def test_empty_corpus_is_safe():
    v = _verify(_uc(), "Paracetamol 500mg", "Pain relief tablets")
    assert v.risk_level is RiskLevel.SAFE
    assert not v.is_counterfeit
    assert v.matched_alert is None
    assert 0 < v.confidence < 100
    assert v.degraded == []


def test_name_only_alert_does_not_match(labelling_notice):
    v = _verify(_uc([labelling_notice]), "Paracetamol 500mg", "Pain relief tablets")
    assert v.matched_alert is None
    assert not v.is_counterfeit
    assert v.risk_level is RiskLevel.SAFE


def test_recall_match_is_not_safe(amoxicillin_alert):
    v = _verify(_uc([amoxicillin_alert]), "Amoxicillin 500mg", "capsules, lot AMX2207", user_batch_number="AMX2207")
    assert v.matched_alert.id == amoxicillin_alert.id
    assert not v.is_counterfeit
    assert v.risk_level is not RiskLevel.SAFE
    # no page fetcher configured
    assert "alert_page" in v.degraded


def test_incidental_number_is_not_a_registry_hit():
    v = _verify(_uc(), "Postinor 2", "Pack of 184 tablets from the chemist")
    assert not v.is_counterfeit
    assert v.known_counterfeit is None
    assert v.risk_level is not RiskLevel.CRITICAL


def test_recall_page_without_counterfeit_wording(amoxicillin_alert):
    page = ("NAFDAC public notice: recall of Amoxicillin 500mg capsules, batch AMX2207. "
            "The recall covers all distributors. Pharmacies should return recall stock.")
    uc = _uc([amoxicillin_alert], fetcher=PageStub(page))
    v = _verify(uc, "Amoxicillin 500mg", "capsules, lot AMX2207", user_batch_number="AMX2207")
    assert v.matched_alert.id == amoxicillin_alert.id
    assert not v.is_counterfeit
    assert "confirmed counterfeit" not in v.summary
    assert "alert_page" not in v.degraded


# ── degraded providers ───────────────────────────────────────────
def test_ocr_failing_on_every_image():
    v = _verify(_uc(ocr=FailingOcr()), "Paracetamol 500mg", "Pain relief tablets", images=[IMG, IMG])
    assert "ocr" in v.degraded
    assert not v.is_counterfeit


def test_ocr_timeout():
    uc = _uc(ocr=SlowOcr(), settings=Settings(ocr_timeout_seconds=0.05))
    v = _verify(uc, "Paracetamol 500mg", "Pain relief tablets", images=[IMG])
    assert "ocr" in v.degraded


def test_images_without_ocr_engine():
    v = _verify(_uc(), "Paracetamol 500mg", "Pain relief tablets", images=[IMG])
    assert "ocr" in v.degraded


def test_ocr_limited_to_max_images():
    ocr = FakeOcr("Paracetamol 500mg Emzor")
    _verify(_uc(ocr=ocr, settings=Settings(ocr_max_images=2)), "Paracetamol 500mg", "Pain relief tablets",
            images=[IMG, IMG, IMG])
    assert ocr.calls == 2


def test_text_analysis_unavailable():
    v = _verify(_uc(text_analysis=OfflineAnalysis()), "Paracetamol 500mg", "Pain relief tablets")
    assert "text_analysis" in v.degraded
    assert v.risk_level is RiskLevel.SAFE


# ── total failure ────────────────────────────────────────────────
def test_corpus_unavailable_gives_degraded_verdict():
    v = _verify(_uc(corpus=DownCorpus()), "Paracetamol 500mg", "Pain relief tablets")
    assert v.risk_level is RiskLevel.MEDIUM_RISK
    assert v.confidence == 50
    assert not v.is_counterfeit
    assert "pipeline" in v.degraded
    assert v.recommendations[0].startswith("Verification degraded")


def test_unexpected_error_gives_degraded_verdict():
    uc = _uc(ocr=FakeOcr("Paracetamol 500mg Emzor"), similarity_model=ExplodingModel())
    v = _verify(uc, "Paracetamol 500mg", "Pain relief tablets", images=[IMG, IMG])
    assert v.risk_level is RiskLevel.MEDIUM_RISK
    assert "pipeline" in v.degraded


# ── input errors ─────────────────────────────────────────────────
@pytest.mark.parametrize("kwargs, field", [
    ({"product_name": "", "description": "Pain relief tablets"}, "product_name"),
    ({"product_name": "Paracetamol", "description": "abc"}, "description"),
    ({"product_name": "Paracetamol", "description": "Pain relief tablets", "user_batch_number": "T3618@4B"},
     "user_batch_number"),
    ({"product_name": "Paracetamol", "description": "Pain relief tablets", "images": [IMG] * 4}, "images"),
])
def test_invalid_input_raises(kwargs, field):
    with pytest.raises(InvalidQueryError) as ei:
        _verify(_uc(), **kwargs)
    assert ei.value.field == field
