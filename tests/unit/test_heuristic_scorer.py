# tests/unit/test_heuristic_scorer.py
import asyncio

import pytest

from pharmacheck.domain.entities import ImageFeatures, ProductInfo
from pharmacheck.domain.errors import ProviderUnavailableError
from pharmacheck.domain.models import ProductImage
from pharmacheck.domain.ports import ImageInspector, SimilarityModel
from pharmacheck.domain.registry import KnownCounterfeitRegistry
from pharmacheck.domain.rules import RuleBook
from pharmacheck.domain.services.heuristic_scorer import HeuristicScorer, batch_anomaly, cross_modal_score


class SharpInspector(ImageInspector):
    def inspect(self, image):
        return ImageFeatures(quality=0.9, layout=0.9, hologram=0.7)


class BrokenInspector(ImageInspector):
    def inspect(self, image):
        raise ValueError("cannot identify image file")


class OfflineModel(SimilarityModel):
    async def similarity(self, a, b):
        raise ProviderUnavailableError("embeddings", "DEV_MODE on")


class FixedModel(SimilarityModel):
    def __init__(self, value):
        self.value = value

    async def similarity(self, a, b):
        return self.value


def _scorer(**kw):
    return HeuristicScorer(KnownCounterfeitRegistry(), **kw)


def test_plain_product_is_authentic():
    info = ProductInfo(product_name="Paracetamol", description="Emzor paracetamol 500mg tablets")
    res = asyncio.run(_scorer().assess([], info))
    assert res.is_authentic
    assert res.confidence == pytest.approx(0.809, abs=0.01)
    assert res.visual_integrity_score == 0.75
    assert res.risk_factors == ()


def test_registry_short_circuit():
    info = ProductInfo(product_name="Postinor 2", batch_numbers=("T36184B",))
    res = asyncio.run(_scorer().assess([], info))
    assert not res.is_authentic
    assert res.confidence == 0.95
    assert res.known_counterfeit is not None
    assert res.known_counterfeit.batch == "T36184B"


def test_threshold_comes_from_rules():
    info = ProductInfo(product_name="Paracetamol", description="Emzor paracetamol 500mg tablets")
    res = asyncio.run(_scorer(rules=RuleBook(authenticity_threshold=0.85)).assess([], info))
    assert not res.is_authentic
    assert "Product authenticity could not be fully verified" in res.risk_factors


def test_suspicious_name_lowers_anomaly_score():
    res = asyncio.run(_scorer().assess([], ProductInfo(product_name="Herbal Magic Cure")))
    assert res.anomaly_score == pytest.approx(0.56)
    assert any("counterfeit listings" in f for f in res.risk_factors)


def test_batch_anomaly():
    score, ind = batch_anomaly("FAKE1")
    assert score >= 0.7
    assert "Batch contains suspicious keywords" in ind

    score, ind = batch_anomaly("T36184B", KnownCounterfeitRegistry())
    assert score == pytest.approx(0.9)
    assert ind[0].startswith("CRITICAL")

    score, ind = batch_anomaly("AB")
    assert "Batch number too short" in ind

    assert batch_anomaly("N123456") == (0.0, [])


def test_inspected_images():
    res = asyncio.run(_scorer(inspector=SharpInspector()).assess(
        [ProductImage(data=b"img")], ProductInfo(product_name="Paracetamol")))
    assert res.visual_integrity_score == pytest.approx((0.9 + 0.9 + 0.7) / 3)
    assert 0 in res.image_features
    assert res.packaging_quality == pytest.approx(0.9)


def test_unreadable_image():
    res = asyncio.run(_scorer(inspector=BrokenInspector()).assess(
        [ProductImage(data=b"not an image")], ProductInfo(product_name="Paracetamol")))
    assert res.visual_integrity_score == pytest.approx(0.3)
    assert "Failed to analyze image 1" in res.risk_factors


def test_embeddings_unavailable_falls_back_to_lexical():
    info = ProductInfo(
        product_name="Paracetamol",
        image_texts=("Paracetamol 500mg Emzor", "Paracetamol 500mg Emzor"),
    )
    res = asyncio.run(_scorer(similarity_model=OfflineModel()).assess([], info))
    assert res.degraded == ("embeddings",)
    assert res.text_consistency_score == pytest.approx(1.0)


def test_inconsistent_texts_flagged():
    info = ProductInfo(product_name="Paracetamol", image_texts=("Paracetamol Emzor", "Ibuprofen Fidson"))
    res = asyncio.run(_scorer(similarity_model=FixedModel(0.2)).assess([], info))
    assert res.text_consistency_score == pytest.approx(0.68)
    assert "Text content inconsistent across images" in res.risk_factors
    assert res.degraded == ()


def test_cross_modal_score_bounds():
    assert cross_modal_score(1.0, 1.0, 1.0) == pytest.approx(1.0)
    assert 0.0 <= cross_modal_score(0.0, 0.0, 1.0) <= 1.0
