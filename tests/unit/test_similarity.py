# tests/unit/test_similarity.py
from pharmacheck.domain.similarity import (
    batch_similarity,
    name_variants,
    product_similarity,
    text_similarity,
)


def test_name_variants_cover_digit_forms():
    v = name_variants("Postinor 2")
    assert "postinor2" in v
    assert "postinor-2" in v
    assert "postinor ii" in v
    assert "postinor two" in v


def test_variant_contained_in_title_is_high():
    sim = product_similarity("Postinor 2", "Alert on Confirmed Counterfeit Postinor2 (Levonorgestrel 0.75mg)")
    assert sim.score >= 0.85
    assert sim.is_high


def test_containment_lifts_to_point_nine():
    sim = product_similarity("paracetamol", "Recall of paracetamol 500mg tablets")
    assert sim.score >= 0.9


def test_short_query_gets_no_boost():
    sim = product_similarity("abc", "abc tablets")
    assert sim.score == 0.5
    assert not sim.is_high


def test_empty_inputs():
    assert product_similarity("", "anything").score == 0.0
    assert product_similarity("something", None).score == 0.0


def test_batch_identity():
    for b in ("T36184B", "amx2207", "X1"):
        assert batch_similarity(b, b, "") == 1.0
    assert batch_similarity("t36184b", "T36184B") == 1.0


def test_batch_fuzzy_one_char_off():
    s = batch_similarity("T36184C", "T36184B")
    assert 0.7 <= s < 1.0


def test_batch_found_in_alert_text():
    assert batch_similarity("XYZ999", None, "Batch XYZ999 recalled nationwide") == 0.9
    # partial token does not count
    assert batch_similarity("XYZ99", None, "Batch XYZ999 recalled nationwide") == 0.0


def test_batch_empty():
    assert batch_similarity("", "T36184B") == 0.0
    assert batch_similarity(None, None, "text") == 0.0


def test_text_similarity():
    assert text_similarity("Emzor Paracetamol 500mg", "paracetamol 500mg emzor") == 1.0
    assert text_similarity("a b", "") == 0.0
