# tests/unit/test_candidate_ranker.py
from pharmacheck.domain.entities import EvidenceTag
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.models import Alert, ProductQuery
from pharmacheck.domain.services.candidate_ranker import CandidateRanker


def _query(name, desc, batch=None):
    q = ProductQuery(product_name=name, description=desc, user_batch_number=batch)
    return q, TextExtractor().extract(name, desc, batch)


def test_exact_title_and_batch_is_ranked(postinor_alert):
    q, md = _query("Postinor 2", "emergency contraceptive pill bought online", "T36184B")
    ranked = CandidateRanker().rank(q, md, [postinor_alert])
    assert len(ranked) == 1
    c = ranked[0]
    assert c.alert.id == postinor_alert.id
    assert c.has(EvidenceTag.EXACT_BATCH_MATCH)
    assert c.has(EvidenceTag.EXACT_PRODUCT_MATCH)
    assert c.has(EvidenceTag.COUNTERFEIT_INDICATOR)
    assert c.has(EvidenceTag.SERIOUS_ALERT_TYPE)
    assert c.score > 150


def test_name_only_match_is_rejected(labelling_notice):
    ranker = CandidateRanker()
    q, md = _query("Paracetamol", "pain relief tablets")
    c = ranker.score_alert(q, md, labelling_notice)
    assert c.score >= 90
    assert c.matched_evidence == [EvidenceTag.EXACT_PRODUCT_MATCH]
    assert not ranker.passes_gate(c)
    assert ranker.rank(q, md, [labelling_notice]) == []


def test_fuzzy_batch(postinor_alert):
    q, md = _query("Postinor 2", "emergency contraceptive pill", "T36184C")
    c = CandidateRanker().score_alert(q, md, postinor_alert)
    assert c.has(EvidenceTag.FUZZY_BATCH_MATCH)
    assert not c.has(EvidenceTag.EXACT_BATCH_MATCH)


def test_unrelated_product_scores_low(postinor_alert):
    q, md = _query("Vitamin C", "orange flavoured chewable")
    c = CandidateRanker().score_alert(q, md, postinor_alert)
    assert EvidenceTag.EXACT_PRODUCT_MATCH not in c.matched_evidence
    assert EvidenceTag.COUNTERFEIT_INDICATOR not in c.matched_evidence
    assert c.score < 60


def test_inactive_alerts_are_skipped(postinor_alert):
    q, md = _query("Postinor 2", "emergency contraceptive pill", "T36184B")
    inactive = postinor_alert.model_copy(update={"active": False})
    assert CandidateRanker().rank(q, md, [inactive]) == []


def test_top_two_by_score(postinor_alert):
    q, md = _query("Postinor 2", "emergency contraceptive pill", "T36184B")
    alerts = [postinor_alert.model_copy(update={"id": f"a{i}"}) for i in range(3)]
    assert len(CandidateRanker().rank(q, md, alerts)) == 2


def test_description_points(postinor_alert):
    ranker = CandidateRanker()
    pts = ranker.description_points("contains levonorgestrel tablets", postinor_alert.full_text.lower())
    assert pts == 4.0


def test_shares_manufacturer(postinor_alert):
    ranker = CandidateRanker()
    assert ranker.shares_manufacturer("Postinor 2 by Gedeon Richter", [], postinor_alert)
    assert not ranker.shares_manufacturer("Postinor 2", [], postinor_alert)


def test_serious_from_title_when_type_missing():
    alert = Alert(id="x", title="Recall of Ciprofloxacin 500mg tablets", url="https://nafdac.gov.ng/x/")
    assert CandidateRanker().is_serious(alert)
