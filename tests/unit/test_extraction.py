# tests/unit/test_extraction.py
from pharmacheck.domain.extraction import TextExtractor, classify_alert_type
from pharmacheck.domain.rules import RuleBook


def test_labelled_batch_and_year_excluded():
    ex = TextExtractor()
    found = ex.extract_batches("Batch No: T36184B expires 2026")
    assert found[0].value == "T36184B"
    assert found[0].weight == 0.9
    assert found[0].rule == "batch_number"
    assert "2026" not in [c.value for c in found]


def test_dosage_is_not_a_batch():
    ex = TextExtractor()
    md = ex.extract("Paracetamol 500mg", "Pain relief tablets")
    assert md.batch_candidates == ()


def test_user_batch_comes_first():
    ex = TextExtractor()
    md = ex.extract("Postinor 2", "emergency pill, lot T36184B", user_batch="t36184b")
    first = md.batch_candidates[0]
    assert (first.value, first.weight, first.rule) == ("T36184B", 1.0, "user")
    # not duplicated by the lot rule
    assert [c.value for c in md.batch_candidates].count("T36184B") == 1


def test_bare_code_is_case_sensitive():
    ex = TextExtractor()
    assert "AMX2207" in [c.value for c in ex.extract_batches("capsules AMX2207 from market")]
    weights = {c.value: c.weight for c in ex.extract_batches("capsules amx2207 from market")}
    # lower-case bare token only reaches the weak generic rule
    assert weights.get("AMX2207") == 0.2


def test_batches_at_least():
    ex = TextExtractor()
    md = ex.extract("Amoxil", "capsules amx2207 from market", user_batch="N123456")
    assert md.batches_at_least(0.6) == ["N123456"]


def test_drug_names_manufacturers_expiry():
    ex = TextExtractor()
    text = "Postinor 2 (levonorgestrel 0.75mg). Manufactured by Gedeon Richter, Hungary. EXP: 12/2026"
    assert set(ex.extract_drug_names(text)) == {"levonorgestrel", "postinor"}
    assert "gedeon richter" in ex.extract_manufacturers(text)
    assert "12/2026" in ex.extract_expiry_dates(text)


def test_merge_analysis_keeps_only_literal_batches():
    ex = TextExtractor()
    md = ex.extract("Amoxil", "capsules from a pharmacy")
    merged = ex.merge_analysis(
        md,
        {"batch_numbers": ["AMX2207", "ZZZ999"], "drug_names": ["Amoxicillin"], "manufacturers": ["GSK"]},
        "Amoxil capsules lot amx2207",
    )
    values = {c.value: c.rule for c in merged.batch_candidates}
    assert values == {"AMX2207": "text_analysis"}
    assert "amoxicillin" in merged.drug_names
    assert "gsk" in merged.manufacturer_mentions


def test_rules_drive_the_cascade():
    rules = RuleBook.from_dict({
        "batch_rules": [{"name": "ref", "pattern": r"\bref\s*([A-Z0-9]{4,8})", "weight": 0.8}],
    })
    found = TextExtractor(rules).extract_batches("ref QX7781 and batch: AB1234")
    assert [(c.value, c.rule) for c in found] == [("QX7781", "ref")]


def test_classify_alert_type():
    assert classify_alert_type("Recall of Amoxicillin capsules") == "Product Recall"
    assert classify_alert_type("Public alert on fake Postinor") == "Safety Alert"
    assert classify_alert_type("NAFDAC ban on unregistered syrups") == "Regulatory Action"
    assert classify_alert_type("Labelling update") == "Safety Notice"
