# tests/unit/test_registry.py
from pharmacheck.domain.models import Severity
from pharmacheck.domain.registry import DEFAULT_KNOWN_COUNTERFEITS, KnownCounterfeitRegistry, batch_matches


def test_postinor_hit():
    reg = KnownCounterfeitRegistry()
    hit = reg.check_known_fake("Postinor 2", ["T36184B"])
    assert hit is not None
    assert hit.batch == "T36184B"
    assert hit.url == DEFAULT_KNOWN_COUNTERFEITS[0].url


def test_name_variant_and_lowercase_batch():
    reg = KnownCounterfeitRegistry()
    assert reg.check_known_fake("postinor-2", ["t36184b"]) is not None


def test_batch_containment_counts():
    reg = KnownCounterfeitRegistry()
    assert reg.check_known_fake("Postinor 2", ["T36184"]) is not None


def test_misses():
    reg = KnownCounterfeitRegistry()
    assert reg.check_known_fake("Postinor 2", ["X1234"]) is None
    assert reg.check_known_fake("Paracetamol", ["T36184B"]) is None
    assert reg.check_known_fake("Postinor 2", []) is None


def test_from_rows():
    reg = KnownCounterfeitRegistry.from_rows([
        {"product_name": "Coartem ", "batch": "f2301", "url": "https://nafdac.gov.ng/x/"},
        {"product_name": "missing batch and url"},
    ])
    assert len(reg.entries) == 1
    assert reg.entries[0].product_name == "coartem"
    assert reg.entries[0].batch == "F2301"
    assert KnownCounterfeitRegistry.from_rows(None).entries == tuple(DEFAULT_KNOWN_COUNTERFEITS)


def test_is_known_batch():
    reg = KnownCounterfeitRegistry()
    assert reg.is_known_batch("t36184b")
    assert not reg.is_known_batch("T36184")
    assert not reg.is_known_batch("")


def test_synthesize_alert():
    reg = KnownCounterfeitRegistry()
    hit = reg.check_known_fake("Postinor 2", ["T36184B"])
    alert = reg.synthesize_alert(hit)
    assert alert.url == hit.url
    assert alert.severity is Severity.CRITICAL
    assert "T36184B" in alert.batch_numbers
    assert alert.title == DEFAULT_KNOWN_COUNTERFEITS[0].title


def test_short_fragment_does_not_match_registered_batch():
    reg = KnownCounterfeitRegistry()
    assert reg.check_known_fake("Postinor 2", ["184"]) is None
    assert reg.check_known_fake("Postinor 2", ["6184B"]) is not None
    assert batch_matches("T36184B", "T36184B")
    assert not batch_matches("184", "T36184B")
