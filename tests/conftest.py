# tests/conftest.py
import pytest

from pharmacheck.domain.models import Alert, Severity
from pharmacheck.domain.registry import DEFAULT_KNOWN_COUNTERFEITS

POSTINOR_URL = DEFAULT_KNOWN_COUNTERFEITS[0].url


@pytest.fixture
def postinor_alert():
    return Alert(
        id="nafdac-027-2025",
        title="Public Alert No. 027/2025 - Alert on Confirmed Counterfeit Postinor2 (Levonorgestrel 0.75mg) in Nigeria",
        excerpt="NAFDAC is notifying the public of counterfeit Postinor 2 in circulation.",
        url=POSTINOR_URL,
        date="2025-05-14",
        batch_numbers=["T36184B"],
        product_names=["postinor 2"],
        manufacturer="Gedeon Richter",
        severity=Severity.CRITICAL,
        alert_type="Safety Alert",
    )


@pytest.fixture
def amoxicillin_alert():
    return Alert(
        id="nafdac-019-2025",
        title="Recall of Amoxicillin 500mg capsules batch AMX2207",
        excerpt="Substandard capsules failed dissolution testing.",
        url="https://nafdac.gov.ng/public-alert-no-019-2025-recall-of-amoxicillin-500mg-capsules/",
        date="2025-03-02",
        batch_numbers=["AMX2207"],
        product_names=["amoxicillin"],
        severity=Severity.HIGH,
        alert_type="Product Recall",
    )


@pytest.fixture
def labelling_notice():
    # not serious, no counterfeit wording, no batches
    return Alert(
        id="nafdac-notice-1",
        title="Notice on paracetamol labelling update",
        url="https://nafdac.gov.ng/notice-on-paracetamol-labelling/",
        product_names=["paracetamol"],
        severity=Severity.LOW,
        alert_type="Safety Notice",
    )
