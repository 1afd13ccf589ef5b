# tests/unit/test_alert_page.py
import asyncio

from pharmacheck.domain.alert_page import AlertPageAnalyzer, parse_alert_date
from pharmacheck.domain.errors import PageFetchError
from pharmacheck.domain.extraction import TextExtractor
from pharmacheck.domain.ports import PageFetcherPort

PAGE = (
    "NAFDAC alerts the public on counterfeit Postinor 2. Batch No: T36184B. "
    "The fake product is unsafe. Recall and seizure of the product have been ordered."
)


class FakeFetcher(PageFetcherPort):
    def __init__(self, text=PAGE, fail=False):
        self.text = text
        self.fail = fail
        self.calls = 0

    async def fetch(self, url):
        self.calls += 1
        if self.fail:
            raise PageFetchError(url, "HTTP 503")
        return self.text


def _analyzer(fetcher):
    return AlertPageAnalyzer(fetcher, TextExtractor())


def test_interpret_scores_risk_and_batches():
    info = _analyzer(None).interpret("https://nafdac.gov.ng/x/", PAGE)
    # counterfeit, fake, unsafe, recall
    assert info.risk_indicator_count == 4
    assert info.page_confidence == 90
    assert "T36184B" in info.affected_batches
    assert "recall" in info.regulatory_action_hits
    assert "seizure" in info.regulatory_action_hits
    assert info.tags == ("batch_info",)


def test_interpret_plain_page():
    info = _analyzer(None).interpret("https://nafdac.gov.ng/x/", "General information about storage of medicines.")
    assert info.page_confidence == 50
    assert info.tags == ("basic_match",)
    assert info.regulatory_action_hits == ""


def test_fetch_failure_is_soft():
    info = asyncio.run(_analyzer(FakeFetcher(fail=True)).analyze("https://nafdac.gov.ng/x/"))
    assert info.failed
    assert info.page_confidence == 20
    assert info.tags == ("error",)


def test_no_fetcher_is_soft():
    info = asyncio.run(_analyzer(None).analyze("https://nafdac.gov.ng/x/"))
    assert info.failed


def test_same_url_fetched_once():
    f = FakeFetcher()
    a = _analyzer(f)

    async def _run():
        await a.analyze("https://nafdac.gov.ng/x/")
        await a.analyze("https://nafdac.gov.ng/x/")

    asyncio.run(_run())
    assert f.calls == 1


def test_authentic_source(postinor_alert):
    a = _analyzer(None)
    assert a.is_authentic_source(postinor_alert)
    assert not a.is_authentic_source(postinor_alert.model_copy(update={"url": "http://nafdac.gov.ng/x/"}))
    assert not a.is_authentic_source(postinor_alert.model_copy(update={"url": "https://nafdac.gov.ng.example.com/x/"}))
    assert not a.is_authentic_source(postinor_alert.model_copy(update={"date": None}))


def test_confirmed_fake_needs_risk_and_action_words(postinor_alert):
    a = _analyzer(None)
    assert a.is_confirmed_fake(postinor_alert, a.interpret(postinor_alert.url, PAGE))

    no_action = "NAFDAC: counterfeit fake unsafe Postinor 2, Batch No: T36184B."
    info = a.interpret(postinor_alert.url, no_action)
    assert info.page_confidence > 75
    assert not a.is_confirmed_fake(postinor_alert, info)


def test_parse_alert_date():
    assert parse_alert_date("2025-05-14").year == 2025
    assert parse_alert_date("May 14, 2025").month == 5
    assert parse_alert_date("14/05/2025").day == 14
    assert parse_alert_date("sometime last year") is None
    assert parse_alert_date(None) is None


def test_recall_without_counterfeit_wording_is_not_confirmed(amoxicillin_alert):
    a = _analyzer(None)
    page = ("NAFDAC public notice: recall of Amoxicillin 500mg capsules, batch AMX2207. "
            "The recall covers all distributors. Pharmacies should return recall stock.")
    info = a.interpret(amoxicillin_alert.url, page)
    assert info.page_confidence == 90
    assert info.regulatory_action_hits == "recall"
    assert info.strong_indicator_hits == ""
    assert not a.is_confirmed_fake(amoxicillin_alert, info)


def test_keywords_match_whole_words():
    a = _analyzer(None)
    info = a.interpret("https://nafdac.gov.ng/x/", "Pay at the bank under the banner, then buy a bandage.")
    assert info.regulatory_action_hits == ""

    info = a.interpret("https://nafdac.gov.ng/x/", "The product was recalled and banned.")
    assert info.regulatory_action_hits == "recall, ban"
    assert info.risk_indicator_count == 1
