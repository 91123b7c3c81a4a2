"""
Tests for pipeline summaries and the small formatting helpers.
"""

from datetime import datetime, timezone

from dealdesk.models.deal import Deal, DealStage
from dealdesk.services.pipeline_analytics import format_money, summarize_pipeline, whole_days_between
from tests.conftest import make_deals


class TestSummarizePipeline:

    def test_totals(self):
        analytics = summarize_pipeline(make_deals())
        assert analytics.total_deals == 4
        assert analytics.total_pipeline_value == 1750000
        assert set(analytics.by_stage) == {s.value for s in DealStage}
        assert analytics.by_stage["underwriting"].total_value == 250000

    def test_zero_amount_deals_skip_average(self):
        deals = [
            Deal(id="a", deal_number="A", borrower_name="A", loan_amount=0, stage=DealStage.LEAD),
            Deal(id="b", deal_number="B", borrower_name="B", loan_amount=400, stage=DealStage.LEAD),
        ]
        analytics = summarize_pipeline(deals)
        assert analytics.average_deal_size == 400
        assert analytics.by_stage["lead"].count == 2

    def test_only_inactive_deals(self):
        deals = [Deal(id="a", deal_number="A", borrower_name="A", loan_amount=10, stage=DealStage.DECLINED)]
        analytics = summarize_pipeline(deals)
        assert analytics.total_pipeline_value == 0
        assert analytics.average_deal_size == 0


class TestHelpers:

    def test_whole_days_floor(self):
        start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert whole_days_between(start, datetime(2026, 1, 3, 11, 59, tzinfo=timezone.utc)) == 1

    def test_naive_start_is_utc(self):
        end = datetime(2026, 1, 3, 0, 0, tzinfo=timezone.utc)
        assert whole_days_between(datetime(2026, 1, 1), end) == 2

    def test_unknown_start(self):
        assert whole_days_between(None, datetime.now(timezone.utc)) is None

    def test_format_money(self):
        assert format_money(1250000) == "$1,250,000"
        assert format_money(99.5) == "$99.50"
