"""
Pipeline analytics computed from the deals returned by the EntityStore.

Pipeline value and average deal size only count active deals (not closed
or declined); the average also skips zero-amount deals.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional

from dealdesk.models.deal import INACTIVE_STAGES, Deal, DealStage, PipelineAnalytics, StageTotals


def summarize_pipeline(deals: Iterable[Deal]) -> PipelineAnalytics:
    by_stage = {stage.value: StageTotals() for stage in DealStage}
    total_deals = 0
    pipeline_value = 0.0
    active_amounts = []

    for deal in deals:
        totals = by_stage[deal.stage.value]
        totals.count += 1
        totals.total_value += deal.loan_amount
        total_deals += 1
        if deal.stage not in INACTIVE_STAGES:
            pipeline_value += deal.loan_amount
            if deal.loan_amount > 0:
                active_amounts.append(deal.loan_amount)

    average = sum(active_amounts) / len(active_amounts) if active_amounts else 0.0
    return PipelineAnalytics(
        total_deals=total_deals,
        total_pipeline_value=pipeline_value,
        average_deal_size=average,
        by_stage=by_stage,
    )


def whole_days_between(start: Optional[datetime], end: datetime) -> Optional[int]:
    """Floor of elapsed days; None when start is unknown."""
    if start is None:
        return None
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return math.floor((end - start).total_seconds() / 86400)


def format_money(amount: float) -> str:
    if float(amount).is_integer():
        return f"${amount:,.0f}"
    return f"${amount:,.2f}"
