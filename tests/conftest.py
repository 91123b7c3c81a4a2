"""
Pytest configuration for DealDesk tool-core tests.

Provides in-memory collaborators (deal store, citation store), a small deal
pipeline, and a fixed clock so confirmation expiry and day counts are
deterministic.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

# Keep a developer's local .env / environment out of the tests
os.environ.setdefault("DEALDESK_LOG_JSON", "false")

import pytest

from dealdesk.config import Settings
from dealdesk.core.errors.registry import error_registry
from dealdesk.models.deal import Deal, DealActivity, DealStage
from dealdesk.models.sources import CanonicalCitation
from dealdesk.services.tool_dispatcher import ToolDispatcher

error_registry.load()

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return NOW


class InMemoryDealStore:
    """EntityStore backed by dicts; records every mutation."""

    def __init__(self, deals=(), activities=()) -> None:
        self.deals: Dict[str, Deal] = {d.id: d for d in deals}
        self.activities: List[DealActivity] = list(activities)
        self.updates: List[tuple] = []
        self.created: List[DealActivity] = []

    async def get_by_id(self, entity_id: str) -> Optional[Deal]:
        return self.deals.get(entity_id)

    async def list_all(self) -> List[Deal]:
        return list(self.deals.values())

    async def update(self, entity_id: str, partial: Mapping[str, Any]) -> Optional[Deal]:
        deal = self.deals.get(entity_id)
        if deal is None:
            return None
        updated = Deal.model_validate({**deal.model_dump(), **partial})
        self.deals[entity_id] = updated
        self.updates.append((entity_id, dict(partial)))
        return updated

    async def create_child_record(self, parent_id: str, payload: Mapping[str, Any]) -> DealActivity:
        activity = DealActivity.model_validate({
            "id": f"act-{len(self.activities) + 1}",
            "deal_id": parent_id,
            **payload,
        })
        self.activities.append(activity)
        self.created.append(activity)
        return activity

    async def list_children(self, parent_id: Optional[str] = None) -> List[DealActivity]:
        items = [a for a in self.activities if parent_id is None or a.deal_id == parent_id]
        return sorted(items, key=lambda a: a.performed_at, reverse=True)


class InMemoryCitationStore:
    """CitationStore that assigns ids; paths in fail_paths raise."""

    def __init__(self, fail_paths=()) -> None:
        self.attached: List[tuple] = []
        self.fail_paths = set(fail_paths)

    async def attach(self, record_id: str, citation: CanonicalCitation) -> CanonicalCitation:
        if citation.file_path in self.fail_paths:
            raise RuntimeError(f"disk full while writing {citation.file_path}")
        stored = citation.model_copy(update={"id": f"cit-{len(self.attached) + 1}"})
        self.attached.append((record_id, stored))
        return stored


def make_deals() -> List[Deal]:
    return [
        Deal(
            id="deal-1",
            deal_number="DL-2026-001",
            borrower_name="Acme Corp",
            loan_amount=250000,
            stage=DealStage.UNDERWRITING,
            assigned_to="Jordan Lee",
            collateral_description="CNC milling machine",
            created_at=datetime(2026, 2, 1, 9, 0, tzinfo=timezone.utc),
        ),
        Deal(
            id="deal-2",
            deal_number="DL-2026-002",
            borrower_name="Acme Corporation",
            loan_amount=1000000,
            stage=DealStage.LEAD,
            created_at=datetime(2026, 2, 20, 9, 0, tzinfo=timezone.utc),
        ),
        Deal(
            id="deal-3",
            deal_number="DL-2026-003",
            borrower_name="Ace Industries",
            loan_amount=500000,
            stage=DealStage.APPROVED,
            created_at=datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc),
        ),
        Deal(
            id="deal-4",
            deal_number="DL-2026-004",
            borrower_name="Zenith Logistics",
            loan_amount=300000,
            stage=DealStage.CLOSED,
            created_at=datetime(2025, 11, 3, 9, 0, tzinfo=timezone.utc),
        ),
    ]


def make_activities() -> List[DealActivity]:
    return [
        DealActivity(
            id="act-seed-1",
            deal_id="deal-1",
            type="call",
            description="Intro call with CFO",
            performed_by="Jordan Lee",
            performed_at=datetime(2026, 2, 3, 15, 0, tzinfo=timezone.utc),
        ),
        DealActivity(
            id="act-seed-2",
            deal_id="deal-1",
            type="document",
            description="Received equipment quote",
            performed_at=datetime(2026, 2, 25, 10, 0, tzinfo=timezone.utc),
        ),
        DealActivity(
            id="act-seed-3",
            deal_id="deal-3",
            type="note",
            description="Credit memo approved",
            performed_at=datetime(2026, 2, 10, 10, 0, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def deal_store():
    return InMemoryDealStore(make_deals(), make_activities())


@pytest.fixture
def citation_store():
    return InMemoryCitationStore()


@pytest.fixture
def test_settings():
    return Settings()


@pytest.fixture
def dispatcher(deal_store, citation_store, test_settings):
    return ToolDispatcher(
        entity_store=deal_store,
        citation_store=citation_store,
        config=test_settings,
        clock=fixed_clock,
    )
