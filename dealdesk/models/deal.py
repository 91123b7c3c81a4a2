"""
Deal Domain Models
==================

Pydantic models for the deal pipeline records that tool handlers read and
mutate through the EntityStore collaborator.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dealdesk.models.sources import CanonicalCitation


class DealStage(str, Enum):
    """Fixed pipeline stages. Order is the pipeline order."""
    LEAD = "lead"
    APPLICATION = "application"
    UNDERWRITING = "underwriting"
    APPROVED = "approved"
    FUNDED = "funded"
    CLOSED = "closed"
    DECLINED = "declined"


# Stages that no longer count toward pipeline value
INACTIVE_STAGES = frozenset({DealStage.CLOSED, DealStage.DECLINED})


class ActivityType(str, Enum):
    NOTE = "note"
    CALL = "call"
    EMAIL = "email"
    DOCUMENT = "document"
    MEETING = "meeting"


class Deal(BaseModel):
    """A financing deal tracked in the pipeline."""
    id: str
    deal_number: str
    borrower_name: str
    borrower_contact: Optional[str] = None
    loan_amount: float = 0.0
    interest_rate: Optional[float] = None
    term_months: Optional[int] = None
    collateral_description: Optional[str] = None
    stage: DealStage = DealStage.LEAD
    priority: str = "medium"
    assigned_to: Optional[str] = None
    document_path: Optional[str] = None
    notes: Optional[str] = None
    expected_close_date: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DealActivity(BaseModel):
    """A call, meeting, note, email or document logged against a deal."""
    id: str
    deal_id: str
    type: ActivityType
    description: str
    performed_by: Optional[str] = None
    performed_at: datetime
    created_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None
    sources: List[CanonicalCitation] = Field(default_factory=list)


class StageTotals(BaseModel):
    count: int = 0
    total_value: float = 0.0


class PipelineAnalytics(BaseModel):
    """Whole-pipeline summary returned by get_pipeline_analytics."""
    total_deals: int
    total_pipeline_value: float
    average_deal_size: float
    by_stage: Dict[str, StageTotals]
