"""
DealDesk Tool Core Configuration
================================

PURPOSE:
    Pydantic-Settings based configuration for the tool-call dispatch core.
    All settings can be overridden via environment variables (DEALDESK_ prefix)
    or a local .env file.

NOTES:
    activity_relevance_threshold is read on every add_deal_activity call,
    so updating settings at runtime takes effect on the next call.
"""

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime knobs for dispatch, confirmation and citation handling."""

    app_name: str = "dealdesk"

    # Citation aggregation: sources scored below this are not attached
    activity_relevance_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    # Confirmation handshake: a pending action older than this is refused
    confirmation_ttl_seconds: int = Field(default=300, gt=0)

    # Every storage/email/CRM call is bounded by this timeout
    collaborator_timeout_s: float = Field(default=15.0, ge=10.0, le=30.0)

    # Calls beyond this in one model turn are refused
    max_tool_calls_per_turn: int = Field(default=10, ge=1)

    # find_deal_by_name returns at most this many matches
    find_deal_max_results: int = Field(default=5, ge=1)

    # Schematic lookup service (retrieve_schematic)
    schematic_service_url: str = "http://localhost:8080"
    schematic_timeout_s: float = Field(default=30.0, ge=10.0, le=30.0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"
        env_prefix = "DEALDESK_"


settings = Settings()
