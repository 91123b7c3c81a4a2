"""
Tool Argument Models
====================

One pydantic model per tool. The LLM layer hands the dispatcher an untyped
JSON argument bag; parse_tool_arguments() validates it against the model
registered for the tool name and raises ToolArgumentError on mismatch, so
handlers only ever see typed, checked values.

Unknown extra keys are ignored: the confirmation handshake echoes its whole
pending payload (pendingAction, current_stage, issued_at) back verbatim.
"""

import re
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError, field_validator

from dealdesk.core.errors import ToolArgumentError
from dealdesk.models.deal import ActivityType, DealStage

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")


class GetDealsArgs(ToolArguments):
    stage_filter: Union[Literal["all"], DealStage] = "all"


class FindDealByNameArgs(ToolArguments):
    search_term: NonEmptyStr


class GetDealDetailsArgs(ToolArguments):
    deal_id: NonEmptyStr


class AddDealActivityArgs(ToolArguments):
    deal_id: NonEmptyStr
    type: ActivityType
    description: NonEmptyStr
    performed_by: Optional[str] = None
    performed_at: Optional[datetime] = None
    use_chat_sources: bool = True


class UpdateDealStageArgs(ToolArguments):
    deal_id: NonEmptyStr
    new_stage: DealStage
    reason: Optional[str] = None
    confirmed: bool = False
    # Echoed back from the pending-action payload on step 2
    current_stage: Optional[DealStage] = None
    issued_at: Optional[datetime] = None


class GetPipelineAnalyticsArgs(ToolArguments):
    deal_id: Optional[NonEmptyStr] = None


class GetDealActivitiesArgs(ToolArguments):
    deal_id: Optional[NonEmptyStr] = None
    limit: int = Field(default=20, ge=1, le=200)


class RetrieveSchematicArgs(ToolArguments):
    component_name: NonEmptyStr
    machine_model: Optional[str] = None
    additional_context: Optional[str] = None


class DraftEmailArgs(ToolArguments):
    to: List[NonEmptyStr] = Field(min_length=1)
    subject: NonEmptyStr
    summary: NonEmptyStr
    deal_id: Optional[NonEmptyStr] = None
    recipient_name: Optional[str] = None
    include_sources: bool = True

    @field_validator("to")
    @classmethod
    def _check_addresses(cls, value: List[str]) -> List[str]:
        invalid = [addr for addr in value if not EMAIL_PATTERN.match(addr)]
        if invalid:
            raise ValueError(f"Invalid email address(es): {', '.join(invalid)}")
        return value


class SearchCrmDealsArgs(ToolArguments):
    query: NonEmptyStr
    limit: int = Field(default=10, ge=1, le=100)


TOOL_ARGUMENT_MODELS: Dict[str, Type[ToolArguments]] = {
    "get_deals": GetDealsArgs,
    "find_deal_by_name": FindDealByNameArgs,
    "get_deal_details": GetDealDetailsArgs,
    "add_deal_activity": AddDealActivityArgs,
    "update_deal_stage": UpdateDealStageArgs,
    "get_pipeline_analytics": GetPipelineAnalyticsArgs,
    "get_deal_activities": GetDealActivitiesArgs,
    "retrieve_schematic": RetrieveSchematicArgs,
    "draft_email": DraftEmailArgs,
    "search_crm_deals": SearchCrmDealsArgs,
}


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_tool_arguments(tool_name: str, args: Optional[Mapping[str, Any]]) -> ToolArguments:
    """Validate a raw argument bag against the tool's model.

    Raises:
        ToolArgumentError: args is not an object or does not fit the model.
        KeyError: no model is registered for tool_name.
    """
    model = TOOL_ARGUMENT_MODELS[tool_name]
    if args is None:
        args = {}
    if not isinstance(args, Mapping):
        raise ToolArgumentError(
            f"Invalid arguments for {tool_name}: arguments must be a JSON object",
            context={"tool": tool_name},
        )
    try:
        return model.model_validate(dict(args))
    except ValidationError as e:
        raise ToolArgumentError(
            f"Invalid arguments for {tool_name}: {_format_errors(e)}",
            context={"tool": tool_name, "error_count": e.error_count()},
        ) from e
