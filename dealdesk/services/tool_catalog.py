"""
Tool Catalog: declarative registry of deal tools and their parameter contracts.

The catalog is handed to the LLM integration layer (rendered in OpenAI
function-calling or Anthropic tool-use format) and consulted by the
dispatcher for required-argument presence checks. It makes no decisions.

update_deal_stage is marked requires_confirmation: it is routed through the
ConfirmationGate, and its `confirmed` flag is optional so that the first,
unconfirmed call produces the confirmation prompt.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from dealdesk.core.errors import DuplicateToolError
from dealdesk.models.deal import ActivityType, DealStage

logger = logging.getLogger(__name__)

STAGE_VALUES = [s.value for s in DealStage]
ACTIVITY_TYPE_VALUES = [t.value for t in ActivityType]


@dataclass(frozen=True)
class ParameterSpec:
    """Contract for a single tool parameter."""
    type: str
    description: str = ""
    required: bool = False
    enum: Optional[Sequence[str]] = None
    items: Optional[Dict[str, Any]] = None

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type}
        if self.enum is not None:
            schema["enum"] = list(self.enum)
        if self.items is not None:
            schema["items"] = dict(self.items)
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(frozen=True)
class ToolSchema:
    name: str
    description: str
    parameters: Dict[str, ParameterSpec] = field(default_factory=dict)
    requires_confirmation: bool = False

    @property
    def required(self) -> List[str]:
        return [name for name, spec in self.parameters.items() if spec.required]

    def to_json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {name: spec.to_json_schema() for name, spec in self.parameters.items()},
            "required": self.required,
        }

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_json_schema(),
            },
        }

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.to_json_schema(),
        }


class ToolCatalog:
    """Name-unique registry of ToolSchemas, in registration order."""

    def __init__(self, schemas: Sequence[ToolSchema] = ()) -> None:
        self._schemas: Dict[str, ToolSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: ToolSchema) -> None:
        if schema.name in self._schemas:
            logger.error("Duplicate tool registration: %s", schema.name)
            raise DuplicateToolError(schema.name)
        self._schemas[schema.name] = schema

    def get(self, name: str) -> Optional[ToolSchema]:
        return self._schemas.get(name)

    def names(self) -> List[str]:
        return list(self._schemas)

    def __contains__(self, name: object) -> bool:
        return name in self._schemas

    def __iter__(self) -> Iterator[ToolSchema]:
        return iter(self._schemas.values())

    def __len__(self) -> int:
        return len(self._schemas)

    def missing_required(self, name: str, args: Mapping[str, Any]) -> List[str]:
        """Required parameters absent (or null) in args. Unknown tool → []."""
        schema = self._schemas.get(name)
        if schema is None:
            return []
        return [p for p in schema.required if args.get(p) is None]

    def to_openai(self) -> List[Dict[str, Any]]:
        return [s.to_openai() for s in self]

    def to_anthropic(self) -> List[Dict[str, Any]]:
        return [s.to_anthropic() for s in self]


DEAL_TOOL_SCHEMAS: List[ToolSchema] = [
    ToolSchema(
        name="get_deals",
        description=(
            "Get a list of all deals in the pipeline. "
            "Use this to see what deals are available before taking actions."
        ),
        parameters={
            "stage_filter": ParameterSpec(
                type="string",
                enum=["all", *STAGE_VALUES],
                description='Optional filter by deal stage. Default is "all".',
            ),
        },
    ),
    ToolSchema(
        name="find_deal_by_name",
        description=(
            "Search for a deal by borrower name using fuzzy matching. Use this when "
            "the user refers to a deal by a partial or informal name."
        ),
        parameters={
            "search_term": ParameterSpec(
                type="string",
                required=True,
                description="The borrower name or partial identifier to search for.",
            ),
        },
    ),
    ToolSchema(
        name="get_deal_details",
        description=(
            "Get detailed information about a specific deal including its stage, "
            "loan amount, and recent activity."
        ),
        parameters={
            "deal_id": ParameterSpec(type="string", required=True, description="The unique ID of the deal."),
        },
    ),
    ToolSchema(
        name="add_deal_activity",
        description=(
            "Add a new activity entry for a deal. Use this when the user wants to record "
            "a call, meeting, note, email, or document. When creating activities from "
            "conversation context, set use_chat_sources=true to attach the documents "
            "referenced in the chat as citations."
        ),
        parameters={
            "deal_id": ParameterSpec(type="string", required=True, description="The ID of the deal this activity is for."),
            "type": ParameterSpec(
                type="string", required=True, enum=ACTIVITY_TYPE_VALUES, description="The type of activity.",
            ),
            "description": ParameterSpec(
                type="string",
                required=True,
                description="Description of the activity. Should summarize the relevant conversation context.",
            ),
            "performed_by": ParameterSpec(type="string", description="Name of the person who performed the activity."),
            "performed_at": ParameterSpec(
                type="string", description="ISO timestamp when the activity occurred. Defaults to now.",
            ),
            "use_chat_sources": ParameterSpec(
                type="boolean",
                description="Attach documents referenced in the conversation as citations. Default true.",
            ),
        },
    ),
    ToolSchema(
        name="update_deal_stage",
        description=(
            "Update the stage of a deal in the pipeline. This requires user confirmation: "
            "call it first without confirmed, show the user the returned prompt, and only "
            "after the user agrees call it again with the same parameters plus confirmed=true."
        ),
        parameters={
            "deal_id": ParameterSpec(type="string", required=True, description="The ID of the deal to update."),
            "new_stage": ParameterSpec(
                type="string", required=True, enum=STAGE_VALUES, description="The new stage for the deal.",
            ),
            "reason": ParameterSpec(type="string", description="Reason for the stage change."),
            "confirmed": ParameterSpec(
                type="boolean",
                description="Whether the user has confirmed this action. Must be true to execute.",
            ),
            "current_stage": ParameterSpec(
                type="string",
                enum=STAGE_VALUES,
                description="Echo of current_stage from the confirmation request.",
            ),
            "issued_at": ParameterSpec(
                type="string",
                description="Echo of issued_at from the confirmation request.",
            ),
        },
        requires_confirmation=True,
    ),
    ToolSchema(
        name="get_pipeline_analytics",
        description="Get pipeline analytics including days in stage, activity counts, and deal values.",
        parameters={
            "deal_id": ParameterSpec(
                type="string",
                description="The ID of a specific deal. If not provided, returns analytics for all deals.",
            ),
        },
    ),
    ToolSchema(
        name="get_deal_activities",
        description="Get activity history, optionally filtered by deal.",
        parameters={
            "deal_id": ParameterSpec(type="string", description="Optional deal ID to filter activities."),
            "limit": ParameterSpec(
                type="integer", description="Maximum number of activities to return. Default is 20.",
            ),
        },
    ),
    ToolSchema(
        name="retrieve_schematic",
        description=(
            "Retrieve a schematic diagram and service documentation for a machine component. "
            "Use this when the user asks about parts, components, maintenance procedures, "
            "or service information for equipment."
        ),
        parameters={
            "component_name": ParameterSpec(
                type="string",
                required=True,
                description='The component or part to look up (e.g., "hydraulic pump").',
            ),
            "machine_model": ParameterSpec(type="string", description="The machine model or equipment identifier."),
            "additional_context": ParameterSpec(
                type="string", description='Additional context (e.g., "replacement procedure").',
            ),
        },
    ),
    ToolSchema(
        name="draft_email",
        description=(
            "Draft an email summarizing research and findings from the current conversation. "
            "The draft is created in the user's mailbox with citations from documents "
            "referenced in the chat."
        ),
        parameters={
            "deal_id": ParameterSpec(type="string", description="Optional deal ID to associate this email with."),
            "to": ParameterSpec(
                type="array",
                required=True,
                items={"type": "string"},
                description="Recipient email addresses.",
            ),
            "subject": ParameterSpec(type="string", required=True, description="Email subject line."),
            "summary": ParameterSpec(
                type="string", required=True, description="The main content of the email body.",
            ),
            "recipient_name": ParameterSpec(type="string", description="Recipient name for the greeting."),
            "include_sources": ParameterSpec(
                type="boolean", description="Include document citations at the end. Default true.",
            ),
        },
    ),
    ToolSchema(
        name="search_crm_deals",
        description=(
            "Search deals in the connected CRM by free text. Use this when the user asks "
            "about deals that live in the CRM rather than the local pipeline."
        ),
        parameters={
            "query": ParameterSpec(type="string", required=True, description="Free-text search query."),
            "limit": ParameterSpec(type="integer", description="Maximum number of results. Default is 10."),
        },
    ),
]


def build_default_catalog() -> ToolCatalog:
    return ToolCatalog(DEAL_TOOL_SCHEMAS)
