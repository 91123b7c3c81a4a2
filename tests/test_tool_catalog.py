"""
Tests for the tool catalog and the per-tool argument models.
"""

import pytest
from pydantic import ValidationError

from dealdesk.core.errors import DuplicateToolError, ToolArgumentError
from dealdesk.models.deal import DealStage
from dealdesk.models.tool_args import (
    TOOL_ARGUMENT_MODELS,
    DraftEmailArgs,
    GetDealsArgs,
    UpdateDealStageArgs,
    parse_tool_arguments,
)
from dealdesk.services.tool_catalog import (
    DEAL_TOOL_SCHEMAS,
    ParameterSpec,
    ToolCatalog,
    ToolSchema,
    build_default_catalog,
)

EXPECTED_TOOLS = [
    "get_deals",
    "find_deal_by_name",
    "get_deal_details",
    "add_deal_activity",
    "update_deal_stage",
    "get_pipeline_analytics",
    "get_deal_activities",
    "retrieve_schematic",
    "draft_email",
    "search_crm_deals",
]


class TestToolCatalog:

    def test_default_catalog_contents(self):
        catalog = build_default_catalog()
        assert catalog.names() == EXPECTED_TOOLS
        assert len(catalog) == len(DEAL_TOOL_SCHEMAS)

    def test_every_tool_has_an_argument_model(self):
        assert set(build_default_catalog().names()) == set(TOOL_ARGUMENT_MODELS)

    def test_duplicate_registration_fails(self):
        catalog = ToolCatalog([ToolSchema(name="ping", description="Ping")])
        with pytest.raises(DuplicateToolError) as exc:
            catalog.register(ToolSchema(name="ping", description="Ping again"))
        assert exc.value.code == "DD-CAT-001"
        assert len(catalog) == 1

    def test_only_stage_update_requires_confirmation(self):
        gated = [s.name for s in build_default_catalog() if s.requires_confirmation]
        assert gated == ["update_deal_stage"]

    def test_confirmed_flag_is_optional(self):
        schema = build_default_catalog().get("update_deal_stage")
        assert schema.required == ["deal_id", "new_stage"]
        assert "confirmed" in schema.parameters

    def test_missing_required(self):
        catalog = build_default_catalog()
        assert catalog.missing_required("add_deal_activity", {"deal_id": "deal-1", "type": None}) == [
            "type", "description",
        ]
        assert catalog.missing_required("get_deals", {}) == []
        assert catalog.missing_required("not_a_tool", {}) == []

    def test_openai_rendering(self):
        rendered = build_default_catalog().to_openai()[1]
        assert rendered["type"] == "function"
        assert rendered["function"]["name"] == "find_deal_by_name"
        params = rendered["function"]["parameters"]
        assert params["required"] == ["search_term"]
        assert params["properties"]["search_term"]["type"] == "string"

    def test_anthropic_rendering(self):
        rendered = {t["name"]: t for t in build_default_catalog().to_anthropic()}
        stage_enum = rendered["update_deal_stage"]["input_schema"]["properties"]["new_stage"]["enum"]
        assert stage_enum == [s.value for s in DealStage]
        assert rendered["draft_email"]["input_schema"]["properties"]["to"]["items"] == {"type": "string"}

    def test_parameter_spec_omits_empty_keys(self):
        assert ParameterSpec(type="integer").to_json_schema() == {"type": "integer"}


class TestToolArguments:

    def test_defaults(self):
        args = parse_tool_arguments("get_deals", {})
        assert isinstance(args, GetDealsArgs)
        assert args.stage_filter == "all"

    def test_stage_filter_enum(self):
        assert parse_tool_arguments("get_deals", {"stage_filter": "funded"}).stage_filter == DealStage.FUNDED
        with pytest.raises(ToolArgumentError):
            parse_tool_arguments("get_deals", {"stage_filter": "won"})

    def test_echoed_pending_payload_is_accepted(self):
        args = parse_tool_arguments("update_deal_stage", {
            "pendingAction": "update_deal_stage",
            "deal_id": "deal-1",
            "current_stage": "underwriting",
            "new_stage": "approved",
            "issued_at": "2026-03-01T12:00:00+00:00",
            "confirmed": True,
        })
        assert isinstance(args, UpdateDealStageArgs)
        assert args.confirmed is True
        assert args.current_stage == DealStage.UNDERWRITING
        assert args.issued_at.tzinfo is not None

    def test_blank_required_string_rejected(self):
        with pytest.raises(ToolArgumentError) as exc:
            parse_tool_arguments("find_deal_by_name", {"search_term": "   "})
        assert exc.value.message.startswith("Invalid arguments for find_deal_by_name: search_term")

    def test_invalid_email_address(self):
        with pytest.raises(ToolArgumentError) as exc:
            parse_tool_arguments("draft_email", {
                "to": ["ops@example.com", "not-an-address"],
                "subject": "Update",
                "summary": "Status",
            })
        assert "not-an-address" in exc.value.message

    def test_email_recipients_required(self):
        with pytest.raises(ValidationError):
            DraftEmailArgs.model_validate({"to": [], "subject": "s", "summary": "b"})
        with pytest.raises(ToolArgumentError):
            parse_tool_arguments("draft_email", {"to": [], "subject": "s", "summary": "b"})

    def test_limit_bounds(self):
        with pytest.raises(ToolArgumentError):
            parse_tool_arguments("get_deal_activities", {"limit": 0})

    def test_non_object_arguments(self):
        with pytest.raises(ToolArgumentError) as exc:
            parse_tool_arguments("get_deals", ["stage_filter"])
        assert "must be a JSON object" in exc.value.message

    def test_unknown_tool_model(self):
        with pytest.raises(KeyError):
            parse_tool_arguments("not_a_tool", {})
