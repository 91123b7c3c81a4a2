"""
Tool Dispatcher: runs deal tools on behalf of the assistant.

Contract:
- dispatch(name, args, context) always returns a ToolResult; nothing raised
  by a handler or a collaborator escapes this boundary
- Unknown tool → {success: false, error: "Unknown tool: <name>"}
- Arguments are checked for presence against the ToolCatalog, then validated
  against the tool's pydantic model before any handler runs
- update_deal_stage goes through the ConfirmationGate
- add_deal_activity attaches conversation sources via the CitationAggregator
- Every collaborator call is bounded by settings.collaborator_timeout_s
- dispatch_turn() runs one model turn's calls strictly in order, capped at
  settings.max_tool_calls_per_turn

Handlers receive (validated args, read-only ToolContext, TurnLedger) and
touch state only through collaborators.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar, Union

from dealdesk.config import Settings, settings as default_settings
from dealdesk.core.async_utils import call_collaborator
from dealdesk.core.errors import (
    CollaboratorError,
    ConfirmationRejectedError,
    DealDeskError,
    EntityNotFoundError,
    ToolArgumentError,
    UnknownToolError,
)
from dealdesk.core.errors.registry import error_registry
from dealdesk.core.redaction import redact_message, redact_payload
from dealdesk.core.structured_logging import conversation_id_var, turn_id_var
from dealdesk.models.deal import ActivityType, Deal, DealActivity
from dealdesk.models.sources import ToolContext
from dealdesk.models.tool_args import (
    AddDealActivityArgs,
    DraftEmailArgs,
    FindDealByNameArgs,
    GetDealActivitiesArgs,
    GetDealDetailsArgs,
    GetDealsArgs,
    GetPipelineAnalyticsArgs,
    RetrieveSchematicArgs,
    SearchCrmDealsArgs,
    UpdateDealStageArgs,
    parse_tool_arguments,
)
from dealdesk.services.citation_aggregator import CitationAggregator
from dealdesk.services.collaborators import (
    CitationStore,
    CRMCollaborator,
    EmailCollaborator,
    EmailDraft,
    EntityStore,
    SchematicCollaborator,
    SchematicRequest,
    SharingLinkCollaborator,
)
from dealdesk.services.confirmation_gate import Clock, ConfirmationGate, GatedAction, TurnLedger, utc_now
from dealdesk.services.email_body import EmailSource, generate_email_body
from dealdesk.services.fuzzy_resolver import deal_resolver
from dealdesk.services.pipeline_analytics import format_money, summarize_pipeline, whole_days_between
from dealdesk.services.tool_catalog import ToolCatalog, build_default_catalog
from dealdesk.services.tool_result import ToolResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

Handler = Callable[[Any, ToolContext, TurnLedger], Awaitable[ToolResult]]

RECENT_ACTIVITY_COUNT = 5


@dataclass(frozen=True)
class ToolCall:
    """One model-issued call: {name, arguments}."""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_wire(cls, raw: Mapping[str, Any]) -> "ToolCall":
        arguments = raw.get("arguments") or {}
        # OpenAI-style providers send arguments as a JSON string
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError:
                pass  # dispatch() rejects it as a non-object
        return cls(name=str(raw.get("name", "")), arguments=arguments)


def _plural(count: int, singular: str, plural: Optional[str] = None) -> str:
    return singular if count == 1 else (plural or f"{singular}s")


def _deal_summary(deal: Deal) -> Dict[str, Any]:
    return {
        "id": deal.id,
        "deal_number": deal.deal_number,
        "borrower_name": deal.borrower_name,
        "loan_amount": deal.loan_amount,
        "stage": deal.stage.value,
        "priority": deal.priority,
    }


def _activity_summary(activity: DealActivity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "deal_id": activity.deal_id,
        "type": activity.type.value,
        "date": activity.performed_at.isoformat(),
        "description": activity.description,
        "performed_by": activity.performed_by,
    }


class DealStageChange(GatedAction[UpdateDealStageArgs, Deal]):
    """update_deal_stage behind the confirmation handshake."""

    tool_name = "update_deal_stage"
    action_tag = "deal_stage_updated"

    def __init__(self, dispatcher: "ToolDispatcher") -> None:
        self.dispatcher = dispatcher

    def entity_key(self, args: UpdateDealStageArgs) -> str:
        return args.deal_id

    async def check(self, args: UpdateDealStageArgs) -> Deal:
        # new_stage is already constrained to DealStage by the argument model
        return await self.dispatcher._require_deal(args.deal_id)

    def describe(self, deal: Deal, args: UpdateDealStageArgs) -> str:
        reason = f" (reason: {args.reason})" if args.reason else ""
        return (
            f'Please confirm moving {deal.borrower_name}\'s deal from "{deal.stage.value}" '
            f'to "{args.new_stage.value}"{reason}. Reply "yes" or "confirm" to proceed.'
        )

    def pending_params(self, deal: Deal, args: UpdateDealStageArgs) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "deal_id": deal.id,
            "current_stage": deal.stage.value,
            "new_stage": args.new_stage.value,
        }
        if args.reason:
            params["reason"] = args.reason
        return params

    def verify_binding(self, deal: Deal, args: UpdateDealStageArgs) -> None:
        if args.current_stage is not None and args.current_stage != deal.stage:
            raise ConfirmationRejectedError(
                f'{deal.borrower_name}\'s deal moved from "{args.current_stage.value}" to '
                f'"{deal.stage.value}" after confirmation was requested.',
                code="DD-CONF-001",
                context={"deal_id": deal.id},
            )

    async def apply(self, deal: Deal, args: UpdateDealStageArgs) -> ToolResult:
        updated = await self.dispatcher._call(
            self.dispatcher.entity_store.update(deal.id, {"stage": args.new_stage.value}),
            "entity_store.update",
        )
        if updated is None:
            raise CollaboratorError("Failed to update deal stage.")
        logger.info(
            "Deal stage updated: deal=%s %s -> %s",
            deal.id, deal.stage.value, args.new_stage.value,
        )
        return ToolResult.ok(
            data=updated.model_dump(mode="json"),
            message=(
                f'Moved {deal.borrower_name}\'s deal from "{deal.stage.value}" '
                f'to "{args.new_stage.value}".'
            ),
            action_taken=self.action_tag,
        )


class ToolDispatcher:
    """Route tool calls to handlers and convert every outcome to a ToolResult."""

    def __init__(
        self,
        entity_store: EntityStore,
        citation_store: CitationStore,
        email: Optional[EmailCollaborator] = None,
        crm: Optional[CRMCollaborator] = None,
        sharing_links: Optional[SharingLinkCollaborator] = None,
        schematics: Optional[SchematicCollaborator] = None,
        catalog: Optional[ToolCatalog] = None,
        config: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.entity_store = entity_store
        self.email = email
        self.crm = crm
        self.sharing_links = sharing_links
        self.schematics = schematics
        self.catalog = catalog or build_default_catalog()
        self.settings = config or default_settings
        self.clock = clock or utc_now

        self.resolver = deal_resolver()
        self.citations = CitationAggregator(citation_store, timeout=self.settings.collaborator_timeout_s)
        self.gate = ConfirmationGate(ttl_seconds=self.settings.confirmation_ttl_seconds, clock=self.clock)
        self._stage_change = DealStageChange(self)

        self._handlers: Dict[str, Handler] = {
            "get_deals": self._handle_get_deals,
            "find_deal_by_name": self._handle_find_deal_by_name,
            "get_deal_details": self._handle_get_deal_details,
            "add_deal_activity": self._handle_add_deal_activity,
            "update_deal_stage": self._handle_update_deal_stage,
            "get_pipeline_analytics": self._handle_get_pipeline_analytics,
            "get_deal_activities": self._handle_get_deal_activities,
            "retrieve_schematic": self._handle_retrieve_schematic,
            "draft_email": self._handle_draft_email,
            "search_crm_deals": self._handle_search_crm_deals,
        }

    @property
    def tool_names(self) -> List[str]:
        return [name for name in self.catalog.names() if name in self._handlers]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        name: str,
        args: Optional[Mapping[str, Any]] = None,
        context: Union[ToolContext, Mapping[str, Any], None] = None,
        *,
        ledger: Optional[TurnLedger] = None,
    ) -> ToolResult:
        """Run one tool call. Never raises."""
        ledger = ledger or TurnLedger()
        ledger.calls += 1
        limit = self.settings.max_tool_calls_per_turn
        if ledger.calls > limit:
            logger.warning("Tool call limit reached: tool=%s turn=%s", name, ledger.turn_id)
            return ToolResult.fail(
                f"Tool call limit reached ({limit} per turn)",
                message="The tool call limit for this message was reached. Send another message to continue.",
            )

        try:
            handler = self._handlers.get(name)
            if handler is None or name not in self.catalog:
                raise UnknownToolError(name)

            raw = {} if args is None else args
            if not isinstance(raw, Mapping):
                raise ToolArgumentError(f"Invalid arguments for {name}: arguments must be a JSON object")
            missing = self.catalog.missing_required(name, raw)
            if missing:
                raise ToolArgumentError(
                    f"Invalid arguments for {name}: missing required argument(s): {', '.join(missing)}",
                    context={"tool": name, "missing": missing},
                )
            parsed = parse_tool_arguments(name, raw)
            ctx = self._coerce_context(context)

            result = await handler(parsed, ctx, ledger)

        except DealDeskError as e:
            self._log_recovered(name, e)
            return ToolResult.fail(e.message)
        except Exception as e:
            error = redact_message(str(e)) or "Unknown error occurred"
            logger.error("Tool error: tool=%s error=%s", name, error, exc_info=True)
            return ToolResult.fail(error)

        if result.requires_confirmation:
            logger.info("Tool %s awaiting confirmation", name)
        else:
            logger.info("Tool %s -> %s", name, "success" if result.success else "failed")
        return result

    async def dispatch_turn(
        self,
        calls: Sequence[Union[ToolCall, Mapping[str, Any]]],
        context: Union[ToolContext, Mapping[str, Any], None] = None,
    ) -> List[ToolResult]:
        """Run one model turn's calls in arrival order, each awaited to completion."""
        ledger = TurnLedger()
        conversation_id = None
        if isinstance(context, ToolContext):
            conversation_id = context.conversation_id
        elif isinstance(context, Mapping):
            conversation_id = context.get("conversation_id") or context.get("conversationId")

        turn_token = turn_id_var.set(ledger.turn_id)
        conv_token = conversation_id_var.set(conversation_id)
        try:
            results = []
            for raw in calls:
                call = raw if isinstance(raw, ToolCall) else ToolCall.from_wire(raw)
                results.append(await self.dispatch(call.name, call.arguments, context, ledger=ledger))
            return results
        finally:
            conversation_id_var.reset(conv_token)
            turn_id_var.reset(turn_token)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce_context(context: Union[ToolContext, Mapping[str, Any], None]) -> ToolContext:
        if context is None:
            return ToolContext()
        if isinstance(context, ToolContext):
            return context
        try:
            return ToolContext.model_validate(dict(context))
        except ValueError as e:
            raise ToolArgumentError(f"Invalid conversation context: {e}") from e

    def _log_recovered(self, name: str, error: DealDeskError) -> None:
        entry = error_registry.get(error.code)
        level = entry.log_level if entry else logging.WARNING
        logger.log(
            level,
            "Tool %s failed: code=%s error=%s context=%s",
            name, error.code, redact_message(error.message), redact_payload(error.context),
        )

    async def _call(self, awaitable: Awaitable[T], name: str) -> T:
        """Await a collaborator under the timeout; foreign errors become CollaboratorError."""
        try:
            return await call_collaborator(
                awaitable, name=name, timeout=self.settings.collaborator_timeout_s,
            )
        except DealDeskError:
            raise
        except Exception as e:
            raise CollaboratorError(
                f"{name} failed: {redact_message(str(e))}",
                context={"collaborator": name},
            ) from e

    async def _require_deal(self, deal_id: str) -> Deal:
        deal = await self._call(self.entity_store.get_by_id(deal_id), "entity_store.get_by_id")
        if deal is None:
            raise EntityNotFoundError("Deal", deal_id)
        return deal

    # ------------------------------------------------------------------
    # Tool handlers
    # ------------------------------------------------------------------

    async def _handle_get_deals(self, args: GetDealsArgs, ctx: ToolContext, ledger: TurnLedger) -> ToolResult:
        deals = await self._call(self.entity_store.list_all(), "entity_store.list_all")

        stage = None if args.stage_filter == "all" else args.stage_filter
        if stage is not None:
            deals = [d for d in deals if d.stage == stage]

        stage_msg = f' in "{stage.value}" stage' if stage is not None else ""
        return ToolResult.ok(
            data=[_deal_summary(d) for d in deals],
            message=f"Found {len(deals)} {_plural(len(deals), 'deal')}{stage_msg}.",
        )

    async def _handle_find_deal_by_name(
        self, args: FindDealByNameArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        deals = await self._call(self.entity_store.list_all(), "entity_store.list_all")
        matches = self.resolver.resolve(args.search_term, deals)

        if not matches:
            return ToolResult.ok(data=[], message=f'No deals found matching "{args.search_term}".')

        top = matches[: self.settings.find_deal_max_results]
        best = matches[0]
        return ToolResult.ok(
            data=[{**_deal_summary(m.candidate), "confidence": m.confidence} for m in top],
            message=(
                f'Found {len(matches)} {_plural(len(matches), "deal")} matching "{args.search_term}". '
                f"Top match: {best.candidate.borrower_name} ({best.confidence}% confidence)."
            ),
        )

    async def _handle_get_deal_details(
        self, args: GetDealDetailsArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        deal = await self._require_deal(args.deal_id)
        activities = await self._call(self.entity_store.list_children(deal.id), "entity_store.list_children")
        recent = activities[:RECENT_ACTIVITY_COUNT]
        now = self.clock()

        analytics = {
            "days_since_created": whole_days_between(deal.created_at, now) or 0,
            "days_since_last_activity": (
                whole_days_between(activities[0].performed_at, now) if activities else None
            ),
            "total_activities": len(activities),
        }

        if recent:
            last = recent[0]
            last_msg = f"Last activity: {last.type.value} on {last.performed_at.date().isoformat()}."
        else:
            last_msg = "No activity recorded yet."

        return ToolResult.ok(
            data={
                "deal": deal.model_dump(mode="json"),
                "recent_activities": [_activity_summary(a) for a in recent],
                "analytics": analytics,
            },
            message=(
                f"{deal.borrower_name} - {format_money(deal.loan_amount)} loan is currently "
                f'in "{deal.stage.value}" stage. {last_msg}'
            ),
        )

    async def _handle_add_deal_activity(
        self, args: AddDealActivityArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        deal = await self._require_deal(args.deal_id)

        performed_at = args.performed_at or self.clock()
        activity = await self._call(
            self.entity_store.create_child_record(deal.id, {
                "type": args.type.value,
                "description": args.description,
                "performed_by": args.performed_by,
                "performed_at": performed_at.isoformat(),
                "metadata": None,
            }),
            "entity_store.create_child_record",
        )

        # The activity exists from here on; citations can only add to it
        attached = []
        if args.use_chat_sources and ctx.rag_sources:
            report = await self.citations.attach(
                activity.id,
                ctx.rag_sources,
                threshold=self.settings.activity_relevance_threshold,
            )
            attached = report.attached

        sources_added = len(attached)
        source_msg = (
            f" Attached {sources_added} document {_plural(sources_added, 'citation')} from the conversation."
            if sources_added else ""
        )
        data = activity.model_dump(mode="json")
        data["sources"] = [c.model_dump(mode="json") for c in attached]
        data["sourcesAdded"] = sources_added

        return ToolResult.ok(
            data=data,
            message=f"Added {args.type.value} activity for {deal.borrower_name}'s deal.{source_msg}",
            action_taken="activity_created",
        )

    async def _handle_update_deal_stage(
        self, args: UpdateDealStageArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        return await self.gate.run(self._stage_change, args, ledger)

    async def _handle_get_pipeline_analytics(
        self, args: GetPipelineAnalyticsArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        if args.deal_id:
            deal = await self._require_deal(args.deal_id)
            activities = await self._call(
                self.entity_store.list_children(deal.id), "entity_store.list_children",
            )
            days = whole_days_between(deal.created_at, self.clock()) or 0
            return ToolResult.ok(
                data={
                    "deal": deal.model_dump(mode="json"),
                    "days_since_created": days,
                    "total_activities": len(activities),
                },
                message=(
                    f"Analytics for {deal.borrower_name}: {days} {_plural(days, 'day')} in pipeline, "
                    f"{len(activities)} total {_plural(len(activities), 'activity', 'activities')}, "
                    f'currently in "{deal.stage.value}" stage.'
                ),
            )

        deals = await self._call(self.entity_store.list_all(), "entity_store.list_all")
        analytics = summarize_pipeline(deals)
        stage_parts = [
            f"{stage}: {totals.count} ({format_money(totals.total_value)})"
            for stage, totals in analytics.by_stage.items()
            if totals.count > 0
        ]
        stage_msg = f"By stage: {', '.join(stage_parts)}." if stage_parts else "No deals in pipeline."
        return ToolResult.ok(
            data=analytics.model_dump(mode="json"),
            message=(
                f"Pipeline has {analytics.total_deals} {_plural(analytics.total_deals, 'deal')} "
                f"totaling {format_money(analytics.total_pipeline_value)}. {stage_msg}"
            ),
        )

    async def _handle_get_deal_activities(
        self, args: GetDealActivitiesArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        if args.deal_id:
            deal = await self._require_deal(args.deal_id)
            activities = await self._call(
                self.entity_store.list_children(deal.id), "entity_store.list_children",
            )
            scope = f"for {deal.borrower_name}'s deal"
        else:
            activities = await self._call(
                self.entity_store.list_children(None), "entity_store.list_children",
            )
            scope = "across all deals"

        activities = activities[: args.limit]
        return ToolResult.ok(
            data=[_activity_summary(a) for a in activities],
            message=f"Found {len(activities)} {_plural(len(activities), 'activity', 'activities')} {scope}.",
        )

    async def _handle_retrieve_schematic(
        self, args: RetrieveSchematicArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        if self.schematics is None:
            raise CollaboratorError("Schematic lookup is not configured.")

        response = await self._call(
            self.schematics.lookup(SchematicRequest(
                component_name=args.component_name,
                machine_model=args.machine_model,
                additional_context=args.additional_context,
            )),
            "schematics.lookup",
        )
        if response.status != "success":
            raise CollaboratorError(redact_message(response.message or "Failed to retrieve schematic."))

        component_name = response.component_name or args.component_name
        machine_model = response.machine_model or args.machine_model
        model_msg = f" ({response.machine_model})" if response.machine_model else ""
        return ToolResult.ok(
            data={
                "component_id": response.component_id,
                "component_name": component_name,
                "machine_model": machine_model,
                "image_path": response.image_path,
                "manual_context": response.manual_context,
            },
            message=f"Retrieved schematic for {component_name}{model_msg}.",
            action_taken="schematic_retrieved",
        )

    async def _handle_draft_email(
        self, args: DraftEmailArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        if self.email is None:
            raise CollaboratorError("Email drafting is not configured.")

        deal: Optional[Deal] = None
        deal_context = ""
        if args.deal_id:
            deal = await self._call(self.entity_store.get_by_id(args.deal_id), "entity_store.get_by_id")
            if deal is not None:
                deal_context = f"\n\nDeal Reference: {deal.borrower_name} - {deal.deal_number}"

        sources = list(ctx.rag_sources) if args.include_sources else []
        links = await self._sharing_links([s.one_drive_id for s in sources if s.one_drive_id])

        body = generate_email_body(
            args.summary + deal_context,
            [
                EmailSource(
                    file_name=s.file_name,
                    file_path=s.file_path,
                    section=s.section,
                    page_number=s.page_number,
                    share_link=links.get(s.one_drive_id) if s.one_drive_id else None,
                )
                for s in sources
            ],
            include_greeting=True,
            recipient_name=args.recipient_name,
        )

        response = await self._call(
            self.email.create_draft(EmailDraft(to=list(args.to), subject=args.subject, body=body)),
            "email.create_draft",
        )
        if not response.success:
            raise CollaboratorError(redact_message(response.error or "Failed to create email draft."))
        draft = response.data or {}

        if deal is not None:
            await self._log_email_activity(deal, args, draft.get("id"))

        sources_msg = (
            f" Included {len(sources)} document {_plural(len(sources), 'citation')}." if sources else ""
        )
        return ToolResult.ok(
            data={
                "draftId": draft.get("id"),
                "webLink": draft.get("webLink"),
                "to": list(args.to),
                "subject": args.subject,
                "sourcesIncluded": len(sources),
            },
            message=(
                f"Email draft created for {', '.join(args.to)}.{sources_msg} "
                "Review and send it from your mail client."
            ),
            action_taken="email_drafted",
        )

    async def _sharing_links(self, item_ids: List[str]) -> Dict[str, str]:
        if not item_ids or self.sharing_links is None:
            return {}
        try:
            links = await self._call(
                self.sharing_links.create_sharing_links(item_ids), "sharing_links.create",
            )
        except DealDeskError as e:
            # Draft still goes out, just without links
            logger.warning("Sharing links unavailable: %s", e.message)
            return {}
        logger.info("Created %d of %d sharing links", len(links), len(item_ids))
        return links

    async def _log_email_activity(self, deal: Deal, args: DraftEmailArgs, draft_id: Optional[str]) -> None:
        try:
            activity = await self._call(
                self.entity_store.create_child_record(deal.id, {
                    "type": ActivityType.EMAIL.value,
                    "description": f'Email drafted to {", ".join(args.to)}: "{args.subject}"',
                    "performed_by": None,
                    "performed_at": self.clock().isoformat(),
                    "metadata": {
                        "draftId": draft_id,
                        "recipients": list(args.to),
                        "subject": args.subject,
                        "action": "drafted",
                    },
                }),
                "entity_store.create_child_record",
            )
        except DealDeskError as e:
            logger.warning("Failed to log email activity for deal %s: %s", deal.id, e.message)
            return
        logger.info("Email activity logged: %s", activity.id)

    async def _handle_search_crm_deals(
        self, args: SearchCrmDealsArgs, ctx: ToolContext, ledger: TurnLedger,
    ) -> ToolResult:
        if self.crm is None:
            raise CollaboratorError("CRM is not connected.")

        response = await self._call(self.crm.search_deals(args.query, args.limit), "crm.search_deals")
        if not response.success:
            raise CollaboratorError(redact_message(response.error or "CRM search failed."))

        results = (response.data or {}).get("results", [])[: args.limit]
        deals = []
        for item in results:
            props = item.get("properties") or {}
            deals.append({
                "id": item.get("id"),
                "name": props.get("dealname"),
                "amount": props.get("amount"),
                "stage": props.get("dealstage"),
                "close_date": props.get("closedate"),
            })
        return ToolResult.ok(
            data=deals,
            message=f'Found {len(deals)} CRM {_plural(len(deals), "deal")} matching "{args.query}".',
        )
