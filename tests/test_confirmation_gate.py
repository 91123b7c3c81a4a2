"""
Tests for the confirmation gate: prompt, confirm, expiry and same-turn rules.
"""

from datetime import timedelta
from types import SimpleNamespace
from typing import Any, Dict

import pytest

from dealdesk.core.errors import ConfirmationRejectedError, EntityNotFoundError
from dealdesk.services.confirmation_gate import ConfirmationGate, GatedAction, TurnLedger
from dealdesk.services.tool_result import ToolResult
from tests.conftest import NOW, fixed_clock


class ArchiveWidget(GatedAction):
    """Minimal gated action over a dict of widgets."""

    tool_name = "archive_widget"
    action_tag = "widget_archived"

    def __init__(self, widgets):
        self.widgets = widgets
        self.applied = []

    def entity_key(self, args) -> str:
        return args.widget_id

    async def check(self, args):
        widget = self.widgets.get(args.widget_id)
        if widget is None:
            raise EntityNotFoundError("Widget", args.widget_id)
        return widget

    def describe(self, entity, args) -> str:
        return f"Archive {entity['name']}?"

    def pending_params(self, entity, args) -> Dict[str, Any]:
        return {"widget_id": args.widget_id}

    async def apply(self, entity, args) -> ToolResult:
        self.applied.append(args.widget_id)
        return ToolResult.ok(data={"id": args.widget_id}, action_taken=self.action_tag)


def args(widget_id="w-1", confirmed=False, issued_at=None):
    return SimpleNamespace(widget_id=widget_id, confirmed=confirmed, issued_at=issued_at)


@pytest.fixture
def action():
    return ArchiveWidget({"w-1": {"name": "Gizmo"}})


@pytest.fixture
def gate():
    return ConfirmationGate(ttl_seconds=300, clock=fixed_clock)


class TestConfirmationGate:

    @pytest.mark.asyncio
    async def test_unconfirmed_call_prompts_without_mutating(self, gate, action):
        result = await gate.run(action, args(), TurnLedger())

        assert result.requires_confirmation
        assert not result.success
        assert result.data["pendingAction"] == "archive_widget"
        assert result.data["widget_id"] == "w-1"
        assert result.data["issued_at"] == NOW.isoformat()
        assert result.message == "Archive Gizmo?"
        assert action.applied == []

    @pytest.mark.asyncio
    async def test_confirmed_call_in_later_turn_applies(self, gate, action):
        await gate.run(action, args(), TurnLedger())
        result = await gate.run(action, args(confirmed=True, issued_at=NOW), TurnLedger())

        assert result.success
        assert result.action_taken == "widget_archived"
        assert action.applied == ["w-1"]

    @pytest.mark.asyncio
    async def test_precondition_failure_is_error_at_both_steps(self, gate, action):
        with pytest.raises(EntityNotFoundError):
            await gate.run(action, args("missing"), TurnLedger())
        with pytest.raises(EntityNotFoundError):
            await gate.run(action, args("missing", confirmed=True), TurnLedger())

    @pytest.mark.asyncio
    async def test_confirmed_in_same_turn_as_prompt_is_refused(self, gate, action):
        ledger = TurnLedger()
        await gate.run(action, args(), ledger)

        with pytest.raises(ConfirmationRejectedError) as exc:
            await gate.run(action, args(confirmed=True, issued_at=NOW), ledger)
        assert exc.value.code == "DD-CONF-003"
        assert action.applied == []

    @pytest.mark.asyncio
    async def test_same_turn_rule_is_per_entity(self, gate):
        action = ArchiveWidget({"w-1": {"name": "Gizmo"}, "w-2": {"name": "Doohickey"}})
        ledger = TurnLedger()
        await gate.run(action, args("w-1"), ledger)

        result = await gate.run(action, args("w-2", confirmed=True), ledger)
        assert result.success

    @pytest.mark.asyncio
    async def test_expired_confirmation_is_refused(self, gate, action):
        stale = NOW - timedelta(seconds=301)
        with pytest.raises(ConfirmationRejectedError) as exc:
            await gate.run(action, args(confirmed=True, issued_at=stale), TurnLedger())
        assert exc.value.code == "DD-CONF-002"
        assert action.applied == []

    @pytest.mark.asyncio
    async def test_confirmation_at_ttl_is_accepted(self, gate, action):
        edge = NOW - timedelta(seconds=300)
        result = await gate.run(action, args(confirmed=True, issued_at=edge), TurnLedger())
        assert result.success

    @pytest.mark.asyncio
    async def test_naive_issued_at_is_treated_as_utc(self, gate, action):
        naive = (NOW - timedelta(seconds=10)).replace(tzinfo=None)
        result = await gate.run(action, args(confirmed=True, issued_at=naive), TurnLedger())
        assert result.success

    def test_ledger_tracks_prompts(self):
        ledger = TurnLedger()
        ledger.record_prompt("archive_widget", "w-1")
        assert ledger.was_prompted("archive_widget", "w-1")
        assert not ledger.was_prompted("archive_widget", "w-2")
