"""
Confirmation Gate: transcript-carried two-step handshake for mutating tools.

Flow:
1. LLM calls update_deal_stage(deal_id, new_stage) without confirmed=true
2. Gate runs the action's preconditions, does NOT mutate, and returns
   requiresConfirmation with data = {pendingAction, ...params, issued_at}
3. The user agrees in a later message
4. LLM re-invokes with the same params plus confirmed=true
5. Gate re-runs the SAME preconditions (a failure is a plain error, never a
   new prompt), checks the echoed binding, then lets the action mutate

Nothing is stored server-side: the pending action lives in the conversation
transcript, and concurrent conversations share no state. The only
bookkeeping is the TurnLedger, which is created per model turn and
discarded with it.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generic, Optional, Set, Tuple, TypeVar

from dealdesk.core.errors import ConfirmationRejectedError
from dealdesk.services.tool_result import ToolResult

logger = logging.getLogger(__name__)

A = TypeVar("A")  # validated argument model
E = TypeVar("E")  # entity the action targets

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TurnLedger:
    """Per-turn record of calls and confirmation prompts issued."""
    turn_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    calls: int = 0
    prompted: Set[Tuple[str, str]] = field(default_factory=set)

    def record_prompt(self, tool_name: str, entity_key: str) -> None:
        self.prompted.add((tool_name, entity_key))

    def was_prompted(self, tool_name: str, entity_key: str) -> bool:
        return (tool_name, entity_key) in self.prompted


class GatedAction(ABC, Generic[A, E]):
    """A mutating tool behind the confirmation handshake."""

    tool_name: str
    action_tag: str

    @abstractmethod
    def entity_key(self, args: A) -> str:
        """Identity of the targeted entity, for same-turn bookkeeping."""

    @abstractmethod
    async def check(self, args: A) -> E:
        """Preconditions shared by both steps. Raise on failure, return the entity."""

    @abstractmethod
    def describe(self, entity: E, args: A) -> str:
        """Display-ready confirmation prompt naming the entity and the change."""

    @abstractmethod
    def pending_params(self, entity: E, args: A) -> Dict[str, Any]:
        """JSON-safe parameters the caller must echo back with confirmed=true."""

    def verify_binding(self, entity: E, args: A) -> None:
        """Step-2 check that the echoed payload still describes this entity."""

    @abstractmethod
    async def apply(self, entity: E, args: A) -> ToolResult:
        """Perform the mutation. Only reached on a confirmed, valid call."""


class ConfirmationGate:
    def __init__(self, ttl_seconds: int, clock: Optional[Clock] = None) -> None:
        self.ttl_seconds = ttl_seconds
        self.clock = clock or utc_now

    async def run(self, action: GatedAction, args: Any, ledger: TurnLedger) -> ToolResult:
        entity = await action.check(args)
        key = action.entity_key(args)

        if not getattr(args, "confirmed", False):
            ledger.record_prompt(action.tool_name, key)
            params = action.pending_params(entity, args)
            params["issued_at"] = self.clock().isoformat()
            logger.info(
                "Confirmation requested: tool=%s entity=%s turn=%s",
                action.tool_name, key, ledger.turn_id,
            )
            return ToolResult.confirmation(
                pending_action=action.tool_name,
                params=params,
                message=action.describe(entity, args),
            )

        if ledger.was_prompted(action.tool_name, key):
            raise ConfirmationRejectedError(
                f"{action.tool_name} for {key} was confirmed in the same turn it was "
                "requested; the user must confirm in a later message.",
                code="DD-CONF-003",
                context={"tool": action.tool_name, "entity": key},
            )

        self._check_expiry(action, args)
        action.verify_binding(entity, args)

        logger.info(
            "Confirmation accepted: tool=%s entity=%s turn=%s",
            action.tool_name, key, ledger.turn_id,
        )
        return await action.apply(entity, args)

    def _check_expiry(self, action: GatedAction, args: Any) -> None:
        issued_at: Optional[datetime] = getattr(args, "issued_at", None)
        if issued_at is None:
            return
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        age = (self.clock() - issued_at).total_seconds()
        if age > self.ttl_seconds:
            raise ConfirmationRejectedError(
                f"Confirmation for {action.tool_name} expired "
                f"({int(age)}s old, limit {self.ttl_seconds}s).",
                code="DD-CONF-002",
                context={"tool": action.tool_name, "age_s": int(age)},
            )
