"""
Tool Result Envelope
====================

The uniform contract every dispatch returns to the conversation loop:

    { success, data?, error?, message?, requiresConfirmation?, actionTaken? }

Three shapes:
1. ok: success=True, data + display-ready message, optional actionTaken tag
2. fail: success=False, short diagnostic in error
3. confirmation: success=False, requiresConfirmation=True, a prompt in message
   and data = {pendingAction: <tool>, ...params to echo back}

The envelope refuses to be built in violation of these invariants.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
    requires_confirmation: bool = False
    action_taken: Optional[str] = None

    def __post_init__(self) -> None:
        if self.error is not None and self.success:
            raise ValueError("ToolResult with an error cannot be successful")
        if self.requires_confirmation:
            if self.success:
                raise ValueError("A pending confirmation cannot be successful")
            if not isinstance(self.data, dict) or "pendingAction" not in self.data:
                raise ValueError("A pending confirmation must carry data.pendingAction")

    @classmethod
    def ok(
        cls,
        data: Any = None,
        message: Optional[str] = None,
        action_taken: Optional[str] = None,
    ) -> "ToolResult":
        return cls(success=True, data=data, message=message, action_taken=action_taken)

    @classmethod
    def fail(cls, error: str, message: Optional[str] = None) -> "ToolResult":
        return cls(success=False, error=error, message=message)

    @classmethod
    def confirmation(
        cls,
        pending_action: str,
        params: Dict[str, Any],
        message: str,
    ) -> "ToolResult":
        data = {"pendingAction": pending_action, **params}
        return cls(success=False, data=data, message=message, requires_confirmation=True)

    @property
    def pending_action(self) -> Optional[Dict[str, Any]]:
        """The parameters to echo back with confirmed=true, if any."""
        if not self.requires_confirmation:
            return None
        return {k: v for k, v in self.data.items() if k != "pendingAction"}

    def to_wire(self) -> Dict[str, Any]:
        """Render the wire response, omitting unset optional keys."""
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        if self.message is not None:
            out["message"] = self.message
        if self.requires_confirmation:
            out["requiresConfirmation"] = True
        if self.action_taken is not None:
            out["actionTaken"] = self.action_taken
        return out
