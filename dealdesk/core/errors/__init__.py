"""
Error code system for the tool-call dispatch core.

DealDeskError is the base exception for all structured errors. Handlers
raise a subclass; the dispatcher catches it at its boundary and turns it
into a failed ToolResult. Codes are described in registry.yaml.

Usage:
    from dealdesk.core.errors import EntityNotFoundError
    raise EntityNotFoundError("Deal", deal_id)
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^DD-[A-Z]{2,6}-\d{3}$")


class DealDeskError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "DD-DEAL-001".
        message: Short diagnostic placed in ToolResult.error.
        context: Arbitrary key-value context for structured logging.
    """

    default_code = "DD-SYS-001"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        code = code or self.default_code
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.message = message
        self.context = context or {}
        super().__init__(message)


class UnknownToolError(DealDeskError):
    default_code = "DD-TOOL-001"

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}", context={"tool": tool_name})
        self.tool_name = tool_name


class ToolArgumentError(DealDeskError):
    """A required argument is missing or an argument has the wrong shape."""

    default_code = "DD-ARG-001"


class EntityNotFoundError(DealDeskError):
    default_code = "DD-DEAL-001"

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(
            f'{kind} with ID "{entity_id}" not found.',
            context={"kind": kind, "entity_id": entity_id},
        )
        self.entity_id = entity_id


class ConfirmationRejectedError(DealDeskError):
    """A confirmed call could not be honoured (stale, expired, same turn)."""

    default_code = "DD-CONF-001"


class CollaboratorError(DealDeskError):
    """An external system (storage, email, CRM) reported a failure."""

    default_code = "DD-COLL-001"


class CollaboratorTimeoutError(CollaboratorError):
    default_code = "DD-COLL-002"


class DuplicateToolError(DealDeskError):
    default_code = "DD-CAT-001"

    def __init__(self, tool_name: str) -> None:
        super().__init__(
            f"Tool already registered: {tool_name}", context={"tool": tool_name}
        )
