"""
Async utilities for bounding collaborator calls.

Every storage, email and CRM call made by a tool handler goes through
call_collaborator() so that a hung collaborator turns into an ordinary
failed ToolResult instead of a stuck conversation turn.
"""

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

from dealdesk.core.errors import CollaboratorTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_collaborator(awaitable: Awaitable[T], *, name: str, timeout: float) -> T:
    """
    Await a collaborator call with a bounded timeout.

    Args:
        awaitable: The pending collaborator call.
        name: Label used in logs and in the timeout message, e.g. "entity_store.update".
        timeout: Maximum seconds to wait.

    Returns:
        The collaborator's return value.

    Raises:
        CollaboratorTimeoutError: If the call exceeds the timeout.
        Exception: Any exception raised by the collaborator propagates unchanged.
    """
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        elapsed = (time.perf_counter() - start) * 1000
        logger.warning("collaborator %s timed out after %.0fms", name, elapsed)
        raise CollaboratorTimeoutError(
            f"{name} timed out after {timeout:g}s",
            context={"collaborator": name},
        )
    elapsed = (time.perf_counter() - start) * 1000
    logger.debug("collaborator %s completed in %.2fms", name, elapsed)
    return result
