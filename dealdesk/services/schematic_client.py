"""
Schematic Client: HTTP client for the schematic lookup service.
================================================================

The service speaks the OpenAI tool-call shape: the lookup request is sent
as the JSON-encoded arguments of a single tool call inside
choices[0].message.tool_calls. It answers with a flat JSON object whose
status is "success" or "error".

Implements the SchematicCollaborator interface. Transport failures come back
as an error SchematicResponse; there are no retries here.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import httpx

from dealdesk.config import settings
from dealdesk.core.redaction import redact_message
from dealdesk.services.collaborators import SchematicRequest, SchematicResponse

logger = logging.getLogger(__name__)

_KNOWN_FIELDS = {
    "status", "message", "component_id", "component_name",
    "machine_model", "image_path", "manual_context",
}


def _envelope(request: SchematicRequest) -> dict:
    arguments = {"component_name": request.component_name}
    if request.machine_model:
        arguments["machine_model"] = request.machine_model
    if request.additional_context:
        arguments["additional_context"] = request.additional_context
    return {
        "choices": [{
            "message": {
                "tool_calls": [{
                    "function": {"arguments": json.dumps(arguments)},
                }],
            },
        }],
    }


class SchematicServiceClient:
    """Async HTTP client for POST {base_url}/tool-call."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or settings.schematic_service_url).rstrip("/")
        self._timeout = timeout or settings.schematic_timeout_s
        self._transport = transport

    async def lookup(self, request: SchematicRequest) -> SchematicResponse:
        url = f"{self._base_url}/tool-call"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=_envelope(request))
        except httpx.TimeoutException:
            logger.warning("Schematic service timed out after %ss", self._timeout)
            return SchematicResponse(
                status="error", message=f"Schematic service timed out after {self._timeout:g}s",
            )
        except httpx.HTTPError as e:
            logger.warning("Schematic service unreachable: %s", redact_message(str(e)))
            return SchematicResponse(status="error", message="Schematic service is unavailable")

        if resp.status_code != 200:
            logger.warning("Schematic service returned HTTP %d", resp.status_code)
            return SchematicResponse(
                status="error",
                message=f"Schematic service returned {resp.status_code}",
            )

        try:
            data = resp.json()
        except ValueError:
            return SchematicResponse(status="error", message="Schematic service returned invalid JSON")
        if not isinstance(data, dict):
            return SchematicResponse(status="error", message="Schematic service returned invalid JSON")

        return SchematicResponse(
            status=data.get("status") or "error",
            message=data.get("message"),
            component_id=data.get("component_id"),
            component_name=data.get("component_name"),
            machine_model=data.get("machine_model"),
            image_path=data.get("image_path"),
            manual_context=data.get("manual_context"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )
