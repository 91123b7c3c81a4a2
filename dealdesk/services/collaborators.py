"""
Collaborator interfaces consumed by the dispatch core.

Storage, email, CRM, document sharing and the schematic lookup service are
implemented elsewhere; handlers only see these narrow async interfaces.
Every call a handler makes is wrapped in call_collaborator() with the
configured timeout. Retries, if any, belong to the implementations.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable

from dealdesk.models.deal import Deal, DealActivity
from dealdesk.models.sources import CanonicalCitation


@dataclass(frozen=True)
class CollaboratorResponse:
    """Success/failure envelope returned by email and CRM collaborators."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class EmailDraft:
    to: List[str]
    subject: str
    body: str
    body_type: str = "text"


@dataclass(frozen=True)
class SchematicRequest:
    component_name: str
    machine_model: Optional[str] = None
    additional_context: Optional[str] = None


@dataclass(frozen=True)
class SchematicResponse:
    status: str  # "success" | "error"
    message: Optional[str] = None
    component_id: Optional[str] = None
    component_name: Optional[str] = None
    machine_model: Optional[str] = None
    image_path: Optional[str] = None
    manual_context: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class EntityStore(Protocol):
    """Deal and activity storage."""

    async def get_by_id(self, entity_id: str) -> Optional[Deal]: ...

    async def list_all(self) -> List[Deal]: ...

    async def update(self, entity_id: str, partial: Mapping[str, Any]) -> Optional[Deal]: ...

    async def create_child_record(self, parent_id: str, payload: Mapping[str, Any]) -> DealActivity: ...

    async def list_children(self, parent_id: Optional[str] = None) -> List[DealActivity]:
        """Activities newest first; every deal's activities when parent_id is None."""
        ...


@runtime_checkable
class CitationStore(Protocol):
    async def attach(self, record_id: str, citation: CanonicalCitation) -> CanonicalCitation: ...


@runtime_checkable
class EmailCollaborator(Protocol):
    async def create_draft(self, draft: EmailDraft) -> CollaboratorResponse: ...


@runtime_checkable
class CRMCollaborator(Protocol):
    async def search_deals(self, query: str, limit: int) -> CollaboratorResponse: ...


@runtime_checkable
class SharingLinkCollaborator(Protocol):
    async def create_sharing_links(self, item_ids: Sequence[str]) -> Dict[str, str]:
        """Map cloud item id → shareable URL. Ids that fail are simply absent."""
        ...


@runtime_checkable
class SchematicCollaborator(Protocol):
    async def lookup(self, request: SchematicRequest) -> SchematicResponse: ...
