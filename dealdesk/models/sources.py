"""
Conversation Source Models
==========================

Evidence references collected by the RAG layer during a conversation, and
the canonical citations persisted against records created from that
conversation.

The conversation loop sends source references with camelCase keys
(fileName, relevanceScore, fromOtherDeal, ...). Both spellings are accepted.
"""

import posixpath
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def normalize_file_path(path: str) -> str:
    """Dedup key for a source path.

    Surrounding whitespace is stripped, Windows separators are unified to
    '/', and redundant segments are collapsed. Case is preserved.
    """
    cleaned = path.strip().replace("\\", "/")
    if not cleaned:
        return ""
    return posixpath.normpath(cleaned)


class ConversationSourceRef(BaseModel):
    """A document chunk the assistant referenced during the conversation."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    file_path: str = Field(alias="filePath")
    section: Optional[str] = None
    page_number: Optional[int] = Field(default=None, alias="pageNumber")
    source: Optional[Literal["local", "onedrive"]] = None
    one_drive_id: Optional[str] = Field(default=None, alias="oneDriveId")
    relevance_score: Optional[float] = Field(default=None, alias="relevanceScore")
    from_other_deal: bool = Field(default=False, alias="fromOtherDeal")
    deal_id: Optional[str] = Field(default=None, alias="dealId")

    @property
    def normalized_path(self) -> str:
        return normalize_file_path(self.file_path)


class CanonicalCitation(BaseModel):
    """A deduplicated citation attached to a created record."""
    id: Optional[str] = None
    file_name: str
    file_path: str
    section: Optional[str] = None
    page_number: Optional[int] = None
    source: Optional[Literal["local", "onedrive"]] = None
    one_drive_id: Optional[str] = None

    @classmethod
    def from_source(cls, ref: ConversationSourceRef) -> "CanonicalCitation":
        return cls(
            file_name=ref.file_name,
            file_path=ref.normalized_path,
            section=ref.section,
            page_number=ref.page_number,
            source=ref.source,
            one_drive_id=ref.one_drive_id,
        )


class ToolContext(BaseModel):
    """Read-only conversation context handed to every tool handler."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    rag_sources: List[ConversationSourceRef] = Field(default_factory=list, alias="ragSources")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
