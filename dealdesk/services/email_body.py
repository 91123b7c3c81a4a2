"""
Plain-text email body composition for draft_email.

Only sources with a sharing link are listed: local file paths mean nothing
to the recipient.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

SOURCES_RULE = "────────────────────────────────"


@dataclass(frozen=True)
class EmailSource:
    file_name: str
    file_path: str
    section: Optional[str] = None
    page_number: Optional[int] = None
    share_link: Optional[str] = None


def format_sources_for_email(sources: Sequence[EmailSource]) -> str:
    linked = [s for s in sources if s.share_link]
    if not linked:
        return ""

    lines: List[str] = ["", SOURCES_RULE, "", "Sources:", ""]
    for source in linked:
        citation = f"  • {source.file_name}"
        if source.page_number:
            citation += f" (p. {source.page_number})"
        lines.append(citation)
        lines.append(f"    {source.share_link}")
        lines.append("")
    return "\n".join(lines)


def generate_email_body(
    summary: str,
    sources: Sequence[EmailSource] = (),
    include_greeting: bool = True,
    recipient_name: Optional[str] = None,
) -> str:
    parts: List[str] = []
    if include_greeting:
        parts.append(f"Hi {recipient_name}," if recipient_name else "Hi,")
        parts.append("")

    parts.append(summary)

    sources_section = format_sources_for_email(sources)
    if sources_section:
        parts.append(sources_section)

    parts.append("")
    parts.append("Best regards")
    return "\n".join(parts)
