"""
Citation Aggregator: turns conversation sources into record citations.

When a record (a deal activity) is created from a conversation, the
documents the assistant referenced are attached to it as evidence:

1. Eligibility: score missing or >= threshold, and not from another deal
2. Ranking: score descending; a missing score ranks as 1.0
3. Dedup: first occurrence per normalized file path wins
4. Persistence: one CitationStore.attach() per survivor; a failure is
   logged and skipped, never propagated

The record itself is created before any of this runs, so citation trouble
can only lower the attached count.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from dealdesk.core.async_utils import call_collaborator
from dealdesk.core.redaction import redact_message
from dealdesk.models.sources import CanonicalCitation, ConversationSourceRef
from dealdesk.services.collaborators import CitationStore

logger = logging.getLogger(__name__)

# Sources scored before relevance scoring existed carry no score. They rank
# as fully relevant.
MISSING_SCORE_RANK = 1.0


def is_eligible(ref: ConversationSourceRef, threshold: float) -> bool:
    has_good_score = ref.relevance_score is None or ref.relevance_score >= threshold
    return has_good_score and not ref.from_other_deal


def rank_key(ref: ConversationSourceRef) -> float:
    if ref.relevance_score is None:
        return MISSING_SCORE_RANK
    return ref.relevance_score


def rank_sources(refs: Iterable[ConversationSourceRef]) -> List[ConversationSourceRef]:
    """Score descending, stable for equal scores."""
    return sorted(refs, key=rank_key, reverse=True)


def dedupe_by_path(
    ranked: Iterable[ConversationSourceRef],
) -> Tuple[List[ConversationSourceRef], int]:
    """Keep the first source per normalized path. Returns (kept, dropped_count)."""
    seen = set()
    kept: List[ConversationSourceRef] = []
    dropped = 0
    for ref in ranked:
        key = ref.normalized_path
        if key in seen:
            dropped += 1
            logger.debug("Dropping duplicate source for path %s", key)
            continue
        seen.add(key)
        kept.append(ref)
    return kept, dropped


@dataclass
class AggregationReport:
    attached: List[CanonicalCitation] = field(default_factory=list)
    ineligible: int = 0
    duplicates: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def sources_added(self) -> int:
        return len(self.attached)


class CitationAggregator:
    """Filter, rank, dedupe and attach conversation sources to a record."""

    def __init__(self, citation_store: CitationStore, timeout: float) -> None:
        self.citation_store = citation_store
        self.timeout = timeout

    def select(
        self,
        refs: Sequence[ConversationSourceRef],
        threshold: float,
    ) -> Tuple[List[ConversationSourceRef], int, int]:
        """Eligible, ranked, deduplicated sources plus (ineligible, duplicate) counts."""
        eligible = [r for r in refs if is_eligible(r, threshold) and r.normalized_path]
        ineligible = len(refs) - len(eligible)
        kept, duplicates = dedupe_by_path(rank_sources(eligible))
        return kept, ineligible, duplicates

    async def attach(
        self,
        record_id: str,
        refs: Sequence[ConversationSourceRef],
        threshold: float,
    ) -> AggregationReport:
        selected, ineligible, duplicates = self.select(refs, threshold)
        report = AggregationReport(ineligible=ineligible, duplicates=duplicates)

        for ref in selected:
            citation = CanonicalCitation.from_source(ref)
            try:
                stored: Optional[CanonicalCitation] = await call_collaborator(
                    self.citation_store.attach(record_id, citation),
                    name="citation_store.attach",
                    timeout=self.timeout,
                )
            except Exception as e:
                # DD-CIT-001: isolated per citation
                logger.warning(
                    "Failed to attach citation: record=%s path=%s error=%s",
                    record_id, citation.file_path, redact_message(str(e)),
                )
                report.failed.append(citation.file_path)
                continue
            report.attached.append(stored or citation)

        if ineligible:
            logger.info(
                "Skipped %d low-relevance or other-deal sources for record %s",
                ineligible, record_id,
            )
        return report
