"""
Fuzzy Resolver: ranks entities against a free-text reference.

Used by find_deal_by_name so the user can say "the Acme deal" instead of a
deal ID. Scores are shown to the user as confidence percentages, so the
scale below is fixed:

    0.90  query is a case-insensitive substring of the field
    0.80  else: a query token is a substring of, or contains, a field token
    0.85 * similarity
          else: best token pair by edit similarity, counted only when
          similarity > 0.60

A candidate's score is the maximum over its fields. Candidates scoring
0.50 or less are dropped. Ties keep candidate order.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, Sequence, TypeVar, Union

logger = logging.getLogger(__name__)

SUBSTRING_MATCH_SCORE = 0.9
TOKEN_CONTAINMENT_SCORE = 0.8
EDIT_SIMILARITY_WEIGHT = 0.85
EDIT_SIMILARITY_FLOOR = 0.6
MATCH_THRESHOLD = 0.5

T = TypeVar("T")

FieldGetter = Union[str, Callable[[T], Optional[str]]]

DEAL_MATCH_FIELDS = ("borrower_name", "deal_number", "assigned_to", "collateral_description")


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute edit distance."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    curr = [0] * (len(b) + 1)
    for i in range(1, len(a) + 1):
        curr[0] = i
        for j in range(1, len(b) + 1):
            if a[i - 1] == b[j - 1]:
                curr[j] = prev[j - 1]
            else:
                curr[j] = 1 + min(prev[j], curr[j - 1], prev[j - 1])
        prev, curr = curr, prev
    return prev[len(b)]


def edit_similarity(a: str, b: str) -> float:
    """1 - distance / max length, case-insensitive.

    Two empty strings have similarity 1.0: with max length 0 the formula
    is defined that way, and callers rely on it.
    """
    max_length = max(len(a), len(b))
    if max_length == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a.lower(), b.lower()) / max_length


def score_field(query: str, field_value: str) -> float:
    """Score one field against the query on the fixed tier scale."""
    query_lower = query.lower()
    field_lower = field_value.lower()

    if query_lower in field_lower:
        return SUBSTRING_MATCH_SCORE

    query_tokens = query_lower.split()
    field_tokens = field_lower.split()

    for q in query_tokens:
        for f in field_tokens:
            if q in f or f in q:
                return TOKEN_CONTAINMENT_SCORE

    best = 0.0
    for q in query_tokens:
        for f in field_tokens:
            similarity = edit_similarity(q, f)
            if similarity > EDIT_SIMILARITY_FLOOR:
                best = max(best, similarity * EDIT_SIMILARITY_WEIGHT)
    return best


@dataclass(frozen=True)
class EntityMatch(Generic[T]):
    candidate: T
    score: float

    @property
    def confidence(self) -> int:
        """Score as a whole percentage, as shown to the user."""
        return round(self.score * 100)


class FuzzyResolver(Generic[T]):
    """Scores candidates on a fixed list of textual fields."""

    def __init__(self, fields: Sequence[FieldGetter], threshold: float = MATCH_THRESHOLD) -> None:
        if not fields:
            raise ValueError("FuzzyResolver needs at least one field")
        self._getters: List[Callable[[T], Optional[str]]] = [
            self._attr_getter(f) if isinstance(f, str) else f for f in fields
        ]
        self.threshold = threshold

    @staticmethod
    def _attr_getter(name: str) -> Callable[[T], Optional[str]]:
        return lambda candidate: getattr(candidate, name, None)

    def score(self, query: str, candidate: T) -> float:
        best = 0.0
        for getter in self._getters:
            value = getter(candidate)
            if not value or not value.strip():
                continue
            best = max(best, score_field(query, value))
        return best

    def resolve(self, query: str, candidates: Iterable[T]) -> List[EntityMatch[T]]:
        """Matches scoring above the threshold, best first."""
        query = query.strip()
        if not query:
            return []

        matches = []
        for candidate in candidates:
            s = self.score(query, candidate)
            if s > self.threshold:
                matches.append(EntityMatch(candidate=candidate, score=s))

        # sorted() is stable: equal scores keep candidate order
        matches = sorted(matches, key=lambda m: m.score, reverse=True)
        logger.debug("fuzzy resolve query=%r matches=%d", query, len(matches))
        return matches


def deal_resolver() -> "FuzzyResolver":
    return FuzzyResolver(DEAL_MATCH_FIELDS)
