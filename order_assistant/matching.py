"""
Item name matching.

Resolves customer-typed names ("2 trios", "the Trio Box") to catalog items or
draft lines. Candidates are scored and the best one wins; on equal scores the
candidate that appears first in the supplied order wins, so results are
deterministic given catalog order.

Scores:
    EXACT        name == query (case/whitespace-insensitive)
    PREFIX       name starts with query
    SUBSTRING    query appears inside name
    CONTAINED    name appears inside query ("I want the trio please")
"""

import re
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")

EXACT = 4
PREFIX = 3
SUBSTRING = 2
CONTAINED = 1

_WS = re.compile(r"\s+")


def normalize(text: str) -> str:
    return _WS.sub(" ", (text or "").strip().lower())


def score(candidate_name: str, query: str) -> int:
    """Score one candidate name against an already-normalized query. 0 = no match."""
    name = normalize(candidate_name)
    if not name or not query:
        return 0
    if name == query:
        return EXACT
    if name.startswith(query):
        return PREFIX
    if query in name:
        return SUBSTRING
    if name in query:
        return CONTAINED
    return 0


@dataclass
class Match(Generic[T]):
    candidate: T
    score: int
    index: int


class ItemNameMatcher(Generic[T]):
    """
    Scored matcher over any sequence of candidates.

    Args:
        name_of: how to read a candidate's display name (defaults to .name)
    """

    def __init__(self, name_of: Callable[[T], str] = None):
        self._name_of = name_of or (lambda candidate: candidate.name)

    def rank(self, query: str, candidates: Sequence[T]) -> List[Match[T]]:
        """All matching candidates, best first, ties in candidate order."""
        normalized = normalize(query)
        matches = []
        for index, candidate in enumerate(candidates):
            value = score(self._name_of(candidate), normalized)
            if value:
                matches.append(Match(candidate=candidate, score=value, index=index))
        matches.sort(key=lambda m: (-m.score, m.index))
        return matches

    def best(self, query: str, candidates: Sequence[T]) -> Optional[T]:
        ranked = self.rank(query, candidates)
        return ranked[0].candidate if ranked else None
