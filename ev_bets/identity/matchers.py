"""
Ordered matcher strategies for identity resolution.

Each matcher implements one pass of the resolver. A pass returns every
candidate it accepts; the resolver turns that into a confidence using
the matcher's base confidence, the team hint and an ambiguity penalty.

The confidences below encode matching precedence: a pass earlier in the
default order always carries a higher base confidence than a later one.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from rapidfuzz import fuzz

from .aliases import same_player_alias, same_team_alias
from .normalization import (
    looks_like_initials,
    normalize_player_name,
    normalize_team_name,
    split_name,
)

# Base confidences per pass
EXACT_CONFIDENCE = 1.0
FIRST_LAST_CONFIDENCE = 0.9
PARTIAL_CONFIDENCE = 0.85
ALIAS_CONFIDENCE = 0.8
INITIALS_CONFIDENCE = 0.75
SINGLE_WORD_CONFIDENCE = 0.7
LAST_NAME_ONLY_CONFIDENCE = 0.5

TEAM_EXACT_CONFIDENCE = 1.0
TEAM_ALIAS_CONFIDENCE = 0.9
TEAM_CONTAINS_CONFIDENCE = 0.7
TEAM_FUZZY_CONFIDENCE = 0.6

# Minimum rapidfuzz token_set_ratio for a fuzzy team match
TEAM_FUZZY_CUTOFF = 88
# Shorter name must be at least this long for a containment match
TEAM_CONTAINS_MIN_LENGTH = 4


@dataclass
class PlayerCandidate:
    """A provider's player record, reduced to what matching needs."""

    id: Any
    first_name: str = ""
    last_name: str = ""
    display_name: Optional[str] = None
    team: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def name(self) -> str:
        return self.display_name or self.full_name

    def normalized_names(self) -> list[str]:
        names = [normalize_player_name(n) for n in (self.full_name, self.display_name) if n]
        return list(dict.fromkeys(n for n in names if n))

    def normalized_parts(self) -> tuple[str, str]:
        """Normalized (first, last) name."""
        if self.first_name and self.last_name:
            return (
                normalize_player_name(self.first_name),
                normalize_player_name(self.last_name),
            )
        first, last = split_name(normalize_player_name(self.name))
        return first, last


@dataclass
class TeamCandidate:
    """A provider's team record."""

    id: Any
    name: str
    short_code: Optional[str] = None
    raw: dict = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class NameQuery:
    """A player name prepared for matching."""

    raw: str
    normalized: str
    first: str
    last: str
    raw_first: str
    team_hint: Optional[str] = None

    @classmethod
    def parse(cls, name: str, team_hint: Optional[str] = None) -> "NameQuery":
        normalized = normalize_player_name(name)
        first, last = split_name(normalized)
        raw_first, _ = split_name(name)
        return cls(
            raw=name,
            normalized=normalized,
            first=first,
            last=last,
            raw_first=raw_first,
            team_hint=team_hint,
        )

    @property
    def is_multi_word(self) -> bool:
        return bool(self.last)


class PlayerMatcher(ABC):
    """One resolution pass over player candidates."""

    name: str = "player"
    confidence: float = 0.0

    def try_match(
        self, query: NameQuery, candidates: list[PlayerCandidate]
    ) -> list[PlayerCandidate]:
        """Candidates accepted by this pass, in input order."""
        if not self.applies(query):
            return []
        return [c for c in candidates if self.matches(query, c)]

    def applies(self, query: NameQuery) -> bool:
        return bool(query.normalized)

    @abstractmethod
    def matches(self, query: NameQuery, candidate: PlayerCandidate) -> bool:
        pass


class ExactNameMatcher(PlayerMatcher):
    """Full normalized name equality."""

    name = "exact"
    confidence = EXACT_CONFIDENCE

    def matches(self, query, candidate):
        return query.normalized in candidate.normalized_names()


class FirstLastMatcher(PlayerMatcher):
    """First and last name equal after normalization."""

    name = "first_last"
    confidence = FIRST_LAST_CONFIDENCE

    def applies(self, query):
        return query.is_multi_word

    def matches(self, query, candidate):
        first, last = candidate.normalized_parts()
        return first == query.first and last == query.last


class PartialNameMatcher(PlayerMatcher):
    """
    One name part equal and the other compatible.

    Same first name with the last name contained in the candidate's
    ("Washington" in "Washington Jr"), or same last name with the first
    name a prefix either way ("Nic" / "Nicolas").
    """

    name = "partial"
    confidence = PARTIAL_CONFIDENCE

    def applies(self, query):
        return query.is_multi_word

    def matches(self, query, candidate):
        first, last = candidate.normalized_parts()
        if not first or not last:
            return False
        if first == query.first and query.last in last:
            return True
        if last == query.last:
            return (
                query.first in first
                or first.startswith(query.first)
                or query.first.startswith(first)
            )
        return False


class AliasMatcher(PlayerMatcher):
    """Known nickname or abbreviation."""

    name = "alias"
    confidence = ALIAS_CONFIDENCE

    def matches(self, query, candidate):
        return any(same_player_alias(query.raw, n) for n in candidate.normalized_names())


class InitialsMatcher(PlayerMatcher):
    """Last-name match when the first name is a genuine initials pattern."""

    name = "initials"
    confidence = INITIALS_CONFIDENCE

    def applies(self, query):
        return query.is_multi_word and looks_like_initials(query.raw_first)

    def matches(self, query, candidate):
        return candidate.normalized_parts()[1] == query.last


class SingleWordMatcher(PlayerMatcher):
    """A one-word query ("Raphinha") against any part of the candidate's name."""

    name = "single_word"
    confidence = SINGLE_WORD_CONFIDENCE

    def applies(self, query):
        return bool(query.normalized) and not query.is_multi_word

    def matches(self, query, candidate):
        for full in candidate.normalized_names():
            for part in full.split(" "):
                if len(part) <= 1:
                    continue
                if part == query.normalized or query.normalized in part or part in query.normalized:
                    return True
        return False


class LastNameOnlyMatcher(PlayerMatcher):
    """Last name appears anywhere in the candidate's name."""

    name = "last_name_only"
    confidence = LAST_NAME_ONLY_CONFIDENCE

    def applies(self, query):
        return query.is_multi_word and len(query.last) > 1

    def matches(self, query, candidate):
        return any(query.last in full.split(" ") for full in candidate.normalized_names())


# NBA catalogs carry clean first/last fields; a bare last-name hit is not trusted
NBA_PLAYER_MATCHERS: tuple[PlayerMatcher, ...] = (
    ExactNameMatcher(),
    FirstLastMatcher(),
    PartialNameMatcher(),
    AliasMatcher(),
    InitialsMatcher(),
)

SOCCER_PLAYER_MATCHERS: tuple[PlayerMatcher, ...] = NBA_PLAYER_MATCHERS + (
    SingleWordMatcher(),
    LastNameOnlyMatcher(),
)


class TeamMatcher(ABC):
    """One resolution pass over team candidates."""

    name: str = "team"
    confidence: float = 0.0

    def try_match(
        self, variants: list[str], candidates: list[TeamCandidate]
    ) -> list[TeamCandidate]:
        return [c for c in candidates if any(self.matches(v, c) for v in variants)]

    @abstractmethod
    def matches(self, variant: str, candidate: TeamCandidate) -> bool:
        pass


class ExactTeamMatcher(TeamMatcher):
    name = "team_exact"
    confidence = TEAM_EXACT_CONFIDENCE

    def matches(self, variant, candidate):
        return normalize_team_name(variant) == normalize_team_name(candidate.name)


class AliasTeamMatcher(TeamMatcher):
    name = "team_alias"
    confidence = TEAM_ALIAS_CONFIDENCE

    def matches(self, variant, candidate):
        return same_team_alias(variant, candidate.name)


class ContainsTeamMatcher(TeamMatcher):
    name = "team_contains"
    confidence = TEAM_CONTAINS_CONFIDENCE

    def matches(self, variant, candidate):
        a = normalize_team_name(variant)
        b = normalize_team_name(candidate.name)
        shorter, longer = sorted((a, b), key=len)
        if len(shorter) < TEAM_CONTAINS_MIN_LENGTH:
            return False
        return f" {shorter} " in f" {longer} "


class FuzzyTeamMatcher(TeamMatcher):
    """Token-set similarity for spelling differences ("Munchen" / "Munich")."""

    name = "team_fuzzy"
    confidence = TEAM_FUZZY_CONFIDENCE

    def __init__(self, cutoff: int = TEAM_FUZZY_CUTOFF):
        self.cutoff = cutoff

    def matches(self, variant, candidate):
        score = fuzz.token_set_ratio(
            normalize_team_name(variant), normalize_team_name(candidate.name)
        )
        return score >= self.cutoff


TEAM_MATCHERS: tuple[TeamMatcher, ...] = (
    ExactTeamMatcher(),
    AliasTeamMatcher(),
    ContainsTeamMatcher(),
    FuzzyTeamMatcher(),
)


def teams_match(name1: Optional[str], name2: Optional[str]) -> bool:
    """Whether two team names plausibly refer to the same club."""
    if not name1 or not name2:
        return False
    candidate = TeamCandidate(id=None, name=name2)
    return any(m.matches(name1, candidate) for m in TEAM_MATCHERS[:3])
