"""
Cross-provider identity resolver.

Runs the ordered matcher passes over a provider's candidate records and
returns the first match whose confidence clears the bar. Precision is
favored over recall: when nothing clears the bar the result is None,
never a best guess.
"""
import logging
from dataclasses import dataclass
from typing import Generic, Optional, Sequence, TypeVar

from .matchers import (
    NBA_PLAYER_MATCHERS,
    TEAM_MATCHERS,
    NameQuery,
    PlayerCandidate,
    PlayerMatcher,
    TeamCandidate,
    TeamMatcher,
    teams_match,
)
from .normalization import team_search_variants

logger = logging.getLogger(__name__)

# Minimum confidence for accepting a match
MIN_CONFIDENCE_MULTI_WORD = 0.5
MIN_CONFIDENCE_SINGLE_WORD = 0.3

# Added when the candidate plays for the hinted team
TEAM_HINT_BONUS = 0.1
# Subtracted when a pass matches several candidates the team hint cannot separate
AMBIGUITY_PENALTY = 0.2

T = TypeVar("T")


@dataclass
class Match(Generic[T]):
    """A resolved identity."""

    candidate: T
    confidence: float
    matcher: str


class IdentityResolver:
    """
    Resolves free-text player and team names to provider records.

    Example:
        >>> resolver = IdentityResolver()
        >>> match = resolver.resolve_player("P.J. Washington", candidates)
        >>> match.candidate.id if match else None
    """

    def __init__(
        self,
        player_matchers: Sequence[PlayerMatcher] = NBA_PLAYER_MATCHERS,
        team_matchers: Sequence[TeamMatcher] = TEAM_MATCHERS,
        min_confidence_multi_word: float = MIN_CONFIDENCE_MULTI_WORD,
        min_confidence_single_word: float = MIN_CONFIDENCE_SINGLE_WORD,
    ):
        self.player_matchers = tuple(player_matchers)
        self.team_matchers = tuple(team_matchers)
        self.min_confidence_multi_word = min_confidence_multi_word
        self.min_confidence_single_word = min_confidence_single_word

    def threshold(self, name: str) -> float:
        """Acceptance bar: stricter for multi-word names."""
        if len(name.split()) > 1:
            return self.min_confidence_multi_word
        return self.min_confidence_single_word

    def resolve_player(
        self,
        name: str,
        candidates: Sequence[PlayerCandidate],
        team_hint: Optional[str] = None,
    ) -> Optional[Match[PlayerCandidate]]:
        """
        Best player match for a name, or None.

        Args:
            name: Free-text player name as quoted by the odds feed
            candidates: Provider records to choose from
            team_hint: Team the player is expected to play for

        Returns:
            Match from the first pass that clears the confidence bar
        """
        candidates = list(candidates)
        if not candidates or not name.strip():
            return None

        query = NameQuery.parse(name, team_hint)
        threshold = self.threshold(name)

        for matcher in self.player_matchers:
            hits = matcher.try_match(query, candidates)
            if not hits:
                continue

            candidate, confidence = self._pick(hits, matcher.confidence, team_hint)
            if confidence >= threshold:
                logger.debug(
                    f"Resolved player '{name}' -> '{candidate.name}' "
                    f"via {matcher.name} ({confidence:.2f})"
                )
                return Match(candidate, confidence, matcher.name)

            logger.debug(
                f"Player '{name}': {matcher.name} pass below threshold "
                f"({confidence:.2f} < {threshold})"
            )

        logger.debug(f"No confident match for player '{name}'")
        return None

    def _pick(
        self,
        hits: list[PlayerCandidate],
        base: float,
        team_hint: Optional[str],
    ) -> tuple[PlayerCandidate, float]:
        if team_hint:
            on_team = [c for c in hits if teams_match(team_hint, c.team)]
            if len(on_team) == 1:
                return on_team[0], min(1.0, base + TEAM_HINT_BONUS)
            if on_team:
                hits = on_team

        distinct = {c.id for c in hits}
        if len(distinct) > 1:
            return hits[0], base - AMBIGUITY_PENALTY
        return hits[0], base

    def resolve_team(
        self,
        name: str,
        candidates: Sequence[TeamCandidate],
    ) -> Optional[Match[TeamCandidate]]:
        """
        Best team match for a name, or None.

        Every pass is tried against all simplified variants of the name
        before moving to the next, looser pass.
        """
        candidates = list(candidates)
        if not candidates or not name.strip():
            return None

        variants = team_search_variants(name)
        threshold = self.threshold(name)

        for matcher in self.team_matchers:
            hits = matcher.try_match(variants, candidates)
            if not hits:
                continue

            confidence = matcher.confidence
            if len({c.id for c in hits}) > 1:
                confidence -= AMBIGUITY_PENALTY

            if confidence >= threshold:
                logger.debug(
                    f"Resolved team '{name}' -> '{hits[0].name}' "
                    f"via {matcher.name} ({confidence:.2f})"
                )
                return Match(hits[0], confidence, matcher.name)

        logger.debug(f"No confident match for team '{name}'")
        return None
