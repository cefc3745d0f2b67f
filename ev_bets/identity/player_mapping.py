"""
Player identity mapping across providers.

A weak, in-process cross reference from the odds aggregator's player id
to each stats provider's player id. It is a lookup aid only: entries are
created after a confident resolution and never treated as proof that a
player exists.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ev_bets.config.constants import Sport

from .aliases import same_player_alias
from .matchers import teams_match
from .normalization import normalize_player_name

logger = logging.getLogger(__name__)

MIN_MAPPING_CONFIDENCE = 0.5
TEAM_MATCH_BONUS = 0.1
SURNAME_ONLY_CONFIDENCE = 0.3


def first_names_compatible(first1: str, first2: str) -> bool:
    """Equal, or one is an initial or shortening of the other."""
    return first1.startswith(first2) or first2.startswith(first1)


def name_confidence(name1: str, name2: str) -> float:
    """
    Similarity of two player names in [0, 1].

    Examples:
        >>> name_confidence("Erling Haaland", "Erling Haaland")
        1.0
        >>> name_confidence("E Haaland", "Erling Haaland")
        0.9
        >>> name_confidence("Ben White", "Bob White")
        0.3
    """
    n1 = normalize_player_name(name1)
    n2 = normalize_player_name(name2)
    if not n1 or not n2:
        return 0.0

    if n1 == n2:
        return 1.0

    if same_player_alias(n1, n2):
        return 0.9

    parts1 = n1.split(" ")
    parts2 = n2.split(" ")
    both_full = len(parts1) > 1 and len(parts2) > 1
    if both_full and parts1[-1] == parts2[-1] and len(parts1[-1]) > 2:
        if first_names_compatible(parts1[0], parts2[0]):
            return 0.8
        # A shared surname alone never clears the mapping threshold
        return SURNAME_ONLY_CONFIDENCE

    if n1 in n2 or n2 in n1:
        return 0.5

    return 0.0


def mapping_confidence(
    name: str,
    candidate_names: list[str],
    team: Optional[str] = None,
    candidate_team: Optional[str] = None,
) -> float:
    """Best name confidence over a candidate's names, plus the team bonus."""
    score = max((name_confidence(name, n) for n in candidate_names if n), default=0.0)
    if score > 0 and teams_match(team, candidate_team):
        score = min(1.0, score + TEAM_MATCH_BONUS)
    return score


@dataclass
class PlayerIdentity:
    """Cross reference for one aggregator player."""

    sport: Sport
    source_player_id: str
    source_player_name: str
    provider_ids: dict[str, Any] = field(default_factory=dict)
    provider_names: dict[str, str] = field(default_factory=dict)
    team_name: Optional[str] = None
    confidence: float = 1.0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def normalized_name(self) -> str:
        return normalize_player_name(self.source_player_name)


class PlayerIdentityMap:
    """
    Per-sport index of player identities.

    Keyed by aggregator player id, with a secondary normalized-name
    index for selections that carry no player id.
    """

    def __init__(self):
        self._by_id: dict[tuple[Sport, str], PlayerIdentity] = {}
        self._by_name: dict[tuple[Sport, str], str] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, sport: Sport, source_player_id: str) -> Optional[PlayerIdentity]:
        return self._by_id.get((sport, source_player_id))

    def provider_player(
        self, sport: Sport, source_player_id: str, provider: str
    ) -> Optional[tuple[Any, str]]:
        """(provider id, provider name) already linked for an aggregator player."""
        identity = self.get(sport, str(source_player_id))
        if identity is None or provider not in identity.provider_ids:
            return None
        return identity.provider_ids[provider], identity.provider_names[provider]

    def find_by_name(
        self,
        sport: Sport,
        name: str,
        team: Optional[str] = None,
    ) -> Optional[PlayerIdentity]:
        """
        Look up an identity by player name.

        An exact normalized-name hit wins; otherwise the best-scoring entry
        of the sport is returned if it clears the mapping threshold.
        """
        player_id = self._by_name.get((sport, normalize_player_name(name)))
        if player_id is not None:
            return self._by_id[(sport, player_id)]

        best: Optional[PlayerIdentity] = None
        best_score = 0.0
        for (entry_sport, _), identity in self._by_id.items():
            if entry_sport != sport:
                continue
            names = [identity.source_player_name, *identity.provider_names.values()]
            score = mapping_confidence(name, names, team, identity.team_name)
            if score > best_score:
                best, best_score = identity, score

        if best is not None and best_score >= MIN_MAPPING_CONFIDENCE:
            return best
        return None

    def link(
        self,
        sport: Sport,
        source_player_id: str,
        source_player_name: str,
        provider: str,
        provider_player_id: str,
        provider_player_name: str,
        team_name: Optional[str] = None,
        confidence: float = 1.0,
    ) -> PlayerIdentity:
        """Create or update the identity and attach one provider's id."""
        source_player_id = str(source_player_id)
        key = (sport, source_player_id)
        identity = self._by_id.get(key)
        if identity is None:
            identity = PlayerIdentity(
                sport=sport,
                source_player_id=source_player_id,
                source_player_name=source_player_name,
                team_name=team_name,
                confidence=confidence,
            )
            self._by_id[key] = identity
            logger.info(
                f"Mapped {sport.value} player '{source_player_name}' "
                f"to {provider}:{provider_player_id} ({confidence:.2f})"
            )
        else:
            identity.confidence = min(identity.confidence, confidence)
            identity.team_name = team_name or identity.team_name
            identity.updated_at = datetime.now(timezone.utc)

        identity.provider_ids[provider] = provider_player_id
        identity.provider_names[provider] = provider_player_name
        self._by_name[(sport, identity.normalized_name)] = source_player_id
        return identity

    def clear(self) -> None:
        self._by_id.clear()
        self._by_name.clear()
