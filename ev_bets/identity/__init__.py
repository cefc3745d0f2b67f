"""
Player and team identity resolution across providers.

Provides:
- Name normalization (accents, punctuation, suffixes, club prefixes)
- Alias tables for nicknames and abbreviations
- Ordered matcher passes and the identity resolver
- Aggregator-to-provider player id mapping
"""

from .normalization import (
    looks_like_initials,
    normalize_player_name,
    normalize_team_name,
    simplify_team_name,
    split_name,
    strip_accents,
    team_search_variants,
)

from .aliases import (
    PLAYER_NAME_ALIASES,
    TEAM_NAME_ALIASES,
    canonical_player_name,
    canonical_team_name,
    same_player_alias,
    same_team_alias,
)

from .matchers import (
    NBA_PLAYER_MATCHERS,
    SOCCER_PLAYER_MATCHERS,
    TEAM_MATCHERS,
    NameQuery,
    PlayerCandidate,
    PlayerMatcher,
    TeamCandidate,
    TeamMatcher,
    teams_match,
)

from .resolver import (
    MIN_CONFIDENCE_MULTI_WORD,
    MIN_CONFIDENCE_SINGLE_WORD,
    IdentityResolver,
    Match,
)

from .player_mapping import (
    PlayerIdentity,
    PlayerIdentityMap,
    mapping_confidence,
    name_confidence,
)

__all__ = [
    # Normalization
    "looks_like_initials",
    "normalize_player_name",
    "normalize_team_name",
    "simplify_team_name",
    "split_name",
    "strip_accents",
    "team_search_variants",
    # Aliases
    "PLAYER_NAME_ALIASES",
    "TEAM_NAME_ALIASES",
    "canonical_player_name",
    "canonical_team_name",
    "same_player_alias",
    "same_team_alias",
    # Matchers
    "NBA_PLAYER_MATCHERS",
    "SOCCER_PLAYER_MATCHERS",
    "TEAM_MATCHERS",
    "NameQuery",
    "PlayerCandidate",
    "PlayerMatcher",
    "TeamCandidate",
    "TeamMatcher",
    "teams_match",
    # Resolver
    "MIN_CONFIDENCE_MULTI_WORD",
    "MIN_CONFIDENCE_SINGLE_WORD",
    "IdentityResolver",
    "Match",
    # Mapping
    "PlayerIdentity",
    "PlayerIdentityMap",
    "mapping_confidence",
    "name_confidence",
]
