"""
Known nicknames and abbreviations.

Keys are canonical normalized names; values are the variants a provider
may use instead. Add production-confirmed mismatches here rather than
loosening the matcher thresholds.
"""
from typing import Callable, Mapping, Optional

from .normalization import normalize_player_name, normalize_team_name

PLAYER_NAME_ALIASES: dict[str, list[str]] = {
    "mohamed salah": ["mo salah", "m salah", "salah m"],
    "cristiano ronaldo": ["c ronaldo", "ronaldo c", "cr7"],
    "lionel messi": ["leo messi", "l messi", "messi l"],
    "kevin de bruyne": ["k de bruyne", "de bruyne k", "kdb"],
    "robert lewandowski": ["r lewandowski", "lewandowski r", "lewy"],
    "erling haaland": ["e haaland", "haaland e"],
    "kylian mbappe": ["k mbappe", "mbappe k"],
    "neymar": ["neymar junior", "neymar da silva santos"],
    "raphinha": ["raphael dias belloli"],
    "rodrygo": ["rodrygo goes"],
    "vinicius": ["vinicius junior", "vini", "vinicius jose paixao de oliveira"],
    "nicolas claxton": ["nic claxton"],
    "cameron johnson": ["cam johnson"],
    "herbert jones": ["herb jones"],
    "moritz wagner": ["moe wagner"],
}

TEAM_NAME_ALIASES: dict[str, list[str]] = {
    "manchester united": ["man united", "man utd", "mufc"],
    "manchester city": ["man city", "mcfc"],
    "tottenham hotspur": ["tottenham", "spurs", "thfc"],
    "wolverhampton wanderers": ["wolves", "wolverhampton"],
    "west ham united": ["west ham", "whu", "hammers"],
    "newcastle united": ["newcastle", "nufc"],
    "nottingham forest": ["nott forest", "nottm forest", "forest"],
    "brighton & hove albion": ["brighton", "brighton hove"],
    "crystal palace": ["palace", "cpfc"],
    "aston villa": ["villa", "avfc"],
    "leicester city": ["leicester", "lcfc"],
    "real madrid": ["r madrid", "madrid"],
    "atletico madrid": ["atletico", "atl madrid"],
    "barcelona": ["barca", "fc barcelona"],
    "bayern munich": ["bayern", "fc bayern", "bayern munchen"],
    "borussia dortmund": ["dortmund", "bvb"],
    "paris saint-germain": ["psg", "paris sg"],
    "inter milan": ["inter", "internazionale"],
    "ac milan": ["milan"],
    "juventus": ["juve"],
}


def _build_index(
    table: Mapping[str, list[str]], normalize: Callable[[str], str]
) -> dict[str, str]:
    index: dict[str, str] = {}
    for canonical, variants in table.items():
        key = normalize(canonical)
        index[key] = key
        for variant in variants:
            index[normalize(variant)] = key
    return index


_PLAYER_INDEX = _build_index(PLAYER_NAME_ALIASES, normalize_player_name)
_TEAM_INDEX = _build_index(TEAM_NAME_ALIASES, normalize_team_name)


def canonical_player_name(name: str) -> Optional[str]:
    """
    Canonical alias-group key for a player name, if it has one.

    Examples:
        >>> canonical_player_name("Mo Salah")
        'mohamed salah'
        >>> canonical_player_name("Nobody Special") is None
        True
    """
    return _PLAYER_INDEX.get(normalize_player_name(name))


def canonical_team_name(name: str) -> Optional[str]:
    """Canonical alias-group key for a team name, if it has one."""
    return _TEAM_INDEX.get(normalize_team_name(name))


def same_player_alias(name1: str, name2: str) -> bool:
    """Whether both names belong to the same alias group."""
    key = canonical_player_name(name1)
    return key is not None and key == canonical_player_name(name2)


def same_team_alias(name1: str, name2: str) -> bool:
    key = canonical_team_name(name1)
    return key is not None and key == canonical_team_name(name2)
