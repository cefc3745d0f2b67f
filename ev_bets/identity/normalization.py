"""
Name normalization for cross-provider matching.

Player and team names arrive from three providers with different
conventions for case, accents, punctuation, suffixes and club-type
prefixes. Everything here is a pure string function.
"""
import re
import unicodedata

_APOSTROPHES = re.compile(r"['’`]")
_SUFFIX = re.compile(r"\s+(jr|sr|iii|ii|iv|v)\.?$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_TEAM_TOKENS = re.compile(r"\b(fc|afc|sc|cf|ac|ssc)\b", re.IGNORECASE)

_CLUB_PREFIX = re.compile(
    r"^(BV|VfL|VfB|SV|TSV|FSV|SpVgg|RB|1\.\s*FC|FC|SC|SSC|AS|AC|US|SS|AJ|OGC|RC"
    r"|Stade|Olympique|Real|Atlético|Deportivo|CD|UD)\s+",
    re.IGNORECASE,
)
_YEAR_LEADING = re.compile(r"^\d{2,4}\s+")
_YEAR_INNER = re.compile(r"\s+\d{2,4}\s+")
_YEAR_TRAILING = re.compile(r"\s+\d{2,4}$")
_CLUB_SUFFIX = re.compile(r"\s+(FC|SC|CF|AC)$", re.IGNORECASE)

# Initials such as "PJ", "P.J.", "CJ"; short real names like "Ace" are excluded
_INITIALS = re.compile(r"^[A-Z]\.?[A-Z]\.?$", re.IGNORECASE)
_VOWEL_FOLLOWED = re.compile(r"[aeiou].", re.IGNORECASE)


def strip_accents(text: str) -> str:
    """
    Remove diacritics.

    Examples:
        >>> strip_accents("Mbappé")
        'Mbappe'
    """
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def normalize_player_name(name: str) -> str:
    """
    Canonical form of a player name.

    Lowercases, strips accents, apostrophes, generational suffixes and
    periods, and collapses whitespace.

    Examples:
        >>> normalize_player_name("P.J. Washington")
        'pj washington'
        >>> normalize_player_name("De'Aaron Fox")
        'deaaron fox'
        >>> normalize_player_name("Jaren Jackson Jr.")
        'jaren jackson'
    """
    text = strip_accents(name.lower())
    text = _APOSTROPHES.sub("", text)
    text = _SUFFIX.sub("", collapse_whitespace(text))
    text = text.replace(".", "")
    return collapse_whitespace(text)


def split_name(name: str) -> tuple[str, str]:
    """
    First and last token of a raw name; last is empty for one-word names.

    Examples:
        >>> split_name("Karl-Anthony Towns")
        ('Karl-Anthony', 'Towns')
        >>> split_name("Raphinha")
        ('Raphinha', '')
    """
    parts = name.strip().split()
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[-1]


def looks_like_initials(first_name: str) -> bool:
    """
    Whether a first name is a genuine two-letter initials pattern.

    Examples:
        >>> looks_like_initials("P.J.")
        True
        >>> looks_like_initials("Ace")
        False
    """
    return (
        bool(_INITIALS.match(first_name))
        and len(first_name) <= 4
        and not _VOWEL_FOLLOWED.search(first_name)
    )


def normalize_team_name(name: str) -> str:
    """
    Canonical form of a team name for comparison.

    Examples:
        >>> normalize_team_name("Arsenal FC")
        'arsenal'
        >>> normalize_team_name("AC Milan")
        'milan'
    """
    text = strip_accents(name.lower())
    text = _TEAM_TOKENS.sub("", text)
    return collapse_whitespace(text)


def simplify_team_name(name: str) -> str:
    """
    Strip club-type prefixes, founding-year tokens and suffixes.

    Examples:
        >>> simplify_team_name("BV Borussia 09 Dortmund")
        'Borussia Dortmund'
        >>> simplify_team_name("Valencia CF")
        'Valencia'
    """
    text = _CLUB_PREFIX.sub("", name)
    text = _YEAR_LEADING.sub("", text)
    text = _YEAR_INNER.sub(" ", text)
    text = _YEAR_TRAILING.sub("", text)
    text = _CLUB_SUFFIX.sub("", text)
    return collapse_whitespace(text)


def team_search_variants(name: str) -> list[str]:
    """
    Ordered, de-duplicated search variants of a team name.

    Examples:
        >>> team_search_variants("BV Borussia 09 Dortmund")
        ['BV Borussia 09 Dortmund', 'Borussia Dortmund', 'Dortmund']
    """
    variants = [name]
    lowered = name.lower()

    simplified = simplify_team_name(name)
    if simplified != name and len(simplified) > 2:
        variants.append(simplified)

    if "gladbach" in lowered:
        variants.extend(["Borussia Mönchengladbach", "Gladbach"])

    if "dortmund" in lowered:
        variants.extend(["Borussia Dortmund", "Dortmund"])

    if "borussia" in lowered:
        without = simplify_team_name(re.sub(r"borussia\s*", "", name, flags=re.IGNORECASE))
        if len(without) > 2:
            variants.append(without)

    words = simplified.split(" ")
    if len(words) > 1 and len(words[-1]) > 3:
        variants.append(words[-1])

    return list(dict.fromkeys(variants))
