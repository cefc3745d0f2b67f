"""
Odds normalization and grouping.

Turns raw aggregator odds entries into a canonical NormalizedOdds shape
and groups every sportsbook's quote for the same selection together so
the fair-odds engine can build a consensus price.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional, Union

from ev_bets.config.constants import (
    MAX_DECIMAL_ODDS,
    MIN_DECIMAL_ODDS,
    OUTLIER_MAD_THRESHOLD,
    SELECTION_KEY_SEPARATOR,
)

from .odds_converter import american_to_decimal, decimal_to_implied_probability
from .outlier_detection import detect_outliers_mad

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedOdds:
    """One sportsbook's quote for one selection at one instant."""

    fixture_id: str
    sportsbook_id: str
    sportsbook_name: str
    market: str
    selection: str
    selection_key: str
    decimal_odds: float
    implied_probability: float
    timestamp: datetime
    line: Optional[float] = None
    player_id: Optional[str] = None
    player_name: Optional[str] = None


@dataclass
class BookQuote:
    """A sportsbook's price inside a group, tagged for consensus."""

    sportsbook_id: str
    sportsbook_name: str
    decimal_odds: float
    implied_probability: float
    is_target: bool = False
    is_sharp: bool = False
    is_outlier: bool = False
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sportsbook_id": self.sportsbook_id,
            "sportsbook_name": self.sportsbook_name,
            "decimal_odds": self.decimal_odds,
            "implied_probability": self.implied_probability,
            "is_target": self.is_target,
            "is_sharp": self.is_sharp,
            "is_outlier": self.is_outlier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookQuote":
        return cls(**data)


@dataclass
class GroupedOdds:
    """All quotes sharing one selection key within a fixture."""

    fixture_id: str
    market: str
    selection: str
    selection_key: str
    line: Optional[float] = None
    player_id: Optional[str] = None
    player_name: Optional[str] = None
    odds: list[BookQuote] = field(default_factory=list)

    @property
    def book_count(self) -> int:
        return len(self.odds)

    @property
    def target_quotes(self) -> list[BookQuote]:
        return [q for q in self.odds if q.is_target]

    @property
    def sharp_quote(self) -> Optional[BookQuote]:
        return next((q for q in self.odds if q.is_sharp), None)


class NormalizationResult(NamedTuple):
    """Normalized quotes plus the count dropped by the odds band."""

    odds: list[NormalizedOdds]
    dropped: int


def sportsbook_id_from_name(name: str) -> str:
    """
    Derive a sportsbook id from its display name.

    Examples:
        >>> sportsbook_id_from_name("William Hill")
        'william_hill'
    """
    return re.sub(r"\s+", "_", name.strip().lower())


def _format_line(line: float) -> str:
    # 2.0 and 2 must produce the same key
    return f"{float(line):g}"


def generate_selection_key(
    fixture_id: str,
    market: str,
    selection: str,
    line: Optional[float] = None,
    player_id: Optional[str] = None,
) -> str:
    """
    Build the stable key identifying one bettable proposition.

    Examples:
        >>> generate_selection_key("f1", "total_points", "Over", 215.5)
        'f1||total_points||Over||215.5'
    """
    parts = [fixture_id, market, selection]
    if line is not None:
        parts.append(_format_line(line))
    if player_id:
        parts.append(str(player_id))
    return SELECTION_KEY_SEPARATOR.join(parts)


def parse_timestamp(value: Union[int, float, str, datetime, None]) -> datetime:
    """Parse a unix-seconds or ISO-8601 timestamp, defaulting to now (UTC)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if value:
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp {value!r}, using now")
    return datetime.now(timezone.utc)


def _finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def entry_decimal_odds(entry: dict) -> Optional[float]:
    """
    Decimal price of a raw entry, from `decimal_odds` or American `price`.

    None when the price is missing, non-numeric or not finite.
    """
    if entry.get("decimal_odds") is not None:
        return _finite(entry["decimal_odds"])
    price = _finite(entry.get("price"))
    if price is None or price == 0:
        return None
    return american_to_decimal(price)


def normalize_odds_entry(
    entry: dict,
    fixture_id: str,
    sportsbook_id: str,
    sportsbook_name: str,
    max_decimal_odds: float = MAX_DECIMAL_ODDS,
    min_decimal_odds: float = MIN_DECIMAL_ODDS,
) -> Optional[NormalizedOdds]:
    """
    Normalize a single raw odds entry.

    Args:
        entry: Raw entry with market, name, price or decimal_odds, and
            optional points, player_id, player_name, timestamp
        fixture_id: Fixture the entry belongs to
        sportsbook_id: Resolved sportsbook id
        sportsbook_name: Sportsbook display name
        max_decimal_odds: Quotes priced above this are dropped
        min_decimal_odds: Prices below this are raised to it

    Returns:
        NormalizedOdds, or None if the quote is outside the accepted band
        or has no usable price
    """
    decimal_odds = entry_decimal_odds(entry)
    if decimal_odds is None:
        return None

    decimal_odds = max(decimal_odds, min_decimal_odds)
    if decimal_odds > max_decimal_odds:
        return None

    line = entry.get("points")
    if line is not None:
        line = _finite(line)
        if line is None:
            return None
    player_id = entry.get("player_id")
    player_id = str(player_id) if player_id else None
    market = entry.get("market", "")
    selection = entry.get("name", entry.get("selection", ""))

    return NormalizedOdds(
        fixture_id=fixture_id,
        sportsbook_id=sportsbook_id,
        sportsbook_name=sportsbook_name,
        market=market,
        selection=selection,
        selection_key=generate_selection_key(
            fixture_id, market, selection, line, player_id
        ),
        decimal_odds=decimal_odds,
        implied_probability=decimal_to_implied_probability(decimal_odds),
        timestamp=parse_timestamp(entry.get("timestamp")),
        line=line,
        player_id=player_id,
        player_name=entry.get("player_name") or None,
    )


def normalize_entries(
    entries: Iterable[dict],
    fixture_id: str,
    max_decimal_odds: float = MAX_DECIMAL_ODDS,
    min_decimal_odds: float = MIN_DECIMAL_ODDS,
) -> NormalizationResult:
    """
    Normalize every entry of a fixture's odds feed.

    The sportsbook is read from each entry's `sportsbook` field.
    Rejected quotes are counted, never raised.
    """
    normalized: list[NormalizedOdds] = []
    dropped = 0

    for entry in entries:
        book_name = entry.get("sportsbook") or ""
        result = normalize_odds_entry(
            entry,
            fixture_id,
            sportsbook_id_from_name(book_name),
            book_name,
            max_decimal_odds=max_decimal_odds,
            min_decimal_odds=min_decimal_odds,
        )
        if result is None:
            dropped += 1
            continue
        normalized.append(result)

    if dropped:
        logger.debug(f"Fixture {fixture_id}: dropped {dropped} unusable or out-of-band quotes")

    return NormalizationResult(normalized, dropped)


def mark_outliers(
    group: GroupedOdds,
    threshold: float = OUTLIER_MAD_THRESHOLD,
) -> list[int]:
    """Set `is_outlier` on a group's quotes and return the flagged indices."""
    probs = [q.implied_probability for q in group.odds]
    result = detect_outliers_mad(probs, threshold)
    for quote, flagged in zip(group.odds, result.is_outlier):
        quote.is_outlier = flagged
    return result.indices


def group_odds_by_selection(
    all_odds: Iterable[NormalizedOdds],
    target_book_ids: Iterable[str],
    sharp_book_id: str,
    outlier_threshold: float = OUTLIER_MAD_THRESHOLD,
) -> list[GroupedOdds]:
    """
    Partition normalized quotes by selection key.

    Groups are returned in first-seen order. Each quote is tagged as a
    target and/or sharp book, and outliers are flagged with the same
    MAD rule the fair-odds engine applies.
    """
    targets = set(target_book_ids)
    groups: dict[str, GroupedOdds] = {}

    for odds in all_odds:
        group = groups.get(odds.selection_key)
        if group is None:
            group = GroupedOdds(
                fixture_id=odds.fixture_id,
                market=odds.market,
                selection=odds.selection,
                selection_key=odds.selection_key,
                line=odds.line,
                player_id=odds.player_id,
                player_name=odds.player_name,
            )
            groups[odds.selection_key] = group

        group.odds.append(
            BookQuote(
                sportsbook_id=odds.sportsbook_id,
                sportsbook_name=odds.sportsbook_name,
                decimal_odds=odds.decimal_odds,
                implied_probability=odds.implied_probability,
                is_target=odds.sportsbook_id in targets,
                is_sharp=odds.sportsbook_id == sharp_book_id,
                timestamp=odds.timestamp,
            )
        )

    for group in groups.values():
        mark_outliers(group, outlier_threshold)

    return list(groups.values())
