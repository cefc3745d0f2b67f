"""
Odds normalization, fair-value estimation and EV synthesis.

Provides tools for:
- Odds conversion and margin removal
- Normalizing and grouping sportsbook quotes by selection
- MAD outlier detection
- Fair odds under several consensus methods
- EV opportunities and their explanations
"""

from .odds_converter import (
    american_to_decimal,
    decimal_to_american,
    decimal_to_implied_probability,
    implied_probability_to_decimal,
    prob_to_logit,
    logit_to_prob,
    devig_two_sided,
    calculate_overround,
    normalize_multi_way,
)

from .outlier_detection import (
    OutlierResult,
    detect_outliers_mad,
    mad,
    mean,
    median,
    trimmed_mean,
)

from .odds_normalizer import (
    BookQuote,
    GroupedOdds,
    NormalizationResult,
    NormalizedOdds,
    generate_selection_key,
    group_odds_by_selection,
    normalize_entries,
    normalize_odds_entry,
    sportsbook_id_from_name,
)

from .fair_odds import (
    FairOddsCalculator,
    FairOddsEngine,
    FairOddsResult,
    SharpBookReference,
    TrimmedMeanProb,
    WeightedAverage,
    calculate_all_fair_odds,
    calculate_fair_odds,
)

from .ev_calculator import (
    BestEV,
    EVCalculation,
    EVOpportunity,
    EVSynthesizer,
    FixtureContext,
    calculate_all_bets,
    calculate_ev,
    calculate_ev_for_targets,
    calculate_opportunities,
    generate_explanation,
    generate_opportunity_id,
    sort_book_odds,
)

from .markets import (
    extract_player_name,
    infer_direction,
    is_btts_market,
    is_moneyline_market,
    is_player_prop,
    is_spread_market,
    selection_team,
)

__all__ = [
    # Odds converter
    "american_to_decimal",
    "decimal_to_american",
    "decimal_to_implied_probability",
    "implied_probability_to_decimal",
    "prob_to_logit",
    "logit_to_prob",
    "devig_two_sided",
    "calculate_overround",
    "normalize_multi_way",
    # Outlier detection
    "OutlierResult",
    "detect_outliers_mad",
    "mad",
    "mean",
    "median",
    "trimmed_mean",
    # Normalization
    "BookQuote",
    "GroupedOdds",
    "NormalizationResult",
    "NormalizedOdds",
    "generate_selection_key",
    "group_odds_by_selection",
    "normalize_entries",
    "normalize_odds_entry",
    "sportsbook_id_from_name",
    # Fair odds
    "FairOddsCalculator",
    "FairOddsEngine",
    "FairOddsResult",
    "SharpBookReference",
    "TrimmedMeanProb",
    "WeightedAverage",
    "calculate_all_fair_odds",
    "calculate_fair_odds",
    # EV
    "BestEV",
    "EVCalculation",
    "EVOpportunity",
    "EVSynthesizer",
    "FixtureContext",
    "calculate_all_bets",
    "calculate_ev",
    "calculate_ev_for_targets",
    "calculate_opportunities",
    "generate_explanation",
    "generate_opportunity_id",
    "sort_book_odds",
    # Markets
    "extract_player_name",
    "infer_direction",
    "is_btts_market",
    "is_moneyline_market",
    "is_player_prop",
    "is_spread_market",
    "selection_team",
]
