"""
Background historical validation.

The pipeline hands the runner the ids it just persisted and returns
immediately; the runner validates qualifying player props (and, when
enabled, team markets) in its own task, highest EV first, in small paced
batches, and attaches each result to the stored opportunity.
"""
import asyncio
import logging
from typing import Iterable, Optional

from ev_bets.betting.ev_calculator import EVOpportunity
from ev_bets.betting.markets import (
    extract_player_name,
    infer_direction,
    is_btts_market,
    is_moneyline_market,
    is_player_prop,
    is_spread_market,
    selection_team,
)
from ev_bets.config.constants import (
    VALIDATION_BATCH_DELAY_SECONDS,
    VALIDATION_BATCH_SIZE,
    VALIDATION_MATCH_COUNT,
    Direction,
    Sport,
)
from ev_bets.database.repository import OpportunityStore

from .nba import NBAValidator
from .results import ValidationResult
from .soccer import SoccerValidator, parse_team_market
from .spread import SpreadValidator

logger = logging.getLogger(__name__)


class ValidationRunner:
    """
    Fire-and-forget validation worker.

    Example:
        >>> runner = ValidationRunner(store, nba_validator=NBAValidator(client))
        >>> runner.schedule(opportunity_ids)  # returns at once
        >>> await runner.wait()  # only in tests and shutdown
    """

    def __init__(
        self,
        store: OpportunityStore,
        nba_validator: Optional[NBAValidator] = None,
        soccer_validator: Optional[SoccerValidator] = None,
        spread_validator: Optional[SpreadValidator] = None,
        team_markets: bool = False,
        batch_size: int = VALIDATION_BATCH_SIZE,
        batch_delay_seconds: float = VALIDATION_BATCH_DELAY_SECONDS,
        match_count: int = VALIDATION_MATCH_COUNT,
    ):
        self.store = store
        self.nba_validator = nba_validator
        self.soccer_validator = soccer_validator
        self.spread_validator = spread_validator
        self.team_markets = team_markets
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.match_count = match_count
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def schedule(self, opportunity_ids: Iterable[str]) -> Optional[asyncio.Task]:
        """Start validating in the background and return the task."""
        ids = list(opportunity_ids)
        if not ids:
            return None

        task = asyncio.create_task(self.run(ids), name="ev-bets-validation")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Validation task cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Validation task failed: {error}", exc_info=error)

    async def wait(self) -> None:
        """Wait for every scheduled validation task to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self.wait()

    def _validator_for(self, opportunity: EVOpportunity):
        if opportunity.sport == Sport.BASKETBALL.value:
            return self.nba_validator
        if opportunity.sport == Sport.SOCCER.value:
            return self.soccer_validator
        return None

    def _is_prop(self, opportunity: EVOpportunity) -> bool:
        return opportunity.line is not None and is_player_prop(opportunity.market)

    def _is_team_market(self, opportunity: EVOpportunity) -> bool:
        market = opportunity.market
        if opportunity.sport == Sport.BASKETBALL.value:
            if self.spread_validator is None:
                return False
            if is_spread_market(market):
                return opportunity.line is not None
            return is_moneyline_market(market)
        if opportunity.sport == Sport.SOCCER.value and self.soccer_validator is not None:
            if is_btts_market(market) or is_moneyline_market(market):
                return True
            return opportunity.line is not None and parse_team_market(market) is not None
        return False

    def qualifies(self, opportunity: EVOpportunity) -> bool:
        """
        Player props with a line, for a sport that has a validator.

        With `team_markets` on, spreads, moneylines and soccer team
        markets qualify as well.
        """
        if self._is_prop(opportunity):
            return self._validator_for(opportunity) is not None
        return self.team_markets and self._is_team_market(opportunity)

    def select(self, opportunity_ids: list[str]) -> list[EVOpportunity]:
        """Unvalidated qualifying opportunities, highest EV first."""
        already = self.store.validated_ids(opportunity_ids)
        pending = [
            opp
            for opp in self.store.get_opportunities(
                [i for i in opportunity_ids if i not in already]
            )
            if not opp.is_validated and self.qualifies(opp)
        ]
        pending.sort(key=lambda o: o.ev_percent, reverse=True)
        return pending

    async def run(self, opportunity_ids: list[str]) -> int:
        """Validate in paced batches; returns how many got a result."""
        pending = await asyncio.to_thread(self.select, opportunity_ids)
        if not pending:
            logger.info("No opportunities need validation")
            return 0

        logger.info(f"Validating {len(pending)} opportunities...")
        validated = 0

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start : start + self.batch_size]
            outcomes = await asyncio.gather(*(self.validate_one(o) for o in batch))
            validated += sum(1 for ok in outcomes if ok)

            if start + self.batch_size < len(pending):
                await asyncio.sleep(self.batch_delay_seconds)

        logger.info(f"Validation complete: {validated}/{len(pending)} validated")
        return validated

    async def validate_one(self, opportunity: EVOpportunity) -> bool:
        """Validate and attach one opportunity; failures are logged, not raised."""
        try:
            if self._is_prop(opportunity):
                result = await self._validate_prop(opportunity)
            else:
                result = await self._validate_team_market(opportunity)

            if result is None:
                return False

            await asyncio.to_thread(
                self.store.attach_validation, opportunity.id, result.to_dict()
            )
            logger.debug(f"Validated {opportunity.id}: {result.summary()}")
            return True
        except Exception as e:
            logger.error(f"Error validating {opportunity.id}: {e}")
            return False

    async def _validate_prop(self, opportunity: EVOpportunity) -> Optional[ValidationResult]:
        player_name = opportunity.player_name or extract_player_name(opportunity.selection)
        if not player_name:
            return None

        direction = infer_direction(opportunity.selection)
        if opportunity.sport == Sport.BASKETBALL.value:
            return await self.nba_validator.validate(
                player_name,
                opportunity.market,
                opportunity.line,
                direction,
                self.match_count,
                source_player_id=opportunity.player_id,
            )
        return await self.soccer_validator.validate_player_bet(
            player_name,
            opportunity.market,
            opportunity.line,
            direction,
            self.match_count,
            source_player_id=opportunity.player_id,
        )

    async def _validate_team_market(self, opportunity: EVOpportunity):
        market = opportunity.market
        team_name = selection_team(
            opportunity.selection, opportunity.home_team, opportunity.away_team
        )

        if opportunity.sport == Sport.BASKETBALL.value:
            if team_name is None:
                return None
            team = await self.spread_validator.resolve_team(
                team_name, opportunity.sport, opportunity.league
            )
            if team is None:
                logger.debug(f"No confident team match for {team_name}")
                return None
            if is_spread_market(market):
                return await self.spread_validator.validate_spread(
                    team.id, team.name, opportunity.line, Direction.OVER, self.match_count
                )
            return await self.spread_validator.validate_moneyline(
                team.id, team.name, self.match_count
            )

        if not (opportunity.home_team and opportunity.away_team):
            return None
        if is_btts_market(market):
            return await self.soccer_validator.validate_btts(
                opportunity.home_team, opportunity.away_team, opportunity.selection, self.match_count
            )
        if is_moneyline_market(market):
            return await self.soccer_validator.validate_match_result(
                opportunity.home_team, opportunity.away_team, opportunity.selection, self.match_count
            )
        return await self.soccer_validator.validate_team_bet(
            team_name or opportunity.home_team,
            market,
            opportunity.line,
            infer_direction(opportunity.selection),
            self.match_count,
        )
