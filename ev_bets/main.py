#!/usr/bin/env python3
"""
EV Bets - Main Application Entry Point.

Positive expected-value betting engine that:
1. Pulls pre-match odds for configured soccer and basketball leagues
2. Estimates fair odds from the cross-book consensus
3. Stores +EV opportunities and validates player props historically
4. Shows the results in the terminal

Usage:
    ev-bets                     # Scheduler with live terminal view
    ev-bets --once              # One pipeline pass, then print the table
    ev-bets --no-scheduler      # Live view of stored results only
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import Optional

from loguru import logger as loguru_logger

# Configure logging before other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    """Apply one level to stdlib logging and the loguru sinks."""
    logging.getLogger().setLevel(level)

    loguru_logger.remove()
    loguru_logger.add(sys.stderr, level=level)
    if log_file:
        loguru_logger.add(log_file, level=level, rotation="10 MB")


class EVBetsApp:
    """
    Main application orchestrator.

    Wires the provider clients, storage, validation runner, pipeline,
    scheduler and terminal view together and manages their lifecycle.
    """

    def __init__(
        self,
        run_once: bool = False,
        enable_scheduler: bool = True,
        debug: bool = False,
    ):
        """
        Initialize the application.

        Args:
            run_once: Run a single pipeline pass and exit
            enable_scheduler: Whether to start periodic pipeline runs
            debug: Enable debug logging
        """
        self.run_once = run_once
        self.enable_scheduler = enable_scheduler
        self.debug = debug

        # Components (initialized in setup)
        self.settings = None
        self.store = None
        self.validation_runner = None
        self.pipeline = None
        self.scheduler = None
        self.dashboard = None
        self._stats_clients: list = []

        self._shutdown_event = asyncio.Event()

    async def setup(self) -> None:
        """Initialize all application components."""
        from ev_bets.config.settings import get_settings

        self.settings = get_settings()
        level = "DEBUG" if self.debug or self.settings.debug else self.settings.log_level
        configure_logging(level, self.settings.log_file)

        logger.info("=" * 60)
        logger.info("EV BETS - Positive Expected Value Detection")
        logger.info("=" * 60)
        logger.info(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

        self._init_store()
        self._init_validation()
        await self._init_pipeline()

        if self.enable_scheduler and not self.run_once:
            logger.info("Initializing scheduler...")
            self._init_scheduler()

        logger.info("Initialization complete")

    def _init_store(self) -> None:
        from ev_bets.database.repository import SqlAlchemyOpportunityStore

        self.store = SqlAlchemyOpportunityStore.from_url(self.settings.database_url)
        logger.info(f"Storage: {self.settings.database_url}")

    def _init_validation(self) -> None:
        """Validation runner over whichever stats providers have keys."""
        from ev_bets.data.sources import (
            BallDontLieClientFactory,
            OpticOddsClientFactory,
            SportMonksClientFactory,
        )
        from ev_bets.identity import PlayerIdentityMap
        from ev_bets.validation import (
            NBAValidator,
            SoccerValidator,
            SpreadValidator,
            ValidationRunner,
        )

        validation = self.settings.validation
        if not validation.enabled:
            logger.info("Historical validation disabled")
            return

        identity_map = PlayerIdentityMap()

        nba_validator = None
        if self.settings.ball_dont_lie.api_key:
            client = BallDontLieClientFactory.create_from_settings(self.settings, identity_map)
            self._stats_clients.append(client)
            nba_validator = NBAValidator(client)
            logger.info("NBA validation enabled")

        soccer_validator = None
        if self.settings.sportmonks.api_key:
            client = SportMonksClientFactory.create_from_settings(self.settings, identity_map)
            self._stats_clients.append(client)
            soccer_validator = SoccerValidator(client)
            logger.info("Soccer validation enabled")

        spread_validator = None
        if validation.team_markets and self.settings.optic_odds.api_key:
            client = OpticOddsClientFactory.create_from_settings(self.settings)
            self._stats_clients.append(client)
            spread_validator = SpreadValidator(client)
            logger.info("Team market validation enabled")

        if nba_validator is None and soccer_validator is None and spread_validator is None:
            logger.warning("No stats provider keys configured; validation disabled")
            return

        self.validation_runner = ValidationRunner(
            self.store,
            nba_validator=nba_validator,
            soccer_validator=soccer_validator,
            spread_validator=spread_validator,
            team_markets=validation.team_markets,
            batch_size=validation.batch_size,
            batch_delay_seconds=validation.batch_delay_seconds,
            match_count=validation.match_count,
        )

    async def _init_pipeline(self) -> None:
        from ev_bets.data.pipeline import EVPipeline

        self.pipeline = EVPipeline.from_settings(
            self.settings, self.store, self.validation_runner
        )

        health = await self.pipeline.health_check()
        logger.info(f"Odds feed: {health.status.value}")
        if health.error_message:
            logger.warning(f"  {health.error_message}")

    def _init_scheduler(self) -> None:
        from ev_bets.scheduler.orchestrator import SchedulerOrchestrator

        self.scheduler = SchedulerOrchestrator(settings=self.settings, pipeline=self.pipeline)
        self.scheduler.start()
        logger.info("Scheduler started")

    async def run_single_pass(self) -> int:
        """Run the pipeline once, print results and wait for validation."""
        from ev_bets.dashboard.terminal import TerminalDashboard
        from ev_bets.scheduler.jobs import run_pipeline

        result = await run_pipeline(
            self.pipeline, self.settings.scheduler.run_timeout_seconds
        )
        if self.validation_runner is not None:
            await self.validation_runner.wait()

        opportunities = self.store.get_opportunities(result.opportunity_ids)
        TerminalDashboard(self.store).print_run(result, opportunities)
        return 0 if result.success else 1

    async def run(self) -> int:
        """Run the main application loop."""
        if self.run_once:
            try:
                return await self.run_single_pass()
            finally:
                await self.shutdown()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)

        from ev_bets.dashboard.terminal import TerminalDashboard

        self.dashboard = TerminalDashboard(self.store, scheduler=self.scheduler)
        try:
            await self.dashboard.run(shutdown_event=self._shutdown_event)
        except Exception as e:
            logger.error(f"Application error: {e}")
            raise
        finally:
            await self.shutdown()
        return 0

    def _signal_handler(self) -> None:
        logger.info("Shutdown signal received...")
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        logger.info("Shutting down...")

        if self.scheduler:
            self.scheduler.stop()
        if self.dashboard:
            await self.dashboard.stop()
        if self.pipeline:
            await self.pipeline.close()
        for client in self._stats_clients:
            await client.close()

        logger.info("Shutdown complete")


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    app = EVBetsApp(
        run_once=args.once,
        enable_scheduler=not args.no_scheduler,
        debug=args.debug,
    )

    try:
        await app.setup()
        return await app.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main() -> None:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="EV Bets - Positive expected value betting engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    ev-bets                     Scheduler with live terminal view
    ev-bets --once              Single pipeline pass, print opportunities
    ev-bets --no-scheduler      Live view only, no pipeline runs
    ev-bets --debug             Enable debug logging
        """,
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run the pipeline once and print the opportunities table",
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Disable periodic pipeline runs",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    exit_code = asyncio.run(main_async(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
