"""
Background job definitions for the scheduler.

Each job is an async function that performs a specific task:
- run_pipeline: one bounded pipeline run
- health_check: aggregator client health
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


async def run_pipeline(pipeline: Any, timeout_seconds: float) -> Any:
    """
    Run the pipeline once, aborting if it exceeds the timeout.

    Args:
        pipeline: EVPipeline instance
        timeout_seconds: Upper bound on one run

    Returns:
        PipelineResult of the run

    Raises:
        asyncio.TimeoutError: The run took longer than the timeout
    """
    logger.info("=== STARTING PIPELINE RUN ===")
    start_time = datetime.now(timezone.utc)

    try:
        result = await asyncio.wait_for(pipeline.run(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"Pipeline run exceeded {timeout_seconds}s and was aborted")
        raise

    elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Pipeline run finished in {elapsed:.1f}s: "
        f"{result.opportunities_found} opportunities, {len(result.errors)} errors"
    )
    for error in result.errors:
        logger.warning(f"  {error}")

    return result


async def health_check(pipeline: Any) -> Any:
    """
    Health of the odds feed the pipeline depends on.

    Args:
        pipeline: EVPipeline instance

    Returns:
        DataSourceHealth of the aggregator client
    """
    logger.debug("Running health check...")

    try:
        health = await pipeline.health_check()
        if health.status.value != "healthy":
            logger.warning(
                f"Data source unhealthy: {health.source_name} "
                f"({health.error_message or health.status.value})"
            )
        return health

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise
