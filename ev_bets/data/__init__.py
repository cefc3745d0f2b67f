"""
Data layer for the EV betting engine.

Provides:
- Provider clients (OpticOdds odds aggregator, Ball Don't Lie, SportMonks)
- A per-client TTL cache
- The pipeline that turns fixtures and odds into stored opportunities
"""
from .pipeline import (
    EVPipeline,
    PipelineResult,
    create_pipeline,
    fixture_context,
    leagues_to_fetch,
)

__all__ = [
    # Pipeline
    "EVPipeline",
    "PipelineResult",
    "create_pipeline",
    "fixture_context",
    "leagues_to_fetch",
]
