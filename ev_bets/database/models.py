"""
SQLAlchemy ORM models for the EV betting engine.

Defines the schema for fixtures and the opportunities synthesized for them.
Matrices (calculations, fair odds, book odds) are stored as JSON.
"""
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    create_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Fixture(Base):
    """A scheduled fixture that produced at least one opportunity."""

    __tablename__ = "fixtures"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)  # aggregator fixture id
    sport: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    league: Mapped[str] = mapped_column(String(100), nullable=False)
    league_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    home_team: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    away_team: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(30), default="scheduled")
    is_live: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class Opportunity(Base):
    """
    One synthesized selection.

    Headline fields are columns for filtering and sorting; the full
    opportunity is kept in `payload` and rebuilt from there.
    """

    __tablename__ = "opportunities"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)  # hash(selection_key, book)
    fixture_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sport: Mapped[str] = mapped_column(String(30), nullable=False)
    league: Mapped[str] = mapped_column(String(100), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    market: Mapped[str] = mapped_column(String(200), nullable=False)
    selection: Mapped[str] = mapped_column(String(300), nullable=False)
    selection_key: Mapped[str] = mapped_column(String(600), nullable=False)
    line: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    player_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    best_ev_percent: Mapped[float] = mapped_column(Float, nullable=False)
    best_target_book_id: Mapped[str] = mapped_column(String(100), nullable=False)
    best_method: Mapped[str] = mapped_column(String(50), nullable=False)
    book_count: Mapped[int] = mapped_column(Integer, nullable=False)

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    validation: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_opportunities_sport_ev", "sport", "best_ev_percent"),
        Index("ix_opportunities_starts_at", "starts_at"),
    )


def init_db(engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(engine)


def get_engine(database_url: str):
    """
    Get SQLAlchemy engine for database operations.

    Args:
        database_url: Database connection URL

    Returns:
        SQLAlchemy Engine instance
    """
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # Store calls run in worker threads; they must share the one connection
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url)
