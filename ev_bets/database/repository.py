"""
Storage for fixtures and opportunities.

The pipeline only needs upsert-by-id, lookups by id or set of ids, an
existence check and the started-fixture cleanup. Two implementations:

- SqlAlchemyOpportunityStore: persistent, backed by the ORM models
- InMemoryOpportunityStore: dict-backed, for tests and dry runs
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ev_bets.betting.ev_calculator import EVOpportunity

from .models import Fixture, Opportunity, get_engine, init_db

logger = logging.getLogger(__name__)


def _utc_naive(value: datetime) -> datetime:
    """UTC wall time without tzinfo, as stored in the database."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class OpportunityStore(Protocol):
    """Storage operations the pipeline and validation runner rely on."""

    def upsert_fixture(self, opportunity: EVOpportunity) -> None: ...

    def upsert_opportunity(self, opportunity: EVOpportunity) -> None: ...

    def get_opportunity(self, opportunity_id: str) -> Optional[EVOpportunity]: ...

    def get_opportunities(self, ids: Iterable[str]) -> list[EVOpportunity]: ...

    def exists(self, opportunity_id: str) -> bool: ...

    def attach_validation(self, opportunity_id: str, validation: dict[str, Any]) -> None: ...

    def validated_ids(self, ids: Iterable[str]) -> set[str]: ...

    def delete_started(self, now: Optional[datetime] = None) -> int: ...


class InMemoryOpportunityStore:
    """Dict-backed store with the same semantics as the SQL store."""

    def __init__(self):
        self.fixtures: dict[str, dict[str, Any]] = {}
        self.opportunities: dict[str, EVOpportunity] = {}

    def __len__(self) -> int:
        return len(self.opportunities)

    def upsert_fixture(self, opportunity: EVOpportunity) -> None:
        self.fixtures.setdefault(
            opportunity.fixture_id,
            {
                "id": opportunity.fixture_id,
                "sport": opportunity.sport,
                "league": opportunity.league,
                "starts_at": opportunity.starts_at,
            },
        )

    def upsert_opportunity(self, opportunity: EVOpportunity) -> None:
        existing = self.opportunities.get(opportunity.id)
        if existing is not None and opportunity.validation is None:
            opportunity.validation = existing.validation
        self.opportunities[opportunity.id] = opportunity

    def get_opportunity(self, opportunity_id: str) -> Optional[EVOpportunity]:
        return self.opportunities.get(opportunity_id)

    def get_opportunities(self, ids: Iterable[str]) -> list[EVOpportunity]:
        return [self.opportunities[i] for i in ids if i in self.opportunities]

    def exists(self, opportunity_id: str) -> bool:
        return opportunity_id in self.opportunities

    def attach_validation(self, opportunity_id: str, validation: dict[str, Any]) -> None:
        opportunity = self.opportunities.get(opportunity_id)
        if opportunity is not None:
            opportunity.validation = validation

    def validated_ids(self, ids: Iterable[str]) -> set[str]:
        return {
            i for i in ids if i in self.opportunities and self.opportunities[i].is_validated
        }

    def delete_started(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        started = [
            i
            for i, opp in self.opportunities.items()
            if _utc_naive(opp.starts_at) <= _utc_naive(now)
        ]
        for opportunity_id in started:
            del self.opportunities[opportunity_id]
        return len(started)


class SqlAlchemyOpportunityStore:
    """
    Store backed by the ORM models.

    Example:
        >>> store = SqlAlchemyOpportunityStore.from_url("sqlite:///ev_bets.db")
        >>> store.upsert_opportunity(opportunity)
    """

    def __init__(self, engine):
        self.engine = engine
        init_db(engine)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlAlchemyOpportunityStore":
        return cls(get_engine(database_url))

    def upsert_fixture(self, opportunity: EVOpportunity) -> None:
        with Session(self.engine) as session:
            if session.get(Fixture, opportunity.fixture_id) is None:
                session.add(
                    Fixture(
                        id=opportunity.fixture_id,
                        sport=opportunity.sport,
                        league=opportunity.league,
                        league_name=opportunity.league_name,
                        home_team=opportunity.home_team,
                        away_team=opportunity.away_team,
                        starts_at=_utc_naive(opportunity.starts_at),
                    )
                )
                session.commit()

    def upsert_opportunity(self, opportunity: EVOpportunity) -> None:
        """Insert or refresh an opportunity, keeping any attached validation."""
        payload = opportunity.to_dict()
        payload.pop("validation", None)

        with Session(self.engine) as session:
            row = session.get(Opportunity, opportunity.id)
            if row is None:
                row = Opportunity(
                    id=opportunity.id,
                    fixture_id=opportunity.fixture_id,
                    sport=opportunity.sport,
                    league=opportunity.league,
                    starts_at=_utc_naive(opportunity.starts_at),
                    market=opportunity.market,
                    selection=opportunity.selection,
                    selection_key=opportunity.selection_key,
                    line=opportunity.line,
                    player_name=opportunity.player_name,
                    validation=opportunity.validation,
                )
                session.add(row)

            row.best_ev_percent = opportunity.best_ev.ev_percent
            row.best_target_book_id = opportunity.best_ev.target_book_id
            row.best_method = opportunity.best_ev.method.value
            row.book_count = opportunity.book_count
            row.payload = payload
            if opportunity.validation is not None:
                row.validation = opportunity.validation
            session.commit()

    @staticmethod
    def _to_opportunity(row: Opportunity) -> EVOpportunity:
        return EVOpportunity.from_dict({**row.payload, "validation": row.validation})

    def get_opportunity(self, opportunity_id: str) -> Optional[EVOpportunity]:
        with Session(self.engine) as session:
            row = session.get(Opportunity, opportunity_id)
            return self._to_opportunity(row) if row is not None else None

    def get_opportunities(self, ids: Iterable[str]) -> list[EVOpportunity]:
        ids = list(ids)
        if not ids:
            return []
        with Session(self.engine) as session:
            rows = session.scalars(select(Opportunity).where(Opportunity.id.in_(ids)))
            return [self._to_opportunity(row) for row in rows]

    def list_opportunities(
        self, sport: Optional[str] = None, limit: int = 100
    ) -> list[EVOpportunity]:
        """Stored opportunities, highest EV first."""
        stmt = select(Opportunity).order_by(Opportunity.best_ev_percent.desc()).limit(limit)
        if sport:
            stmt = stmt.where(Opportunity.sport == sport)
        with Session(self.engine) as session:
            return [self._to_opportunity(row) for row in session.scalars(stmt)]

    def exists(self, opportunity_id: str) -> bool:
        with Session(self.engine) as session:
            return session.get(Opportunity, opportunity_id) is not None

    def attach_validation(self, opportunity_id: str, validation: dict[str, Any]) -> None:
        with Session(self.engine) as session:
            row = session.get(Opportunity, opportunity_id)
            if row is None:
                logger.debug(f"Opportunity {opportunity_id} gone before validation")
                return
            row.validation = validation
            session.commit()

    def validated_ids(self, ids: Iterable[str]) -> set[str]:
        ids = list(ids)
        if not ids:
            return set()
        with Session(self.engine) as session:
            stmt = select(Opportunity.id).where(
                Opportunity.id.in_(ids), Opportunity.validation.is_not(None)
            )
            return set(session.scalars(stmt))

    def delete_started(self, now: Optional[datetime] = None) -> int:
        """Delete opportunities whose fixture has started (starts_at <= now)."""
        cutoff = _utc_naive(now or datetime.now(timezone.utc))
        with Session(self.engine) as session:
            result = session.execute(
                delete(Opportunity).where(Opportunity.starts_at <= cutoff)
            )
            session.commit()
            return result.rowcount or 0
