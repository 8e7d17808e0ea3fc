"""SQLAlchemy-backed instrument source and audit sink."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from ethicscreen.config import settings
from ethicscreen.models import (
    ArmsRank,
    Basket,
    BdsCategory,
    DefenseContract,
    Evidence,
    Financials,
    Holding,
    Instrument,
    Policy,
    ScreeningResult,
    Source,
)
from ethicscreen.models.database import (
    DBAlias,
    DBArmsRank,
    DBBasket,
    DBContract,
    DBEvidence,
    DBFinancials,
    DBHolding,
    DBInstrument,
    DBScreenResult,
    DBSource,
    init_db,
)
from .base import InstrumentSource, ResultSink

logger = logging.getLogger(__name__)

_BDS_CATEGORIES = {c.value for c in BdsCategory}

TICKER_ALIAS = "TICKER"


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """sqlite stores naive timestamps; keep everything in UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class DatabaseSource(InstrumentSource, ResultSink):
    """Resolve instruments and baskets from the database and store audit records."""

    name = "database"

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        contract_lookback_days: Optional[int] = None,
    ):
        self._session_factory = session_factory or init_db()
        self.contract_lookback_days = contract_lookback_days or settings.contract_lookback_days

    # Reads

    async def get_instrument(self, symbol: str) -> Optional[Instrument]:
        """Resolve by ticker, then ticker alias, then exact company name (case-insensitive)."""
        session = self._session_factory()
        try:
            record = (
                session.query(DBInstrument)
                .filter(DBInstrument.symbol == symbol.upper(), DBInstrument.active.is_(True))
                .first()
            )
            if record is None:
                record = (
                    session.query(DBInstrument)
                    .join(DBInstrument.aliases)
                    .filter(
                        DBAlias.alias_type == TICKER_ALIAS,
                        DBAlias.name == symbol.upper(),
                        DBInstrument.active.is_(True),
                    )
                    .first()
                )
            if record is None:
                record = (
                    session.query(DBInstrument)
                    .filter(
                        func.lower(DBInstrument.name) == symbol.lower(),
                        DBInstrument.active.is_(True),
                    )
                    .first()
                )
            if record is None:
                logger.debug(f"Instrument lookup result for {symbol}: not found")
                return None

            return self._to_instrument(record)
        finally:
            session.close()

    async def get_basket(self, symbol: str) -> Optional[Basket]:
        session = self._session_factory()
        try:
            record = session.query(DBBasket).filter_by(symbol=symbol.upper()).first()
            if record is None:
                return None

            return Basket(
                symbol=record.symbol,
                name=record.name,
                provider=record.provider,
                holdings_url=record.holdings_url,
                as_of=record.last_holdings_date,
                holdings=[
                    Holding(symbol=h.symbol, name=h.name, weight=h.weight)
                    for h in record.holdings
                ],
            )
        finally:
            session.close()

    def get_result(self, audit_id: str) -> Optional[dict]:
        """Load a stored screening result by audit id."""
        session = self._session_factory()
        try:
            record = session.query(DBScreenResult).filter_by(audit_id=audit_id).first()
            return record.get_result() if record else None
        finally:
            session.close()

    # Writes

    async def save_results(self, request_id: str, results: list[ScreeningResult]) -> None:
        """Append results to the audit trail."""
        session = self._session_factory()
        try:
            for result in results:
                session.add(DBScreenResult(
                    audit_id=result.audit_id,
                    request_id=request_id,
                    symbol=result.symbol,
                    verdict=result.final_verdict.value,
                    confidence=result.confidence.value,
                    result_json=result.model_dump_json(by_alias=True),
                    as_of=_naive_utc(result.as_of),
                ))
            session.commit()
        finally:
            session.close()

    def save_instrument(self, instrument: Instrument) -> None:
        """
        Create or update an instrument from an import.

        Evidence is merged: items already stored (same policy, category,
        strength, notes and observation date) are not duplicated. Contracts,
        rankings and financials are replaced by the imported set.
        """
        session = self._session_factory()
        try:
            record = session.query(DBInstrument).filter_by(symbol=instrument.symbol.upper()).first()
            if record is None:
                record = DBInstrument(symbol=instrument.symbol.upper(), name=instrument.name)
                session.add(record)
            else:
                record.updated_at = datetime.utcnow()

            record.name = instrument.name
            record.active = instrument.active

            seen = {self._evidence_key(e) for e in record.evidence}
            for item in instrument.evidence:
                stored = DBEvidence(
                    policy=item.policy.value,
                    sub_category=item.sub_category.value if item.sub_category else None,
                    subtype=item.subtype,
                    strength=item.strength.value,
                    notes=item.notes,
                    observed_at=_naive_utc(item.observed_at),
                    source=self._get_or_create_source(session, item.source),
                )
                key = self._evidence_key(stored)
                if key in seen:
                    continue
                seen.add(key)
                record.evidence.append(stored)

            record.contracts = [
                DBContract(
                    agency=c.agency,
                    amount_usd=c.amount_usd,
                    psc=c.psc,
                    period_end=_naive_utc(c.period_end),
                    source=self._get_or_create_source(session, c.source),
                )
                for c in instrument.contracts
            ]
            record.arms_ranks = [
                DBArmsRank(
                    year=r.year,
                    sipri_rank=r.sipri_rank,
                    source=self._get_or_create_source(session, r.source),
                )
                for r in instrument.arms_ranks
            ]
            if instrument.financials is not None and not instrument.financials.is_estimated:
                f = instrument.financials
                record.financials = [DBFinancials(
                    period=_naive_utc(f.period),
                    market_cap=f.market_cap,
                    debt=f.debt,
                    cash_securities=f.cash_securities,
                    receivables=f.receivables,
                )]

            session.commit()
        finally:
            session.close()

    def add_alias(self, symbol: str, alias: str, alias_type: str = TICKER_ALIAS) -> bool:
        """Attach an alternate name to a stored instrument. Returns False when it does not exist."""
        session = self._session_factory()
        try:
            record = session.query(DBInstrument).filter_by(symbol=symbol.upper()).first()
            if record is None:
                return False

            alias_type = alias_type.upper()
            # Ticker aliases match the way symbols are normalized
            name = alias.strip().upper() if alias_type == TICKER_ALIAS else alias.strip()
            if not any(a.alias_type == alias_type and a.name == name for a in record.aliases):
                record.aliases.append(DBAlias(name=name, alias_type=alias_type))
                record.updated_at = datetime.utcnow()
                session.commit()
            return True
        finally:
            session.close()

    def deactivate_instrument(self, symbol: str) -> bool:
        """Soft-delete an instrument. Returns False when it does not exist."""
        session = self._session_factory()
        try:
            record = session.query(DBInstrument).filter_by(symbol=symbol.upper()).first()
            if record is None:
                return False
            record.active = False
            record.updated_at = datetime.utcnow()
            session.commit()
            return True
        finally:
            session.close()

    def save_basket(self, basket: Basket) -> None:
        """Create or replace a basket and its holdings."""
        session = self._session_factory()
        try:
            record = session.query(DBBasket).filter_by(symbol=basket.symbol.upper()).first()
            if record is None:
                record = DBBasket(symbol=basket.symbol.upper(), name=basket.name)
                session.add(record)

            record.name = basket.name
            record.provider = basket.provider
            record.holdings_url = basket.holdings_url
            record.last_holdings_date = _naive_utc(basket.as_of)
            record.holdings = [
                DBHolding(symbol=h.symbol.upper(), name=h.name, weight=h.weight)
                for h in basket.holdings
            ]
            session.commit()
        finally:
            session.close()

    # Conversion helpers

    def _to_instrument(self, record: DBInstrument) -> Instrument:
        cutoff = datetime.utcnow() - timedelta(days=self.contract_lookback_days)
        contracts = [c for c in record.contracts if c.period_end is None or c.period_end >= cutoff]

        # Only the most recent ranking year counts
        ranks = []
        if record.arms_ranks:
            latest_year = max(r.year for r in record.arms_ranks)
            ranks = [r for r in record.arms_ranks if r.year == latest_year]

        financials = None
        if record.financials:
            latest = max(record.financials, key=lambda f: f.period or datetime.min)
            financials = Financials(
                market_cap=latest.market_cap or 0.0,
                debt=latest.debt or 0.0,
                cash_securities=latest.cash_securities or 0.0,
                receivables=latest.receivables or 0.0,
                period=latest.period,
            )

        return Instrument(
            symbol=record.symbol,
            name=record.name,
            active=record.active,
            evidence=[e for e in map(self._to_evidence, record.evidence) if e is not None],
            contracts=[
                DefenseContract(
                    agency=c.agency,
                    amount_usd=c.amount_usd or 0.0,
                    psc=c.psc,
                    period_end=c.period_end,
                    source=self._to_source(c.source),
                )
                for c in contracts
            ],
            arms_ranks=[
                ArmsRank(year=r.year, sipri_rank=r.sipri_rank, source=self._to_source(r.source))
                for r in ranks
            ],
            financials=financials,
        )

    def _to_evidence(self, record: DBEvidence) -> Optional[Evidence]:
        """Convert a stored row; unreadable rows are skipped with a warning."""
        sub_category = record.sub_category
        if sub_category and sub_category not in _BDS_CATEGORIES:
            if record.policy == Policy.BDS.value:
                logger.warning(
                    f"Evidence {record.id} has unknown BDS category {sub_category!r}; "
                    f"treating it as {BdsCategory.OTHER.value}"
                )
                sub_category = BdsCategory.OTHER.value
            else:
                sub_category = None

        try:
            return Evidence(
                id=str(record.id),
                policy=record.policy,
                sub_category=sub_category,
                subtype=record.subtype,
                strength=record.strength,
                notes=record.notes or "",
                observed_at=record.observed_at,
                source=self._to_source(record.source),
            )
        except ValidationError as e:
            logger.warning(f"Skipping unreadable evidence {record.id}: {e.error_count()} invalid field(s)")
            return None

    @staticmethod
    def _to_source(record: Optional[DBSource]) -> Optional[Source]:
        if record is None:
            return None
        return Source(
            url=record.url,
            title=record.title,
            domain=record.domain,
            publisher=record.publisher,
        )

    @staticmethod
    def _get_or_create_source(session: Session, source: Optional[Source]) -> Optional[DBSource]:
        if source is None:
            return None
        record = session.query(DBSource).filter_by(url=source.url).first()
        if record is None:
            record = DBSource(
                url=source.url,
                title=source.title,
                domain=source.domain,
                publisher=source.publisher,
            )
            session.add(record)
            session.flush()
        return record

    @staticmethod
    def _evidence_key(record: DBEvidence) -> tuple:
        return (
            record.policy,
            record.sub_category,
            record.strength,
            (record.notes or "").strip(),
            record.observed_at,
        )
