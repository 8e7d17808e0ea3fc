"""SQLAlchemy database models and setup."""

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    Index,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from ethicscreen.config import settings

Base = declarative_base()


class DBSource(Base):
    """A cited document or registry page."""

    __tablename__ = "sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(2000), unique=True, nullable=False, index=True)
    title = Column(String(500))
    domain = Column(String(255))
    publisher = Column(String(255))


class DBInstrument(Base):
    """Stored instrument record. Soft-deactivated, never deleted."""

    __tablename__ = "instruments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(500), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    evidence = relationship("DBEvidence", back_populates="instrument", cascade="all, delete-orphan")
    contracts = relationship("DBContract", back_populates="instrument", cascade="all, delete-orphan")
    arms_ranks = relationship("DBArmsRank", back_populates="instrument", cascade="all, delete-orphan")
    financials = relationship("DBFinancials", back_populates="instrument", cascade="all, delete-orphan")
    aliases = relationship("DBAlias", back_populates="instrument", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_instrument_name", "name"),)


class DBEvidence(Base):
    """One piece of normalized evidence."""

    __tablename__ = "evidence"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    source_id = Column(Integer, ForeignKey("sources.id"))
    policy = Column(String(32), nullable=False)
    sub_category = Column(String(64))
    subtype = Column(String(100))
    strength = Column(String(16), nullable=False)
    notes = Column(Text)
    observed_at = Column(DateTime)

    instrument = relationship("DBInstrument", back_populates="evidence")
    source = relationship("DBSource")

    __table_args__ = (Index("idx_evidence_instrument_policy", "instrument_id", "policy"),)


class DBAlias(Base):
    """Alternate name for an instrument, e.g. a second listing ticker or a brand."""

    __tablename__ = "aliases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    name = Column(String(500), nullable=False)
    alias_type = Column(String(16), nullable=False, default="TICKER")

    instrument = relationship("DBInstrument", back_populates="aliases")

    __table_args__ = (Index("idx_alias_type_name", "alias_type", "name"),)


class DBContract(Base):
    """Government contract award."""

    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    source_id = Column(Integer, ForeignKey("sources.id"))
    agency = Column(String(255), nullable=False)
    amount_usd = Column(Float, nullable=False, default=0.0)
    psc = Column(String(16))
    period_end = Column(DateTime)

    instrument = relationship("DBInstrument", back_populates="contracts")
    source = relationship("DBSource")


class DBArmsRank(Base):
    """SIPRI Top-100 ranking per year."""

    __tablename__ = "arms_ranks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    source_id = Column(Integer, ForeignKey("sources.id"))
    year = Column(Integer, nullable=False)
    sipri_rank = Column(Integer)

    instrument = relationship("DBInstrument", back_populates="arms_ranks")
    source = relationship("DBSource")


class DBFinancials(Base):
    """Reported balance-sheet figures per period."""

    __tablename__ = "financials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    instrument_id = Column(Integer, ForeignKey("instruments.id"), nullable=False)
    period = Column(DateTime)
    market_cap = Column(Float, default=0.0)
    debt = Column(Float, default=0.0)
    cash_securities = Column(Float, default=0.0)
    receivables = Column(Float, default=0.0)

    instrument = relationship("DBInstrument", back_populates="financials")


class DBBasket(Base):
    """Fund or ETF."""

    __tablename__ = "baskets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(500), nullable=False)
    provider = Column(String(255))
    holdings_url = Column(String(2000))
    last_holdings_date = Column(DateTime)

    holdings = relationship("DBHolding", back_populates="basket", cascade="all, delete-orphan")


class DBHolding(Base):
    """Weighted position in a basket, keyed by symbol."""

    __tablename__ = "holdings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    basket_id = Column(Integer, ForeignKey("baskets.id"), nullable=False)
    symbol = Column(String(32), nullable=False)
    name = Column(String(500))
    weight = Column(Float, nullable=False)

    basket = relationship("DBBasket", back_populates="holdings")

    __table_args__ = (Index("idx_holding_basket", "basket_id"),)


class DBScreenResult(Base):
    """Audit trail of screening results. Written once, never updated."""

    __tablename__ = "screen_results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    audit_id = Column(String(64), unique=True, nullable=False, index=True)
    request_id = Column(String(64), index=True)
    symbol = Column(String(32), nullable=False)
    verdict = Column(String(16), nullable=False)
    confidence = Column(String(16), nullable=False)
    result_json = Column(Text, nullable=False)  # Full ScreeningResult
    as_of = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (Index("idx_screen_result_symbol", "symbol"),)

    def get_result(self) -> dict:
        return json.loads(self.result_json) if self.result_json else {}


# Database initialization
def init_db(db_url: Optional[str] = None) -> sessionmaker:
    """Initialize database and return session maker."""
    url = db_url or settings.database_url
    engine = create_engine(url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
