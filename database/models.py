"""
database models for the quoting system.
Materials catalog, quotes with embedded line items, and per-month number counters.
"""

from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, Text, Index, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from utils.date_utils import get_local_time

Base = declarative_base()


class MaterialDB(Base):
    """database model for catalog materials"""
    __tablename__ = 'materials'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, index=True)
    unit = Column(String(8), nullable=False)  # kg, m³, m, unit, l, m²
    unit_price = Column(Float, nullable=False, default=0.0)
    description = Column(String(500), nullable=True)
    active = Column(Boolean, nullable=False, default=True, index=True)

    # Metadata
    created_at = Column(DateTime, default=get_local_time, index=True)
    updated_at = Column(DateTime, default=get_local_time, onupdate=get_local_time)

    __table_args__ = (
        Index('idx_materials_active_name', 'active', 'name'),
    )


class QuoteDB(Base):
    """database model for quotes"""
    __tablename__ = 'quotes'

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(32), nullable=False)
    client = Column(String(100), nullable=False, index=True)
    project = Column(String(500), nullable=False)

    # Labor block
    labor_hours = Column(Float, nullable=False, default=0.0)
    labor_rate_per_hour = Column(Float, nullable=False, default=25.0)
    labor_total = Column(Float, nullable=False, default=0.0)

    # Painting block
    painting_area_sq_meters = Column(Float, nullable=False, default=0.0)
    painting_rate_per_sq_meter = Column(Float, nullable=False, default=15.0)
    painting_total = Column(Float, nullable=False, default=0.0)

    # Totals, always derived by the calculator
    materials_subtotal = Column(Float, nullable=False, default=0.0)
    grand_total = Column(Float, nullable=False, default=0.0)

    status = Column(String(16), nullable=False, default='draft', index=True)  # draft, sent, approved, rejected, cancelled
    notes = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=get_local_time, nullable=False)
    updated_at = Column(DateTime, default=get_local_time, onupdate=get_local_time)

    # Relationships
    line_items = relationship(
        "QuoteLineItemDB",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteLineItemDB.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint('number', name='uq_quotes_number'),
        Index('idx_quotes_created_at', 'created_at'),
        Index('idx_quotes_status_created', 'status', 'created_at'),
    )


class QuoteLineItemDB(Base):
    """line items embedded in a quote"""
    __tablename__ = 'quote_line_items'

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(Integer, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # 仅保存材料ID，不建外键，删除材料不影响历史报价
    material_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Float, nullable=False)
    unit_price = Column(Float, nullable=False, default=0.0)
    custom_price = Column(Float, nullable=True)
    line_subtotal = Column(Float, nullable=False, default=0.0)

    # Relationships
    quote = relationship("QuoteDB", back_populates="line_items")


class QuoteCounterDB(Base):
    """per-month sequence counter for quote numbers"""
    __tablename__ = 'quote_counters'

    period = Column(String(6), primary_key=True)  # YYYYMM
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=get_local_time, onupdate=get_local_time)
