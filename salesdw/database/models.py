"""
Database Models - Star Schema Design

This module defines the warehouse data models following a star schema design
pattern. The schema consists of:

Fact Tables:
- FactSale: Sales transactions, one row per business key

Dimension Tables:
- DimCustomer, DimStore, DimSupplier, DimProduct: keyed by source identifiers
- DimDate: Date dimension with calendar attributes

Aggregate Tables:
- AggStoreProduct: Published store x product aggregate rows, versioned per mode
- AggViewState: Pointer to the published version of each aggregate mode

Every dimension carries a surrogate key and a unique natural key. The unique
constraints are what the loader relies on for "insert if absent" semantics.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimDate(Base):
    """
    Date Dimension Table

    Created lazily as transactions reference new calendar dates.
    The surrogate key is the date in YYYYMMDD form.
    """
    __tablename__ = "dim_date"

    date_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    full_date: Mapped[date] = mapped_column(Date, unique=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Monday
    day_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    week_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    month_name: Mapped[str] = mapped_column(String(20), nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("ix_dim_date_year_month", "year", "month"),
        Index("ix_dim_date_year_quarter", "year", "quarter"),
    )


class DimCustomer(Base):
    """Customer Dimension Table"""
    __tablename__ = "dim_customer"

    customer_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DimStore(Base):
    """Store Dimension Table"""
    __tablename__ = "dim_store"

    store_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    store_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    store_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DimSupplier(Base):
    """Supplier Dimension Table"""
    __tablename__ = "dim_supplier"

    supplier_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    supplier_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    supplier_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DimProduct(Base):
    """Product Dimension Table"""
    __tablename__ = "dim_product"

    product_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# =============================================================================
# FACT TABLES
# =============================================================================

class FactSale(Base):
    """
    Sales Fact Table

    Grain: one row per (customer, store, supplier, product, date).
    Rows are append-only; a repeated business key is skipped on load.
    """
    __tablename__ = "fact_sale"

    sale_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Dimension foreign keys
    customer_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_customer.customer_key"), nullable=False
    )
    store_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_store.store_key"), nullable=False
    )
    supplier_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_supplier.supplier_key"), nullable=False
    )
    product_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_product.product_key"), nullable=False
    )
    date_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_date.date_key"), nullable=False
    )

    # Measures
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_sale: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # Audit
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "customer_key", "store_key", "supplier_key", "product_key", "date_key",
            name="uq_fact_sale_business_key",
        ),
        Index("ix_fact_sale_store_product", "store_key", "product_key"),
        Index("ix_fact_sale_date", "date_key"),
    )


# Column order of the business key, shared by the writer and the constraint
FACT_BUSINESS_KEY = ("customer_key", "store_key", "supplier_key", "product_key", "date_key")


# =============================================================================
# ANALYTICS AGGREGATES
# =============================================================================

class AggStoreProduct(Base):
    """
    Store x Product Aggregate Table

    Rows of every published aggregate version. A NULL store_key or product_key
    is the ALL marker of a subtotal row.
    """
    __tablename__ = "agg_store_product"

    aggregate_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mode: Mapped[str] = mapped_column(String(10), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    store_key: Mapped[Optional[int]] = mapped_column(Integer)
    product_key: Mapped[Optional[int]] = mapped_column(Integer)
    total_sale: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    __table_args__ = (
        # A second refresh publishing the same version of a mode fails here
        UniqueConstraint("mode", "version", "position", name="uq_agg_store_product_position"),
        Index("ix_agg_store_product_mode_version", "mode", "version"),
    )


class AggViewState(Base):
    """Published version pointer, one row per aggregate mode"""
    __tablename__ = "agg_view_state"

    mode: Mapped[str] = mapped_column(String(10), primary_key=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    row_count: Mapped[int] = mapped_column(Integer, default=0)
    fact_count: Mapped[int] = mapped_column(Integer, default=0)
    refreshed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
