"""
StockPulse Database Models

Tables:
  Inventory (read-only for the alerting core):
  1. merchants            - Shop owners (tenants)
  2. products             - Per-merchant product catalog with on-hand quantity

  Low-stock alerting:
  3. alert_settings       - One row per merchant, created lazily with defaults
  4. alert_delivery_log   - One row per merchant per calendar day (idempotency guard)
  5. alerts               - Generated alert records, mutated only on read-flag
"""

from datetime import datetime, time

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import relationship

from db.session import Base

# ─── 1. Merchants ──────────────────────────────────────────────────────────


class Merchant(Base):
    __tablename__ = "merchants"

    merchant_id = Column(Integer, primary_key=True, autoincrement=True)
    shop_name = Column(String(255), nullable=False)
    owner_name = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    products = relationship("Product", back_populates="merchant", cascade="all, delete-orphan")
    alert_settings = relationship("AlertSettings", back_populates="merchant", uselist=False)


# ─── 2. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(Integer, primary_key=True, autoincrement=True)
    merchant_id = Column(Integer, ForeignKey("merchants.merchant_id"), nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    quantity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_products_merchant_quantity", "merchant_id", "quantity"),
        CheckConstraint("quantity >= 0", name="ck_product_quantity_nonnegative"),
    )

    merchant = relationship("Merchant", back_populates="products")


# ─── 3. Alert Settings ──────────────────────────────────────────────────────


class AlertSettings(Base):
    __tablename__ = "alert_settings"

    settings_id = Column(Integer, primary_key=True, autoincrement=True)
    merchant_id = Column(Integer, ForeignKey("merchants.merchant_id"), nullable=False, unique=True)
    enabled = Column(Boolean, nullable=False, default=True)
    low_stock_threshold = Column(Integer, nullable=False, default=5)
    critical_stock_threshold = Column(Integer, nullable=False, default=2)
    ai_enhanced = Column(Boolean, nullable=False, default=True)
    daily_time = Column(Time, nullable=False, default=time(9, 0, 0))
    email_enabled = Column(Boolean, nullable=False, default=False)
    email = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("low_stock_threshold BETWEEN 1 AND 100", name="ck_alert_settings_low_range"),
        CheckConstraint("critical_stock_threshold BETWEEN 1 AND 50", name="ck_alert_settings_critical_range"),
        CheckConstraint("critical_stock_threshold < low_stock_threshold", name="ck_alert_settings_ordering"),
    )

    merchant = relationship("Merchant", back_populates="alert_settings")


# ─── 4. Alert Delivery Log ──────────────────────────────────────────────────


class AlertDeliveryLog(Base):
    """Presence of a row for (merchant, date) is the only 'already processed today' signal."""

    __tablename__ = "alert_delivery_log"

    merchant_id = Column(Integer, ForeignKey("merchants.merchant_id"), primary_key=True)
    delivery_date = Column(Date, primary_key=True)
    alerts_sent_count = Column(Integer, nullable=False, default=0)
    product_ids = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# ─── 5. Alerts ──────────────────────────────────────────────────────────────


class Alert(Base):
    __tablename__ = "alerts"

    alert_id = Column(Integer, primary_key=True, autoincrement=True)
    merchant_id = Column(Integer, ForeignKey("merchants.merchant_id"), nullable=False)
    alert_type = Column(String(50), nullable=False, default="low_stock")
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=True)  # single-product alerts only
    is_ai_enhanced = Column(Boolean, nullable=False, default=False)
    original_body = Column(Text)
    alert_metadata = Column("metadata", JSON, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        Index("ix_alerts_merchant_read", "merchant_id", "is_read"),
        Index("ix_alerts_merchant_created", "merchant_id", "created_at"),
        CheckConstraint("alert_type IN ('low_stock')", name="ck_alert_type"),
    )
