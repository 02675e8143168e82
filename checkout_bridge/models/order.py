"""SQLAlchemy models for the reference host's order store."""

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _load_properties(raw: str | None) -> dict[str, str]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {}
    return {str(k): str(v) for k, v in data.items() if v is not None}


class Order(Base):
    """
    A host order and its transaction state.

    `properties` holds arbitrary string properties (billing address fields,
    plus the processor ids written back by the provider as JSON). The
    transaction columns are only ever changed through provider results.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(50), nullable=False, unique=True, index=True)
    currency_code = Column(String(3), nullable=False, default="GBP")
    transaction_amount = Column(Numeric(18, 2), nullable=False)
    customer_first_name = Column(String(100), nullable=True)
    customer_last_name = Column(String(100), nullable=True)
    customer_email = Column(String(200), nullable=True)
    language_iso_code = Column(String(10), nullable=True)
    billing_country_code = Column(String(2), nullable=True)
    properties_json = Column("properties", Text, nullable=True)  # JSON: {"billingCity": "Bristol", ...}

    # Transaction state
    payment_status = Column(String(30), nullable=False, default="initialized")
    transaction_id = Column(String(100), nullable=True)
    amount_authorized = Column(Numeric(18, 2), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    lines = relationship("OrderLine", back_populates="order", lazy="raise", order_by="OrderLine.id")
    audit_logs = relationship("AuditLog", back_populates="order", lazy="raise")

    @property
    def properties(self) -> dict[str, str]:
        return _load_properties(self.properties_json)

    @properties.setter
    def properties(self, value: dict[str, str]) -> None:
        self.properties_json = json.dumps(value, sort_keys=True)


class OrderLine(Base):
    """One line of an order; `properties` carries per-line processor hints."""

    __tablename__ = "order_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    product_reference = Column(String(100), nullable=True)
    quantity = Column(Numeric(12, 2), nullable=False, default=1)
    unit_price_with_tax = Column(Numeric(18, 2), nullable=False)
    unit_price_without_tax = Column(Numeric(18, 2), nullable=False)
    total_price_with_tax = Column(Numeric(18, 2), nullable=False)
    total_price_without_tax = Column(Numeric(18, 2), nullable=False)
    tax_rate = Column(Numeric(6, 4), nullable=False, default=0)  # fraction, 0.2 = 20%
    properties_json = Column("properties", Text, nullable=True)

    order = relationship("Order", back_populates="lines")

    @property
    def properties(self) -> dict[str, str]:
        return _load_properties(self.properties_json)

    @properties.setter
    def properties(self, value: dict[str, str]) -> None:
        self.properties_json = json.dumps(value, sort_keys=True)


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Every provider result applied to an order, and every rejected webhook,
    gets an entry. These are append-only and never modified.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="audit_logs")
