"""SQLAlchemy models for locally cached payment state."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentRecord(Base):
    """
    Last known state of a PIX payment.

    Written when a charge is opened and again when the poller observes a
    terminal status. Updates are plain overwrites: the most recent writer
    wins.
    """

    __tablename__ = "payment_records"

    payment_id = Column(Integer, primary_key=True, autoincrement=False)
    external_id = Column(String(100), nullable=True, unique=True, index=True)
    amount = Column(Float, nullable=False, default=0.0)
    base_amount = Column(Float, nullable=False, default=0.0)  # Without late fee
    status = Column(String(20), nullable=False, default="pending")
    due_date = Column(String(40), nullable=True)  # ISO-8601, as sent by the backend
    description = Column(Text, nullable=True)
    pix_qr_code = Column(Text, nullable=True)
    pix_copy_paste = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    audit_logs = relationship("AuditLog", back_populates="payment", lazy="raise")


class AuditLog(Base):
    """
    Append-only trail of what happened to a payment on this client:
    charge opened, poller started/stopped, confirmation observed.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey("payment_records.payment_id"), nullable=True, index=True)
    external_id = Column(String(100), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)

    payment = relationship("PaymentRecord", back_populates="audit_logs")
