# models/invoice.py
import enum
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, Text, Numeric, Date, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base


class InvoiceStatus(str, enum.Enum):
     """Enumeration for invoice payment status."""
     PENDING = "pending"
     PAID = "paid"
     OVERDUE = "overdue"
     CANCELLED = "cancelled"


class Invoice(Base):
     """
     Invoice model - rent and other charges billed to a tenant against a lease.
     Maps to existing 'invoices' table in the database.
     """
     __tablename__ = "invoices"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     lease_id = Column(Uuid, ForeignKey("leases.id"), nullable=False, index=True)
     tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)

     # Invoice details
     invoice_number = Column(String(50), nullable=True, index=True)
     invoice_date = Column(Date, nullable=True)
     due_date = Column(Date, nullable=False, index=True)
     amount = Column(Numeric(12, 2), nullable=False)
     status = Column(String(20), default=InvoiceStatus.PENDING.value, nullable=False, index=True)
     description = Column(Text, nullable=True)

     # Timestamps
     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     # Relationships
     tenant = relationship("Tenant", back_populates="invoices")
     lease = relationship("Lease", back_populates="invoices")

     def __repr__(self):
          return f"<Invoice(id={self.id}, amount={self.amount}, status='{self.status}', due_date={self.due_date})>"

     @property
     def is_overdue(self) -> bool:
          """Check if invoice is past due date and unpaid."""
          return self.status == InvoiceStatus.PENDING.value and self.due_date < date.today()

     def mark_as_paid(self) -> None:
          self.status = InvoiceStatus.PAID.value
          self.updated_at = datetime.now(timezone.utc)


class ServiceChargeInvoice(Base):
     """
     Platform service charge billed to a landlord on a percentage plan.
     Maps to existing 'service_charge_invoices' table in the database.
     """
     __tablename__ = "service_charge_invoices"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     landlord_id = Column(Uuid, nullable=False, index=True)
     invoice_number = Column(String(50), nullable=False)
     billing_period_start = Column(Date, nullable=False)
     billing_period_end = Column(Date, nullable=False)

     # Amounts
     rent_collected = Column(Numeric(12, 2), default=0, nullable=False)
     service_charge_rate = Column(Numeric(5, 2), default=0, nullable=False)
     service_charge_amount = Column(Numeric(12, 2), default=0, nullable=False)
     sms_charges = Column(Numeric(12, 2), default=0, nullable=False)
     other_charges = Column(Numeric(12, 2), default=0, nullable=False)
     total_amount = Column(Numeric(12, 2), default=0, nullable=False)
     currency = Column(String(10), default="KES", nullable=False)

     status = Column(String(20), default=InvoiceStatus.PENDING.value, nullable=False)
     invoice_date = Column(Date, nullable=True)
     due_date = Column(Date, nullable=True)

     # Settlement
     payment_method = Column(String(50), nullable=True)
     payment_date = Column(DateTime(timezone=True), nullable=True)
     payment_reference = Column(String(100), nullable=True)

     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     def __repr__(self):
          return f"<ServiceChargeInvoice(id={self.id}, number='{self.invoice_number}', status='{self.status}')>"

     def mark_as_paid(self, method: str, reference: Optional[str]) -> None:
          now = datetime.now(timezone.utc)
          self.status = InvoiceStatus.PAID.value
          self.payment_method = method
          self.payment_date = now
          self.payment_reference = reference
          self.updated_at = now
