# models/lease.py
import enum
import uuid
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import Column, String, Numeric, Date, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base


class LeaseStatus(str, enum.Enum):
     ACTIVE = "active"
     EXPIRED = "expired"
     TERMINATED = "terminated"


class Lease(Base):
     """
     Lease model - rental agreement between a tenant and a unit.
     Maps to existing 'leases' table in the database.
     """
     __tablename__ = "leases"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
     unit_id = Column(Uuid, ForeignKey("units.id"), nullable=False, index=True)

     # Pricing
     monthly_rent = Column(Numeric(12, 2), nullable=False)
     security_deposit = Column(Numeric(12, 2), nullable=True)

     # Lease period
     lease_start_date = Column(Date, nullable=False)
     lease_end_date = Column(Date, nullable=True)

     status = Column(String(20), default=LeaseStatus.ACTIVE.value, nullable=False)
     created_at = Column(DateTime(timezone=True), server_default=func.now())

     # Relationships
     tenant = relationship("Tenant", back_populates="leases")
     unit = relationship("Unit", back_populates="leases")
     invoices = relationship("Invoice", back_populates="lease")

     def __repr__(self):
          return f"<Lease(id={self.id}, tenant_id={self.tenant_id}, unit_id={self.unit_id})>"

     def expires_within(self, days: int, today: Optional[date] = None) -> bool:
          """True for an active lease whose end date falls in [today, today + days]."""
          today = today or date.today()
          if self.status != LeaseStatus.ACTIVE.value or self.lease_end_date is None:
               return False
          return today <= self.lease_end_date <= today + timedelta(days=days)
