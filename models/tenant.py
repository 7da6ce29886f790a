# models/tenant.py
import uuid

from sqlalchemy import Column, String, DateTime, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base


class Tenant(Base):
     """
     Tenant model - people renting units. user_id is set once the tenant
     has a portal account.
     Maps to existing 'tenants' table in the database.
     """
     __tablename__ = "tenants"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=True, index=True)
     first_name = Column(String(100), nullable=False)
     last_name = Column(String(100), nullable=False)
     email = Column(String(255), nullable=True, index=True)
     phone = Column(String(50), nullable=True)
     national_id = Column(String(50), nullable=True)
     employment_status = Column(String(50), nullable=True)
     created_at = Column(DateTime(timezone=True), server_default=func.now())

     # Relationships
     leases = relationship("Lease", back_populates="tenant")
     invoices = relationship("Invoice", back_populates="tenant")

     def __repr__(self):
          return f"<Tenant(id={self.id}, name='{self.first_name} {self.last_name}')>"

     @property
     def full_name(self) -> str:
          return f"{self.first_name} {self.last_name}".strip()
