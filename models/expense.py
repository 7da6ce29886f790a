# models/expense.py
import uuid

from sqlalchemy import Column, String, Text, Numeric, Date, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base, utcnow

# Expense categories re-billed to the landlord on the service charge invoice
SERVICE_CHARGE_EXPENSE_CATEGORIES = (
     "Security",
     "Water",
     "Utilities",
     "Administration",
     "Insurance",
     "Legal",
)


class Expense(Base):
     """
     Property expense.
     Maps to existing 'expenses' table in the database.
     """
     __tablename__ = "expenses"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     property_id = Column(Uuid, ForeignKey("properties.id"), nullable=False, index=True)
     unit_id = Column(Uuid, nullable=True)
     category = Column(String(50), nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)
     expense_date = Column(Date, nullable=False)
     description = Column(Text, nullable=True)
     created_at = Column(DateTime(timezone=True), server_default=func.now())

     property = relationship("Property", back_populates="expenses")

     def __repr__(self):
          return f"<Expense(id={self.id}, category='{self.category}', amount={self.amount})>"


class MaintenanceRequest(Base):
     """
     Maintenance request raised by a tenant or landlord.
     Maps to existing 'maintenance_requests' table in the database.
     """
     __tablename__ = "maintenance_requests"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     property_id = Column(Uuid, ForeignKey("properties.id"), nullable=False, index=True)
     unit_id = Column(Uuid, nullable=True)
     tenant_id = Column(Uuid, nullable=True)
     title = Column(String(255), nullable=False)
     description = Column(Text, nullable=True)
     category = Column(String(50), nullable=True)
     priority = Column(String(20), default="medium", nullable=False)
     status = Column(String(20), default="pending", nullable=False, index=True)
     cost = Column(Numeric(12, 2), nullable=True)
     submitted_date = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

     def __repr__(self):
          return f"<MaintenanceRequest(id={self.id}, status='{self.status}')>"
