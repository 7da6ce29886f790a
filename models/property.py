# models/property.py
import enum
import uuid

from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base


class UnitStatus(str, enum.Enum):
     VACANT = "vacant"
     OCCUPIED = "occupied"
     MAINTENANCE = "maintenance"


class Property(Base):
     """
     Property model - a building or estate owned by a landlord.
     Maps to existing 'properties' table in the database.
     """
     __tablename__ = "properties"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     name = Column(String(255), nullable=False)
     address = Column(Text, nullable=True)
     city = Column(String(100), nullable=True)
     property_type = Column(String(50), nullable=True)

     # Ownership: both are auth user ids
     owner_id = Column(Uuid, nullable=True, index=True)
     manager_id = Column(Uuid, nullable=True, index=True)

     created_at = Column(DateTime(timezone=True), server_default=func.now())

     # Relationships
     units = relationship("Unit", back_populates="property")
     expenses = relationship("Expense", back_populates="property")

     def __repr__(self):
          return f"<Property(id={self.id}, name='{self.name}')>"


class Unit(Base):
     """
     Unit model - a rentable unit inside a property.
     Maps to existing 'units' table in the database.
     """
     __tablename__ = "units"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     property_id = Column(Uuid, ForeignKey("properties.id"), nullable=False, index=True)
     unit_number = Column(String(50), nullable=False)
     unit_type = Column(String(50), nullable=True)
     rent_amount = Column(Numeric(12, 2), nullable=True)
     status = Column(String(20), default=UnitStatus.VACANT.value, nullable=False)

     # Relationships
     property = relationship("Property", back_populates="units")
     leases = relationship("Lease", back_populates="unit")

     def __repr__(self):
          return f"<Unit(id={self.id}, unit_number='{self.unit_number}', status='{self.status}')>"
