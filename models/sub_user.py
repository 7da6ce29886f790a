# models/sub_user.py
import uuid

from sqlalchemy import Column, String, DateTime, JSON, Uuid, func

from .base import Base

SUB_USER_PERMISSIONS = (
     "manage_properties",
     "manage_tenants",
     "manage_leases",
     "manage_maintenance",
     "view_reports",
)


class SubUser(Base):
     """
     Staff account working under a landlord with a fixed permission set.
     Maps to existing 'sub_users' table in the database.
     """
     __tablename__ = "sub_users"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     landlord_id = Column(Uuid, nullable=False, index=True)
     user_id = Column(Uuid, nullable=False, index=True)
     title = Column(String(100), nullable=True)
     permissions = Column(JSON, nullable=False)
     status = Column(String(20), default="active", nullable=False)
     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     def __repr__(self):
          return f"<SubUser(landlord_id={self.landlord_id}, user_id={self.user_id}, status='{self.status}')>"
