# models/profile.py
import enum
import uuid

from sqlalchemy import Column, String, DateTime, Uuid, func

from .base import Base


class AppRole(str, enum.Enum):
     """Roles stored in user_roles.role."""
     ADMIN = "Admin"
     LANDLORD = "Landlord"
     MANAGER = "Manager"
     AGENT = "Agent"
     TENANT = "Tenant"
     SUB_USER = "sub_user"


class Profile(Base):
     """
     Profile model - one row per auth user.
     Maps to existing 'profiles' table in the database.
     """
     __tablename__ = "profiles"

     id = Column(Uuid, primary_key=True)  # same id as the auth user
     first_name = Column(String(100), nullable=True)
     last_name = Column(String(100), nullable=True)
     email = Column(String(255), nullable=True, index=True)
     phone = Column(String(50), nullable=True)
     created_at = Column(DateTime(timezone=True), server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

     def __repr__(self):
          return f"<Profile(id={self.id}, email='{self.email}')>"

     @property
     def full_name(self) -> str:
          return f"{self.first_name or ''} {self.last_name or ''}".strip()


class UserRole(Base):
     """
     Role assignment for a user.
     Maps to existing 'user_roles' table in the database.
     """
     __tablename__ = "user_roles"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=False, index=True)
     role = Column(String(50), nullable=False)
     created_at = Column(DateTime(timezone=True), server_default=func.now())

     def __repr__(self):
          return f"<UserRole(user_id={self.user_id}, role='{self.role}')>"
