# models/security.py
import uuid

from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON, Uuid, func

from .base import Base, utcnow


class SecurityEvent(Base):
     """
     Security audit trail. Rows are written by the log_security_event RPC;
     this projection is read for rate limiting.
     Maps to existing 'security_events' table in the database.
     """
     __tablename__ = "security_events"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     event_type = Column(String(100), nullable=False)
     severity = Column(String(20), default="medium", nullable=False)
     details = Column(JSON, nullable=True)
     user_id = Column(Uuid, nullable=True, index=True)
     ip_address = Column(String(64), nullable=True)
     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)

     def __repr__(self):
          return f"<SecurityEvent(type='{self.event_type}', severity='{self.severity}')>"


class ImpersonationSession(Base):
     """
     Admin "view as user" session.
     Maps to existing 'impersonation_sessions' table in the database.
     """
     __tablename__ = "impersonation_sessions"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     admin_user_id = Column(Uuid, nullable=False, index=True)
     impersonated_user_id = Column(Uuid, nullable=False, index=True)
     session_token = Column(String(64), nullable=False, unique=True)
     ip_address = Column(String(64), nullable=True)
     user_agent = Column(Text, nullable=True)
     is_active = Column(Boolean, default=True, nullable=False)
     expires_at = Column(DateTime(timezone=True), nullable=True)
     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
     ended_at = Column(DateTime(timezone=True), nullable=True)
