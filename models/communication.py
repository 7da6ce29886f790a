# models/communication.py
"""Outbound messaging: in-app notifications, preferences and delivery logs."""
import uuid

from sqlalchemy import Column, String, Text, Numeric, Boolean, DateTime, JSON, Uuid, func

from .base import Base, utcnow


class Notification(Base):
     """
     In-app notification shown in the portal bell.
     Maps to existing 'notifications' table in the database.
     """
     __tablename__ = "notifications"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=False, index=True)
     title = Column(String(255), nullable=False)
     message = Column(Text, nullable=False)
     type = Column(String(30), default="system", nullable=False)
     related_id = Column(Uuid, nullable=True)
     related_type = Column(String(50), nullable=True)
     is_read = Column(Boolean, default=False, nullable=False)
     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

     def __repr__(self):
          return f"<Notification(id={self.id}, user_id={self.user_id}, read={self.is_read})>"


class NotificationPreference(Base):
     """Maps to existing 'notification_preferences' table in the database."""
     __tablename__ = "notification_preferences"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=False, unique=True, index=True)
     email_enabled = Column(Boolean, default=True, nullable=False)
     sms_enabled = Column(Boolean, default=False, nullable=False)


class NotificationLog(Base):
     """Maps to existing 'notification_logs' table in the database."""
     __tablename__ = "notification_logs"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=False, index=True)
     notification_type = Column(String(30), nullable=False)
     channel = Column(String(10), nullable=False)  # email | sms
     status = Column(String(20), nullable=False)
     subject = Column(String(255), nullable=True)
     error_message = Column(Text, nullable=True)
     sent_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class CommunicationPreference(Base):
     """
     Platform-wide channel switches per message kind (e.g. password_reset).
     Maps to existing 'communication_preferences' table in the database.
     """
     __tablename__ = "communication_preferences"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     setting_name = Column(String(100), nullable=False, unique=True)
     email_enabled = Column(Boolean, default=True, nullable=False)
     sms_enabled = Column(Boolean, default=False, nullable=False)


class EmailLog(Base):
     """Maps to existing 'email_logs' table in the database."""
     __tablename__ = "email_logs"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     recipient_email = Column(String(255), nullable=False)
     recipient_name = Column(String(255), nullable=True)
     subject = Column(String(255), nullable=False)
     template_type = Column(String(50), nullable=True)
     status = Column(String(20), nullable=False)
     error_message = Column(Text, nullable=True)
     metadata_ = Column("metadata", JSON, nullable=True)
     sent_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class SmsUsageLog(Base):
     """
     One SMS sent on behalf of a landlord; summed into the service charge invoice.
     Maps to existing 'sms_usage_logs' table in the database.
     """
     __tablename__ = "sms_usage_logs"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     landlord_id = Column(Uuid, nullable=False, index=True)
     recipient_phone = Column(String(20), nullable=False)
     message_content = Column(Text, nullable=False)
     cost = Column(Numeric(8, 2), default=0, nullable=False)
     status = Column(String(20), default="sent", nullable=False)
     sent_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
