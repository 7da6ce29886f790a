# models/support.py
import enum
import uuid

from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class TicketStatus(str, enum.Enum):
     OPEN = "open"
     IN_PROGRESS = "in_progress"
     RESOLVED = "resolved"
     CLOSED = "closed"


class TicketPriority(str, enum.Enum):
     LOW = "low"
     MEDIUM = "medium"
     HIGH = "high"
     URGENT = "urgent"


class SupportTicket(Base):
     """Maps to existing 'support_tickets' table in the database."""
     __tablename__ = "support_tickets"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     user_id = Column(Uuid, nullable=False, index=True)
     title = Column(String(255), nullable=False)
     description = Column(Text, nullable=False)
     category = Column(String(50), nullable=False)
     priority = Column(String(20), default=TicketPriority.MEDIUM.value, nullable=False)
     status = Column(String(20), default=TicketStatus.OPEN.value, nullable=False, index=True)
     assigned_to = Column(Uuid, nullable=True)
     resolved_at = Column(DateTime(timezone=True), nullable=True)
     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

     messages = relationship(
          "SupportMessage",
          back_populates="ticket",
          order_by="SupportMessage.created_at",
     )

     def __repr__(self):
          return f"<SupportTicket(id={self.id}, status='{self.status}', priority='{self.priority}')>"


class SupportMessage(Base):
     """Maps to existing 'support_messages' table in the database."""
     __tablename__ = "support_messages"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     ticket_id = Column(Uuid, ForeignKey("support_tickets.id"), nullable=False, index=True)
     user_id = Column(Uuid, nullable=False)
     message = Column(Text, nullable=False)
     is_staff_reply = Column(Boolean, default=False, nullable=False)
     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

     ticket = relationship("SupportTicket", back_populates="messages")
