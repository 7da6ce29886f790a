# services/support_service.py
"""
Support Service - help-desk tickets and their message threads.

Role-based access:
- Admin: sees and updates every ticket, replies count as staff replies
- Everyone else: own tickets only, and may only close them
"""
import logging
import uuid
from datetime import datetime, time, timezone
from typing import Optional

from sqlalchemy.orm import Session

from models import SupportMessage, SupportTicket
from models.base import utcnow
from models.support import TicketPriority, TicketStatus

logger = logging.getLogger(__name__)

STATUSES = {s.value for s in TicketStatus}
PRIORITIES = {p.value for p in TicketPriority}


class SupportError(Exception):
     def __init__(self, message: str, status_code: int = 400):
          super().__init__(message)
          self.message = message
          self.status_code = status_code


class SupportService:
     """Service class for support ticket business logic."""

     @staticmethod
     def get_ticket(db: Session, ticket_id) -> SupportTicket:
          try:
               ticket = db.get(SupportTicket, uuid.UUID(str(ticket_id)))
          except (TypeError, ValueError):
               raise SupportError("ticket_id is required")
          if ticket is None:
               raise SupportError("Ticket not found", 404)
          return ticket

     @staticmethod
     def get_accessible_ticket(db: Session, ticket_id, user_id: uuid.UUID, admin: bool) -> SupportTicket:
          ticket = SupportService.get_ticket(db, ticket_id)
          if not admin and ticket.user_id != user_id:
               raise SupportError("Not authorized to access this ticket", 403)
          return ticket

     @staticmethod
     def list_tickets(db: Session, user_id: uuid.UUID, admin: bool, status: Optional[str] = None) -> list[SupportTicket]:
          query = db.query(SupportTicket)
          if not admin:
               query = query.filter(SupportTicket.user_id == user_id)
          if status:
               if status not in STATUSES:
                    raise SupportError(f"status must be one of: {', '.join(sorted(STATUSES))}")
               query = query.filter(SupportTicket.status == status)
          return query.order_by(SupportTicket.created_at.desc()).all()

     @staticmethod
     def create_ticket(db: Session, user_id: uuid.UUID, data: dict) -> SupportTicket:
          """
          Open a new ticket.

          Raises:
               SupportError: missing title/description/category or an unknown priority
          """
          title = (data.get("title") or "").strip()
          description = (data.get("description") or "").strip()
          category = (data.get("category") or "").strip()
          priority = data.get("priority") or TicketPriority.MEDIUM.value
          if not title or not description or not category:
               raise SupportError("title, description and category are required")
          if priority not in PRIORITIES:
               raise SupportError(f"priority must be one of: {', '.join(sorted(PRIORITIES))}")

          ticket = SupportTicket(
               user_id=user_id,
               title=title,
               description=description,
               category=category,
               priority=priority,
               status=TicketStatus.OPEN.value,
          )
          db.add(ticket)
          db.flush()
          logger.info("Support ticket %s opened by %s", ticket.id, user_id)
          return ticket

     @staticmethod
     def update_ticket(db: Session, user_id: uuid.UUID, admin: bool, data: dict) -> SupportTicket:
          """
          Change status, priority or assignee.

          Owners who are not admins may only move their ticket to closed.
          Moving to resolved stamps resolved_at.
          """
          ticket = SupportService.get_accessible_ticket(db, data.get("ticket_id"), user_id, admin)
          status = data.get("status")
          priority = data.get("priority")
          assigned_to = data.get("assigned_to")

          if not admin and (priority or assigned_to or status not in (None, TicketStatus.CLOSED.value)):
               raise SupportError("Only administrators can change this ticket", 403)

          if status:
               if status not in STATUSES:
                    raise SupportError(f"status must be one of: {', '.join(sorted(STATUSES))}")
               ticket.status = status
               if status == TicketStatus.RESOLVED.value:
                    ticket.resolved_at = utcnow()
          if priority:
               if priority not in PRIORITIES:
                    raise SupportError(f"priority must be one of: {', '.join(sorted(PRIORITIES))}")
               ticket.priority = priority
          if assigned_to:
               try:
                    ticket.assigned_to = uuid.UUID(str(assigned_to))
               except ValueError:
                    raise SupportError("assigned_to must be a user id")

          ticket.updated_at = utcnow()
          db.flush()
          return ticket

     @staticmethod
     def list_messages(db: Session, ticket_id, user_id: uuid.UUID, admin: bool) -> list[SupportMessage]:
          ticket = SupportService.get_accessible_ticket(db, ticket_id, user_id, admin)
          return (
               db.query(SupportMessage)
               .filter(SupportMessage.ticket_id == ticket.id)
               .order_by(SupportMessage.created_at.asc())
               .all()
          )

     @staticmethod
     def add_message(db: Session, ticket_id, user_id: uuid.UUID, admin: bool, message: Optional[str]) -> SupportMessage:
          ticket = SupportService.get_accessible_ticket(db, ticket_id, user_id, admin)
          if not message or not message.strip():
               raise SupportError("message is required")
          reply = SupportMessage(
               ticket_id=ticket.id,
               user_id=user_id,
               message=message.strip(),
               is_staff_reply=admin,
          )
          db.add(reply)
          ticket.updated_at = utcnow()
          db.flush()
          return reply

     @staticmethod
     def stats(db: Session, now: Optional[datetime] = None) -> dict:
          now = now or utcnow()
          start_of_day = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)

          def count(*criteria) -> int:
               return db.query(SupportTicket).filter(*criteria).count()

          return {
               "openTickets": count(SupportTicket.status == TicketStatus.OPEN.value),
               "inProgressTickets": count(SupportTicket.status == TicketStatus.IN_PROGRESS.value),
               "resolvedToday": count(
                    SupportTicket.status == TicketStatus.RESOLVED.value,
                    SupportTicket.resolved_at >= start_of_day,
               ),
               "totalTickets": count(),
          }
