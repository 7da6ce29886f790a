# routers/support.py
"""
Support ticket functions.

Role-based access:
- Admin: all tickets, any update, staff replies, stats
- Everyone else: their own tickets; may only close them
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, get_current_user, is_admin, require_admin
from routers import FUNCTIONS_PREFIX, service_error
from schemas.support import MessageCreate, MessageResponse, TicketCreate, TicketResponse, TicketUpdate
from services.support_service import SupportError, SupportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["support"])


@router.get("/support-tickets", response_model=List[TicketResponse])
def list_tickets(
     ticket_status: Optional[str] = Query(None, alias="status"),
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return SupportService.list_tickets(db, user.id, is_admin(db, user.id), ticket_status)
     except SupportError as e:
          raise service_error(e)


@router.post(
     "/support-tickets",
     response_model=TicketResponse,
     status_code=status.HTTP_201_CREATED,
)
def create_ticket(
     body: TicketCreate,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     """
     Open a support ticket.

     - **title**, **description**, **category**: required
     - **priority**: low, medium (default), high or urgent
     """
     try:
          return SupportService.create_ticket(db, user.id, body.model_dump())
     except SupportError as e:
          raise service_error(e)


@router.post("/support-ticket-update", response_model=TicketResponse)
def update_ticket(
     body: TicketUpdate,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return SupportService.update_ticket(db, user.id, is_admin(db, user.id), body.model_dump())
     except SupportError as e:
          raise service_error(e)


@router.get("/support-ticket-messages", response_model=List[MessageResponse])
def list_messages(
     ticket_id: Optional[str] = Query(None),
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return SupportService.list_messages(db, ticket_id, user.id, is_admin(db, user.id))
     except SupportError as e:
          raise service_error(e)


@router.post(
     "/support-ticket-messages",
     response_model=MessageResponse,
     status_code=status.HTTP_201_CREATED,
)
def add_message(
     body: MessageCreate,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return SupportService.add_message(db, body.ticket_id, user.id, is_admin(db, user.id), body.message)
     except SupportError as e:
          raise service_error(e)


@router.get("/support-stats", dependencies=[Depends(require_admin)])
def support_stats(db: Session = Depends(get_session)):
     return SupportService.stats(db)
