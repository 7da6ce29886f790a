# routers/mpesa.py
"""
M-Pesa functions: landlord credentials, STK push and the Daraja callback.

The callback is called by Safaricom, not by a signed-in user, so it carries
no bearer token; its source address is checked instead.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, client_ip, get_current_user, get_supabase
from routers import FUNCTIONS_PREFIX, service_error
from schemas.mpesa import MpesaCredentialsRequest, StkPushRequest
from services import mpesa_service
from services.mpesa_service import MpesaError
from utils.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["mpesa"])


@router.post("/save-mpesa-credentials")
def save_mpesa_credentials(
     body: MpesaCredentialsRequest,
     request: Request,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          mpesa_service.save_credentials(db, client, user.id, body.model_dump(), client_ip(request))
     except MpesaError as e:
          raise service_error(e)
     except SQLAlchemyError as e:
          logger.error("Saving M-Pesa credentials for %s failed: %s", user.id, e)
          raise HTTPException(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               detail="Failed to save M-Pesa credentials",
          )
     return {"success": True, "message": "M-Pesa credentials saved securely"}


@router.post("/mpesa-stk-push")
def mpesa_stk_push(
     body: StkPushRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     """
     Prompt the payer's phone for payment.

     - **phone**, **amount**: required
     - **invoiceId**: tenant invoice or service charge invoice being paid
     - **paymentType**: rent (default), service-charge or plan_upgrade
     - **dryRun**: validate and return a mock reply without calling Daraja
     """
     try:
          return mpesa_service.initiate_stk_push(db, user.id, body.model_dump())
     except MpesaError as e:
          raise service_error(e)


@router.post("/mpesa-callback", response_class=PlainTextResponse)
def mpesa_callback(
     request: Request,
     body: Optional[dict] = Body(None),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          return mpesa_service.process_callback(db, client, body, client_ip(request))
     except MpesaError as e:
          raise service_error(e)
