# routers/billing.py
"""
Billing functions: plan checkout and upgrade, service charge invoices and
the trial lifecycle.
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from config import settings
from database import get_session
from dependencies import (
     CurrentUser,
     get_current_user,
     get_supabase,
     get_user_role,
     is_admin,
     verify_token,
)
from models import LandlordSubscription
from routers import FUNCTIONS_PREFIX, service_error
from schemas.billing import CheckoutRequest, ConfirmUpgradeRequest, ServiceInvoiceRequest
from services.billing_service import BillingError, BillingService
from services.security_service import log_user_activity_safe
from services.trial_service import compute_trial_status, run_trial_manager
from utils.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["billing"])


def require_scheduler(request: Request, db: Session = Depends(get_session)) -> None:
     """
     Scheduled jobs call in with the service-role key; admins may run them by hand.
     """
     auth = request.headers.get("Authorization") or ""
     token = auth.split(" ", 1)[1].strip() if auth.startswith("Bearer ") else ""
     if token and settings.supabase_service_role and token == settings.supabase_service_role:
          return
     user = get_current_user(verify_token(request))
     if not is_admin(db, user.id):
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


@router.post("/create-billing-checkout")
def create_billing_checkout(
     body: CheckoutRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return BillingService.create_checkout(db, user.id, body.planId, body.phoneNumber)
     except BillingError as e:
          raise service_error(e)


@router.post("/confirm-billing-upgrade")
def confirm_billing_upgrade(
     body: ConfirmUpgradeRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          subscription = BillingService.confirm_upgrade(db, user.id, body.transactionId, body.planId)
     except BillingError as e:
          raise service_error(e)

     log_user_activity_safe(
          client,
          user.id,
          "subscription_upgrade",
          "landlord_subscription",
          subscription.id,
          {"billing_plan_id": str(subscription.billing_plan_id), "transaction_id": body.transactionId},
     )
     return {
          "success": True,
          "message": "Upgrade completed successfully",
          "subscription": subscription.to_dict(),
     }


@router.post("/generate-service-invoice")
def generate_service_invoice(
     body: ServiceInvoiceRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Bill a landlord for a period.

     - **landlord_id**: defaults to the caller; only admins may bill someone else
     - **billing_period_start**, **billing_period_end**: required dates
     """
     if body.billing_period_start is None or body.billing_period_end is None:
          raise HTTPException(
               status_code=status.HTTP_400_BAD_REQUEST,
               detail="billing_period_start and billing_period_end are required",
          )
     try:
          landlord_id = uuid.UUID(body.landlord_id) if body.landlord_id else user.id
     except ValueError:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="landlord_id must be a valid id")
     if landlord_id != user.id and not is_admin(db, user.id):
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")

     try:
          invoice = BillingService.generate_service_invoice(
               db, client, landlord_id, body.billing_period_start, body.billing_period_end
          )
     except BillingError as e:
          raise service_error(e)
     return {"success": True, "invoice": invoice.to_dict()}


@router.post("/trial-manager", dependencies=[Depends(require_scheduler)])
def trial_manager(
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     return run_trial_manager(db, client)


@router.get("/trial-status")
def trial_status(
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     subscription = (
          db.query(LandlordSubscription)
          .filter(LandlordSubscription.landlord_id == user.id)
          .first()
     )
     return compute_trial_status(subscription, get_user_role(db, user.id))
