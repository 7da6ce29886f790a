# services/billing_service.py
"""
Billing Service - plan upgrades and platform service charge invoices.

Landlords on a fixed plan pay for upgrades through M-Pesa; landlords on a
percentage plan are activated directly and billed monthly as a share of
the rent they collect, plus SMS usage and re-billed property expenses.
"""
import logging
import uuid
from calendar import monthrange
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import (
     BillingPlan,
     Expense,
     LandlordSubscription,
     Lease,
     MpesaTransaction,
     Payment,
     Property,
     ServiceChargeInvoice,
     SmsUsageLog,
     Unit,
)
from models.base import utcnow
from models.billing import SubscriptionStatus
from models.expense import SERVICE_CHARGE_EXPENSE_CATEGORIES
from models.invoice import InvoiceStatus
from models.payment import MpesaPaymentType, PaymentStatus
from utils.formatting import generate_service_invoice_number
from utils.mpesa import format_mpesa_phone
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

SERVICE_INVOICE_DUE_DAYS = 30
ZERO = Decimal("0")


class BillingError(Exception):
     """Billing failure carrying the HTTP status the caller should see."""

     def __init__(self, message: str, status_code: int = 400):
          super().__init__(message)
          self.message = message
          self.status_code = status_code


def _money(value) -> Decimal:
     return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def month_bounds(today: date) -> tuple[date, date]:
     return today.replace(day=1), today.replace(day=monthrange(today.year, today.month)[1])


class BillingService:
     """Service class for plan checkout, upgrade confirmation and service charges."""

     # ------------------------------------------------------------------
     # Plan checkout
     # ------------------------------------------------------------------

     @staticmethod
     def get_active_plan(db: Session, plan_id) -> BillingPlan:
          try:
               plan_uuid = uuid.UUID(str(plan_id))
          except ValueError:
               raise BillingError("Plan not found or inactive", 404)
          plan = (
               db.query(BillingPlan)
               .filter(BillingPlan.id == plan_uuid, BillingPlan.is_active.is_(True))
               .first()
          )
          if plan is None:
               raise BillingError("Plan not found or inactive", 404)
          return plan

     @staticmethod
     def create_checkout(db: Session, user_id: uuid.UUID, plan_id: Optional[str], phone_number: Optional[str]) -> dict:
          """
          Start a plan upgrade.

          Percentage plans need no payment. Every other plan records a pending
          plan_upgrade M-Pesa transaction that the client then pushes to the
          landlord's phone.

          Raises:
               BillingError: missing plan, unknown/inactive plan or missing phone
          """
          if not plan_id:
               raise BillingError("Plan ID is required")
          plan = BillingService.get_active_plan(db, plan_id)

          if plan.is_percentage:
               logger.info("Percentage plan %s selected by %s, no payment required", plan.name, user_id)
               return {
                    "type": "direct_activation",
                    "message": "Plan activated successfully",
                    "requiresPayment": False,
               }

          if not phone_number:
               raise BillingError("Phone number is required for M-Pesa payment")

          phone = format_mpesa_phone(phone_number)
          transaction = MpesaTransaction(
               user_id=user_id,
               initiated_by=user_id,
               amount=plan.price,
               phone_number=phone,
               payment_type=MpesaPaymentType.PLAN_UPGRADE.value,
               status=PaymentStatus.PENDING.value,
               metadata_={
                    "plan_id": str(plan.id),
                    "plan_name": plan.name,
                    "billing_model": plan.billing_model,
               },
          )
          db.add(transaction)
          db.flush()
          logger.info("Upgrade transaction %s created for plan %s", transaction.id, plan.name)

          price = float(plan.price)
          return {
               "type": "mpesa_payment",
               "requiresPayment": True,
               "transactionId": str(transaction.id),
               "planId": str(plan.id),
               "amount": price,
               "currency": plan.currency,
               "phoneNumber": phone,
               "message": f"You will receive an M-Pesa prompt to pay {plan.currency} {price:g} for the {plan.name} plan.",
          }

     @staticmethod
     def confirm_upgrade(
          db: Session,
          user_id: uuid.UUID,
          transaction_id: Optional[str] = None,
          plan_id: Optional[str] = None,
     ) -> LandlordSubscription:
          """
          Activate the plan paid for by a completed plan_upgrade transaction,
          or a percentage plan chosen directly.

          Raises:
               BillingError: unknown transaction (404), payment not completed (400),
                    or a planId that is not a percentage plan (400)
          """
          if transaction_id:
               try:
                    txn_uuid = uuid.UUID(str(transaction_id))
               except ValueError:
                    raise BillingError("Transaction not found", 404)
               transaction = (
                    db.query(MpesaTransaction)
                    .filter(
                         MpesaTransaction.id == txn_uuid,
                         MpesaTransaction.user_id == user_id,
                         MpesaTransaction.payment_type == MpesaPaymentType.PLAN_UPGRADE.value,
                    )
                    .first()
               )
               if transaction is None:
                    raise BillingError("Transaction not found", 404)
               if transaction.status != PaymentStatus.COMPLETED.value:
                    raise BillingError("Payment not completed")
               plan = BillingService.get_active_plan(db, (transaction.metadata_ or {}).get("plan_id"))
          elif plan_id:
               plan = BillingService.get_active_plan(db, plan_id)
               if not plan.is_percentage:
                    raise BillingError("Payment is required for this plan")
          else:
               raise BillingError("Transaction ID is required")

          subscription = BillingService.activate_plan(db, user_id, plan)
          logger.info("Landlord %s upgraded to plan %s", user_id, plan.name)
          return subscription

     @staticmethod
     def activate_plan(db: Session, landlord_id: uuid.UUID, plan: BillingPlan) -> LandlordSubscription:
          subscription = (
               db.query(LandlordSubscription)
               .filter(LandlordSubscription.landlord_id == landlord_id)
               .first()
          )
          if subscription is None:
               subscription = LandlordSubscription(landlord_id=landlord_id)
               db.add(subscription)

          now = utcnow()
          subscription.billing_plan_id = plan.id
          subscription.status = SubscriptionStatus.ACTIVE.value
          subscription.subscription_start_date = now
          subscription.trial_end_date = None
          subscription.auto_renewal = True
          subscription.sms_credits_balance = plan.sms_credits_included or 0
          subscription.updated_at = now
          db.flush()
          return subscription

     # ------------------------------------------------------------------
     # Service charge invoices
     # ------------------------------------------------------------------

     @staticmethod
     def get_plan_for_landlord(db: Session, landlord_id: uuid.UUID) -> Optional[BillingPlan]:
          subscription = (
               db.query(LandlordSubscription)
               .filter(LandlordSubscription.landlord_id == landlord_id)
               .first()
          )
          return subscription.plan if subscription else None

     @staticmethod
     def rent_collected(db: Session, landlord_id: uuid.UUID, start: date, end: date) -> Decimal:
          total = (
               db.query(func.coalesce(func.sum(Payment.amount), 0))
               .join(Lease, Payment.lease_id == Lease.id)
               .join(Unit, Lease.unit_id == Unit.id)
               .join(Property, Unit.property_id == Property.id)
               .filter(
                    Property.owner_id == landlord_id,
                    Payment.status == PaymentStatus.COMPLETED.value,
                    Payment.payment_date >= start,
                    Payment.payment_date <= end,
               )
               .scalar()
          )
          return _money(total)

     @staticmethod
     def sms_charges(db: Session, landlord_id: uuid.UUID, start: date, end: date) -> Decimal:
          since = datetime.combine(start, time.min, tzinfo=timezone.utc)
          until = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
          total = (
               db.query(func.coalesce(func.sum(SmsUsageLog.cost), 0))
               .filter(
                    SmsUsageLog.landlord_id == landlord_id,
                    SmsUsageLog.sent_at >= since,
                    SmsUsageLog.sent_at < until,
               )
               .scalar()
          )
          return _money(total)

     @staticmethod
     def other_charges(db: Session, landlord_id: uuid.UUID, start: date, end: date) -> Decimal:
          total = (
               db.query(func.coalesce(func.sum(Expense.amount), 0))
               .join(Property, Expense.property_id == Property.id)
               .filter(
                    Property.owner_id == landlord_id,
                    Expense.category.in_(SERVICE_CHARGE_EXPENSE_CATEGORIES),
                    Expense.expense_date >= start,
                    Expense.expense_date <= end,
               )
               .scalar()
          )
          return _money(total)

     @staticmethod
     def next_invoice_number(client: Optional[SupabaseClient], today: date) -> str:
          if client is not None:
               try:
                    number = client.rpc("generate_service_invoice_number")
                    if isinstance(number, str) and number:
                         return number
               except BACKEND_ERRORS as e:
                    logger.warning("Invoice number RPC failed, using local number: %s", e)
          return generate_service_invoice_number(today)

     @staticmethod
     def generate_service_invoice(
          db: Session,
          client: Optional[SupabaseClient],
          landlord_id: uuid.UUID,
          period_start: date,
          period_end: date,
          today: Optional[date] = None,
     ) -> ServiceChargeInvoice:
          """
          Create a landlord's service charge invoice for a billing period.

          Args:
               db: SQLAlchemy database session
               client: Backend client used for the invoice number RPC
               landlord_id: Landlord being billed
               period_start: First day of the billing period
               period_end: Last day of the billing period (inclusive)

          Returns:
               The new pending ServiceChargeInvoice

          Raises:
               BillingError: if the period is inverted
          """
          if period_end < period_start:
               raise BillingError("billing_period_end must not be before billing_period_start")
          today = today or date.today()

          plan = BillingService.get_plan_for_landlord(db, landlord_id)
          rate = _money(plan.percentage_rate) if plan is not None and plan.is_percentage else ZERO

          rent = BillingService.rent_collected(db, landlord_id, period_start, period_end)
          sms = BillingService.sms_charges(db, landlord_id, period_start, period_end)
          other = BillingService.other_charges(db, landlord_id, period_start, period_end)
          service = _money(rent * rate / 100)

          invoice = ServiceChargeInvoice(
               landlord_id=landlord_id,
               invoice_number=BillingService.next_invoice_number(client, today),
               billing_period_start=period_start,
               billing_period_end=period_end,
               rent_collected=rent,
               service_charge_rate=rate,
               service_charge_amount=service,
               sms_charges=sms,
               other_charges=other,
               total_amount=service + sms + other,
               currency=(plan.currency if plan is not None else None) or "KES",
               status=InvoiceStatus.PENDING.value,
               invoice_date=today,
               due_date=today + timedelta(days=SERVICE_INVOICE_DUE_DAYS),
          )
          db.add(invoice)
          db.flush()
          logger.info(
               "Service invoice %s for landlord %s: total %s", invoice.invoice_number, landlord_id, invoice.total_amount
          )
          return invoice

     @staticmethod
     def record_rent_collection(
          db: Session,
          client: Optional[SupabaseClient],
          landlord_id: uuid.UUID,
          amount,
          today: Optional[date] = None,
     ) -> Optional[ServiceChargeInvoice]:
          """
          Fold a newly collected rent payment into the landlord's service charge
          invoice for the current month, creating the invoice if needed.
          Only percentage-plan landlords are billed this way.
          """
          today = today or date.today()
          plan = BillingService.get_plan_for_landlord(db, landlord_id)
          if plan is None or not plan.is_percentage:
               return None

          start, end = month_bounds(today)
          invoice = (
               db.query(ServiceChargeInvoice)
               .filter(
                    ServiceChargeInvoice.landlord_id == landlord_id,
                    ServiceChargeInvoice.billing_period_start == start,
                    ServiceChargeInvoice.billing_period_end == end,
               )
               .first()
          )
          if invoice is None:
               return BillingService.generate_service_invoice(db, client, landlord_id, start, end, today)

          rate = _money(plan.percentage_rate)
          invoice.rent_collected = _money(invoice.rent_collected) + _money(amount)
          invoice.service_charge_rate = rate
          invoice.service_charge_amount = _money(invoice.rent_collected * rate / 100)
          invoice.total_amount = (
               invoice.service_charge_amount + _money(invoice.sms_charges) + _money(invoice.other_charges)
          )
          invoice.updated_at = utcnow()
          db.flush()
          return invoice
