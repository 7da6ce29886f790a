# services/mpesa_service.py
"""
M-Pesa Service - landlord credentials, STK push and the Daraja callback.

Rent is collected into the landlord's own paybill when the landlord has
saved active credentials; platform charges (service charge, plan upgrades)
always use the platform credentials from settings.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models import (
     Invoice,
     LandlordMpesaConfig,
     MpesaTransaction,
     Payment,
     Profile,
     ServiceChargeInvoice,
     Tenant,
)
from models.base import utcnow
from models.invoice import InvoiceStatus
from models.payment import MpesaPaymentType, PaymentStatus
from services.billing_service import BillingError, BillingService
from services.security_service import log_security_event_safe
from utils.encryption import EncryptionNotConfigured, decrypt_secret, encrypt_secret
from utils.mpesa import DarajaClient, DarajaError, format_mpesa_phone, is_safaricom_ip
from utils.sms import SmsDeliveryError, send_sms
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")
SERVICE_ACCOUNT_REFERENCE = "ZIRA-SERVICE"
SERVICE_TRANSACTION_DESC = "Zira Homes Service Charge"
CREDENTIAL_FIELDS = ("consumer_key", "consumer_secret", "shortcode", "passkey")


class MpesaError(Exception):
     """M-Pesa failure with the HTTP status and extra body fields for the caller."""

     def __init__(self, message: str, status_code: int = 400, **extra):
          super().__init__(message)
          self.message = message
          self.status_code = status_code
          self.extra = extra


@dataclass
class MpesaCredentials:
     consumer_key: Optional[str]
     consumer_secret: Optional[str]
     shortcode: Optional[str]
     passkey: Optional[str]
     environment: str
     from_landlord: bool = False

     def missing(self) -> dict:
          return {
               "consumerKey": not self.consumer_key,
               "consumerSecret": not self.consumer_secret,
               "shortcode": not self.shortcode,
               "passkey": not self.passkey,
          }

     @property
     def complete(self) -> bool:
          return not any(self.missing().values())


def _uuid_or_none(value) -> Optional[uuid.UUID]:
     if value in (None, ""):
          return None
     try:
          return uuid.UUID(str(value))
     except ValueError:
          return None


def _decimal(value) -> Optional[Decimal]:
     try:
          return Decimal(str(value))
     except (InvalidOperation, TypeError, ValueError):
          return None


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

def save_credentials(
     db: Session,
     client: SupabaseClient,
     landlord_id: uuid.UUID,
     credentials: dict,
     ip_address: Optional[str] = None,
) -> LandlordMpesaConfig:
     """
     Encrypt and store a landlord's Daraja credentials (one row per landlord).

     Raises:
          MpesaError: missing fields (400) or no server encryption key (500)
     """
     if not all(credentials.get(field) for field in CREDENTIAL_FIELDS):
          raise MpesaError("Missing required M-Pesa credentials", 400)
     secret = settings.data_encryption_key
     if not secret:
          logger.error("DATA_ENCRYPTION_KEY is not set; refusing to store M-Pesa credentials")
          raise MpesaError("Server encryption not configured", 500)

     log_security_event_safe(
          client,
          "mpesa_credentials_updated",
          "high",
          {"environment": credentials.get("environment") or "sandbox"},
          user_id=landlord_id,
          ip_address=ip_address,
     )

     config = db.query(LandlordMpesaConfig).filter(LandlordMpesaConfig.landlord_id == landlord_id).first()
     if config is None:
          config = LandlordMpesaConfig(landlord_id=landlord_id)
          db.add(config)

     config.consumer_key_encrypted = encrypt_secret(credentials["consumer_key"], secret)
     config.consumer_secret_encrypted = encrypt_secret(credentials["consumer_secret"], secret)
     config.shortcode_encrypted = encrypt_secret(str(credentials["shortcode"]), secret)
     config.passkey_encrypted = encrypt_secret(credentials["passkey"], secret)
     config.callback_url = credentials.get("callback_url")
     config.environment = credentials.get("environment") or "sandbox"
     config.is_active = True
     config.updated_at = utcnow()
     db.flush()
     logger.info("M-Pesa credentials saved for landlord %s (%s)", landlord_id, config.environment)
     return config


def platform_credentials() -> MpesaCredentials:
     return MpesaCredentials(
          consumer_key=settings.mpesa_consumer_key,
          consumer_secret=settings.mpesa_consumer_secret,
          shortcode=settings.mpesa_shortcode,
          passkey=settings.mpesa_passkey,
          environment=settings.mpesa_environment,
     )


def load_credentials(db: Session, landlord_id: Optional[uuid.UUID]) -> MpesaCredentials:
     """The landlord's active credentials when saved, otherwise the platform's."""
     if landlord_id is None:
          return platform_credentials()

     config = (
          db.query(LandlordMpesaConfig)
          .filter(LandlordMpesaConfig.landlord_id == landlord_id, LandlordMpesaConfig.is_active.is_(True))
          .first()
     )
     if config is None:
          return platform_credentials()

     secret = settings.data_encryption_key
     try:
          return MpesaCredentials(
               consumer_key=decrypt_secret(config.consumer_key_encrypted, secret),
               consumer_secret=decrypt_secret(config.consumer_secret_encrypted, secret),
               shortcode=decrypt_secret(config.shortcode_encrypted, secret),
               passkey=decrypt_secret(config.passkey_encrypted, secret),
               environment=config.environment or "sandbox",
               from_landlord=True,
          )
     except (ValueError, EncryptionNotConfigured) as e:
          logger.error("Could not decrypt M-Pesa credentials for landlord %s: %s", landlord_id, e)
          raise MpesaError("Failed to decrypt M-Pesa credentials", 500)


def resolve_invoice_landlord(db: Session, invoice_id: Optional[uuid.UUID]) -> Optional[uuid.UUID]:
     """invoice -> lease -> unit -> property.owner_id"""
     if invoice_id is None:
          return None
     invoice = db.get(Invoice, invoice_id)
     if invoice is None or invoice.lease is None or invoice.lease.unit is None:
          return None
     prop = invoice.lease.unit.property
     if prop is None:
          return None
     return prop.owner_id or prop.manager_id


def callback_url() -> str:
     base = settings.supabase_url or settings.app_url
     return f"{base.rstrip('/')}/functions/v1/mpesa-callback"


# ---------------------------------------------------------------------------
# STK push
# ---------------------------------------------------------------------------

def initiate_stk_push(
     db: Session,
     user_id: uuid.UUID,
     payload: dict,
     daraja_factory: Optional[Callable[..., DarajaClient]] = None,
) -> dict:
     """
     Prompt the payer's phone for an M-Pesa payment and record the pending
     transaction.

     Args:
          db: SQLAlchemy database session
          user_id: Caller initiating the payment
          payload: phone, amount, accountReference, transactionDesc, invoiceId,
               paymentType, landlordId, transactionId, dryRun
          daraja_factory: Builds the Daraja client from credentials

     Returns:
          Response body for the caller

     Raises:
          MpesaError: validation (400), credential (500) or Daraja (400) failures
     """
     phone = payload.get("phone")
     amount = _decimal(payload.get("amount"))
     if not phone or amount is None or amount <= 0:
          raise MpesaError("Phone number and amount are required", 400)

     payment_type = payload.get("paymentType") or MpesaPaymentType.RENT.value
     invoice_id = payload.get("invoiceId")

     if payload.get("dryRun"):
          stamp = int(time.time() * 1000)
          return {
               "success": True,
               "dryRun": True,
               "message": "Mock STK push - no actual payment initiated",
               "data": {
                    "CheckoutRequestID": f"mock-checkout-{stamp}",
                    "MerchantRequestID": f"mock-merchant-{stamp}",
                    "ResponseDescription": "Mock STK push sent successfully",
                    "BusinessShortCode": settings.mpesa_shortcode,
                    "UsingLandlordConfig": False,
               },
          }

     service_invoice = None
     if payment_type == MpesaPaymentType.SERVICE_CHARGE.value:
          service_invoice = db.get(ServiceChargeInvoice, _uuid_or_none(invoice_id)) if invoice_id else None
          if service_invoice is None:
               raise MpesaError("Service charge invoice not found", 400, invoiceId=invoice_id)
          if service_invoice.status == InvoiceStatus.PAID.value:
               raise MpesaError("Service charge invoice already paid", 400, invoiceId=invoice_id)

     landlord_id = None
     if payment_type == MpesaPaymentType.RENT.value:
          landlord_id = _uuid_or_none(payload.get("landlordId")) or resolve_invoice_landlord(db, _uuid_or_none(invoice_id))

     credentials = load_credentials(db, landlord_id)
     if not credentials.complete:
          logger.error("M-Pesa credentials incomplete: %s", credentials.missing())
          raise MpesaError("M-Pesa credentials not configured", 500, missing=credentials.missing())

     if service_invoice is not None:
          account_reference = payload.get("accountReference") or SERVICE_ACCOUNT_REFERENCE
          description = payload.get("transactionDesc") or SERVICE_TRANSACTION_DESC
     else:
          account_reference = payload.get("accountReference") or f"INV-{invoice_id}"
          description = payload.get("transactionDesc") or f"Payment for {account_reference}"

     daraja = (daraja_factory or DarajaClient)(
          consumer_key=credentials.consumer_key,
          consumer_secret=credentials.consumer_secret,
          shortcode=credentials.shortcode,
          passkey=credentials.passkey,
          environment=credentials.environment,
     )
     try:
          result = daraja.stk_push(
               phone_number=phone,
               amount=amount,
               callback_url=callback_url(),
               account_reference=account_reference,
               transaction_desc=description,
          )
     except DarajaError as e:
          logger.error("STK push failed: %s", e)
          raise MpesaError("STK push failed", 400, details=e.details or str(e))

     if str(result.get("ResponseCode")) != "0":
          logger.warning("STK push not accepted: %s", result.get("ResponseDescription"))
          raise MpesaError("STK push failed", 400, details=result)

     _record_pending_transaction(
          db,
          user_id=user_id,
          payload=payload,
          result=result,
          phone=format_mpesa_phone(phone),
          amount=amount,
          payment_type=payment_type,
          landlord_id=landlord_id if credentials.from_landlord else None,
          service_invoice=service_invoice,
     )

     return {
          "success": True,
          "message": "STK push sent successfully",
          "data": {
               "CheckoutRequestID": result.get("CheckoutRequestID"),
               "MerchantRequestID": result.get("MerchantRequestID"),
               "ResponseDescription": result.get("ResponseDescription"),
               "BusinessShortCode": credentials.shortcode,
               "UsingLandlordConfig": credentials.from_landlord,
          },
     }


def _record_pending_transaction(
     db: Session,
     user_id: uuid.UUID,
     payload: dict,
     result: dict,
     phone: str,
     amount: Decimal,
     payment_type: str,
     landlord_id: Optional[uuid.UUID],
     service_invoice: Optional[ServiceChargeInvoice],
) -> MpesaTransaction:
     transaction = None
     # A plan upgrade checkout already created the pending row
     if payment_type == MpesaPaymentType.PLAN_UPGRADE.value and payload.get("transactionId"):
          transaction = (
               db.query(MpesaTransaction)
               .filter(
                    MpesaTransaction.id == _uuid_or_none(payload["transactionId"]),
                    MpesaTransaction.user_id == user_id,
                    MpesaTransaction.status == PaymentStatus.PENDING.value,
               )
               .first()
          )

     if transaction is None:
          transaction = MpesaTransaction(
               user_id=user_id,
               amount=amount,
               payment_type=payment_type,
               status=PaymentStatus.PENDING.value,
          )
          db.add(transaction)

     transaction.checkout_request_id = result.get("CheckoutRequestID")
     transaction.merchant_request_id = result.get("MerchantRequestID")
     transaction.phone_number = phone
     transaction.initiated_by = user_id
     transaction.authorized_by = landlord_id

     if service_invoice is not None:
          transaction.metadata_ = {
               "service_charge_invoice_id": str(service_invoice.id),
               "payment_type": payment_type,
               "landlord_id": str(service_invoice.landlord_id),
          }
     elif payment_type == MpesaPaymentType.RENT.value:
          transaction.invoice_id = _uuid_or_none(payload.get("invoiceId"))

     db.flush()
     logger.info("Pending M-Pesa transaction %s recorded", transaction.checkout_request_id)
     return transaction


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------

def _callback_items(callback: dict) -> dict:
     items = (callback.get("CallbackMetadata") or {}).get("Item") or []
     return {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}


def process_callback(
     db: Session,
     client: SupabaseClient,
     body: Any,
     ip_address: Optional[str],
     sms_sender: Optional[Callable[[str, str], dict]] = None,
) -> str:
     """
     Apply a Daraja STK callback.

     Returns "OK" once the callback is handled or ignored. Replays of an
     already settled transaction are acknowledged without changes.

     Raises:
          MpesaError: callback from outside Safaricom's ranges (403), unknown
               transaction (404) or amount mismatch (400)
     """
     sms_sender = sms_sender or send_sms
     if not is_safaricom_ip(ip_address):
          logger.warning("Rejected M-Pesa callback from %s", ip_address)
          log_security_event_safe(
               client,
               "unauthorized_mpesa_callback",
               "high",
               {"source_ip": ip_address},
               ip_address=ip_address,
          )
          raise MpesaError("Unauthorized", 403)

     callback = (body or {}).get("Body", {}).get("stkCallback") if isinstance(body, dict) else None
     if not callback:
          logger.info("M-Pesa callback without stkCallback ignored")
          return "OK"

     checkout_request_id = callback.get("CheckoutRequestID")
     result_code = callback.get("ResultCode")
     items = _callback_items(callback)
     receipt = items.get("MpesaReceiptNumber")
     paid_amount = _decimal(items.get("Amount"))
     phone = items.get("PhoneNumber")
     status = PaymentStatus.COMPLETED.value if str(result_code) == "0" else PaymentStatus.FAILED.value

     transaction = (
          db.query(MpesaTransaction)
          .filter(MpesaTransaction.checkout_request_id == checkout_request_id)
          .first()
     )
     if transaction is None:
          logger.warning("M-Pesa callback for unknown checkout %s", checkout_request_id)
          raise MpesaError("Transaction not found", 404)
     if not transaction.is_pending:
          logger.info("M-Pesa callback for settled checkout %s ignored", checkout_request_id)
          return "OK"

     if status == PaymentStatus.COMPLETED.value and paid_amount is not None:
          if abs(paid_amount - Decimal(str(transaction.amount))) > AMOUNT_TOLERANCE:
               log_security_event_safe(
                    client,
                    "payment_amount_mismatch",
                    "critical",
                    {
                         "checkout_request_id": checkout_request_id,
                         "expected": float(transaction.amount),
                         "received": float(paid_amount),
                    },
                    user_id=transaction.user_id,
                    ip_address=ip_address,
               )
               raise MpesaError("Amount mismatch", 400)

     transaction.status = status
     transaction.result_code = str(result_code)
     transaction.result_desc = callback.get("ResultDesc")
     transaction.mpesa_receipt_number = receipt
     if phone:
          transaction.phone_number = str(phone)
     transaction.updated_at = utcnow()
     db.flush()
     logger.info("M-Pesa checkout %s marked %s", checkout_request_id, status)

     if status != PaymentStatus.COMPLETED.value:
          return "OK"

     amount = paid_amount if paid_amount is not None else Decimal(str(transaction.amount))
     if transaction.payment_type == MpesaPaymentType.SERVICE_CHARGE.value:
          _settle_service_charge(db, transaction, receipt, amount, sms_sender)
     elif transaction.payment_type == MpesaPaymentType.PLAN_UPGRADE.value:
          pass  # activated by confirm-billing-upgrade
     elif transaction.invoice_id:
          _settle_rent_invoice(db, client, transaction, receipt, amount, sms_sender)
     return "OK"


def _notify(sms_sender: Callable[[str, str], dict], phone: Optional[str], message: str) -> None:
     if not phone:
          logger.info("No phone number on file, payment SMS skipped")
          return
     try:
          sms_sender(phone, message)
     except (SmsDeliveryError, OSError) as e:
          logger.error("Payment confirmation SMS failed: %s", e)


def _settle_service_charge(
     db: Session,
     transaction: MpesaTransaction,
     receipt: Optional[str],
     amount: Decimal,
     sms_sender: Callable[[str, str], dict],
) -> None:
     invoice_id = _uuid_or_none((transaction.metadata_ or {}).get("service_charge_invoice_id"))
     invoice = db.get(ServiceChargeInvoice, invoice_id) if invoice_id else None
     if invoice is None:
          logger.error("Service charge invoice for checkout %s not found", transaction.checkout_request_id)
          return

     invoice.mark_as_paid("M-Pesa", receipt)
     db.flush()
     logger.info("Service charge invoice %s marked as paid", invoice.invoice_number)

     landlord = db.get(Profile, invoice.landlord_id)
     message = f"Service charge payment of KES {amount:g} received. Thank you! - Zira Homes."
     _notify(sms_sender, landlord.phone if landlord else None, f"{message} Receipt: {receipt}" if receipt else message)


def _settle_rent_invoice(
     db: Session,
     client: SupabaseClient,
     transaction: MpesaTransaction,
     receipt: Optional[str],
     amount: Decimal,
     sms_sender: Callable[[str, str], dict],
) -> None:
     invoice = db.get(Invoice, transaction.invoice_id)
     if invoice is None:
          logger.error("Invoice %s for checkout %s not found", transaction.invoice_id, transaction.checkout_request_id)
          return

     # Keyed on the checkout id: receipts can be missing from a callback
     duplicate = (
          db.query(Payment)
          .filter(Payment.payment_reference == transaction.checkout_request_id)
          .first()
     )
     if duplicate is None:
          db.add(Payment(
               tenant_id=invoice.tenant_id,
               lease_id=invoice.lease_id,
               invoice_id=invoice.id,
               amount=amount,
               payment_date=date.today(),
               payment_method="M-Pesa",
               payment_type=(invoice.description or "rent")[:50],
               payment_reference=transaction.checkout_request_id,
               transaction_id=receipt,
               status=PaymentStatus.COMPLETED.value,
          ))

     invoice.mark_as_paid()
     db.flush()
     logger.info("Invoice %s paid via M-Pesa", invoice.invoice_number or invoice.id)

     landlord_id = resolve_invoice_landlord(db, invoice.id)
     if landlord_id is not None:
          try:
               with db.begin_nested():
                    BillingService.record_rent_collection(db, client, landlord_id, amount)
          except (SQLAlchemyError, BillingError, *BACKEND_ERRORS) as e:
               logger.error("Service charge accrual for landlord %s failed: %s", landlord_id, e)

     tenant = db.get(Tenant, invoice.tenant_id)
     message = f"Payment of KES {amount:g} received. Thank you! - Zira Homes."
     _notify(sms_sender, tenant.phone if tenant else None, f"{message} Receipt: {receipt}" if receipt else message)
