# services/invoice_service.py
"""
Invoice Service - downloadable invoice documents.

Rent invoices may be opened by the tenant billed, by the owner or manager
of the property, and by admins. Service charge invoices may be opened by
the landlord billed and by admins.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from dependencies import is_admin
from models import Invoice, Payment, ServiceChargeInvoice
from models.payment import PaymentStatus
from utils.formatting import format_invoice_number, format_payment_reference

logger = logging.getLogger(__name__)

SERVICE_CHARGE_NOTES = "Pay via M-Pesa from your billing page. Reference: ZIRA-SERVICE."


class InvoiceError(Exception):
     def __init__(self, message: str, status_code: int = 400):
          super().__init__(message)
          self.message = message
          self.status_code = status_code


class InvoiceService:
     """Service class for invoice-related business logic."""

     @staticmethod
     def _parse_id(invoice_id) -> uuid.UUID:
          try:
               return uuid.UUID(str(invoice_id))
          except (TypeError, ValueError):
               raise InvoiceError("invoiceId is required")

     @staticmethod
     def can_view_rent_invoice(db: Session, user_id: uuid.UUID, invoice: Invoice) -> bool:
          if invoice.tenant is not None and invoice.tenant.user_id == user_id:
               return True
          unit = invoice.lease.unit if invoice.lease is not None else None
          prop = unit.property if unit is not None else None
          if prop is not None and user_id in (prop.owner_id, prop.manager_id):
               return True
          return is_admin(db, user_id)

     @staticmethod
     def rent_invoice_document(db: Session, invoice: Invoice) -> dict:
          tenant = invoice.tenant
          unit = invoice.lease.unit if invoice.lease is not None else None
          prop = unit.property if unit is not None else None
          payments = (
               db.query(Payment)
               .filter(Payment.invoice_id == invoice.id, Payment.status == PaymentStatus.COMPLETED.value)
               .order_by(Payment.payment_date.asc())
               .all()
          )
          number = invoice.invoice_number or format_invoice_number(str(invoice.id), invoice.invoice_date)
          return {
               "title": "INVOICE",
               "invoice_number": number,
               "invoice_date": invoice.invoice_date or invoice.created_at,
               "due_date": invoice.due_date,
               "status": invoice.status,
               "currency": "KES",
               "bill_to": [
                    ("Tenant", tenant.full_name if tenant else None),
                    ("Email", tenant.email if tenant else None),
                    ("Property", prop.name if prop else None),
                    ("Unit", unit.unit_number if unit else None),
               ],
               "items": [(invoice.description or "Rent", invoice.amount)],
               "total": invoice.amount,
               "payments": [
                    {
                         "date": p.payment_date,
                         "method": p.payment_method,
                         "reference": format_payment_reference(p.payment_reference or p.transaction_id),
                         "amount": p.amount,
                    }
                    for p in payments
               ],
          }

     @staticmethod
     def service_invoice_document(invoice: ServiceChargeInvoice) -> dict:
          items = [
               (f"Property Management Service Charge ({invoice.service_charge_rate or 0:g}% of "
                f"rent collected)", invoice.service_charge_amount),
               ("SMS Communication Charges", invoice.sms_charges or 0),
          ]
          if invoice.other_charges:
               items.append(("Payment Processing & Administrative Fees", invoice.other_charges))

          payments = []
          if invoice.payment_date:
               payments.append({
                    "date": invoice.payment_date,
                    "method": invoice.payment_method,
                    "reference": invoice.payment_reference,
                    "amount": invoice.total_amount,
               })
          return {
               "title": "SERVICE CHARGE INVOICE",
               "invoice_number": invoice.invoice_number,
               "invoice_date": invoice.invoice_date,
               "due_date": invoice.due_date,
               "status": invoice.status,
               "currency": invoice.currency or "KES",
               "bill_to": [
                    ("Landlord ID", str(invoice.landlord_id)),
                    ("Billing Period", f"{invoice.billing_period_start} to {invoice.billing_period_end}"),
                    ("Rent Collected", f"{invoice.currency or 'KES'} {invoice.rent_collected or 0:,.2f}"),
               ],
               "items": items,
               "total": invoice.total_amount,
               "payments": payments,
               "notes": None if payments else SERVICE_CHARGE_NOTES,
          }

     @staticmethod
     def get_invoice_document(db: Session, user_id: uuid.UUID, invoice_id) -> dict:
          """
          Build the printable document for a rent or service charge invoice.

          Args:
               db: SQLAlchemy database session
               user_id: Authenticated caller
               invoice_id: Id of either kind of invoice

          Returns:
               dict accepted by utils.invoice_pdf.render_invoice_pdf

          Raises:
               InvoiceError: bad id (400), not visible to the caller (403), unknown (404)
          """
          invoice_uuid = InvoiceService._parse_id(invoice_id)

          invoice: Optional[Invoice] = db.get(Invoice, invoice_uuid)
          if invoice is not None:
               if not InvoiceService.can_view_rent_invoice(db, user_id, invoice):
                    raise InvoiceError("Not authorized to view this invoice", 403)
               return InvoiceService.rent_invoice_document(db, invoice)

          service_invoice = db.get(ServiceChargeInvoice, invoice_uuid)
          if service_invoice is not None:
               if service_invoice.landlord_id != user_id and not is_admin(db, user_id):
                    raise InvoiceError("Not authorized to view this invoice", 403)
               return InvoiceService.service_invoice_document(service_invoice)

          logger.info("Invoice %s requested by %s does not exist", invoice_uuid, user_id)
          raise InvoiceError("Invoice not found", 404)
