# models/payment.py
import enum
import uuid

from sqlalchemy import Column, String, Text, Numeric, Date, DateTime, ForeignKey, JSON, Uuid, func

from .base import Base, utcnow


class PaymentStatus(str, enum.Enum):
     PENDING = "pending"
     COMPLETED = "completed"
     FAILED = "failed"


class MpesaPaymentType(str, enum.Enum):
     """What an STK push is paying for."""
     RENT = "rent"
     SERVICE_CHARGE = "service-charge"
     PLAN_UPGRADE = "plan_upgrade"


class Payment(Base):
     """
     Payment model - money received against a tenant invoice.
     Maps to existing 'payments' table in the database.
     """
     __tablename__ = "payments"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
     lease_id = Column(Uuid, ForeignKey("leases.id"), nullable=True, index=True)
     invoice_id = Column(Uuid, ForeignKey("invoices.id"), nullable=True, index=True)

     amount = Column(Numeric(12, 2), nullable=False)
     payment_date = Column(Date, nullable=False)
     payment_method = Column(String(50), nullable=True)
     payment_type = Column(String(50), default="rent", nullable=True)
     payment_reference = Column(String(100), nullable=True)
     transaction_id = Column(String(100), nullable=True, index=True)
     status = Column(String(20), default=PaymentStatus.COMPLETED.value, nullable=False)
     notes = Column(Text, nullable=True)

     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

     def __repr__(self):
          return f"<Payment(id={self.id}, amount={self.amount}, status='{self.status}')>"


class MpesaTransaction(Base):
     """
     One STK push and its callback outcome.
     Maps to existing 'mpesa_transactions' table in the database.
     """
     __tablename__ = "mpesa_transactions"

     id = Column(Uuid, primary_key=True, default=uuid.uuid4)
     checkout_request_id = Column(String(100), nullable=True, unique=True, index=True)
     merchant_request_id = Column(String(100), nullable=True)

     user_id = Column(Uuid, nullable=True, index=True)
     invoice_id = Column(Uuid, nullable=True, index=True)
     initiated_by = Column(Uuid, nullable=True)
     authorized_by = Column(Uuid, nullable=True)  # landlord whose shortcode was used

     phone_number = Column(String(20), nullable=False)
     amount = Column(Numeric(12, 2), nullable=False)
     payment_type = Column(String(30), default=MpesaPaymentType.RENT.value, nullable=False)
     status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)

     # Callback outcome
     result_code = Column(String(10), nullable=True)
     result_desc = Column(Text, nullable=True)
     mpesa_receipt_number = Column(String(50), nullable=True)

     # 'metadata' is reserved on declarative classes
     metadata_ = Column("metadata", JSON, nullable=True)

     created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
     updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)

     def __repr__(self):
          return f"<MpesaTransaction(id={self.id}, checkout='{self.checkout_request_id}', status='{self.status}')>"

     @property
     def is_pending(self) -> bool:
          return self.status == PaymentStatus.PENDING.value
