# schemas/billing.py
from datetime import date
from typing import Optional

from pydantic import BaseModel


class CheckoutRequest(BaseModel):
     planId: Optional[str] = None
     phoneNumber: Optional[str] = None


class ConfirmUpgradeRequest(BaseModel):
     transactionId: Optional[str] = None
     planId: Optional[str] = None


class ServiceInvoiceRequest(BaseModel):
     landlord_id: Optional[str] = None
     billing_period_start: Optional[date] = None
     billing_period_end: Optional[date] = None


class FeatureAccessRequest(BaseModel):
     feature: Optional[str] = None
     current_count: int = 1
     allow_read_only: bool = False
