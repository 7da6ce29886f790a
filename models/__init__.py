# models/__init__.py
from .base import Base
from .profile import Profile, UserRole, AppRole
from .property import Property, Unit
from .tenant import Tenant
from .lease import Lease
from .invoice import Invoice, ServiceChargeInvoice
from .payment import Payment, MpesaTransaction
from .expense import Expense, MaintenanceRequest
from .billing import BillingPlan, LandlordSubscription, TrialNotificationTemplate
from .mpesa_config import LandlordMpesaConfig
from .communication import (
     Notification,
     NotificationPreference,
     NotificationLog,
     CommunicationPreference,
     EmailLog,
     SmsUsageLog,
)
from .sub_user import SubUser
from .support import SupportTicket, SupportMessage
from .security import SecurityEvent, ImpersonationSession

__all__ = [
     "Base",
     "Profile",
     "UserRole",
     "AppRole",
     "Property",
     "Unit",
     "Tenant",
     "Lease",
     "Invoice",
     "ServiceChargeInvoice",
     "Payment",
     "MpesaTransaction",
     "Expense",
     "MaintenanceRequest",
     "BillingPlan",
     "LandlordSubscription",
     "TrialNotificationTemplate",
     "LandlordMpesaConfig",
     "Notification",
     "NotificationPreference",
     "NotificationLog",
     "CommunicationPreference",
     "EmailLog",
     "SmsUsageLog",
     "SubUser",
     "SupportTicket",
     "SupportMessage",
     "SecurityEvent",
     "ImpersonationSession",
]
