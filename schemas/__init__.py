# schemas/__init__.py
from .users import (
     CreateAdminUserRequest,
     CreateSubUserRequest,
     PasswordResetRequest,
     AdminOperationRequest,
)
from .mpesa import MpesaCredentialsRequest, StkPushRequest
from .billing import (
     CheckoutRequest,
     ConfirmUpgradeRequest,
     ServiceInvoiceRequest,
     FeatureAccessRequest,
)
from .reports import ReportFiltersPayload, PdfReportRequest, InvoicePdfRequest
from .notifications import (
     SendSmsRequest,
     NotificationEmailRequest,
     SendNotificationRequest,
     MarkReadRequest,
)
from .security import SecurityEventRequest
from .support import TicketCreate, TicketUpdate, MessageCreate, TicketResponse, MessageResponse

__all__ = [
     "CreateAdminUserRequest",
     "CreateSubUserRequest",
     "PasswordResetRequest",
     "AdminOperationRequest",
     "MpesaCredentialsRequest",
     "StkPushRequest",
     "CheckoutRequest",
     "ConfirmUpgradeRequest",
     "ServiceInvoiceRequest",
     "FeatureAccessRequest",
     "ReportFiltersPayload",
     "PdfReportRequest",
     "InvoicePdfRequest",
     "SendSmsRequest",
     "NotificationEmailRequest",
     "SendNotificationRequest",
     "MarkReadRequest",
     "SecurityEventRequest",
     "TicketCreate",
     "TicketUpdate",
     "MessageCreate",
     "TicketResponse",
     "MessageResponse",
]
