# services/__init__.py
from .billing_service import BillingError, BillingService
from .invoice_service import InvoiceError, InvoiceService
from .support_service import SupportError, SupportService
from .feature_access import (
     Feature,
     check_feature_access,
     resolve_gate,
     get_report_feature,
     filter_reports_by_features,
)
from .report_service import (
     REPORTS,
     get_report_config,
     calculate_date_range,
     fetch_report_data,
)

__all__ = [
     "BillingError",
     "BillingService",
     "InvoiceError",
     "InvoiceService",
     "SupportError",
     "SupportService",
     "Feature",
     "check_feature_access",
     "resolve_gate",
     "get_report_feature",
     "filter_reports_by_features",
     "REPORTS",
     "get_report_config",
     "calculate_date_range",
     "fetch_report_data",
]
