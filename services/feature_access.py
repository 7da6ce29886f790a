# services/feature_access.py
"""
Plan-based feature gating.

The access decision itself is computed by the backend RPC
check_plan_feature_access; this module names the features, normalises
legacy plan feature labels, and turns a decision into what the caller
should show (full access, a limit warning, a read-only view or an
upgrade prompt).
"""
import enum
import logging
import uuid
from typing import Iterable, Optional

from pydantic import BaseModel

from config import settings
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)


class Feature(str, enum.Enum):
     # Usage limits
     PROPERTIES_MAX = "properties.max"
     UNITS_MAX = "units.max"
     TENANTS_MAX = "tenants.max"
     SMS_QUOTA = "sms.quota"

     # Reporting
     BASIC_REPORTING = "reports.basic"
     ADVANCED_REPORTING = "reports.advanced"
     FINANCIAL_REPORTS = "reports.financial"

     # Core
     MAINTENANCE_TRACKING = "maintenance.tracking"
     TENANT_PORTAL = "tenant.portal"
     BASIC_INVOICING = "invoicing.basic"
     EXPENSE_TRACKING = "expenses.tracking"

     # Integrations and notifications
     API_ACCESS = "integrations.api"
     ACCOUNTING_INTEGRATION = "integrations.accounting"
     SMS_NOTIFICATIONS = "notifications.sms"
     EMAIL_NOTIFICATIONS = "notifications.email"

     # Team
     TEAM_ROLES = "team.roles"
     SUB_USERS = "team.sub_users"
     ROLE_PERMISSIONS = "team.permissions"

     # Branding
     WHITE_LABEL = "branding.white_label"
     CUSTOM_BRANDING = "branding.custom"

     # Support
     PRIORITY_SUPPORT = "support.priority"
     DEDICATED_SUPPORT = "support.dedicated"

     # Operations and documents
     BULK_OPERATIONS = "operations.bulk"
     AUTOMATED_BILLING = "billing.automated"
     DOCUMENT_TEMPLATES = "documents.templates"

     # Communication
     EMAIL_TEMPLATES = "communication.email_templates"
     SMS_TEMPLATES = "communication.sms_templates"
     NOTIFICATION_RESPONSES = "communication.notification_responses"


# Plan feature labels stored before the dotted keys existed
FEATURE_MAPPING = {
     "basic reporting": Feature.BASIC_REPORTING.value,
     "advanced reporting": Feature.ADVANCED_REPORTING.value,
     "financial reports": Feature.FINANCIAL_REPORTS.value,
     "api access": Feature.API_ACCESS.value,
     "bulk operations": Feature.BULK_OPERATIONS.value,
}

FEATURE_TITLES = {
     "units.max": "Unit Limit Reached",
     "sms.quota": "SMS Quota Exceeded",
     "reports.advanced": "Advanced Reporting",
     "reports.financial": "Financial Reports",
     "integrations.api": "API Access",
     "integrations.accounting": "Accounting Integration",
     "team.roles": "Team Roles & Permissions",
     "branding.white_label": "White Label Branding",
     "support.priority": "Priority Support",
     "operations.bulk": "Bulk Operations",
}

FEATURE_DESCRIPTIONS = {
     "units.max": "Upgrade your plan to manage more properties and units",
     "sms.quota": "Get more SMS credits to stay connected with your tenants",
     "reports.advanced": "Access detailed analytics and custom reporting tools",
     "reports.financial": "Generate comprehensive financial statements and insights",
     "integrations.api": "Connect with third-party applications and services",
     "integrations.accounting": "Seamlessly sync with accounting software like QuickBooks",
     "team.roles": "Add team members with custom permissions and access control",
     "branding.white_label": "Customize the platform with your company branding",
     "support.priority": "Get faster response times and dedicated support",
     "operations.bulk": "Efficiently manage multiple properties with bulk operations",
}

REPORT_FEATURE_MAP = {
     # Basic reporting
     "rent-collection": Feature.BASIC_REPORTING,
     "occupancy-report": Feature.BASIC_REPORTING,
     "maintenance-report": Feature.BASIC_REPORTING,
     "executive-summary": Feature.BASIC_REPORTING,
     # Advanced reporting
     "financial-summary": Feature.ADVANCED_REPORTING,
     "lease-expiry": Feature.ADVANCED_REPORTING,
     "outstanding-balances": Feature.ADVANCED_REPORTING,
     "tenant-turnover": Feature.ADVANCED_REPORTING,
     "property-performance": Feature.ADVANCED_REPORTING,
     "market-rent": Feature.ADVANCED_REPORTING,
     # Financial reports
     "profit-loss": Feature.FINANCIAL_REPORTS,
     "revenue-vs-expenses": Feature.FINANCIAL_REPORTS,
     "expense-summary": Feature.FINANCIAL_REPORTS,
     "cash-flow": Feature.FINANCIAL_REPORTS,
}

DEFAULT_READ_ONLY_MESSAGE = "This feature is read-only in your current plan"


class FeatureAccessResult(BaseModel):
     allowed: bool
     is_limited: bool = False
     limit: Optional[int] = None
     remaining: Optional[int] = None
     reason: Optional[str] = None
     status: Optional[str] = None
     plan_name: Optional[str] = None


class GateDecision(BaseModel):
     mode: str  # allow | limited | read_only | upgrade
     title: Optional[str] = None
     message: Optional[str] = None
     show_upgrade: bool = False
     upgrade_url: str


def normalize_feature_name(name: str) -> str:
     return FEATURE_MAPPING.get(name.strip().lower(), name)


def normalize_features(names: Iterable[str]) -> list[str]:
     seen = []
     for name in names:
          key = normalize_feature_name(name)
          if key not in seen:
               seen.append(key)
     return seen


def check_feature_access(
     client: SupabaseClient,
     user_id: Optional[uuid.UUID],
     feature: str,
     current_count: int = 1,
) -> FeatureAccessResult:
     """
     Ask the backend whether the user's plan allows a feature.

     Never raises: an unauthenticated caller or a failed RPC both come back as
     a denied decision with a reason.
     """
     if user_id is None:
          return FeatureAccessResult(allowed=False, is_limited=False, reason="not_authenticated")

     try:
          data = client.rpc(
               "check_plan_feature_access",
               {
                    "_user_id": str(user_id),
                    "_feature": normalize_feature_name(feature),
                    "_current_count": current_count,
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Feature access check for %s failed: %s", feature, e)
          return FeatureAccessResult(allowed=False, is_limited=True, reason="error")

     if isinstance(data, list):
          data = data[0] if data else {}
     if not isinstance(data, dict):
          logger.error("Unexpected feature access payload for %s: %r", feature, data)
          return FeatureAccessResult(allowed=False, is_limited=True, reason="error")

     return FeatureAccessResult(
          allowed=bool(data.get("allowed", False)),
          is_limited=bool(data.get("is_limited", False)),
          limit=data.get("limit"),
          remaining=data.get("remaining"),
          reason=data.get("reason"),
          status=data.get("status"),
          plan_name=data.get("plan_name"),
     )


def resolve_gate(
     feature: str,
     result: FeatureAccessResult,
     allow_read_only: bool = False,
     read_only_message: Optional[str] = None,
) -> GateDecision:
     upgrade_url = f"{settings.app_url}/upgrade"

     if result.allowed:
          near_limit = (
               result.is_limited
               and result.limit
               and result.remaining is not None
               and result.remaining <= 2
          )
          if not near_limit:
               return GateDecision(mode="allow", upgrade_url=upgrade_url)
          noun = "units" if "units" in feature else "items"
          if result.remaining == 0:
               message = f"You've reached your {result.limit} {noun} limit"
          else:
               message = f"You have {result.remaining} of {result.limit} {noun} remaining"
          return GateDecision(
               mode="limited",
               message=message,
               show_upgrade=result.remaining <= 1,
               upgrade_url=upgrade_url,
          )

     if allow_read_only:
          return GateDecision(
               mode="read_only",
               message=read_only_message or DEFAULT_READ_ONLY_MESSAGE,
               show_upgrade=True,
               upgrade_url=upgrade_url,
          )

     return GateDecision(
          mode="upgrade",
          title=FEATURE_TITLES.get(feature, "Premium Feature"),
          message=FEATURE_DESCRIPTIONS.get(feature, "This feature requires a higher plan to access"),
          show_upgrade=True,
          upgrade_url=upgrade_url,
     )


def get_report_feature(report_id: str) -> Feature:
     return REPORT_FEATURE_MAP.get(report_id, Feature.BASIC_REPORTING)


def can_access_report(report_id: str, available_features: Iterable[str]) -> bool:
     return get_report_feature(report_id).value in set(normalize_features(available_features))


def filter_reports_by_features(report_ids: Iterable[str], available_features: Iterable[str]) -> list[str]:
     features = set(normalize_features(available_features))
     return [rid for rid in report_ids if get_report_feature(rid).value in features]
