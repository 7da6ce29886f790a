# services/user_service.py
"""
User administration: admin and sub-user accounts, password resets and the
admin user-operations console.

Auth accounts live in GoTrue and are created through the backend client;
profiles, roles and sub-user rows are written through the database session.
"""
import logging
import random
import secrets
import uuid
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models import (
     CommunicationPreference,
     ImpersonationSession,
     LandlordSubscription,
     Lease,
     MaintenanceRequest,
     Payment,
     Profile,
     Property,
     SubUser,
     Tenant,
     UserRole,
)
from models.base import utcnow
from models.billing import SubscriptionStatus
from models.lease import LeaseStatus
from models.profile import AppRole
from models.sub_user import SUB_USER_PERMISSIONS
from services.security_service import log_user_activity_safe, log_user_audit_safe
from utils.sms import SmsDeliveryError, send_sms
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

IMPERSONATION_TTL = timedelta(minutes=30)
DEFAULT_TRIAL_DAYS = 30


class UserOperationError(Exception):
     def __init__(self, message: str, status_code: int = 400, **extra):
          super().__init__(message)
          self.message = message
          self.status_code = status_code
          self.extra = extra


def _first_row(data):
     if isinstance(data, list):
          return data[0] if data else None
     return data


# ---------------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------------

def create_admin_user(db: Session, client: SupabaseClient, actor_id: uuid.UUID, data: dict) -> dict:
     """
     Create a confirmed GoTrue account with the Admin role.

     Raises:
          UserOperationError: missing fields (400)
          SupabaseError: GoTrue rejected the account
     """
     email = data.get("email")
     password = data.get("password")
     if not email or not password or not data.get("first_name") or not data.get("last_name"):
          raise UserOperationError("email, password, first_name and last_name are required")

     created = client.admin_create_user(
          email=email,
          password=password,
          user_metadata={
               "first_name": data["first_name"],
               "last_name": data["last_name"],
               "phone": data.get("phone"),
               "role": AppRole.ADMIN.value,
               "email": email,
               "email_verified": True,
          },
     )
     user = created.get("user", created) if isinstance(created, dict) else {}
     user_id = uuid.UUID(str(user["id"]))

     if db.query(UserRole).filter(UserRole.user_id == user_id).first() is None:
          db.add(UserRole(user_id=user_id, role=AppRole.ADMIN.value))
          db.flush()

     log_user_activity_safe(
          client,
          actor_id,
          "admin_user_created",
          "user",
          user_id,
          {"email": email, "role": AppRole.ADMIN.value},
     )
     logger.info("Admin user %s created by %s", user_id, actor_id)
     return {
          "success": True,
          "message": "Admin user created successfully",
          "user": {"id": str(user_id), "email": email, "role": AppRole.ADMIN.value},
     }


# ---------------------------------------------------------------------------
# Sub-users
# ---------------------------------------------------------------------------

def normalize_permissions(requested: Optional[dict]) -> dict:
     """Keep only known permission keys; anything not granted is False."""
     requested = requested or {}
     return {key: bool(requested.get(key, False)) for key in SUB_USER_PERMISSIONS}


def _is_landlord(client: SupabaseClient, user_id: uuid.UUID) -> bool:
     try:
          return bool(client.rpc("has_role", {"_user_id": str(user_id), "_role": AppRole.LANDLORD.value}))
     except BACKEND_ERRORS as e:
          logger.error("Landlord role check failed for %s: %s", user_id, e)
          return False


def _find_user_id(client: SupabaseClient, email: str) -> Optional[uuid.UUID]:
     row = _first_row(client.rpc("find_user_by_email", {"_email": email}))
     if isinstance(row, dict) and row.get("id"):
          return uuid.UUID(str(row["id"]))
     return None


def _delete_auth_user(client: SupabaseClient, user_id: uuid.UUID) -> None:
     try:
          client.admin_delete_user(str(user_id))
     except BACKEND_ERRORS as e:
          logger.error("Could not roll back auth user %s: %s", user_id, e)


def create_sub_user(db: Session, client: SupabaseClient, landlord_id: uuid.UUID, data: dict) -> dict:
     """
     Attach a staff account to a landlord, creating the account when the
     e-mail is not registered yet.

     A new account gets a temporary password that is returned once. If any
     later step fails the new profile and auth user are removed again.

     Raises:
          UserOperationError: not a landlord (403), missing fields or duplicate
               sub-user (400), or a failed write (500)
     """
     if not _is_landlord(client, landlord_id):
          raise UserOperationError("Only landlords can create sub-users", 403)

     email = (data.get("email") or "").strip().lower()
     first_name = data.get("first_name")
     last_name = data.get("last_name")
     if not email or not first_name or not last_name:
          raise UserOperationError("email, first_name and last_name are required")

     permissions = normalize_permissions(data.get("permissions"))
     phone = data.get("phone")
     temp_password = None

     user_id = _find_user_id(client, email)
     is_new = user_id is None

     if not is_new:
          existing = (
               db.query(SubUser)
               .filter(SubUser.landlord_id == landlord_id, SubUser.user_id == user_id)
               .first()
          )
          if existing is not None and existing.status == "active":
               raise UserOperationError("User is already a sub-user for this landlord")
          profile = db.get(Profile, user_id)
          if profile is not None:
               profile.first_name = first_name
               profile.last_name = last_name
               if phone:
                    profile.phone = phone
               profile.updated_at = utcnow()
     else:
          temp_password = f"TempPass{random.randint(0, 9999)}!"
          created = client.admin_create_user(
               email=email,
               password=temp_password,
               user_metadata={
                    "first_name": first_name,
                    "last_name": last_name,
                    "phone": phone,
                    "role": AppRole.SUB_USER.value,
                    "created_by": str(landlord_id),
               },
          )
          user = created.get("user", created) if isinstance(created, dict) else {}
          user_id = uuid.UUID(str(user["id"]))
          try:
               with db.begin_nested():
                    db.add(Profile(id=user_id, first_name=first_name, last_name=last_name, email=email, phone=phone))
                    db.add(UserRole(user_id=user_id, role=AppRole.SUB_USER.value))
          except SQLAlchemyError:
               logger.exception("Profile creation for sub-user %s failed", email)
               _delete_auth_user(client, user_id)
               raise UserOperationError("Failed to create user profile", 500)

     try:
          with db.begin_nested():
               row = (
                    db.query(SubUser)
                    .filter(SubUser.landlord_id == landlord_id, SubUser.user_id == user_id)
                    .first()
               )
               if row is None:
                    row = SubUser(landlord_id=landlord_id, user_id=user_id)
                    db.add(row)
               row.title = data.get("title")
               row.permissions = permissions
               row.status = "active"
     except SQLAlchemyError:
          logger.exception("Sub-user record for %s failed", email)
          if is_new:
               with db.begin_nested():
                    db.query(UserRole).filter(UserRole.user_id == user_id).delete()
                    db.query(Profile).filter(Profile.id == user_id).delete()
               _delete_auth_user(client, user_id)
          raise UserOperationError("Failed to create sub-user record", 500)

     logger.info("Sub-user %s attached to landlord %s (new account: %s)", user_id, landlord_id, is_new)
     account = "new" if is_new else "existing"
     return {
          "success": True,
          "message": f"Sub-user created successfully with {account} account",
          "user_id": str(user_id),
          "temporary_password": temp_password,
          "instructions": (
               "The user should change their password on first login"
               if is_new
               else "The user can log in with their existing credentials"
          ),
     }


def list_sub_users(db: Session, landlord_id: uuid.UUID) -> list[dict]:
     rows = (
          db.query(SubUser, Profile)
          .outerjoin(Profile, Profile.id == SubUser.user_id)
          .filter(SubUser.landlord_id == landlord_id, SubUser.status != "inactive")
          .order_by(SubUser.created_at.desc())
          .all()
     )
     result = []
     for sub_user, profile in rows:
          item = sub_user.to_dict()
          item["profile"] = (
               {
                    "first_name": profile.first_name,
                    "last_name": profile.last_name,
                    "email": profile.email,
                    "phone": profile.phone,
               }
               if profile
               else None
          )
          result.append(item)
     return result


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

def _reset_channels(db: Session) -> tuple[bool, bool]:
     pref = (
          db.query(CommunicationPreference)
          .filter(CommunicationPreference.setting_name == "password_reset")
          .first()
     )
     if pref is None:
          return True, False
     return pref.email_enabled, pref.sms_enabled


def send_password_reset(
     db: Session,
     client: SupabaseClient,
     email: Optional[str] = None,
     user_id: Optional[uuid.UUID] = None,
     redirect_to: Optional[str] = None,
     sms_sender: Optional[Callable[[str, str], dict]] = None,
) -> dict:
     """
     Send reset instructions over every enabled channel.

     An unknown e-mail gets the same answer as a known one.

     Returns:
          dict with success, message and channels_used

     Raises:
          UserOperationError: neither email nor user_id given (400), or every
               channel failed (400)
     """
     sms_sender = sms_sender or send_sms
     if not email and user_id is None:
          raise UserOperationError("email or user_id is required")

     profile = None
     if user_id is not None:
          profile = db.get(Profile, user_id)
          email = email or (profile.email if profile else None)
     elif email:
          profile = db.query(Profile).filter(Profile.email == email.strip().lower()).first()

     email_enabled, sms_enabled = _reset_channels(db)
     redirect_to = redirect_to or f"{settings.app_url}/auth?type=recovery"
     channels = []
     last_error = None

     if email_enabled and email:
          try:
               client.recover(email, redirect_to)
               channels.append("email")
          except BACKEND_ERRORS as e:
               logger.error("Password reset e-mail failed: %s", e)
               last_error = str(e)

     if sms_enabled and profile is not None and profile.phone:
          message = (
               f"Hi {profile.first_name or 'User'}, a password reset was requested for your Zira Homes "
               "account. If this wasn't you, please contact support. Reset link sent to your email."
          )
          try:
               sms_sender(profile.phone, message)
               channels.append("sms")
          except (SmsDeliveryError, OSError) as e:
               logger.error("Password reset SMS failed: %s", e)
               last_error = f"SMS failed: {e}"

     if not channels:
          raise UserOperationError("Failed to send password reset via any channel", 400, details=last_error)

     if channels == ["email", "sms"]:
          message = "Password reset instructions sent via email and SMS."
     elif channels == ["email"]:
          message = "Password reset instructions sent to your email."
     else:
          message = "Password reset notification sent via SMS. Check your email for reset instructions."
     return {"success": True, "message": message, "channels_used": channels}


# ---------------------------------------------------------------------------
# Admin user operations
# ---------------------------------------------------------------------------

class AdminContext:
     def __init__(self, db: Session, client: SupabaseClient, admin_id: uuid.UUID,
                  ip_address: Optional[str], user_agent: Optional[str]):
          self.db = db
          self.client = client
          self.admin_id = admin_id
          self.ip_address = ip_address
          self.user_agent = user_agent

     def audit(self, user_id: uuid.UUID, action: str, details: Optional[dict] = None) -> None:
          log_user_audit_safe(
               self.client,
               user_id,
               action,
               self.admin_id,
               details,
               ip_address=self.ip_address,
               user_agent=self.user_agent,
          )


def _suspend_user(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     ctx.client.rpc("suspend_user", {"_user_id": str(user_id)})
     ctx.audit(user_id, "user_suspended", {"reason": params.get("reason")})
     return {"success": True, "message": "User suspended successfully"}


def _activate_user(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     ctx.client.rpc("activate_user", {"_user_id": str(user_id)})
     ctx.audit(user_id, "user_activated")
     return {"success": True, "message": "User activated successfully"}


def _reset_password(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     if ctx.db.get(Profile, user_id) is None:
          raise UserOperationError("User not found", 404)
     result = send_password_reset(ctx.db, ctx.client, user_id=user_id, redirect_to=params.get("redirect_to"))
     ctx.audit(user_id, "password_reset_by_admin", {"channels_used": result["channels_used"]})
     return {
          "success": True,
          "message": "Password reset sent successfully",
          "channels_used": result["channels_used"],
     }


def _reset_trial(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     try:
          trial_days = int(params.get("trialDays") or DEFAULT_TRIAL_DAYS)
     except (TypeError, ValueError):
          raise UserOperationError("trialDays must be a number")

     subscription = (
          ctx.db.query(LandlordSubscription)
          .filter(LandlordSubscription.landlord_id == user_id)
          .first()
     )
     if subscription is None:
          raise UserOperationError("Subscription not found", 404)

     now = utcnow()
     subscription.status = SubscriptionStatus.TRIAL.value
     subscription.trial_start_date = now
     subscription.trial_end_date = now + timedelta(days=trial_days)
     subscription.updated_at = now
     ctx.db.flush()

     end = subscription.trial_end_date.isoformat()
     ctx.audit(user_id, "trial_reset", {"trial_days": trial_days, "new_end_date": end})
     return {
          "success": True,
          "message": f"Trial reset successfully for {trial_days} days",
          "trial_end_date": end,
     }


def _start_impersonation(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     role = ctx.db.query(UserRole).filter(UserRole.user_id == user_id).first()
     if role is not None and role.role == AppRole.ADMIN.value:
          raise UserOperationError("Cannot impersonate admin users", 403)

     expires_at = utcnow() + IMPERSONATION_TTL
     session = ImpersonationSession(
          admin_user_id=ctx.admin_id,
          impersonated_user_id=user_id,
          session_token=secrets.token_hex(32),
          ip_address=ctx.ip_address,
          user_agent=ctx.user_agent,
          is_active=True,
          expires_at=expires_at,
     )
     ctx.db.add(session)
     ctx.db.flush()

     ctx.audit(user_id, "impersonation_started", {"session_id": str(session.id), "expires_at": expires_at.isoformat()})
     return {
          "success": True,
          "message": "Impersonation session started",
          "session_id": str(session.id),
          "expires_at": expires_at.isoformat(),
     }


def _stop_impersonation(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     now = utcnow()
     sessions = (
          ctx.db.query(ImpersonationSession)
          .filter(
               ImpersonationSession.admin_user_id == ctx.admin_id,
               ImpersonationSession.impersonated_user_id == user_id,
               ImpersonationSession.is_active.is_(True),
          )
          .all()
     )
     for session in sessions:
          session.is_active = False
          session.ended_at = now
     ctx.db.flush()

     ctx.audit(user_id, "impersonation_ended", {"previous_state": "impersonating"})
     return {"success": True, "message": "Impersonation session ended"}


def user_dependencies(db: Session, user_id: uuid.UUID) -> dict:
     """What would be orphaned by deleting this user."""
     properties = db.query(Property).filter(Property.owner_id == user_id).count()
     tenant_ids = [t.id for t in db.query(Tenant.id).filter(Tenant.user_id == user_id).all()]
     active_leases = payments = maintenance = 0
     if tenant_ids:
          active_leases = (
               db.query(Lease)
               .filter(Lease.tenant_id.in_(tenant_ids), Lease.status == LeaseStatus.ACTIVE.value)
               .count()
          )
          payments = db.query(Payment).filter(Payment.tenant_id.in_(tenant_ids)).count()
          maintenance = db.query(MaintenanceRequest).filter(MaintenanceRequest.tenant_id.in_(tenant_ids)).count()

     return {
          "hasActiveProperties": properties > 0,
          "hasActiveLeases": active_leases > 0,
          "hasPayments": payments > 0,
          "hasMaintenanceRequests": maintenance > 0,
          "hasAnyData": any((properties, active_leases, payments, maintenance)),
     }


def _soft_delete_user(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     dependencies = user_dependencies(ctx.db, user_id)
     if dependencies["hasActiveLeases"] or dependencies["hasActiveProperties"]:
          raise UserOperationError(
               "Cannot delete user with active dependencies",
               409,
               dependencies=dependencies,
               transfer_required=True,
          )
     ctx.client.rpc("soft_delete_user", {"_user_id": str(user_id)})
     ctx.audit(user_id, "soft_delete", {"previous_status": "active", "new_status": "deleted"})
     return {"success": True, "message": "User soft deleted successfully"}


def _permanently_delete_user(ctx: AdminContext, user_id: uuid.UUID, params: dict) -> dict:
     dependencies = user_dependencies(ctx.db, user_id)
     if dependencies["hasAnyData"]:
          raise UserOperationError(
               "Cannot permanently delete user with existing data",
               409,
               dependencies=dependencies,
          )

     profile = ctx.db.get(Profile, user_id)
     details = {
          "deleted_user_email": profile.email if profile else None,
          "deleted_user_name": profile.full_name if profile else None,
     }
     try:
          ctx.client.admin_delete_user(str(user_id))
     except BACKEND_ERRORS as e:
          logger.warning("Could not delete auth user %s: %s", user_id, e)

     ctx.db.query(UserRole).filter(UserRole.user_id == user_id).delete()
     ctx.db.query(Profile).filter(Profile.id == user_id).delete()
     ctx.db.flush()

     ctx.audit(user_id, "permanent_delete", details)
     return {"success": True, "message": "User permanently deleted successfully"}


OPERATIONS = {
     "suspend_user": _suspend_user,
     "activate_user": _activate_user,
     "reset_password": _reset_password,
     "reset_trial": _reset_trial,
     "start_impersonation": _start_impersonation,
     "stop_impersonation": _stop_impersonation,
     "soft_delete_user": _soft_delete_user,
     "permanently_delete_user": _permanently_delete_user,
}


def run_admin_operation(
     db: Session,
     client: SupabaseClient,
     admin_id: uuid.UUID,
     operation: Optional[str],
     user_id,
     params: Optional[dict] = None,
     ip_address: Optional[str] = None,
     user_agent: Optional[str] = None,
) -> dict:
     """
     Dispatch one admin console operation against a target user.

     Raises:
          UserOperationError: unknown operation, bad user id, or an operation-specific refusal
          SupabaseError: a backend RPC failed
     """
     handler = OPERATIONS.get(operation or "")
     if handler is None:
          raise UserOperationError(f"Unknown operation: {operation}")
     try:
          target = uuid.UUID(str(user_id))
     except ValueError:
          raise UserOperationError("userId is required")

     logger.info("Admin %s running %s on %s", admin_id, operation, target)
     ctx = AdminContext(db, client, admin_id, ip_address, user_agent)
     return handler(ctx, target, params or {})
