# services/notification_service.py
"""
Notification delivery: in-app rows, e-mail through Resend and SMS through
the bulk provider, honouring each user's channel preferences.
"""
import logging
import uuid
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from dependencies import get_user_role
from models import (
     Lease,
     Notification,
     NotificationLog,
     NotificationPreference,
     Profile,
     Property,
     SmsUsageLog,
     Tenant,
     Unit,
)
from models.lease import LeaseStatus
from models.profile import AppRole
from utils.email import EmailDeliveryError, render_notification_email, send_email
from utils.sms import SMS_COST, SmsDeliveryError, SmsProviderConfig, send_sms

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
DELIVERY_ERRORS = (EmailDeliveryError, SmsDeliveryError, OSError)


class NotificationError(Exception):
     def __init__(self, message: str, status_code: int = 400):
          super().__init__(message)
          self.message = message
          self.status_code = status_code


def _uuid(value, field: str) -> uuid.UUID:
     try:
          return uuid.UUID(str(value))
     except (TypeError, ValueError):
          raise NotificationError(f"{field} is required")


def can_notify(db: Session, sender_id: uuid.UUID, target_id: uuid.UUID) -> bool:
     """
     Admins may notify anyone and everyone may notify themselves. Landlords
     and managers may notify tenants holding an active lease on a property
     they own or manage.
     """
     if sender_id == target_id:
          return True
     role = get_user_role(db, sender_id)
     if role == AppRole.ADMIN.value:
          return True
     if role not in (AppRole.LANDLORD.value, AppRole.MANAGER.value):
          return False

     match = (
          db.query(Lease.id)
          .join(Tenant, Lease.tenant_id == Tenant.id)
          .join(Unit, Lease.unit_id == Unit.id)
          .join(Property, Unit.property_id == Property.id)
          .filter(
               Tenant.user_id == target_id,
               Lease.status == LeaseStatus.ACTIVE.value,
               or_(Property.owner_id == sender_id, Property.manager_id == sender_id),
          )
          .first()
     )
     return match is not None


def get_preferences(db: Session, user_id: uuid.UUID) -> tuple[bool, bool]:
     pref = db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).first()
     if pref is None:
          return True, False
     return pref.email_enabled, pref.sms_enabled


def _log_delivery(db: Session, user_id: uuid.UUID, notification_type: str, channel: str,
                  subject: str, error: Optional[str]) -> None:
     db.add(NotificationLog(
          user_id=user_id,
          notification_type=notification_type,
          channel=channel,
          status="failed" if error else "sent",
          subject=subject,
          error_message=error,
     ))


def send_notification(
     db: Session,
     sender_id: uuid.UUID,
     data: dict,
     mailer: Optional[Callable[[str, str, str], dict]] = None,
     sms_sender: Optional[Callable[[str, str], dict]] = None,
) -> dict:
     """
     Notify a user in-app and over their preferred channels.

     Args:
          db: SQLAlchemy database session
          sender_id: Authenticated caller
          data: user_id, title, message, type, related_id, related_type,
               send_email, send_sms (the last two default to the user's preferences)

     Returns:
          dict with success, notifications_sent and per-channel responses

     Raises:
          NotificationError: missing fields (400), not allowed (403) or unknown user (404)
     """
     mailer = mailer or send_email
     sms_sender = sms_sender or send_sms

     target_id = _uuid(data.get("user_id"), "user_id")
     title = data.get("title")
     message = data.get("message")
     notification_type = data.get("type") or "system"
     if not title or not message:
          raise NotificationError("title and message are required")

     if not can_notify(db, sender_id, target_id):
          logger.warning("Unauthorized notification attempt from %s to %s", sender_id, target_id)
          raise NotificationError("Not authorized to notify this user", 403)

     profile = db.get(Profile, target_id)
     if profile is None:
          raise NotificationError("User profile not found", 404)

     related_id = data.get("related_id")
     db.add(Notification(
          user_id=target_id,
          title=title,
          message=message,
          type=notification_type,
          related_id=_uuid(related_id, "related_id") if related_id else None,
          related_type=data.get("related_type"),
     ))

     email_enabled, sms_enabled = get_preferences(db, target_id)
     if data.get("send_email") is not None:
          email_enabled = email_enabled and bool(data["send_email"])
     if data.get("send_sms") is not None:
          sms_enabled = sms_enabled and bool(data["send_sms"])

     responses = []
     if email_enabled and profile.email:
          try:
               result = mailer(profile.email, title, render_notification_email(notification_type, title, message))
               responses.append({"channel": "email", "success": True, "id": (result or {}).get("id")})
               _log_delivery(db, target_id, notification_type, "email", title, None)
          except DELIVERY_ERRORS as e:
               logger.error("Notification e-mail to %s failed: %s", target_id, e)
               responses.append({"channel": "email", "success": False, "error": str(e)})
               _log_delivery(db, target_id, notification_type, "email", title, str(e))

     if sms_enabled and profile.phone:
          try:
               sms_sender(profile.phone, f"{title}: {message}")
               responses.append({"channel": "sms", "success": True})
               _log_delivery(db, target_id, notification_type, "sms", title, None)
          except DELIVERY_ERRORS as e:
               logger.error("Notification SMS to %s failed: %s", target_id, e)
               responses.append({"channel": "sms", "success": False, "error": str(e)})
               _log_delivery(db, target_id, notification_type, "sms", title, str(e))

     db.flush()
     logger.info(
          "Notification from %s to %s: %d channel(s), delivered=%s",
          sender_id, target_id, len(responses), any(r["success"] for r in responses),
     )
     return {"success": True, "notifications_sent": len(responses), "responses": responses}


def send_notification_email(data: dict, mailer: Optional[Callable[[str, str, str], dict]] = None) -> dict:
     """Send one styled notification e-mail. Raises NotificationError or EmailDeliveryError."""
     mailer = mailer or send_email
     to = data.get("to")
     subject = data.get("subject") or data.get("title")
     title = data.get("title") or subject
     message = data.get("message")
     if not to or not subject or not message:
          raise NotificationError("to, subject and message are required")
     result = mailer(to, subject, render_notification_email(data.get("type") or "system", title, message))
     return {"success": True, "id": (result or {}).get("id")}


def send_sms_message(
     db: Session,
     phone: Optional[str],
     message: Optional[str],
     landlord_id=None,
     provider_name: Optional[str] = None,
     sms_sender: Optional[Callable[..., dict]] = None,
) -> dict:
     """
     Send one SMS and, when sent for a landlord, record its cost for billing.

     Raises:
          NotificationError: missing phone or message
          SmsDeliveryError: the provider refused or failed
     """
     sms_sender = sms_sender or send_sms
     if not phone or not message:
          raise NotificationError("phone_number and message are required")

     config = SmsProviderConfig.from_settings(provider_name)
     sms_sender(phone, message, config)

     if landlord_id:
          db.add(SmsUsageLog(
               landlord_id=_uuid(landlord_id, "landlord_id"),
               recipient_phone=phone,
               message_content=message,
               cost=SMS_COST,
               status="sent",
          ))
          db.flush()

     return {
          "success": True,
          "message": "SMS sent successfully",
          "provider": config.provider_name,
          "phone_number": phone,
          "cost": float(SMS_COST),
     }


def list_notifications(db: Session, user_id: uuid.UUID, unread_only: bool = False,
                       limit: int = DEFAULT_LIST_LIMIT) -> list[dict]:
     query = db.query(Notification).filter(Notification.user_id == user_id)
     if unread_only:
          query = query.filter(Notification.is_read.is_(False))
     limit = max(1, min(limit or DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT))
     return [n.to_dict() for n in query.order_by(Notification.created_at.desc()).limit(limit).all()]


def mark_read(db: Session, user_id: uuid.UUID, notification_id=None, mark_all: bool = False) -> int:
     """Mark one or all of the caller's notifications read; returns rows changed."""
     query = db.query(Notification).filter(Notification.user_id == user_id, Notification.is_read.is_(False))
     if not mark_all:
          query = query.filter(Notification.id == _uuid(notification_id, "notification_id"))
     updated = 0
     for notification in query.all():
          notification.is_read = True
          updated += 1
     db.flush()
     return updated
