# services/trial_service.py
"""
Trial lifecycle: status for the current landlord and the scheduled
trial manager that expires trials and sends reminder e-mails.
"""
import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from config import configure_logging, settings
from database import get_session_context
from models import EmailLog, LandlordSubscription, Profile, TrialNotificationTemplate
from models.base import as_utc, utcnow
from models.billing import SubscriptionStatus
from models.profile import AppRole
from services.security_service import log_system_event_safe
from utils.email import EmailDeliveryError, send_email
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient, build_client

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 30
TRIAL_CHECKED_ROLES = (AppRole.LANDLORD.value, AppRole.MANAGER.value, AppRole.AGENT.value)
DAY_SECONDS = 24 * 60 * 60


class TrialStatus(BaseModel):
     status: str
     is_active: bool
     is_expired: bool = False
     is_suspended: bool = False
     has_grace_period: bool = False
     days_remaining: int = 0
     total_trial_days: int = DEFAULT_TRIAL_DAYS
     plan_id: Optional[str] = None
     plan_name: Optional[str] = None
     trial_end_date: Optional[datetime] = None


def days_until(end: datetime, now: datetime) -> int:
     """Whole days left, rounded up, as the reminder templates count them."""
     return math.ceil((as_utc(end) - as_utc(now)).total_seconds() / DAY_SECONDS)


def compute_trial_status(
     subscription: Optional[LandlordSubscription],
     role: Optional[str],
     now: Optional[datetime] = None,
     grace_days: Optional[int] = None,
) -> TrialStatus:
     now = now or utcnow()
     grace_days = settings.trial_grace_days if grace_days is None else grace_days

     if role not in TRIAL_CHECKED_ROLES:
          return TrialStatus(status="not_applicable", is_active=True)
     if subscription is None:
          return TrialStatus(status="no_subscription", is_active=False)

     status = subscription.status
     end = as_utc(subscription.trial_end_date)
     start = as_utc(subscription.trial_start_date)
     days_remaining = max(days_until(end, now), 0) if end else 0

     total_days = DEFAULT_TRIAL_DAYS
     if start and end and end > start:
          total_days = (end - start).days

     in_trial = status == SubscriptionStatus.TRIAL.value
     is_expired = status == SubscriptionStatus.TRIAL_EXPIRED.value or (in_trial and end is not None and end <= now)
     has_grace = bool(is_expired and end is not None and now <= end + timedelta(days=grace_days))
     plan = subscription.plan

     return TrialStatus(
          status=status,
          is_active=status == SubscriptionStatus.ACTIVE.value or (in_trial and not is_expired),
          is_expired=is_expired,
          is_suspended=status == SubscriptionStatus.SUSPENDED.value,
          has_grace_period=has_grace,
          days_remaining=days_remaining,
          total_trial_days=total_days,
          plan_id=str(plan.id) if plan else None,
          plan_name=plan.name if plan else None,
          trial_end_date=end,
     )


def render_template(text: str, first_name: str, days_remaining: int, upgrade_url: str) -> str:
     return (
          (text or "")
          .replace("{{upgrade_url}}", upgrade_url)
          .replace("{{first_name}}", first_name or "")
          .replace("{{days_remaining}}", str(days_remaining))
     )


def run_trial_manager(
     db: Session,
     client: Optional[SupabaseClient] = None,
     now: Optional[datetime] = None,
     mailer: Optional[Callable[[str, str, str], dict]] = None,
) -> dict:
     """
     Expire finished trials and send the day-N reminder e-mails.

     For every subscription still in 'trial' with an end date:
     - past the end by more than the grace period -> suspended
     - otherwise past the end -> trial_expired
     - templates whose days_before_expiry equals the days left are sent and
       logged to email_logs as sent or failed

     Returns:
          Summary dict: success, processed, notifications_sent, status_updates, message
     """
     mailer = mailer or send_email
     now = now or utcnow()
     grace = timedelta(days=settings.trial_grace_days)
     upgrade_url = f"{settings.app_url}/upgrade"

     subscriptions = (
          db.query(LandlordSubscription)
          .filter(
               LandlordSubscription.status == SubscriptionStatus.TRIAL.value,
               LandlordSubscription.trial_end_date.isnot(None),
          )
          .all()
     )
     logger.info("Trial manager: %d trial subscriptions to process", len(subscriptions))

     status_updates = []
     notifications_sent = 0

     for subscription in subscriptions:
          end = as_utc(subscription.trial_end_date)
          days_remaining = days_until(end, now)

          if days_remaining <= 0:
               old_status = subscription.status
               if now > end + grace:
                    subscription.status = SubscriptionStatus.SUSPENDED.value
                    reason = "Grace period expired"
               else:
                    subscription.status = SubscriptionStatus.TRIAL_EXPIRED.value
                    reason = "Trial period ended, entering grace period"
               subscription.updated_at = now
               status_updates.append({
                    "id": str(subscription.id),
                    "landlord_id": str(subscription.landlord_id),
                    "old_status": old_status,
                    "new_status": subscription.status,
                    "reason": reason,
               })
               if client is not None:
                    _log_status_change(client, subscription.landlord_id, old_status, subscription.status, reason)

          templates = (
               db.query(TrialNotificationTemplate)
               .filter(
                    TrialNotificationTemplate.is_active.is_(True),
                    TrialNotificationTemplate.days_before_expiry == days_remaining,
               )
               .all()
          )
          profile = db.get(Profile, subscription.landlord_id)
          if not templates or profile is None or not profile.email:
               continue

          for template in templates:
               if _send_trial_email(db, mailer, profile, template, subscription.landlord_id, days_remaining, upgrade_url):
                    notifications_sent += 1

     db.flush()
     return {
          "success": True,
          "processed": len(subscriptions),
          "notifications_sent": notifications_sent,
          "status_updates": len(status_updates),
          "message": (
               f"Processed {len(subscriptions)} subscriptions, sent {notifications_sent} "
               f"notifications, updated {len(status_updates)} statuses"
          ),
     }


def _send_trial_email(
     db: Session,
     mailer: Callable[[str, str, str], dict],
     profile: Profile,
     template: TrialNotificationTemplate,
     landlord_id: uuid.UUID,
     days_remaining: int,
     upgrade_url: str,
) -> bool:
     html_body = render_template(template.html_content, profile.first_name, days_remaining, upgrade_url)
     subject = render_template(template.subject, profile.first_name, days_remaining, upgrade_url)
     log = EmailLog(
          recipient_email=profile.email,
          recipient_name=profile.full_name,
          subject=subject,
          template_type=template.template_name,
          metadata_={
               "landlord_id": str(landlord_id),
               "days_remaining": days_remaining,
               "template_id": str(template.id),
          },
     )
     try:
          mailer(profile.email, subject, html_body)
          log.status = "sent"
          sent = True
     except (EmailDeliveryError, OSError) as e:
          logger.error("Trial reminder to %s failed: %s", profile.email, e)
          log.status = "failed"
          log.error_message = str(e)
          sent = False
     db.add(log)
     return sent


def _log_status_change(client: SupabaseClient, landlord_id, old_status: str, new_status: str, reason: str) -> None:
     try:
          client.rpc(
               "log_trial_status_change",
               {
                    "_landlord_id": str(landlord_id),
                    "_old_status": old_status,
                    "_new_status": new_status,
                    "_reason": reason,
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Failed to record trial status change for %s: %s", landlord_id, e)
          log_system_event_safe(
               client,
               "warning",
               "Trial status change not recorded",
               "trial-manager",
               {"landlord_id": str(landlord_id), "new_status": new_status},
          )


def run_scheduled_trial_manager(
     client: Optional[SupabaseClient] = None,
     now: Optional[datetime] = None,
     mailer: Optional[Callable[[str, str, str], dict]] = None,
) -> dict:
     """Cron entry point: runs the trial manager in its own committed session."""
     with get_session_context() as db:
          return run_trial_manager(db, client or build_client(), now=now, mailer=mailer)


if __name__ == "__main__":
     configure_logging()
     logger.info("Trial manager finished: %s", run_scheduled_trial_manager()["message"])
