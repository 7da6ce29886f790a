# services/security_service.py
"""
Security events and activity audit.

Events are written by backend RPCs (log_security_event, log_user_activity,
log_system_event, log_user_audit). The *_safe helpers are used as side
effects of other operations: a failure is logged and never propagates.
"""
import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from models import SecurityEvent
from models.base import utcnow
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient

logger = logging.getLogger(__name__)

SEVERITIES = ("low", "medium", "high", "critical")
RATE_LIMIT_EVENTS = 20
RATE_LIMIT_WINDOW = timedelta(minutes=5)


class RateLimitExceeded(Exception):
     pass


def _str(value: Optional[uuid.UUID]) -> Optional[str]:
     return str(value) if value is not None else None


def recent_event_count(db: Session, user_id: uuid.UUID, window: timedelta = RATE_LIMIT_WINDOW) -> int:
     since = utcnow() - window
     return (
          db.query(SecurityEvent)
          .filter(SecurityEvent.user_id == user_id, SecurityEvent.created_at >= since)
          .count()
     )


def log_security_event(
     db: Session,
     client: SupabaseClient,
     user_id: uuid.UUID,
     event_type: Optional[str],
     severity: Optional[str] = None,
     details: Optional[dict] = None,
     ip_address: Optional[str] = None,
) -> None:
     """
     Record a client-reported security event.

     Raises:
          RateLimitExceeded: more than 20 events from this user in 5 minutes
          ValueError: missing event_type or unknown severity
          SupabaseError: the RPC failed
     """
     if recent_event_count(db, user_id) > RATE_LIMIT_EVENTS:
          raise RateLimitExceeded("Rate limit exceeded")
     if not event_type:
          raise ValueError("event_type is required")

     severity = severity or "medium"
     if severity not in SEVERITIES:
          raise ValueError(f"severity must be one of: {', '.join(SEVERITIES)}")

     client.rpc(
          "log_security_event",
          {
               "_event_type": event_type,
               "_severity": severity,
               "_details": details or {},
               "_user_id": str(user_id),
               "_ip_address": ip_address,
          },
     )


def log_security_event_safe(
     client: SupabaseClient,
     event_type: str,
     severity: str,
     details: Optional[dict] = None,
     user_id: Optional[uuid.UUID] = None,
     ip_address: Optional[str] = None,
) -> None:
     try:
          client.rpc(
               "log_security_event",
               {
                    "_event_type": event_type,
                    "_severity": severity,
                    "_details": details or {},
                    "_user_id": _str(user_id),
                    "_ip_address": ip_address,
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Failed to log security event %s: %s", event_type, e)


def log_user_activity_safe(
     client: SupabaseClient,
     user_id: uuid.UUID,
     action: str,
     entity_type: Optional[str] = None,
     entity_id: Optional[Any] = None,
     details: Optional[dict] = None,
) -> None:
     try:
          client.rpc(
               "log_user_activity",
               {
                    "_user_id": str(user_id),
                    "_action": action,
                    "_entity_type": entity_type,
                    "_entity_id": _str(entity_id) if isinstance(entity_id, uuid.UUID) else entity_id,
                    "_details": details or {},
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Failed to log activity %s: %s", action, e)


def log_system_event_safe(
     client: SupabaseClient,
     event_type: str,
     message: str,
     service: str,
     details: Optional[dict] = None,
     user_id: Optional[uuid.UUID] = None,
) -> None:
     try:
          client.rpc(
               "log_system_event",
               {
                    "_type": event_type,
                    "_message": message,
                    "_service": service,
                    "_details": details or {},
                    "_user_id": _str(user_id),
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Failed to log system event '%s': %s", message, e)


def log_user_audit_safe(
     client: SupabaseClient,
     user_id: uuid.UUID,
     action: str,
     performed_by: uuid.UUID,
     details: Optional[dict] = None,
     ip_address: Optional[str] = None,
     user_agent: Optional[str] = None,
) -> None:
     try:
          client.rpc(
               "log_user_audit",
               {
                    "_user_id": str(user_id),
                    "_action": action,
                    "_entity_type": "user",
                    "_entity_id": str(user_id),
                    "_details": details or {},
                    "_performed_by": str(performed_by),
                    "_ip_address": ip_address,
                    "_user_agent": user_agent or "",
               },
          )
     except BACKEND_ERRORS as e:
          logger.error("Failed to write audit entry %s: %s", action, e)
