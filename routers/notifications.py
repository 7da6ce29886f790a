# routers/notifications.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, get_current_user
from routers import FUNCTIONS_PREFIX, service_error
from schemas.notifications import (
     MarkReadRequest,
     NotificationEmailRequest,
     SendNotificationRequest,
     SendSmsRequest,
)
from services import notification_service
from services.notification_service import DEFAULT_LIST_LIMIT, NotificationError
from utils.email import EmailDeliveryError
from utils.sms import SmsDeliveryError

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["notifications"])


@router.post("/send-sms")
def send_sms(
     body: SendSmsRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          return notification_service.send_sms_message(
               db, body.phone_number, body.message, body.landlord_id, body.provider_name
          )
     except NotificationError as e:
          raise service_error(e)
     except SmsDeliveryError as e:
          logger.error("SMS requested by %s failed: %s", user.id, e)
          raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/send-notification-email")
def send_notification_email(
     body: NotificationEmailRequest,
     user: CurrentUser = Depends(get_current_user),
):
     try:
          return notification_service.send_notification_email(body.model_dump())
     except NotificationError as e:
          raise service_error(e)
     except EmailDeliveryError as e:
          logger.error("Notification e-mail requested by %s failed: %s", user.id, e)
          raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.post("/send-notification")
def send_notification(
     body: SendNotificationRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     """
     Notify a user in-app and over their e-mail/SMS preferences.

     - **user_id**, **title**, **message**: required
     - **send_email**, **send_sms**: narrow the channels further than the user's preferences
     """
     try:
          return notification_service.send_notification(db, user.id, body.model_dump())
     except NotificationError as e:
          raise service_error(e)


@router.get("/notifications")
def list_notifications(
     unread_only: bool = Query(False),
     limit: int = Query(DEFAULT_LIST_LIMIT),
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     return notification_service.list_notifications(db, user.id, unread_only, limit)


@router.post("/mark-notification-read")
def mark_notification_read(
     body: MarkReadRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     try:
          updated = notification_service.mark_read(db, user.id, body.notification_id, body.mark_all)
     except NotificationError as e:
          raise service_error(e)
     return {"success": True, "updated": updated}
