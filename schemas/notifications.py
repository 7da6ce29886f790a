# schemas/notifications.py
from typing import Optional

from pydantic import BaseModel, Field


class SendSmsRequest(BaseModel):
     phone_number: Optional[str] = None
     message: Optional[str] = None
     landlord_id: Optional[str] = None
     provider_name: Optional[str] = None


class NotificationEmailRequest(BaseModel):
     to: Optional[str] = None
     subject: Optional[str] = None
     title: Optional[str] = None
     message: Optional[str] = None
     type: Optional[str] = None


class SendNotificationRequest(BaseModel):
     """In-app notification plus optional e-mail/SMS delivery."""
     user_id: Optional[str] = None
     title: Optional[str] = None
     message: Optional[str] = None
     type: Optional[str] = None
     related_id: Optional[str] = None
     related_type: Optional[str] = None
     send_email: Optional[bool] = None
     send_sms: Optional[bool] = None


class MarkReadRequest(BaseModel):
     notification_id: Optional[str] = None
     mark_all: bool = Field(False, alias="all")
