# utils/email.py
import html
import logging
from typing import Optional

import requests

from config import settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"

TYPE_COLORS = {
     "payment": "#10B981",
     "lease": "#3B82F6",
     "maintenance": "#F59E0B",
     "system": "#8B5CF6",
     "support": "#6366F1",
}
DEFAULT_COLOR = "#6B7280"


class EmailDeliveryError(Exception):
     pass


def send_email(to: str, subject: str, html_body: str, from_address: Optional[str] = None) -> dict:
     """Send one HTML e-mail through Resend and return its JSON reply (contains "id")."""
     if not settings.resend_api_key:
          raise EmailDeliveryError("RESEND_API_KEY is not set")

     try:
          response = requests.post(
               RESEND_URL,
               headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json",
               },
               json={
                    "from": from_address or settings.resend_from,
                    "to": [to],
                    "subject": subject,
                    "html": html_body,
               },
               timeout=10,
          )
     except requests.exceptions.RequestException as e:
          raise EmailDeliveryError(f"E-mail delivery failed: {e}") from e
     if response.status_code not in (200, 201):
          raise EmailDeliveryError(f"Resend error: {response.text}")
     try:
          reply = response.json()
     except ValueError as e:
          raise EmailDeliveryError(f"Resend returned a non-JSON reply: {response.text[:200]}") from e
     logger.info("E-mail '%s' accepted by Resend", subject)
     return reply


def type_color(notification_type: Optional[str]) -> str:
     return TYPE_COLORS.get(notification_type or "", DEFAULT_COLOR)


def render_notification_email(notification_type: str, title: str, message: str, portal_url: Optional[str] = None) -> str:
     color = type_color(notification_type)
     portal_url = portal_url or f"{settings.app_url}/notifications"
     return f"""
          <!DOCTYPE html>
          <html lang="en">
          <body style="font-family:-apple-system,'Segoe UI',Roboto,sans-serif;background:#f8f9fa;margin:0;padding:20px;color:#333;">
               <div style="max-width:600px;margin:0 auto;background:#ffffff;border-radius:8px;overflow:hidden;">
                    <div style="background:{color};color:#ffffff;padding:20px;text-align:center;">
                         <h1 style="margin:0;font-size:20px;">Property Notification</h1>
                    </div>
                    <div style="padding:30px;">
                         <div style="display:inline-block;color:{color};font-size:12px;font-weight:600;text-transform:uppercase;margin-bottom:20px;">
                              {html.escape(notification_type or "notification")}
                         </div>
                         <h2 style="font-size:24px;margin:0 0 15px 0;color:#1f2937;">{html.escape(title)}</h2>
                         <p style="font-size:16px;color:#4b5563;margin:0 0 25px 0;">{html.escape(message)}</p>
                         <a href="{portal_url}" style="display:inline-block;background:{color};color:#ffffff;padding:12px 24px;text-decoration:none;border-radius:6px;font-weight:600;">
                              View in Portal
                         </a>
                    </div>
                    <div style="background:#f8f9fa;padding:20px;text-align:center;color:#6b7280;font-size:14px;">
                         <p>This is an automated notification from Zira Homes.</p>
                         <p>You can change which e-mails you receive in your notification preferences.</p>
                    </div>
               </div>
          </body>
          </html>
     """
