# utils/sms.py
"""
SMS delivery through the configured bulk SMS provider.

Only the InHouse bulk API is wired up; Twilio and Africa's Talking are
recognised names but raise SmsDeliveryError.
"""
import logging
import re
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import requests

from config import settings

logger = logging.getLogger(__name__)

SMS_COST = Decimal("2.50")  # KES per message

_HTTP_ERROR_HINTS = {
     401: "Unauthorized: Check your authentication token",
     403: "Forbidden: Insufficient permissions",
     404: "Not Found: Check API endpoint URL",
     429: "Rate Limited: Too many requests",
     500: "Server Error: Provider system issue",
     502: "Bad Gateway: Provider unreachable",
     503: "Service Unavailable: Provider temporarily down",
     504: "Gateway Timeout: Provider did not respond",
}


class SmsDeliveryError(Exception):
     pass


@dataclass
class SmsProviderConfig:
     provider_name: str
     base_url: str
     authorization_token: Optional[str]
     username: str
     sender_id: str
     unique_identifier: str = "77"
     sender_type: int = 10

     @classmethod
     def from_settings(cls, provider_name: Optional[str] = None) -> "SmsProviderConfig":
          return cls(
               provider_name=provider_name or settings.sms_provider_name,
               base_url=settings.sms_provider_url,
               authorization_token=settings.sms_provider_token,
               username=settings.sms_username,
               sender_id=settings.sms_sender_id,
          )


def sanitize_for_sms(text: Optional[str]) -> str:
     """Reduce text to GSM-friendly ASCII: straight quotes, plain dashes, single spaces."""
     if not text:
          return ""
     s = re.sub(r"[‘’‚‛]", "'", text)
     s = re.sub(r"[“”„‟]", '"', s)
     s = re.sub(r"[–—―]", "-", s)
     s = s.replace(" ", " ")
     s = re.sub(r"[^\x20-\x7E\n]", "", s)
     s = "\n".join(re.sub(r"\s{2,}", " ", line).rstrip() for line in s.split("\n"))
     return s.strip()


def format_sms_phone(phone: str) -> str:
     """
     Convert a Kenyan number to 254XXXXXXXXX.

     Raises:
          SmsDeliveryError: if the number cannot be a valid Kenyan mobile number
     """
     digits = re.sub(r"\D", "", phone or "")
     if len(digits) < 9:
          raise SmsDeliveryError(f"Invalid phone number format: {phone}. Must be at least 9 digits.")

     if digits.startswith("0"):
          digits = "254" + digits[1:]
     elif digits.startswith("7") and len(digits) == 9:
          digits = "254" + digits
     elif not digits.startswith("254"):
          digits = "254" + digits

     if not digits.startswith("254") or len(digits) != 12:
          raise SmsDeliveryError(f"Invalid Kenyan phone number: {phone}. Expected format: +254XXXXXXXXX")
     return digits


def _send_inhouse(phone: str, message: str, config: SmsProviderConfig) -> dict:
     if not config.authorization_token:
          raise SmsDeliveryError("SMS provider authentication token is not configured")

     formatted = format_sms_phone(phone)
     if len(message) > 320:
          logger.warning("SMS message is %d characters, may be split into multiple segments", len(message))

     body = {
          "dataSet": [
               {
                    "username": config.username,
                    "phone_number": formatted,
                    "unique_identifier": config.unique_identifier,
                    "sender_name": config.sender_id,
                    "message": message,
                    "sender_type": config.sender_type,
               }
          ],
          "timeStamp": int(time.time()),
     }

     try:
          response = requests.post(
               config.base_url,
               json=body,
               headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Token {config.authorization_token}",
                    "User-Agent": "Zira-Homes-SMS-Service/1.0",
               },
               timeout=15,
          )
     except requests.exceptions.RequestException as e:
          raise SmsDeliveryError(f"SMS delivery failed: {e}") from e

     if not response.ok:
          hint = _HTTP_ERROR_HINTS.get(response.status_code) or (
               _HTTP_ERROR_HINTS[500] if response.status_code >= 500 else response.reason
          )
          raise SmsDeliveryError(
               f"InHouse SMS API error: {response.status_code} - {hint}. Response: {response.text}"
          )

     try:
          return response.json()
     except ValueError:
          return {"success": True, "raw_response": response.text, "phone": formatted}


def send_sms(phone: str, message: str, config: Optional[SmsProviderConfig] = None) -> dict:
     """
     Send one SMS.

     Args:
          phone: Recipient in any common Kenyan format
          message: Text; sanitised before sending
          config: Provider settings (defaults to the process configuration)

     Returns:
          Provider response payload

     Raises:
          SmsDeliveryError: on invalid input, unsupported provider or delivery failure
     """
     config = config or SmsProviderConfig.from_settings()
     text = sanitize_for_sms(message)
     provider = config.provider_name.lower()

     if provider == "inhouse sms":
          result = _send_inhouse(phone, text, config)
     elif provider in ("twilio", "africa's talking"):
          raise SmsDeliveryError(f"{config.provider_name} SMS not implemented yet")
     else:
          raise SmsDeliveryError(f"Unsupported SMS provider: {config.provider_name}")

     logger.info("SMS sent via %s (%d chars)", config.provider_name, len(text))
     return result
