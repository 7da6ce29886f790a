# utils/mpesa.py
"""
Safaricom Daraja (M-Pesa Express / STK push) client.
"""
import base64
import ipaddress
import logging
import re
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import requests

from utils.formatting import NAIROBI_TZ

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_URL = "https://api.safaricom.co.ke"

# Source ranges Safaricom sends STK callbacks from
SAFARICOM_CALLBACK_NETWORKS = tuple(
     ipaddress.ip_network(cidr)
     for cidr in (
          "196.201.214.0/24",
          "196.201.215.0/24",
          "196.201.216.0/24",
          "196.216.152.0/24",
          "41.84.87.0/24",
     )
)


class DarajaError(Exception):
     def __init__(self, message: str, details=None):
          super().__init__(message)
          self.details = details


def format_mpesa_phone(phone: str) -> str:
     """Normalise a Kenyan number to 2547XXXXXXXX / 2541XXXXXXXX."""
     digits = re.sub(r"\D", "", phone or "")
     if digits.startswith("0"):
          return "254" + digits[1:]
     if not digits.startswith("254"):
          return "254" + digits
     return digits


def is_safaricom_ip(ip: Optional[str]) -> bool:
     if not ip:
          return False
     try:
          address = ipaddress.ip_address(ip.strip())
     except ValueError:
          return False
     return any(address in network for network in SAFARICOM_CALLBACK_NETWORKS)


def round_amount(amount) -> int:
     """Daraja only accepts whole shillings; halves round up."""
     return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def stk_timestamp(now: Optional[datetime] = None) -> str:
     now = now or datetime.now(NAIROBI_TZ)
     return now.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
     return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode()


class DarajaClient:
     def __init__(
          self,
          consumer_key: str,
          consumer_secret: str,
          shortcode: str,
          passkey: str,
          environment: str = "sandbox",
          timeout: int = 30,
     ):
          self.consumer_key = consumer_key
          self.consumer_secret = consumer_secret
          self.shortcode = shortcode
          self.passkey = passkey
          self.environment = environment
          self.base_url = PRODUCTION_URL if environment == "production" else SANDBOX_URL
          self.timeout = timeout

     def get_access_token(self) -> str:
          credentials = base64.b64encode(
               f"{self.consumer_key}:{self.consumer_secret}".encode()
          ).decode()
          response = requests.get(
               f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials",
               headers={"Authorization": f"Basic {credentials}"},
               timeout=self.timeout,
          )
          if response.status_code != 200:
               raise DarajaError("Failed to get M-Pesa access token", response.text)
          token = response.json().get("access_token")
          if not token:
               raise DarajaError("M-Pesa access token missing from response", response.text)
          return token

     def stk_push(
          self,
          phone_number: str,
          amount,
          callback_url: str,
          account_reference: str,
          transaction_desc: str,
     ) -> dict:
          """
          Send an STK push prompt to the customer's phone.

          Returns:
               Daraja's JSON reply. ResponseCode "0" means the prompt was accepted.

          Raises:
               DarajaError: if authentication or the request itself fails
          """
          access_token = self.get_access_token()
          timestamp = stk_timestamp()
          phone = format_mpesa_phone(phone_number)

          payload = {
               "BusinessShortCode": self.shortcode,
               "Password": stk_password(self.shortcode, self.passkey, timestamp),
               "Timestamp": timestamp,
               "TransactionType": "CustomerPayBillOnline",
               "Amount": round_amount(amount),
               "PartyA": phone,
               "PartyB": self.shortcode,
               "PhoneNumber": phone,
               "CallBackURL": callback_url,
               "AccountReference": account_reference,
               "TransactionDesc": transaction_desc,
          }

          try:
               response = requests.post(
                    f"{self.base_url}/mpesa/stkpush/v1/processrequest",
                    json=payload,
                    headers={
                         "Authorization": f"Bearer {access_token}",
                         "Content-Type": "application/json",
                    },
                    timeout=self.timeout,
               )
          except requests.exceptions.RequestException as e:
               raise DarajaError(f"Request failed: {e}") from e

          try:
               data = response.json()
          except ValueError:
               raise DarajaError(f"HTTP {response.status_code}", response.text)

          if response.status_code not in (200, 201):
               logger.warning("STK push rejected: %s", data)
               raise DarajaError("STK push failed", data)
          return data
