# utils/formatting.py
"""Display formatting for amounts, dates and document numbers (en-KE)."""
import random
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Union

# East Africa Time has no DST
NAIROBI_TZ = timezone(timedelta(hours=3), "EAT")

EMPTY = "-"
_UUID_LIKE = re.compile(r"^[a-f0-9-]{8,36}$", re.IGNORECASE)
_INVOICE_FORMATTED = re.compile(r"^INV-\d{6}-[A-Z0-9]{6}$")
_RECEIPT_FORMATTED = re.compile(r"^RCT-\d{6}-[A-Z0-9]{6}$")

Number = Union[int, float, Decimal]


def _to_float(value) -> Optional[float]:
     if value is None or value == "":
          return None
     try:
          return float(value)
     except (TypeError, ValueError):
          return None


def fmt_number(value: Optional[Number], decimals: int = 0) -> str:
     number = _to_float(value)
     if number is None:
          return EMPTY
     return f"{number:,.{decimals}f}"


def fmt_currency(amount: Optional[Number], currency: str = "KES") -> str:
     """KES 1,234.5 style: thousands separators, at most two decimals."""
     number = _to_float(amount)
     if number is None:
          number = 0.0
     text = f"{abs(number):,.2f}".rstrip("0").rstrip(".")
     sign = "-" if number < 0 else ""
     return f"{sign}{currency} {text}"


def fmt_percent(value: Optional[Number], decimals: int = 1) -> str:
     number = _to_float(value)
     if number is None:
          return EMPTY
     return f"{number:.{decimals}f}%"


def fmt_duration(days: Optional[Number]) -> str:
     number = _to_float(days)
     if number is None:
          return EMPTY
     rounded = round(number, 1)
     unit = "day" if rounded == 1 else "days"
     return f"{rounded:g} {unit}"


def parse_date(value) -> Optional[Union[date, datetime]]:
     """Accept date/datetime objects and ISO strings, including "2024" and "2024-01"."""
     if value is None or value == "":
          return None
     if isinstance(value, (date, datetime)):
          return value
     text = str(value).strip()
     if re.fullmatch(r"\d{4}", text):
          text = f"{text}-01-01"
     elif re.fullmatch(r"\d{4}-\d{2}", text):
          text = f"{text}-01"
     try:
          if len(text) == 10:
               return date.fromisoformat(text)
          return datetime.fromisoformat(text.replace("Z", "+00:00"))
     except ValueError:
          return None


def fmt_date(value, pattern: str = "%b %d, %Y") -> str:
     parsed = parse_date(value)
     if parsed is None:
          return EMPTY
     if isinstance(parsed, datetime):
          if parsed.tzinfo is None:
               parsed = parsed.replace(tzinfo=timezone.utc)
          parsed = parsed.astimezone(NAIROBI_TZ)
     return parsed.strftime(pattern)


def format_value(value, fmt: str, currency: str = "KES") -> str:
     """Format a KPI or table cell according to its declared format."""
     if fmt == "currency":
          return fmt_currency(value, currency)
     if fmt == "percent":
          return fmt_percent(value)
     if fmt == "number":
          return fmt_number(value)
     if fmt == "duration":
          return fmt_duration(value)
     if fmt == "date":
          return fmt_date(value)
     if value is None or value == "":
          return EMPTY
     return str(value)


# ---------------------------------------------------------------------------
# Document numbers
# ---------------------------------------------------------------------------

def _six(identifier: str) -> str:
     if len(identifier) < 6:
          return identifier.rjust(6, "0")
     return identifier[:6]


def format_invoice_number(invoice_number: Optional[str], today: Optional[date] = None) -> str:
     """Display form INV-YYYYMM-XXXXXX for any stored invoice identifier."""
     if not invoice_number:
          return EMPTY
     if _INVOICE_FORMATTED.match(invoice_number):
          return invoice_number

     year_month = (today or date.today()).strftime("%Y%m")
     if _UUID_LIKE.match(invoice_number):
          identifier = invoice_number.replace("-", "")[:6].upper()
     else:
          identifier = re.sub(r"[^A-Za-z0-9]", "", invoice_number).upper()
     return f"INV-{year_month}-{_six(identifier)}"


def format_payment_reference(reference: Optional[str]) -> str:
     if not reference:
          return EMPTY
     if reference.upper().startswith("PAY-"):
          return reference.upper()
     if len(reference) > 8:
          return f"PAY-{reference[-8:].upper()}"
     return f"PAY-{reference.upper()}"


def format_receipt_number(transaction_id: Optional[str], today: Optional[date] = None) -> str:
     if not transaction_id:
          return EMPTY
     if _RECEIPT_FORMATTED.match(transaction_id):
          return transaction_id

     year_month = (today or date.today()).strftime("%Y%m")
     if len(transaction_id) > 10:
          identifier = transaction_id[-6:].upper()
     else:
          identifier = re.sub(r"[^A-Za-z0-9]", "", transaction_id).upper()
     return f"RCT-{year_month}-{_six(identifier)}"


def generate_invoice_number(today: Optional[date] = None) -> str:
     """New tenant invoice number: INV-YYYYMMDD-<1000..9999>."""
     stamp = (today or date.today()).strftime("%Y%m%d")
     return f"INV-{stamp}-{random.randint(1000, 9999)}"


def generate_service_invoice_number(today: Optional[date] = None) -> str:
     """Local fallback when the backend sequence is unavailable."""
     stamp = (today or date.today()).strftime("%Y%m")
     suffix = "".join(random.choices("ABCDEFGHJKLMNPQRSTUVWXYZ23456789", k=6))
     return f"SRV-{stamp}-{suffix}"
