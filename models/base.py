# models/base.py
import re
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import DeclarativeBase, declared_attr


def _jsonable(value):
     if isinstance(value, uuid.UUID):
          return str(value)
     if isinstance(value, Decimal):
          return float(value)
     if isinstance(value, (datetime, date)):
          return value.isoformat()
     return value


class Base(DeclarativeBase):
     """
     Base class for all SQLAlchemy models.

     Every model maps to an existing backend table, so __tablename__ is normally
     set explicitly; the generated name is only a fallback.
     """

     @declared_attr.directive
     def __tablename__(cls) -> str:
          """
          Generate table name from class name.
          Example: SupportTicket -> support_tickets
          """
          name = re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()
          if name.endswith('y'):
               return name[:-1] + 'ies'
          elif name.endswith('s'):
               return name + 'es'
          return name + 's'

     def to_dict(self) -> dict:
          """Row as a JSON-ready dict keyed by column name."""
          return {
               attr.columns[0].name: _jsonable(getattr(self, attr.key))
               for attr in self.__mapper__.column_attrs
          }


def utcnow() -> datetime:
     return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
     """Attach UTC to naive datetimes read back from the database."""
     if value is None or value.tzinfo is not None:
          return value
     return value.replace(tzinfo=timezone.utc)
