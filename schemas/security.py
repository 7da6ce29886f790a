# schemas/security.py
from typing import Optional

from pydantic import BaseModel


class SecurityEventRequest(BaseModel):
     event_type: Optional[str] = None
     severity: Optional[str] = None
     details: Optional[dict] = None
