# schemas/support.py
"""
Pydantic schemas for support ticket requests and responses.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TicketCreate(BaseModel):
     title: Optional[str] = None
     description: Optional[str] = None
     category: Optional[str] = None
     priority: Optional[str] = None


class TicketUpdate(BaseModel):
     ticket_id: Optional[str] = None
     status: Optional[str] = None
     priority: Optional[str] = None
     assigned_to: Optional[str] = None


class MessageCreate(BaseModel):
     ticket_id: Optional[str] = None
     message: Optional[str] = None


class TicketResponse(BaseModel):
     """Schema for support ticket response."""
     id: UUID
     user_id: UUID
     title: str
     description: str
     category: str
     priority: str
     status: str
     assigned_to: Optional[UUID] = None
     resolved_at: Optional[datetime] = None
     created_at: Optional[datetime] = None
     updated_at: Optional[datetime] = None

     model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
     id: UUID
     ticket_id: UUID
     user_id: UUID
     message: str
     is_staff_reply: bool
     created_at: Optional[datetime] = None

     model_config = ConfigDict(from_attributes=True)
