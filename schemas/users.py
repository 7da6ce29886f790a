# schemas/users.py
"""
Request bodies for the user management functions.

Fields are optional at the schema level: the services report missing
fields with their own messages.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict


class CreateAdminUserRequest(BaseModel):
     email: Optional[str] = None
     password: Optional[str] = None
     first_name: Optional[str] = None
     last_name: Optional[str] = None
     phone: Optional[str] = None


class CreateSubUserRequest(BaseModel):
     """Schema for adding a staff member to a landlord's account."""
     email: Optional[str] = None
     first_name: Optional[str] = None
     last_name: Optional[str] = None
     phone: Optional[str] = None
     title: Optional[str] = None
     permissions: Optional[dict[str, bool]] = None

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "email": "caretaker@example.com",
                    "first_name": "Jane",
                    "last_name": "Wanjiru",
                    "phone": "0712345678",
                    "title": "Caretaker",
                    "permissions": {"manage_tenants": True, "manage_maintenance": True},
               }
          }
     )


class PasswordResetRequest(BaseModel):
     email: Optional[str] = None
     user_id: Optional[str] = None
     redirect_to: Optional[str] = None


class AdminOperationRequest(BaseModel):
     """operation and userId; any other keys are passed to the operation."""
     operation: Optional[str] = None
     userId: Optional[str] = None

     model_config = ConfigDict(extra="allow")

     @property
     def params(self) -> dict:
          return dict(self.model_extra or {})
