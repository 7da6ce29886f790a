# routers/users.py
"""
User management functions.

Role-based access:
- Admin: create admin accounts, run user operations
- Landlord: create and list sub-users
- Anyone: request a password reset
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, client_ip, get_current_user, get_supabase, require_admin
from routers import FUNCTIONS_PREFIX, service_error
from schemas.users import (
     AdminOperationRequest,
     CreateAdminUserRequest,
     CreateSubUserRequest,
     PasswordResetRequest,
)
from services import user_service
from services.user_service import UserOperationError
from utils.supabase_client import SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["users"])


@router.post("/create-admin-user")
def create_admin_user(
     body: CreateAdminUserRequest,
     user: CurrentUser = Depends(require_admin),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          return user_service.create_admin_user(db, client, user.id, body.model_dump())
     except UserOperationError as e:
          raise service_error(e)
     except SupabaseError as e:
          logger.error("Admin account creation failed: %s", e.details)
          raise HTTPException(
               status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
               detail={"success": False, "error": str(e.details or e.message)},
          )


@router.post("/create-sub-user")
def create_sub_user(
     body: CreateSubUserRequest,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Add a staff member to the calling landlord's account.

     - **email**, **first_name**, **last_name**: required
     - **permissions**: manage_properties, manage_tenants, manage_leases,
       manage_maintenance, view_reports
     """
     try:
          return user_service.create_sub_user(db, client, user.id, body.model_dump())
     except UserOperationError as e:
          raise service_error(e)


@router.api_route("/create-sub-user", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def create_sub_user_wrong_method():
     raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail="Method not allowed")


@router.api_route("/list-landlord-sub-users", methods=["GET", "POST"])
def list_landlord_sub_users(
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
):
     return {"success": True, "sub_users": user_service.list_sub_users(db, user.id)}


@router.post("/send-password-reset")
def send_password_reset(
     body: PasswordResetRequest,
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     user_id = None
     if body.user_id:
          try:
               user_id = uuid.UUID(body.user_id)
          except ValueError:
               raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id must be a valid id")
     try:
          return user_service.send_password_reset(
               db,
               client,
               email=body.email,
               user_id=user_id,
               redirect_to=body.redirect_to,
          )
     except UserOperationError as e:
          raise service_error(e)


@router.post("/admin-user-operations")
def admin_user_operations(
     body: AdminOperationRequest,
     request: Request,
     user: CurrentUser = Depends(require_admin),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          return user_service.run_admin_operation(
               db,
               client,
               user.id,
               body.operation,
               body.userId,
               body.params,
               ip_address=client_ip(request),
               user_agent=request.headers.get("user-agent"),
          )
     except UserOperationError as e:
          raise service_error(e)
