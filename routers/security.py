# routers/security.py
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, client_ip, get_current_user, get_supabase
from routers import FUNCTIONS_PREFIX
from schemas.security import SecurityEventRequest
from services.security_service import RateLimitExceeded, log_security_event
from utils.supabase_client import SupabaseClient

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["security"])


@router.post("/log-security-event")
def log_event(
     body: SecurityEventRequest,
     request: Request,
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     try:
          log_security_event(
               db,
               client,
               user.id,
               body.event_type,
               body.severity,
               body.details,
               client_ip(request),
          )
     except RateLimitExceeded:
          raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
     except ValueError as e:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
     return {"success": True}
