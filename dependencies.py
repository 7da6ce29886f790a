# dependencies.py
"""
Shared FastAPI dependencies: bearer-token auth, role checks and the
backend client.

Tokens are the backend's own access tokens (HS256, audience "authenticated"),
verified locally with the project's JWT secret.
"""
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config import settings
from database import get_session
from models import UserRole
from models.profile import AppRole
from utils.supabase_client import SupabaseClient, build_client

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"


@dataclass
class CurrentUser:
     id: uuid.UUID
     email: Optional[str]
     token: str

     @property
     def auth_header(self) -> str:
          return f"Bearer {self.token}"


def _bearer_token(request: Request) -> Optional[str]:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          return None
     return auth.split(" ", 1)[1].strip() or None


def verify_token(request: Request) -> dict:
     """Decode and verify the caller's access token; returns its claims."""
     token = _bearer_token(request)
     if not token:
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
     try:
          payload = jwt.decode(
               token,
               settings.supabase_jwt_secret,
               algorithms=[ALGORITHM],
               audience=AUDIENCE,
          )
     except JWTError:
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication")
     if not payload.get("sub"):
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication")
     payload["_token"] = token
     return payload


def get_current_user(claims: dict = Depends(verify_token)) -> CurrentUser:
     try:
          user_id = uuid.UUID(str(claims["sub"]))
     except ValueError:
          raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication")
     return CurrentUser(id=user_id, email=claims.get("email"), token=claims["_token"])


def get_user_role(db: Session, user_id: uuid.UUID) -> Optional[str]:
     row = db.query(UserRole).filter(UserRole.user_id == user_id).first()
     return row.role if row else None


def is_admin(db: Session, user_id: uuid.UUID) -> bool:
     return get_user_role(db, user_id) == AppRole.ADMIN.value


def require_admin(
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
) -> CurrentUser:
     if not is_admin(db, user.id):
          raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
     return user


@lru_cache
def _default_client() -> SupabaseClient:
     return build_client()


def get_supabase() -> SupabaseClient:
     """Backend client dependency; tests override this."""
     return _default_client()


def client_ip(request: Request) -> Optional[str]:
     """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
     forwarded = request.headers.get("x-forwarded-for")
     if forwarded:
          return forwarded.split(",")[0].strip()
     real_ip = request.headers.get("x-real-ip")
     if real_ip:
          return real_ip.strip()
     return request.client.host if request.client else None
