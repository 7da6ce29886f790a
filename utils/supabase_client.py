# utils/supabase_client.py
"""
Thin client for the backend's HTTP surface (PostgREST + GoTrue).

Calls are made with the server-held service role key unless the caller
forwards a user's Authorization header, in which case row-level security
applies to that user.
"""
import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from config import settings

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
     """Non-2xx reply from the backend, or a missing backend configuration."""

     def __init__(self, status_code: int, details: Any, message: str = "Supabase RPC error"):
          super().__init__(f"{message} ({status_code})")
          self.status_code = status_code
          self.details = details
          self.message = message


class SupabaseClient:
     def __init__(
          self,
          url: str,
          service_role: str,
          anon_key: str = "",
          timeout: int = 15,
          session: Optional[requests.Session] = None,
     ):
          self.url = (url or "").rstrip("/")
          self.service_role = service_role
          self.anon_key = anon_key
          self.timeout = timeout
          self.http = session or requests.Session()

     # ------------------------------------------------------------------
     # Plumbing
     # ------------------------------------------------------------------

     def _check_configured(self) -> None:
          if not self.url:
               raise SupabaseError(500, None, "Supabase URL not configured")
          if not self.service_role:
               raise SupabaseError(500, None, "Service role key not configured")

     def _headers(self, auth_header: Optional[str] = None, prefer: Optional[str] = None) -> dict:
          headers = {
               "apikey": self.service_role,
               "Authorization": auth_header or f"Bearer {self.service_role}",
               "Content-Type": "application/json",
          }
          if prefer:
               headers["Prefer"] = prefer
          return headers

     @staticmethod
     def _decode(response: requests.Response) -> Any:
          if not response.content:
               return None
          try:
               return response.json()
          except ValueError:
               return response.text

     def _request(
          self,
          method: str,
          path: str,
          *,
          params: Optional[dict] = None,
          json: Any = None,
          auth_header: Optional[str] = None,
          prefer: Optional[str] = None,
     ) -> Any:
          self._check_configured()
          response = self.http.request(
               method,
               f"{self.url}{path}",
               params=params,
               json=json,
               headers=self._headers(auth_header, prefer),
               timeout=self.timeout,
          )
          data = self._decode(response)
          if not response.ok:
               logger.warning("Backend %s %s failed with %s", method, path, response.status_code)
               raise SupabaseError(response.status_code, data)
          return data

     # ------------------------------------------------------------------
     # PostgREST
     # ------------------------------------------------------------------

     def rpc(self, fn: str, params: Optional[dict] = None, auth_header: Optional[str] = None) -> Any:
          """Call a SQL function exposed at /rest/v1/rpc/<fn>."""
          return self._request("POST", f"/rest/v1/rpc/{fn}", json=params or {}, auth_header=auth_header)

     def select(self, table: str, params: dict, auth_header: Optional[str] = None) -> Any:
          return self._request("GET", f"/rest/v1/{table}", params=params, auth_header=auth_header)

     def insert(self, table: str, rows: Any, auth_header: Optional[str] = None) -> Any:
          return self._request(
               "POST",
               f"/rest/v1/{table}",
               json=rows,
               auth_header=auth_header,
               prefer="return=representation",
          )

     def update(self, table: str, filters: dict, values: dict, auth_header: Optional[str] = None) -> Any:
          """PATCH rows matching PostgREST filters, e.g. {"id": "eq.<uuid>"}."""
          return self._request(
               "PATCH",
               f"/rest/v1/{table}",
               params=filters,
               json=values,
               auth_header=auth_header,
               prefer="return=representation",
          )

     # ------------------------------------------------------------------
     # GoTrue
     # ------------------------------------------------------------------

     def get_user(self, token: str) -> dict:
          return self._request("GET", "/auth/v1/user", auth_header=f"Bearer {token}")

     def admin_create_user(
          self,
          email: str,
          password: str,
          user_metadata: dict,
          email_confirm: bool = True,
     ) -> dict:
          return self._request(
               "POST",
               "/auth/v1/admin/users",
               json={
                    "email": email,
                    "password": password,
                    "email_confirm": email_confirm,
                    "user_metadata": user_metadata,
               },
          )

     def admin_delete_user(self, user_id: str) -> None:
          self._request("DELETE", f"/auth/v1/admin/users/{user_id}")

     def recover(self, email: str, redirect_to: Optional[str] = None) -> None:
          """Send GoTrue's password recovery e-mail."""
          path = "/auth/v1/recover"
          if redirect_to:
               path = f"{path}?redirect_to={quote(redirect_to, safe='')}"
          self._request("POST", path, json={"email": email})


def build_client() -> SupabaseClient:
     return SupabaseClient(
          url=settings.supabase_url,
          service_role=settings.supabase_service_role,
          anon_key=settings.supabase_anon_key,
     )


# Anything a backend call can raise; used by best-effort callers
BACKEND_ERRORS = (SupabaseError, requests.RequestException)
