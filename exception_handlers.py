# exception_handlers.py
"""Render every error as a JSON body with an "error" field."""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.supabase_client import SupabaseError

logger = logging.getLogger(__name__)


def error_body(detail) -> dict:
     if isinstance(detail, dict):
          body = dict(detail)
          body.setdefault("error", "Request failed")
          return body
     return {"error": str(detail)}


def setup_exception_handlers(app: FastAPI) -> None:

     @app.exception_handler(StarletteHTTPException)
     async def http_exception_handler(request: Request, exc: HTTPException):
          return JSONResponse(
               status_code=exc.status_code,
               content=error_body(exc.detail),
               headers=getattr(exc, "headers", None),
          )

     @app.exception_handler(RequestValidationError)
     async def validation_exception_handler(request: Request, exc: RequestValidationError):
          details = [
               {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
               for err in exc.errors()
          ]
          return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": details})

     @app.exception_handler(SupabaseError)
     async def supabase_exception_handler(request: Request, exc: SupabaseError):
          logger.warning("Backend call failed on %s: %s", request.url.path, exc)
          body = {"error": exc.message}
          if exc.details is not None:
               body["details"] = exc.details
          return JSONResponse(status_code=exc.status_code, content=body)

     @app.exception_handler(Exception)
     async def generic_exception_handler(request: Request, exc: Exception):
          logger.exception("Unhandled error on %s %s", request.method, request.url.path)
          return JSONResponse(status_code=500, content={"error": "Internal server error"})
