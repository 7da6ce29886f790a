# routers/__init__.py
from fastapi import HTTPException

# Serverless function routes keep the paths the client already calls
FUNCTIONS_PREFIX = "/functions/v1"

FUNCTION_CORS_HEADERS = {
     "Access-Control-Allow-Origin": "*",
     "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def service_error(exc) -> HTTPException:
     """HTTPException for a service-layer error carrying message, status_code and optional extra fields."""
     detail = {"error": exc.message, **getattr(exc, "extra", {})}
     return HTTPException(status_code=exc.status_code, detail=detail)
