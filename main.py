# main.py
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse

from config import configure_logging, settings
from database import check_connection, init_db
from exception_handlers import setup_exception_handlers
from routers import FUNCTION_CORS_HEADERS, FUNCTIONS_PREFIX
from routers import access, api_proxy, billing, mpesa, notifications, reports, security, support, users
from routers.api_proxy import API_CORS_HEADERS

configure_logging()
logger = logging.getLogger("zira")

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Production tables belong to the backend; only local SQLite gets created here
    if settings.database_url.startswith("sqlite"):
        init_db()
    if check_connection():
        logger.info("Database connection OK")
    else:
        logger.warning("Database unreachable at startup; table-backed functions will fail")
    yield


# App instance
app = FastAPI(title="Zira Homes API", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# /api first so its 404 fallback never reaches the SPA shell
app.include_router(api_proxy.router)
app.include_router(users.router)
app.include_router(mpesa.router)
app.include_router(billing.router)
app.include_router(access.router)
app.include_router(reports.router)
app.include_router(notifications.router)
app.include_router(security.router)
app.include_router(support.router)


@app.options(FUNCTIONS_PREFIX + "/{name:path}", include_in_schema=False)
def function_preflight(name: str):
    return PlainTextResponse("ok", headers=FUNCTION_CORS_HEADERS)


# Security headers, CORS headers and request log
@app.middleware("http")
async def response_headers(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api/") or path == "/api":
        extra = API_CORS_HEADERS
    elif path.startswith(FUNCTIONS_PREFIX):
        extra = FUNCTION_CORS_HEADERS
    else:
        extra = {}
    for name, value in {**extra, **SECURITY_HEADERS}.items():
        response.headers.setdefault(name, value)
    logger.info(
        "%s %s -> %s auth_present=%s",
        request.method,
        path,
        response.status_code,
        bool(request.headers.get("Authorization")),
    )
    return response


# SPA shell: built files, then index.html for client-side routes
@app.get("/{full_path:path}", include_in_schema=False)
def spa(full_path: str) -> Response:
    if full_path == "api":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API endpoint not found")
    if full_path.startswith("functions/"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Function not found")

    root = os.path.realpath(settings.dist_dir)
    candidate = os.path.realpath(os.path.join(root, full_path))
    if full_path and candidate.startswith(root + os.sep) and os.path.isfile(candidate):
        return FileResponse(candidate)

    index = os.path.join(root, "index.html")
    if os.path.isfile(index):
        return FileResponse(index)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=settings.port)
