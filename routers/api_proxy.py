# routers/api_proxy.py
"""
/api/* routes: thin proxies onto backend RPCs and tables.

The caller's Authorization header is forwarded when present so row-level
security applies to them; otherwise the service role is used.
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, Response, status

from dependencies import get_supabase
from models.invoice import InvoiceStatus
from models.lease import LeaseStatus
from models.property import UnitStatus
from utils.formatting import generate_invoice_number
from utils.supabase_client import BACKEND_ERRORS, SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

API_CORS_HEADERS = {
     "Access-Control-Allow-Origin": "*",
     "Access-Control-Allow-Headers": "authorization, content-type, apikey, x-force-create, x-requested-with",
     "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
}

TENANT_FIELDS = (
     "first_name", "last_name", "email", "phone", "national_id", "employment_status", "profession",
     "employer_name", "monthly_income", "emergency_contact_name", "emergency_contact_phone",
     "previous_address", "property_id",
)


def _params(request: Request, body: Optional[dict]) -> dict:
     """GET reads the query string, everything else the JSON body."""
     if request.method == "GET":
          return dict(request.query_params)
     return body or {}


def _first(data):
     return data[0] if isinstance(data, list) and data else data


def _number(value, field: str) -> float:
     try:
          return float(value)
     except (TypeError, ValueError):
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field} must be a number")


@router.options("/{path:path}", include_in_schema=False)
def preflight(path: str):
     return Response(status_code=status.HTTP_204_NO_CONTENT, headers=API_CORS_HEADERS)


@router.get("/health")
def health(client: SupabaseClient = Depends(get_supabase)):
     """Check that the backend answers with the service role."""
     try:
          data = client.select("invoices", {"select": "id", "limit": "1"})
     except SupabaseError as e:
          logger.warning("Health check failed with %s", e.status_code)
          return {"ok": False, "status": e.status_code, "error": e.message, "details": e.details}
     except BACKEND_ERRORS as e:
          logger.error("Health check failed: %s", e)
          return {"ok": False, "status": 500, "error": str(e)}
     return {"ok": True, "status": 200, "data": data}


@router.api_route("/rpc/{fn}", methods=["GET", "POST"])
def rpc_proxy(
     fn: str,
     request: Request,
     body: Optional[dict] = Body(None),
     client: SupabaseClient = Depends(get_supabase),
):
     """Call any exposed SQL function with the caller's token."""
     return client.rpc(fn, _params(request, body), auth_header=request.headers.get("Authorization"))


@router.api_route("/leases/expiring", methods=["GET", "POST"])
def leases_expiring(
     request: Request,
     body: Optional[dict] = Body(None),
     client: SupabaseClient = Depends(get_supabase),
):
     params = _params(request, body)
     rpc_params = {key: params[key] for key in ("p_start_date", "p_end_date") if params.get(key)}
     return client.rpc(
          "get_lease_expiry_report",
          rpc_params,
          auth_header=request.headers.get("Authorization"),
     )


@router.api_route("/invoices/overview", methods=["GET", "POST"])
def invoices_overview(
     request: Request,
     body: Optional[dict] = Body(None),
     client: SupabaseClient = Depends(get_supabase),
):
     params = _params(request, body)
     rpc_params = {"p_limit": 50, "p_offset": 0, "p_status": None, "p_search": None}
     rpc_params.update({key: params[key] for key in rpc_params if params.get(key) is not None})
     return client.rpc(
          "get_invoice_overview",
          rpc_params,
          auth_header=request.headers.get("Authorization"),
     )


@router.post("/invoices/create")
def create_invoice(
     request: Request,
     body: Optional[dict] = Body(None),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Create a pending tenant invoice.

     - **lease_id**, **tenant_id**, **amount**, **due_date**: required
     - **description**: optional
     """
     body = body or {}
     if not all(body.get(key) for key in ("lease_id", "tenant_id", "amount", "due_date")):
          raise HTTPException(
               status_code=status.HTTP_400_BAD_REQUEST,
               detail="lease_id, tenant_id, amount and due_date are required",
          )

     today = date.today()
     row = {
          "lease_id": body["lease_id"],
          "tenant_id": body["tenant_id"],
          "invoice_number": generate_invoice_number(today),
          "invoice_date": today.isoformat(),
          "due_date": body["due_date"],
          "amount": body["amount"],
          "status": InvoiceStatus.PENDING.value,
          "description": body.get("description"),
     }
     data = client.insert("invoices", row, auth_header=request.headers.get("Authorization"))
     logger.info("Invoice %s created for lease %s", row["invoice_number"], row["lease_id"])
     return {"data": data}


@router.post("/tenants/create")
def create_tenant(
     request: Request,
     body: Optional[dict] = Body(None),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Create a tenant and, when a unit and full lease terms are given, their
     active lease.

     - **tenantData**: tenant fields; a flat body is accepted too
     - **unitId**: unit to lease
     - **leaseData**: monthly_rent, lease_start_date, lease_end_date, security_deposit?

     A failed lease insert is logged and returned as `lease: null`; the unit is
     then left as it was.
     """
     body = body or {}
     source = body.get("tenantData") or body.get("tenant_data") or body
     tenant_data = {field: source[field] for field in TENANT_FIELDS if source.get(field) is not None}
     if body.get("propertyId") and "property_id" not in tenant_data:
          tenant_data["property_id"] = body["propertyId"]
     if not tenant_data.get("first_name") or not tenant_data.get("last_name"):
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="first_name and last_name are required")

     unit_id = body.get("unitId") or body.get("unit_id")
     terms = body.get("leaseData") or body.get("lease") or {}
     wants_lease = bool(
          unit_id and terms.get("monthly_rent") and terms.get("lease_start_date") and terms.get("lease_end_date")
     )
     if wants_lease:
          rent = _number(terms["monthly_rent"], "monthly_rent")
          deposit = terms.get("security_deposit")
          deposit = rent * 2 if deposit is None else _number(deposit, "security_deposit")

     auth = request.headers.get("Authorization")
     tenant = _first(client.insert("tenants", tenant_data, auth_header=auth))

     lease = None
     if wants_lease and isinstance(tenant, dict):
          lease_row = {
               "tenant_id": tenant.get("id"),
               "unit_id": unit_id,
               "monthly_rent": rent,
               "lease_start_date": terms["lease_start_date"],
               "lease_end_date": terms["lease_end_date"],
               "security_deposit": deposit,
               "status": LeaseStatus.ACTIVE.value,
          }
          try:
               lease = _first(client.insert("leases", lease_row, auth_header=auth))
          except BACKEND_ERRORS as e:
               logger.error("Lease for tenant %s not created: %s", tenant.get("id"), e)

     if lease is not None:
          try:
               client.update("units", {"id": f"eq.{unit_id}"}, {"status": UnitStatus.OCCUPIED.value}, auth_header=auth)
          except BACKEND_ERRORS as e:
               logger.warning("Could not mark unit %s occupied: %s", unit_id, e)

     return {"success": True, "tenant": tenant, "lease": lease}


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"], include_in_schema=False)
def not_found(path: str):
     logger.info("API route not found: /api/%s", path)
     raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API endpoint not found")
