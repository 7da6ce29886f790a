# routers/access.py
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from database import get_session
from dependencies import CurrentUser, get_current_user, get_supabase, get_user_role
from routers import FUNCTIONS_PREFIX
from schemas.billing import FeatureAccessRequest
from services.feature_access import check_feature_access, get_report_feature, resolve_gate
from services.report_service import reports_for_role
from utils.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["access"])


@router.post("/check-feature-access")
def check_access(
     body: FeatureAccessRequest,
     user: CurrentUser = Depends(get_current_user),
     client: SupabaseClient = Depends(get_supabase),
):
     """
     Plan decision for one feature and how the client should present it.

     - **feature**: feature key such as `reports.advanced` or a legacy display name
     - **current_count**: items already in use, for limit features
     - **allow_read_only**: show a read-only view instead of an upgrade prompt
     """
     if not body.feature:
          raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="feature is required")
     result = check_feature_access(client, user.id, body.feature, body.current_count)
     gate = resolve_gate(body.feature, result, allow_read_only=body.allow_read_only)
     return {"access": result, "gate": gate}


@router.get("/accessible-reports")
def accessible_reports(
     user: CurrentUser = Depends(get_current_user),
     db: Session = Depends(get_session),
     client: SupabaseClient = Depends(get_supabase),
):
     """Reports the caller's role may see, each marked with its plan feature and whether it is unlocked."""
     reports = reports_for_role(get_user_role(db, user.id))
     features = {report.id: get_report_feature(report.id).value for report in reports}
     # one plan check per distinct feature
     allowed = {
          feature: check_feature_access(client, user.id, feature).allowed
          for feature in set(features.values())
     }
     return [
          {**report.model_dump(), "feature": features[report.id], "allowed": allowed[features[report.id]]}
          for report in reports
     ]
