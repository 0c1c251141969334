"""
统计分析路由
"""
from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from backoffice.database import get_db
from backoffice.security.auth import get_current_user
from backoffice.services.analytics import parse_revenue_params, revenue_summary
from backoffice_core.envelope import build_response
from backoffice_core.router import started_at

router = APIRouter(prefix="/api/analytics", tags=["Analytics"],
                   dependencies=[Depends(get_current_user)])


@router.get("/revenue")
def get_revenue(
    request: Request,
    period: Optional[str] = None,
    year: Optional[str] = None,
    month: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """营收统计：period = daily / weekly / monthly / annually"""
    period, parsed_year, parsed_month = parse_revenue_params(period, year, month)
    data = revenue_summary(db, period, parsed_year, parsed_month)
    message = (
        "Revenue analytics retrieved successfully" if data["summary"]
        else "No booking data available"
    )
    return build_response(code=200, message=message, data=data, started_at=started_at(request))
