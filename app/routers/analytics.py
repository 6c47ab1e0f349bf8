"""
Analytics Endpoints

Shop analytics report for the mobile dashboard:
- Revenue and period-over-period growth
- Case status, repair status and case-type breakdowns
- Customer, service and mechanic leaderboards
- 12-month trend and payment collection summary
"""

from fastapi import APIRouter, HTTPException, Query

from app.models.analytics_models import AnalyticsReport, PaymentSummary
from app.models.enums import AnalyticsPeriod, DataSource
from app.services.analytics_cache import get_analytics_cache
from app.services.analytics_service import AnalyticsSourceError, fetch_payment_summary

router = APIRouter()


@router.get("/overview", response_model=AnalyticsReport)
async def get_analytics_overview(
    period: AnalyticsPeriod = Query(AnalyticsPeriod.MONTH, description="week, month or year"),
    source: DataSource = Query(DataSource.ALL, description="all, firebase or cpanel"),
    refresh: bool = Query(False, description="Bypass the report cache")
):
    """
    Full analytics report

    - **period**: Comparison window (this period vs the one before it)
    - **source**: Case sources to include
    - **refresh**: Rebuild even when a cached report exists
    """
    try:
        return await get_analytics_cache().get_report(period, source, force_refresh=refresh)
    except AnalyticsSourceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/payments", response_model=PaymentSummary)
async def get_payment_summary():
    """Payment collection summary from the invoice API (empty when unavailable)"""
    return await fetch_payment_summary()
