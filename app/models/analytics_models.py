"""
Analytics Report Pydantic Models

Immutable response schemas for the analytics endpoint with:
- camelCase serialization for the mobile client
- Currency values in GEL, pre-rounded to 2 decimals
- Percentages pre-rounded to 1 decimal
"""

import math
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    """Frozen base model serialized with camelCase aliases"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


# ============== Leaderboard Models ==============

class ServiceStat(ReportModel):
    """Service leaderboard row"""
    name: str
    count: int = Field(..., description="Units sold (max(1, count) per line)")
    revenue: float = Field(..., description="Revenue (GEL)")


class CustomerStat(ReportModel):
    """Top customer row, keyed by phone"""
    name: str
    phone: str
    total_spent: float = Field(..., description="Lifetime spend (GEL)")
    cases_count: int


class MechanicStat(ReportModel):
    """Per-mechanic performance"""
    name: str
    cases: int
    revenue: float = Field(..., description="Revenue (GEL)")
    completed: int
    active: int


# ============== Breakdown Models ==============

class StatusBreakdownRow(ReportModel):
    """Case count by primary status label"""
    status: str
    count: int
    percentage: float = Field(..., description="Share of all cases")


class RepairStatusBreakdownRow(ReportModel):
    """Case count by repair status label"""
    repair_status: str
    count: int
    percentage: float = Field(..., description="Share of all cases")


class CaseTypeBreakdownRow(ReportModel):
    """Cases and revenue by case type (insurance, cash, ...)"""
    case_type: str
    count: int
    revenue: float = Field(..., description="Revenue (GEL)")
    percentage: float = Field(..., description="Share of all cases")
    revenue_percentage: float = Field(..., description="Share of total revenue")


class MonthlyTrendPoint(ReportModel):
    """One calendar month of the trailing 12-month trend"""
    month: str = Field(..., description="Month key (YYYY-MM)")
    label: str
    cases: int
    revenue: float = Field(..., description="Revenue invoiced (GEL)")
    collected: float = Field(..., description="Payments collected (GEL)")


# ============== Payment Models ==============

class PaymentMethodShare(ReportModel):
    """Collected amount by payment method"""
    method: str
    amount: float = Field(..., description="Amount (GEL)")
    count: int


class PaymentMonth(ReportModel):
    """Collected amount for one month"""
    month: str = Field(..., description="Month key (YYYY-MM)")
    collected: float = Field(..., description="Amount (GEL)")


class PaymentSummary(ReportModel):
    """Payment analytics supplied by the invoice API"""
    total_collected: float = 0.0
    total_invoiced: float = 0.0
    total_outstanding: float = 0.0
    collection_rate: float = 0.0
    method_breakdown: Tuple[PaymentMethodShare, ...] = ()
    monthly_data: Tuple[PaymentMonth, ...] = ()

    @classmethod
    def empty(cls) -> "PaymentSummary":
        return cls()


# ============== Report Model ==============

class AnalyticsReport(ReportModel):
    """Complete analytics report for one (period, data source) request"""
    period: str
    data_source: str
    generated_at: str

    # Revenue
    total_revenue: float = Field(..., description="Sum of case totals (GEL)")
    service_revenue: float = Field(..., description="Sum of service lines (GEL)")
    parts_revenue: float = Field(..., description="Sum of part lines (GEL)")
    average_ticket_value: float = Field(..., description="Revenue per case (GEL)")

    # Period comparison
    revenue_this_period: float
    revenue_previous_period: float
    cases_this_period: int
    cases_previous_period: int
    revenue_growth: float = Field(..., description="Percent change vs previous period")
    average_ticket_growth: float = Field(..., description="Percent change vs previous period")

    # Status counts
    total_cases: int
    active_cases: int
    completed_cases: int
    cancelled_cases: int
    preliminary_assessment_cases: int
    case_completion_rate: float
    average_processing_days: float

    # Customers
    total_customers: int
    repeat_customer_rate: float
    new_customers_this_period: int

    # Discounts and VAT
    total_discount_given: float = Field(..., description="Implied pre-discount delta (GEL)")
    vat_collected: float = Field(..., description="VAT on VAT-flagged cases (GEL)")

    # Leaderboards and breakdowns
    top_services: Tuple[ServiceStat, ...] = ()
    top_customers: Tuple[CustomerStat, ...] = ()
    status_breakdown: Tuple[StatusBreakdownRow, ...] = ()
    repair_status_breakdown: Tuple[RepairStatusBreakdownRow, ...] = ()
    revenue_by_type: Tuple[CaseTypeBreakdownRow, ...] = ()
    mechanic_stats: Tuple[MechanicStat, ...] = ()
    monthly_trend: Tuple[MonthlyTrendPoint, ...] = ()

    payment_summary: PaymentSummary


# ============== Helper Functions ==============

def round_half_up(value: float, digits: int) -> float:
    """Multiply, round half up to an integer, divide back"""
    if value is None or not math.isfinite(value):
        return 0.0
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_currency(value: float) -> float:
    """Round a GEL amount to 2 decimal places (half up)"""
    return round_half_up(value, 2)


def round_percent(value: float) -> float:
    """Round a percentage to 1 decimal place (half up)"""
    return round_half_up(value, 1)


def percent_of(part: float, whole: float) -> float:
    """part / whole * 100, 0 when whole is 0"""
    return (part / whole * 100) if whole else 0.0
