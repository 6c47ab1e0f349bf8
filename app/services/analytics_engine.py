"""
Analytics Engine - Metrics and Report Assembly

Pure, synchronous aggregation over validated cases:
- Revenue rollups (cases, service lines, part lines)
- Period-over-period comparison (week / month / year windows)
- Status, repair-status and case-type breakdowns
- Customer, service and mechanic leaderboards
- Trailing 12-month trend merged with collected payments
- Discount and VAT totals

No I/O and no module-level state. Given the same cases, period, `now` and
payment summary, the report is identical.

All currency values are GEL floats internally and rounded only on assembly.
"""

import calendar
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.models.analytics_models import (
    AnalyticsReport,
    CaseTypeBreakdownRow,
    CustomerStat,
    MechanicStat,
    MonthlyTrendPoint,
    PaymentSummary,
    RepairStatusBreakdownRow,
    ServiceStat,
    StatusBreakdownRow,
    percent_of,
    round_currency,
    round_half_up,
    round_percent,
)
from app.models.enums import (
    UNASSIGNED,
    UNKNOWN,
    UNSPECIFIED,
    AnalyticsPeriod,
    CaseStatusClass,
    DataSource,
    month_label,
)
from app.services.case_normalizer import Case

TOP_LIMIT = 10
TREND_MONTHS = 12
SECONDS_PER_DAY = 86400


# ============== Date Helpers ==============

def subtract_months(moment: datetime, months: int) -> datetime:
    """Calendar month decrement; the day clamps to the target month's last day."""
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def period_start(now: datetime, period: AnalyticsPeriod, windows: int = 1) -> datetime:
    """
    Start of the window that is `windows` period lengths before now.

    The start is the exact instant `now - window`; it is not snapped back to
    midnight of that day.
    """
    if period == AnalyticsPeriod.WEEK:
        return now - timedelta(days=7 * windows)
    elif period == AnalyticsPeriod.MONTH:
        return subtract_months(now, windows)
    elif period == AnalyticsPeriod.YEAR:
        return subtract_months(now, 12 * windows)
    raise ValueError(f"Unsupported period: {period!r}")


def month_key(moment: datetime) -> str:
    return f"{moment.year:04d}-{moment.month:02d}"


def trailing_months(now: datetime, count: int = TREND_MONTHS) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last `count` calendar months, oldest first."""
    months = []
    for offset in range(count - 1, -1, -1):
        month_index = now.year * 12 + (now.month - 1) - offset
        year, month = divmod(month_index, 12)
        months.append((year, month + 1))
    return months


def _ensure_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


# ============== Calculation Functions ==============

def growth_rate(current: float, previous: float) -> float:
    """
    Percent change from previous to current.
    Both zero -> 0, previous zero and current positive -> 100.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def average_ticket(revenue: float, case_count: int) -> float:
    return revenue / case_count if case_count > 0 else 0.0


def sum_revenue(cases: Iterable[Case]) -> float:
    return sum(c.total_price for c in cases)


def calculate_service_revenue(cases: Iterable[Case]) -> float:
    """Sum of service lines, one revenue rule per line."""
    return sum(line.revenue for c in cases for line in c.services)


def calculate_parts_revenue(cases: Iterable[Case]) -> float:
    return sum(part.revenue for c in cases for part in c.parts)


def calculate_discount_given(cases: Iterable[Case]) -> float:
    """
    Implied pre-discount delta of the global discount. total_price is already
    discounted, so the amount given is total * pct / (100 - pct).
    """
    total = 0.0
    for c in cases:
        pct = c.global_discount_percent
        if 0 < pct < 100:
            total += c.total_price * pct / (100 - pct)
    return total


def calculate_vat_collected(cases: Iterable[Case]) -> float:
    return sum(c.vat_amount for c in cases if c.include_vat)


def average_processing_days(cases: Iterable[Case]) -> float:
    """Mean days from creation to completion over completed cases with both dates."""
    durations = []
    for c in cases:
        if c.status_class != CaseStatusClass.COMPLETED:
            continue
        created = c.created_at_dt
        finished = c.completed_at_dt
        if created is None or finished is None:
            continue
        durations.append(abs((finished - created).total_seconds()) / SECONDS_PER_DAY)
    return sum(durations) / len(durations) if durations else 0.0


# ============== Aggregation Functions ==============

def _count_by(labels: Iterable[str]) -> List[Tuple[str, int]]:
    """Group-count preserving first-seen order, then sort by count desc (stable)."""
    counts: Dict[str, int] = {}
    for label in labels:
        counts[label] = counts.get(label, 0) + 1
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def build_status_breakdown(cases: Sequence[Case]) -> List[StatusBreakdownRow]:
    total = len(cases)
    return [
        StatusBreakdownRow(status=status, count=count, percentage=round_percent(percent_of(count, total)))
        for status, count in _count_by(c.status for c in cases)
    ]


def build_repair_status_breakdown(cases: Sequence[Case]) -> List[RepairStatusBreakdownRow]:
    total = len(cases)
    return [
        RepairStatusBreakdownRow(
            repair_status=label,
            count=count,
            percentage=round_percent(percent_of(count, total))
        )
        for label, count in _count_by(c.repair_status or UNASSIGNED for c in cases)
    ]


def build_case_type_breakdown(cases: Sequence[Case], total_revenue: float) -> List[CaseTypeBreakdownRow]:
    """Count and revenue per case type, sorted by revenue desc."""
    type_data: Dict[str, Dict[str, float]] = {}
    for c in cases:
        label = c.case_type or UNSPECIFIED
        if label not in type_data:
            type_data[label] = {"count": 0, "revenue": 0.0}
        type_data[label]["count"] += 1
        type_data[label]["revenue"] += c.total_price

    total = len(cases)
    rows = sorted(type_data.items(), key=lambda item: item[1]["revenue"], reverse=True)
    return [
        CaseTypeBreakdownRow(
            case_type=label,
            count=int(data["count"]),
            revenue=round_currency(data["revenue"]),
            percentage=round_percent(percent_of(data["count"], total)),
            revenue_percentage=round_percent(percent_of(data["revenue"], total_revenue)),
        )
        for label, data in rows
    ]


def aggregate_services(cases: Iterable[Case], limit: int = TOP_LIMIT) -> List[ServiceStat]:
    """Service leaderboard by display name; zero-revenue lines are skipped."""
    service_data: Dict[str, Dict[str, float]] = {}
    for c in cases:
        for line in c.services:
            revenue = line.revenue
            if revenue <= 0:
                continue
            name = line.display_name
            if name not in service_data:
                service_data[name] = {"count": 0, "revenue": 0.0}
            service_data[name]["count"] += line.units
            service_data[name]["revenue"] += revenue

    ranked = sorted(service_data.items(), key=lambda item: item[1]["revenue"], reverse=True)
    return [
        ServiceStat(name=name, count=int(data["count"]), revenue=round_currency(data["revenue"]))
        for name, data in ranked[:limit]
    ]


def group_by_customer(cases: Iterable[Case]) -> Dict[str, List[Case]]:
    """Cases keyed by trimmed phone; cases without a phone are left out."""
    customers: Dict[str, List[Case]] = {}
    for c in cases:
        phone = c.customer_phone.strip()
        if not phone:
            continue
        customers.setdefault(phone, []).append(c)
    return customers


def aggregate_customers(
    cases: Iterable[Case],
    window_start: datetime,
    limit: int = TOP_LIMIT
) -> Dict[str, object]:
    """
    Customer metrics keyed on phone.

    Returns dict with total_customers, repeat_customer_rate (raw percent),
    new_customers_this_period and top_customers (rounded rows).
    """
    customers = group_by_customer(cases)

    total_customers = len(customers)
    repeat_customers = sum(1 for group in customers.values() if len(group) > 1)

    new_customers = 0
    for group in customers.values():
        first_seen = min(c.created_at_dt for c in group)
        if first_seen >= window_start:
            new_customers += 1

    spend = []
    for phone, group in customers.items():
        name = next((c.customer_name for c in group if c.customer_name), UNKNOWN)
        spend.append((name, phone, sum_revenue(group), len(group)))
    spend.sort(key=lambda row: row[2], reverse=True)

    return {
        "total_customers": total_customers,
        "repeat_customer_rate": percent_of(repeat_customers, total_customers),
        "new_customers_this_period": new_customers,
        "top_customers": [
            CustomerStat(name=name, phone=phone, total_spent=round_currency(total), cases_count=count)
            for name, phone, total, count in spend[:limit]
        ],
    }


def aggregate_mechanics(cases: Iterable[Case]) -> List[MechanicStat]:
    """Per-mechanic counts and revenue; unassigned cases are not listed."""
    mechanic_data: Dict[str, Dict[str, float]] = {}
    for c in cases:
        name = (c.assigned_mechanic or "").strip() or UNASSIGNED
        if name not in mechanic_data:
            mechanic_data[name] = {"cases": 0, "revenue": 0.0, "completed": 0, "active": 0}
        md = mechanic_data[name]
        md["cases"] += 1
        md["revenue"] += c.total_price
        status_class = c.status_class
        if status_class == CaseStatusClass.COMPLETED:
            md["completed"] += 1
        elif status_class.is_open:
            md["active"] += 1

    mechanic_data.pop(UNASSIGNED, None)
    ranked = sorted(mechanic_data.items(), key=lambda item: item[1]["revenue"], reverse=True)
    return [
        MechanicStat(
            name=name,
            cases=int(md["cases"]),
            revenue=round_currency(md["revenue"]),
            completed=int(md["completed"]),
            active=int(md["active"]),
        )
        for name, md in ranked
    ]


def build_monthly_trend(
    cases: Iterable[Case],
    now: datetime,
    payment_summary: Optional[PaymentSummary] = None
) -> List[MonthlyTrendPoint]:
    """Fixed 12-point series ending at now's month, merged with collected payments."""
    buckets: Dict[str, Dict[str, float]] = defaultdict(lambda: {"cases": 0, "revenue": 0.0})
    for c in cases:
        created = c.created_at_dt
        if created is None:
            continue
        bucket = buckets[month_key(created)]
        bucket["cases"] += 1
        bucket["revenue"] += c.total_price

    collected: Dict[str, float] = {}
    if payment_summary:
        for entry in payment_summary.monthly_data:
            collected[entry.month] = collected.get(entry.month, 0.0) + entry.collected

    trend = []
    for year, month in trailing_months(now):
        key = f"{year:04d}-{month:02d}"
        bucket = buckets.get(key, {"cases": 0, "revenue": 0.0})
        trend.append(MonthlyTrendPoint(
            month=key,
            label=month_label(month),
            cases=int(bucket["cases"]),
            revenue=round_currency(bucket["revenue"]),
            collected=round_currency(collected.get(key, 0.0)),
        ))
    return trend


# ============== Report Assembly ==============

def compute_analytics(
    cases: Sequence[Case],
    period: AnalyticsPeriod,
    now: datetime,
    payment_summary: Optional[PaymentSummary] = None,
    data_source: DataSource = DataSource.ALL
) -> AnalyticsReport:
    """
    Build the analytics report from validated, deduplicated cases.

    Args:
        cases: Validated cases (created_at must parse)
        period: Window for this-period vs previous-period figures
        now: Reference instant for windows and the trend
        payment_summary: Payment analytics from the invoice API
        data_source: Echoed into the report

    Returns:
        Frozen AnalyticsReport with every value rounded
    """
    period = AnalyticsPeriod(period)
    data_source = DataSource(data_source)
    now = _ensure_utc(now)
    payment_summary = payment_summary or PaymentSummary.empty()

    this_start = period_start(now, period, 1)
    previous_start = period_start(now, period, 2)

    cases_this_period = []
    cases_previous_period = []
    for c in cases:
        created = c.created_at_dt
        if created >= this_start:
            cases_this_period.append(c)
        elif previous_start <= created < this_start:
            cases_previous_period.append(c)

    # Revenue
    total_cases = len(cases)
    total_revenue = sum_revenue(cases)
    revenue_this_period = sum_revenue(cases_this_period)
    revenue_previous_period = sum_revenue(cases_previous_period)

    ticket_this_period = average_ticket(revenue_this_period, len(cases_this_period))
    ticket_previous_period = average_ticket(revenue_previous_period, len(cases_previous_period))

    # Status counts
    status_classes = [c.status_class for c in cases]
    completed_cases = status_classes.count(CaseStatusClass.COMPLETED)
    cancelled_cases = status_classes.count(CaseStatusClass.CANCELLED)
    preliminary_cases = status_classes.count(CaseStatusClass.PRELIMINARY)
    active_cases = total_cases - completed_cases - cancelled_cases

    customers = aggregate_customers(cases, this_start)

    return AnalyticsReport(
        period=period.value,
        data_source=data_source.value,
        generated_at=now.isoformat(),
        total_revenue=round_currency(total_revenue),
        service_revenue=round_currency(calculate_service_revenue(cases)),
        parts_revenue=round_currency(calculate_parts_revenue(cases)),
        average_ticket_value=round_currency(average_ticket(total_revenue, total_cases)),
        revenue_this_period=round_currency(revenue_this_period),
        revenue_previous_period=round_currency(revenue_previous_period),
        cases_this_period=len(cases_this_period),
        cases_previous_period=len(cases_previous_period),
        revenue_growth=round_percent(growth_rate(revenue_this_period, revenue_previous_period)),
        average_ticket_growth=round_percent(growth_rate(ticket_this_period, ticket_previous_period)),
        total_cases=total_cases,
        active_cases=active_cases,
        completed_cases=completed_cases,
        cancelled_cases=cancelled_cases,
        preliminary_assessment_cases=preliminary_cases,
        case_completion_rate=round_percent(percent_of(completed_cases, total_cases)),
        average_processing_days=round_half_up(average_processing_days(cases), 1),
        total_customers=customers["total_customers"],
        repeat_customer_rate=round_percent(customers["repeat_customer_rate"]),
        new_customers_this_period=customers["new_customers_this_period"],
        total_discount_given=round_currency(calculate_discount_given(cases)),
        vat_collected=round_currency(calculate_vat_collected(cases)),
        top_services=aggregate_services(cases),
        top_customers=customers["top_customers"],
        status_breakdown=build_status_breakdown(cases),
        repair_status_breakdown=build_repair_status_breakdown(cases),
        revenue_by_type=build_case_type_breakdown(cases, total_revenue),
        mechanic_stats=aggregate_mechanics(cases),
        monthly_trend=build_monthly_trend(cases, now, payment_summary),
        payment_summary=payment_summary,
    )
