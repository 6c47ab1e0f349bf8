"""
Analytics Service

Entry point for building an analytics report:
1. Fetch inspections, CPanel invoices and payment analytics concurrently
2. Normalize both case sources into Case objects
3. Remove duplicates, then drop unusable records
4. Compute the report

Each fetch is isolated: a failing source is logged and contributes nothing.
Only when every queried case source fails does the call raise.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.models.analytics_models import (
    AnalyticsReport,
    PaymentMethodShare,
    PaymentMonth,
    PaymentSummary,
    round_currency,
    round_percent,
)
from app.models.enums import UNKNOWN, AnalyticsPeriod, DataSource
from app.services.analytics_engine import compute_analytics
from app.services.case_normalizer import (
    coalesce,
    filter_valid_cases,
    normalize_cpanel_invoice,
    normalize_firebase_case,
    remove_duplicate_cases,
    resolve_payment_amount,
    resolve_payment_month,
    to_float,
    to_int,
    to_list,
    to_text,
)
from app.services.cpanel_client import DEFAULT_INVOICE_LIMIT, CPanelClient, get_cpanel_client
from app.services.firestore_client import FirestoreClient, get_firestore_client

logger = logging.getLogger(__name__)


class AnalyticsSourceError(RuntimeError):
    """Raised when every queried case source failed"""


@dataclass
class SourceResult:
    """Outcome of one case-source fetch"""
    name: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    queried: bool = True
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


# ============== Payment Summary ==============

def build_payment_summary(response: Optional[Dict[str, Any]]) -> PaymentSummary:
    """
    Map a fetch_payments_analytics() response into a PaymentSummary.

    success=False, a missing payload or a non-dict payload yields the empty summary.
    """
    if not response or not response.get("success"):
        return PaymentSummary.empty()
    data = response.get("data")
    if not isinstance(data, dict):
        return PaymentSummary.empty()

    methods = []
    for entry in to_list(data.get("methodBreakdown")):
        if not isinstance(entry, dict):
            continue
        methods.append(PaymentMethodShare(
            method=to_text(coalesce(entry, "method", "paymentMethod")) or UNKNOWN,
            amount=round_currency(to_float(coalesce(entry, "amount", "total"))),
            count=to_int(entry.get("count")),
        ))

    months = []
    for entry in to_list(data.get("monthlyData")):
        if not isinstance(entry, dict):
            continue
        month = resolve_payment_month(entry)
        if not month:
            continue
        months.append(PaymentMonth(month=month, collected=round_currency(resolve_payment_amount(entry))))

    return PaymentSummary(
        total_collected=round_currency(to_float(data.get("totalCollected"))),
        total_invoiced=round_currency(to_float(data.get("totalInvoiced"))),
        total_outstanding=round_currency(to_float(data.get("totalOutstanding"))),
        collection_rate=round_percent(to_float(data.get("collectionRate"))),
        method_breakdown=methods,
        monthly_data=months,
    )


# ============== Isolated Fetches ==============

def _only_dicts(records: Any) -> List[Dict[str, Any]]:
    return [r for r in (records or []) if isinstance(r, dict)]


async def fetch_firebase_records(store: Optional[FirestoreClient] = None) -> SourceResult:
    """All inspections from the document store; failure is recorded, not raised."""
    try:
        store = store or get_firestore_client()
        records = _only_dicts(await store.get_all_inspections())
        logger.info(f"[Analytics] Firebase returned {len(records)} inspections")
        return SourceResult(name="firebase", records=records)
    except Exception as e:
        logger.error(f"[Analytics] Error fetching Firebase data: {e}")
        return SourceResult(name="firebase", error=str(e) or type(e).__name__)


async def fetch_cpanel_records(
    cpanel: Optional[CPanelClient] = None,
    only_cpanel_only: bool = False,
    limit: int = DEFAULT_INVOICE_LIMIT
) -> SourceResult:
    """Invoices from the CPanel API; success=False counts as an empty source."""
    try:
        cpanel = cpanel or get_cpanel_client()
        response = await cpanel.fetch_all_invoices(limit=limit, only_cpanel_only=only_cpanel_only)
        if not response or not response.get("success"):
            logger.warning("[Analytics] CPanel returned no invoices (success=False)")
            return SourceResult(name="cpanel")
        records = _only_dicts(response.get("invoices"))
        logger.info(f"[Analytics] CPanel returned {len(records)} invoices")
        return SourceResult(name="cpanel", records=records)
    except Exception as e:
        logger.error(f"[Analytics] Error fetching CPanel data: {e}")
        return SourceResult(name="cpanel", error=str(e) or type(e).__name__)


async def fetch_payment_summary(cpanel: Optional[CPanelClient] = None) -> PaymentSummary:
    """Payment analytics; any failure yields the empty summary."""
    try:
        cpanel = cpanel or get_cpanel_client()
        return build_payment_summary(await cpanel.fetch_payments_analytics())
    except Exception as e:
        logger.error(f"[Analytics] Error fetching payment analytics: {e}")
        return PaymentSummary.empty()


async def _not_queried(name: str) -> SourceResult:
    return SourceResult(name=name, queried=False)


# ============== Orchestration ==============

async def get_analytics_data(
    period: str = "month",
    data_source: str = "all",
    now: Optional[datetime] = None,
    firestore: Optional[FirestoreClient] = None,
    cpanel: Optional[CPanelClient] = None
) -> AnalyticsReport:
    """
    Build the analytics report for one period and data source.

    Args:
        period: "week", "month" or "year"
        data_source: "all", "firebase" or "cpanel"
        now: Reference instant (defaults to the current UTC time)
        firestore: Document-store client (defaults to the shared instance)
        cpanel: Invoice API client (defaults to the shared instance)

    Returns:
        AnalyticsReport

    Raises:
        ValueError: invalid period or data source
        AnalyticsSourceError: every queried case source failed
    """
    period = AnalyticsPeriod(period)
    source = DataSource(data_source)
    now = now or datetime.now(timezone.utc)

    logger.info(f"[Analytics] Fetching data for period: {period.value}, source: {source.value}")

    firebase_result, cpanel_result, payment_summary = await asyncio.gather(
        fetch_firebase_records(firestore) if source.includes_firebase() else _not_queried("firebase"),
        fetch_cpanel_records(cpanel, only_cpanel_only=(source == DataSource.CPANEL))
        if source.includes_cpanel() else _not_queried("cpanel"),
        fetch_payment_summary(cpanel),
    )

    queried = [r for r in (firebase_result, cpanel_result) if r.queried]
    if queried and all(r.failed for r in queried):
        details = "; ".join(f"{r.name}: {r.error}" for r in queried)
        raise AnalyticsSourceError(f"All case sources failed ({details})")

    try:
        cases = [normalize_firebase_case(r) for r in firebase_result.records]
        cases.extend(normalize_cpanel_invoice(r) for r in cpanel_result.records)

        unique_cases = remove_duplicate_cases(cases)
        valid_cases = filter_valid_cases(unique_cases)
        logger.info(
            f"[Analytics] Cases: {len(cases)} fetched, "
            f"{len(cases) - len(unique_cases)} duplicates, "
            f"{len(unique_cases) - len(valid_cases)} invalid, "
            f"{len(valid_cases)} used"
        )

        report = compute_analytics(valid_cases, period, now, payment_summary, source)
    except Exception:
        logger.exception("[Analytics] Error building analytics report")
        raise

    logger.info(
        f"[Analytics] Report ready: {report.total_cases} cases, "
        f"revenue {report.total_revenue:.2f} GEL"
    )
    return report
