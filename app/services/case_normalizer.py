"""
Case Normalizer Service

Maps raw records from the document store (inspections) and the CPanel invoice
API into one canonical Case shape, then deduplicates and validates them.

Rules:
- Normalization never raises: unparseable fields fall back to defaults
- Numbers use parse-float semantics ("12.5", "12.5 GEL" -> 12.5, "abc" -> 0)
- Field-name variants are resolved by explicit ordered fallbacks
- Rejection of unusable records happens only in the validator
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from app.models.enums import UNKNOWN, CaseStatusClass

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "New"

_NUMBER_PREFIX = re.compile(r"\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


# ============== Coercion Helpers ==============

def to_float(value: Any, default: float = 0.0) -> float:
    """Best-effort parse-float; non-numeric and non-finite values become default."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        try:
            result = float(value)
        except OverflowError:
            return default
    else:
        match = _NUMBER_PREFIX.match(str(value))
        if not match:
            return default
        result = float(match.group(1))
    return result if math.isfinite(result) else default


def to_int(value: Any, default: int = 0) -> int:
    """Best-effort parse-int (truncates toward zero)."""
    result = to_float(value, float("nan"))
    if math.isnan(result):
        return default
    return int(result)


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def to_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def to_list(value: Any) -> List[Any]:
    """Arrays may arrive as JSON strings from the PHP API."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and value.strip().startswith("["):
        try:
            parsed = json.loads(value)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def coalesce(record: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first truthy value among keys, in order."""
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return default


def to_timestamp_text(value: Any) -> str:
    """Coerce a timestamp field (ISO string, datetime, {seconds: n}) to an ISO string."""
    if not value:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return ""
        try:
            return datetime.fromtimestamp(float(seconds), tz=timezone.utc).isoformat()
        except (ValueError, TypeError, OverflowError, OSError):
            return ""
    return str(value).strip()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime string into an aware UTC datetime.

    Returns None when the value is empty, unparseable or outside the
    representable UTC range. Naive values are read as UTC.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


# ============== Dataclasses ==============

@dataclass(frozen=True)
class ServiceLine:
    """One service line on a case"""
    name_ka: str = ""
    name_en: str = ""
    price: float = 0.0
    count: int = 1
    unit_rate: float = 0.0
    discounted_price: float = 0.0
    discount_percent: float = 0.0

    @property
    def display_name(self) -> str:
        return self.name_ka or self.name_en or UNKNOWN

    @property
    def units(self) -> int:
        return max(1, self.count)

    @property
    def revenue(self) -> float:
        """
        Single source of truth for line revenue. Exactly one rule applies:
        discounted price, else unit rate x units, else raw price.
        """
        if self.discounted_price > 0:
            return self.discounted_price
        if self.unit_rate > 0:
            return self.unit_rate * self.units
        return self.price


@dataclass(frozen=True)
class PartLine:
    """One part line on a case"""
    name: str = ""
    unit_price: float = 0.0
    quantity: float = 1.0
    total_price: float = 0.0

    @property
    def revenue(self) -> float:
        if self.total_price > 0:
            return self.total_price
        return self.unit_price * max(1, self.quantity)


@dataclass(frozen=True)
class Case:
    """Canonical repair/estimate case"""
    id: str
    source: str
    customer_name: str = ""
    customer_phone: str = ""
    total_price: float = 0.0
    status: str = DEFAULT_STATUS
    created_at: str = ""
    updated_at: Optional[str] = None
    status_changed_at: Optional[str] = None
    case_type: Optional[str] = None
    repair_status: Optional[str] = None
    assigned_mechanic: Optional[str] = None
    cpanel_invoice_id: Optional[str] = None
    include_vat: bool = False
    vat_amount: float = 0.0
    services_discount_percent: float = 0.0
    parts_discount_percent: float = 0.0
    global_discount_percent: float = 0.0
    services: Tuple[ServiceLine, ...] = ()
    parts: Tuple[PartLine, ...] = ()

    @property
    def status_class(self) -> CaseStatusClass:
        return CaseStatusClass.from_label(self.status)

    @property
    def created_at_dt(self) -> Optional[datetime]:
        return parse_timestamp(self.created_at)

    @property
    def completed_at_dt(self) -> Optional[datetime]:
        """status_changed_at when present, else updated_at"""
        return parse_timestamp(self.status_changed_at) or parse_timestamp(self.updated_at)


# ============== Field Resolvers ==============

def resolve_service_names(service: Dict[str, Any]) -> Tuple[str, str]:
    """(Georgian name, English name); either may be empty."""
    name_ka = to_text(coalesce(service, "serviceNameKa", "nameKa", default=""))
    name_en = to_text(coalesce(service, "serviceName", "name", default=""))
    return name_ka, name_en


def resolve_service_name(service: Dict[str, Any]) -> str:
    """Display name: Georgian, then English, then 'unknown'."""
    name_ka, name_en = resolve_service_names(service)
    return name_ka or name_en or UNKNOWN


def resolve_created_at(record: Dict[str, Any]) -> str:
    return to_timestamp_text(coalesce(record, "createdAt", "serviceDate"))


def resolve_cpanel_id(invoice: Dict[str, Any]) -> Optional[str]:
    value = coalesce(invoice, "cpanelId", "id")
    return to_text(value) or None


def resolve_payment_month(entry: Dict[str, Any]) -> str:
    """Month key (YYYY-MM) of a payment series entry."""
    return to_text(coalesce(entry, "month", "monthKey", "period", default=""))[:7]


def resolve_payment_amount(entry: Dict[str, Any]) -> float:
    return to_float(coalesce(entry, "collected", "totalCollected", "amount"))


def _optional_text(value: Any) -> Optional[str]:
    return to_text(value) or None


# ============== Normalization ==============

def normalize_service(raw: Any) -> ServiceLine:
    if not isinstance(raw, dict):
        return ServiceLine()
    name_ka, name_en = resolve_service_names(raw)
    return ServiceLine(
        name_ka=name_ka,
        name_en=name_en,
        price=to_float(raw.get("price")),
        count=to_int(raw.get("count") or 1, default=1),
        unit_rate=to_float(raw.get("unitRate")),
        discounted_price=to_float(raw.get("discountedPrice")),
        discount_percent=to_float(raw.get("discount_percent")),
    )


def normalize_part(raw: Any) -> PartLine:
    if not isinstance(raw, dict):
        return PartLine()
    return PartLine(
        name=to_text(coalesce(raw, "name", "nameKa", "partName", default="")),
        unit_price=to_float(coalesce(raw, "unitPrice", "price")),
        quantity=to_float(raw.get("quantity") or 1, default=1.0),
        total_price=to_float(coalesce(raw, "totalPrice", "total")),
    )


def _build_case(
    raw: Dict[str, Any],
    case_id: str,
    source: str,
    cpanel_invoice_id: Optional[str]
) -> Case:
    return Case(
        id=case_id,
        source=source,
        customer_name=to_text(raw.get("customerName")),
        customer_phone="" if raw.get("customerPhone") is None else str(raw.get("customerPhone")),
        total_price=to_float(raw.get("totalPrice")),
        status=to_text(raw.get("status")) or DEFAULT_STATUS,
        created_at=resolve_created_at(raw),
        updated_at=to_timestamp_text(raw.get("updatedAt")) or None,
        status_changed_at=to_timestamp_text(raw.get("status_changed_at")) or None,
        case_type=_optional_text(raw.get("caseType")),
        repair_status=_optional_text(raw.get("repair_status")),
        assigned_mechanic=_optional_text(raw.get("assigned_mechanic")),
        cpanel_invoice_id=cpanel_invoice_id,
        include_vat=to_bool(raw.get("includeVAT")),
        vat_amount=to_float(raw.get("vatAmount")),
        services_discount_percent=to_float(
            coalesce(raw, "services_discount_percent", "servicesDiscountPercent")
        ),
        parts_discount_percent=to_float(
            coalesce(raw, "parts_discount_percent", "partsDiscountPercent")
        ),
        global_discount_percent=to_float(
            coalesce(raw, "global_discount_percent", "globalDiscountPercent")
        ),
        services=tuple(normalize_service(s) for s in to_list(raw.get("services"))),
        parts=tuple(normalize_part(p) for p in to_list(raw.get("parts"))),
    )


def normalize_firebase_case(raw: Dict[str, Any]) -> Case:
    """Map a document-store inspection into a Case."""
    return _build_case(
        raw,
        case_id=to_text(raw.get("id")),
        source="firebase",
        cpanel_invoice_id=_optional_text(raw.get("cpanelInvoiceId")),
    )


def normalize_cpanel_invoice(raw: Dict[str, Any]) -> Case:
    """Map a CPanel invoice into a Case (id is prefixed with 'cpanel_')."""
    cpanel_id = resolve_cpanel_id(raw)
    return _build_case(
        raw,
        case_id=f"cpanel_{cpanel_id}" if cpanel_id else "cpanel_",
        source="cpanel",
        cpanel_invoice_id=cpanel_id,
    )


# ============== Deduplication ==============

def dedup_key(case: Case) -> Tuple:
    """
    Invoice-backed cases key on the CPanel invoice id. Everything else keys on
    (phone, total, created date). The composite key is a heuristic: two
    same-day same-amount cases for one phone collapse into one.
    """
    if case.cpanel_invoice_id:
        return ("cpanel", f"cpanel_{case.cpanel_invoice_id}")
    date_key = case.created_at[:10] if case.created_at else "no-date"
    return ("natural", case.customer_phone, case.total_price, date_key)


def remove_duplicate_cases(cases: Iterable[Case]) -> List[Case]:
    """Keep the first occurrence of each dedup key, preserving order."""
    seen_invoice: Set[Tuple] = set()
    seen_natural: Set[Tuple] = set()
    unique: List[Case] = []

    for case in cases:
        key = dedup_key(case)
        seen = seen_invoice if key[0] == "cpanel" else seen_natural
        if key in seen:
            logger.debug(f"[Normalizer] Dropping duplicate case {case.id} ({key[0]} key)")
            continue
        seen.add(key)
        unique.append(case)

    return unique


# ============== Validation ==============

def is_valid_case(case: Case) -> bool:
    """Price must be a non-negative number and created_at must parse."""
    if math.isnan(case.total_price) or case.total_price < 0:
        return False
    return case.created_at_dt is not None


def filter_valid_cases(cases: Iterable[Case]) -> List[Case]:
    valid = []
    for case in cases:
        if is_valid_case(case):
            valid.append(case)
        else:
            logger.debug(
                f"[Normalizer] Excluding case {case.id}: "
                f"total_price={case.total_price!r}, created_at={case.created_at!r}"
            )
    return valid
