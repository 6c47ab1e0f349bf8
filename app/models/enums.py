"""
Analytics Enums and Status Vocabularies

Standardized constants for report parameters and case status labels.
Status labels are the localized strings written by the mobile app and the
CPanel invoice API (English and Georgian).
"""

from enum import Enum


class AnalyticsPeriod(str, Enum):
    """Rolling window used for this-period vs previous-period comparisons"""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class DataSource(str, Enum):
    """Which case sources a report is built from"""
    ALL = "all"
    FIREBASE = "firebase"
    CPANEL = "cpanel"

    def includes_firebase(self) -> bool:
        return self in (DataSource.ALL, DataSource.FIREBASE)

    def includes_cpanel(self) -> bool:
        return self in (DataSource.ALL, DataSource.CPANEL)


# Fixed bilingual label sets
COMPLETED_STATUSES = frozenset({"Completed", "დასრულებული"})
CANCELLED_STATUSES = frozenset({"Cancelled", "გაუქმებული"})
PRELIMINARY_STATUSES = frozenset({"Preliminary Assessment", "წინასწარი შეფასება"})
ACTIVE_STATUSES = frozenset({
    "New",
    "ახალი",
    "Pending",
    "მოლოდინში",
    "In Progress",
    "მიმდინარე",
    "In Service",
    "სერვისშია",
    "Processing",
    "მუშავდება",
})

# Sentinels for missing optional classifications
UNASSIGNED = "unassigned"
UNSPECIFIED = "unspecified"
UNKNOWN = "unknown"


class CaseStatusClass(str, Enum):
    """Classification of a free-form case status label"""
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    PRELIMINARY = "preliminary"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: str) -> "CaseStatusClass":
        """Classify a status label by exact set membership"""
        if label in COMPLETED_STATUSES:
            return cls.COMPLETED
        elif label in CANCELLED_STATUSES:
            return cls.CANCELLED
        elif label in PRELIMINARY_STATUSES:
            return cls.PRELIMINARY
        elif label in ACTIVE_STATUSES:
            return cls.ACTIVE
        return cls.OTHER

    @property
    def is_open(self) -> bool:
        """Open cases are everything that is neither completed nor cancelled"""
        return self not in (CaseStatusClass.COMPLETED, CaseStatusClass.CANCELLED)


# Short month labels indexed by month number (1-12)
MONTH_LABELS = (
    "იან", "თებ", "მარ", "აპრ", "მაი", "ივნ",
    "ივლ", "აგვ", "სექ", "ოქტ", "ნოე", "დეკ",
)


def month_label(month: int) -> str:
    """Short label for a calendar month number"""
    return MONTH_LABELS[month - 1] if 1 <= month <= 12 else UNKNOWN
