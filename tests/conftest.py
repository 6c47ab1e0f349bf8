"""
Pytest configuration and fixtures.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.case_normalizer import Case

# Reference instant shared by the engine tests
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_case(**overrides) -> Case:
    """Build a Case with sensible defaults."""
    values = {
        "id": "case-1",
        "source": "firebase",
        "customer_name": "Giorgi",
        "customer_phone": "555111222",
        "total_price": 100.0,
        "status": "New",
        "created_at": "2024-06-10T10:00:00Z",
    }
    values.update(overrides)
    return Case(**values)


def inspection(**overrides) -> dict:
    """Raw document-store inspection record."""
    record = {
        "id": "doc-1",
        "customerName": "Giorgi",
        "customerPhone": "555111222",
        "totalPrice": 100,
        "status": "New",
        "createdAt": "2024-06-10T10:00:00Z",
        "services": [],
        "parts": [],
    }
    record.update(overrides)
    return record


def invoice(**overrides) -> dict:
    """Raw CPanel invoice record."""
    record = {
        "id": 42,
        "customerName": "Nino",
        "customerPhone": "599000111",
        "totalPrice": "250.00",
        "status": "Completed",
        "createdAt": "2024-06-12 09:30:00",
        "services": "[]",
    }
    record.update(overrides)
    return record


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mock_firestore():
    """Document-store client returning one inspection."""
    store = MagicMock()
    store.get_all_inspections = AsyncMock(return_value=[inspection()])
    return store


@pytest.fixture
def mock_cpanel():
    """Invoice client returning one invoice and a small payment summary."""
    cpanel = MagicMock()
    cpanel.fetch_all_invoices = AsyncMock(return_value={"success": True, "invoices": [invoice()]})
    cpanel.fetch_payments_analytics = AsyncMock(return_value={
        "success": True,
        "data": {
            "totalCollected": 250,
            "totalInvoiced": 350,
            "totalOutstanding": 100,
            "collectionRate": 71.428,
            "methodBreakdown": [{"method": "cash", "amount": 250, "count": 1}],
            "monthlyData": [{"month": "2024-06", "collected": 250}],
        },
    })
    return cpanel
