"""
Unit tests for the case normalizer: coercion, field resolvers,
deduplication and validation.
"""

from datetime import datetime, timezone

import pytest

from app.services.case_normalizer import (
    PartLine,
    ServiceLine,
    coalesce,
    dedup_key,
    filter_valid_cases,
    is_valid_case,
    normalize_cpanel_invoice,
    normalize_firebase_case,
    normalize_part,
    normalize_service,
    parse_timestamp,
    remove_duplicate_cases,
    resolve_cpanel_id,
    resolve_created_at,
    resolve_payment_amount,
    resolve_payment_month,
    resolve_service_name,
    to_bool,
    to_float,
    to_int,
    to_list,
    to_timestamp_text,
)
from conftest import inspection, invoice, make_case


class TestCoercion:
    """Best-effort type coercion."""

    @pytest.mark.parametrize("value,expected", [
        (12.5, 12.5),
        (7, 7.0),
        ("12.5", 12.5),
        ("12.5 GEL", 12.5),
        ("  -3", -3.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("inf"), 0.0),
        ("1e999", 0.0),
        (10 ** 400, 0.0),
    ])
    def test_to_float(self, value, expected):
        assert to_float(value) == expected

    def test_to_float_custom_default(self):
        assert to_float("n/a", default=-1.0) == -1.0

    def test_to_int_truncates(self):
        assert to_int("3.9") == 3
        assert to_int("x", default=1) == 1

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        ("true", True),
        ("TRUE", True),
        ("1", True),
        (1, True),
        ("false", False),
        ("0", False),
        (None, False),
        (0, False),
    ])
    def test_to_bool(self, value, expected):
        assert to_bool(value) is expected

    def test_to_list_accepts_json_strings(self):
        assert to_list('[{"name": "Paint"}]') == [{"name": "Paint"}]
        assert to_list("[broken") == []
        assert to_list("Paint") == []
        assert to_list(None) == []
        assert to_list(({"a": 1},)) == [{"a": 1}]

    def test_coalesce_skips_falsy_values(self):
        record = {"a": "", "b": None, "c": "x", "d": "y"}
        assert coalesce(record, "a", "b", "c", "d") == "x"
        assert coalesce(record, "a", "b", default="z") == "z"

    def test_timestamp_dict_is_converted(self):
        assert to_timestamp_text({"seconds": 1718000000}) == "2024-06-10T06:13:20+00:00"
        assert to_timestamp_text({"_seconds": 1718000000}) == "2024-06-10T06:13:20+00:00"
        assert to_timestamp_text({"nanos": 5}) == ""

    def test_parse_timestamp(self):
        expected = datetime(2024, 6, 10, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2024-06-10T10:00:00Z") == expected
        assert parse_timestamp("2024-06-10T14:00:00+04:00") == expected
        assert parse_timestamp("2024-06-10 10:00:00") == expected
        assert parse_timestamp("2024-06-10") == datetime(2024, 6, 10, tzinfo=timezone.utc)
        assert parse_timestamp("not-a-date") is None
        assert parse_timestamp("") is None


class TestFieldResolvers:
    """Ordered-fallback resolvers, one test per tier."""

    def test_service_name_prefers_service_name_ka(self):
        service = {"serviceNameKa": "შეღებვა", "nameKa": "x", "serviceName": "Paint", "name": "y"}
        assert resolve_service_name(service) == "შეღებვა"

    def test_service_name_falls_back_to_name_ka(self):
        assert resolve_service_name({"nameKa": "პოლირება", "serviceName": "Polish"}) == "პოლირება"

    def test_service_name_falls_back_to_service_name(self):
        assert resolve_service_name({"serviceName": "Polish", "name": "Other"}) == "Polish"

    def test_service_name_falls_back_to_name(self):
        assert resolve_service_name({"name": "Polish"}) == "Polish"

    def test_service_name_unknown(self):
        assert resolve_service_name({"serviceNameKa": "  ", "price": 10}) == "unknown"

    def test_created_at_prefers_created_at(self):
        record = {"createdAt": "2024-06-10T10:00:00Z", "serviceDate": "2024-01-01"}
        assert resolve_created_at(record) == "2024-06-10T10:00:00Z"

    def test_created_at_falls_back_to_service_date(self):
        assert resolve_created_at({"serviceDate": "2024-01-01"}) == "2024-01-01"

    def test_created_at_empty_when_missing(self):
        assert resolve_created_at({}) == ""

    def test_cpanel_id_prefers_cpanel_id(self):
        assert resolve_cpanel_id({"cpanelId": 7, "id": 3}) == "7"

    def test_cpanel_id_falls_back_to_id(self):
        assert resolve_cpanel_id({"id": 3}) == "3"

    def test_cpanel_id_missing(self):
        assert resolve_cpanel_id({}) is None

    def test_payment_month_tiers(self):
        assert resolve_payment_month({"month": "2024-06", "monthKey": "2024-01"}) == "2024-06"
        assert resolve_payment_month({"monthKey": "2024-05-01"}) == "2024-05"
        assert resolve_payment_month({"period": "2024-04"}) == "2024-04"
        assert resolve_payment_month({}) == ""

    def test_payment_amount_tiers(self):
        assert resolve_payment_amount({"collected": 10, "totalCollected": 20}) == 10.0
        assert resolve_payment_amount({"totalCollected": "12.5"}) == 12.5
        assert resolve_payment_amount({"amount": 3}) == 3.0
        assert resolve_payment_amount({}) == 0.0


class TestLineRevenue:
    """Service and part line revenue."""

    def test_unit_rate_wins_over_price(self):
        line = normalize_service({"price": 50, "unitRate": 20, "count": 3})
        assert line.revenue == 60.0

    def test_discounted_price_wins_over_everything(self):
        line = ServiceLine(price=50, unit_rate=20, count=3, discounted_price=45)
        assert line.revenue == 45

    def test_price_used_when_no_rate(self):
        assert ServiceLine(price=80).revenue == 80

    def test_zero_count_counts_as_one_unit(self):
        line = normalize_service({"unitRate": 20, "count": 0})
        assert line.units == 1
        assert line.revenue == 20

    def test_non_dict_service_is_empty_line(self):
        line = normalize_service("Paint")
        assert line.revenue == 0
        assert line.display_name == "unknown"

    def test_part_total_price_wins(self):
        assert normalize_part({"unitPrice": 10, "quantity": 3, "totalPrice": 25}).revenue == 25

    def test_part_falls_back_to_unit_price_times_quantity(self):
        assert normalize_part({"price": "10", "quantity": 3}).revenue == 30

    def test_part_total_alias(self):
        part = normalize_part({"partName": "Bumper", "total": 120})
        assert part == PartLine(name="Bumper", total_price=120.0)


class TestNormalization:
    """Raw records into Case objects."""

    def test_firebase_case_defaults(self):
        case = normalize_firebase_case({"id": "doc-9", "createdAt": "2024-06-01"})
        assert case.id == "doc-9"
        assert case.source == "firebase"
        assert case.status == "New"
        assert case.total_price == 0.0
        assert case.services == ()
        assert case.cpanel_invoice_id is None

    def test_firebase_case_fields(self):
        case = normalize_firebase_case(inspection(
            cpanelInvoiceId="INV-1",
            includeVAT="true",
            vatAmount="18",
            caseType="insurance",
            assigned_mechanic="Levan",
            services=[{"serviceNameKa": "შეღებვა", "price": 100}],
            parts=[{"name": "Bumper", "totalPrice": 40}],
        ))
        assert case.cpanel_invoice_id == "INV-1"
        assert case.include_vat is True
        assert case.vat_amount == 18.0
        assert case.case_type == "insurance"
        assert case.assigned_mechanic == "Levan"
        assert case.services[0].display_name == "შეღებვა"
        assert case.parts[0].revenue == 40

    def test_cpanel_invoice(self):
        case = normalize_cpanel_invoice(invoice())
        assert case.id == "cpanel_42"
        assert case.source == "cpanel"
        assert case.cpanel_invoice_id == "42"
        assert case.total_price == 250.0
        assert case.services == ()

    def test_cpanel_invoice_prefers_cpanel_id(self):
        case = normalize_cpanel_invoice(invoice(cpanelId="INV-7"))
        assert case.id == "cpanel_INV-7"
        assert case.cpanel_invoice_id == "INV-7"

    def test_camel_case_discount_fallback(self):
        case = normalize_cpanel_invoice(invoice(globalDiscountPercent="10"))
        assert case.global_discount_percent == 10.0

    def test_garbage_never_raises(self):
        case = normalize_firebase_case({"totalPrice": "abc", "services": "oops", "parts": [None, 3]})
        assert case.total_price == 0.0
        assert case.services == ()
        assert len(case.parts) == 2


class TestDeduplication:
    """Invoice-id and natural-key deduplication."""

    def test_shared_invoice_id_collapses(self):
        app_case = normalize_firebase_case(inspection(cpanelInvoiceId="INV-1"))
        cpanel_case = normalize_cpanel_invoice(invoice(cpanelId="INV-1"))

        unique = remove_duplicate_cases([app_case, cpanel_case])

        assert unique == [app_case]

    def test_natural_key_collapses_same_day_same_amount(self):
        # Two genuinely different visits on one day for the same amount merge
        first = make_case(id="a", created_at="2024-06-10T09:00:00Z")
        second = make_case(id="b", created_at="2024-06-10T17:00:00Z")
        assert [c.id for c in remove_duplicate_cases([first, second])] == ["a"]

    def test_natural_key_keeps_different_days(self):
        first = make_case(id="a", created_at="2024-06-10T09:00:00Z")
        second = make_case(id="b", created_at="2024-06-11T09:00:00Z")
        assert len(remove_duplicate_cases([first, second])) == 2

    def test_natural_key_keeps_different_amounts(self):
        first = make_case(id="a", total_price=100)
        second = make_case(id="b", total_price=101)
        assert len(remove_duplicate_cases([first, second])) == 2

    def test_missing_date_uses_placeholder(self):
        case = make_case(created_at="")
        assert dedup_key(case) == ("natural", "555111222", 100.0, "no-date")

    def test_invoice_and_natural_keys_do_not_mix(self):
        with_invoice = make_case(id="a", cpanel_invoice_id="9")
        without = make_case(id="b")
        assert len(remove_duplicate_cases([with_invoice, without])) == 2

    def test_order_is_preserved(self):
        cases = [make_case(id=str(i), total_price=i) for i in range(5)]
        assert [c.id for c in remove_duplicate_cases(cases)] == ["0", "1", "2", "3", "4"]


class TestValidation:
    """Exclusion of unusable records."""

    def test_unparseable_created_at_is_excluded(self):
        case = normalize_firebase_case(inspection(createdAt="not-a-date"))
        assert not is_valid_case(case)
        assert filter_valid_cases([case]) == []

    def test_missing_created_at_is_excluded(self):
        case = normalize_firebase_case(inspection(createdAt=None))
        assert not is_valid_case(case)

    def test_negative_price_is_excluded(self):
        assert not is_valid_case(make_case(total_price=-5))

    @pytest.mark.parametrize("created_at", [
        "9999-12-31T23:59:59-05:00",
        "0001-01-01T00:00:00+05:00",
    ])
    def test_out_of_range_created_at_is_excluded(self, created_at):
        good = normalize_firebase_case(inspection(id="ok"))
        bad = normalize_firebase_case(inspection(id="far", createdAt=created_at, customerPhone="1"))

        assert parse_timestamp(created_at) is None
        assert not is_valid_case(bad)
        assert filter_valid_cases([good, bad]) == [good]

    def test_huge_integer_price_never_raises(self):
        case = normalize_cpanel_invoice({"id": 1, "totalPrice": 10 ** 400, "createdAt": "2024-06-01"})
        assert case.total_price == 0.0
        assert is_valid_case(case)

    def test_nan_price_is_excluded(self):
        assert not is_valid_case(make_case(total_price=float("nan")))

    def test_zero_price_is_valid(self):
        assert is_valid_case(make_case(total_price=0))

    def test_filter_keeps_order(self):
        good_a = make_case(id="a")
        bad = make_case(id="b", created_at="yesterday")
        good_c = make_case(id="c")
        assert filter_valid_cases([good_a, bad, good_c]) == [good_a, good_c]
