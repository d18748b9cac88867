"""
Tests for financial_service — commission, tax and payout arithmetic.

These are pure calculations and need no database.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.services import financial_service
from app.services.financial_service import ServiceFinancials


class TestCommission:
    """Platform commission per job type."""

    def test_one_off_default_rate(self):
        commission = financial_service.calculate_commission(
            ServiceFinancials(Decimal("350.00"))
        )
        assert commission == Decimal("52.50")

    def test_one_off_service_override(self):
        commission = financial_service.calculate_commission(
            ServiceFinancials(Decimal("350.00"), commission_rate=Decimal("0.12"))
        )
        assert commission == Decimal("42.00")

    def test_emergency_rate_beats_override(self):
        commission = financial_service.calculate_commission(
            ServiceFinancials(
                Decimal("350.00"), is_emergency=True, commission_rate=Decimal("0.12")
            )
        )
        assert commission == Decimal("70.00")

    def test_subscription_is_fixed(self):
        commission = financial_service.calculate_commission(
            ServiceFinancials(Decimal("900.00"), service_type="subscription")
        )
        assert commission == Decimal("50.00")


class TestCalculatePayout:
    """Gross, taxes and net for a single job."""

    def test_one_off_payout_breakdown(self):
        calc = financial_service.calculate_payout(ServiceFinancials(Decimal("350.00")))

        assert calc.platform_commission == Decimal("52.50")
        assert calc.gross_amount == Decimal("297.50")
        assert calc.income_tax == Decimal("53.55")
        assert calc.withholding_tax == Decimal("29.75")
        assert calc.net_payout == Decimal("214.20")
        assert calc.total_tax == Decimal("83.30")
        assert calc.taxable_amount == calc.gross_amount

    def test_emergency_payout(self):
        calc = financial_service.calculate_payout(
            ServiceFinancials(Decimal("350.00"), is_emergency=True)
        )
        assert calc.gross_amount == Decimal("280.00")
        assert calc.net_payout == Decimal("201.60")

    def test_subscription_payout(self):
        calc = financial_service.calculate_payout(
            ServiceFinancials(Decimal("300.00"), service_type="subscription")
        )
        assert calc.gross_amount == Decimal("250.00")
        assert calc.net_payout == Decimal("180.00")

    def test_net_payout_never_negative(self):
        """A subscription job cheaper than the fixed commission pays nothing."""
        calc = financial_service.calculate_payout(
            ServiceFinancials(Decimal("40.00"), service_type="subscription")
        )
        assert calc.gross_amount == Decimal("-10.00")
        assert calc.net_payout == Decimal("0.00")

    def test_batch_sums_each_job(self):
        calc = financial_service.calculate_batch_payout(
            [
                ServiceFinancials(Decimal("350.00")),
                ServiceFinancials(Decimal("300.00"), service_type="subscription"),
            ]
        )
        assert calc.gross_amount == Decimal("547.50")
        assert calc.platform_commission == Decimal("102.50")
        assert calc.net_payout == Decimal("394.20")

    def test_empty_batch_is_zero(self):
        calc = financial_service.calculate_batch_payout([])
        assert calc.net_payout == Decimal("0.00")
        assert calc.to_dict()["gross_amount"] == "0.00"


class TestHelpers:
    """VAT, bonuses, schedules and formatting."""

    def test_vat(self):
        assert financial_service.calculate_vat(Decimal("200.00")) == Decimal("30.00")

    def test_bonus_paid_at_threshold(self):
        bonus = financial_service.calculate_performance_bonus(
            Decimal("1000.00"), Decimal("4.50"), Decimal("4.50"), Decimal("5")
        )
        assert bonus == Decimal("50.00")

    def test_no_bonus_below_threshold(self):
        bonus = financial_service.calculate_performance_bonus(
            Decimal("1000.00"), Decimal("4.40"), Decimal("4.50"), Decimal("5")
        )
        assert bonus == Decimal("0.00")

    def test_no_bonus_without_rating(self):
        bonus = financial_service.calculate_performance_bonus(
            Decimal("1000.00"), None, Decimal("4.50"), Decimal("5")
        )
        assert bonus == Decimal("0.00")

    @pytest.mark.parametrize(
        "frequency, expected",
        [
            ("weekly", date(2026, 2, 7)),
            ("bi-weekly", date(2026, 2, 14)),
            ("monthly", date(2026, 2, 28)),
        ],
    )
    def test_payout_schedule(self, frequency, expected):
        assert financial_service.get_payout_schedule(frequency, date(2026, 1, 31)) == expected

    def test_unknown_schedule(self):
        with pytest.raises(ValueError, match="Unknown payout frequency"):
            financial_service.get_payout_schedule("daily", date(2026, 1, 1))

    def test_format_currency(self):
        assert financial_service.format_currency(Decimal("1234.5")) == "N$1234.50"


class TestFinancialsForBooking:
    """Payout inputs derived from a booking."""

    def test_one_off_uses_booking_amount_and_service_rate(self):
        booking = SimpleNamespace(
            service=SimpleNamespace(
                commission_percentage=Decimal("12"), client_price=Decimal("400.00")
            ),
            total_amount=Decimal("350.00"),
            job_type="one-off",
            emergency_booking=False,
        )
        financials = financial_service.financials_for_booking(booking)

        assert financials.service_price == Decimal("350.00")
        assert financials.commission_rate == Decimal("0.12")
        assert financials.service_type == "one-off"

    def test_package_job_priced_at_list_price(self):
        booking = SimpleNamespace(
            service=SimpleNamespace(
                commission_percentage=None, client_price=Decimal("300.00")
            ),
            total_amount=Decimal("0"),
            job_type="subscription",
            emergency_booking=False,
        )
        financials = financial_service.financials_for_booking(booking)

        assert financials.service_price == Decimal("300.00")
        assert financials.commission_rate is None
