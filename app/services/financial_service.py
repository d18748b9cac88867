"""
Financial service — the single source of truth for payout arithmetic.

No route or other service calculates commissions or taxes. Every
payout figure shown to providers, stored on a ``Payout`` row or written
to an export comes from this module.

Calculation rules:
  - **Commission:** one-off services pay the service's own commission
    rate if set, otherwise 15 %; emergency bookings pay 20 %;
    subscription services pay a fixed N$50.
  - **Gross:** service price minus commission.
  - **Taxes:** income tax (18 %) and withholding tax (10 %) on gross.
  - **Net:** gross minus taxes, never below zero.

VAT (15 %) is carried for reporting; it is not deducted from payouts.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)

# Constant for zero-amount comparisons and defaults.
ZERO = Decimal("0.00")
CENT = Decimal("0.01")

# -- Namibian tax rates ----------------------------------------------------
INCOME_TAX_RATE = Decimal("0.18")
VAT_RATE = Decimal("0.15")
WITHHOLDING_TAX_RATE = Decimal("0.10")

# -- Platform commission ---------------------------------------------------
ONE_OFF_COMMISSION_RATE = Decimal("0.15")
EMERGENCY_COMMISSION_RATE = Decimal("0.20")
SUBSCRIPTION_COMMISSION = Decimal("50.00")

PAYOUT_FREQUENCIES = ("weekly", "bi-weekly", "monthly")


# =========================================================================
# Data classes for structured results
# =========================================================================


@dataclass
class ServiceFinancials:
    """The inputs needed to price one completed job."""

    service_price: Decimal
    service_type: str = "one-off"  # one-off | subscription
    is_emergency: bool = False
    commission_rate: Decimal | None = None  # Fraction, e.g. 0.12.


@dataclass
class PayoutCalculation:
    """Breakdown of what a provider earns for one or more jobs."""

    gross_amount: Decimal = ZERO
    platform_commission: Decimal = ZERO
    income_tax: Decimal = ZERO
    withholding_tax: Decimal = ZERO
    net_payout: Decimal = ZERO
    taxable_amount: Decimal = ZERO

    @property
    def total_tax(self) -> Decimal:
        return self.income_tax + self.withholding_tax

    def to_dict(self) -> dict:
        return {
            "gross_amount": str(self.gross_amount),
            "platform_commission": str(self.platform_commission),
            "income_tax": str(self.income_tax),
            "withholding_tax": str(self.withholding_tax),
            "net_payout": str(self.net_payout),
            "taxable_amount": str(self.taxable_amount),
        }


@dataclass
class EarningsSummary:
    """A provider's earnings across completed bookings."""

    provider_id: int
    completed_jobs: int = 0
    unpaid_jobs: int = 0
    total: PayoutCalculation = field(default_factory=PayoutCalculation)
    unpaid: PayoutCalculation = field(default_factory=PayoutCalculation)
    paid_out_total: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "completed_jobs": self.completed_jobs,
            "unpaid_jobs": self.unpaid_jobs,
            "total": self.total.to_dict(),
            "unpaid": self.unpaid.to_dict(),
            "paid_out_total": str(self.paid_out_total),
        }


# =========================================================================
# Core calculations
# =========================================================================


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_commission(financials: ServiceFinancials) -> Decimal:
    """Return the platform's commission for one job."""
    price = Decimal(str(financials.service_price))
    if financials.service_type == "subscription":
        return SUBSCRIPTION_COMMISSION
    if financials.is_emergency:
        rate = EMERGENCY_COMMISSION_RATE
    else:
        rate = (
            Decimal(str(financials.commission_rate))
            if financials.commission_rate
            else ONE_OFF_COMMISSION_RATE
        )
    return _money(price * rate)


def calculate_payout(financials: ServiceFinancials) -> PayoutCalculation:
    """
    Calculate the provider's payout for a single job.

    Args:
        financials: Price, service type, emergency flag and optional
                    commission-rate override for the job.

    Returns:
        A PayoutCalculation. ``net_payout`` is clamped at zero, so a
        subscription job priced under the fixed commission pays nothing.
    """
    price = Decimal(str(financials.service_price))
    commission = calculate_commission(financials)

    gross = price - commission
    income_tax = _money(gross * INCOME_TAX_RATE)
    withholding = _money(gross * WITHHOLDING_TAX_RATE)
    net = gross - income_tax - withholding

    return PayoutCalculation(
        gross_amount=gross,
        platform_commission=commission,
        income_tax=income_tax,
        withholding_tax=withholding,
        net_payout=max(ZERO, net),
        taxable_amount=gross,
    )


def calculate_batch_payout(items: list[ServiceFinancials]) -> PayoutCalculation:
    """Sum ``calculate_payout`` over several jobs; empty input is all zeros."""
    total = PayoutCalculation()
    for item in items:
        calc = calculate_payout(item)
        total.gross_amount += calc.gross_amount
        total.platform_commission += calc.platform_commission
        total.income_tax += calc.income_tax
        total.withholding_tax += calc.withholding_tax
        total.net_payout += calc.net_payout
        total.taxable_amount += calc.taxable_amount
    return total


def calculate_vat(amount: Decimal) -> Decimal:
    """Return the VAT component on an amount."""
    return _money(Decimal(str(amount)) * VAT_RATE)


def calculate_performance_bonus(
    net_amount: Decimal, rating: Decimal | None, threshold: Decimal | None,
    percentage: Decimal | None,
) -> Decimal:
    """
    Return the bonus earned by a provider whose rating meets the threshold.

    A missing rating, threshold or percentage earns nothing.
    """
    if rating is None or threshold is None or not percentage:
        return ZERO
    if Decimal(str(rating)) < Decimal(str(threshold)):
        return ZERO
    return _money(Decimal(str(net_amount)) * Decimal(str(percentage)) / 100)


def get_payout_schedule(frequency: str, from_date: date) -> date:
    """
    Return the next payout date after ``from_date`` for a frequency.

    Raises:
        ValueError: If the frequency is not weekly, bi-weekly or monthly.
    """
    if frequency == "weekly":
        return from_date + relativedelta(days=7)
    if frequency == "bi-weekly":
        return from_date + relativedelta(days=14)
    if frequency == "monthly":
        return from_date + relativedelta(months=1)
    raise ValueError(
        f"Unknown payout frequency '{frequency}'. "
        f"Valid options: {', '.join(PAYOUT_FREQUENCIES)}"
    )


def format_currency(amount) -> str:
    """Format an amount as ``N$x.xx`` without thousands separators."""
    return f"N${_money(Decimal(str(amount)))}"


def financials_for_booking(booking) -> ServiceFinancials:
    """
    Build the payout inputs for a completed booking.

    Package-covered bookings carry no client charge, so they are priced
    at the service's list price.
    """
    service = booking.service
    rate = None
    if service is not None and service.commission_percentage is not None:
        rate = Decimal(str(service.commission_percentage)) / 100
    price = Decimal(str(booking.total_amount or 0))
    if booking.job_type == "subscription" and service is not None:
        price = Decimal(str(service.client_price))
    return ServiceFinancials(
        service_price=price,
        service_type=booking.job_type or "one-off",
        is_emergency=bool(booking.emergency_booking),
        commission_rate=rate,
    )
