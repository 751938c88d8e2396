"""Cumulative (year-to-date) income tax calculation over progressive bands."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from statutory_engine.calculators.band_resolver import BandResolver
from statutory_engine.calculators.line_builder import LineBuilder
from statutory_engine.calculators.types import (
    ZERO,
    OpeningBalances,
    PercentageRate,
    PeriodTax,
    RateBand,
)


class CumulativeTaxCalculator:
    """Calculates income tax on cumulative taxable income.

    Tax for a period is the tax owed on all taxable income so far this tax
    year, less the tax already withheld:

        period_tax = max(0, tax(ytd_income + period_income) - ytd_tax_paid)

    Bonuses, irregular periods and mid-year changes therefore never make
    cumulative withholding drift from what is owed on cumulative income.
    """

    @staticmethod
    def cumulative_tax(
        cumulative_income: Decimal,
        bands: Iterable[RateBand],
        deduction_type_id: UUID,
        pay_frequency: str | None = None,
    ) -> Decimal:
        """Calculate tax using progressive bands."""
        if cumulative_income <= 0:
            return ZERO

        total_tax = ZERO

        for band in BandResolver.bands_for_type(bands, deduction_type_id, pay_frequency):
            if cumulative_income < band.min_amount:
                continue

            if band.max_amount is not None:
                band_top = min(cumulative_income, band.max_amount)
            else:
                band_top = cumulative_income

            taxable_in_band = max(band_top - band.min_amount, ZERO)
            total_tax += taxable_in_band * _employee_rate(band)

            if band.max_amount is None or cumulative_income <= band.max_amount:
                break

        return LineBuilder.round_to_cents(total_tax)

    def period_tax(
        self,
        period_taxable_income: Decimal,
        opening_balances: OpeningBalances | None,
        bands: Iterable[RateBand],
        deduction_type_id: UUID,
        pay_frequency: str | None = None,
    ) -> PeriodTax:
        """Derive this period's tax by reconciling against year-to-date figures."""
        ytd_taxable = opening_balances.ytd_taxable_income if opening_balances else ZERO
        ytd_tax = opening_balances.ytd_tax_paid if opening_balances else ZERO
        ytd_taxable = max(ytd_taxable, ZERO)
        ytd_tax = max(ytd_tax, ZERO)

        ytd_after = ytd_taxable + max(period_taxable_income, ZERO)
        total_due = self.cumulative_tax(ytd_after, bands, deduction_type_id, pay_frequency)

        return PeriodTax(
            ytd_taxable_before=ytd_taxable,
            ytd_taxable_after=ytd_after,
            ytd_tax_before=ytd_tax,
            total_tax_due=total_due,
            period_tax=max(total_due - ytd_tax, ZERO),
        )


def _employee_rate(band: RateBand) -> Decimal:
    # Validation rejects non-percentage income-tax bands at load time.
    if isinstance(band.rate, PercentageRate):
        return band.rate.employee_rate
    return ZERO
