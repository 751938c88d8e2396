"""Unit tests for CumulativeTaxCalculator.

Covers the progressive walk and the year-to-date reconciliation.
"""

from uuid import uuid4

import pytest

from builders import D, fixed_band, income_tax_schedule, percentage_band

from statutory_engine.calculators.tax_calculator import CumulativeTaxCalculator
from statutory_engine.calculators.types import OpeningBalances

TWO_BAND = [("0", "50", "0"), ("50", None, "0.20")]


class TestCumulativeTax:
    """Test the progressive band walk."""

    def test_single_open_band(self):
        """Single open band taxes the whole amount."""
        tax_type, bands = income_tax_schedule([("0", None, "0.10")])

        tax = CumulativeTaxCalculator.cumulative_tax(D("1000"), bands, tax_type.id)

        assert tax == D("100.00")

    def test_two_bands(self):
        """Only income above the nil band is taxed."""
        tax_type, bands = income_tax_schedule(TWO_BAND)

        assert CumulativeTaxCalculator.cumulative_tax(D("100"), bands, tax_type.id) == D("10.00")
        assert CumulativeTaxCalculator.cumulative_tax(D("200"), bands, tax_type.id) == D("30.00")

    def test_three_bands(self):
        """Each slice is taxed at its own band's rate."""
        tax_type, bands = income_tax_schedule(
            [("0", "1000", "0.10"), ("1000", "5000", "0.20"), ("5000", None, "0.30")]
        )

        # 1000 * 0.10 + 4000 * 0.20 + 1000 * 0.30
        tax = CumulativeTaxCalculator.cumulative_tax(D("6000"), bands, tax_type.id)

        assert tax == D("1200.00")

    @pytest.mark.parametrize("income", ["0", "-10"])
    def test_no_income_no_tax(self, income):
        """Zero or negative income yields zero."""
        tax_type, bands = income_tax_schedule(TWO_BAND)

        assert CumulativeTaxCalculator.cumulative_tax(D(income), bands, tax_type.id) == D("0")

    def test_no_bands_no_tax(self):
        """A type without bands owes nothing."""
        assert CumulativeTaxCalculator.cumulative_tax(D("1000"), [], uuid4()) == D("0")

    def test_gap_between_bands_untaxed(self):
        """Income falling in a gap between bands is not taxed."""
        tax_type, bands = income_tax_schedule([("0", "100", "0.10"), ("200", None, "0.50")])

        # 100 * 0.10 + (300 - 200) * 0.50
        tax = CumulativeTaxCalculator.cumulative_tax(D("300"), bands, tax_type.id)

        assert tax == D("60.00")

    def test_bands_given_out_of_order(self):
        """Bands are walked in min_amount order regardless of input order."""
        tax_type, bands = income_tax_schedule(TWO_BAND)

        tax = CumulativeTaxCalculator.cumulative_tax(D("100"), list(reversed(bands)), tax_type.id)

        assert tax == D("10.00")

    def test_rounds_to_cents(self):
        """Tax is rounded half up to cents."""
        tax_type, bands = income_tax_schedule([("0", None, "0.125")])

        tax = CumulativeTaxCalculator.cumulative_tax(D("0.10"), bands, tax_type.id)

        # 0.0125 -> 0.01
        assert tax == D("0.01")

    def test_pay_frequency_schedule(self):
        """Only the schedule for the run's frequency is walked."""
        tax_type, weekly = income_tax_schedule([("0", None, "0.10")], pay_frequency="weekly")
        monthly = [percentage_band(tax_type.id, "0", None, "0.20", pay_frequency="monthly")]

        tax = CumulativeTaxCalculator.cumulative_tax(
            D("100"), weekly + monthly, tax_type.id, pay_frequency="monthly"
        )

        assert tax == D("20.00")

    def test_non_percentage_band_contributes_nothing(self):
        """A fixed band in a tax schedule adds no tax."""
        tax_type, bands = income_tax_schedule([("0", "100", "0.10")])
        bands.append(fixed_band(tax_type.id, "999", min_amount="100"))

        tax = CumulativeTaxCalculator.cumulative_tax(D("500"), bands, tax_type.id)

        assert tax == D("10.00")


class TestPeriodTax:
    """Test year-to-date reconciliation."""

    def test_first_period(self):
        """Period one: no prior YTD, tax equals cumulative tax."""
        tax_type, bands = income_tax_schedule(TWO_BAND)
        calc = CumulativeTaxCalculator()

        period = calc.period_tax(D("100"), None, bands, tax_type.id)

        assert period.ytd_taxable_before == D("0")
        assert period.ytd_taxable_after == D("100")
        assert period.total_tax_due == D("10.00")
        assert period.period_tax == D("10.00")

    def test_second_period(self):
        """Period two pays the difference between cumulative tax and tax paid."""
        tax_type, bands = income_tax_schedule(TWO_BAND)
        opening = OpeningBalances(
            employee_id=uuid4(),
            tax_year=2024,
            ytd_taxable_income=D("100"),
            ytd_tax_paid=D("10"),
        )

        period = CumulativeTaxCalculator().period_tax(D("100"), opening, bands, tax_type.id)

        assert period.ytd_taxable_after == D("200")
        assert period.total_tax_due == D("30.00")
        assert period.period_tax == D("20.00")

    def test_overpaid_ytd_floors_at_zero(self):
        """When more was withheld than is owed, the period tax is zero, not a refund."""
        tax_type, bands = income_tax_schedule(TWO_BAND)
        opening = OpeningBalances(
            employee_id=uuid4(),
            tax_year=2024,
            ytd_taxable_income=D("100"),
            ytd_tax_paid=D("500"),
        )

        period = CumulativeTaxCalculator().period_tax(D("100"), opening, bands, tax_type.id)

        assert period.period_tax == D("0")

    def test_negative_balances_treated_as_zero(self):
        """Negative opening figures are read as zero."""
        tax_type, bands = income_tax_schedule(TWO_BAND)
        opening = OpeningBalances(
            employee_id=uuid4(),
            tax_year=2024,
            ytd_taxable_income=D("-100"),
            ytd_tax_paid=D("-5"),
        )

        period = CumulativeTaxCalculator().period_tax(D("100"), opening, bands, tax_type.id)

        assert period.ytd_taxable_before == D("0")
        assert period.period_tax == D("10.00")
