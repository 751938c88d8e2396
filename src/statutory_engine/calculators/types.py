"""Type definitions for the statutory calculation pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union
from uuid import UUID

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def window_contains(start: date | None, end: date | None, as_of_date: date) -> bool:
    """Inclusive start, inclusive or open-ended end."""
    if start is not None and start > as_of_date:
        return False
    if end is not None and end < as_of_date:
        return False
    return True


class DeductionKind(str, Enum):
    """Statutory deduction kinds.

    INCOME_TAX is processed last and cumulatively; every other kind is
    processed first against raw gross pay.
    """

    INCOME_TAX = "income_tax"
    CONTRIBUTION = "contribution"
    LEVY = "levy"
    OTHER = "other"


class CalculationMethod(str, Enum):
    """How a deduction line was computed."""

    PERCENTAGE = "percentage"
    PER_UNIT = "per_unit"
    FIXED = "fixed"
    CUMULATIVE = "cumulative"  # Income-tax lines only


class ReliefKind(str, Enum):
    """Effect of a relief on the tax computation."""

    REDUCES_TAXABLE_INCOME = "reduces_taxable_income"
    TAX_CREDIT = "tax_credit"


class ReliefSource(str, Enum):
    """Where a calculated relief came from."""

    STATUTORY = "statutory"
    SCHEME = "scheme"


# ===== Band rates (one variant per calculation method) =====


@dataclass(frozen=True)
class PercentageRate:
    """Rates as decimals, e.g. 0.03 for 3%."""

    employee_rate: Decimal = ZERO
    employer_rate: Decimal = ZERO

    method: ClassVar[CalculationMethod] = CalculationMethod.PERCENTAGE

    def amounts(self, gross_pay: Decimal, unit_count: int) -> tuple[Decimal, Decimal]:
        return gross_pay * self.employee_rate, gross_pay * self.employer_rate


@dataclass(frozen=True)
class PerUnitRate:
    """Amount per period unit (e.g. per Monday or per week in the period)."""

    employee_amount: Decimal = ZERO
    employer_amount: Decimal = ZERO

    method: ClassVar[CalculationMethod] = CalculationMethod.PER_UNIT

    def amounts(self, gross_pay: Decimal, unit_count: int) -> tuple[Decimal, Decimal]:
        units = Decimal(max(unit_count, 0))
        return self.employee_amount * units, self.employer_amount * units


@dataclass(frozen=True)
class FixedRate:
    """Flat amount for the period."""

    employee_amount: Decimal = ZERO
    employer_amount: Decimal = ZERO

    method: ClassVar[CalculationMethod] = CalculationMethod.FIXED

    def amounts(self, gross_pay: Decimal, unit_count: int) -> tuple[Decimal, Decimal]:
        return self.employee_amount, self.employer_amount


BandRate = Union[PercentageRate, PerUnitRate, FixedRate]


# ===== Reference data =====


@dataclass(frozen=True)
class StatutoryDeductionType:
    """A government-mandated deduction configured for a country."""

    id: UUID
    code: str
    name: str
    kind: DeductionKind
    country: str
    start_date: date | None = None
    end_date: date | None = None

    @property
    def is_income_tax(self) -> bool:
        return self.kind == DeductionKind.INCOME_TAX

    def is_effective_on(self, as_of_date: date) -> bool:
        return window_contains(self.start_date, self.end_date, as_of_date)


@dataclass(frozen=True)
class RateBand:
    """Income range with the rate or amount that applies inside it."""

    id: UUID
    deduction_type_id: UUID
    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    rate: BandRate
    min_age: int | None = None
    max_age: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True
    pay_frequency: str | None = None  # None = any frequency
    name: str = ""

    @property
    def calculation_method(self) -> CalculationMethod:
        return self.rate.method

    def contains(self, amount: Decimal) -> bool:
        """Check if an amount falls inside the band (both ends inclusive)."""
        if amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True

    def admits_age(self, age: int | None) -> bool:
        if age is None:
            return True
        if self.min_age is not None and age < self.min_age:
            return False
        if self.max_age is not None and age > self.max_age:
            return False
        return True

    def applies_to_frequency(self, pay_frequency: str | None) -> bool:
        if pay_frequency is None or self.pay_frequency is None:
            return True
        return self.pay_frequency == pay_frequency

    def is_effective_on(self, as_of_date: date) -> bool:
        return window_contains(self.start_date, self.end_date, as_of_date)


@dataclass(frozen=True)
class OpeningBalances:
    """Year-to-date figures carried into the current period."""

    employee_id: UUID
    tax_year: int
    ytd_taxable_income: Decimal = ZERO
    ytd_tax_paid: Decimal = ZERO
    ytd_gross_earnings: Decimal = ZERO
    ytd_reliefs: Mapping[str, Decimal] = field(default_factory=dict)

    @classmethod
    def empty(cls, employee_id: UUID, tax_year: int) -> OpeningBalances:
        """Balances for an employee's first period in the tax year."""
        return cls(employee_id=employee_id, tax_year=tax_year)

    def normalized(self) -> OpeningBalances:
        """Return a copy with negative figures treated as zero."""
        return replace(
            self,
            ytd_taxable_income=max(self.ytd_taxable_income, ZERO),
            ytd_tax_paid=max(self.ytd_tax_paid, ZERO),
            ytd_gross_earnings=max(self.ytd_gross_earnings, ZERO),
            ytd_reliefs={k: max(v, ZERO) for k, v in self.ytd_reliefs.items()},
        )

    def relief_claimed(self, source_code: str) -> Decimal:
        return self.ytd_reliefs.get(source_code, ZERO)


@dataclass(frozen=True)
class ReliefRule:
    """Relief granted on a statutory contribution (e.g. NIS paid)."""

    id: UUID
    country: str
    statutory_code: str
    kind: ReliefKind
    relief_percentage: Decimal = HUNDRED  # Percent of the contribution, 0-100
    applies_to_employee_contribution: bool = True
    applies_to_employer_contribution: bool = False
    period_cap: Decimal | None = None
    annual_cap: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def is_effective_on(self, as_of_date: date) -> bool:
        return self.is_active and window_contains(self.start_date, self.end_date, as_of_date)


# ===== Relief scheme formulas =====


@dataclass(frozen=True)
class FixedReliefFormula:
    amount: Decimal

    def compute(self, gross_pay: Decimal, contribution_amount: Decimal | None) -> Decimal:
        return self.amount


@dataclass(frozen=True)
class IncomePercentageFormula:
    percentage: Decimal  # 0-100

    def compute(self, gross_pay: Decimal, contribution_amount: Decimal | None) -> Decimal:
        return gross_pay * self.percentage / HUNDRED


@dataclass(frozen=True)
class ContributionPercentageFormula:
    """Percentage of the amount the employee contributes under the enrolment."""

    percentage: Decimal  # 0-100

    def compute(self, gross_pay: Decimal, contribution_amount: Decimal | None) -> Decimal:
        if contribution_amount is None:
            return ZERO
        return contribution_amount * self.percentage / HUNDRED


ReliefFormula = Union[FixedReliefFormula, IncomePercentageFormula, ContributionPercentageFormula]


@dataclass(frozen=True)
class ReliefScheme:
    """Relief scheme employees can enrol in (pension, mortgage, tuition...)."""

    id: UUID
    country: str
    scheme_code: str
    name: str
    kind: ReliefKind
    formula: ReliefFormula
    min_age: int | None = None
    max_age: int | None = None
    period_cap: Decimal | None = None
    annual_cap: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def admits_age(self, age: int | None) -> bool:
        if age is None:
            return True
        if self.min_age is not None and age < self.min_age:
            return False
        if self.max_age is not None and age > self.max_age:
            return False
        return True

    def is_effective_on(self, as_of_date: date) -> bool:
        return self.is_active and window_contains(self.start_date, self.end_date, as_of_date)


@dataclass(frozen=True)
class EmployeeReliefEnrollment:
    """Links an employee to a relief scheme."""

    id: UUID
    employee_id: UUID
    scheme_code: str
    contribution_amount: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def is_effective_on(self, as_of_date: date) -> bool:
        return self.is_active and window_contains(self.start_date, self.end_date, as_of_date)


@dataclass(frozen=True)
class RuleSet:
    """All reference data for one country on one date.

    Immutable so a single instance can be shared by concurrent
    calculations.
    """

    country_code: str
    effective_date: date
    types: tuple[StatutoryDeductionType, ...] = ()
    bands: tuple[RateBand, ...] = ()
    relief_rules: tuple[ReliefRule, ...] = ()
    schemes: tuple[ReliefScheme, ...] = ()

    @classmethod
    def empty(cls, country_code: str, effective_date: date) -> RuleSet:
        return cls(country_code=country_code, effective_date=effective_date)

    @property
    def is_empty(self) -> bool:
        return not self.types


# ===== Calculation output =====


@dataclass(frozen=True)
class CalculatedStatutory:
    """One realised deduction line."""

    code: str
    name: str
    kind: DeductionKind
    employee_amount: Decimal
    employer_amount: Decimal
    calculation_method: CalculationMethod
    band_id: UUID | None = None

    # Income-tax lines only
    ytd_taxable_income: Decimal | None = None
    ytd_tax_paid: Decimal | None = None
    tax_relief_amount: Decimal | None = None
    tax_before_credits: Decimal | None = None

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for hashing (deterministic ordering)."""
        return {
            "code": self.code,
            "kind": self.kind.value,
            "calculation_method": self.calculation_method.value,
            "band_id": str(self.band_id) if self.band_id else None,
            "employee_amount": str(self.employee_amount),
            "employer_amount": str(self.employer_amount),
        }


@dataclass(frozen=True)
class CalculatedRelief:
    """A relief derived from a contribution or an enrolled scheme."""

    source_code: str
    amount: Decimal
    kind: ReliefKind
    source: ReliefSource

    @property
    def reduces_taxable_income(self) -> bool:
        return self.kind == ReliefKind.REDUCES_TAXABLE_INCOME

    @property
    def is_tax_credit(self) -> bool:
        return self.kind == ReliefKind.TAX_CREDIT


@dataclass(frozen=True)
class PeriodTax:
    """Outcome of the cumulative year-to-date tax reconciliation."""

    ytd_taxable_before: Decimal
    ytd_taxable_after: Decimal
    ytd_tax_before: Decimal
    total_tax_due: Decimal
    period_tax: Decimal


@dataclass
class StatutoryCalculationResult:
    """Result of calculating statutory deductions for one employee and period."""

    employee_id: UUID
    country_code: str
    effective_date: date
    gross_pay: Decimal
    lines: list[CalculatedStatutory]
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal
    reliefs: list[CalculatedRelief]
    total_relief: Decimal
    adjusted_taxable_income: Decimal
    total_tax_credits: Decimal
    closing_balances: OpeningBalances
    warnings: list[str] = field(default_factory=list)
    rules_fingerprint: str = ""
    calculation_id: UUID | None = None

    @property
    def income_tax_line(self) -> CalculatedStatutory | None:
        return next((l for l in self.lines if l.kind == DeductionKind.INCOME_TAX), None)

    @property
    def income_tax(self) -> Decimal:
        line = self.income_tax_line
        return line.employee_amount if line else ZERO

    @property
    def non_tax_lines(self) -> list[CalculatedStatutory]:
        return [l for l in self.lines if l.kind != DeductionKind.INCOME_TAX]
