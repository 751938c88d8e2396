"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

from statutory_engine.calculators.types import (
    BandRate,
    CalculatedRelief,
    CalculatedStatutory,
    ContributionPercentageFormula,
    DeductionKind,
    EmployeeReliefEnrollment,
    FixedRate,
    FixedReliefFormula,
    IncomePercentageFormula,
    OpeningBalances,
    PercentageRate,
    PerUnitRate,
    RateBand,
    ReliefFormula,
    ReliefRule,
    ReliefScheme,
    StatutoryCalculationResult,
    StatutoryDeductionType,
)
from statutory_engine.rules.validation import relief_kind_from_flags

ZERO = Decimal("0")


# ============================================================================
# Rule payloads
# ============================================================================


class StatutoryTypeIn(BaseModel):
    """Statutory deduction type."""

    id: UUID
    code: str
    name: str
    kind: DeductionKind
    country: str
    start_date: date | None = None
    end_date: date | None = None

    def to_domain(self) -> StatutoryDeductionType:
        return StatutoryDeductionType(**self.model_dump())


class RateBandIn(BaseModel):
    """Rate band; only the fields of its calculation method are used."""

    id: UUID
    deduction_type_id: UUID
    name: str = ""
    min_amount: Decimal = ZERO
    max_amount: Decimal | None = None
    calculation_method: Literal["percentage", "per_unit", "fixed"] = "percentage"
    employee_rate: Decimal | None = None
    employer_rate: Decimal | None = None
    fixed_amount: Decimal | None = None
    employer_fixed_amount: Decimal | None = None
    per_unit_amount: Decimal | None = None
    employer_per_unit_amount: Decimal | None = None
    min_age: int | None = None
    max_age: int | None = None
    pay_frequency: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def to_domain(self) -> RateBand:
        rate: BandRate
        if self.calculation_method == "per_unit":
            rate = PerUnitRate(
                employee_amount=self.per_unit_amount or ZERO,
                employer_amount=self.employer_per_unit_amount or ZERO,
            )
        elif self.calculation_method == "fixed":
            rate = FixedRate(
                employee_amount=self.fixed_amount or ZERO,
                employer_amount=self.employer_fixed_amount or ZERO,
            )
        else:
            rate = PercentageRate(
                employee_rate=self.employee_rate or ZERO,
                employer_rate=self.employer_rate or ZERO,
            )

        return RateBand(
            id=self.id,
            deduction_type_id=self.deduction_type_id,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            rate=rate,
            min_age=self.min_age,
            max_age=self.max_age,
            start_date=self.start_date,
            end_date=self.end_date,
            is_active=self.is_active,
            pay_frequency=self.pay_frequency,
            name=self.name,
        )


class ReliefRuleIn(BaseModel):
    """Relief on a statutory contribution."""

    id: UUID
    country: str
    statutory_code: str
    reduces_taxable_income: bool = True
    is_tax_credit: bool = False
    relief_percentage: Decimal = Decimal("100")
    applies_to_employee_contribution: bool = True
    applies_to_employer_contribution: bool = False
    period_cap: Decimal | None = None
    annual_cap: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def to_domain(self) -> ReliefRule:
        return ReliefRule(
            id=self.id,
            country=self.country,
            statutory_code=self.statutory_code,
            kind=relief_kind_from_flags(self.reduces_taxable_income, self.is_tax_credit, self.id),
            relief_percentage=self.relief_percentage,
            applies_to_employee_contribution=self.applies_to_employee_contribution,
            applies_to_employer_contribution=self.applies_to_employer_contribution,
            period_cap=self.period_cap,
            annual_cap=self.annual_cap,
            start_date=self.start_date,
            end_date=self.end_date,
            is_active=self.is_active,
        )


class ReliefSchemeIn(BaseModel):
    """Relief scheme."""

    id: UUID
    country: str
    scheme_code: str
    name: str
    reduces_taxable_income: bool = True
    is_tax_credit: bool = False
    calculation_method: Literal[
        "fixed_amount", "percentage_of_income", "percentage_of_contribution"
    ] = "fixed_amount"
    relief_value: Decimal | None = None
    relief_percentage: Decimal | None = None
    min_age: int | None = None
    max_age: int | None = None
    period_cap: Decimal | None = None
    annual_cap: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def to_domain(self) -> ReliefScheme:
        formula: ReliefFormula
        if self.calculation_method == "percentage_of_income":
            formula = IncomePercentageFormula(percentage=self.relief_percentage or ZERO)
        elif self.calculation_method == "percentage_of_contribution":
            formula = ContributionPercentageFormula(percentage=self.relief_percentage or ZERO)
        else:
            formula = FixedReliefFormula(amount=self.relief_value or ZERO)

        return ReliefScheme(
            id=self.id,
            country=self.country,
            scheme_code=self.scheme_code,
            name=self.name,
            kind=relief_kind_from_flags(self.reduces_taxable_income, self.is_tax_credit, self.id),
            formula=formula,
            min_age=self.min_age,
            max_age=self.max_age,
            period_cap=self.period_cap,
            annual_cap=self.annual_cap,
            start_date=self.start_date,
            end_date=self.end_date,
            is_active=self.is_active,
        )


class EnrollmentIn(BaseModel):
    """Employee enrolment in a relief scheme."""

    id: UUID
    employee_id: UUID
    scheme_code: str
    contribution_amount: Decimal | None = None
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool = True

    def to_domain(self) -> EmployeeReliefEnrollment:
        return EmployeeReliefEnrollment(**self.model_dump())


class OpeningBalancesSchema(BaseModel):
    """Year-to-date balances (request and response)."""

    employee_id: UUID
    tax_year: int
    ytd_taxable_income: Decimal = ZERO
    ytd_tax_paid: Decimal = ZERO
    ytd_gross_earnings: Decimal = ZERO
    ytd_reliefs: dict[str, Decimal] = Field(default_factory=dict)

    def to_domain(self) -> OpeningBalances:
        return OpeningBalances(**self.model_dump())


# ============================================================================
# Requests
# ============================================================================


class StatutoryCalculateRequest(BaseModel):
    """Calculation with the rule data supplied inline."""

    employee_id: UUID
    country_code: str
    gross_pay: Decimal
    effective_date: date
    period_unit_count: int = Field(default=0, ge=0)
    employee_age: int | None = Field(default=None, ge=0)
    pay_frequency: str | None = None
    opening_balances: OpeningBalancesSchema | None = None
    statutory_types: list[StatutoryTypeIn] = Field(default_factory=list)
    rate_bands: list[RateBandIn] = Field(default_factory=list)
    relief_rules: list[ReliefRuleIn] = Field(default_factory=list)
    schemes: list[ReliefSchemeIn] = Field(default_factory=list)
    enrollments: list[EnrollmentIn] = Field(default_factory=list)


class EmployeeCalculateRequest(BaseModel):
    """Calculation with rules, enrolments and balances read from the database."""

    country_code: str
    gross_pay: Decimal
    effective_date: date
    period_unit_count: int = Field(default=0, ge=0)
    employee_age: int | None = Field(default=None, ge=0)
    pay_frequency: str | None = None
    tax_year: int | None = None


# ============================================================================
# Responses
# ============================================================================


class CalculatedStatutoryResponse(BaseModel):
    """One deduction line."""

    code: str
    name: str
    kind: DeductionKind
    employee_amount: Decimal
    employer_amount: Decimal
    calculation_method: str
    ytd_taxable_income: Decimal | None = None
    ytd_tax_paid: Decimal | None = None
    tax_relief_amount: Decimal | None = None
    tax_before_credits: Decimal | None = None

    @classmethod
    def from_line(cls, line: CalculatedStatutory) -> CalculatedStatutoryResponse:
        return cls(
            code=line.code,
            name=line.name,
            kind=line.kind,
            employee_amount=line.employee_amount,
            employer_amount=line.employer_amount,
            calculation_method=line.calculation_method.value,
            ytd_taxable_income=line.ytd_taxable_income,
            ytd_tax_paid=line.ytd_tax_paid,
            tax_relief_amount=line.tax_relief_amount,
            tax_before_credits=line.tax_before_credits,
        )


class CalculatedReliefResponse(BaseModel):
    """One relief."""

    source_code: str
    source: str
    amount: Decimal
    reduces_taxable_income: bool
    is_tax_credit: bool

    @classmethod
    def from_relief(cls, relief: CalculatedRelief) -> CalculatedReliefResponse:
        return cls(
            source_code=relief.source_code,
            source=relief.source.value,
            amount=relief.amount,
            reduces_taxable_income=relief.reduces_taxable_income,
            is_tax_credit=relief.is_tax_credit,
        )


class StatutoryCalculationResponse(BaseModel):
    """Full statutory calculation result."""

    calculation_id: UUID | None
    employee_id: UUID
    country_code: str
    effective_date: date
    gross_pay: Decimal
    lines: list[CalculatedStatutoryResponse]
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal
    reliefs: list[CalculatedReliefResponse]
    total_relief: Decimal
    adjusted_taxable_income: Decimal
    total_tax_credits: Decimal
    closing_balances: OpeningBalancesSchema
    warnings: list[str]
    rules_fingerprint: str

    @classmethod
    def from_result(cls, result: StatutoryCalculationResult) -> StatutoryCalculationResponse:
        closing = result.closing_balances
        return cls(
            calculation_id=result.calculation_id,
            employee_id=result.employee_id,
            country_code=result.country_code,
            effective_date=result.effective_date,
            gross_pay=result.gross_pay,
            lines=[CalculatedStatutoryResponse.from_line(l) for l in result.lines],
            total_employee_deductions=result.total_employee_deductions,
            total_employer_contributions=result.total_employer_contributions,
            reliefs=[CalculatedReliefResponse.from_relief(r) for r in result.reliefs],
            total_relief=result.total_relief,
            adjusted_taxable_income=result.adjusted_taxable_income,
            total_tax_credits=result.total_tax_credits,
            closing_balances=OpeningBalancesSchema(
                employee_id=closing.employee_id,
                tax_year=closing.tax_year,
                ytd_taxable_income=closing.ytd_taxable_income,
                ytd_tax_paid=closing.ytd_tax_paid,
                ytd_gross_earnings=closing.ytd_gross_earnings,
                ytd_reliefs=dict(closing.ytd_reliefs),
            ),
            warnings=result.warnings,
            rules_fingerprint=result.rules_fingerprint,
        )


class ErrorResponse(BaseModel):
    """Error body."""

    detail: str
    code: str
