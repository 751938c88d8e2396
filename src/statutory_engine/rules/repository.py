"""Loading of statutory reference data from the database."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.calculators.types import (
    ZERO,
    BandRate,
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
    RuleSet,
    StatutoryDeductionType,
)
from statutory_engine.errors import InvalidRuleData
from statutory_engine.models import (
    EmployeeOpeningBalance,
    EmployeeTaxReliefEnrollment,
    StatutoryRateBand,
    StatutoryTaxReliefRule,
    StatutoryType,
    TaxReliefScheme,
)
from statutory_engine.rules.validation import (
    check_window,
    relief_kind_from_flags,
    validate_rule_set,
)

logger = logging.getLogger(__name__)


class StatutoryRuleRepository:
    """Reads statutory rules, reliefs and balances for the engine.

    Windows are checked on every row of the country before date filtering,
    so an inverted window is reported even when it would never be in force.
    A country with no rows yields an empty rule set, not an error.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load_rules(self, country_code: str, effective_date: date) -> RuleSet:
        """Load deduction types and rate bands in force on a date.

        Raises:
            InvalidRuleData: If any row is malformed or the bands overlap
        """
        types, bands = await self._load_types_and_bands(country_code, effective_date)
        validate_rule_set(types, bands)
        return RuleSet(
            country_code=country_code,
            effective_date=effective_date,
            types=tuple(types),
            bands=tuple(bands),
        )

    async def load_rule_set(self, country_code: str, effective_date: date) -> RuleSet:
        """Load types, bands, relief rules and schemes in force on a date."""
        types, bands = await self._load_types_and_bands(country_code, effective_date)
        relief_rules = await self.fetch_statutory_tax_relief_rules(country_code, effective_date)
        schemes = await self.fetch_tax_relief_schemes(country_code, effective_date)
        validate_rule_set(types, bands, relief_rules, schemes)

        logger.info(
            "Loaded %d statutory types, %d bands, %d relief rules, %d schemes for %s on %s",
            len(types),
            len(bands),
            len(relief_rules),
            len(schemes),
            country_code,
            effective_date,
        )
        return RuleSet(
            country_code=country_code,
            effective_date=effective_date,
            types=tuple(types),
            bands=tuple(bands),
            relief_rules=tuple(relief_rules),
            schemes=tuple(schemes),
        )

    async def fetch_statutory_tax_relief_rules(
        self, country_code: str, effective_date: date
    ) -> list[ReliefRule]:
        """Get relief rules on statutory contributions in force on a date."""
        result = await self.session.execute(
            select(StatutoryTaxReliefRule)
            .where(StatutoryTaxReliefRule.country == country_code)
            .order_by(StatutoryTaxReliefRule.statutory_type_code)
        )
        rules = [_to_relief_rule(row) for row in result.scalars().all()]
        return [r for r in rules if r.is_effective_on(effective_date)]

    async def fetch_tax_relief_schemes(
        self, country_code: str, effective_date: date
    ) -> list[ReliefScheme]:
        """Get relief schemes in force on a date."""
        result = await self.session.execute(
            select(TaxReliefScheme)
            .where(TaxReliefScheme.country == country_code)
            .order_by(TaxReliefScheme.scheme_code)
        )
        schemes = [_to_relief_scheme(row) for row in result.scalars().all()]
        return [s for s in schemes if s.is_effective_on(effective_date)]

    async def fetch_employee_relief_enrollments(
        self, employee_id: UUID, effective_date: date
    ) -> list[EmployeeReliefEnrollment]:
        """Get an employee's active scheme enrolments on a date."""
        result = await self.session.execute(
            select(EmployeeTaxReliefEnrollment)
            .where(
                EmployeeTaxReliefEnrollment.employee_id == employee_id,
                EmployeeTaxReliefEnrollment.is_active.is_(True),
                EmployeeTaxReliefEnrollment.start_date <= effective_date,
                (
                    EmployeeTaxReliefEnrollment.end_date.is_(None)
                    | (EmployeeTaxReliefEnrollment.end_date >= effective_date)
                ),
            )
            .order_by(EmployeeTaxReliefEnrollment.start_date)
        )
        return [_to_enrollment(row) for row in result.scalars().all()]

    async def fetch_opening_balances(
        self, employee_id: UUID, tax_year: int
    ) -> OpeningBalances | None:
        """Get the balances carried into the current period, if any."""
        result = await self.session.execute(
            select(EmployeeOpeningBalance).where(
                EmployeeOpeningBalance.employee_id == employee_id,
                EmployeeOpeningBalance.tax_year == tax_year,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return _to_opening_balances(row)

    async def _load_types_and_bands(
        self, country_code: str, effective_date: date
    ) -> tuple[list[StatutoryDeductionType], list[RateBand]]:
        result = await self.session.execute(
            select(StatutoryType)
            .where(StatutoryType.country == country_code)
            .order_by(StatutoryType.statutory_code)
        )
        all_types = [_to_deduction_type(row) for row in result.scalars().all()]
        if not all_types:
            logger.info("No statutory rules configured for %s", country_code)
            return [], []

        types = [t for t in all_types if t.is_effective_on(effective_date)]
        type_ids = [t.id for t in types]
        if not type_ids:
            return [], []

        result = await self.session.execute(
            select(StatutoryRateBand)
            .where(StatutoryRateBand.statutory_type_id.in_(type_ids))
            .order_by(StatutoryRateBand.statutory_type_id, StatutoryRateBand.min_amount)
        )
        all_bands = [_to_rate_band(row) for row in result.scalars().all()]
        bands = [b for b in all_bands if b.is_effective_on(effective_date)]
        return types, bands


# === Row conversion ===


def _to_deduction_type(row: StatutoryType) -> StatutoryDeductionType:
    check_window(row.start_date, row.end_date, row.statutory_type_id, "Deduction type")
    try:
        kind = DeductionKind(row.statutory_type)
    except ValueError:
        raise InvalidRuleData(
            f"Unknown statutory type '{row.statutory_type}'", row.statutory_type_id
        ) from None

    return StatutoryDeductionType(
        id=row.statutory_type_id,
        code=row.statutory_code,
        name=row.statutory_name,
        kind=kind,
        country=row.country,
        start_date=row.start_date,
        end_date=row.end_date,
    )


def _to_rate_band(row: StatutoryRateBand) -> RateBand:
    check_window(row.start_date, row.end_date, row.rate_band_id, "Rate band")

    rate: BandRate
    if row.calculation_method == "percentage":
        rate = PercentageRate(
            employee_rate=_amount(row.employee_rate),
            employer_rate=_amount(row.employer_rate),
        )
    elif row.calculation_method == "per_unit":
        rate = PerUnitRate(
            employee_amount=_amount(row.per_unit_amount),
            employer_amount=_amount(row.employer_per_unit_amount),
        )
    elif row.calculation_method == "fixed":
        rate = FixedRate(
            employee_amount=_amount(row.fixed_amount),
            employer_amount=_amount(row.employer_fixed_amount),
        )
    else:
        raise InvalidRuleData(
            f"Unknown calculation method '{row.calculation_method}'", row.rate_band_id
        )

    return RateBand(
        id=row.rate_band_id,
        deduction_type_id=row.statutory_type_id,
        min_amount=_amount(row.min_amount),
        max_amount=row.max_amount,
        rate=rate,
        min_age=row.min_age,
        max_age=row.max_age,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=row.is_active,
        pay_frequency=row.pay_frequency,
        name=row.band_name,
    )


def _to_relief_rule(row: StatutoryTaxReliefRule) -> ReliefRule:
    check_window(row.effective_from, row.effective_to, row.relief_rule_id, "Relief rule")
    return ReliefRule(
        id=row.relief_rule_id,
        country=row.country,
        statutory_code=row.statutory_type_code,
        kind=relief_kind_from_flags(
            row.reduces_taxable_income, row.is_tax_credit, row.relief_rule_id
        ),
        relief_percentage=_amount(row.relief_percentage),
        applies_to_employee_contribution=row.applies_to_employee_contribution,
        applies_to_employer_contribution=row.applies_to_employer_contribution,
        period_cap=row.period_cap,
        annual_cap=row.annual_cap,
        start_date=row.effective_from,
        end_date=row.effective_to,
        is_active=row.is_active,
    )


def _to_relief_scheme(row: TaxReliefScheme) -> ReliefScheme:
    check_window(row.effective_from, row.effective_to, row.scheme_id, "Relief scheme")

    formula: ReliefFormula
    if row.calculation_method == "fixed_amount":
        formula = FixedReliefFormula(amount=_amount(row.relief_value))
    elif row.calculation_method == "percentage_of_income":
        formula = IncomePercentageFormula(percentage=_amount(row.relief_percentage))
    elif row.calculation_method == "percentage_of_contribution":
        formula = ContributionPercentageFormula(percentage=_amount(row.relief_percentage))
    else:
        raise InvalidRuleData(
            f"Unknown relief calculation method '{row.calculation_method}'", row.scheme_id
        )

    return ReliefScheme(
        id=row.scheme_id,
        country=row.country,
        scheme_code=row.scheme_code,
        name=row.scheme_name,
        kind=relief_kind_from_flags(row.reduces_taxable_income, row.is_tax_credit, row.scheme_id),
        formula=formula,
        min_age=row.min_age,
        max_age=row.max_age,
        period_cap=row.period_cap,
        annual_cap=row.annual_cap,
        start_date=row.effective_from,
        end_date=row.effective_to,
        is_active=row.is_active,
    )


def _to_enrollment(row: EmployeeTaxReliefEnrollment) -> EmployeeReliefEnrollment:
    return EmployeeReliefEnrollment(
        id=row.enrollment_id,
        employee_id=row.employee_id,
        scheme_code=row.scheme_code,
        contribution_amount=row.contribution_amount,
        start_date=row.start_date,
        end_date=row.end_date,
        is_active=row.is_active,
    )


def _to_opening_balances(row: EmployeeOpeningBalance) -> OpeningBalances:
    return OpeningBalances(
        employee_id=row.employee_id,
        tax_year=row.tax_year,
        ytd_taxable_income=_amount(row.ytd_taxable_income),
        ytd_tax_paid=_amount(row.ytd_income_tax),
        ytd_gross_earnings=_amount(row.ytd_gross_earnings),
        ytd_reliefs={k: Decimal(str(v)) for k, v in (row.ytd_reliefs_json or {}).items()},
    ).normalized()


def _amount(value: Decimal | None) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO
