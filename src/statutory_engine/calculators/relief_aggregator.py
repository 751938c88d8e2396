"""Tax relief and credit aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from statutory_engine.calculators.line_builder import LineBuilder
from statutory_engine.calculators.types import (
    HUNDRED,
    ZERO,
    CalculatedRelief,
    CalculatedStatutory,
    DeductionKind,
    EmployeeReliefEnrollment,
    OpeningBalances,
    ReliefKind,
    ReliefRule,
    ReliefScheme,
    ReliefSource,
)

logger = logging.getLogger(__name__)


class ReliefAggregator:
    """Computes reliefs from statutory contributions and enrolled schemes.

    Sources are combined in a fixed order:
    1. Reliefs on this period's finalised non-tax deduction lines
    2. Reliefs from the employee's active scheme enrolments

    Each relief either reduces taxable income or is a tax credit, never
    both. Amounts are clamped at zero and limited by the source's period
    cap and by what is left of its annual cap.
    """

    def compute_reliefs(
        self,
        non_tax_deductions: Sequence[CalculatedStatutory],
        relief_rules: Iterable[ReliefRule],
        schemes: Iterable[ReliefScheme],
        enrollments: Iterable[EmployeeReliefEnrollment],
        gross_pay: Decimal,
        employee_age: int | None,
        opening_balances: OpeningBalances | None = None,
        effective_date: date | None = None,
        warnings: list[str] | None = None,
    ) -> list[CalculatedRelief]:
        """Return all reliefs for the period as a flat list."""
        claimed: dict[str, Decimal] = {}
        reliefs: list[CalculatedRelief] = []

        rules_by_code = {
            r.statutory_code: r
            for r in relief_rules
            if _is_effective(r, effective_date)
        }

        # 1) Statutory contribution reliefs
        for line in non_tax_deductions:
            if line.kind == DeductionKind.INCOME_TAX:
                continue
            rule = rules_by_code.get(line.code)
            if rule is None:
                continue

            base = ZERO
            if rule.applies_to_employee_contribution:
                base += line.employee_amount
            if rule.applies_to_employer_contribution:
                base += line.employer_amount

            amount = base * rule.relief_percentage / HUNDRED
            relief = self._build_relief(
                source_code=line.code,
                amount=amount,
                kind=rule.kind,
                source=ReliefSource.STATUTORY,
                period_cap=rule.period_cap,
                annual_cap=rule.annual_cap,
                opening_balances=opening_balances,
                claimed=claimed,
            )
            if relief is not None:
                reliefs.append(relief)

        # 2) Scheme reliefs
        schemes_by_code = {
            s.scheme_code: s for s in schemes if _is_effective(s, effective_date)
        }

        for enrollment in enrollments:
            if not _is_effective(enrollment, effective_date):
                continue

            scheme = schemes_by_code.get(enrollment.scheme_code)
            if scheme is None:
                message = (
                    f"Enrolment {enrollment.id} references scheme "
                    f"'{enrollment.scheme_code}' which is not in force"
                )
                logger.warning(message)
                if warnings is not None:
                    warnings.append(message)
                continue

            if not scheme.admits_age(employee_age):
                continue

            amount = scheme.formula.compute(max(gross_pay, ZERO), enrollment.contribution_amount)
            relief = self._build_relief(
                source_code=scheme.scheme_code,
                amount=amount,
                kind=scheme.kind,
                source=ReliefSource.SCHEME,
                period_cap=scheme.period_cap,
                annual_cap=scheme.annual_cap,
                opening_balances=opening_balances,
                claimed=claimed,
            )
            if relief is not None:
                reliefs.append(relief)

        return reliefs

    @staticmethod
    def _build_relief(
        source_code: str,
        amount: Decimal,
        kind: ReliefKind,
        source: ReliefSource,
        period_cap: Decimal | None,
        annual_cap: Decimal | None,
        opening_balances: OpeningBalances | None,
        claimed: dict[str, Decimal],
    ) -> CalculatedRelief | None:
        amount = max(amount, ZERO)

        if period_cap is not None:
            amount = min(amount, period_cap)

        already = claimed.get(source_code, ZERO)
        if annual_cap is not None:
            ytd = opening_balances.relief_claimed(source_code) if opening_balances else ZERO
            remaining = max(annual_cap - max(ytd, ZERO) - already, ZERO)
            amount = min(amount, remaining)

        amount = LineBuilder.clamp(amount)
        if amount == 0:
            return None

        claimed[source_code] = already + amount
        return CalculatedRelief(
            source_code=source_code,
            amount=amount,
            kind=kind,
            source=source,
        )


def _is_effective(
    item: ReliefRule | ReliefScheme | EmployeeReliefEnrollment,
    effective_date: date | None,
) -> bool:
    if effective_date is None:
        return item.is_active
    return item.is_effective_on(effective_date)
