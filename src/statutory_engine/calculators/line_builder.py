"""Deduction line construction with cent rounding and deterministic hashing."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from statutory_engine.calculators.types import (
    ZERO,
    CalculatedRelief,
    CalculatedStatutory,
    CalculationMethod,
    PeriodTax,
    RateBand,
    StatutoryDeductionType,
)


class LineBuilder:
    """Builds deduction lines and totals.

    Conventions (non-negotiable):
    - All output amounts are positive or zero, never negative
    - Internal compute keeps full Decimal precision
    - Amounts are rounded to cents (ROUND_HALF_UP) when a line is built
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_to_cents(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places (cents)."""
        return amount.quantize(LineBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def clamp(amount: Decimal) -> Decimal:
        """Round to cents and clamp at zero."""
        return max(LineBuilder.round_to_cents(amount), ZERO)

    @staticmethod
    def create_band_line(
        deduction_type: StatutoryDeductionType,
        band: RateBand,
        employee_amount: Decimal,
        employer_amount: Decimal,
    ) -> CalculatedStatutory | None:
        """Create a non-income-tax line, or None when nothing is owed."""
        employee = LineBuilder.clamp(employee_amount)
        employer = LineBuilder.clamp(employer_amount)
        if employee == 0 and employer == 0:
            return None

        return CalculatedStatutory(
            code=deduction_type.code,
            name=deduction_type.name,
            kind=deduction_type.kind,
            employee_amount=employee,
            employer_amount=employer,
            calculation_method=band.calculation_method,
            band_id=band.id,
        )

    @staticmethod
    def create_income_tax_line(
        deduction_type: StatutoryDeductionType,
        period: PeriodTax,
        credits_applied: Decimal,
        final_tax: Decimal,
    ) -> CalculatedStatutory | None:
        """Create the cumulative income-tax line, or None when no tax is due."""
        if final_tax <= 0:
            return None

        return CalculatedStatutory(
            code=deduction_type.code,
            name=deduction_type.name,
            kind=deduction_type.kind,
            employee_amount=final_tax,
            employer_amount=ZERO,
            calculation_method=CalculationMethod.CUMULATIVE,
            ytd_taxable_income=period.ytd_taxable_after,
            ytd_tax_paid=period.ytd_tax_before + final_tax,
            tax_relief_amount=credits_applied if credits_applied > 0 else None,
            tax_before_credits=period.period_tax,
        )

    @staticmethod
    def sum_employee(lines: Iterable[CalculatedStatutory]) -> Decimal:
        total = ZERO
        for line in lines:
            total += max(line.employee_amount, ZERO)
        return LineBuilder.round_to_cents(total)

    @staticmethod
    def sum_employer(lines: Iterable[CalculatedStatutory]) -> Decimal:
        total = ZERO
        for line in lines:
            total += max(line.employer_amount, ZERO)
        return LineBuilder.round_to_cents(total)

    @staticmethod
    def sum_reliefs(reliefs: Iterable[CalculatedRelief]) -> tuple[Decimal, Decimal]:
        """Split relief amounts into (taxable-income reduction, tax credits)."""
        reduction = ZERO
        credits = ZERO
        for relief in reliefs:
            amount = max(relief.amount, ZERO)
            if relief.reduces_taxable_income:
                reduction += amount
            elif relief.is_tax_credit:
                credits += amount
        return LineBuilder.round_to_cents(reduction), LineBuilder.round_to_cents(credits)

    @staticmethod
    def compute_line_hash(line: CalculatedStatutory) -> str:
        """Compute deterministic hash for a deduction line."""
        json_str = json.dumps(line.to_canonical_dict(), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def fingerprint(data: Any) -> str:
        """Hash any JSON-serialisable structure deterministically."""
        json_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def rules_fingerprint(rule_ids: Iterable[UUID | str]) -> str:
        """Compute fingerprint of all rules used in a calculation."""
        return LineBuilder.fingerprint(sorted(str(r) for r in rule_ids))
