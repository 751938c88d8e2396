"""Statutory deduction engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from statutory_engine.calculators.band_resolver import BandResolver
from statutory_engine.calculators.line_builder import LineBuilder
from statutory_engine.calculators.relief_aggregator import ReliefAggregator
from statutory_engine.calculators.tax_calculator import CumulativeTaxCalculator
from statutory_engine.calculators.types import (
    ZERO,
    CalculatedRelief,
    CalculatedStatutory,
    EmployeeReliefEnrollment,
    OpeningBalances,
    RateBand,
    ReliefRule,
    ReliefScheme,
    RuleSet,
    StatutoryCalculationResult,
    StatutoryDeductionType,
)
from statutory_engine.config import Settings, get_settings
from statutory_engine.errors import InvalidRuleData

logger = logging.getLogger(__name__)


class StatutoryEngine:
    """Statutory deduction calculation engine.

    Calculation pipeline (fixed order per employee, not configurable):
    1) Non-income-tax deductions, each from its resolved band on raw gross pay
    2) Reliefs from those deductions and from enrolled schemes
    3) Split reliefs into taxable-income reductions and tax credits
    4) Adjusted taxable income = max(0, gross - reductions)
    5) Cumulative income tax on YTD + adjusted income, less credits, floor 0
    6) Assemble lines, totals and the closing YTD balances

    The engine holds no state between calls. Opening balances go in, closing
    balances come out for the caller to persist.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.band_resolver = BandResolver()
        self.tax_calculator = CumulativeTaxCalculator()
        self.relief_aggregator = ReliefAggregator()

    def calculate_with_rule_set(
        self,
        employee_id: UUID,
        rule_set: RuleSet,
        gross_pay: Decimal,
        period_unit_count: int,
        employee_age: int | None,
        opening_balances: OpeningBalances | None,
        enrollments: Sequence[EmployeeReliefEnrollment] = (),
        pay_frequency: str | None = None,
    ) -> StatutoryCalculationResult:
        """Calculate using a pre-loaded rule set."""
        return self.calculate(
            employee_id=employee_id,
            country_code=rule_set.country_code,
            gross_pay=gross_pay,
            statutory_types=rule_set.types,
            rate_bands=rule_set.bands,
            period_unit_count=period_unit_count,
            employee_age=employee_age,
            opening_balances=opening_balances,
            effective_date=rule_set.effective_date,
            relief_rules=rule_set.relief_rules,
            schemes=rule_set.schemes,
            enrollments=enrollments,
            pay_frequency=pay_frequency,
        )

    def calculate(
        self,
        employee_id: UUID,
        country_code: str,
        gross_pay: Decimal,
        statutory_types: Sequence[StatutoryDeductionType],
        rate_bands: Sequence[RateBand],
        period_unit_count: int,
        employee_age: int | None,
        opening_balances: OpeningBalances | None,
        effective_date: date,
        *,
        relief_rules: Sequence[ReliefRule] = (),
        schemes: Sequence[ReliefScheme] = (),
        enrollments: Sequence[EmployeeReliefEnrollment] = (),
        pay_frequency: str | None = None,
    ) -> StatutoryCalculationResult:
        """Calculate all statutory deductions for one employee and period."""
        warnings: list[str] = []
        rule_ids_used: list[str] = []
        gross = max(gross_pay, ZERO)
        balances = self._opening_balances(employee_id, opening_balances, effective_date)

        types = [
            t
            for t in statutory_types
            if t.country.upper() == country_code.upper() and t.is_effective_on(effective_date)
        ]
        bands = [b for b in rate_bands if b.is_effective_on(effective_date)]
        if pay_frequency is None:
            self._require_single_frequency(types, bands)

        income_tax_types = [t for t in types if t.is_income_tax]
        if len(income_tax_types) > 1:
            raise InvalidRuleData(
                f"{len(income_tax_types)} income tax types in force for "
                f"{country_code} on {effective_date}; expected at most one"
            )

        # 1) Non-income-tax deductions
        non_tax_lines: list[CalculatedStatutory] = []
        for stat_type in types:
            if stat_type.is_income_tax:
                continue

            band = self.band_resolver.resolve_band(
                bands,
                stat_type.id,
                gross,
                employee_age=employee_age,
                pay_frequency=pay_frequency,
                warnings=warnings,
            )
            if band is None:
                # No band at this pay/age: the type does not apply
                logger.debug("No band for %s at %s, skipping", stat_type.code, gross)
                continue

            employee_amount, employer_amount = band.rate.amounts(gross, period_unit_count)
            line = LineBuilder.create_band_line(stat_type, band, employee_amount, employer_amount)
            if line is not None:
                non_tax_lines.append(line)
                rule_ids_used.append(str(band.id))

        # 2) Reliefs
        reliefs = self.relief_aggregator.compute_reliefs(
            non_tax_lines,
            relief_rules,
            schemes,
            enrollments,
            gross_pay=gross,
            employee_age=employee_age,
            opening_balances=balances,
            effective_date=effective_date,
            warnings=warnings,
        )
        rule_ids_used.extend(f"relief:{r.source_code}" for r in reliefs)

        # 3) + 4) Adjusted taxable income
        total_relief, total_credits = LineBuilder.sum_reliefs(reliefs)
        adjusted_taxable = max(gross - total_relief, ZERO)

        # 5) Cumulative income tax
        lines = list(non_tax_lines)
        final_tax = ZERO
        if income_tax_types:
            tax_type = income_tax_types[0]
            schedule = BandResolver.bands_for_type(bands, tax_type.id, pay_frequency)
            if schedule:
                period = self.tax_calculator.period_tax(
                    adjusted_taxable, balances, schedule, tax_type.id, pay_frequency
                )
                credits_applied = min(total_credits, period.period_tax)
                final_tax = LineBuilder.clamp(period.period_tax - credits_applied)
                tax_line = LineBuilder.create_income_tax_line(
                    tax_type, period, credits_applied, final_tax
                )
                if tax_line is not None:
                    lines.append(tax_line)
                rule_ids_used.extend(str(b.id) for b in schedule)

        # 6) Assemble
        closing = self._closing_balances(balances, gross, adjusted_taxable, final_tax, reliefs)
        rules_fingerprint = LineBuilder.rules_fingerprint(rule_ids_used)
        inputs_fingerprint = self._compute_inputs_fingerprint(
            gross, period_unit_count, employee_age, balances, enrollments, pay_frequency
        )

        result = StatutoryCalculationResult(
            employee_id=employee_id,
            country_code=country_code,
            effective_date=effective_date,
            gross_pay=LineBuilder.round_to_cents(gross),
            lines=lines,
            total_employee_deductions=LineBuilder.sum_employee(lines),
            total_employer_contributions=LineBuilder.sum_employer(lines),
            reliefs=reliefs,
            total_relief=total_relief,
            adjusted_taxable_income=LineBuilder.round_to_cents(adjusted_taxable),
            total_tax_credits=total_credits,
            closing_balances=closing,
            warnings=warnings,
            rules_fingerprint=rules_fingerprint,
            calculation_id=self._generate_calculation_id(
                employee_id, effective_date, inputs_fingerprint, rules_fingerprint, lines
            ),
        )

        logger.debug(
            "Calculated %d statutory lines for employee %s: employee total %s, income tax %s",
            len(lines),
            employee_id,
            result.total_employee_deductions,
            final_tax,
        )
        return result

    @staticmethod
    def _require_single_frequency(
        types: Sequence[StatutoryDeductionType], bands: Sequence[RateBand]
    ) -> None:
        """Without a pay frequency, a type may only carry one frequency's bands."""
        for stat_type in types:
            frequencies = {
                b.pay_frequency
                for b in bands
                if b.deduction_type_id == stat_type.id
                and b.is_active
                and b.pay_frequency is not None
            }
            if len(frequencies) > 1:
                raise InvalidRuleData(
                    f"Bands for {stat_type.code} are split by pay frequency "
                    f"({', '.join(sorted(frequencies))}); pay_frequency is required",
                    stat_type.id,
                )

    @staticmethod
    def _opening_balances(
        employee_id: UUID,
        opening_balances: OpeningBalances | None,
        effective_date: date,
    ) -> OpeningBalances:
        """Missing or negative balances are treated as a first period."""
        if opening_balances is None:
            return OpeningBalances.empty(employee_id, effective_date.year)
        if opening_balances.employee_id != employee_id:
            raise ValueError(
                f"Opening balances belong to employee {opening_balances.employee_id}, "
                f"not {employee_id}"
            )
        return opening_balances.normalized()

    @staticmethod
    def _closing_balances(
        opening: OpeningBalances,
        gross: Decimal,
        adjusted_taxable: Decimal,
        income_tax: Decimal,
        reliefs: list[CalculatedRelief],
    ) -> OpeningBalances:
        """Derive the balances to carry into the next period."""
        ytd_reliefs = dict(opening.ytd_reliefs)
        for relief in reliefs:
            ytd_reliefs[relief.source_code] = ytd_reliefs.get(relief.source_code, ZERO) + relief.amount

        return replace(
            opening,
            ytd_taxable_income=LineBuilder.round_to_cents(
                opening.ytd_taxable_income + adjusted_taxable
            ),
            ytd_tax_paid=LineBuilder.round_to_cents(opening.ytd_tax_paid + income_tax),
            ytd_gross_earnings=LineBuilder.round_to_cents(opening.ytd_gross_earnings + gross),
            ytd_reliefs=ytd_reliefs,
        )

    def _generate_calculation_id(
        self,
        employee_id: UUID,
        effective_date: date,
        inputs_fingerprint: str,
        rules_fingerprint: str,
        lines: list[CalculatedStatutory],
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "effective_date": str(effective_date),
            "engine_version": self.settings.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
            "rules_fingerprint": rules_fingerprint,
            "lines": [LineBuilder.compute_line_hash(l) for l in lines],
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    @staticmethod
    def _compute_inputs_fingerprint(
        gross: Decimal,
        period_unit_count: int,
        employee_age: int | None,
        balances: OpeningBalances,
        enrollments: Sequence[EmployeeReliefEnrollment],
        pay_frequency: str | None,
    ) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        inputs: dict[str, Any] = {
            "gross": str(gross),
            "units": period_unit_count,
            "age": employee_age,
            "pay_frequency": pay_frequency,
            "ytd_taxable_income": str(balances.ytd_taxable_income),
            "ytd_tax_paid": str(balances.ytd_tax_paid),
            "ytd_reliefs": {k: str(v) for k, v in balances.ytd_reliefs.items()},
            "enrollments": sorted(str(e.id) for e in enrollments),
        }
        return LineBuilder.fingerprint(inputs)
