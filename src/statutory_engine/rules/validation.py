"""Integrity checks for statutory rule data.

Rule data is validated once when it is loaded so that calculations can
rely on ordered, non-overlapping band schedules instead of re-checking
(or silently tolerating) them on every call.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from statutory_engine.calculators.types import (
    ZERO,
    PercentageRate,
    RateBand,
    ReliefKind,
    ReliefRule,
    ReliefScheme,
    StatutoryDeductionType,
)
from statutory_engine.errors import InvalidRuleData

RuleT = TypeVar("RuleT", StatutoryDeductionType, RateBand, ReliefRule, ReliefScheme)


def check_window(
    start: date | None,
    end: date | None,
    rule_id: UUID | str | None,
    label: str,
) -> None:
    """Reject a validity window that ends before it starts."""
    if start is not None and end is not None and end < start:
        raise InvalidRuleData(
            f"{label} validity window ends ({end}) before it starts ({start})",
            rule_id,
        )


def in_force(rules: Iterable[RuleT], effective_date: date, label: str) -> list[RuleT]:
    """Keep the rules in force on a date.

    Every window is checked first, so a malformed window is reported even
    on a rule that would be filtered out.
    """
    rules = list(rules)
    for rule in rules:
        check_window(rule.start_date, rule.end_date, rule.id, label)
    return [r for r in rules if r.is_effective_on(effective_date)]


def relief_kind_from_flags(
    reduces_taxable_income: bool,
    is_tax_credit: bool,
    rule_id: UUID | str | None = None,
) -> ReliefKind:
    """Map stored relief flags to a kind. Exactly one flag must be set."""
    if reduces_taxable_income and is_tax_credit:
        raise InvalidRuleData(
            "Relief cannot both reduce taxable income and be a tax credit", rule_id
        )
    if reduces_taxable_income:
        return ReliefKind.REDUCES_TAXABLE_INCOME
    if is_tax_credit:
        return ReliefKind.TAX_CREDIT
    raise InvalidRuleData("Relief has no effect: neither reduction nor credit", rule_id)


def validate_rule_set(
    types: Sequence[StatutoryDeductionType],
    bands: Sequence[RateBand],
    relief_rules: Sequence[ReliefRule] = (),
    schemes: Sequence[ReliefScheme] = (),
) -> None:
    """Validate rules that are in force together on one date.

    Raises:
        InvalidRuleData: On the first defect found
    """
    for t in types:
        check_window(t.start_date, t.end_date, t.id, f"Deduction type {t.code}")

    for b in bands:
        _validate_band(b)

    income_tax_types = [t for t in types if t.is_income_tax]
    if len(income_tax_types) > 1:
        codes = ", ".join(t.code for t in income_tax_types)
        raise InvalidRuleData(f"More than one income tax type in force: {codes}")

    bands_by_type: dict[UUID, list[RateBand]] = defaultdict(list)
    for b in bands:
        if b.is_active:
            bands_by_type[b.deduction_type_id].append(b)

    for t in types:
        type_bands = sorted(bands_by_type.get(t.id, []), key=lambda b: b.min_amount)
        if t.is_income_tax:
            _validate_progressive_schedule(t, type_bands)
        else:
            _validate_bracket_bands(t, type_bands)

    _validate_reliefs(relief_rules, schemes)


def _validate_band(band: RateBand) -> None:
    check_window(band.start_date, band.end_date, band.id, "Rate band")
    if band.min_amount < ZERO:
        raise InvalidRuleData(f"Rate band min_amount {band.min_amount} is negative", band.id)
    if band.max_amount is not None and band.max_amount < band.min_amount:
        raise InvalidRuleData(
            f"Rate band max_amount {band.max_amount} is below min_amount {band.min_amount}",
            band.id,
        )
    if band.min_age is not None and band.max_age is not None and band.max_age < band.min_age:
        raise InvalidRuleData(
            f"Rate band max_age {band.max_age} is below min_age {band.min_age}", band.id
        )


def _validate_progressive_schedule(
    tax_type: StatutoryDeductionType, bands: list[RateBand]
) -> None:
    """Income-tax bands: percentage only, ascending, no overlaps."""
    for band in bands:
        if not isinstance(band.rate, PercentageRate):
            raise InvalidRuleData(
                f"Income tax band for {tax_type.code} uses "
                f"'{band.calculation_method.value}'; only percentage is allowed",
                band.id,
            )

    for schedule in _schedules_by_frequency(bands):
        for lower, upper in zip(schedule, schedule[1:]):
            if lower.max_amount is None or lower.max_amount > upper.min_amount:
                raise InvalidRuleData(
                    f"Income tax bands for {tax_type.code} overlap: "
                    f"{_describe(lower)} and {_describe(upper)}",
                    upper.id,
                )


def _validate_bracket_bands(
    stat_type: StatutoryDeductionType, bands: list[RateBand]
) -> None:
    """Non-tax bands: at most one band may claim any pay/age combination.

    Bands that only share a boundary amount are allowed; the resolver
    takes the lower one and reports it.
    """
    for i, first in enumerate(bands):
        for second in bands[i + 1:]:
            if not first.applies_to_frequency(second.pay_frequency):
                continue
            if not _ages_overlap(first, second):
                continue
            if _amounts_overlap(first, second):
                raise InvalidRuleData(
                    f"Rate bands for {stat_type.code} overlap: "
                    f"{_describe(first)} and {_describe(second)}",
                    second.id,
                )


def _validate_reliefs(
    relief_rules: Iterable[ReliefRule], schemes: Iterable[ReliefScheme]
) -> None:
    seen_codes: dict[str, ReliefRule] = {}
    for rule in relief_rules:
        check_window(rule.start_date, rule.end_date, rule.id, "Relief rule")
        if rule.relief_percentage < ZERO:
            raise InvalidRuleData("Relief percentage is negative", rule.id)
        _validate_caps(rule.period_cap, rule.annual_cap, rule.id)
        if not rule.is_active:
            continue
        if rule.statutory_code in seen_codes:
            raise InvalidRuleData(
                f"More than one relief rule in force for {rule.statutory_code}", rule.id
            )
        seen_codes[rule.statutory_code] = rule

    seen_schemes: set[str] = set()
    for scheme in schemes:
        check_window(scheme.start_date, scheme.end_date, scheme.id, "Relief scheme")
        _validate_caps(scheme.period_cap, scheme.annual_cap, scheme.id)
        if (
            scheme.min_age is not None
            and scheme.max_age is not None
            and scheme.max_age < scheme.min_age
        ):
            raise InvalidRuleData("Relief scheme max_age is below min_age", scheme.id)
        if not scheme.is_active:
            continue
        if scheme.scheme_code in seen_schemes:
            raise InvalidRuleData(
                f"More than one relief scheme in force for {scheme.scheme_code}", scheme.id
            )
        seen_schemes.add(scheme.scheme_code)


def _validate_caps(period_cap: Decimal | None, annual_cap: Decimal | None, rule_id: UUID) -> None:
    if period_cap is not None and period_cap < ZERO:
        raise InvalidRuleData("Relief period cap is negative", rule_id)
    if annual_cap is not None and annual_cap < ZERO:
        raise InvalidRuleData("Relief annual cap is negative", rule_id)


def _schedules_by_frequency(bands: list[RateBand]) -> list[list[RateBand]]:
    """The schedule a walk sees for each frequency, in min_amount order.

    Bands without a frequency apply to every frequency, so they are part
    of each concrete frequency's schedule.
    """
    shared = [b for b in bands if b.pay_frequency is None]
    by_frequency: dict[str, list[RateBand]] = defaultdict(list)
    for band in bands:
        if band.pay_frequency is not None:
            by_frequency[band.pay_frequency].append(band)

    if not by_frequency:
        return [shared]
    return [
        sorted(shared + frequency_bands, key=lambda b: b.min_amount)
        for frequency_bands in by_frequency.values()
    ]


def _amounts_overlap(a: RateBand, b: RateBand) -> bool:
    a_below_b_top = b.max_amount is None or a.min_amount < b.max_amount
    b_below_a_top = a.max_amount is None or b.min_amount < a.max_amount
    return a_below_b_top and b_below_a_top


def _ages_overlap(a: RateBand, b: RateBand) -> bool:
    if a.max_age is not None and b.min_age is not None and a.max_age < b.min_age:
        return False
    if b.max_age is not None and a.min_age is not None and b.max_age < a.min_age:
        return False
    return True


def _describe(band: RateBand) -> str:
    top = band.max_amount if band.max_amount is not None else "open"
    return f"[{band.min_amount}, {top}]"
