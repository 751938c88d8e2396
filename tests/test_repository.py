"""Repository tests against an in-memory SQLite database."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.calculators.types import (
    ContributionPercentageFormula,
    FixedRate,
    PercentageRate,
    PerUnitRate,
    ReliefKind,
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
from statutory_engine.rules.repository import (
    StatutoryRuleRepository,
    _to_deduction_type,
    _to_rate_band,
)

COUNTRY = "TT"
START = date(2024, 1, 1)
AS_OF = date(2024, 3, 31)


async def add_type(session: AsyncSession, code: str, kind: str = "contribution", **kwargs) -> StatutoryType:
    stat_type = StatutoryType(
        statutory_type_id=uuid4(),
        country=kwargs.pop("country", COUNTRY),
        statutory_code=code,
        statutory_name=code,
        statutory_type=kind,
        start_date=kwargs.pop("start_date", START),
        **kwargs,
    )
    session.add(stat_type)
    await session.flush()
    return stat_type


async def add_band(session: AsyncSession, stat_type: StatutoryType, **kwargs) -> StatutoryRateBand:
    band = StatutoryRateBand(
        rate_band_id=uuid4(),
        statutory_type_id=stat_type.statutory_type_id,
        start_date=kwargs.pop("start_date", START),
        **kwargs,
    )
    session.add(band)
    await session.flush()
    return band


class TestLoadRules:
    """Test loading types and bands."""

    async def test_empty_country(self, session: AsyncSession):
        """A country with no rows gives an empty rule set."""
        rule_set = await StatutoryRuleRepository(session).load_rules("ZZ", AS_OF)

        assert rule_set.is_empty
        assert rule_set.bands == ()

    async def test_band_variants(self, session: AsyncSession):
        """Each calculation method maps to its rate variant."""
        nis = await add_type(session, "NIS")
        levy = await add_type(session, "LEVY", "levy")
        ee = await add_type(session, "EE", "contribution")
        await add_band(
            session,
            nis,
            calculation_method="per_unit",
            per_unit_amount=Decimal("5"),
            employer_per_unit_amount=Decimal("7"),
        )
        await add_band(session, levy, calculation_method="fixed", fixed_amount=Decimal("12"))
        await add_band(
            session,
            ee,
            calculation_method="percentage",
            employee_rate=Decimal("0.03"),
            employer_rate=Decimal("0.05"),
        )

        rule_set = await StatutoryRuleRepository(session).load_rules(COUNTRY, AS_OF)
        rates = {b.deduction_type_id: b.rate for b in rule_set.bands}

        assert rates[nis.statutory_type_id] == PerUnitRate(Decimal("5"), Decimal("7"))
        assert rates[levy.statutory_type_id] == FixedRate(Decimal("12"), Decimal("0"))
        assert rates[ee.statutory_type_id] == PercentageRate(Decimal("0.03"), Decimal("0.05"))

    async def test_date_filtering(self, session: AsyncSession):
        """Types and bands outside their windows are left out."""
        current = await add_type(session, "NIS")
        await add_type(session, "OLD", end_date=date(2024, 2, 1))
        await add_band(session, current, calculation_method="fixed", fixed_amount=Decimal("1"))
        await add_band(
            session,
            current,
            calculation_method="fixed",
            fixed_amount=Decimal("2"),
            min_amount=Decimal("1000"),
            start_date=date(2024, 6, 1),
        )

        rule_set = await StatutoryRuleRepository(session).load_rules(COUNTRY, AS_OF)

        assert [t.code for t in rule_set.types] == ["NIS"]
        assert len(rule_set.bands) == 1

    async def test_inverted_window_raises(self, session: AsyncSession):
        """Malformed windows are reported even on rows not in force."""
        nis = await add_type(session, "NIS")
        band = await add_band(
            session,
            nis,
            calculation_method="fixed",
            fixed_amount=Decimal("1"),
            start_date=date(2024, 6, 1),
            end_date=date(2024, 1, 1),
        )

        with pytest.raises(InvalidRuleData) as exc_info:
            await StatutoryRuleRepository(session).load_rules(COUNTRY, AS_OF)

        assert exc_info.value.rule_id == band.rate_band_id

    async def test_overlapping_bands_raise(self, session: AsyncSession):
        """Overlapping bands fail at load time."""
        nis = await add_type(session, "NIS")
        await add_band(
            session, nis, calculation_method="fixed", fixed_amount=Decimal("1"),
            min_amount=Decimal("0"), max_amount=Decimal("500"),
        )
        await add_band(
            session, nis, calculation_method="fixed", fixed_amount=Decimal("2"),
            min_amount=Decimal("100"),
        )

        with pytest.raises(InvalidRuleData, match="overlap"):
            await StatutoryRuleRepository(session).load_rules(COUNTRY, AS_OF)


class TestLoadRuleSet:
    """Test loading reliefs with the rule set."""

    async def test_reliefs_loaded(self, session: AsyncSession):
        """Relief rules and schemes in force are part of the rule set."""
        session.add_all(
            [
                StatutoryTaxReliefRule(
                    relief_rule_id=uuid4(),
                    country=COUNTRY,
                    statutory_type_code="NIS",
                    relief_percentage=Decimal("100"),
                    annual_cap=Decimal("1000"),
                    effective_from=START,
                ),
                TaxReliefScheme(
                    scheme_id=uuid4(),
                    country=COUNTRY,
                    scheme_code="PENSION",
                    scheme_name="Pension",
                    calculation_method="percentage_of_contribution",
                    relief_percentage=Decimal("50"),
                    reduces_taxable_income=False,
                    is_tax_credit=True,
                    effective_from=START,
                ),
                TaxReliefScheme(
                    scheme_id=uuid4(),
                    country=COUNTRY,
                    scheme_code="EXPIRED",
                    scheme_name="Expired",
                    relief_value=Decimal("10"),
                    effective_from=date(2020, 1, 1),
                    effective_to=date(2020, 12, 31),
                ),
            ]
        )
        await session.flush()

        rule_set = await StatutoryRuleRepository(session).load_rule_set(COUNTRY, AS_OF)

        assert [r.statutory_code for r in rule_set.relief_rules] == ["NIS"]
        assert rule_set.relief_rules[0].annual_cap == Decimal("1000")
        assert [s.scheme_code for s in rule_set.schemes] == ["PENSION"]
        assert rule_set.schemes[0].kind == ReliefKind.TAX_CREDIT
        assert rule_set.schemes[0].formula == ContributionPercentageFormula(Decimal("50"))

    async def test_contradictory_relief_flags_raise(self, session: AsyncSession):
        """A relief that is both a reduction and a credit is rejected."""
        session.add(
            StatutoryTaxReliefRule(
                relief_rule_id=uuid4(),
                country=COUNTRY,
                statutory_type_code="NIS",
                reduces_taxable_income=True,
                is_tax_credit=True,
                effective_from=START,
            )
        )
        await session.flush()

        with pytest.raises(InvalidRuleData):
            await StatutoryRuleRepository(session).load_rule_set(COUNTRY, AS_OF)


class TestEmployeeData:
    """Test enrolment and balance lookups."""

    async def test_active_enrollments(self, session: AsyncSession):
        """Only active, current enrolments are returned."""
        employee_id = uuid4()
        session.add_all(
            [
                EmployeeTaxReliefEnrollment(
                    enrollment_id=uuid4(),
                    employee_id=employee_id,
                    scheme_code="PENSION",
                    contribution_amount=Decimal("80"),
                    start_date=START,
                ),
                EmployeeTaxReliefEnrollment(
                    enrollment_id=uuid4(),
                    employee_id=employee_id,
                    scheme_code="OLD",
                    start_date=date(2023, 1, 1),
                    end_date=date(2023, 12, 31),
                ),
                EmployeeTaxReliefEnrollment(
                    enrollment_id=uuid4(),
                    employee_id=employee_id,
                    scheme_code="PAUSED",
                    start_date=START,
                    is_active=False,
                ),
            ]
        )
        await session.flush()

        enrollments = await StatutoryRuleRepository(session).fetch_employee_relief_enrollments(
            employee_id, AS_OF
        )

        assert [e.scheme_code for e in enrollments] == ["PENSION"]
        assert enrollments[0].contribution_amount == Decimal("80")

    async def test_opening_balances(self, session: AsyncSession):
        """Stored balances are read and normalised."""
        employee_id = uuid4()
        session.add(
            EmployeeOpeningBalance(
                employee_id=employee_id,
                tax_year=2024,
                ytd_taxable_income=Decimal("3000"),
                ytd_income_tax=Decimal("-5"),
                ytd_gross_earnings=Decimal("3100"),
                ytd_reliefs_json={"NIS": "90.00"},
            )
        )
        await session.flush()

        balances = await StatutoryRuleRepository(session).fetch_opening_balances(employee_id, 2024)

        assert balances is not None
        assert balances.ytd_taxable_income == Decimal("3000")
        assert balances.ytd_tax_paid == Decimal("0")
        assert balances.relief_claimed("NIS") == Decimal("90.00")

    async def test_missing_balances(self, session: AsyncSession):
        """No row means no balances."""
        balances = await StatutoryRuleRepository(session).fetch_opening_balances(uuid4(), 2024)

        assert balances is None


class TestRowConversion:
    """Test conversion of rows the database constraints would normally stop."""

    def test_unknown_method_raises(self):
        """Unknown calculation methods are rejected."""
        row = StatutoryRateBand(
            rate_band_id=uuid4(),
            statutory_type_id=uuid4(),
            min_amount=Decimal("0"),
            calculation_method="sliding",
        )

        with pytest.raises(InvalidRuleData, match="sliding"):
            _to_rate_band(row)

    def test_unknown_kind_raises(self):
        """Unknown deduction kinds are rejected."""
        row = StatutoryType(
            statutory_type_id=uuid4(),
            country=COUNTRY,
            statutory_code="NIS",
            statutory_name="NIS",
            statutory_type="mystery",
        )

        with pytest.raises(InvalidRuleData, match="mystery"):
            _to_deduction_type(row)
