"""Tests for the batch statutory run service."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.calculators.engine import StatutoryEngine
from statutory_engine.errors import InvalidRuleData
from statutory_engine.models import (
    EmployeeOpeningBalance,
    StatutoryRateBand,
    StatutoryTaxReliefRule,
    StatutoryType,
)
from statutory_engine.rules.cache import RuleSetCache
from statutory_engine.services import EmployeePayInput, StatutoryRunService

COUNTRY = "TT"
START = date(2024, 1, 1)
AS_OF = date(2024, 2, 29)


async def seed_country(session: AsyncSession) -> None:
    """PAYE at 10% over 1000 and NIS at 3% relieved in full."""
    paye = StatutoryType(
        statutory_type_id=uuid4(),
        country=COUNTRY,
        statutory_code="PAYE",
        statutory_name="Income Tax",
        statutory_type="income_tax",
        start_date=START,
    )
    nis = StatutoryType(
        statutory_type_id=uuid4(),
        country=COUNTRY,
        statutory_code="NIS",
        statutory_name="National Insurance",
        statutory_type="contribution",
        start_date=START,
    )
    session.add_all([paye, nis])
    await session.flush()
    session.add_all(
        [
            StatutoryRateBand(
                statutory_type_id=paye.statutory_type_id,
                min_amount=Decimal("0"),
                max_amount=Decimal("1000"),
                calculation_method="percentage",
                employee_rate=Decimal("0"),
            ),
            StatutoryRateBand(
                statutory_type_id=paye.statutory_type_id,
                min_amount=Decimal("1000"),
                calculation_method="percentage",
                employee_rate=Decimal("0.10"),
            ),
            StatutoryRateBand(
                statutory_type_id=nis.statutory_type_id,
                calculation_method="percentage",
                employee_rate=Decimal("0.03"),
                employer_rate=Decimal("0.03"),
            ),
            StatutoryTaxReliefRule(
                country=COUNTRY,
                statutory_type_code="NIS",
                effective_from=START,
            ),
        ]
    )
    await session.flush()


class ExplodingEngine(StatutoryEngine):
    """Engine that fails for one employee."""

    def __init__(self, settings, failing_employee: UUID):
        super().__init__(settings)
        self.failing_employee = failing_employee

    def calculate_with_rule_set(self, employee_id, *args, **kwargs):
        if employee_id == self.failing_employee:
            raise RuntimeError("boom")
        return super().calculate_with_rule_set(employee_id, *args, **kwargs)


class TestCalculateRun:
    """Test batch runs."""

    async def test_run_totals(self, session: AsyncSession, statutory_engine, settings):
        """Every employee is calculated and totals add up."""
        await seed_country(session)
        employees = [EmployeePayInput(employee_id=uuid4(), gross_pay=Decimal("2000")) for _ in range(5)]
        service = StatutoryRunService(session, engine=statutory_engine, settings=settings)

        run = await service.calculate_run(COUNTRY, AS_OF, employees)

        assert run.error_count == 0
        assert len(run.results) == 5
        # NIS 60 + PAYE (1940 - 1000) * 0.10 = 94 per employee
        assert run.total_employee_deductions == Decimal("770.00")
        assert run.total_employer_contributions == Decimal("300.00")

    async def test_opening_balances_used(self, session: AsyncSession, statutory_engine, settings):
        """Stored YTD balances feed the cumulative tax."""
        await seed_country(session)
        employee_id = uuid4()
        session.add(
            EmployeeOpeningBalance(
                employee_id=employee_id,
                tax_year=2024,
                ytd_taxable_income=Decimal("1940"),
                ytd_income_tax=Decimal("94"),
                ytd_gross_earnings=Decimal("2000"),
                ytd_reliefs_json={"NIS": "60"},
            )
        )
        await session.flush()
        service = StatutoryRunService(session, engine=statutory_engine, settings=settings)

        run = await service.calculate_run(
            COUNTRY, AS_OF, [EmployeePayInput(employee_id=employee_id, gross_pay=Decimal("2000"))]
        )

        result = run.results[employee_id].result
        # Whole 1940 of this period is above the nil band
        assert result.income_tax == Decimal("194.00")
        assert result.closing_balances.ytd_taxable_income == Decimal("3880.00")
        assert result.closing_balances.ytd_reliefs["NIS"] == Decimal("120.00")

    async def test_failure_isolated(self, session: AsyncSession, settings):
        """One employee's failure does not stop the others."""
        await seed_country(session)
        bad = uuid4()
        good = uuid4()
        service = StatutoryRunService(
            session, engine=ExplodingEngine(settings, bad), settings=settings
        )

        run = await service.calculate_run(
            COUNTRY,
            AS_OF,
            [
                EmployeePayInput(employee_id=bad, gross_pay=Decimal("2000")),
                EmployeePayInput(employee_id=good, gross_pay=Decimal("2000")),
            ],
        )

        assert run.error_count == 1
        assert not run.results[bad].success
        assert run.results[bad].error == "boom"
        assert run.results[good].success

    async def test_rule_set_cached(self, session: AsyncSession, statutory_engine, settings):
        """The rule set is loaded once per country and date."""
        await seed_country(session)
        cache = RuleSetCache()
        service = StatutoryRunService(
            session, engine=statutory_engine, cache=cache, settings=settings
        )
        employees = [EmployeePayInput(employee_id=uuid4(), gross_pay=Decimal("500"))]

        await service.calculate_run(COUNTRY, AS_OF, employees)
        cached = cache.get(COUNTRY, AS_OF)
        await service.calculate_run(COUNTRY, AS_OF, employees)

        assert len(cache) == 1
        assert cache.get(COUNTRY, AS_OF) is cached

        cache.invalidate(COUNTRY)
        assert len(cache) == 0

    async def test_invalid_rules_abort_run(self, session: AsyncSession, statutory_engine, settings):
        """Malformed rules fail the whole run."""
        session.add(
            StatutoryType(
                statutory_type_id=uuid4(),
                country=COUNTRY,
                statutory_code="NIS",
                statutory_name="NIS",
                statutory_type="contribution",
                start_date=date(2024, 6, 1),
                end_date=date(2024, 1, 1),
            )
        )
        await session.flush()
        service = StatutoryRunService(session, engine=statutory_engine, settings=settings)

        with pytest.raises(InvalidRuleData):
            await service.calculate_run(
                COUNTRY, AS_OF, [EmployeePayInput(employee_id=uuid4(), gross_pay=Decimal("1"))]
            )
