"""Statutory run service - batch calculation across employees."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.calculators.engine import StatutoryEngine
from statutory_engine.calculators.types import (
    ZERO,
    EmployeeReliefEnrollment,
    OpeningBalances,
    RuleSet,
    StatutoryCalculationResult,
)
from statutory_engine.config import Settings, get_settings
from statutory_engine.rules.cache import RuleSetCache
from statutory_engine.rules.repository import StatutoryRuleRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmployeePayInput:
    """Per-employee inputs for a statutory run."""

    employee_id: UUID
    gross_pay: Decimal
    period_unit_count: int = 0
    employee_age: int | None = None
    pay_frequency: str | None = None


@dataclass
class EmployeeRunResult:
    """Outcome for one employee in a run."""

    employee_id: UUID
    result: StatutoryCalculationResult | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class StatutoryRunResult:
    """Result of calculating statutory deductions for many employees."""

    country_code: str
    effective_date: date
    results: dict[UUID, EmployeeRunResult] = field(default_factory=dict)
    total_employee_deductions: Decimal = ZERO
    total_employer_contributions: Decimal = ZERO
    error_count: int = 0


class StatutoryRunService:
    """Runs the engine for every employee of a pay run.

    All I/O happens up front: the rule set is loaded once per country and
    date (or reused from the cache), then enrolments and opening balances
    are fetched for every employee. Only then are the pure calculations
    mapped over a thread pool; each one reads the same immutable RuleSet.
    """

    def __init__(
        self,
        session: AsyncSession,
        engine: StatutoryEngine | None = None,
        cache: RuleSetCache | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.engine = engine or StatutoryEngine(self.settings)
        self.cache = cache if cache is not None else RuleSetCache()
        self.repository = StatutoryRuleRepository(session)

    async def calculate_run(
        self,
        country_code: str,
        effective_date: date,
        employees: list[EmployeePayInput],
        tax_year: int | None = None,
    ) -> StatutoryRunResult:
        """Calculate statutory deductions for all employees.

        Raises:
            InvalidRuleData: If the country's rules are malformed
        """
        rule_set = await self.cache.get_or_load(
            country_code, effective_date, self.repository.load_rule_set
        )
        year = tax_year if tax_year is not None else effective_date.year

        # Fetch everything before computing
        enrollments: dict[UUID, list[EmployeeReliefEnrollment]] = {}
        balances: dict[UUID, OpeningBalances | None] = {}
        for emp in employees:
            enrollments[emp.employee_id] = await self.repository.fetch_employee_relief_enrollments(
                emp.employee_id, effective_date
            )
            balances[emp.employee_id] = await self.repository.fetch_opening_balances(
                emp.employee_id, year
            )

        run = StatutoryRunResult(country_code=country_code, effective_date=effective_date)

        with ThreadPoolExecutor(max_workers=self.settings.batch_max_workers) as pool:
            outcomes = pool.map(
                lambda emp: self._calculate_employee(
                    rule_set, emp, enrollments[emp.employee_id], balances[emp.employee_id]
                ),
                employees,
            )
            for outcome in outcomes:
                run.results[outcome.employee_id] = outcome
                if outcome.success and outcome.result is not None:
                    run.total_employee_deductions += outcome.result.total_employee_deductions
                    run.total_employer_contributions += outcome.result.total_employer_contributions
                else:
                    run.error_count += 1

        logger.info(
            "Statutory run for %s on %s: %d employees, %d errors",
            country_code,
            effective_date,
            len(employees),
            run.error_count,
        )
        return run

    def _calculate_employee(
        self,
        rule_set: RuleSet,
        emp: EmployeePayInput,
        enrollments: list[EmployeeReliefEnrollment],
        opening_balances: OpeningBalances | None,
    ) -> EmployeeRunResult:
        try:
            result = self.engine.calculate_with_rule_set(
                employee_id=emp.employee_id,
                rule_set=rule_set,
                gross_pay=emp.gross_pay,
                period_unit_count=emp.period_unit_count,
                employee_age=emp.employee_age,
                opening_balances=opening_balances,
                enrollments=enrollments,
                pay_frequency=emp.pay_frequency,
            )
        except Exception as e:
            # One employee's failure must not abort the run
            logger.exception("Statutory calculation failed for employee %s", emp.employee_id)
            return EmployeeRunResult(employee_id=emp.employee_id, error=str(e))

        return EmployeeRunResult(employee_id=emp.employee_id, result=result)
