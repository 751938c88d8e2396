"""Statutory deduction calculation endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from statutory_engine.api.dependencies import DbSession, Engine, RuleCache
from statutory_engine.api.schemas import (
    EmployeeCalculateRequest,
    ErrorResponse,
    StatutoryCalculateRequest,
    StatutoryCalculationResponse,
)
from statutory_engine.rules.repository import StatutoryRuleRepository
from statutory_engine.rules.validation import in_force, validate_rule_set

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/statutory", tags=["statutory"])


@router.post(
    "/calculate",
    response_model=StatutoryCalculationResponse,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def calculate_statutory(
    engine: Engine,
    payload: StatutoryCalculateRequest,
) -> StatutoryCalculationResponse:
    """Calculate one employee's deductions from rules supplied in the request.

    The rules go through the same validation as rules read from the
    database: only those in force on the effective date are checked
    against each other. Nothing is persisted.
    """
    as_of = payload.effective_date
    types = in_force((t.to_domain() for t in payload.statutory_types), as_of, "Deduction type")
    bands = in_force((b.to_domain() for b in payload.rate_bands), as_of, "Rate band")
    relief_rules = in_force((r.to_domain() for r in payload.relief_rules), as_of, "Relief rule")
    schemes = in_force((s.to_domain() for s in payload.schemes), as_of, "Relief scheme")
    validate_rule_set(types, bands, relief_rules, schemes)

    opening = payload.opening_balances.to_domain() if payload.opening_balances else None
    try:
        result = engine.calculate(
            employee_id=payload.employee_id,
            country_code=payload.country_code,
            gross_pay=payload.gross_pay,
            statutory_types=types,
            rate_bands=bands,
            period_unit_count=payload.period_unit_count,
            employee_age=payload.employee_age,
            opening_balances=opening,
            effective_date=as_of,
            relief_rules=relief_rules,
            schemes=schemes,
            enrollments=[e.to_domain() for e in payload.enrollments],
            pay_frequency=payload.pay_frequency,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return StatutoryCalculationResponse.from_result(result)


@router.post(
    "/employees/{employee_id}/calculate",
    response_model=StatutoryCalculationResponse,
    responses={422: {"model": ErrorResponse}},
)
async def calculate_employee_statutory(
    db: DbSession,
    engine: Engine,
    cache: RuleCache,
    employee_id: Annotated[UUID, Path()],
    payload: EmployeeCalculateRequest,
) -> StatutoryCalculationResponse:
    """Calculate one employee's deductions from stored rules, enrolments and balances."""
    repository = StatutoryRuleRepository(db)
    rule_set = await cache.get_or_load(
        payload.country_code, payload.effective_date, repository.load_rule_set
    )
    tax_year = payload.tax_year if payload.tax_year is not None else payload.effective_date.year
    enrollments = await repository.fetch_employee_relief_enrollments(
        employee_id, payload.effective_date
    )
    opening = await repository.fetch_opening_balances(employee_id, tax_year)

    result = engine.calculate_with_rule_set(
        employee_id=employee_id,
        rule_set=rule_set,
        gross_pay=payload.gross_pay,
        period_unit_count=payload.period_unit_count,
        employee_age=payload.employee_age,
        opening_balances=opening,
        enrollments=enrollments,
        pay_frequency=payload.pay_frequency,
    )
    logger.debug(
        "Calculated statutory deductions for %s: %s", employee_id, result.calculation_id
    )
    return StatutoryCalculationResponse.from_result(result)
