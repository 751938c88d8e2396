"""SQLAlchemy ORM models."""

from statutory_engine.models.base import Base, TimestampMixin
from statutory_engine.models.statutory import (
    EmployeeOpeningBalance,
    EmployeeTaxReliefEnrollment,
    StatutoryRateBand,
    StatutoryTaxReliefRule,
    StatutoryType,
    TaxReliefScheme,
)

__all__ = [
    "Base",
    "EmployeeOpeningBalance",
    "EmployeeTaxReliefEnrollment",
    "StatutoryRateBand",
    "StatutoryTaxReliefRule",
    "StatutoryType",
    "TaxReliefScheme",
    "TimestampMixin",
]
