"""Services that wrap the engine with data access."""

from statutory_engine.services.statutory_run_service import (
    EmployeePayInput,
    EmployeeRunResult,
    StatutoryRunResult,
    StatutoryRunService,
)

__all__ = [
    "EmployeePayInput",
    "EmployeeRunResult",
    "StatutoryRunResult",
    "StatutoryRunService",
]
