"""Statutory payroll deduction and tax relief engine."""

__version__ = "1.0.0"
