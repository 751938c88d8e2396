"""Statutory deduction calculation engine."""

from statutory_engine.calculators.band_resolver import BandResolver
from statutory_engine.calculators.engine import StatutoryEngine
from statutory_engine.calculators.line_builder import LineBuilder
from statutory_engine.calculators.relief_aggregator import ReliefAggregator
from statutory_engine.calculators.tax_calculator import CumulativeTaxCalculator
from statutory_engine.calculators.types import StatutoryCalculationResult

__all__ = [
    "BandResolver",
    "CumulativeTaxCalculator",
    "LineBuilder",
    "ReliefAggregator",
    "StatutoryCalculationResult",
    "StatutoryEngine",
]
