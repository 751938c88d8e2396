"""Rate band resolution for statutory deduction types."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from statutory_engine.calculators.types import RateBand

logger = logging.getLogger(__name__)


class BandResolver:
    """Selects the rate band that applies to a gross pay amount.

    Band selection:
    1. Bands for the deduction type that are active
    2. min_amount <= gross_pay and (no max_amount or gross_pay <= max_amount)
    3. Age restrictions, when the employee's age is known
    4. Pay frequency, when the band is bound to one
    5. Several survivors is a data-quality problem: the lowest min_amount
       wins and a warning is recorded. Bands are never merged.
    """

    @staticmethod
    def bands_for_type(
        bands: Iterable[RateBand],
        deduction_type_id: UUID,
        pay_frequency: str | None = None,
    ) -> list[RateBand]:
        """Active bands for a type in ascending min_amount order."""
        return sorted(
            (
                b
                for b in bands
                if b.deduction_type_id == deduction_type_id
                and b.is_active
                and b.applies_to_frequency(pay_frequency)
            ),
            key=lambda b: b.min_amount,
        )

    def resolve_band(
        self,
        bands: Iterable[RateBand],
        deduction_type_id: UUID,
        gross_pay: Decimal,
        employee_age: int | None = None,
        pay_frequency: str | None = None,
        warnings: list[str] | None = None,
    ) -> RateBand | None:
        """Resolve the single band for a deduction type.

        Args:
            bands: Candidate bands (any type)
            deduction_type_id: Type to resolve for
            gross_pay: Amount the band range is matched against
            employee_age: Employee age in years, if known
            pay_frequency: Pay frequency of the run, if bands are per-frequency
            warnings: Collector for data-quality messages

        Returns:
            The matching band, or None when no band applies
        """
        candidates = [
            b
            for b in self.bands_for_type(bands, deduction_type_id, pay_frequency)
            if b.contains(gross_pay) and b.admits_age(employee_age)
        ]

        if not candidates:
            return None

        chosen = candidates[0]
        if len(candidates) > 1:
            message = (
                f"{len(candidates)} rate bands match {gross_pay} for deduction type "
                f"{deduction_type_id}; using band {chosen.id} (min {chosen.min_amount})"
            )
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)

        return chosen
