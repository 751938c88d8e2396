"""Seed script for sample statutory rules.

Run with:
    python scripts/seed_statutory_rules.py [--country JM] [--create-tables]

This creates a sample country's statutory deductions (PAYE income tax,
NIS per-unit contributions, a health surcharge), a relief rule on NIS and
two relief schemes, enough to exercise the engine end to end.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_engine.database import get_session, init_db
from statutory_engine.models import (
    Base,
    StatutoryRateBand,
    StatutoryTaxReliefRule,
    StatutoryType,
    TaxReliefScheme,
)

logger = logging.getLogger("seed_statutory_rules")

SEED_START = date(2024, 1, 1)


async def create_tables() -> None:
    """Create all tables (development databases only)."""
    engine, _ = init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created tables")


async def seed_statutory_types(session: AsyncSession, country: str) -> None:
    """Create PAYE, NIS and health surcharge types with their bands."""
    result = await session.execute(
        select(StatutoryType).where(
            StatutoryType.country == country,
            StatutoryType.statutory_code == "PAYE",
        )
    )
    if result.scalar_one_or_none():
        logger.info("Statutory types for %s already exist, skipping...", country)
        return

    # PAYE: progressive schedule, annual amounts
    paye = StatutoryType(
        statutory_type_id=uuid4(),
        country=country,
        statutory_code="PAYE",
        statutory_name="Pay As You Earn",
        statutory_type="income_tax",
        start_date=SEED_START,
        description="Cumulative income tax",
    )
    paye_bands = [
        ("Nil rate", Decimal("0"), Decimal("1500000"), Decimal("0")),
        ("Standard rate", Decimal("1500000"), Decimal("6000000"), Decimal("0.25")),
        ("Higher rate", Decimal("6000000"), None, Decimal("0.30")),
    ]
    session.add(paye)
    for name, low, high, rate in paye_bands:
        session.add(
            StatutoryRateBand(
                rate_band_id=uuid4(),
                statutory_type_id=paye.statutory_type_id,
                band_name=name,
                min_amount=low,
                max_amount=high,
                calculation_method="percentage",
                employee_rate=rate,
                employer_rate=Decimal("0"),
                start_date=SEED_START,
            )
        )
    logger.info("Created PAYE with %d bands", len(paye_bands))

    # NIS: flat amount per week worked, lower rate over 60
    nis = StatutoryType(
        statutory_type_id=uuid4(),
        country=country,
        statutory_code="NIS",
        statutory_name="National Insurance",
        statutory_type="contribution",
        start_date=SEED_START,
    )
    session.add(nis)
    session.add_all(
        [
            StatutoryRateBand(
                rate_band_id=uuid4(),
                statutory_type_id=nis.statutory_type_id,
                band_name="Under 60",
                calculation_method="per_unit",
                per_unit_amount=Decimal("1500"),
                employer_per_unit_amount=Decimal("1500"),
                max_age=59,
                start_date=SEED_START,
            ),
            StatutoryRateBand(
                rate_band_id=uuid4(),
                statutory_type_id=nis.statutory_type_id,
                band_name="60 and over",
                calculation_method="per_unit",
                per_unit_amount=Decimal("750"),
                employer_per_unit_amount=Decimal("1500"),
                min_age=60,
                start_date=SEED_START,
            ),
        ]
    )
    logger.info("Created NIS with 2 bands")

    # Health surcharge: fixed amount per period above a threshold
    health = StatutoryType(
        statutory_type_id=uuid4(),
        country=country,
        statutory_code="HEALTH",
        statutory_name="Health Surcharge",
        statutory_type="levy",
        start_date=SEED_START,
    )
    session.add(health)
    session.add_all(
        [
            StatutoryRateBand(
                rate_band_id=uuid4(),
                statutory_type_id=health.statutory_type_id,
                band_name="Low earner",
                min_amount=Decimal("0"),
                max_amount=Decimal("50000"),
                calculation_method="fixed",
                fixed_amount=Decimal("500"),
                employer_fixed_amount=Decimal("0"),
                start_date=SEED_START,
            ),
            StatutoryRateBand(
                rate_band_id=uuid4(),
                statutory_type_id=health.statutory_type_id,
                band_name="Standard",
                min_amount=Decimal("50000"),
                calculation_method="fixed",
                fixed_amount=Decimal("1200"),
                employer_fixed_amount=Decimal("0"),
                start_date=SEED_START,
            ),
        ]
    )
    logger.info("Created health surcharge with 2 bands")

    await session.flush()


async def seed_reliefs(session: AsyncSession, country: str) -> None:
    """Create the NIS relief rule and two relief schemes."""
    result = await session.execute(
        select(TaxReliefScheme).where(TaxReliefScheme.country == country)
    )
    if result.scalars().first():
        logger.info("Reliefs for %s already exist, skipping...", country)
        return

    session.add(
        StatutoryTaxReliefRule(
            relief_rule_id=uuid4(),
            country=country,
            statutory_type_code="NIS",
            relief_percentage=Decimal("100"),
            reduces_taxable_income=True,
            is_tax_credit=False,
            applies_to_employee_contribution=True,
            applies_to_employer_contribution=False,
            annual_cap=Decimal("100000"),
            legal_reference="National Insurance Act, s.12",
            effective_from=SEED_START,
        )
    )
    session.add_all(
        [
            TaxReliefScheme(
                scheme_id=uuid4(),
                country=country,
                scheme_code="PENSION",
                scheme_name="Approved pension contributions",
                scheme_category="retirement",
                reduces_taxable_income=True,
                is_tax_credit=False,
                calculation_method="percentage_of_contribution",
                relief_percentage=Decimal("100"),
                period_cap=Decimal("20000"),
                effective_from=SEED_START,
            ),
            TaxReliefScheme(
                scheme_id=uuid4(),
                country=country,
                scheme_code="SENIOR",
                scheme_name="Senior citizen credit",
                scheme_category="age",
                reduces_taxable_income=False,
                is_tax_credit=True,
                calculation_method="fixed_amount",
                relief_value=Decimal("2500"),
                min_age=65,
                effective_from=SEED_START,
            ),
        ]
    )
    logger.info("Created NIS relief rule and 2 relief schemes")

    await session.flush()


async def main(country: str, create: bool) -> None:
    """Run seed script."""
    logger.info("Seeding statutory rules for %s...", country)
    if create:
        await create_tables()

    async with get_session() as session:
        await seed_statutory_types(session, country)
        await seed_reliefs(session, country)

    logger.info("Done! Statutory rules seeded successfully.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed sample statutory rules")
    parser.add_argument("--country", default="JM", help="Two-letter country code")
    parser.add_argument(
        "--create-tables", action="store_true", help="Create tables before seeding"
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(main(args.country.upper(), args.create_tables))
