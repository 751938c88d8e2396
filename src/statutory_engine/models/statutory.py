"""Statutory deduction, relief and opening balance models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statutory_engine.models.base import Base, TimestampMixin

JsonType = JSON().with_variant(JSONB(), "postgresql")


# ===== Statutory Deduction Types & Bands =====


class StatutoryType(Base, TimestampMixin):
    """Statutory deduction type configured for a country."""

    __tablename__ = "statutory_deduction_types"

    statutory_type_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    country: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    statutory_code: Mapped[str] = mapped_column(String, nullable=False)
    statutory_name: Mapped[str] = mapped_column(String, nullable=False)
    statutory_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "statutory_type IN ('income_tax', 'contribution', 'levy', 'other')",
            name="statutory_type_kind_check",
        ),
    )

    # Relationships
    rate_bands: Mapped[list[StatutoryRateBand]] = relationship(back_populates="statutory_type")


class StatutoryRateBand(Base, TimestampMixin):
    """Rate band for a statutory deduction type."""

    __tablename__ = "statutory_rate_bands"

    rate_band_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    statutory_type_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("statutory_deduction_types.statutory_type_id", ondelete="CASCADE"),
        nullable=False,
    )
    band_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    min_amount: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False, default=Decimal("0"))
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="percentage")

    # Percentage method
    employee_rate: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)
    employer_rate: Mapped[Decimal | None] = mapped_column(Numeric(9, 6), nullable=True)

    # Fixed method
    fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    employer_fixed_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    # Per-unit method
    per_unit_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    employer_per_unit_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)

    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pay_frequency: Mapped[str | None] = mapped_column(String, nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_method IN ('percentage', 'per_unit', 'fixed')",
            name="statutory_rate_band_method_check",
        ),
    )

    # Relationships
    statutory_type: Mapped[StatutoryType] = relationship(back_populates="rate_bands")


# ===== Tax Relief =====


class StatutoryTaxReliefRule(Base, TimestampMixin):
    """Relief granted on a statutory contribution."""

    __tablename__ = "statutory_tax_relief_rules"

    relief_rule_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    country: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    statutory_type_code: Mapped[str] = mapped_column(String, nullable=False)
    relief_percentage: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("100")
    )
    reduces_taxable_income: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_tax_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    applies_to_employee_contribution: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    applies_to_employer_contribution: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    period_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    annual_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    legal_reference: Mapped[str | None] = mapped_column(String, nullable=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TaxReliefScheme(Base, TimestampMixin):
    """Relief scheme employees enrol in."""

    __tablename__ = "tax_relief_schemes"

    scheme_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    country: Mapped[str] = mapped_column(String(2), nullable=False, index=True)
    scheme_code: Mapped[str] = mapped_column(String, nullable=False)
    scheme_name: Mapped[str] = mapped_column(String, nullable=False)
    scheme_category: Mapped[str | None] = mapped_column(String, nullable=True)
    reduces_taxable_income: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_tax_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculation_method: Mapped[str] = mapped_column(String, nullable=False, default="fixed_amount")
    relief_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    relief_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    period_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    annual_cap: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    min_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "calculation_method IN "
            "('fixed_amount', 'percentage_of_income', 'percentage_of_contribution')",
            name="tax_relief_scheme_method_check",
        ),
    )


class EmployeeTaxReliefEnrollment(Base, TimestampMixin):
    """Employee enrolment in a relief scheme."""

    __tablename__ = "employee_tax_relief_enrollments"

    enrollment_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    scheme_code: Mapped[str] = mapped_column(String, nullable=False)
    contribution_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ===== Opening Balances =====


class EmployeeOpeningBalance(Base, TimestampMixin):
    """Year-to-date figures carried into the next pay period."""

    __tablename__ = "payroll_opening_balances"

    opening_balance_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid4
    )
    employee_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)
    ytd_taxable_income: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    ytd_income_tax: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    ytd_gross_earnings: Mapped[Decimal | None] = mapped_column(Numeric(14, 4), nullable=True)
    ytd_reliefs_json: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("employee_id", "tax_year", name="opening_balance_employee_year_unique"),
    )
