"""ORM entities for the practice tables read by the forecasting engine."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from demand_matrix.db.base import Base

JSONList = JSON().with_variant(JSONB(), "postgresql")


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    expected_monthly_revenue: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


class Skill(Base):
    __tablename__ = "skills"
    __table_args__ = (CheckConstraint("fee_rate IS NULL OR fee_rate >= 0", name="ck_skills_fee_rate_non_negative"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    fee_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_title: Mapped[str | None] = mapped_column(String(128), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RecurringTask(Base):
    __tablename__ = "recurring_tasks"
    __table_args__ = (
        Index("ix_recurring_tasks_client_id", "client_id"),
        Index("ix_recurring_tasks_active", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    template_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    estimated_hours: Mapped[Decimal | None] = mapped_column(Numeric(8, 2), nullable=True)
    required_skills: Mapped[list[str]] = mapped_column(JSONList, nullable=False, default=list)
    priority: Mapped[str | None] = mapped_column(String(32), nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recurrence_type: Mapped[str] = mapped_column(String(32), nullable=False)
    recurrence_interval: Mapped[int | None] = mapped_column(nullable=True, default=1)
    weekdays: Mapped[list[int] | None] = mapped_column(JSONList, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(nullable=True)
    month_of_year: Mapped[int | None] = mapped_column(nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    preferred_staff_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("staff.id"), nullable=True)

    client: Mapped[Client] = relationship(lazy="joined")
    preferred_staff: Mapped[Staff | None] = relationship(lazy="joined")
