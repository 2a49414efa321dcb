"""
SQLAlchemy model for cost_factors.

Reference data maintained outside this service: one row per
(category, location key) with the local labour rate, material multiplier
and small-job minimum. The location key is the service postal code.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, Enum, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .job import JobCategory


class CostFactor(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "cost_factors"
    __table_args__ = (
        UniqueConstraint("location_key", "category", name="uq_cost_factors_location_category"),
    )

    location_key: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[JobCategory] = mapped_column(
        Enum(JobCategory, name="job_category"),
        nullable=False,
    )
    labor_rate_cents_per_hour: Mapped[int] = mapped_column(BigInteger, nullable=False)
    material_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False)
    small_job_min_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CostFactor(location={self.location_key}, category={self.category}, "
            f"rate={self.labor_rate_cents_per_hour})>"
        )
