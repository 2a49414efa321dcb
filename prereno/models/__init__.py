"""
PreReno SQLAlchemy Models
=========================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from prereno.models import Base, Job, JobOffer, Contractor
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

# -- Profiles --
from .user import Contractor, Profile, UserRole

# -- Jobs & offers --
from .job import Job, JobCategory, JobOffer, JobStatus, OfferKind

# -- Reference data --
from .pricing import CostFactor

# -- Payments & audit --
from .payment import AuditLog, Payment, PaymentStatus, Review

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "utcnow",
    # Profiles
    "Profile",
    "UserRole",
    "Contractor",
    # Jobs
    "Job",
    "JobCategory",
    "JobStatus",
    "JobOffer",
    "OfferKind",
    # Reference data
    "CostFactor",
    # Payments
    "Payment",
    "PaymentStatus",
    "AuditLog",
    "Review",
]
