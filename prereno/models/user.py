"""
SQLAlchemy models for profiles and contractors.

Authentication itself is delegated to the hosted identity provider; a
``Profile`` row mirrors the provider's user id and carries the marketplace
role. Contractors are profiles with a vetted trade record attached.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class UserRole(str, enum.Enum):
    CLIENT = "client"
    LANDLORD = "landlord"
    PROPERTY_MANAGER = "property_manager"
    CONTRACTOR = "contractor"
    ADMIN = "admin"


class Profile(TimestampMixin, Base):
    __tablename__ = "profiles"

    # Same id as the hosted identity provider's user record
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.CLIENT,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email}, role={self.role})>"


class Contractor(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "contractors"

    profile_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    company: Mapped[str] = mapped_column(String(200), nullable=False)
    # Licence jurisdiction; matched against the job postal-code prefix
    license_state: Mapped[str] = mapped_column(String(20), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stripe_account_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Contractor(id={self.id}, company={self.company}, "
            f"license_state={self.license_state}, verified={self.verified})>"
        )
