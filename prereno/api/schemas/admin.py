"""
Pydantic v2 schemas for admin contractor review.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PendingContractorOut(BaseModel):
    id: uuid.UUID
    profile_id: uuid.UUID
    company: str
    license_state: str
    email: str
    full_name: str
    created_at: datetime


class ContractorVerifyRequest(BaseModel):
    verified: bool = True


class ContractorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    profile_id: uuid.UUID
    company: str
    license_state: str
    verified: bool
