"""Pydantic models matching the SQLite table schemas.

These are shared between the DB layer and API responses.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class User(BaseModel):
    """A stored user row."""

    id: str
    first_name: str | None = None
    date_of_birth: str | None = None  # ISO 8601 date
    address: str | None = None
    phone_number: str | None = None
    state: str | None = None
    zip_code: str | None = None
    email: str | None = None
    gender: str | None = None
    user_type: str | None = None
    created_at: datetime


class PolicyCategory(BaseModel):
    id: str
    category_name: str | None = None


class Account(BaseModel):
    id: str
    account_name: str | None = None


class PolicyCarrier(BaseModel):
    id: str
    company_name: str | None = None


class PolicyInfo(BaseModel):
    """A policy row with its references populated where they resolve."""

    id: str
    policy_number: str | None = None
    policy_start_date: str | None = None
    policy_end_date: str | None = None
    policy_category_ref: Any = None
    account_ref: Any = None
    carrier_ref: Any = None
    user_ref: Any = None
    policy_amount: float | None = None
    created_at: datetime
    policy_category: PolicyCategory | None = None
    account: Account | None = None
    carrier: PolicyCarrier | None = None


class AggregatedPolicy(BaseModel):
    """Per-user policy count and amount total."""

    user_id: str
    user_name: str | None = None
    policy_count: int
    total_policy_amount: float


class ScheduledMessage(BaseModel):
    """A stored message with the time it is meant for."""

    id: str
    message: str | None = None
    scheduled_time: datetime
    created_at: datetime
