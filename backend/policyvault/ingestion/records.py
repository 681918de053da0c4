"""Partial record types produced by row normalization.

Plain dataclasses so they pickle cleanly across the worker process
boundary. Every field is optional: a missing source column yields ``None``
rather than a dropped record.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class AgentRecord:
    agent_name: str | None = None


@dataclass(frozen=True)
class UserRecord:
    first_name: str | None = None
    date_of_birth: str | None = None  # ISO 8601 date
    address: str | None = None
    phone_number: str | None = None
    state: str | None = None
    zip_code: str | None = None
    email: str | None = None
    gender: str | None = None
    user_type: str | None = None


@dataclass(frozen=True)
class AccountRecord:
    account_name: str | None = None


@dataclass(frozen=True)
class PolicyCategoryRecord:
    category_name: str | None = None


@dataclass(frozen=True)
class PolicyCarrierRecord:
    company_name: str | None = None


@dataclass(frozen=True)
class PolicyInfoRecord:
    """Policy row. The ``*_ref`` fields are copied verbatim from the source."""

    policy_number: str | None = None
    policy_start_date: str | None = None
    policy_end_date: str | None = None
    policy_category_ref: Any = None
    account_ref: Any = None
    carrier_ref: Any = None
    user_ref: Any = None
    policy_amount: float | None = None


@dataclass
class IngestionBatches:
    """Six index-aligned record lists, one entry per source row.

    Attributes:
        agents: One AgentRecord per row.
        users: One UserRecord per row.
        accounts: One AccountRecord per row.
        policy_categories: One PolicyCategoryRecord per row.
        policy_carriers: One PolicyCarrierRecord per row.
        policy_infos: One PolicyInfoRecord per row.
    """

    agents: list[AgentRecord] = field(default_factory=list)
    users: list[UserRecord] = field(default_factory=list)
    accounts: list[AccountRecord] = field(default_factory=list)
    policy_categories: list[PolicyCategoryRecord] = field(default_factory=list)
    policy_carriers: list[PolicyCarrierRecord] = field(default_factory=list)
    policy_infos: list[PolicyInfoRecord] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.agents)

    def collections(self) -> list[tuple[str, list[dict[str, Any]]]]:
        """Return (collection name, row dicts) pairs in persistence order."""
        return [
            ("agents", [asdict(r) for r in self.agents]),
            ("users", [asdict(r) for r in self.users]),
            ("accounts", [asdict(r) for r in self.accounts]),
            ("policy_categories", [asdict(r) for r in self.policy_categories]),
            ("policy_carriers", [asdict(r) for r in self.policy_carriers]),
            ("policy_infos", [asdict(r) for r in self.policy_infos]),
        ]


@dataclass
class WorkerReply:
    """The single message a worker process sends back to the coordinator.

    ``ok`` distinguishes a successful (possibly zero-row) result from a
    failure; ``error_kind`` is ``"unsupported_format"`` or ``"ingestion"``.
    """

    ok: bool
    batches: IngestionBatches | None = None
    error_kind: str | None = None
    message: str = ""
    extension: str | None = None
