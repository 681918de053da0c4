"""Row normalization: one raw row into six partial records.

The mapping from source column to record field is a fixed table. Every
conversion is total, so normalize() never raises: missing keys become
None and malformed dates or amounts become None.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from openpyxl.utils.datetime import from_excel

from policyvault.ingestion.records import (
    AccountRecord,
    AgentRecord,
    IngestionBatches,
    PolicyCarrierRecord,
    PolicyCategoryRecord,
    PolicyInfoRecord,
    UserRecord,
)

NormalizedRow = tuple[
    AgentRecord,
    UserRecord,
    AccountRecord,
    PolicyCategoryRecord,
    PolicyCarrierRecord,
    PolicyInfoRecord,
]

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d-%b-%Y",
    "%d %b %Y",
    "%b %d %Y",
    "%B %d %Y",
)


def to_text(value: Any) -> str | None:
    """Render a cell value as text; None and blank strings become None."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    text = str(value)
    return text if text.strip() else None


def to_date(value: Any) -> str | None:
    """Parse a calendar date and return it as ISO 8601, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        # Spreadsheet serial date
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError, TypeError):
            return None
        if isinstance(converted, datetime):
            return converted.date().isoformat()
        return None

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        pass
    cleaned = text.replace(",", "")
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def to_amount(value: Any) -> float | None:
    """Parse a monetary amount; thousands separators and '$' are ignored."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "").lstrip("$")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _raw(value: Any) -> Any:
    return value


# record type -> {field name: (source column, converter)}
FIELD_MAP: dict[type, dict[str, tuple[str, Callable[[Any], Any]]]] = {
    AgentRecord: {
        "agent_name": ("agent", to_text),
    },
    UserRecord: {
        "first_name": ("firstname", to_text),
        "date_of_birth": ("dob", to_date),
        "address": ("address", to_text),
        "phone_number": ("phone", to_text),
        "state": ("state", to_text),
        "zip_code": ("zip", to_text),
        "email": ("email", to_text),
        "gender": ("gender", to_text),
        "user_type": ("userType", to_text),
    },
    AccountRecord: {
        "account_name": ("account_name", to_text),
    },
    PolicyCategoryRecord: {
        "category_name": ("category_name", to_text),
    },
    PolicyCarrierRecord: {
        "company_name": ("company_name", to_text),
    },
    PolicyInfoRecord: {
        "policy_number": ("policy_number", to_text),
        "policy_start_date": ("policy_start_date", to_date),
        "policy_end_date": ("policy_end_date", to_date),
        "policy_category_ref": ("policy_category", _raw),
        "account_ref": ("collectionId", _raw),
        "carrier_ref": ("companyCollectionId", _raw),
        "user_ref": ("userId", _raw),
        "policy_amount": ("policy_amount", to_amount),
    },
}


def _build(record_type: type, row: Mapping[str, Any]) -> Any:
    fields = FIELD_MAP[record_type]
    return record_type(
        **{name: convert(row.get(column)) for name, (column, convert) in fields.items()}
    )


def normalize(row: Mapping[str, Any]) -> NormalizedRow:
    """Map one raw row onto the six record shapes."""
    return (
        _build(AgentRecord, row),
        _build(UserRecord, row),
        _build(AccountRecord, row),
        _build(PolicyCategoryRecord, row),
        _build(PolicyCarrierRecord, row),
        _build(PolicyInfoRecord, row),
    )


def normalize_rows(rows: Iterable[Mapping[str, Any] | None]) -> IngestionBatches:
    """Normalize rows in order into six index-aligned batches.

    None rows are skipped; every other row contributes exactly one record
    to each batch.
    """
    batches = IngestionBatches()
    for row in rows:
        if row is None:
            continue
        agent, user, account, category, carrier, policy = normalize(row)
        batches.agents.append(agent)
        batches.users.append(user)
        batches.accounts.append(account)
        batches.policy_categories.append(category)
        batches.policy_carriers.append(carrier)
        batches.policy_infos.append(policy)
    return batches
