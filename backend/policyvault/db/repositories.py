"""Record store and query repositories over SQLiteDB.

The ingestion coordinator writes through RecordStore; API routes read
through PolicyRepo and ScheduledMessageRepo. Neither touches SQL directly.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any

from policyvault.db.sqlite import SQLiteDB
from policyvault.errors import InvalidScheduleError, NotFoundError

# Insertable columns per collection, in table order (id and created_at excluded).
COLLECTION_COLUMNS: dict[str, tuple[str, ...]] = {
    "agents": ("agent_name",),
    "users": (
        "first_name", "date_of_birth", "address", "phone_number", "state",
        "zip_code", "email", "gender", "user_type",
    ),
    "accounts": ("account_name",),
    "policy_categories": ("category_name",),
    "policy_carriers": ("company_name",),
    "policy_infos": (
        "policy_number", "policy_start_date", "policy_end_date",
        "policy_category_ref", "account_ref", "carrier_ref", "user_ref",
        "policy_amount",
    ),
}


def _now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def _sql_value(value: Any) -> Any:
    """Coerce a record value into something sqlite3 binds natively."""
    if value is None or isinstance(value, (str, int, float, bytes)):
        return value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


class RecordStore:
    """Bulk-insert target for the six ingestion collections."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def insert_many(self, collection: str, records: Sequence[Mapping[str, Any]]) -> int:
        """Insert a batch of records into one collection.

        The batch is committed as a single transaction. Unknown keys in a
        record are ignored; missing keys are stored as NULL.

        Returns the number of records stored.

        Raises:
            KeyError: If the collection is unknown.
            sqlite3.Error: If the insert fails (nothing is committed).
        """
        columns = COLLECTION_COLUMNS[collection]
        if not records:
            return 0

        now = _now_iso()
        params = [
            (_new_id(), *(_sql_value(record.get(col)) for col in columns), now)
            for record in records
        ]
        placeholders = ", ".join("?" for _ in range(len(columns) + 2))
        self._db.executemany(
            f"INSERT INTO {collection} (id, {', '.join(columns)}, created_at) "
            f"VALUES ({placeholders})",
            params,
        )
        return len(params)

    def count(self, collection: str) -> int:
        """Return the number of stored records in a collection."""
        if collection not in COLLECTION_COLUMNS:
            raise KeyError(collection)
        row = self._db.fetchone(f"SELECT COUNT(*) AS n FROM {collection}")
        return int(row["n"]) if row else 0

    def list_all(self, collection: str) -> list[dict[str, Any]]:
        """Return every record of a collection in insertion order."""
        if collection not in COLLECTION_COLUMNS:
            raise KeyError(collection)
        return self._db.fetchall(f"SELECT * FROM {collection} ORDER BY rowid")


class PolicyRepo:
    """Read-side queries over users and policy infos."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def find_user_by_first_name(self, first_name: str) -> dict[str, Any] | None:
        """Return the earliest stored user with this first name."""
        return self._db.fetchone(
            "SELECT * FROM users WHERE first_name = ? ORDER BY rowid LIMIT 1",
            (first_name,),
        )

    def search_by_username(self, username: str) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """Return a user matched by first name together with their policies.

        Raises:
            NotFoundError: If no user has this first name.
        """
        user = self.find_user_by_first_name(username)
        if user is None:
            raise NotFoundError(f"User not found: {username}")
        return user, self.policies_for_user(user["id"])

    def policies_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """Get a user's policy infos with category, account and carrier populated.

        A reference that does not resolve to a stored record is returned
        as None.
        """
        rows = self._db.fetchall(
            "SELECT p.*, "
            "c.id AS c_id, c.category_name AS c_category_name, "
            "a.id AS a_id, a.account_name AS a_account_name, "
            "r.id AS r_id, r.company_name AS r_company_name "
            "FROM policy_infos p "
            "LEFT JOIN policy_categories c ON c.id = p.policy_category_ref "
            "LEFT JOIN accounts a ON a.id = p.account_ref "
            "LEFT JOIN policy_carriers r ON r.id = p.carrier_ref "
            "WHERE p.user_ref = ? ORDER BY p.rowid",
            (user_id,),
        )
        policies = []
        for row in rows:
            category = {"id": row.pop("c_id"), "category_name": row.pop("c_category_name")}
            account = {"id": row.pop("a_id"), "account_name": row.pop("a_account_name")}
            carrier = {"id": row.pop("r_id"), "company_name": row.pop("r_company_name")}
            row["policy_category"] = category if category["id"] else None
            row["account"] = account if account["id"] else None
            row["carrier"] = carrier if carrier["id"] else None
            policies.append(row)
        return policies

    def aggregate_by_user(self) -> list[dict[str, Any]]:
        """Count policies and total their amounts per user.

        Policies whose user_ref does not match a stored user are left out.
        """
        return self._db.fetchall(
            "SELECT p.user_ref AS user_id, u.first_name AS user_name, "
            "COUNT(*) AS policy_count, "
            "COALESCE(SUM(p.policy_amount), 0) AS total_policy_amount "
            "FROM policy_infos p JOIN users u ON u.id = p.user_ref "
            "GROUP BY p.user_ref, u.first_name "
            "ORDER BY u.first_name, p.user_ref"
        )


_SCHEDULE_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %I:%M %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M %p",
    "%B %d %Y %H:%M",
    "%B %d %Y %I:%M %p",
)


def parse_schedule(day: str, time_of_day: str) -> datetime:
    """Combine a day and a time of day into a naive local datetime.

    Raises:
        InvalidScheduleError: If the combination cannot be parsed.
    """
    text = f"{day.strip()} {time_of_day.strip()}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    cleaned = text.replace(",", "")
    for fmt in _SCHEDULE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    raise InvalidScheduleError(f"Cannot parse schedule from day={day!r} time={time_of_day!r}")


class ScheduledMessageRepo:
    """Repository for scheduled messages. Messages are stored, never sent."""

    def __init__(self, db: SQLiteDB) -> None:
        self._db = db

    def schedule(self, message: str | None, day: str, time_of_day: str) -> dict[str, Any]:
        """Parse day and time, then store the message for that moment."""
        return self.create(message, parse_schedule(day, time_of_day))

    def create(self, message: str | None, scheduled_time: datetime) -> dict[str, Any]:
        """Store a message with its scheduled time and return it."""
        msg_id = _new_id()
        self._db.execute(
            "INSERT INTO scheduled_messages (id, message, scheduled_time, created_at) "
            "VALUES (?, ?, ?, ?)",
            (msg_id, message, scheduled_time.isoformat(), _now_iso()),
        )
        return self._db.fetchone(  # type: ignore[return-value]
            "SELECT * FROM scheduled_messages WHERE id = ?", (msg_id,)
        )

    def list_all(self) -> list[dict[str, Any]]:
        """List scheduled messages ordered by scheduled time."""
        return self._db.fetchall(
            "SELECT * FROM scheduled_messages ORDER BY scheduled_time"
        )
