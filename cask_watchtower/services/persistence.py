"""
SQLite persistence gateway for the catalog mirror and alert definitions.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from dateutil import parser as date_parser

from ..models.alert import AlertDefinition, AlertKind
from ..models.catalog import ArchiveRecord, CatalogRecord, CycleKind, MirrorEntry
from ..models.cycle import UpsertOutcome

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

LIVE_TABLE = "catalog_live"
ARCHIVE_TABLE = "catalog_archive"
ALERT_TABLE = "alert_definitions"

# Every operation opens its own connection
IN_MEMORY_PATH = ":memory:"

SCHEMA = [
    f"""
    CREATE TABLE IF NOT EXISTS {LIVE_TABLE} (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      natural_code TEXT NOT NULL UNIQUE,
      display_name TEXT NOT NULL,
      origin_group_id TEXT,
      sequence_no TEXT,
      price_text TEXT,
      strength TEXT,
      age_years TEXT,
      cask_type TEXT,
      flavour_profile TEXT,
      origin_group_name TEXT,
      region_name TEXT,
      available INTEGER NOT NULL DEFAULT 1,
      source_url TEXT NOT NULL,
      is_recently_added INTEGER NOT NULL DEFAULT 0,
      recent_since TEXT,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{LIVE_TABLE}_display_name ON {LIVE_TABLE}(display_name)",
    f"""
    CREATE TABLE IF NOT EXISTS {ARCHIVE_TABLE} (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      code TEXT NOT NULL UNIQUE,
      display_name TEXT NOT NULL,
      price_text TEXT,
      description TEXT,
      strength TEXT,
      age_years TEXT,
      cask_type TEXT,
      origin_group_name TEXT,
      region_name TEXT,
      bottle_size TEXT,
      source_url TEXT NOT NULL,
      is_recently_added INTEGER NOT NULL DEFAULT 0,
      created_at TEXT NOT NULL,
      updated_at TEXT NOT NULL
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {ALERT_TABLE} (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      owner_user_id TEXT NOT NULL,
      scope_id TEXT NOT NULL,
      kind TEXT NOT NULL,
      value TEXT NOT NULL,
      created_at TEXT NOT NULL,
      UNIQUE(owner_user_id, scope_id, kind, value)
    )
    """,
]

LIVE_COLUMNS = (
    "natural_code, display_name, origin_group_id, sequence_no, price_text, "
    "strength, age_years, cask_type, flavour_profile, origin_group_name, "
    "region_name, available, source_url, is_recently_added, recent_since, "
    "created_at, updated_at"
)

ARCHIVE_COLUMNS = (
    "code, display_name, price_text, description, strength, age_years, "
    "cask_type, origin_group_name, region_name, bottle_size, source_url, "
    "is_recently_added, created_at, updated_at"
)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as fixed-width naive UTC text (sortable as a string)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return date_parser.isoparse(value).replace(tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SQLitePersistenceGateway:
    """Mirror and alert storage backed by a single SQLite file."""

    def __init__(
        self,
        db_path: str,
        clock: Callable[[], datetime] = _utc_now,
        initialize: bool = True,
    ):
        """
        Initialize the gateway.

        Args:
            db_path: SQLite database file; ":memory:" is rejected
            clock: Source of the current UTC time
            initialize: Create missing tables immediately
        """
        if db_path == IN_MEMORY_PATH:
            raise ValueError("In-memory databases are not supported, use a file path")
        self.db_path = db_path
        self.clock = clock
        if initialize:
            self.initialize()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection; commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create tables if they don't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
        logger.info(f"Database ready at {self.db_path}")

    def _now(self) -> str:
        return format_timestamp(self.clock())

    # Catalog mirror

    def fetch_mirror_entries(self, kind: CycleKind) -> List[MirrorEntry]:
        table = ARCHIVE_TABLE if kind == CycleKind.ARCHIVE else LIVE_TABLE
        with self._connection() as conn:
            rows = conn.execute(f"SELECT display_name, source_url FROM {table}").fetchall()
        return [MirrorEntry(row["display_name"], row["source_url"]) for row in rows]

    def upsert_record(self, record: CatalogRecord) -> UpsertOutcome:
        """
        Insert or refresh a live record keyed by natural code.

        On conflict the descriptive fields, availability and updated_at are
        overwritten; is_recently_added, recent_since and created_at are kept.
        """
        record.validate()
        now = self._now()

        with self._connection() as conn:
            existing = conn.execute(
                f"SELECT 1 FROM {LIVE_TABLE} WHERE natural_code = ? LIMIT 1",
                (record.natural_code,),
            ).fetchone()

            conn.execute(
                f"""
                INSERT INTO {LIVE_TABLE} ({LIVE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(natural_code) DO UPDATE SET
                  display_name      = excluded.display_name,
                  origin_group_id   = excluded.origin_group_id,
                  sequence_no       = excluded.sequence_no,
                  price_text        = excluded.price_text,
                  strength          = excluded.strength,
                  age_years         = excluded.age_years,
                  cask_type         = excluded.cask_type,
                  flavour_profile   = excluded.flavour_profile,
                  origin_group_name = excluded.origin_group_name,
                  region_name       = excluded.region_name,
                  available         = excluded.available,
                  source_url        = excluded.source_url,
                  updated_at        = excluded.updated_at
                """,
                (
                    record.natural_code,
                    record.display_name,
                    record.origin_group_id,
                    record.sequence_no,
                    record.price_text,
                    record.strength,
                    record.age_years,
                    record.cask_type,
                    record.flavour_profile,
                    record.origin_group_name,
                    record.region_name,
                    int(record.available),
                    record.source_url,
                    int(record.is_recently_added),
                    format_timestamp(record.recent_since),
                    now,
                    now,
                ),
            )

        return UpsertOutcome.UPDATED if existing else UpsertOutcome.INSERTED

    def upsert_archive_record(self, record: ArchiveRecord) -> UpsertOutcome:
        """Insert or refresh an archive record keyed by code."""
        record.validate()
        now = self._now()

        with self._connection() as conn:
            existing = conn.execute(
                f"SELECT 1 FROM {ARCHIVE_TABLE} WHERE code = ? LIMIT 1", (record.code,)
            ).fetchone()

            conn.execute(
                f"""
                INSERT INTO {ARCHIVE_TABLE} ({ARCHIVE_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(code) DO UPDATE SET
                  display_name      = excluded.display_name,
                  price_text        = excluded.price_text,
                  description       = excluded.description,
                  strength          = excluded.strength,
                  age_years         = excluded.age_years,
                  cask_type         = excluded.cask_type,
                  origin_group_name = excluded.origin_group_name,
                  region_name       = excluded.region_name,
                  bottle_size       = excluded.bottle_size,
                  source_url        = excluded.source_url,
                  updated_at        = excluded.updated_at
                """,
                (
                    record.code,
                    record.display_name,
                    record.price_text,
                    record.description,
                    record.strength,
                    record.age_years,
                    record.cask_type,
                    record.origin_group_name,
                    record.region_name,
                    record.bottle_size,
                    record.source_url,
                    int(record.is_recently_added),
                    now,
                    now,
                ),
            )

        return UpsertOutcome.UPDATED if existing else UpsertOutcome.INSERTED

    def set_availability(self, display_names: Iterable[str], available: bool) -> int:
        """Bulk update availability for live records with these names."""
        now = self._now()
        params = [(int(available), now, name) for name in display_names]
        if not params:
            return 0

        with self._connection() as conn:
            before = conn.total_changes
            conn.executemany(
                f"UPDATE {LIVE_TABLE} SET available = ?, updated_at = ? "
                "WHERE display_name = ?",
                params,
            )
            return conn.total_changes - before

    def expire_recent(self, older_than: datetime) -> int:
        """Clear the recently-added flag where recent_since < older_than."""
        with self._connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE {LIVE_TABLE}
                SET is_recently_added = 0, updated_at = ?
                WHERE is_recently_added = 1
                  AND recent_since IS NOT NULL
                  AND recent_since < ?
                """,
                (self._now(), format_timestamp(older_than)),
            )
            return cursor.rowcount

    def fetch_available_records(self) -> List[CatalogRecord]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM {LIVE_TABLE} WHERE available = 1 "
                "ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def fetch_live_records(self) -> List[CatalogRecord]:
        """Fetch every live mirror record, available or not, newest first."""
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM {LIVE_TABLE} ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def get_record(self, natural_code: str) -> Optional[CatalogRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {LIVE_TABLE} WHERE natural_code = ?", (natural_code,)
            ).fetchone()
        return self._row_to_record(row) if row else None

    def get_archive_record(self, code: str) -> Optional[ArchiveRecord]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT * FROM {ARCHIVE_TABLE} WHERE code = ?", (code,)
            ).fetchone()
        if row is None:
            return None
        return ArchiveRecord(
            code=row["code"],
            display_name=row["display_name"],
            source_url=row["source_url"],
            price_text=row["price_text"],
            description=row["description"],
            strength=row["strength"],
            age_years=row["age_years"],
            cask_type=row["cask_type"],
            origin_group_name=row["origin_group_name"],
            region_name=row["region_name"],
            bottle_size=row["bottle_size"] or "700ml",
            is_recently_added=bool(row["is_recently_added"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> CatalogRecord:
        return CatalogRecord(
            natural_code=row["natural_code"],
            display_name=row["display_name"],
            source_url=row["source_url"],
            origin_group_id=row["origin_group_id"],
            sequence_no=row["sequence_no"],
            price_text=row["price_text"],
            strength=row["strength"],
            age_years=row["age_years"],
            cask_type=row["cask_type"],
            flavour_profile=row["flavour_profile"],
            origin_group_name=row["origin_group_name"],
            region_name=row["region_name"],
            available=bool(row["available"]),
            is_recently_added=bool(row["is_recently_added"]),
            recent_since=parse_timestamp(row["recent_since"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    # Alert definitions

    def fetch_alerts(self) -> List[AlertDefinition]:
        with self._connection() as conn:
            rows = conn.execute(f"SELECT * FROM {ALERT_TABLE} ORDER BY id").fetchall()
        return [self._row_to_alert(row) for row in rows]

    def add_alert(self, alert: AlertDefinition) -> Optional[AlertDefinition]:
        """Store an alert; None when an identical one already exists."""
        alert.validate()
        created_at = alert.created_at or self.clock()

        try:
            with self._connection() as conn:
                cursor = conn.execute(
                    f"""
                    INSERT INTO {ALERT_TABLE} (owner_user_id, scope_id, kind, value, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        str(alert.owner_user_id),
                        str(alert.scope_id),
                        alert.kind.value,
                        alert.value,
                        format_timestamp(created_at),
                    ),
                )
                alert_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.info(f"Alert already exists for user {alert.owner_user_id}: {alert.describe()}")
            return None

        return AlertDefinition(
            owner_user_id=str(alert.owner_user_id),
            scope_id=str(alert.scope_id),
            kind=alert.kind,
            value=alert.value,
            id=alert_id,
            created_at=parse_timestamp(format_timestamp(created_at)),
        )

    def find_alert(
        self, owner_user_id: str, scope_id: str, kind: AlertKind, value: str
    ) -> Optional[AlertDefinition]:
        with self._connection() as conn:
            row = conn.execute(
                f"""
                SELECT * FROM {ALERT_TABLE}
                WHERE owner_user_id = ? AND scope_id = ? AND kind = ? AND value = ?
                """,
                (str(owner_user_id), str(scope_id), kind.value, value),
            ).fetchone()
        return self._row_to_alert(row) if row else None

    def list_alerts(self, owner_user_id: str, scope_id: str) -> List[AlertDefinition]:
        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {ALERT_TABLE}
                WHERE owner_user_id = ? AND scope_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (str(owner_user_id), str(scope_id)),
            ).fetchall()
        return [self._row_to_alert(row) for row in rows]

    def remove_alert(self, alert_id: int, owner_user_id: str, scope_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                f"DELETE FROM {ALERT_TABLE} WHERE id = ? AND owner_user_id = ? AND scope_id = ?",
                (alert_id, str(owner_user_id), str(scope_id)),
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> AlertDefinition:
        return AlertDefinition(
            owner_user_id=row["owner_user_id"],
            scope_id=row["scope_id"],
            kind=AlertKind.from_value(row["kind"]),
            value=row["value"],
            id=row["id"],
            created_at=parse_timestamp(row["created_at"]),
        )
