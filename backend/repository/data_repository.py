"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from backend.domain.intervals import parse_instant, to_storage
from backend.domain.models import (
    OCCUPYING_STATUSES,
    BookingRecord,
    BookingStatus,
    CapacityPolicy,
    OccupiedInterval,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

# Called inside the write transaction with the fresh occupied snapshot and policy.
AdmissionCheck = Callable[[list[OccupiedInterval], CapacityPolicy], None]
BookingCheck = Callable[[BookingRecord, list[OccupiedInterval], CapacityPolicy], None]

_OCCUPYING_VALUES = tuple(sorted(status.value for status in OCCUPYING_STATUSES))
_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in BookingStatus)

_BOOKING_COLUMNS = """
    id,
    requester_id,
    title,
    notes,
    status,
    start_ts,
    end_ts,
    bedroom_count,
    created_at,
    updated_at
"""


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic.

    Writes that move a booking into an occupying status run under
    `BEGIN IMMEDIATE`, which takes SQLite's single write lock before the
    occupied snapshot is read. The admission check and the write therefore
    see the same state, and that transaction is the authority on capacity.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=30.0)
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def _write_transaction(self) -> Iterator[sqlite3.Connection]:
        connection = self._connect()
        try:
            connection.execute("BEGIN IMMEDIATE;")
            yield connection
            connection.commit()
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        requester_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        notes TEXT,
                        status TEXT NOT NULL DEFAULT 'PENDING'
                            CHECK (status IN ({_STATUS_VALUES})),
                        start_ts TEXT NOT NULL,
                        end_ts TEXT NOT NULL,
                        bedroom_count INTEGER NOT NULL CHECK (bedroom_count >= 1),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (start_ts < end_ts)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Settings (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        buffer_days INTEGER NOT NULL CHECK (buffer_days >= 0),
                        min_nights INTEGER NOT NULL CHECK (min_nights >= 1),
                        max_bedrooms INTEGER NOT NULL CHECK (max_bedrooms >= 1)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_status_start_end
                    ON Bookings(status, start_ts, end_ts);
                    """
                )

                cursor.execute(
                    """
                    INSERT OR IGNORE INTO Settings (id, buffer_days, min_nights, max_bedrooms)
                    VALUES (1, ?, ?, ?);
                    """,
                    (
                        self._settings.default_buffer_days,
                        self._settings.default_min_nights,
                        self._settings.max_bedrooms,
                    ),
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def get_capacity_policy(self) -> CapacityPolicy:
        """Return house-wide settings, falling back to configured defaults."""
        with self._connect() as conn:
            return self._fetch_policy(conn)

    def _fetch_policy(self, conn: sqlite3.Connection) -> CapacityPolicy:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT buffer_days, min_nights, max_bedrooms FROM Settings WHERE id = 1;"
        )
        row = cursor.fetchone()
        if row is None:
            return CapacityPolicy(
                max_bedrooms=self._settings.max_bedrooms,
                buffer_days=self._settings.default_buffer_days,
                min_nights=self._settings.default_min_nights,
            )
        return CapacityPolicy(
            max_bedrooms=int(row["max_bedrooms"]),
            buffer_days=int(row["buffer_days"]),
            min_nights=int(row["min_nights"]),
        )

    def update_capacity_policy(self, policy: CapacityPolicy) -> CapacityPolicy:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Settings (id, buffer_days, min_nights, max_bedrooms)
                VALUES (1, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    buffer_days = excluded.buffer_days,
                    min_nights = excluded.min_nights,
                    max_bedrooms = excluded.max_bedrooms;
                """,
                (policy.buffer_days, policy.min_nights, policy.max_bedrooms),
            )
            conn.commit()
        logger.info(
            "Capacity policy updated: max_bedrooms=%s buffer_days=%s min_nights=%s",
            policy.max_bedrooms,
            policy.buffer_days,
            policy.min_nights,
        )
        return policy

    @staticmethod
    def _row_to_booking(row: sqlite3.Row) -> BookingRecord:
        return BookingRecord(
            booking_id=int(row["id"]),
            requester_id=str(row["requester_id"]),
            title=str(row["title"]),
            notes=row["notes"],
            status=BookingStatus(row["status"]),
            start=parse_instant(str(row["start_ts"])),
            end=parse_instant(str(row["end_ts"])),
            bedroom_count=int(row["bedroom_count"]),
            created_at=str(row["created_at"]),
            updated_at=str(row["updated_at"]),
        )

    @staticmethod
    def _fetch_booking(conn: sqlite3.Connection, booking_id: int) -> Optional[BookingRecord]:
        cursor = conn.cursor()
        cursor.execute(
            f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE id = ?;",
            (booking_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return DataRepository._row_to_booking(row)

    @staticmethod
    def _fetch_occupied(
        conn: sqlite3.Connection,
        window_start: datetime,
        window_end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> list[OccupiedInterval]:
        placeholders = ",".join("?" for _ in _OCCUPYING_VALUES)
        cursor = conn.cursor()
        cursor.execute(
            f"""
            SELECT id, status, start_ts, end_ts, bedroom_count
            FROM Bookings
            WHERE status IN ({placeholders})
              AND start_ts < ?
              AND end_ts > ?
              AND id != ?
            ORDER BY start_ts ASC, id ASC;
            """,
            (
                *_OCCUPYING_VALUES,
                to_storage(window_end),
                to_storage(window_start),
                exclude_booking_id if exclude_booking_id is not None else -1,
            ),
        )
        return [
            OccupiedInterval(
                start=parse_instant(str(row["start_ts"])),
                end=parse_instant(str(row["end_ts"])),
                bedroom_count=int(row["bedroom_count"]),
                status=BookingStatus(row["status"]),
            )
            for row in cursor.fetchall()
        ]

    def list_occupied_intervals(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> list[OccupiedInterval]:
        """Return occupying bookings that overlap the half-open window."""
        with self._connect() as conn:
            return self._fetch_occupied(conn, window_start, window_end)

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        with self._connect() as conn:
            return self._fetch_booking(conn, booking_id)

    def list_bookings(self, status: Optional[BookingStatus] = None) -> list[BookingRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            if status is None:
                cursor.execute(
                    f"SELECT {_BOOKING_COLUMNS} FROM Bookings ORDER BY start_ts ASC, id ASC;"
                )
            else:
                cursor.execute(
                    f"""
                    SELECT {_BOOKING_COLUMNS}
                    FROM Bookings
                    WHERE status = ?
                    ORDER BY start_ts ASC, id ASC;
                    """,
                    (status.value,),
                )
            return [self._row_to_booking(row) for row in cursor.fetchall()]

    def create_booking(
        self,
        *,
        requester_id: str,
        title: str,
        notes: Optional[str],
        status: BookingStatus,
        start: datetime,
        end: datetime,
        bedroom_count: Optional[int],
        admission_check: Optional[AdmissionCheck] = None,
    ) -> BookingRecord:
        """Insert a booking and return it.

        When `admission_check` is given it runs against the occupied snapshot
        and house policy read inside the same write transaction; raising
        aborts the insert. A `bedroom_count` of None takes every bedroom the
        policy allows at commit time.
        """
        with self._write_transaction() as conn:
            policy = self._fetch_policy(conn)
            if bedroom_count is None:
                bedroom_count = policy.max_bedrooms
            if admission_check is not None:
                admission_check(self._fetch_occupied(conn, start, end), policy)
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Bookings (
                    requester_id,
                    title,
                    notes,
                    status,
                    start_ts,
                    end_ts,
                    bedroom_count
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    requester_id,
                    title,
                    notes,
                    status.value,
                    to_storage(start),
                    to_storage(end),
                    bedroom_count,
                ),
            )
            booking = self._fetch_booking(conn, int(cursor.lastrowid))
        if booking is None:
            raise RuntimeError("Inserted booking could not be read back")
        logger.info(
            "Booking %s created with status %s (%s bedroom(s))",
            booking.booking_id,
            booking.status.value,
            booking.bedroom_count,
        )
        return booking

    def transition_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        transition_check: Optional[BookingCheck] = None,
    ) -> Optional[BookingRecord]:
        """Move a booking to `new_status`; returns None for an unknown id.

        `transition_check` receives the current row, the occupied snapshot
        overlapping it (excluding the booking itself) and the house policy,
        all read under the write lock. Raising from the check leaves the row
        untouched.
        """
        with self._write_transaction() as conn:
            current = self._fetch_booking(conn, booking_id)
            if current is None:
                return None
            if transition_check is not None:
                snapshot = self._fetch_occupied(
                    conn,
                    current.start,
                    current.end,
                    exclude_booking_id=booking_id,
                )
                transition_check(current, snapshot, self._fetch_policy(conn))
            conn.execute(
                """
                UPDATE Bookings
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE id = ?;
                """,
                (new_status.value, booking_id),
            )
            updated = self._fetch_booking(conn, booking_id)
        logger.info(
            "Booking %s moved %s -> %s",
            booking_id,
            current.status.value,
            new_status.value,
        )
        return updated

    def update_booking(
        self,
        booking_id: int,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        bedroom_count: Optional[int] = None,
        title: Optional[str] = None,
        notes: Optional[str] = None,
        edit_check: Optional[BookingCheck] = None,
    ) -> Optional[BookingRecord]:
        """Apply the given field changes; returns None for an unknown id.

        Fields left as None keep their stored value. `edit_check` receives the
        proposed row with the occupied snapshot overlapping its new dates
        (excluding the booking itself) and the house policy.
        """
        with self._write_transaction() as conn:
            current = self._fetch_booking(conn, booking_id)
            if current is None:
                return None
            proposed = replace(
                current,
                start=start if start is not None else current.start,
                end=end if end is not None else current.end,
                bedroom_count=bedroom_count if bedroom_count is not None else current.bedroom_count,
                title=title if title is not None else current.title,
                notes=notes if notes is not None else current.notes,
            )
            if edit_check is not None:
                snapshot: list[OccupiedInterval] = []
                if proposed.start < proposed.end:
                    snapshot = self._fetch_occupied(
                        conn,
                        proposed.start,
                        proposed.end,
                        exclude_booking_id=booking_id,
                    )
                edit_check(proposed, snapshot, self._fetch_policy(conn))
            conn.execute(
                """
                UPDATE Bookings
                SET start_ts = ?,
                    end_ts = ?,
                    bedroom_count = ?,
                    title = ?,
                    notes = ?,
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?;
                """,
                (
                    to_storage(proposed.start),
                    to_storage(proposed.end),
                    proposed.bedroom_count,
                    proposed.title,
                    proposed.notes,
                    booking_id,
                ),
            )
            updated = self._fetch_booking(conn, booking_id)
        logger.info(
            "Booking %s edited: %s -> %s (%s bedroom(s))",
            booking_id,
            proposed.start.isoformat(),
            proposed.end.isoformat(),
            proposed.bedroom_count,
        )
        return updated

    def count_bookings(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            return int(cursor.fetchone()["count"])
