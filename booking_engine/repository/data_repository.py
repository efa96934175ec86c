"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Mapping, Optional, Sequence

from booking_engine.domain.models import (
    BlackoutRule,
    BufferRule,
    OperatingWindow,
    ReservationInterval,
    ResourceType,
    UnitReservation,
    WindowOverride,
)
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)

STATUS_CONFIRMED = "CONFIRMED"
STATUS_CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class ResourceRecord:
    resource_id: int
    name: str
    resource_type: ResourceType
    active: bool


@dataclass(frozen=True)
class ReservationRecord:
    reservation_id: int
    resource_id: int
    resource_name: str
    resource_type: ResourceType
    start_min: int
    end_min: int


@dataclass(frozen=True)
class BookingRecord:
    """Committed booking projection including its per-unit reservations."""

    booking_id: int
    date_key: str
    start_min: int
    end_min: int
    activity_code: str
    party_size: int
    total_cents: int
    status: str
    promo_code: Optional[str]
    reservations: tuple[ReservationRecord, ...] = ()


def _fetch_reservation_intervals(
    conn: sqlite3.Connection,
    date_key: str,
) -> list[ReservationInterval]:
    cursor = conn.cursor()
    cursor.execute(
        """
        SELECT
            res.resource_type AS resource_type,
            rr.start_min AS start_min,
            rr.end_min AS end_min,
            COUNT(*) AS units
        FROM ResourceReservations AS rr
        INNER JOIN Bookings AS b ON b.id = rr.booking_id
        INNER JOIN Resources AS res ON res.id = rr.resource_id
        WHERE rr.date_key = ?
          AND b.status != ?
        GROUP BY rr.booking_id, res.resource_type, rr.start_min, rr.end_min
        ORDER BY rr.start_min ASC, rr.booking_id ASC;
        """,
        (date_key, STATUS_CANCELLED),
    )
    return [
        ReservationInterval(
            resource_type=ResourceType(row["resource_type"]),
            units=int(row["units"]),
            start_min=int(row["start_min"]),
            end_min=int(row["end_min"]),
        )
        for row in cursor.fetchall()
    ]


class BookingTransaction:
    """Operations available while the write lock is held."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def list_reservation_intervals(self, date_key: str) -> list[ReservationInterval]:
        return _fetch_reservation_intervals(self._conn, date_key)

    def list_unit_reservations(
        self,
        date_key: str,
        resource_type: ResourceType,
    ) -> list[UnitReservation]:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT rr.id, rr.resource_id, rr.start_min, rr.end_min
            FROM ResourceReservations AS rr
            INNER JOIN Bookings AS b ON b.id = rr.booking_id
            INNER JOIN Resources AS res ON res.id = rr.resource_id
            WHERE rr.date_key = ?
              AND res.resource_type = ?
              AND b.status != ?
            ORDER BY rr.start_min ASC, rr.id ASC;
            """,
            (date_key, resource_type.value, STATUS_CANCELLED),
        )
        return [
            UnitReservation(
                reservation_id=int(row["id"]),
                resource_id=int(row["resource_id"]),
                start_min=int(row["start_min"]),
                end_min=int(row["end_min"]),
            )
            for row in cursor.fetchall()
        ]

    def list_active_unit_ids(self, resource_type: ResourceType) -> list[int]:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            SELECT id FROM Resources
            WHERE resource_type = ? AND active = 1
            ORDER BY id ASC;
            """,
            (resource_type.value,),
        )
        return [int(row["id"]) for row in cursor.fetchall()]

    def insert_booking(
        self,
        *,
        date_key: str,
        start_min: int,
        end_min: int,
        activity_code: str,
        party_size: int,
        total_cents: int,
        promo_code: Optional[str] = None,
    ) -> int:
        cursor = self._conn.cursor()
        cursor.execute(
            """
            INSERT INTO Bookings (
                date_key,
                start_min,
                end_min,
                activity_code,
                party_size,
                total_cents,
                status,
                promo_code
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                date_key,
                start_min,
                end_min,
                activity_code,
                party_size,
                total_cents,
                STATUS_CONFIRMED,
                promo_code,
            ),
        )
        return int(cursor.lastrowid)

    def insert_reservations(
        self,
        *,
        booking_id: int,
        date_key: str,
        resource_ids: Sequence[int],
        start_min: int,
        end_min: int,
    ) -> None:
        self._conn.executemany(
            """
            INSERT INTO ResourceReservations (
                booking_id,
                resource_id,
                date_key,
                start_min,
                end_min
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            [
                (booking_id, resource_id, date_key, start_min, end_min)
                for resource_id in resource_ids
            ],
        )

    def move_reservation(self, reservation_id: int, resource_id: int) -> None:
        self._conn.execute(
            "UPDATE ResourceReservations SET resource_id = ? WHERE id = ?;",
            (resource_id, reservation_id),
        )


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self, isolation_level: Optional[str] = "DEFERRED") -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, isolation_level=isolation_level)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Resources (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        resource_type TEXT NOT NULL,
                        active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0,1)),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date_key TEXT NOT NULL,
                        start_min INTEGER NOT NULL,
                        end_min INTEGER NOT NULL CHECK (end_min > start_min),
                        activity_code TEXT NOT NULL,
                        party_size INTEGER NOT NULL CHECK (party_size > 0),
                        total_cents INTEGER NOT NULL CHECK (total_cents >= 0),
                        status TEXT NOT NULL DEFAULT 'CONFIRMED',
                        promo_code TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ResourceReservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        booking_id INTEGER NOT NULL,
                        resource_id INTEGER NOT NULL,
                        date_key TEXT NOT NULL,
                        start_min INTEGER NOT NULL,
                        end_min INTEGER NOT NULL CHECK (end_min > start_min),
                        FOREIGN KEY (booking_id) REFERENCES Bookings(id),
                        FOREIGN KEY (resource_id) REFERENCES Resources(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BlackoutRules (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date_key TEXT NOT NULL,
                        start_min INTEGER,
                        end_min INTEGER,
                        activity TEXT NOT NULL DEFAULT 'ALL',
                        reason TEXT
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS BufferRules (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        activity TEXT NOT NULL DEFAULT 'ALL',
                        before_min INTEGER NOT NULL DEFAULT 0 CHECK (before_min >= 0),
                        after_min INTEGER NOT NULL DEFAULT 0 CHECK (after_min >= 0),
                        active INTEGER NOT NULL DEFAULT 1 CHECK (active IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS WindowOverrides (
                        date_key TEXT PRIMARY KEY,
                        open_min INTEGER,
                        close_min INTEGER,
                        suppress_blackouts INTEGER NOT NULL DEFAULT 0,
                        approved_by TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_date_resource
                    ON ResourceReservations(date_key, resource_id);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_blackouts_date
                    ON BlackoutRules(date_key);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_resources(self, capacities: Optional[Mapping[ResourceType, int]] = None) -> None:
        """Create one row per physical unit only when no units exist yet."""
        resolved = capacities if capacities is not None else self._settings.resource_capacities
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Resources;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Resources already present; skipping seed")
                    return

                rows = [
                    (f"{resource_type.label} {index}", resource_type.value)
                    for resource_type in ResourceType
                    for index in range(1, int(resolved.get(resource_type, 0)) + 1)
                ]
                cursor.executemany(
                    "INSERT INTO Resources (name, resource_type) VALUES (?, ?);",
                    rows,
                )
                conn.commit()
            logger.info("Resources seeded | units=%s", len(rows))
        except sqlite3.Error as exc:
            raise RuntimeError(f"Resource seeding failed: {exc}") from exc

    def list_resources(self) -> list[ResourceRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, resource_type, active FROM Resources ORDER BY id ASC;"
            )
            return [self._resource_from_row(row) for row in cursor.fetchall()]

    def set_resource_active(self, resource_id: int, active: bool) -> Optional[ResourceRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE Resources SET active = ? WHERE id = ?;",
                (1 if active else 0, resource_id),
            )
            if cursor.rowcount == 0:
                return None
            cursor.execute(
                "SELECT id, name, resource_type, active FROM Resources WHERE id = ?;",
                (resource_id,),
            )
            record = self._resource_from_row(cursor.fetchone())
            conn.commit()
        logger.info("Resource updated | resource_id=%s | active=%s", resource_id, active)
        return record

    def count_active_units(self) -> dict[ResourceType, int]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT resource_type, COUNT(*) AS count
                FROM Resources
                WHERE active = 1
                GROUP BY resource_type;
                """
            )
            counts = {resource_type: 0 for resource_type in ResourceType}
            for row in cursor.fetchall():
                counts[ResourceType(row["resource_type"])] = int(row["count"])
            return counts

    def list_reservation_intervals(self, date_key: str) -> list[ReservationInterval]:
        """Committed unit usage for one date, cancelled bookings excluded."""
        try:
            with self._connect() as conn:
                return _fetch_reservation_intervals(conn, date_key)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Reservation read failed: {exc}") from exc

    @contextmanager
    def booking_transaction(self) -> Iterator[BookingTransaction]:
        """Hold SQLite's write lock for a read-check-insert sequence."""
        conn = self._connect(isolation_level=None)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE;")
            except sqlite3.Error as exc:
                raise RuntimeError(f"Booking transaction failed: {exc}") from exc
            try:
                yield BookingTransaction(conn)
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
            conn.execute("COMMIT;")
        finally:
            conn.close()

    def list_blackout_rules(self, date_key: str) -> list[BlackoutRule]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT date_key, start_min, end_min, activity, reason
                FROM BlackoutRules
                WHERE date_key = ?
                ORDER BY id ASC;
                """,
                (date_key,),
            )
            return [
                BlackoutRule(
                    date_key=str(row["date_key"]),
                    start_min=None if row["start_min"] is None else int(row["start_min"]),
                    end_min=None if row["end_min"] is None else int(row["end_min"]),
                    activity=str(row["activity"]),
                    reason=row["reason"],
                )
                for row in cursor.fetchall()
            ]

    def create_blackout_rule(self, rule: BlackoutRule) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO BlackoutRules (date_key, start_min, end_min, activity, reason)
                VALUES (?, ?, ?, ?, ?);
                """,
                (rule.date_key, rule.start_min, rule.end_min, rule.activity, rule.reason),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def list_buffer_rules(self) -> list[BufferRule]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT activity, before_min, after_min, active
                FROM BufferRules
                ORDER BY id ASC;
                """
            )
            return [
                BufferRule(
                    activity=str(row["activity"]),
                    before_min=int(row["before_min"]),
                    after_min=int(row["after_min"]),
                    active=bool(row["active"]),
                )
                for row in cursor.fetchall()
            ]

    def create_buffer_rule(self, rule: BufferRule) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO BufferRules (activity, before_min, after_min, active)
                VALUES (?, ?, ?, ?);
                """,
                (rule.activity, rule.before_min, rule.after_min, 1 if rule.active else 0),
            )
            conn.commit()
            return int(cursor.lastrowid)

    def save_window_override(
        self,
        override: WindowOverride,
        approved_by: Optional[str] = None,
    ) -> None:
        window = override.window
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO WindowOverrides (
                    date_key,
                    open_min,
                    close_min,
                    suppress_blackouts,
                    approved_by
                )
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(date_key) DO UPDATE SET
                    open_min = excluded.open_min,
                    close_min = excluded.close_min,
                    suppress_blackouts = excluded.suppress_blackouts,
                    approved_by = excluded.approved_by,
                    created_at = CURRENT_TIMESTAMP;
                """,
                (
                    override.date_key,
                    None if window is None else window.open_min,
                    None if window is None else window.close_min,
                    1 if override.suppress_blackouts else 0,
                    approved_by,
                ),
            )
            conn.commit()
        logger.info(
            "Window override saved | date=%s | window=%s | suppress_blackouts=%s",
            override.date_key,
            None if window is None else f"{window.open_min}-{window.close_min}",
            override.suppress_blackouts,
        )

    def get_window_override(self, date_key: str) -> Optional[WindowOverride]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT date_key, open_min, close_min, suppress_blackouts
                FROM WindowOverrides
                WHERE date_key = ?;
                """,
                (date_key,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            window = None
            if row["open_min"] is not None and row["close_min"] is not None:
                window = OperatingWindow(
                    open_min=int(row["open_min"]),
                    close_min=int(row["close_min"]),
                )
            return WindowOverride(
                date_key=str(row["date_key"]),
                window=window,
                suppress_blackouts=bool(row["suppress_blackouts"]),
            )

    def delete_window_override(self, date_key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM WindowOverrides WHERE date_key = ?;", (date_key,))
            conn.commit()
            return cursor.rowcount > 0

    def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id,
                    date_key,
                    start_min,
                    end_min,
                    activity_code,
                    party_size,
                    total_cents,
                    status,
                    promo_code
                FROM Bookings
                WHERE id = ?;
                """,
                (booking_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None

            cursor.execute(
                """
                SELECT
                    rr.id,
                    rr.resource_id,
                    res.name,
                    res.resource_type,
                    rr.start_min,
                    rr.end_min
                FROM ResourceReservations AS rr
                INNER JOIN Resources AS res ON res.id = rr.resource_id
                WHERE rr.booking_id = ?
                ORDER BY rr.start_min ASC, rr.resource_id ASC;
                """,
                (booking_id,),
            )
            reservations = tuple(
                ReservationRecord(
                    reservation_id=int(item["id"]),
                    resource_id=int(item["resource_id"]),
                    resource_name=str(item["name"]),
                    resource_type=ResourceType(item["resource_type"]),
                    start_min=int(item["start_min"]),
                    end_min=int(item["end_min"]),
                )
                for item in cursor.fetchall()
            )
            return BookingRecord(
                booking_id=int(row["id"]),
                date_key=str(row["date_key"]),
                start_min=int(row["start_min"]),
                end_min=int(row["end_min"]),
                activity_code=str(row["activity_code"]),
                party_size=int(row["party_size"]),
                total_cents=int(row["total_cents"]),
                status=str(row["status"]),
                promo_code=row["promo_code"],
                reservations=reservations,
            )

    def cancel_booking(self, booking_id: int) -> bool:
        """Mark a booking cancelled; its reservations stop counting immediately."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE Bookings SET status = ? WHERE id = ?;",
                (STATUS_CANCELLED, booking_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _resource_from_row(row: sqlite3.Row) -> ResourceRecord:
        return ResourceRecord(
            resource_id=int(row["id"]),
            name=str(row["name"]),
            resource_type=ResourceType(row["resource_type"]),
            active=bool(row["active"]),
        )
