"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import random
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional
from uuid import uuid4

from backend.domain.models import (
    Container,
    Guest,
    Parent,
    ResourceCategory,
    RsvpStatus,
    TableAssignment,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class PersistenceError(RuntimeError):
    """Raised when a store call fails; callers decide whether to roll back."""


_CONTAINER_COLUMNS = {
    "label",
    "container_type",
    "capacity",
    "assigned_guest_ids",
    "updated_at",
}

_GUEST_COLUMNS = {
    "first_name",
    "last_name",
    "rsvp_status",
    "is_vip",
    "assigned_hotel_id",
    "assigned_room_id",
    "assigned_vehicle_id",
    "updated_at",
}


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid4().hex


def _row_to_parent(row: sqlite3.Row) -> Parent:
    return Parent(
        parent_id=str(row["id"]),
        category=ResourceCategory(row["category"]),
        name=str(row["name"]),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_container(row: sqlite3.Row) -> Container:
    raw_ids = row["assigned_guest_ids"]
    return Container(
        container_id=str(row["id"]),
        category=ResourceCategory(row["category"]),
        parent_id=str(row["parent_id"]),
        label=str(row["label"]),
        container_type=str(row["container_type"] or ""),
        capacity=int(row["capacity"] or 0),
        assigned_guest_ids=tuple(json.loads(raw_ids)) if raw_ids else (),
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_guest(row: sqlite3.Row) -> Guest:
    return Guest(
        guest_id=str(row["id"]),
        first_name=str(row["first_name"]),
        last_name=str(row["last_name"]),
        rsvp_status=RsvpStatus(row["rsvp_status"]),
        is_vip=bool(row["is_vip"]),
        assigned_hotel_id=row["assigned_hotel_id"],
        assigned_room_id=row["assigned_room_id"],
        assigned_vehicle_id=row["assigned_vehicle_id"],
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
    )


def _row_to_table_assignment(row: sqlite3.Row) -> TableAssignment:
    seat_number = row["seat_number"]
    return TableAssignment(
        assignment_id=str(row["id"]),
        guest_id=str(row["guest_id"]),
        table_id=str(row["table_id"]),
        assigned_at=str(row["assigned_at"]),
        assigned_by_user_id=str(row["assigned_by_user_id"]),
        seat_number=int(seat_number) if seat_number is not None else None,
    )


class DataRepository:
    """Encapsulates SQLite access so assignment logic stays storage-agnostic.

    Foreign keys are declared without ON DELETE CASCADE: removing a parent
    that still owns containers, or a table that still owns seat records,
    fails. Cascades belong to the service layer.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Run one write statement and return the affected row count."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(sql, tuple(params))
                conn.commit()
                return int(cursor.rowcount)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Store write failed: {exc}") from exc

    def _fetch_all(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(sql, tuple(params))
                return list(cursor.fetchall())
        except sqlite3.Error as exc:
            raise PersistenceError(f"Store read failed: {exc}") from exc

    def _fetch_one(self, sql: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Parents (
                        id TEXT PRIMARY KEY,
                        category TEXT NOT NULL
                            CHECK (category IN ('room', 'vehicle', 'table')),
                        name TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Containers (
                        id TEXT PRIMARY KEY,
                        category TEXT NOT NULL
                            CHECK (category IN ('room', 'vehicle', 'table')),
                        parent_id TEXT NOT NULL,
                        label TEXT NOT NULL,
                        container_type TEXT,
                        capacity INTEGER,
                        assigned_guest_ids TEXT NOT NULL DEFAULT '[]',
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL,
                        FOREIGN KEY (parent_id) REFERENCES Parents(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Guests (
                        id TEXT PRIMARY KEY,
                        first_name TEXT NOT NULL,
                        last_name TEXT NOT NULL,
                        rsvp_status TEXT NOT NULL DEFAULT 'pending'
                            CHECK (rsvp_status IN ('pending', 'yes', 'no', 'maybe')),
                        is_vip INTEGER NOT NULL DEFAULT 0 CHECK (is_vip IN (0,1)),
                        assigned_hotel_id TEXT,
                        assigned_room_id TEXT,
                        assigned_vehicle_id TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TableAssignments (
                        id TEXT PRIMARY KEY,
                        guest_id TEXT NOT NULL,
                        table_id TEXT NOT NULL,
                        seat_number INTEGER,
                        assigned_at TEXT NOT NULL,
                        assigned_by_user_id TEXT NOT NULL,
                        FOREIGN KEY (table_id) REFERENCES Containers(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_containers_category_parent
                    ON Containers(category, parent_id);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_table_assignments_table
                    ON TableAssignments(table_id);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> None:
        """Seed a small deterministic wedding only when the store is empty."""
        rng = random.Random(self._settings.demo_random_seed)
        if self._fetch_one("SELECT id FROM Parents LIMIT 1;") is not None:
            logger.info("Demo data already present; skipping seed")
            return

        first_names = [
            "Jane", "John", "Priya", "Arjun", "Maria", "Luca", "Aiko", "Omar",
            "Sofia", "Liam", "Nadia", "Chen", "Fatima", "Noah", "Elena", "Ravi",
        ]
        last_names = [
            "Doe", "Smith", "Sharma", "Patel", "Garcia", "Rossi", "Tanaka",
            "Haddad", "Silva", "Murphy", "Khan", "Wei",
        ]
        statuses = [RsvpStatus.YES] * 6 + [RsvpStatus.PENDING] * 2 + [
            RsvpStatus.NO,
            RsvpStatus.MAYBE,
        ]
        for index in range(40):
            self.create_guest(
                first_name=first_names[index % len(first_names)],
                last_name=rng.choice(last_names),
                rsvp_status=rng.choice(statuses),
                is_vip=index < 4,
            )

        for hotel_name, room_count in (("Grand Plaza Hotel", 8), ("Riverside Inn", 4)):
            hotel = self.create_parent(ResourceCategory.ROOM, hotel_name)
            for number in range(room_count):
                self.create_container(
                    category=ResourceCategory.ROOM,
                    parent_id=hotel.parent_id,
                    label=str(101 + number),
                    container_type="double" if number % 3 else "suite",
                    capacity=2,
                )

        route = self.create_parent(ResourceCategory.VEHICLE, "Airport Shuttle")
        self.create_container(ResourceCategory.VEHICLE, route.parent_id, "Shuttle A", "bus", 40)
        self.create_container(ResourceCategory.VEHICLE, route.parent_id, "Van 1", "van", 12)

        for event_name in ("Welcome Dinner", "Reception"):
            event = self.create_parent(ResourceCategory.TABLE, event_name)
            for number in range(1, 6):
                self.create_container(
                    ResourceCategory.TABLE,
                    event.parent_id,
                    f"Table {number}",
                    "round",
                    8,
                )
        logger.info("Demo seed completed with 40 guests")

    # Parents ---------------------------------------------------------------

    def create_parent(self, category: ResourceCategory, name: str) -> Parent:
        now = utc_now()
        parent = Parent(
            parent_id=new_id(),
            category=category,
            name=name,
            created_at=now,
            updated_at=now,
        )
        self._execute(
            """
            INSERT INTO Parents (id, category, name, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (parent.parent_id, category.value, name, now, now),
        )
        return parent

    def get_parent(self, parent_id: str) -> Optional[Parent]:
        row = self._fetch_one(
            "SELECT id, category, name, created_at, updated_at FROM Parents WHERE id = ?;",
            (parent_id,),
        )
        return _row_to_parent(row) if row is not None else None

    def list_parents(self, category: Optional[ResourceCategory] = None) -> List[Parent]:
        if category is None:
            rows = self._fetch_all(
                "SELECT id, category, name, created_at, updated_at FROM Parents "
                "ORDER BY created_at ASC, rowid ASC;"
            )
        else:
            rows = self._fetch_all(
                "SELECT id, category, name, created_at, updated_at FROM Parents "
                "WHERE category = ? ORDER BY created_at ASC, rowid ASC;",
                (category.value,),
            )
        return [_row_to_parent(row) for row in rows]

    def delete_parent(self, parent_id: str) -> bool:
        return self._execute("DELETE FROM Parents WHERE id = ?;", (parent_id,)) > 0

    # Containers ------------------------------------------------------------

    def create_container(
        self,
        category: ResourceCategory,
        parent_id: str,
        label: str,
        container_type: str,
        capacity: int,
    ) -> Container:
        now = utc_now()
        container = Container(
            container_id=new_id(),
            category=category,
            parent_id=parent_id,
            label=label,
            container_type=container_type,
            capacity=capacity,
            assigned_guest_ids=(),
            created_at=now,
            updated_at=now,
        )
        self._execute(
            """
            INSERT INTO Containers (
                id, category, parent_id, label, container_type,
                capacity, assigned_guest_ids, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, '[]', ?, ?);
            """,
            (
                container.container_id,
                category.value,
                parent_id,
                label,
                container_type,
                capacity,
                now,
                now,
            ),
        )
        return container

    def get_container(self, container_id: str) -> Optional[Container]:
        row = self._fetch_one("SELECT * FROM Containers WHERE id = ?;", (container_id,))
        return _row_to_container(row) if row is not None else None

    def list_containers(
        self,
        parent_id: Optional[str] = None,
        category: Optional[ResourceCategory] = None,
    ) -> List[Container]:
        clauses: list[str] = []
        params: list[Any] = []
        if parent_id is not None:
            clauses.append("parent_id = ?")
            params.append(parent_id)
        if category is not None:
            clauses.append("category = ?")
            params.append(category.value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch_all(
            f"SELECT * FROM Containers {where} ORDER BY created_at ASC, rowid ASC;",
            params,
        )
        return [_row_to_container(row) for row in rows]

    def update_container(self, container_id: str, fields: Mapping[str, Any]) -> bool:
        """Apply a partial update; `assigned_guest_ids` is stored as JSON."""
        unknown = set(fields) - _CONTAINER_COLUMNS
        if unknown:
            raise ValueError(f"Unknown container fields: {sorted(unknown)}")
        if not fields:
            return False
        values: dict[str, Any] = dict(fields)
        if "assigned_guest_ids" in values:
            values["assigned_guest_ids"] = json.dumps(list(values["assigned_guest_ids"]))
        assignments = ", ".join(f"{column} = ?" for column in values)
        return (
            self._execute(
                f"UPDATE Containers SET {assignments} WHERE id = ?;",
                (*values.values(), container_id),
            )
            > 0
        )

    def delete_container(self, container_id: str) -> bool:
        return self._execute("DELETE FROM Containers WHERE id = ?;", (container_id,)) > 0

    # Guests ----------------------------------------------------------------

    def create_guest(
        self,
        first_name: str,
        last_name: str,
        rsvp_status: RsvpStatus = RsvpStatus.PENDING,
        is_vip: bool = False,
    ) -> Guest:
        now = utc_now()
        guest = Guest(
            guest_id=new_id(),
            first_name=first_name,
            last_name=last_name,
            rsvp_status=rsvp_status,
            is_vip=is_vip,
            created_at=now,
            updated_at=now,
        )
        self._execute(
            """
            INSERT INTO Guests (
                id, first_name, last_name, rsvp_status, is_vip, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?);
            """,
            (
                guest.guest_id,
                first_name,
                last_name,
                rsvp_status.value,
                int(is_vip),
                now,
                now,
            ),
        )
        return guest

    def get_guest(self, guest_id: str) -> Optional[Guest]:
        row = self._fetch_one("SELECT * FROM Guests WHERE id = ?;", (guest_id,))
        return _row_to_guest(row) if row is not None else None

    def list_guests(self) -> List[Guest]:
        rows = self._fetch_all("SELECT * FROM Guests ORDER BY created_at ASC, rowid ASC;")
        return [_row_to_guest(row) for row in rows]

    def update_guest(self, guest_id: str, fields: Mapping[str, Any]) -> bool:
        unknown = set(fields) - _GUEST_COLUMNS
        if unknown:
            raise ValueError(f"Unknown guest fields: {sorted(unknown)}")
        if not fields:
            return False
        values: dict[str, Any] = dict(fields)
        if "rsvp_status" in values:
            values["rsvp_status"] = RsvpStatus(values["rsvp_status"]).value
        if "is_vip" in values:
            values["is_vip"] = int(bool(values["is_vip"]))
        values.setdefault("updated_at", utc_now())
        assignments = ", ".join(f"{column} = ?" for column in values)
        return (
            self._execute(
                f"UPDATE Guests SET {assignments} WHERE id = ?;",
                (*values.values(), guest_id),
            )
            > 0
        )

    def delete_guest(self, guest_id: str) -> bool:
        return self._execute("DELETE FROM Guests WHERE id = ?;", (guest_id,)) > 0

    # Table assignments -----------------------------------------------------

    def create_table_assignment(self, assignment: TableAssignment) -> None:
        self._execute(
            """
            INSERT INTO TableAssignments (
                id, guest_id, table_id, seat_number, assigned_at, assigned_by_user_id
            )
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                assignment.assignment_id,
                assignment.guest_id,
                assignment.table_id,
                assignment.seat_number,
                assignment.assigned_at,
                assignment.assigned_by_user_id,
            ),
        )

    def delete_table_assignment(self, assignment_id: str) -> bool:
        return (
            self._execute("DELETE FROM TableAssignments WHERE id = ?;", (assignment_id,))
            > 0
        )

    def list_table_assignments(
        self,
        table_ids: Optional[Iterable[str]] = None,
    ) -> List[TableAssignment]:
        if table_ids is None:
            rows = self._fetch_all(
                "SELECT * FROM TableAssignments ORDER BY assigned_at ASC, rowid ASC;"
            )
        else:
            ids = list(table_ids)
            if not ids:
                return []
            placeholders = ",".join("?" for _ in ids)
            rows = self._fetch_all(
                f"SELECT * FROM TableAssignments WHERE table_id IN ({placeholders}) "
                "ORDER BY assigned_at ASC, rowid ASC;",
                ids,
            )
        return [_row_to_table_assignment(row) for row in rows]

    def count_table_assignments(self) -> int:
        row = self._fetch_one("SELECT COUNT(*) AS count FROM TableAssignments;")
        return int(row["count"]) if row is not None else 0
