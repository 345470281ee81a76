"""
db.py
SQLite repository: table setup, record mapping, and the writes that go with
billing (enrollment + generated schedule, mark paid, overdue sync).
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import billing
import config
import utils
from errors import InvalidAttendanceInput, NotFound
from models import (
    ABSENT,
    ATTENDANCE_STATUSES,
    MONTHLY,
    OVERDUE,
    PENDING,
    PRESENT,
    QUARTERLY,
    Attendance,
    Client,
    Enrollment,
    PaymentObligation,
)

logger = logging.getLogger(__name__)

DB_FILE = config.DB_FILE


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def executemany(sql: str, seq_of_params: list[tuple]) -> None:
    with get_conn() as conn:
        conn.executemany(sql, seq_of_params)


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _iso(d) -> str | None:
    return d.isoformat() if d is not None else None


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS clients (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            phone TEXT NOT NULL,
            email TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('active','inactive')),
            birth_date TEXT,
            goals TEXT,
            gender TEXT,
            medical_notes TEXT,
            medical_certificate TEXT,
            created_at TEXT NOT NULL
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS enrollments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id INTEGER NOT NULL,
            start_date TEXT NOT NULL,
            duration_months INTEGER NOT NULL CHECK(duration_months > 0),
            fee_amount TEXT NOT NULL,
            recurrence TEXT NOT NULL CHECK(recurrence IN ('monthly','quarterly','semiannual')),
            training_mode TEXT NOT NULL CHECK(training_mode IN ('online','in_person')),
            weekly_frequency INTEGER NOT NULL,
            end_date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('active','expired','cancelled')),
            amendment_note TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
        )
        """
    )

    # Amounts are stored as TEXT so Decimal values round-trip exactly
    execute(
        """
        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            enrollment_id INTEGER NOT NULL,
            amount TEXT NOT NULL,
            due_date TEXT NOT NULL,
            paid_date TEXT,
            status TEXT NOT NULL CHECK(status IN ('pending','paid','overdue')),
            FOREIGN KEY(enrollment_id) REFERENCES enrollments(id) ON DELETE CASCADE
        )
        """
    )

    execute(
        """
        CREATE TABLE IF NOT EXISTS attendance (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            client_id INTEGER NOT NULL,
            training_date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('present','absent')),
            note TEXT,
            UNIQUE(client_id, training_date),
            FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
        )
        """
    )


def init_db() -> None:
    """
    Create the tables if they do not exist yet.
    """
    _create_tables()
    logger.info("Database ready at %s", DB_FILE)


# ---------- Clients ----------

def add_client(client: Client) -> Client:
    now = datetime.now(timezone.utc).isoformat(timespec="seconds")
    new_id = execute(
        """
        INSERT INTO clients(name, phone, email, status, birth_date, goals, gender,
            medical_notes, medical_certificate, created_at)
        VALUES(?,?,?,?,?,?,?,?,?,?)
        """,
        (
            client.name.strip(), client.phone.strip(), client.email.strip(), client.status,
            _iso(utils.parse_optional_iso(client.birth_date, "birth_date")), client.goals, client.gender,
            client.medical_notes, client.medical_certificate, now,
        ),
    )
    logger.info("Client %s added", new_id)
    return replace(client, id=new_id)


def get_client(client_id: int) -> Client:
    row = fetch_one("SELECT * FROM clients WHERE id = ?", (client_id,))
    if not row:
        raise NotFound("client", client_id)
    return Client.from_row(row)


def list_clients(search: str = "", status: str | None = None) -> list[Client]:
    sql = "SELECT * FROM clients WHERE 1=1"
    params = []

    if search.strip():
        sql += " AND (name LIKE ? OR phone LIKE ? OR email LIKE ?)"
        like = f"%{search.strip()}%"
        params.extend([like, like, like])

    if status:
        sql += " AND status = ?"
        params.append(status)

    sql += " ORDER BY name ASC"
    return [Client.from_row(r) for r in fetch_all(sql, tuple(params))]


def update_client(client_id: int, patch: dict) -> Client:
    updated = utils.merge_patch(get_client(client_id), patch)
    execute(
        """
        UPDATE clients SET name=?, phone=?, email=?, status=?, birth_date=?, goals=?,
            gender=?, medical_notes=?, medical_certificate=?
        WHERE id=?
        """,
        (
            updated.name, updated.phone, updated.email, updated.status,
            _iso(utils.parse_optional_iso(updated.birth_date, "birth_date")),
            updated.goals, updated.gender, updated.medical_notes,
            updated.medical_certificate, client_id,
        ),
    )
    return get_client(client_id)


def delete_client(client_id: int) -> None:
    execute("DELETE FROM clients WHERE id = ?", (client_id,))
    logger.info("Client %s deleted (with enrollments, payments, attendance)", client_id)


# ---------- Enrollments ----------

def _enrollment_params(e: Enrollment) -> tuple:
    return (
        e.client_id, _iso(e.start_date), e.duration_months, str(e.fee_amount), e.recurrence,
        e.training_mode, e.weekly_frequency, _iso(e.end_date), e.status, e.amendment_note,
    )


def add_enrollment(enrollment: Enrollment) -> tuple[Enrollment, list[PaymentObligation]]:
    """
    Store a new enrollment together with its payment schedule in one
    transaction. Invalid input raises before anything is written.
    """
    prepared = billing.prepare_enrollment(enrollment)
    schedule = billing.generate_schedule(prepared)
    now = datetime.now(timezone.utc).isoformat(timespec="seconds")

    with get_conn() as conn:
        cur = conn.execute(
            """
            INSERT INTO enrollments(client_id, start_date, duration_months, fee_amount, recurrence,
                training_mode, weekly_frequency, end_date, status, amendment_note, created_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?)
            """,
            _enrollment_params(prepared) + (now,),
        )
        stored = replace(prepared, id=cur.lastrowid)
        payments = []
        for p in schedule:
            cur = conn.execute(
                "INSERT INTO payments(enrollment_id, amount, due_date, paid_date, status) VALUES(?,?,?,?,?)",
                (stored.id, str(p.amount), _iso(p.due_date), None, p.status),
            )
            payments.append(replace(p, id=cur.lastrowid, enrollment_id=stored.id))

    logger.info("Enrollment %s added for client %s with %d payments", stored.id, stored.client_id, len(payments))
    return stored, payments


def get_enrollment(enrollment_id: int) -> Enrollment:
    row = fetch_one("SELECT * FROM enrollments WHERE id = ?", (enrollment_id,))
    if not row:
        raise NotFound("enrollment", enrollment_id)
    return Enrollment.from_row(row)


def list_enrollments(client_id: int | None = None) -> list[Enrollment]:
    if client_id is None:
        rows = fetch_all("SELECT * FROM enrollments ORDER BY created_at DESC, id DESC")
    else:
        rows = fetch_all(
            "SELECT * FROM enrollments WHERE client_id = ? ORDER BY created_at DESC, id DESC",
            (client_id,),
        )
    return [Enrollment.from_row(r) for r in rows]


def update_enrollment(enrollment_id: int, patch: dict) -> Enrollment:
    """
    Edit an enrollment. Already generated payments are left as they are.
    """
    updated = billing.apply_enrollment_update(get_enrollment(enrollment_id), patch)
    execute(
        """
        UPDATE enrollments SET client_id=?, start_date=?, duration_months=?, fee_amount=?,
            recurrence=?, training_mode=?, weekly_frequency=?, end_date=?, status=?, amendment_note=?
        WHERE id=?
        """,
        _enrollment_params(updated) + (enrollment_id,),
    )
    logger.info("Enrollment %s updated (%s)", enrollment_id, ", ".join(sorted(patch)))
    return get_enrollment(enrollment_id)


def delete_enrollment(enrollment_id: int) -> None:
    with get_conn() as conn:
        conn.execute("DELETE FROM payments WHERE enrollment_id = ?", (enrollment_id,))
        conn.execute("DELETE FROM enrollments WHERE id = ?", (enrollment_id,))
    logger.info("Enrollment %s deleted with its payments", enrollment_id)


def refresh_enrollment_statuses(today) -> int:
    """
    Keep enrollment statuses consistent with end_date. Returns rows changed.
    """
    changed = 0
    for e in list_enrollments():
        status = billing.infer_enrollment_status(e, today)
        if status != e.status:
            execute("UPDATE enrollments SET status = ? WHERE id = ?", (status, e.id))
            changed += 1
    return changed


# ---------- Payments ----------

def get_payment(payment_id: int) -> PaymentObligation:
    row = fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
    if not row:
        raise NotFound("payment", payment_id)
    return PaymentObligation.from_row(row)


def list_payments(enrollment_id: int | None = None) -> list[PaymentObligation]:
    if enrollment_id is None:
        rows = fetch_all("SELECT * FROM payments ORDER BY due_date ASC, id ASC")
    else:
        rows = fetch_all(
            "SELECT * FROM payments WHERE enrollment_id = ? ORDER BY due_date ASC, id ASC",
            (enrollment_id,),
        )
    return [PaymentObligation.from_row(r) for r in rows]


def mark_payment_paid(payment_id: int, today) -> PaymentObligation:
    paid = billing.mark_paid(get_payment(payment_id), today)
    execute(
        "UPDATE payments SET status = ?, paid_date = ? WHERE id = ?",
        (paid.status, _iso(paid.paid_date), payment_id),
    )
    logger.info("Payment %s marked as paid on %s", payment_id, _iso(paid.paid_date))
    return paid


def sync_overdue_statuses(today) -> int:
    """
    Persist pending -> overdue for payments whose due date has passed.
    Returns how many rows were updated.
    """
    rows = fetch_all("SELECT * FROM payments WHERE status = ?", (PENDING,))
    updates = []
    for r in rows:
        p = PaymentObligation.from_row(r)
        if billing.reclassify(p, today).status == OVERDUE:
            updates.append((OVERDUE, p.id))
    if updates:
        executemany("UPDATE payments SET status = ? WHERE id = ?", updates)
        logger.info("%d payments reclassified as overdue", len(updates))
    return len(updates)


# ---------- Attendance ----------

def record_attendance(record: Attendance) -> Attendance:
    """
    One record per client per day: recording the same day again replaces it.
    """
    if record.status not in ATTENDANCE_STATUSES:
        raise InvalidAttendanceInput("status", record.status)
    training_date = _iso(utils.parse_iso(record.training_date, "training_date"))
    with get_conn() as conn:
        conn.execute(
            """
            INSERT INTO attendance(client_id, training_date, status, note) VALUES(?,?,?,?)
            ON CONFLICT(client_id, training_date) DO UPDATE SET status=excluded.status, note=excluded.note
            """,
            (record.client_id, training_date, record.status, record.note),
        )
        row = conn.execute(
            "SELECT * FROM attendance WHERE client_id = ? AND training_date = ?",
            (record.client_id, training_date),
        ).fetchone()
    return Attendance.from_row(row)


def list_attendance(client_id: int | None = None) -> list[Attendance]:
    if client_id is None:
        rows = fetch_all("SELECT * FROM attendance ORDER BY training_date DESC")
    else:
        rows = fetch_all(
            "SELECT * FROM attendance WHERE client_id = ? ORDER BY training_date DESC",
            (client_id,),
        )
    return [Attendance.from_row(r) for r in rows]


# ---------- Sample data ----------

def insert_sample_data(today: date | None = None) -> None:
    """
    Insert 3 clients with enrollments and a few attendance rows (adds new rows each run).
    """
    today = today or date.today()

    c1 = add_client(Client(None, "Ana Souza", "11900000001", "ana@example.com", birth_date=date(1979, 3, 10)))
    c2 = add_client(Client(None, "Bruno Lima", "11900000002", "bruno@example.com", birth_date=date(1995, 7, 22)))
    c3 = add_client(Client(None, "Carla Dias", "11900000003", "carla@example.com", status="inactive"))

    # Client 1: monthly plan started 3 months ago, first payment settled
    _, payments = add_enrollment(
        Enrollment(None, c1.id, utils.add_months(today, -3), 6, utils.to_decimal("200.00"), MONTHLY)
    )
    mark_payment_paid(payments[0].id, payments[0].due_date)

    # Client 2: quarterly online plan starting today
    add_enrollment(
        Enrollment(None, c2.id, today, 12, utils.to_decimal("550.00"), QUARTERLY, training_mode="online",
                   weekly_frequency=2)
    )

    # Client 3: old contract, already over
    add_enrollment(Enrollment(None, c3.id, utils.add_months(today, -13), 12, utils.to_decimal("180.00"), MONTHLY))
    refresh_enrollment_statuses(today)

    for days_ago, status in ((1, PRESENT), (3, PRESENT), (5, ABSENT)):
        record_attendance(Attendance(None, c1.id, today - timedelta(days=days_ago), status))

    logger.info("Sample data inserted")


if __name__ == "__main__":
    config.configure_logging()
    init_db()
    insert_sample_data()
