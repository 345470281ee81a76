"""
Tests for the SQLite repository.

Covers:
- Enrollment + schedule written together (and nothing written on bad input)
- Cascading deletes
- Mark as paid and overdue sync persistence
- Client/enrollment patch updates
- Attendance upsert
"""

from datetime import date
from decimal import Decimal

import pytest

import db
from conftest import make_enrollment
from errors import InvalidAttendanceInput, InvalidScheduleInput, NotFound
from models import (
    ABSENT,
    ENROLLMENT_ACTIVE,
    ENROLLMENT_EXPIRED,
    OVERDUE,
    PAID,
    PENDING,
    PRESENT,
    QUARTERLY,
    SEMIANNUAL,
    Attendance,
    Client,
)


@pytest.fixture
def client(temp_db):
    return db.add_client(Client(None, "Ana Souza", "11900000001", "ana@example.com", birth_date="1980-04-02"))


class TestClients:
    def test_add_and_get(self, client):
        stored = db.get_client(client.id)

        assert stored.name == "Ana Souza"
        assert stored.birth_date == date(1980, 4, 2)

    def test_missing(self, temp_db):
        with pytest.raises(NotFound):
            db.get_client(404)

    def test_search(self, client):
        db.add_client(Client(None, "Bruno Lima", "11900000002", "bruno@example.com"))

        assert [c.name for c in db.list_clients(search="bruno")] == ["Bruno Lima"]
        assert len(db.list_clients()) == 2

    def test_patch_update(self, client):
        updated = db.update_client(client.id, {"phone": "11911111111", "email": None})

        assert updated.phone == "11911111111"
        assert updated.email == "ana@example.com"


class TestEnrollments:
    def test_add_writes_schedule(self, client):
        enrollment, payments = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        assert enrollment.id is not None
        assert enrollment.end_date == date(2024, 7, 15)
        assert len(payments) == 6
        assert all(p.id is not None and p.enrollment_id == enrollment.id for p in payments)

        stored = db.list_payments(enrollment.id)
        assert [p.due_date for p in stored] == [p.due_date for p in payments]
        assert all(p.amount == Decimal("200.00") and p.status == PENDING for p in stored)

    def test_quarterly(self, client):
        _, payments = db.add_enrollment(make_enrollment(id=None, client_id=client.id, recurrence=QUARTERLY))

        assert [p.due_date for p in payments] == [date(2024, 1, 15), date(2024, 4, 15)]

    def test_short_contract_stored_without_payments(self, client):
        enrollment, payments = db.add_enrollment(
            make_enrollment(id=None, client_id=client.id, duration_months=2, recurrence=SEMIANNUAL)
        )

        assert payments == []
        assert db.get_enrollment(enrollment.id).duration_months == 2

    def test_invalid_input_writes_nothing(self, client):
        with pytest.raises(InvalidScheduleInput):
            db.add_enrollment(make_enrollment(id=None, client_id=client.id, fee_amount=Decimal("-10")))

        assert db.list_enrollments() == []
        assert db.list_payments() == []

    def test_update_recomputes_end_date_only(self, client):
        enrollment, _ = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        updated = db.update_enrollment(enrollment.id, {"duration_months": 12, "weekly_frequency": 4})

        assert updated.end_date == date(2025, 1, 15)
        assert updated.weekly_frequency == 4
        # existing schedule is not regenerated
        assert len(db.list_payments(enrollment.id)) == 6

    def test_update_cannot_change_status(self, client):
        enrollment, _ = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        with pytest.raises(InvalidScheduleInput):
            db.update_enrollment(enrollment.id, {"status": ENROLLMENT_EXPIRED})

        assert db.get_enrollment(enrollment.id).status == ENROLLMENT_ACTIVE

    def test_delete_removes_payments(self, client):
        enrollment, _ = db.add_enrollment(make_enrollment(id=None, client_id=client.id))
        other, _ = db.add_enrollment(make_enrollment(id=None, client_id=client.id, recurrence=QUARTERLY))

        db.delete_enrollment(enrollment.id)

        assert [e.id for e in db.list_enrollments()] == [other.id]
        assert {p.enrollment_id for p in db.list_payments()} == {other.id}

    def test_delete_client_cascades(self, client):
        db.add_enrollment(make_enrollment(id=None, client_id=client.id))
        db.record_attendance(Attendance(None, client.id, date(2024, 1, 16), PRESENT))

        db.delete_client(client.id)

        assert db.list_enrollments() == []
        assert db.list_payments() == []
        assert db.list_attendance() == []

    def test_refresh_statuses(self, client):
        enrollment, _ = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        assert db.refresh_enrollment_statuses(date(2024, 7, 15)) == 0
        assert db.refresh_enrollment_statuses(date(2024, 7, 16)) == 1
        assert db.get_enrollment(enrollment.id).status == ENROLLMENT_EXPIRED


class TestPayments:
    def test_mark_paid(self, client):
        _, payments = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        db.mark_payment_paid(payments[0].id, date(2024, 1, 14))
        stored = db.get_payment(payments[0].id)

        assert stored.status == PAID
        assert stored.paid_date == date(2024, 1, 14)

    def test_mark_paid_twice_keeps_first_date(self, client):
        _, payments = db.add_enrollment(make_enrollment(id=None, client_id=client.id))

        db.mark_payment_paid(payments[0].id, date(2024, 1, 14))
        db.mark_payment_paid(payments[0].id, date(2024, 3, 1))

        assert db.get_payment(payments[0].id).paid_date == date(2024, 1, 14)

    def test_sync_overdue(self, client):
        _, payments = db.add_enrollment(make_enrollment(id=None, client_id=client.id))
        db.mark_payment_paid(payments[0].id, date(2024, 1, 15))

        changed = db.sync_overdue_statuses(date(2024, 3, 20))

        statuses = [p.status for p in db.list_payments()]
        assert changed == 2
        assert statuses == [PAID, OVERDUE, OVERDUE, PENDING, PENDING, PENDING]
        assert db.sync_overdue_statuses(date(2024, 3, 20)) == 0

    def test_missing_payment(self, temp_db):
        with pytest.raises(NotFound):
            db.mark_payment_paid(1, date(2024, 1, 1))


class TestAttendance:
    def test_same_day_replaces(self, client):
        db.record_attendance(Attendance(None, client.id, date(2024, 1, 16), PRESENT))
        db.record_attendance(Attendance(None, client.id, "2024-01-16", ABSENT, note="sick"))

        records = db.list_attendance(client.id)

        assert len(records) == 1
        assert records[0].status == ABSENT
        assert records[0].note == "sick"

    def test_rejects_unknown_status(self, client):
        with pytest.raises(InvalidAttendanceInput) as exc:
            db.record_attendance(Attendance(None, client.id, "2024-01-16", "late"))

        assert exc.value.field == "status"
        assert db.list_attendance(client.id) == []

    def test_string_date_stored_as_date(self, client):
        saved = db.record_attendance(Attendance(None, client.id, "2024-01-16", PRESENT))

        assert saved.training_date == date(2024, 1, 16)
        assert db.list_attendance(client.id)[0].training_date == date(2024, 1, 16)


class TestSampleData:
    def test_insert_sample_data(self, temp_db):
        db.insert_sample_data(date(2024, 5, 20))

        enrollments = db.list_enrollments()
        payments = db.list_payments()

        assert len(db.list_clients()) == 3
        assert len(enrollments) == 3
        assert len(payments) == 6 + 4 + 12
        assert sum(1 for p in payments if p.status == PAID) == 1
        assert sum(1 for e in enrollments if e.status == ENROLLMENT_EXPIRED) == 1
