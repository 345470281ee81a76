from datetime import date
from decimal import Decimal

import pytest

import db
from models import MONTHLY, Enrollment


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the repository at a fresh SQLite file."""
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "gym.db")
    db.init_db()
    return tmp_path / "gym.db"


def make_enrollment(**overrides) -> Enrollment:
    values = dict(
        id=1,
        client_id=1,
        start_date=date(2024, 1, 15),
        duration_months=6,
        fee_amount=Decimal("200.00"),
        recurrence=MONTHLY,
    )
    values.update(overrides)
    return Enrollment(**values)
