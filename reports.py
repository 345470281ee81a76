"""
reports.py
Dashboard metrics, reports and the student portal view.
All functions take already-fetched collections plus `today`.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pandas as pd

import billing
import config
import utils
from errors import NotFound
from models import (
    ABSENT,
    CLIENT_ACTIVE,
    CLIENT_INACTIVE,
    PAID,
    PRESENT,
)
from notifications import ViewerContext, STUDENT, compute_notifications, needs_medical_certificate


def dashboard_metrics(clients, enrollments, payments, today) -> dict:
    today = utils.parse_iso(today, "today")
    totals = billing.aggregate(payments, today)
    goal = config.MONTHLY_GOAL

    new_enrollments = 0
    for e in enrollments:
        start = utils.parse_iso(e.start_date, "start_date")
        if (start.year, start.month) == (today.year, today.month):
            new_enrollments += 1

    progress = (totals.received / goal * 100) if goal > 0 else Decimal("0")
    return {
        "total_received": totals.received,
        "total_pending": totals.pending,
        "total_overdue": totals.overdue,
        "received_count": totals.received_count,
        "pending_count": totals.pending_count,
        "overdue_count": totals.overdue_count,
        "active_clients": sum(1 for c in clients if c.status == CLIENT_ACTIVE),
        "new_enrollments": new_enrollments,
        "monthly_goal": goal,
        "goal_progress": progress.quantize(Decimal("0.1")),
        "medical_certificate_pending": sum(1 for c in clients if needs_medical_certificate(c, today)),
    }


def client_status_counts(clients) -> dict:
    return {
        CLIENT_ACTIVE: sum(1 for c in clients if c.status == CLIENT_ACTIVE),
        CLIENT_INACTIVE: sum(1 for c in clients if c.status == CLIENT_INACTIVE),
    }


def monthly_revenue(payments, today, months: int = 12) -> pd.DataFrame:
    """
    Paid amounts grouped by paid-date month for the last `months` months
    (current month included), oldest first, zero-filled.
    """
    today = utils.parse_iso(today, "today")
    first = today.replace(day=1)
    labels = [utils.add_months(first, -i).strftime("%Y-%m") for i in range(months - 1, -1, -1)]

    paid = [p for p in payments if p.status == PAID and p.paid_date is not None]
    out = pd.DataFrame({"month": labels})
    if not paid:
        out["revenue"] = 0.0
        return out

    df = pd.DataFrame(
        {
            "month": [utils.parse_iso(p.paid_date, "paid_date").strftime("%Y-%m") for p in paid],
            "revenue": [float(p.amount) for p in paid],
        }
    )
    by_month = df.groupby("month")["revenue"].sum()
    out["revenue"] = out["month"].map(by_month).fillna(0.0)
    return out


def payment_performance(clients, enrollments, payments) -> pd.DataFrame:
    """
    Per active client: paid on time (paid date <= due date) vs paid late.
    """
    rows = []
    for c in clients:
        if c.status != CLIENT_ACTIVE:
            continue
        on_time = late = 0
        for p in billing.payments_for_client(c.id, enrollments, payments):
            if p.status != PAID or p.paid_date is None:
                continue
            paid_on = utils.parse_iso(p.paid_date, "paid_date")
            if paid_on <= utils.parse_iso(p.due_date, "due_date"):
                on_time += 1
            else:
                late += 1
        rows.append({"client_id": c.id, "name": c.name, "on_time": on_time, "late": late, "total_paid": on_time + late})
    if not rows:
        return pd.DataFrame(columns=["client_id", "name", "on_time", "late", "total_paid"])
    return pd.DataFrame(rows)


def payment_table(payments, enrollments, clients, today, search: str = "", status: str | None = None,
                  due_from=None, due_to=None) -> pd.DataFrame:
    """
    Payment management listing: client name, effective status, filters on
    name, effective status and due-date range (inclusive).
    """
    today = utils.parse_iso(today, "today")
    enrollments_by_id = {e.id: e for e in enrollments}
    clients_by_id = {c.id: c for c in clients}
    start = utils.parse_optional_iso(due_from, "due_from")
    end = utils.parse_optional_iso(due_to, "due_to")
    needle = search.strip().lower()

    rows = []
    for p in payments:
        enrollment = enrollments_by_id.get(p.enrollment_id)
        client = clients_by_id.get(enrollment.client_id) if enrollment else None
        name = client.name if client else ""
        if needle and needle not in name.lower():
            continue
        shown = billing.effective_status(p, today)
        if status and shown != status:
            continue
        due = utils.parse_iso(p.due_date, "due_date")
        if (start and due < start) or (end and due > end):
            continue
        rows.append(
            {
                "id": p.id,
                "enrollment_id": p.enrollment_id,
                "client": name,
                "amount": p.amount,
                "due_date": due.isoformat(),
                "paid_date": p.paid_date.isoformat() if p.paid_date else None,
                "status": shown,
            }
        )
    columns = ["id", "enrollment_id", "client", "amount", "due_date", "paid_date", "status"]
    return pd.DataFrame(rows, columns=columns)


def attendance_summary(attendance, client_id: int, month: date) -> dict:
    records = [a for a in attendance if a.client_id == client_id]
    in_month = [
        a for a in records
        if (a.training_date.year, a.training_date.month) == (month.year, month.month)
    ]
    present = sum(1 for a in records if a.status == PRESENT)
    absent = sum(1 for a in records if a.status == ABSENT)
    total = present + absent
    return {
        "month_presences": sum(1 for a in in_month if a.status == PRESENT),
        "month_absences": sum(1 for a in in_month if a.status == ABSENT),
        "attendance_percentage": round(present / total * 100, 1) if total else 0.0,
    }


def student_portal(client_id: int, clients, enrollments, payments, attendance, today) -> dict:
    """
    Everything a student sees about themselves: own record, contracts,
    payments with their effective status, totals and notifications.
    """
    today = utils.parse_iso(today, "today")
    client = next((c for c in clients if c.id == client_id), None)
    if client is None:
        raise NotFound("client", client_id)

    own_enrollments = [e for e in enrollments if e.client_id == client_id]
    own_payments = billing.payments_for_client(client_id, own_enrollments, payments)
    own_payments.sort(key=lambda p: utils.parse_iso(p.due_date, "due_date"))

    return {
        "client": client,
        "age": utils.calculate_age(client.birth_date, today) if client.birth_date else None,
        "enrollments": own_enrollments,
        "payments": [(p, billing.effective_status(p, today)) for p in own_payments],
        "totals": billing.aggregate(own_payments, today),
        "has_overdue": billing.client_has_overdue(client_id, own_enrollments, own_payments, today),
        "attendance": attendance_summary(attendance, client_id, today),
        "notifications": compute_notifications(
            [client], own_enrollments, own_payments, today,
            viewer=ViewerContext(role=STUDENT, client_id=client_id),
        ),
    }
