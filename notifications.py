"""
notifications.py
Notifications derived on demand from the current clients/enrollments/payments.

Nothing is stored: call compute_notifications again whenever the data or the
date changes. Read/dismissed state lives with the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date

import billing
import config
import utils
from models import (
    CLIENT_ACTIVE,
    ENROLLMENT_ACTIVE,
    NOTIFY_EXPIRING,
    NOTIFY_MEDICAL_CERTIFICATE,
    NOTIFY_OVERDUE,
    Notification,
)

logger = logging.getLogger(__name__)

ADMIN = "admin"
STUDENT = "student"

_TYPE_ORDER = {NOTIFY_OVERDUE: 0, NOTIFY_EXPIRING: 1, NOTIFY_MEDICAL_CERTIFICATE: 2}


@dataclass(frozen=True)
class ViewerContext:
    role: str = ADMIN  # 'admin' sees everything, 'student' only its own client
    client_id: int | None = None

    def can_see(self, client_id: int | None) -> bool:
        if self.role == ADMIN:
            return True
        return client_id is not None and client_id == self.client_id


def needs_medical_certificate(client, today: date, min_age: int | None = None) -> bool:
    if min_age is None:
        min_age = config.MEDICAL_CERTIFICATE_AGE
    if client.status != CLIENT_ACTIVE or client.birth_date is None:
        return False
    if client.medical_certificate:
        return False
    return utils.calculate_age(client.birth_date, today) > min_age


def _overdue(clients_by_id, enrollments_by_id, payments, today, threshold_days) -> list[Notification]:
    out = []
    for p in payments:
        if not billing.is_overdue_by(p, today, threshold_days):
            continue
        enrollment = enrollments_by_id.get(p.enrollment_id)
        client_id = enrollment.client_id if enrollment else None
        client = clients_by_id.get(client_id)
        who = client.name if client else "Unknown client"
        days = billing.days_overdue(p, today)
        due = utils.parse_iso(p.due_date, "due_date")
        out.append(
            Notification(
                id=f"{NOTIFY_OVERDUE}:{p.id}",
                type=NOTIFY_OVERDUE,
                message=f"{who}: payment of {p.amount} due {due.isoformat()} is {days} days overdue",
                date=due,
                client_id=client_id,
                enrollment_id=p.enrollment_id,
                payment_id=p.id,
            )
        )
    return out


def _expiring(clients_by_id, enrollments, today, window_days) -> list[Notification]:
    out = []
    for e in enrollments:
        if e.status != ENROLLMENT_ACTIVE or e.end_date is None:
            continue
        end = utils.parse_iso(e.end_date, "end_date")
        days_left = utils.days_between(today, end)
        if not 0 < days_left <= window_days:
            continue
        client = clients_by_id.get(e.client_id)
        who = client.name if client else "Unknown client"
        out.append(
            Notification(
                id=f"{NOTIFY_EXPIRING}:{e.id}",
                type=NOTIFY_EXPIRING,
                message=f"{who}: enrollment ends in {days_left} days ({end.isoformat()})",
                date=end,
                client_id=e.client_id,
                enrollment_id=e.id,
            )
        )
    return out


def _medical(clients, today) -> list[Notification]:
    return [
        Notification(
            id=f"{NOTIFY_MEDICAL_CERTIFICATE}:{c.id}",
            type=NOTIFY_MEDICAL_CERTIFICATE,
            message=f"{c.name}: medical certificate pending",
            date=today,
            client_id=c.id,
        )
        for c in clients
        if needs_medical_certificate(c, today)
    ]


def compute_notifications(
    clients,
    enrollments,
    payments,
    today,
    viewer: ViewerContext | None = None,
    overdue_days: int | None = None,
    expiring_days: int | None = None,
) -> list[Notification]:
    """
    All notifications visible to `viewer` as of `today`, oldest first.

    - overdue: payment at least `overdue_days` past due (default OVERDUE_NOTIFY_DAYS)
    - expiring: active enrollment ending within `expiring_days` (default EXPIRING_WINDOW_DAYS)
    - medical_certificate: active client over MEDICAL_CERTIFICATE_AGE with no certificate
    """
    today = utils.parse_iso(today, "today")
    viewer = viewer or ViewerContext()
    if overdue_days is None:
        overdue_days = config.OVERDUE_NOTIFY_DAYS
    if expiring_days is None:
        expiring_days = config.EXPIRING_WINDOW_DAYS

    clients_by_id = {c.id: c for c in clients}
    enrollments_by_id = {e.id: e for e in enrollments}

    found = (
        _overdue(clients_by_id, enrollments_by_id, payments, today, overdue_days)
        + _expiring(clients_by_id, enrollments, today, expiring_days)
        + _medical(clients, today)
    )
    visible = [n for n in found if viewer.can_see(n.client_id)]
    visible.sort(key=lambda n: (n.date, _TYPE_ORDER[n.type], n.id))
    logger.debug("%d notifications for %s viewer (%d before filtering)", len(visible), viewer.role, len(found))
    return visible


def mark_all_read(notifications) -> list[Notification]:
    return [replace(n, read=True) for n in notifications]


def dismiss(notifications, ids) -> list[Notification]:
    ids = set(ids)
    return [n for n in notifications if n.id not in ids]


def unread_count(notifications) -> int:
    return sum(1 for n in notifications if not n.read)
