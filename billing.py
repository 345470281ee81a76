"""
billing.py
Payment schedule generation and billing-state derivation.

Everything here is a pure function of its inputs and an explicit `today`:
nothing reads the clock or touches the database. Persisting the results is
the repository's job (see db.py).
"""

from __future__ import annotations

import logging
from dataclasses import fields, replace
from datetime import date
from decimal import Decimal

import config
import utils
from errors import InvalidScheduleInput, InvalidTransition
from models import (
    ENROLLMENT_ACTIVE,
    ENROLLMENT_CANCELLED,
    ENROLLMENT_EXPIRED,
    OVERDUE,
    PAID,
    PENDING,
    RECURRENCE_MONTHS,
    TRAINING_MODES,
    BillingAggregates,
    Enrollment,
    PaymentObligation,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ---------- Schedule generation ----------

def period_months(recurrence: str) -> int:
    try:
        return RECURRENCE_MONTHS[recurrence]
    except (KeyError, TypeError):
        raise InvalidScheduleInput(
            "recurrence", recurrence, f"must be one of: {', '.join(RECURRENCE_MONTHS)}"
        ) from None


def _checked_fee(value) -> Decimal:
    try:
        fee = utils.to_decimal(value)
    except ValueError:
        raise InvalidScheduleInput("fee_amount", value, "must be numeric") from None
    if not fee.is_finite() or fee < 0:
        raise InvalidScheduleInput("fee_amount", value, "must be >= 0")
    return fee


def _checked_duration(value) -> int:
    # bool is an int subclass; True months is not a contract
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScheduleInput("duration_months", value, "must be a whole number of months")
    if value <= 0:
        raise InvalidScheduleInput("duration_months", value, "must be > 0")
    return value


def _checked_start(value) -> date:
    if value is None:
        raise InvalidScheduleInput("start_date", value, "is required")
    return utils.parse_iso(value, "start_date")


def generate_schedule(enrollment: Enrollment) -> list[PaymentObligation]:
    """
    One pending obligation per billing period that fits entirely in the contract.

    Due dates are start + i * period months, each computed from the start date
    so a day-31 start clamps per month (Jan 31 -> Feb 29 -> Mar 31) instead of
    drifting. A contract shorter than one period yields an empty schedule.
    """
    start = _checked_start(enrollment.start_date)
    duration = _checked_duration(enrollment.duration_months)
    fee = _checked_fee(enrollment.fee_amount)
    step = period_months(enrollment.recurrence)

    count = duration // step
    if count == 0:
        logger.warning(
            "Enrollment %s: %s-month contract is shorter than one %s period; no payments generated",
            enrollment.id, duration, enrollment.recurrence,
        )
        return []

    schedule = [
        PaymentObligation(
            id=None,
            enrollment_id=enrollment.id,
            amount=fee,
            due_date=utils.add_months(start, i * step),
            status=PENDING,
            paid_date=None,
        )
        for i in range(count)
    ]
    logger.debug(
        "Enrollment %s: generated %d %s payments from %s",
        enrollment.id, count, enrollment.recurrence, start.isoformat(),
    )
    return schedule


# ---------- Status derivation ----------

def effective_status(payment: PaymentObligation, today) -> str:
    """
    Display status: a pending/overdue payment past its due date is overdue,
    a paid one is paid, anything else is pending. Stored state is not touched.
    """
    due = utils.parse_iso(payment.due_date, "due_date")
    if payment.status == PAID:
        utils.parse_optional_iso(payment.paid_date, "paid_date")
        return PAID
    if payment.status in (PENDING, OVERDUE) and due < utils.parse_iso(today, "today"):
        return OVERDUE
    return PENDING


def days_overdue(payment: PaymentObligation, today) -> int:
    """Days past due for an effectively overdue payment, 0 otherwise."""
    if effective_status(payment, today) != OVERDUE:
        return 0
    return utils.days_between(
        utils.parse_iso(payment.due_date, "due_date"), utils.parse_iso(today, "today")
    )


def is_overdue_by(payment: PaymentObligation, today, threshold_days: int | None = None) -> bool:
    if threshold_days is None:
        threshold_days = config.OVERDUE_NOTIFY_DAYS
    if effective_status(payment, today) != OVERDUE:
        return False
    return days_overdue(payment, today) >= threshold_days


def reclassify(payment: PaymentObligation, today) -> PaymentObligation:
    """
    Copy of the payment with its stored status aligned to the effective one
    (pending -> overdue). Callers decide whether to persist it.
    """
    status = effective_status(payment, today)
    if status == OVERDUE and payment.status != OVERDUE:
        return replace(payment, status=OVERDUE)
    return payment


def mark_paid(payment: PaymentObligation, today) -> PaymentObligation:
    """
    Settle a payment. Early payment is allowed; an already-paid payment keeps
    its original paid date.
    """
    if payment.status == PAID and payment.paid_date is not None:
        return payment
    return replace(payment, status=PAID, paid_date=utils.parse_iso(today, "today"))


# ---------- Aggregation ----------

def aggregate(payments, today) -> BillingAggregates:
    """
    received/pending use the stored status; overdue uses the effective one,
    so a stale 'pending' row past due is counted in both pending and overdue.
    """
    received = pending = overdue = ZERO
    received_count = pending_count = overdue_count = 0
    for p in payments:
        amount = utils.to_decimal(p.amount)
        if p.status == PAID:
            received += amount
            received_count += 1
        elif p.status == PENDING:
            pending += amount
            pending_count += 1
        if effective_status(p, today) == OVERDUE:
            overdue += amount
            overdue_count += 1
    return BillingAggregates(
        received=received,
        pending=pending,
        overdue=overdue,
        received_count=received_count,
        pending_count=pending_count,
        overdue_count=overdue_count,
    )


compute_aggregates = aggregate


def overdue_payments(payments, today) -> list[PaymentObligation]:
    return [p for p in payments if effective_status(p, today) == OVERDUE]


def payments_for_client(client_id: int, enrollments, payments) -> list[PaymentObligation]:
    enrollment_ids = {e.id for e in enrollments if e.client_id == client_id}
    return [p for p in payments if p.enrollment_id in enrollment_ids]


def client_has_overdue(client_id: int, enrollments, payments, today) -> bool:
    return any(
        effective_status(p, today) == OVERDUE
        for p in payments_for_client(client_id, enrollments, payments)
    )


# ---------- Enrollment lifecycle ----------

def validate_enrollment_inputs(
    start_date, duration_months, fee_amount, recurrence: str, training_mode: str, weekly_frequency
) -> list[str]:
    """
    Form-style validation: every problem as a message, empty list when valid.
    """
    errors: list[str] = []
    try:
        _checked_start(start_date)
    except ValueError:
        errors.append("Start date must be a valid ISO date (YYYY-MM-DD).")
    try:
        _checked_duration(duration_months)
    except InvalidScheduleInput:
        errors.append("Contract duration must be a whole number of months greater than 0.")
    try:
        _checked_fee(fee_amount)
    except InvalidScheduleInput:
        errors.append("Monthly fee must be a number >= 0.")
    if recurrence not in RECURRENCE_MONTHS:
        errors.append(f"Payment recurrence must be one of: {', '.join(RECURRENCE_MONTHS)}.")
    if training_mode not in TRAINING_MODES:
        errors.append(f"Training mode must be one of: {', '.join(TRAINING_MODES)}.")
    if isinstance(weekly_frequency, bool) or not isinstance(weekly_frequency, int) or weekly_frequency <= 0:
        errors.append("Weekly frequency must be a positive whole number.")
    return errors


def prepare_enrollment(enrollment: Enrollment) -> Enrollment:
    """
    Normalize a new enrollment before it is stored: typed start date and fee,
    end date = start + duration.
    """
    start = _checked_start(enrollment.start_date)
    duration = _checked_duration(enrollment.duration_months)
    fee = _checked_fee(enrollment.fee_amount)
    period_months(enrollment.recurrence)
    return replace(
        enrollment,
        start_date=start,
        fee_amount=fee,
        end_date=utils.add_months(start, duration),
    )


def apply_enrollment_update(enrollment: Enrollment, patch: dict) -> Enrollment:
    """
    Merge an edit into an enrollment. Present, non-None patch values win.
    The end date is only recomputed when start date or duration changed.
    """
    allowed = {f.name for f in fields(Enrollment)} - {"id", "end_date", "status"}
    for key in patch:
        if key not in allowed:
            raise InvalidScheduleInput(key, patch[key], "cannot be updated")

    updated = utils.merge_patch(enrollment, patch)
    if updated.fee_amount != enrollment.fee_amount:
        updated = replace(updated, fee_amount=_checked_fee(updated.fee_amount))
    period_months(updated.recurrence)

    start_changed = updated.start_date != enrollment.start_date
    duration_changed = updated.duration_months != enrollment.duration_months
    if start_changed or duration_changed or enrollment.end_date is None:
        start = _checked_start(updated.start_date)
        duration = _checked_duration(updated.duration_months)
        updated = replace(updated, start_date=start, end_date=utils.add_months(start, duration))
    return updated


def _transition(enrollment: Enrollment, new_status: str) -> Enrollment:
    if enrollment.status != ENROLLMENT_ACTIVE:
        raise InvalidTransition(enrollment.status, new_status)
    return replace(enrollment, status=new_status)


def cancel_enrollment(enrollment: Enrollment, note: str | None = None) -> Enrollment:
    cancelled = _transition(enrollment, ENROLLMENT_CANCELLED)
    if note:
        cancelled = replace(cancelled, amendment_note=note)
    return cancelled


def expire_enrollment(enrollment: Enrollment) -> Enrollment:
    return _transition(enrollment, ENROLLMENT_EXPIRED)


def infer_enrollment_status(enrollment: Enrollment, today) -> str:
    """
    An active contract becomes 'expired' once its end date has passed.
    Cancelled or already expired contracts keep their status.
    """
    if enrollment.status != ENROLLMENT_ACTIVE or enrollment.end_date is None:
        return enrollment.status
    end = utils.parse_iso(enrollment.end_date, "end_date")
    return ENROLLMENT_ACTIVE if end >= utils.parse_iso(today, "today") else ENROLLMENT_EXPIRED
