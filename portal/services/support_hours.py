"""Support-hour ledger: keeps the denormalised minute counters in step.

Two running totals are maintained incrementally instead of being summed on
every read:

* ``Ticket.time_spent_minutes``: all live time entries on the ticket.
* ``Client.hours_used_this_month``: live entries flagged
  ``count_towards_support_hours`` in the current billing cycle (minutes).

The ``apply_*`` helpers only stage ``UPDATE ... SET col = col + delta``
statements on the caller's session. The caller commits them together with the
time-entry change so the entry and both counters land in one transaction.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from ..core.errors import ValidationFailed
from ..core.statuses import CLIENT_STATUS_ACTIVE
from ..models.client import Client
from ..models.support_log import SupportHourLog
from ..models.ticket import Ticket, TicketTimeEntry
from .timecalc import cycle_end, cycle_is_due, minutes_to_hours, utcnow

logger = logging.getLogger(__name__)

MAX_ALLOCATION_HOURS = 10_000


def _shifted(column, delta: int, *, floor_at_zero: bool):
    shifted = func.coalesce(column, 0) + delta
    if not floor_at_zero:
        return shifted
    return case((shifted < 0, 0), else_=shifted)


def _shift_ticket_minutes(db: Session, ticket_id: int, delta: int, *, floor_at_zero: bool = False) -> None:
    db.execute(
        update(Ticket)
        .where(Ticket.id == ticket_id)
        .values(
            time_spent_minutes=_shifted(Ticket.time_spent_minutes, delta, floor_at_zero=floor_at_zero),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


def _shift_client_minutes(db: Session, client_id: int, delta: int, *, floor_at_zero: bool = False) -> None:
    db.execute(
        update(Client)
        .where(Client.id == client_id)
        .values(
            hours_used_this_month=_shifted(Client.hours_used_this_month, delta, floor_at_zero=floor_at_zero),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )


def _counts_in_current_cycle(db: Session, ticket: Ticket, entry: TicketTimeEntry) -> bool:
    """True when the entry belongs in the client's running counter.

    Entries logged before the current cycle started were already closed into
    a ``SupportHourLog``; changing them must not touch this cycle's usage.
    """
    if not entry.count_towards_support_hours or not ticket.client_id:
        return False
    cycle_start = db.execute(
        select(Client.support_billing_cycle_start).where(Client.id == ticket.client_id)
    ).scalar_one_or_none()
    return cycle_start is None or entry.logged_at >= cycle_start


def apply_entry_created(db: Session, ticket: Ticket, entry: TicketTimeEntry) -> None:
    """Add a new entry's minutes to the ticket and, if it counts, the client.

    No balance check: a client may go over its allocation.
    """
    _shift_ticket_minutes(db, ticket.id, entry.minutes)
    if _counts_in_current_cycle(db, ticket, entry):
        _shift_client_minutes(db, ticket.client_id, entry.minutes)


def apply_entry_updated(db: Session, ticket: Ticket, entry: TicketTimeEntry, old_minutes: int) -> int:
    delta = entry.minutes - old_minutes
    if delta == 0:
        return 0
    _shift_ticket_minutes(db, ticket.id, delta)
    if _counts_in_current_cycle(db, ticket, entry):
        _shift_client_minutes(db, ticket.client_id, delta)
    return delta


def apply_entry_deleted(db: Session, ticket: Ticket, entry: TicketTimeEntry) -> None:
    # Deletion clamps at zero while creation is unbounded.
    _shift_ticket_minutes(db, ticket.id, -entry.minutes, floor_at_zero=True)
    if _counts_in_current_cycle(db, ticket, entry):
        _shift_client_minutes(db, ticket.client_id, -entry.minutes, floor_at_zero=True)


def remaining_minutes(client: Client) -> int:
    """Allocated minus used; negative when the client is over its allowance."""
    return (client.support_hours_per_month or 0) - (client.hours_used_this_month or 0)


def support_summary(client: Client) -> dict[str, object]:
    allocated = client.support_hours_per_month or 0
    used = client.hours_used_this_month or 0
    allocated_hours = allocated / 60
    used_hours = used / 60
    percentage = min(100.0, used_hours / allocated_hours * 100) if allocated_hours > 0 else 0.0
    return {
        "client_id": client.id,
        "allocated_minutes": allocated,
        "used_minutes": used,
        "remaining_minutes": remaining_minutes(client),
        "allocated_hours": minutes_to_hours(allocated),
        "used_hours": minutes_to_hours(used),
        "remaining_hours": minutes_to_hours(max(0, allocated - used)),
        "percentage_used": round(percentage),
        "over_allocation": used > allocated,
        "billing_cycle_start": client.support_billing_cycle_start,
    }


def _counted_minutes_since(db: Session, client_id: int, since: datetime | None) -> int:
    stmt = (
        select(func.coalesce(func.sum(TicketTimeEntry.minutes), 0))
        .join(Ticket, Ticket.id == TicketTimeEntry.ticket_id)
        .where(
            Ticket.client_id == client_id,
            TicketTimeEntry.deleted_at.is_(None),
            TicketTimeEntry.count_towards_support_hours.is_(True),
        )
    )
    if since is not None:
        stmt = stmt.where(TicketTimeEntry.logged_at >= since)
    return int(db.execute(stmt).scalar_one())


def counted_minutes_in_cycle(db: Session, client: Client) -> int:
    """Sum the entries that should make up ``hours_used_this_month``.

    Used to audit the running counter; the hot path never calls it.
    """
    return _counted_minutes_since(db, client.id, client.support_billing_cycle_start)


def set_monthly_allocation(db: Session, client: Client, hours_per_month: float) -> Client:
    if not math.isfinite(hours_per_month) or hours_per_month < 0 or hours_per_month > MAX_ALLOCATION_HOURS:
        raise ValidationFailed(f"Hours must be a valid number between 0 and {MAX_ALLOCATION_HOURS:,}")
    client.support_hours_per_month = int(round(hours_per_month * 60))
    if client.support_billing_cycle_start is None:
        # First allocation opens the first cycle with a clean counter.
        client.support_billing_cycle_start = utcnow()
        client.hours_used_this_month = 0
    db.commit()
    db.refresh(client)
    logger.info(
        "support_hours.allocated",
        extra={"extra_data": {"client_id": client.id, "allocated_minutes": client.support_hours_per_month}},
    )
    return client


def rollover_billing_cycle(db: Session, client: Client, *, now: datetime | None = None, notes: str | None = None) -> SupportHourLog:
    """Close the client's current cycle at ``now`` and open the next one.

    Counted minutes logged at or after ``now`` (a scheduled run closing a
    cycle at an earlier month boundary) carry into the new cycle; the rest
    are written to the log row.
    """
    now = now or utcnow()
    period_start = client.support_billing_cycle_start or now
    carried = _counted_minutes_since(db, client.id, now)
    log = SupportHourLog(
        client_id=client.id,
        period_start=period_start,
        period_end=now,
        allocated_minutes=client.support_hours_per_month or 0,
        used_minutes=max(0, (client.hours_used_this_month or 0) - carried),
        notes=notes,
    )
    db.add(log)
    client.hours_used_this_month = carried
    client.support_billing_cycle_start = now
    db.commit()
    db.refresh(log)
    logger.info(
        "support_hours.rollover",
        extra={
            "extra_data": {
                "client_id": client.id,
                "used_minutes": log.used_minutes,
                "allocated_minutes": log.allocated_minutes,
                "carried_minutes": carried,
            }
        },
    )
    return log


def rollover_due_clients(db: Session, *, now: datetime | None = None) -> list[SupportHourLog]:
    """Roll every active client whose cycle began at least a month ago.

    Meant to be driven by an external scheduler. A client is rolled to the
    boundary of its own cycle so late runs do not drift the cycle start, once
    per elapsed month when the job has missed several.
    """
    now = now or utcnow()
    clients = db.execute(
        select(Client).where(
            Client.deleted_at.is_(None),
            Client.status == CLIENT_STATUS_ACTIVE,
            Client.support_billing_cycle_start.is_not(None),
        )
    ).scalars().all()
    logs: list[SupportHourLog] = []
    for client in clients:
        while cycle_is_due(client.support_billing_cycle_start, now):
            boundary = cycle_end(client.support_billing_cycle_start)
            logs.append(rollover_billing_cycle(db, client, now=boundary))
    return logs


def list_support_logs(db: Session, client: Client) -> list[SupportHourLog]:
    return db.execute(
        select(SupportHourLog)
        .where(SupportHourLog.client_id == client.id)
        .order_by(SupportHourLog.period_start.desc())
    ).scalars().all()


def support_log_summary(log: SupportHourLog) -> dict[str, object]:
    allocated = log.allocated_minutes or 0
    used = log.used_minutes or 0
    return {
        "id": log.id,
        "client_id": log.client_id,
        "period_start": log.period_start,
        "period_end": log.period_end,
        "allocated_minutes": allocated,
        "used_minutes": used,
        "allocated_hours": minutes_to_hours(allocated),
        "used_hours": minutes_to_hours(used),
        "remaining_hours": minutes_to_hours(allocated - used),
        "percentage_used": round(used / allocated * 100) if allocated > 0 else 0,
        "notes": log.notes,
    }
