"""Tests for the support-hour ledger and billing cycles."""

import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from portal.db.session import Base
from portal.core.errors import Forbidden, ValidationFailed
from portal.core.security import Principal
from portal.crud.clients import create_client
from portal.crud.tickets import create_ticket
from portal.crud.time_entries import delete_time_entry, list_time_entries, log_time, update_time_entry
from portal.models.client import Client
from portal.models.ticket import Ticket, TicketTimeEntry
from portal.services.timecalc import utcnow
from portal.services import support_hours

# Ensure models are registered so metadata tables are created
from portal.models import client as client_model  # noqa: F401
from portal.models import phase as phase_model  # noqa: F401
from portal.models import project as project_model  # noqa: F401
from portal.models import support_log as support_log_model  # noqa: F401
from portal.models import ticket as ticket_model  # noqa: F401

ADMIN = Principal(user_id="admin_1", role="admin")


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session):
    return create_client(db_session, {"company_name": "Acme Dental", "contact_email": "ops@acme.test"})


@pytest.fixture()
def ticket(db_session, client):
    return create_ticket(
        db_session,
        ADMIN,
        {"client_id": client.id, "title": "Printer offline", "description": "Front desk printer is down"},
    )


def _used(db_session, client_id: int) -> int:
    return db_session.get(Client, client_id).hours_used_this_month


def test_logging_time_accumulates_in_any_order(db_session, client, ticket):
    for minutes in (45, 15, 120, 30):
        log_time(db_session, ticket.id, ADMIN, minutes)

    assert _used(db_session, client.id) == 210
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 210


def test_uncounted_entries_only_move_the_ticket_total(db_session, client, ticket):
    log_time(db_session, ticket.id, ADMIN, 60)
    log_time(db_session, ticket.id, ADMIN, 25, "Internal research", count_towards_support_hours=False)

    assert _used(db_session, client.id) == 60
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 85


def test_deleting_an_entry_never_drives_usage_below_zero(db_session, client, ticket):
    entry = log_time(db_session, ticket.id, ADMIN, 50)
    # Simulate a reset that happened after the entry was logged.
    refreshed = db_session.get(Client, client.id)
    refreshed.hours_used_this_month = 20
    db_session.commit()

    delete_time_entry(db_session, entry.id, ADMIN)

    assert _used(db_session, client.id) == 0
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 0


def test_editing_minutes_applies_only_the_difference(db_session, client, ticket):
    log_time(db_session, ticket.id, ADMIN, 30)
    entry = log_time(db_session, ticket.id, ADMIN, 90)

    update_time_entry(db_session, entry.id, ADMIN, 45, ticket_id=ticket.id)
    assert _used(db_session, client.id) == 75

    update_time_entry(db_session, entry.id, ADMIN, 100)
    assert _used(db_session, client.id) == 130
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 130


def test_log_edit_delete_round_trip_keeps_counters_consistent(db_session, client, ticket):
    support_hours.set_monthly_allocation(db_session, client, 20)
    assert db_session.get(Client, client.id).support_hours_per_month == 1200

    entry = log_time(db_session, ticket.id, ADMIN, 90, "Remote session")
    assert _used(db_session, client.id) == 90
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 90

    update_time_entry(db_session, entry.id, ADMIN, 60)
    assert _used(db_session, client.id) == 60
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 60

    delete_time_entry(db_session, entry.id, ADMIN)
    assert _used(db_session, client.id) == 0
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 0
    assert support_hours.counted_minutes_in_cycle(db_session, db_session.get(Client, client.id)) == 0


@pytest.mark.parametrize("minutes", [0, -5, 1441, 12.5, True, "30"])
def test_minutes_outside_the_allowed_range_are_rejected(db_session, ticket, minutes):
    with pytest.raises(ValidationFailed):
        log_time(db_session, ticket.id, ADMIN, minutes)


def test_full_day_entry_is_accepted(db_session, ticket):
    entry = log_time(db_session, ticket.id, ADMIN, 1440)
    assert entry.minutes == 1440


def test_description_longer_than_limit_is_rejected(db_session, ticket):
    with pytest.raises(ValidationFailed):
        log_time(db_session, ticket.id, ADMIN, 10, "x" * 1001)


def test_clients_cannot_log_time(db_session, client, ticket):
    client_user = Principal(user_id="user_c", role="client", client_id=client.id)
    with pytest.raises(Forbidden):
        log_time(db_session, ticket.id, client_user, 15)


def test_time_entry_listing_is_newest_first_with_total(db_session, client, ticket):
    first = log_time(db_session, ticket.id, ADMIN, 20)
    second = log_time(db_session, ticket.id, ADMIN, 40)
    deleted = log_time(db_session, ticket.id, ADMIN, 5)
    delete_time_entry(db_session, deleted.id, ADMIN)

    client_user = Principal(user_id="user_c", role="client", client_id=client.id)
    entries, total = list_time_entries(db_session, ticket.id, client_user)

    assert {entry.id for entry in entries} == {first.id, second.id}
    assert entries[0].logged_at >= entries[-1].logged_at
    assert total == 60


def test_summary_reports_hours_and_caps_percentage(db_session, client, ticket):
    support_hours.set_monthly_allocation(db_session, client, 1)
    log_time(db_session, ticket.id, ADMIN, 90)

    summary = support_hours.support_summary(db_session.get(Client, client.id))

    assert summary["allocated_hours"] == 1.0
    assert summary["used_hours"] == 1.5
    assert summary["remaining_minutes"] == -30
    assert summary["remaining_hours"] == 0.0
    assert summary["percentage_used"] == 100
    assert summary["over_allocation"] is True


def test_summary_without_allocation_reports_zero_percent(db_session, client):
    summary = support_hours.support_summary(client)
    assert summary["percentage_used"] == 0
    assert summary["over_allocation"] is False


@pytest.mark.parametrize("hours", [-1, 10_001, float("nan")])
def test_allocation_out_of_range_is_rejected(db_session, client, hours):
    with pytest.raises(ValidationFailed):
        support_hours.set_monthly_allocation(db_session, client, hours)


def test_first_allocation_opens_cycle_and_zeroes_usage(db_session, client, ticket):
    log_time(db_session, ticket.id, ADMIN, 30)
    assert db_session.get(Client, client.id).support_billing_cycle_start is None

    updated = support_hours.set_monthly_allocation(db_session, db_session.get(Client, client.id), 10)
    assert updated.support_billing_cycle_start is not None
    assert updated.hours_used_this_month == 0
    cycle_start = updated.support_billing_cycle_start

    log_time(db_session, ticket.id, ADMIN, 15)
    again = support_hours.set_monthly_allocation(db_session, db_session.get(Client, client.id), 12.5)
    assert again.support_hours_per_month == 750
    assert again.support_billing_cycle_start == cycle_start
    assert again.hours_used_this_month == 15


def test_rollover_writes_log_and_resets_usage(db_session, client, ticket):
    support_hours.set_monthly_allocation(db_session, client, 5)
    log_time(db_session, ticket.id, ADMIN, 75)
    now = datetime(2030, 3, 1, 9, 0, 0)

    log = support_hours.rollover_billing_cycle(db_session, db_session.get(Client, client.id), now=now, notes="March close")

    refreshed = db_session.get(Client, client.id)
    assert log.allocated_minutes == 300
    assert log.used_minutes == 75
    assert log.period_end == now
    assert refreshed.hours_used_this_month == 0
    assert refreshed.support_billing_cycle_start == now

    summary = support_hours.support_log_summary(log)
    assert summary["used_hours"] == 1.2
    assert summary["percentage_used"] == 25
    assert [row.id for row in support_hours.list_support_logs(db_session, refreshed)] == [log.id]


def test_rollover_due_clients_only_rolls_elapsed_cycles(db_session):
    due = create_client(db_session, {"company_name": "Due Co", "contact_email": "due@example.test"})
    fresh = create_client(db_session, {"company_name": "Fresh Co", "contact_email": "fresh@example.test"})
    inactive = create_client(
        db_session,
        {"company_name": "Paused Co", "contact_email": "paused@example.test", "status": "inactive"},
    )
    due.support_billing_cycle_start = datetime(2030, 1, 31, 8, 0)
    due.hours_used_this_month = 40
    fresh.support_billing_cycle_start = datetime(2030, 2, 10, 8, 0)
    inactive.support_billing_cycle_start = datetime(2029, 12, 1)
    db_session.commit()

    logs = support_hours.rollover_due_clients(db_session, now=datetime(2030, 3, 2))

    assert [log.client_id for log in logs] == [due.id]
    assert logs[0].used_minutes == 40
    # Rolled to the month boundary with the day clamped to February's length.
    assert db_session.get(Client, due.id).support_billing_cycle_start == datetime(2030, 2, 28, 8, 0)
    assert db_session.get(Client, fresh.id).support_billing_cycle_start == datetime(2030, 2, 10, 8, 0)
    assert db_session.get(Client, inactive.id).support_billing_cycle_start == datetime(2029, 12, 1)


def test_rollover_job_uses_its_own_session():
    from portal.db.session import build_engine
    from portal.jobs import run_rollover

    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    with factory() as setup:
        due = create_client(setup, {"company_name": "Cron Co", "contact_email": "cron@example.test"})
        due.support_billing_cycle_start = datetime(2030, 1, 1)
        due.hours_used_this_month = 12
        setup.commit()
        client_id = due.id

    assert run_rollover(datetime(2030, 2, 1), factory=factory) == 1
    assert run_rollover(datetime(2030, 2, 1), factory=factory) == 0

    with factory() as check:
        rolled = check.get(Client, client_id)
        assert rolled.hours_used_this_month == 0
        assert rolled.support_billing_cycle_start == datetime(2030, 2, 1)
        assert len(support_hours.list_support_logs(check, rolled)) == 1


def _backdate(db_session, entry, logged_at):
    row = db_session.get(TicketTimeEntry, entry.id)
    row.logged_at = logged_at
    db_session.commit()


def _assert_counter_matches_entries(db_session, client_id):
    refreshed = db_session.get(Client, client_id)
    assert refreshed.hours_used_this_month == support_hours.counted_minutes_in_cycle(db_session, refreshed)
    return refreshed.hours_used_this_month


def test_scheduled_rollover_carries_time_logged_after_the_boundary(db_session, client, ticket):
    cycle_start = utcnow() - timedelta(days=40)
    support_hours.set_monthly_allocation(db_session, client, 5)
    refreshed = db_session.get(Client, client.id)
    refreshed.support_billing_cycle_start = cycle_start
    db_session.commit()

    earlier = log_time(db_session, ticket.id, ADMIN, 30, "Before the month closed")
    _backdate(db_session, earlier, cycle_start + timedelta(days=1))
    log_time(db_session, ticket.id, ADMIN, 90, "Logged before the job ran")
    assert _used(db_session, client.id) == 120

    logs = support_hours.rollover_due_clients(db_session, now=utcnow())

    assert len(logs) == 1
    assert logs[0].used_minutes == 30
    assert logs[0].period_end == db_session.get(Client, client.id).support_billing_cycle_start
    assert _assert_counter_matches_entries(db_session, client.id) == 90


def test_scheduled_rollover_catches_up_missed_months(db_session, client, ticket):
    january = log_time(db_session, ticket.id, ADMIN, 20)
    february = log_time(db_session, ticket.id, ADMIN, 30)
    march = log_time(db_session, ticket.id, ADMIN, 40)
    _backdate(db_session, january, datetime(2030, 1, 15))
    _backdate(db_session, february, datetime(2030, 2, 20))
    _backdate(db_session, march, datetime(2030, 3, 12))
    refreshed = db_session.get(Client, client.id)
    refreshed.support_billing_cycle_start = datetime(2030, 1, 10)
    db_session.commit()

    logs = support_hours.rollover_due_clients(db_session, now=datetime(2030, 3, 20))

    assert [(log.period_start, log.period_end, log.used_minutes) for log in logs] == [
        (datetime(2030, 1, 10), datetime(2030, 2, 10), 20),
        (datetime(2030, 2, 10), datetime(2030, 3, 10), 30),
    ]
    assert db_session.get(Client, client.id).support_billing_cycle_start == datetime(2030, 3, 10)
    assert _assert_counter_matches_entries(db_session, client.id) == 40
    assert support_hours.rollover_due_clients(db_session, now=datetime(2030, 3, 20)) == []


def test_changing_entries_from_a_closed_cycle_leaves_current_usage_alone(db_session, client, ticket):
    support_hours.set_monthly_allocation(db_session, client, 10)
    kept = log_time(db_session, ticket.id, ADMIN, 60)
    removed = log_time(db_session, ticket.id, ADMIN, 90)
    last_month = utcnow() - timedelta(minutes=5)
    _backdate(db_session, kept, last_month)
    _backdate(db_session, removed, last_month)

    log = support_hours.rollover_billing_cycle(db_session, db_session.get(Client, client.id))
    assert log.used_minutes == 150
    assert _used(db_session, client.id) == 0

    log_time(db_session, ticket.id, ADMIN, 30)
    update_time_entry(db_session, kept.id, ADMIN, 45)
    delete_time_entry(db_session, removed.id, ADMIN)

    assert _assert_counter_matches_entries(db_session, client.id) == 30
    assert db_session.get(Ticket, ticket.id).time_spent_minutes == 75
