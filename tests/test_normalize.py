from datetime import date, datetime, timezone

import pytest

from app.models.enums import MachineType, TicketPriority, TicketStatus
from app.reporting.normalize import (
    hours_between,
    parse_customer,
    parse_iso,
    parse_machine,
    parse_part,
    parse_rows,
    parse_technician,
    parse_ticket,
    parse_work_log,
    to_iso_string,
)


class TestToIsoString:
    def test_datetime_and_z_suffix(self):
        assert to_iso_string(datetime(2024, 3, 1, 8, tzinfo=timezone.utc)) == "2024-03-01T08:00:00+00:00"
        assert to_iso_string("2024-03-01T08:00:00Z") == "2024-03-01T08:00:00+00:00"

    def test_offset_is_converted_to_utc(self):
        assert to_iso_string("2024-03-01T10:00:00+02:00") == "2024-03-01T08:00:00+00:00"

    def test_epoch_milliseconds(self):
        assert to_iso_string(1709280000000) == "2024-03-01T08:00:00+00:00"

    def test_plain_date(self):
        assert to_iso_string(date(2024, 3, 1)) == "2024-03-01T00:00:00+00:00"

    @pytest.mark.parametrize("text,expected", [
        ("2024-03-01T08:00:00.12345+00:00", "2024-03-01T08:00:00.123450+00:00"),
        ("2024-03-01T08:00:00.1+00:00", "2024-03-01T08:00:00.100000+00:00"),
        ("2024-03-01T08:00:00.123456Z", "2024-03-01T08:00:00.123456+00:00"),
    ])
    def test_trimmed_fractional_seconds(self, text, expected):
        assert to_iso_string(text) == expected
        assert parse_iso(text) == datetime.fromisoformat(expected)

    def test_invalid_values_become_none(self):
        assert to_iso_string(None) is None
        assert to_iso_string("") is None
        assert to_iso_string("yesterday") is None
        assert to_iso_string(True) is None
        assert to_iso_string({"seconds": 1}) is None


def test_hours_between():
    assert hours_between("2024-03-01T08:00:00+00:00", "2024-03-01T12:30:00+00:00") == 4.5
    assert hours_between(None, "2024-03-01T12:30:00+00:00") is None


class TestParseTicket:
    def test_full_row(self):
        t = parse_ticket({
            "id": "t1",
            "ticket_number": "T-001",
            "status": "closed",
            "created_at": "2024-03-01T08:00:00Z",
            "closed_at": "2024-03-01T12:00:00Z",
            "assigned_to": "alice",
            "assigned_at": "2024-03-01T09:00:00Z",
            "machines": [
                {"machine_id": "m1", "customer_id": "c1", "priority": "Urgent"},
                {"customerId": "c1"},
            ],
        })
        assert t.status == TicketStatus.CLOSED
        assert t.closed_at == "2024-03-01T12:00:00+00:00"
        assert len(t.machines) == 1
        assert t.machines[0].priority == TicketPriority.URGENT
        assert t.machines[0].customer_name == "Unknown"

    def test_unknown_status_is_open(self):
        t = parse_ticket({"id": "t1", "status": "Escalated"})
        assert t.status == TicketStatus.OPEN

    def test_closed_at_dropped_unless_closed(self):
        t = parse_ticket({"id": "t1", "status": "Assigned", "closed_at": "2024-03-01T12:00:00Z"})
        assert t.closed_at is None

    def test_assigned_at_falls_back_to_updated_at(self):
        t = parse_ticket({
            "id": "t1",
            "status": "Assigned",
            "assigned_to": "bob",
            "updated_at": "2024-03-01T10:00:00Z",
        })
        assert t.assigned_at == "2024-03-01T10:00:00+00:00"

    def test_legacy_camel_case_columns(self):
        t = parse_ticket({"id": "t1", "ticketNumber": "T-9", "createdAt": "2024-03-01T08:00:00Z"})
        assert t.ticket_number == "T-9"
        assert t.created_at == "2024-03-01T08:00:00+00:00"

    def test_rejects_rows_without_id(self):
        assert parse_ticket({"status": "Open"}) is None
        assert parse_ticket("not a row") is None


class TestParseWorkLog:
    def test_negative_hours_become_none(self):
        log = parse_work_log({"id": "w1", "ticket_id": "t1", "machine_id": "m1", "hours_worked": -2})
        assert log.hours_worked is None

    def test_non_numeric_hours_become_none(self):
        log = parse_work_log({"id": "w1", "hours_worked": "lots"})
        assert log.hours_worked is None

    def test_parts_quantity_defaults_to_one(self):
        log = parse_work_log({
            "id": "w1",
            "parts_used": [
                {"part_id": "p1", "part_name": "Gasket", "quantity": 0},
                {"part_name": "Burr", "quantity": "3"},
                "junk",
            ],
        })
        assert [(p.part_name, p.quantity) for p in log.parts_used] == [("Gasket", 1), ("Burr", 3.0)]

    def test_completeness(self):
        log = parse_work_log({
            "id": "w1",
            "departure_time": "2024-03-01T11:00:00Z",
            "work_performed": "Descaled",
            "outcome": "Fixed",
        })
        assert log.is_complete
        assert not parse_work_log({"id": "w2", "work_performed": "Descaled"}).is_complete


def test_reference_parsers():
    assert parse_customer({"id": "c1", "is_disabled": True}).enabled is False
    assert parse_customer({"id": "c1"}).company_name == "Unknown"
    assert parse_machine({"id": "m1", "type": "grinder"}).type == MachineType.GRINDER
    assert parse_machine({"id": "m1", "type": "Toaster"}).type == MachineType.OTHER
    tech = parse_technician({"id": "u1", "name": "Alice", "chargeout_rate": "95.5", "disabled": True})
    assert tech.chargeout_rate == 95.5
    assert tech.internal_pay_rate is None
    assert tech.enabled is False
    part = parse_part({"id": "p1", "name": "Gasket", "quantity_in_stock": None})
    assert part.quantity_in_stock == 0
    assert part.min_quantity == 0


def test_parse_rows_skips_malformed(caplog):
    rows = [{"id": "c1"}, {"name": "no id"}, None]
    with caplog.at_level("WARNING"):
        parsed = parse_rows(rows, parse_customer, "customer")
    assert [c.id for c in parsed] == ["c1"]
    assert "Skipped 2 malformed customer" in caplog.text


def test_parse_rows_non_list():
    assert parse_rows(None, parse_customer, "customer") == ()
