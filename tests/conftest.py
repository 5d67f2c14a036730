"""
Shared fixtures: a representative snapshot, raw table rows and a fake
Supabase client.
"""

import pytest

from app.config import Settings
from app.models.enums import MachineType, TicketPriority, TicketStatus
from app.models.records import (
    ReportBaseData,
    ReportCustomer,
    ReportMachine,
    ReportPart,
    ReportTechnician,
)

from tests.factories import NOW, FakeSupabase, snapshot, ticket, ticket_machine, work_log


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings():
    return Settings(_env_file=None, supabase_url="https://example.supabase.co", supabase_key="service-key")


@pytest.fixture
def sample_data() -> ReportBaseData:
    """
    Two customers, three machines, two technicians.

    t1 Closed (Alice, m1) 4h to close, assigned after 1h
    t2 Assigned (Bob, m2) urgent
    t3 Open (m1) old and unassigned
    t4 Closed (Alice, m3) for the second customer
    """
    customers = [
        ReportCustomer(id="c1", company_name="Cafe One"),
        ReportCustomer(id="c2", company_name="Beans Co"),
        ReportCustomer(id="c3", company_name="Closed Down", enabled=False),
    ]
    machines = [
        ReportMachine(id="m1", customer_id="c1", type=MachineType.ESPRESSO, serial_number="SN-m1"),
        ReportMachine(id="m2", customer_id="c1", type=MachineType.GRINDER, serial_number="SN-m2"),
        ReportMachine(id="m3", customer_id="c2", type=MachineType.CRESCENDO, serial_number="SN-m3"),
    ]
    technicians = [
        ReportTechnician(id="alice", name="Alice", chargeout_rate=100.0, internal_pay_rate=40.0),
        ReportTechnician(id="bob", name="Bob"),
    ]
    parts = [
        ReportPart(id="p1", name="Gasket", category="Seals", quantity_in_stock=2, min_quantity=5),
        ReportPart(id="p2", name="Burr", category="Grinding", quantity_in_stock=10, min_quantity=3),
        ReportPart(id="p3", name="Pump", category="Hydraulics", quantity_in_stock=1, min_quantity=1),
    ]
    tickets = [
        ticket(
            "t1",
            TicketStatus.CLOSED,
            created_at="2024-03-01T08:00:00+00:00",
            assigned_at="2024-03-01T09:00:00+00:00",
            closed_at="2024-03-01T12:00:00+00:00",
            assigned_to="alice",
            issue_description="Steam wand leaking water",
            machines=[ticket_machine("m1", "c1", TicketPriority.HIGH)],
        ),
        ticket(
            "t2",
            TicketStatus.ASSIGNED,
            created_at="2024-03-18T08:00:00+00:00",
            assigned_at="2024-03-18T10:00:00+00:00",
            assigned_to="bob",
            issue_description="Grinder jammed",
            machines=[ticket_machine("m2", "c1", TicketPriority.URGENT)],
        ),
        ticket(
            "t3",
            TicketStatus.OPEN,
            created_at="2024-03-10T08:00:00+00:00",
            issue_description="Steam wand leaking badly",
            machines=[ticket_machine("m1", "c1", TicketPriority.LOW)],
        ),
        ticket(
            "t4",
            TicketStatus.CLOSED,
            created_at="2024-03-05T08:00:00+00:00",
            assigned_at="2024-03-05T08:30:00+00:00",
            closed_at="2024-03-05T10:00:00+00:00",
            assigned_to="alice",
            issue_description="Display shows error code",
            machines=[ticket_machine("m3", "c2", TicketPriority.MEDIUM, customer_name="Beans Co")],
        ),
    ]
    work_logs = [
        work_log(
            "w1", "t1", "m1", hours=2.0, parts=[("Gasket", 2)],
            recorded_by="alice",
            arrival_time="2024-03-01T09:30:00+00:00",
            departure_time="2024-03-01T11:30:00+00:00",
            work_performed="Replaced gasket",
            outcome="Fixed",
        ),
        work_log(
            "w2", "t2", "m2", hours=1.5, parts=[("Burr", 1)],
            recorded_by="bob",
            arrival_time="2024-03-18T11:00:00+00:00",
        ),
        work_log(
            "w3", "t4", "m3", hours=1.0,
            recorded_by="alice",
            arrival_time="2024-03-05T08:45:00+00:00",
            departure_time="2024-03-05T09:45:00+00:00",
            work_performed="Reset board",
            outcome="Fixed",
        ),
    ]
    return snapshot(
        tickets=tickets,
        work_logs=work_logs,
        customers=customers,
        machines=machines,
        technicians=technicians,
        parts=parts,
    )


@pytest.fixture
def raw_tables():
    return {
        "tickets": [
            {
                "id": "t1",
                "ticket_number": "T-001",
                "status": "Closed",
                "created_at": "2024-03-01T08:00:00Z",
                "closed_at": "2024-03-01T12:00:00Z",
                "assigned_to": "alice",
                "issue_description": "Leak",
                "machines": [{"machine_id": "m1", "customer_id": "c1", "priority": "High"}],
            },
            {"id": "t2", "status": "weird", "created_at": 1709280000000, "machines": "not a list"},
            {"status": "Open"},
        ],
        "machine_work_logs": [
            {"id": "w1", "ticket_id": "t1", "machine_id": "m1", "hours_worked": 2, "arrival_time": "2024-03-01T09:00:00Z"},
            {"id": "w2", "ticket_id": "t1", "machine_id": "m1", "hours_worked": -3, "arrival_time": "2024-03-02T09:00:00Z"},
            {"id": "w3", "ticket_id": "t9", "machine_id": "m1", "hours_worked": 1},
        ],
        "customers": [{"id": "c1", "company_name": "Cafe One"}, {"id": "c2", "is_disabled": True}],
        "machines": [{"id": "m1", "customer_id": "c1", "type": "espresso", "serial_number": "SN1"}],
        "users": [
            {"id": "alice", "name": "Alice", "role": "technician"},
            {"id": "boss", "name": "Boss", "role": "management"},
        ],
        "parts": [{"id": "p1", "name": "Gasket", "quantity_in_stock": "3", "min_quantity": None}],
    }


@pytest.fixture
def fake_client(raw_tables):
    return FakeSupabase(tables=raw_tables)
