from datetime import date

import pytest

from app.models.enums import EquipmentStatus
from app.models.schemas import ReportFilters
from app.reporting.time_reports import (
    efficiency_label,
    machine_health,
    machine_health_status,
    time_by_customer,
    time_by_technician,
)
from tests.factories import snapshot, ticket, work_log


class TestTimeByCustomer:
    def test_sample(self, sample_data):
        report = time_by_customer(sample_data)
        assert [r.customer_id for r in report.rows] == ["c1", "c2"]
        c1, c2 = report.rows
        assert (c1.total_hours, c1.ticket_count, c1.machine_count) == (3.5, 2, 2)
        assert c1.avg_hours_per_ticket == 1.8
        assert c1.flags == ["High Time"]
        assert c2.flags == ["Efficient"]
        assert [(t.id, t.hours, t.percent) for t in c1.technicians] == [("alice", 2.0, 57), ("bob", 1.5, 43)]
        assert [l.log_id for l in c1.logs] == ["w2", "w1"]

    def test_totals_match_rows(self, sample_data):
        report = time_by_customer(sample_data)
        assert report.total_hours == sum(r.total_hours for r in report.rows) == 4.5
        assert report.total_tickets == 3
        assert report.avg_hours_per_ticket == 1.5
        assert report.avg_hours_per_row == 2.3

    def test_repeat_flag(self):
        tickets = [ticket(f"t{i}") for i in range(3)]
        logs = [work_log(f"w{i}", f"t{i}", hours=1.0) for i in range(3)]
        (row,) = time_by_customer(snapshot(tickets=tickets, work_logs=logs)).rows
        assert "Repeat" in row.flags
        assert row.customer_name == "Cafe One"

    def test_logs_without_hours_or_ticket_skipped(self):
        data = snapshot(
            tickets=[ticket("t1")],
            work_logs=[work_log("w1", "t1", hours=None), work_log("w2", "missing", hours=3)],
        )
        report = time_by_customer(data)
        assert report.rows == []
        assert report.total_hours == 0.0

    def test_log_counts_when_ticket_predates_range(self):
        data = snapshot(
            tickets=[ticket("t1", created_at="2024-02-01T00:00:00+00:00")],
            work_logs=[work_log("w1", "t1", hours=2.0, arrival_time="2024-03-02T00:00:00+00:00")],
        )
        report = time_by_customer(data, ReportFilters(start_date=date(2024, 3, 1)))
        assert report.total_hours == 2.0


class TestTimeByTechnician:
    def test_sample(self, sample_data):
        report = time_by_technician(sample_data)
        alice, bob = report.rows
        assert alice.technician_id == "alice"
        assert (alice.total_hours, alice.ticket_count, alice.customer_count) == (3.0, 2, 2)
        assert [(c.name, c.hours) for c in alice.customers] == [("Cafe One", 2.0), ("Beans Co", 1.0)]
        assert alice.efficiency == bob.efficiency == "average"
        assert report.total_hours == sum(r.total_hours for r in report.rows)

    def test_technician_filter(self, sample_data):
        report = time_by_technician(sample_data, ReportFilters(technician_ids=["bob"]))
        assert [r.technician_id for r in report.rows] == ["bob"]
        assert report.total_hours == 1.5

    @pytest.mark.parametrize("per_ticket,overall,label,ratio", [
        (1.0, 2.0, "faster", 50),
        (3.0, 2.0, "slower", 50),
        (2.1, 2.0, "average", 5),
        (1.0, 0.0, "average", 0),
    ])
    def test_efficiency_label(self, per_ticket, overall, label, ratio):
        assert efficiency_label(per_ticket, overall) == (label, ratio)


class TestMachineHealth:
    def test_sample(self, sample_data):
        report = machine_health(sample_data)
        assert [r.machine_id for r in report.rows] == ["m1", "m2", "m3"]
        m1 = report.rows[0]
        assert m1.ticket_count == 2
        assert m1.repeat_issue_count == 1
        assert m1.repeat_issues[0].issue == "Steam wand leaking water"
        assert m1.status == EquipmentStatus.AT_RISK
        assert m1.total_hours == 2.0
        assert m1.type == "Espresso"
        assert (report.total_machines, report.problematic_machines, report.total_tickets) == (3, 1, 4)

    def test_threshold(self, sample_data):
        report = machine_health(sample_data, threshold=1)
        statuses = {r.machine_id: r.status for r in report.rows}
        assert statuses["m1"] == EquipmentStatus.CRITICAL
        assert statuses["m2"] == EquipmentStatus.AT_RISK
        assert report.ticket_threshold == 1

    def test_part_filter_keeps_machines_that_used_parts(self, sample_data):
        report = machine_health(sample_data, ReportFilters(part_names=["Burr"]))
        assert [r.machine_id for r in report.rows] == ["m2"]

    def test_status_rules(self):
        assert machine_health_status(10, 0, 5) == EquipmentStatus.CRITICAL
        assert machine_health_status(1, 2, 5) == EquipmentStatus.CRITICAL
        assert machine_health_status(5, 0, 5) == EquipmentStatus.AT_RISK
        assert machine_health_status(4, 0, 5) == EquipmentStatus.HEALTHY

    def test_invalid_threshold(self, sample_data):
        with pytest.raises(ValueError):
            machine_health(sample_data, threshold=0)
