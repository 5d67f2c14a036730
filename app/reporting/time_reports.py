"""
Time and Machine Health Reports

Drill-down reports over logged hours:
- time_by_customer: hours billed against each customer's machines
- time_by_technician: hours each technician logged, with an efficiency label
- machine_health: per-machine ticket load, repeat issues and status

Work logs are matched to their parent ticket from the unfiltered snapshot,
so a log inside the date range still counts when its ticket was opened
before the range started.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from app.models.enums import EquipmentStatus
from app.models.records import ReportBaseData, ReportTicket, ReportWorkLog
from app.models.schemas import ReportFilters
from app.reporting.filters import apply_filters, log_customer_id, log_date
from app.reporting.issues import group_similar_issues, issue_label
from app.reporting.metrics import (
    PartUsage,
    average,
    latest_date,
    percent,
    round_hours,
    sorted_part_usage,
)

# A customer with at least this many tickets in the period is flagged Repeat
REPEAT_CUSTOMER_TICKETS = 3

# +/-10% around the overall hours-per-ticket average counts as average
EFFICIENCY_BAND = 0.1

MACHINE_TICKET_THRESHOLD = 5


@dataclass
class TimeLogDetail:
    log_id: str
    ticket_id: str
    ticket_number: str
    machine_id: str
    technician_name: str
    customer_name: str
    log_date: Optional[str]
    hours_worked: float
    work_performed: Optional[str] = None
    repairs: Optional[str] = None


@dataclass
class HoursShare:
    id: str
    name: str
    hours: float
    percent: int = 0


@dataclass
class CustomerTimeRow:
    customer_id: str
    customer_name: str
    total_hours: float = 0.0
    ticket_count: int = 0
    machine_count: int = 0
    avg_hours_per_ticket: float = 0.0
    flags: List[str] = field(default_factory=list)
    technicians: List[HoursShare] = field(default_factory=list)
    logs: List[TimeLogDetail] = field(default_factory=list)


@dataclass
class TechnicianTimeRow:
    technician_id: str
    technician_name: str
    total_hours: float = 0.0
    ticket_count: int = 0
    customer_count: int = 0
    avg_hours_per_ticket: float = 0.0
    efficiency: str = "average"
    efficiency_percent: int = 0
    customers: List[HoursShare] = field(default_factory=list)
    logs: List[TimeLogDetail] = field(default_factory=list)


@dataclass
class TimeReport:
    rows: list = field(default_factory=list)
    total_hours: float = 0.0
    total_tickets: int = 0
    avg_hours_per_row: float = 0.0
    avg_hours_per_ticket: float = 0.0


@dataclass
class _TimeAggregate:
    key: str
    name: str
    hours: float = 0.0
    ticket_ids: set = field(default_factory=set)
    machine_ids: set = field(default_factory=set)
    breakdown: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    logs: List[TimeLogDetail] = field(default_factory=list)


def _billable_logs(data: ReportBaseData, filters: Optional[ReportFilters]):
    """
    Yield (log, ticket, customer_id, log_date) for filtered logs with hours.

    Logs without a known ticket or customer are skipped.
    """
    filtered = apply_filters(data, filters)
    tickets: Dict[str, ReportTicket] = {t.id: t for t in data.tickets}
    machines = {m.id: m for m in data.machines}

    for log in filtered.work_logs:
        if not log.hours_worked or log.hours_worked <= 0:
            continue
        ticket = tickets.get(log.ticket_id)
        if ticket is None:
            continue
        customer_id = log_customer_id(log, ticket, machines)
        if not customer_id:
            continue
        yield log, ticket, customer_id, log_date(log, ticket)


def _customer_name(data: ReportBaseData, customer_id: str, ticket: ReportTicket) -> str:
    for customer in data.customers:
        if customer.id == customer_id:
            return customer.company_name
    for machine in ticket.machines:
        if machine.customer_id == customer_id:
            return machine.customer_name
    return "Unknown"


def _log_detail(
    log: ReportWorkLog,
    ticket: ReportTicket,
    technician_name: str,
    customer_name: str,
    when: Optional[str],
) -> TimeLogDetail:
    return TimeLogDetail(
        log_id=log.id,
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number or "Unknown",
        machine_id=log.machine_id,
        technician_name=technician_name,
        customer_name=customer_name,
        log_date=when,
        hours_worked=round_hours(log.hours_worked),
        work_performed=log.work_performed,
        repairs=log.repairs,
    )


def _shares(breakdown: Dict[str, float], names: Dict[str, str], total: float) -> List[HoursShare]:
    shares = [
        HoursShare(
            id=key,
            name=names.get(key, "Unknown"),
            hours=round_hours(hours),
            percent=percent(hours, total),
        )
        for key, hours in breakdown.items()
    ]
    shares.sort(key=lambda s: (-s.hours, s.name))
    return shares


def _sorted_logs(logs: List[TimeLogDetail]) -> List[TimeLogDetail]:
    # Newest first, undated last
    dated = sorted((l for l in logs if l.log_date), key=lambda l: l.log_date, reverse=True)
    return dated + [l for l in logs if not l.log_date]


def _overall_average(aggregates) -> float:
    total_hours = sum(a.hours for a in aggregates)
    total_tickets = sum(len(a.ticket_ids) for a in aggregates)
    return average(total_hours, total_tickets)


def _summary(rows: list, aggregates) -> TimeReport:
    total_hours = sum(a.hours for a in aggregates)
    total_tickets = sum(len(a.ticket_ids) for a in aggregates)
    return TimeReport(
        rows=rows,
        total_hours=round_hours(total_hours),
        total_tickets=total_tickets,
        avg_hours_per_row=round_hours(average(total_hours, len(rows))),
        avg_hours_per_ticket=round_hours(average(total_hours, total_tickets)),
    )


def time_by_customer(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> TimeReport:
    """
    Hours logged per customer.

    Flags: Repeat (3+ tickets in the period), High Time (hours per ticket
    more than 10% above the overall average) or Efficient (more than 10%
    below it).
    """
    technician_names = {t.id: t.name for t in data.technicians}
    aggregates: Dict[str, _TimeAggregate] = {}

    for log, ticket, customer_id, when in _billable_logs(data, filters):
        aggregate = aggregates.get(customer_id)
        if aggregate is None:
            aggregate = aggregates[customer_id] = _TimeAggregate(
                key=customer_id,
                name=_customer_name(data, customer_id, ticket),
            )
        aggregate.hours += log.hours_worked
        aggregate.ticket_ids.add(ticket.id)
        aggregate.machine_ids.add(log.machine_id)
        if log.recorded_by:
            aggregate.breakdown[log.recorded_by] += log.hours_worked
        technician_name = technician_names.get(log.recorded_by, "Unknown")
        aggregate.logs.append(_log_detail(log, ticket, technician_name, aggregate.name, when))

    overall = _overall_average(aggregates.values())
    rows = []
    for aggregate in aggregates.values():
        per_ticket = average(aggregate.hours, len(aggregate.ticket_ids))
        flags = []
        if len(aggregate.ticket_ids) >= REPEAT_CUSTOMER_TICKETS:
            flags.append("Repeat")
        if per_ticket > overall * (1 + EFFICIENCY_BAND):
            flags.append("High Time")
        elif per_ticket < overall * (1 - EFFICIENCY_BAND):
            flags.append("Efficient")

        rows.append(CustomerTimeRow(
            customer_id=aggregate.key,
            customer_name=aggregate.name,
            total_hours=round_hours(aggregate.hours),
            ticket_count=len(aggregate.ticket_ids),
            machine_count=len(aggregate.machine_ids),
            avg_hours_per_ticket=round_hours(per_ticket),
            flags=flags,
            technicians=_shares(aggregate.breakdown, technician_names, aggregate.hours),
            logs=_sorted_logs(aggregate.logs),
        ))

    rows.sort(key=lambda r: (-r.total_hours, r.customer_name))
    return _summary(rows, aggregates.values())


def efficiency_label(per_ticket: float, overall: float):
    """('faster'|'slower'|'average', percent relative to the overall average)"""
    if not overall:
        return "average", 0
    ratio = percent(overall - per_ticket, overall)
    if per_ticket < overall * (1 - EFFICIENCY_BAND):
        return "faster", ratio
    if per_ticket > overall * (1 + EFFICIENCY_BAND):
        return "slower", abs(ratio)
    return "average", abs(ratio)


def time_by_technician(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> TimeReport:
    """Hours logged per technician, split by customer."""
    technician_names = {t.id: t.name for t in data.technicians}
    customer_names: Dict[str, str] = {}
    aggregates: Dict[str, _TimeAggregate] = {}

    for log, ticket, customer_id, when in _billable_logs(data, filters):
        if not log.recorded_by:
            continue
        customer_name = customer_names.get(customer_id)
        if customer_name is None:
            customer_name = customer_names[customer_id] = _customer_name(data, customer_id, ticket)

        aggregate = aggregates.get(log.recorded_by)
        if aggregate is None:
            aggregate = aggregates[log.recorded_by] = _TimeAggregate(
                key=log.recorded_by,
                name=technician_names.get(log.recorded_by, "Unknown"),
            )
        aggregate.hours += log.hours_worked
        aggregate.ticket_ids.add(ticket.id)
        aggregate.breakdown[customer_id] += log.hours_worked
        aggregate.logs.append(_log_detail(log, ticket, aggregate.name, customer_name, when))

    overall = _overall_average(aggregates.values())
    rows = []
    for aggregate in aggregates.values():
        per_ticket = average(aggregate.hours, len(aggregate.ticket_ids))
        label, ratio = efficiency_label(per_ticket, overall)
        rows.append(TechnicianTimeRow(
            technician_id=aggregate.key,
            technician_name=aggregate.name,
            total_hours=round_hours(aggregate.hours),
            ticket_count=len(aggregate.ticket_ids),
            customer_count=len(aggregate.breakdown),
            avg_hours_per_ticket=round_hours(per_ticket),
            efficiency=label,
            efficiency_percent=ratio,
            customers=_shares(aggregate.breakdown, customer_names, aggregate.hours),
            logs=_sorted_logs(aggregate.logs),
        ))

    rows.sort(key=lambda r: (-r.total_hours, r.technician_name))
    return _summary(rows, aggregates.values())


# ============== Machine health ==============

@dataclass
class MachineIssue:
    issue: str
    count: int


@dataclass
class MachineHealthRow:
    machine_id: str
    serial_number: str
    type: str
    customer_id: Optional[str]
    customer_name: str
    ticket_count: int = 0
    repeat_issue_count: int = 0
    repeat_issues: List[MachineIssue] = field(default_factory=list)
    total_hours: float = 0.0
    parts_used: List[PartUsage] = field(default_factory=list)
    last_service_date: Optional[str] = None
    status: EquipmentStatus = EquipmentStatus.HEALTHY


@dataclass
class MachineHealthReport:
    rows: List[MachineHealthRow] = field(default_factory=list)
    total_machines: int = 0
    problematic_machines: int = 0
    total_tickets: int = 0
    ticket_threshold: int = MACHINE_TICKET_THRESHOLD


def machine_health_status(ticket_count: int, repeat_groups: int, threshold: int) -> EquipmentStatus:
    """
    Critical at twice the ticket threshold or with 2+ repeat issues,
    At Risk at the threshold or with one repeat issue.
    """
    if ticket_count >= threshold * 2 or repeat_groups >= 2:
        return EquipmentStatus.CRITICAL
    if ticket_count >= threshold or repeat_groups >= 1:
        return EquipmentStatus.AT_RISK
    return EquipmentStatus.HEALTHY


@dataclass
class _MachineAggregate:
    machine_id: str
    serial_number: str
    type: str
    customer_id: Optional[str]
    customer_name: str
    tickets: List[ReportTicket] = field(default_factory=list)
    hours: float = 0.0
    parts: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    last_service_date: Optional[str] = None


def validate_threshold(threshold: int = MACHINE_TICKET_THRESHOLD) -> None:
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold < 1:
        raise ValueError("threshold must be a whole number of at least 1")


def machine_health(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
    threshold: int = MACHINE_TICKET_THRESHOLD,
) -> MachineHealthReport:
    """
    Machines ranked by how much trouble they cause.

    With a part filter active only machines that consumed a matching part
    are listed.
    """
    validate_threshold(threshold)

    filtered = apply_filters(data, filters)
    machines = {m.id: m for m in data.machines}
    customers = {c.id: c.company_name for c in data.customers}
    tickets = {t.id: t for t in data.tickets}
    aggregates: Dict[str, _MachineAggregate] = {}

    def ensure(machine_id: str, ticket: Optional[ReportTicket]) -> _MachineAggregate:
        aggregate = aggregates.get(machine_id)
        if aggregate is not None:
            return aggregate
        machine = machines.get(machine_id)
        ticket_machine = None
        if ticket is not None:
            ticket_machine = next((m for m in ticket.machines if m.machine_id == machine_id), None)
        customer_id = (machine.customer_id if machine else None) or (
            ticket_machine.customer_id if ticket_machine else None
        )
        if ticket_machine is not None and ticket_machine.serial_number != "Unknown":
            serial = ticket_machine.serial_number
        else:
            serial = machine.serial_number if machine else "Unknown"
        if machine is not None:
            machine_type = machine.type.value
        else:
            machine_type = ticket_machine.machine_type if ticket_machine else "Unknown"
        customer_name = customers.get(customer_id) or (
            ticket_machine.customer_name if ticket_machine else "Unknown"
        )
        aggregate = aggregates[machine_id] = _MachineAggregate(
            machine_id=machine_id,
            serial_number=serial,
            type=machine_type,
            customer_id=customer_id,
            customer_name=customer_name,
        )
        return aggregate

    for ticket in filtered.tickets:
        seen = set()
        for ticket_machine in ticket.machines:
            if ticket_machine.machine_id in seen:
                continue
            seen.add(ticket_machine.machine_id)
            aggregate = ensure(ticket_machine.machine_id, ticket)
            aggregate.tickets.append(ticket)
            aggregate.last_service_date = latest_date(aggregate.last_service_date, ticket.created_at)

    for log in filtered.work_logs:
        ticket = tickets.get(log.ticket_id)
        if ticket is None:
            continue
        aggregate = ensure(log.machine_id, ticket)
        if log.hours_worked:
            aggregate.hours += log.hours_worked
        for part in log.parts_used:
            aggregate.parts[part.part_name] += part.quantity

    rows = []
    for aggregate in aggregates.values():
        if filters is not None and filters.filters_parts and not aggregate.parts:
            continue
        repeat_groups = [g for g in group_similar_issues(aggregate.tickets) if len(g) >= 2]
        rows.append(MachineHealthRow(
            machine_id=aggregate.machine_id,
            serial_number=aggregate.serial_number,
            type=aggregate.type,
            customer_id=aggregate.customer_id,
            customer_name=aggregate.customer_name,
            ticket_count=len(aggregate.tickets),
            repeat_issue_count=len(repeat_groups),
            repeat_issues=[
                MachineIssue(issue=issue_label(g[0].issue_description), count=len(g))
                for g in repeat_groups
            ],
            total_hours=round_hours(aggregate.hours),
            parts_used=sorted_part_usage(aggregate.parts),
            last_service_date=aggregate.last_service_date,
            status=machine_health_status(len(aggregate.tickets), len(repeat_groups), threshold),
        ))

    rows.sort(key=lambda r: (r.status.rank, -r.ticket_count, r.serial_number))
    return MachineHealthReport(
        rows=rows,
        total_machines=len(rows),
        problematic_machines=sum(1 for r in rows if r.status != EquipmentStatus.HEALTHY),
        total_tickets=sum(r.ticket_count for r in rows),
        ticket_threshold=threshold,
    )
