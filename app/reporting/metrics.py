"""
Report Metric Aggregators

Pure functions computing the management reports from a ReportBaseData
snapshot. Each takes (data, filters) plus optional constants, applies the
filter engine first and never mutates its input.

Numeric rules:
- Hours are rounded to one decimal, percentages to whole numbers
- Any division by zero yields 0
- Money is rounded to cents
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from app.models.enums import EquipmentStatus, TicketPriority, TicketStatus
from app.models.records import ReportBaseData, ReportTicket
from app.models.schemas import ReportFilters
from app.reporting.filters import apply_filters
from app.reporting.issues import count_repeats, group_similar_issues, issue_label
from app.reporting.normalize import hours_between, parse_iso


AGING_THRESHOLD_DAYS = 3
AGING_LIST_LIMIT = 10

# Equipment health thresholds (incidents)
AT_RISK_INCIDENTS = 5
CRITICAL_INCIDENTS = 10

# Fallback rates when a technician has none on file ($/hour)
DEFAULT_CHARGEOUT_RATE = 120.0
DEFAULT_INTERNAL_PAY_RATE = 35.0

TOP_ISSUE_LIMIT = 5
REPEAT_MACHINE_LIMIT = 10
REVENUE_PER_TICKET_LIMIT = 5


# ============== Numeric helpers ==============

def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a spreadsheet does (0.5 goes up), not banker's rounding."""
    if value is None or not math.isfinite(value):
        return 0.0
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_hours(value: float) -> float:
    return round_half_up(value, 1)


def round_money(value: float) -> float:
    return round_half_up(value, 2)


def average(total: float, count: int) -> float:
    return total / count if count else 0.0


def percent(numerator: float, denominator: float) -> int:
    """Whole-number percentage, 0 when the denominator is 0."""
    if not denominator:
        return 0
    return int(round_half_up(numerator / denominator * 100))


def resolution_hours(ticket: ReportTicket) -> Optional[float]:
    """Hours from creation to close for closed tickets with both timestamps."""
    if not ticket.is_closed:
        return None
    hours = hours_between(ticket.created_at, ticket.closed_at)
    if hours is None or hours < 0:
        return None
    return hours


def response_hours(ticket: ReportTicket) -> Optional[float]:
    """Hours from creation to first assignment."""
    if ticket.status == TicketStatus.OPEN or not ticket.assigned_to:
        return None
    hours = hours_between(ticket.created_at, ticket.assigned_at)
    if hours is None or hours < 0:
        return None
    return hours


def latest_date(current: Optional[str], candidate: Optional[str]) -> Optional[str]:
    candidate_dt = parse_iso(candidate)
    if candidate_dt is None:
        return current
    current_dt = parse_iso(current)
    if current_dt is None or candidate_dt > current_dt:
        return candidate
    return current


# ============== Ticket metrics ==============

@dataclass
class AgingTicket:
    ticket_number: str
    days_open: int
    priority: str


@dataclass
class TicketMetrics:
    total_tickets: int = 0
    open_tickets: int = 0
    assigned_tickets: int = 0
    closed_tickets: int = 0
    avg_resolution_hours: float = 0.0
    avg_response_time_hours: float = 0.0
    priority_breakdown: Dict[str, int] = field(
        default_factory=lambda: {p.label: 0 for p in sorted(TicketPriority, reverse=True)}
    )
    aging_tickets: List[AgingTicket] = field(default_factory=list)


def ticket_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
    now: Optional[datetime] = None,
    aging_threshold_days: int = AGING_THRESHOLD_DAYS,
) -> TicketMetrics:
    """
    Status counts, priority histogram, resolution/response averages and
    the list of tickets open longer than the aging threshold.
    """
    data = apply_filters(data, filters)
    now = now or datetime.now(timezone.utc)

    metrics = TicketMetrics(total_tickets=len(data.tickets))
    resolution_total, resolution_count = 0.0, 0
    response_total, response_count = 0.0, 0
    aging: List[AgingTicket] = []

    for ticket in data.tickets:
        if ticket.status == TicketStatus.OPEN:
            metrics.open_tickets += 1
        elif ticket.status == TicketStatus.ASSIGNED:
            metrics.assigned_tickets += 1
        else:
            metrics.closed_tickets += 1

        priority = ticket.highest_priority
        if priority is not None:
            metrics.priority_breakdown[priority.label] += 1

        hours = resolution_hours(ticket)
        if hours is not None:
            resolution_total += hours
            resolution_count += 1

        hours = response_hours(ticket)
        if hours is not None:
            response_total += hours
            response_count += 1

        if not ticket.is_closed:
            created = parse_iso(ticket.created_at)
            if created is not None:
                days_open = math.floor((now - created).total_seconds() / 86400)
                if days_open > aging_threshold_days:
                    aging.append(AgingTicket(
                        ticket_number=ticket.ticket_number,
                        days_open=days_open,
                        priority=priority.label if priority else "Unknown",
                    ))

    metrics.avg_resolution_hours = round_hours(average(resolution_total, resolution_count))
    metrics.avg_response_time_hours = round_hours(average(response_total, response_count))
    aging.sort(key=lambda a: (-a.days_open, a.ticket_number))
    metrics.aging_tickets = aging[:AGING_LIST_LIMIT]
    return metrics


# ============== Technician metrics ==============

@dataclass
class TechnicianMetrics:
    technician_id: str
    name: str
    total_assigned: int = 0
    total_closed: int = 0
    open_count: int = 0
    closure_rate: int = 0
    avg_resolution_hours: float = 0.0
    last_ticket_date: Optional[str] = None


def technician_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> List[TechnicianMetrics]:
    """
    Per-technician assignment/closure counts.

    Disabled technicians are listed only when they still hold tickets in
    the (filtered) period.
    """
    data = apply_filters(data, filters)

    by_ticket_owner: Dict[str, List[ReportTicket]] = defaultdict(list)
    for ticket in data.tickets:
        if ticket.assigned_to:
            by_ticket_owner[ticket.assigned_to].append(ticket)

    results = []
    for tech in data.technicians:
        tickets = by_ticket_owner.get(tech.id, [])
        if not tech.enabled and not tickets:
            continue

        closed = [t for t in tickets if t.is_closed]
        hours = [h for h in (resolution_hours(t) for t in closed) if h is not None]
        last_date = None
        for ticket in tickets:
            last_date = latest_date(last_date, ticket.created_at)

        results.append(TechnicianMetrics(
            technician_id=tech.id,
            name=tech.name,
            total_assigned=len(tickets),
            total_closed=len(closed),
            open_count=max(len(tickets) - len(closed), 0),
            closure_rate=percent(len(closed), len(tickets)),
            avg_resolution_hours=round_hours(average(sum(hours), len(hours))),
            last_ticket_date=last_date,
        ))

    results.sort(key=lambda m: (-m.total_closed, m.name))
    return results


# ============== Customer metrics ==============

@dataclass
class CustomerMetrics:
    customer_id: str
    company_name: str
    total_tickets: int = 0
    total_machines: int = 0
    repeat_issue_count: int = 0
    avg_resolution_hours: float = 0.0
    last_service_date: Optional[str] = None


def _tickets_by_machine(tickets) -> Dict[str, List[ReportTicket]]:
    grouped: Dict[str, List[ReportTicket]] = defaultdict(list)
    for ticket in tickets:
        seen = set()
        for machine in ticket.machines:
            if machine.machine_id not in seen:
                seen.add(machine.machine_id)
                grouped[machine.machine_id].append(ticket)
    return grouped


def customer_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> List[CustomerMetrics]:
    """Per enabled customer: ticket volume, fleet size, repeat issues, resolution time."""
    data = apply_filters(data, filters)

    machine_owner: Dict[str, str] = {}
    machines_per_customer: Dict[str, int] = defaultdict(int)
    for machine in data.machines:
        if machine.customer_id:
            machine_owner[machine.id] = machine.customer_id
            machines_per_customer[machine.customer_id] += 1

    tickets_per_customer: Dict[str, List[ReportTicket]] = defaultdict(list)
    for ticket in data.tickets:
        for machine in ticket.machines:
            machine_owner.setdefault(machine.machine_id, machine.customer_id)
        for customer_id in ticket.customer_ids:
            tickets_per_customer[customer_id].append(ticket)

    repeats_per_customer: Dict[str, int] = defaultdict(int)
    for machine_id, tickets in _tickets_by_machine(data.tickets).items():
        owner = machine_owner.get(machine_id)
        if owner:
            repeats_per_customer[owner] += count_repeats(tickets)

    results = []
    for customer in data.customers:
        if not customer.enabled:
            continue
        tickets = tickets_per_customer.get(customer.id, [])
        hours = [h for h in (resolution_hours(t) for t in tickets) if h is not None]
        last_date = None
        for ticket in tickets:
            last_date = latest_date(last_date, ticket.created_at)

        results.append(CustomerMetrics(
            customer_id=customer.id,
            company_name=customer.company_name,
            total_tickets=len(tickets),
            total_machines=machines_per_customer.get(customer.id, 0),
            repeat_issue_count=repeats_per_customer.get(customer.id, 0),
            avg_resolution_hours=round_hours(average(sum(hours), len(hours))),
            last_service_date=last_date,
        ))

    results.sort(key=lambda m: (-m.total_tickets, m.company_name))
    return results


# ============== Equipment metrics ==============

@dataclass
class PartUsage:
    part_name: str
    quantity: float


@dataclass
class EquipmentMetrics:
    machine_id: str
    type: str
    serial_number: str
    customer_name: str
    total_incidents: int = 0
    last_service_date: Optional[str] = None
    parts_used_count: int = 0
    parts_used: List[PartUsage] = field(default_factory=list)
    status: EquipmentStatus = EquipmentStatus.HEALTHY


def classify_equipment(incidents: int) -> EquipmentStatus:
    """Healthy below 5 incidents, At Risk 5-9, Critical from 10."""
    if incidents >= CRITICAL_INCIDENTS:
        return EquipmentStatus.CRITICAL
    if incidents >= AT_RISK_INCIDENTS:
        return EquipmentStatus.AT_RISK
    return EquipmentStatus.HEALTHY


def sorted_part_usage(usage: Dict[str, float]) -> List[PartUsage]:
    return [
        PartUsage(part_name=name, quantity=qty)
        for name, qty in sorted(usage.items(), key=lambda item: (-item[1], item[0]))
    ]


def equipment_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> List[EquipmentMetrics]:
    """Per machine with at least one ticket: incidents, parts consumed, health status."""
    data = apply_filters(data, filters)

    customer_names = {c.id: c.company_name for c in data.customers}
    tickets_per_machine = _tickets_by_machine(data.tickets)

    parts_per_machine: Dict[str, Dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for log in data.work_logs:
        for part in log.parts_used:
            parts_per_machine[log.machine_id][part.part_name] += part.quantity

    results = []
    for machine in data.machines:
        tickets = tickets_per_machine.get(machine.id, [])
        if not tickets:
            continue

        customer_name = customer_names.get(machine.customer_id)
        if customer_name is None:
            for ticket_machine in tickets[0].machines:
                if ticket_machine.machine_id == machine.id:
                    customer_name = ticket_machine.customer_name
                    break
        last_date = None
        for ticket in tickets:
            last_date = latest_date(last_date, ticket.created_at)

        usage = parts_per_machine.get(machine.id, {})
        results.append(EquipmentMetrics(
            machine_id=machine.id,
            type=machine.type.value,
            serial_number=machine.serial_number,
            customer_name=customer_name or "Unknown",
            total_incidents=len(tickets),
            last_service_date=last_date,
            parts_used_count=len(usage),
            parts_used=sorted_part_usage(usage),
            status=classify_equipment(len(tickets)),
        ))

    results.sort(key=lambda m: (-m.total_incidents, m.serial_number))
    return results


# ============== Revenue metrics ==============

@dataclass
class RevenueMetrics:
    technician_id: str
    technician_name: str
    total_tickets: int = 0
    hours_worked: float = 0.0
    estimated_revenue: float = 0.0
    internal_cost: float = 0.0
    estimated_profit: float = 0.0
    profit_margin: int = 0


@dataclass
class RevenuePerTicket:
    technician_id: str
    technician_name: str
    revenue_per_ticket: float


@dataclass
class RevenueReport:
    """Revenue summary; suppressed (emptied) when nobody billed anything"""
    technicians: List[RevenueMetrics] = field(default_factory=list)
    total_revenue: float = 0.0
    total_cost: float = 0.0
    total_profit: float = 0.0
    total_tickets: int = 0
    profit_margin: int = 0
    revenue_per_ticket: List[RevenuePerTicket] = field(default_factory=list)
    suppressed: bool = False


def revenue_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
    default_chargeout_rate: float = DEFAULT_CHARGEOUT_RATE,
    default_internal_pay_rate: float = DEFAULT_INTERNAL_PAY_RATE,
) -> List[RevenueMetrics]:
    """
    Revenue, internal cost and profit per technician from logged hours.

    revenue = hours x chargeout rate, cost = hours x internal pay rate.
    Every technician gets a row, disabled or not; no billable hours means zeros.
    """
    data = apply_filters(data, filters)

    technicians = {t.id: t for t in data.technicians}
    hours_per_tech: Dict[str, float] = defaultdict(float)
    tickets_per_tech: Dict[str, set] = defaultdict(set)
    for log in data.work_logs:
        if not log.recorded_by or not log.hours_worked:
            continue
        if log.recorded_by not in technicians:
            continue
        hours_per_tech[log.recorded_by] += log.hours_worked
        if log.ticket_id:
            tickets_per_tech[log.recorded_by].add(log.ticket_id)

    results = []
    for tech in data.technicians:
        hours = hours_per_tech.get(tech.id, 0.0)
        chargeout = tech.chargeout_rate if tech.chargeout_rate else default_chargeout_rate
        pay_rate = tech.internal_pay_rate if tech.internal_pay_rate else default_internal_pay_rate
        revenue = hours * chargeout
        cost = hours * pay_rate
        profit = revenue - cost

        results.append(RevenueMetrics(
            technician_id=tech.id,
            technician_name=tech.name,
            total_tickets=len(tickets_per_tech.get(tech.id, ())),
            hours_worked=round_hours(hours),
            estimated_revenue=round_money(revenue),
            internal_cost=round_money(cost),
            estimated_profit=round_money(profit),
            profit_margin=percent(profit, revenue),
        ))

    results.sort(key=lambda m: (-m.estimated_revenue, m.technician_name))
    return results


def revenue_report(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
    default_chargeout_rate: float = DEFAULT_CHARGEOUT_RATE,
    default_internal_pay_rate: float = DEFAULT_INTERNAL_PAY_RATE,
) -> RevenueReport:
    """Revenue metrics plus totals; empty and flagged suppressed when total revenue is 0."""
    rows = revenue_metrics(data, filters, default_chargeout_rate, default_internal_pay_rate)

    total_revenue = sum(r.estimated_revenue for r in rows)
    if not total_revenue:
        return RevenueReport(suppressed=True)

    total_cost = sum(r.internal_cost for r in rows)
    total_profit = sum(r.estimated_profit for r in rows)
    per_ticket = [
        RevenuePerTicket(
            technician_id=r.technician_id,
            technician_name=r.technician_name,
            revenue_per_ticket=round_money(average(r.estimated_revenue, r.total_tickets)),
        )
        for r in rows
    ]
    per_ticket.sort(key=lambda r: (-r.revenue_per_ticket, r.technician_name))

    return RevenueReport(
        technicians=rows,
        total_revenue=round_money(total_revenue),
        total_cost=round_money(total_cost),
        total_profit=round_money(total_profit),
        total_tickets=sum(r.total_tickets for r in rows),
        profit_margin=percent(total_profit, total_revenue),
        revenue_per_ticket=per_ticket[:REVENUE_PER_TICKET_LIMIT],
    )


# ============== Service quality metrics ==============

@dataclass
class IssueCount:
    issue: str
    count: int


@dataclass
class MachineRepeatIssue:
    serial_number: str
    issue: str
    count: int


@dataclass
class ServiceQualityMetrics:
    total_tickets: int = 0
    closed_tickets: int = 0
    first_time_fix_rate: int = 0
    repeat_ticket_rate: int = 0
    avg_resolution_hours: float = 0.0
    top_issue_types: List[IssueCount] = field(default_factory=list)
    machines_with_repeat_issues: List[MachineRepeatIssue] = field(default_factory=list)


def service_quality_metrics(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> ServiceQualityMetrics:
    """
    First-time-fix and repeat rates over closed tickets.

    A closed ticket is a first-time fix when every machine on it has exactly
    one work log for the ticket and that log is complete (departure, work
    performed and outcome recorded). A closed ticket is a repeat when any
    of its machines appears on another ticket.
    """
    data = apply_filters(data, filters)

    logs_per_visit: Dict[tuple, list] = defaultdict(list)
    for log in data.work_logs:
        logs_per_visit[(log.ticket_id, log.machine_id)].append(log)

    tickets_per_machine = _tickets_by_machine(data.tickets)
    serials: Dict[str, str] = {m.id: m.serial_number for m in data.machines}
    for ticket in data.tickets:
        for machine in ticket.machines:
            serials.setdefault(machine.machine_id, machine.serial_number)

    metrics = ServiceQualityMetrics(total_tickets=len(data.tickets))
    first_time_fixes = 0
    repeats = 0
    resolution_total, resolution_count = 0.0, 0
    issue_counts: Dict[str, int] = defaultdict(int)

    for ticket in data.tickets:
        issue_counts[issue_label(ticket.issue_description)] += 1
        if not ticket.is_closed:
            continue

        metrics.closed_tickets += 1
        hours = resolution_hours(ticket)
        if hours is not None:
            resolution_total += hours
            resolution_count += 1

        if ticket.machines and all(
            len(logs_per_visit.get((ticket.id, m.machine_id), [])) == 1
            and logs_per_visit[(ticket.id, m.machine_id)][0].is_complete
            for m in ticket.machines
        ):
            first_time_fixes += 1

        if any(
            any(other.id != ticket.id for other in tickets_per_machine.get(m.machine_id, []))
            for m in ticket.machines
        ):
            repeats += 1

    metrics.first_time_fix_rate = percent(first_time_fixes, metrics.closed_tickets)
    metrics.repeat_ticket_rate = percent(repeats, metrics.closed_tickets)
    metrics.avg_resolution_hours = round_hours(average(resolution_total, resolution_count))

    top = sorted(issue_counts.items(), key=lambda item: (-item[1], item[0]))
    metrics.top_issue_types = [IssueCount(issue=i, count=c) for i, c in top[:TOP_ISSUE_LIMIT]]

    repeat_issues = []
    for machine_id, tickets in tickets_per_machine.items():
        for group in group_similar_issues(tickets):
            if len(group) >= 2:
                repeat_issues.append(MachineRepeatIssue(
                    serial_number=serials.get(machine_id, "Unknown"),
                    issue=issue_label(group[0].issue_description),
                    count=len(group),
                ))
    repeat_issues.sort(key=lambda r: (-r.count, r.serial_number, r.issue))
    metrics.machines_with_repeat_issues = repeat_issues[:REPEAT_MACHINE_LIMIT]
    return metrics


# ============== Inventory ==============

@dataclass
class LowStockPart:
    part_id: str
    name: str
    category: Optional[str]
    quantity_in_stock: float
    min_quantity: float
    shortfall: float


def low_stock_parts(
    data: ReportBaseData,
    filters: Optional[ReportFilters] = None,
) -> List[LowStockPart]:
    """Parts at or below their minimum quantity (parts without a minimum are never flagged)."""
    data = apply_filters(data, filters)

    results = [
        LowStockPart(
            part_id=part.id,
            name=part.name,
            category=part.category,
            quantity_in_stock=part.quantity_in_stock,
            min_quantity=part.min_quantity,
            shortfall=part.min_quantity - part.quantity_in_stock,
        )
        for part in data.parts
        if part.min_quantity > 0 and part.quantity_in_stock <= part.min_quantity
    ]
    results.sort(key=lambda p: (-p.shortfall, p.name))
    return results
