"""
Report Filter Engine

Narrows a ReportBaseData snapshot to the user's filter selection before
aggregation. Empty allow-lists mean "all"; with every field empty the
input is returned unchanged.
"""

from dataclasses import replace
from datetime import date
from typing import Dict, Optional

from app.models.records import (
    ReportBaseData,
    ReportMachine,
    ReportPart,
    ReportTicket,
    ReportWorkLog,
)
from app.models.schemas import ReportFilters
from app.reporting.normalize import parse_iso


def matches_date(value: Optional[str], start: Optional[date], end: Optional[date]) -> bool:
    """Inclusive whole-day range check on an ISO timestamp (UTC days)."""
    if start is None and end is None:
        return True
    parsed = parse_iso(value)
    if parsed is None:
        return False
    day = parsed.date()
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def log_date(log: ReportWorkLog, ticket: Optional[ReportTicket]) -> Optional[str]:
    """Date a work log is reported under: arrival, then departure, then ticket creation."""
    return log.arrival_time or log.departure_time or (ticket.created_at if ticket else None)


def log_customer_id(
    log: ReportWorkLog,
    ticket: Optional[ReportTicket],
    machines_by_id: Dict[str, ReportMachine],
) -> Optional[str]:
    """Customer owning the machine a log was recorded against."""
    machine = machines_by_id.get(log.machine_id)
    if machine is not None and machine.customer_id:
        return machine.customer_id
    if ticket is not None:
        for ticket_machine in ticket.machines:
            if ticket_machine.machine_id == log.machine_id and ticket_machine.customer_id:
                return ticket_machine.customer_id
    return None


class FilterEngine:
    """Applies one ReportFilters selection to snapshots of the same shape."""

    def __init__(self, filters: Optional[ReportFilters] = None):
        self.filters = filters or ReportFilters()

    @property
    def is_identity(self) -> bool:
        return self.filters.is_empty()

    # ------------------------------------------------------------------
    # Per-record predicates
    # ------------------------------------------------------------------

    def part_matches(self, part_name: str, category: Optional[str]) -> bool:
        f = self.filters
        if not f.filters_parts:
            return True
        if f.part_names and part_name in f.part_names:
            return True
        if f.part_categories and (category or "") in f.part_categories:
            return True
        return False

    def ticket_matches(self, ticket: ReportTicket) -> bool:
        f = self.filters
        if not matches_date(ticket.created_at, f.start_date, f.end_date):
            return False
        if f.statuses and ticket.status not in f.statuses:
            return False
        if f.technician_ids and ticket.assigned_to not in f.technician_ids:
            return False
        if f.customer_ids and not any(c in f.customer_ids for c in ticket.customer_ids):
            return False
        return True

    def work_log_matches(
        self,
        log: ReportWorkLog,
        ticket: Optional[ReportTicket],
        machines_by_id: Dict[str, ReportMachine],
        part_categories: Dict[str, Optional[str]],
    ) -> bool:
        f = self.filters
        if not matches_date(log_date(log, ticket), f.start_date, f.end_date):
            return False
        if f.statuses and (ticket is None or ticket.status not in f.statuses):
            return False
        if f.technician_ids and log.recorded_by not in f.technician_ids:
            return False
        if f.customer_ids and log_customer_id(log, ticket, machines_by_id) not in f.customer_ids:
            return False
        if f.filters_parts:
            if not any(self.part_matches(p.part_name, part_categories.get(p.part_name)) for p in log.parts_used):
                return False
        return True

    # ------------------------------------------------------------------
    # Whole snapshot
    # ------------------------------------------------------------------

    def apply(self, data: ReportBaseData) -> ReportBaseData:
        if self.is_identity:
            return data

        f = self.filters
        tickets_by_id = {t.id: t for t in data.tickets}
        machines_by_id = {m.id: m for m in data.machines}
        part_categories = {p.name: p.category for p in data.parts}

        tickets = tuple(t for t in data.tickets if self.ticket_matches(t))
        work_logs = tuple(
            log for log in data.work_logs
            if self.work_log_matches(log, tickets_by_id.get(log.ticket_id), machines_by_id, part_categories)
        )

        customers = data.customers
        machines = data.machines
        if f.customer_ids:
            customers = tuple(c for c in data.customers if c.id in f.customer_ids)
            machines = tuple(m for m in data.machines if m.customer_id in f.customer_ids)

        technicians = data.technicians
        if f.technician_ids:
            technicians = tuple(t for t in data.technicians if t.id in f.technician_ids)

        parts = data.parts
        if f.filters_parts:
            parts = tuple(p for p in data.parts if self._part_record_matches(p))

        return replace(
            data,
            tickets=tickets,
            work_logs=work_logs,
            customers=customers,
            machines=machines,
            technicians=technicians,
            parts=parts,
        )

    def _part_record_matches(self, part: ReportPart) -> bool:
        return self.part_matches(part.name, part.category)


def apply_filters(data: ReportBaseData, filters: Optional[ReportFilters] = None) -> ReportBaseData:
    """Filter a snapshot; identity when filters are absent or empty."""
    return FilterEngine(filters).apply(data)
