"""
Normalized Report Records

Strict internal types produced by app.reporting.normalize.
Every downstream aggregator works on these only, never on raw rows.
Dates are ISO-8601 strings (UTC) or None.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from app.models.enums import MachineType, TicketPriority, TicketStatus


@dataclass(frozen=True)
class ReportTicketMachine:
    """Machine reference embedded in a ticket (denormalized display fields)"""
    machine_id: str
    customer_id: str
    customer_name: str = "Unknown"
    machine_type: str = "Unknown"
    serial_number: str = "Unknown"
    priority: Optional[TicketPriority] = None


@dataclass(frozen=True)
class ReportTicket:
    id: str
    ticket_number: str
    status: TicketStatus
    created_at: Optional[str] = None
    closed_at: Optional[str] = None
    assigned_at: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_to_name: Optional[str] = None
    issue_description: Optional[str] = None
    created_by: Optional[str] = None
    machines: Tuple[ReportTicketMachine, ...] = ()

    @property
    def is_closed(self) -> bool:
        return self.status == TicketStatus.CLOSED

    @property
    def highest_priority(self) -> Optional[TicketPriority]:
        """Most urgent priority across the ticket's machines"""
        priorities = [m.priority for m in self.machines if m.priority is not None]
        return max(priorities) if priorities else None

    @property
    def customer_ids(self) -> Tuple[str, ...]:
        seen = []
        for machine in self.machines:
            if machine.customer_id and machine.customer_id not in seen:
                seen.append(machine.customer_id)
        return tuple(seen)


@dataclass(frozen=True)
class ReportWorkLogPart:
    part_id: str
    part_name: str
    quantity: float = 1


@dataclass(frozen=True)
class ReportWorkLog:
    id: str
    ticket_id: str
    machine_id: str
    recorded_by: Optional[str] = None
    arrival_time: Optional[str] = None
    departure_time: Optional[str] = None
    hours_worked: Optional[float] = None
    work_performed: Optional[str] = None
    outcome: Optional[str] = None
    repairs: Optional[str] = None
    parts_used: Tuple[ReportWorkLogPart, ...] = ()

    @property
    def is_complete(self) -> bool:
        """Technician left site with the work and its outcome recorded"""
        return bool(self.departure_time and self.work_performed and self.outcome)


@dataclass(frozen=True)
class ReportCustomer:
    id: str
    company_name: str
    enabled: bool = True


@dataclass(frozen=True)
class ReportMachine:
    id: str
    customer_id: Optional[str]
    type: MachineType = MachineType.OTHER
    serial_number: str = "Unknown"


@dataclass(frozen=True)
class ReportTechnician:
    id: str
    name: str
    enabled: bool = True
    chargeout_rate: Optional[float] = None
    internal_pay_rate: Optional[float] = None


@dataclass(frozen=True)
class ReportPart:
    id: str
    name: str
    category: Optional[str] = None
    quantity_in_stock: float = 0
    min_quantity: float = 0


@dataclass(frozen=True)
class ReportBaseData:
    """The six collections every report is computed from"""
    tickets: Tuple[ReportTicket, ...] = field(default_factory=tuple)
    work_logs: Tuple[ReportWorkLog, ...] = field(default_factory=tuple)
    customers: Tuple[ReportCustomer, ...] = field(default_factory=tuple)
    machines: Tuple[ReportMachine, ...] = field(default_factory=tuple)
    technicians: Tuple[ReportTechnician, ...] = field(default_factory=tuple)
    parts: Tuple[ReportPart, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller; role is None when no profile row exists"""
    id: str
    role: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    enabled: bool = True
