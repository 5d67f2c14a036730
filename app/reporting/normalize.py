"""
Record Normalization

Parse/validate boundary between raw Supabase rows and the strict
report records in app.models.records.

Rules:
- Date-like values become ISO-8601 UTC strings, or None when absent/invalid
- Optional numbers default to None/zero, never raise
- Rows that are not mappings or lack an id are rejected (None) by the parsers
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from app.models.enums import MachineType, TicketPriority, TicketStatus
from app.models.records import (
    ReportCustomer,
    ReportMachine,
    ReportPart,
    ReportTechnician,
    ReportTicket,
    ReportTicketMachine,
    ReportWorkLog,
    ReportWorkLogPart,
)

logger = logging.getLogger(__name__)

# Accepts 1-6 digit fractional seconds on every supported Python
_DATETIME = TypeAdapter(datetime)


def _parse_datetime_text(text: str) -> Optional[datetime]:
    try:
        return _DATETIME.validate_python(text)
    except ValidationError:
        return None


UNKNOWN = "Unknown"


# ============== Scalar helpers ==============

def _field(row: Mapping, *names: str) -> Any:
    """First non-None value among column names (snake_case first, legacy camelCase after)."""
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    return None


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Safely convert value to float."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (ValueError, TypeError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def to_iso_string(value: Any) -> Optional[str]:
    """
    Convert a date-like value to an ISO-8601 UTC string.

    Accepts datetime/date objects, ISO strings (including a trailing 'Z'),
    and epoch milliseconds. Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None

    parsed: Optional[datetime] = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        parsed = _parse_datetime_text(text)
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Inverse of to_iso_string for already-normalized values."""
    if not value or not isinstance(value, str):
        return None
    parsed = _parse_datetime_text(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hours_between(start: Optional[str], end: Optional[str]) -> Optional[float]:
    """Elapsed hours from start to end, None when either side is missing."""
    start_dt = parse_iso(start)
    end_dt = parse_iso(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt).total_seconds() / 3600


# ============== Entity parsers ==============

def _row_id(row: Any) -> Optional[str]:
    if not isinstance(row, Mapping):
        return None
    return _to_text(row.get("id"))


def parse_ticket_machine(raw: Any) -> Optional[ReportTicketMachine]:
    if not isinstance(raw, Mapping):
        return None
    machine_id = _to_text(_field(raw, "machine_id", "machineId"))
    if not machine_id:
        return None
    return ReportTicketMachine(
        machine_id=machine_id,
        customer_id=_to_text(_field(raw, "customer_id", "customerId")) or "",
        customer_name=_to_text(_field(raw, "customer_name", "customerName")) or UNKNOWN,
        machine_type=_to_text(_field(raw, "machine_type", "machineType")) or UNKNOWN,
        serial_number=_to_text(_field(raw, "serial_number", "serialNumber")) or UNKNOWN,
        priority=TicketPriority.from_label(raw.get("priority")),
    )


def parse_ticket(row: Any) -> Optional[ReportTicket]:
    ticket_id = _row_id(row)
    if not ticket_id:
        return None

    raw_status = row.get("status")
    status = TicketStatus.parse(raw_status)
    if status is None:
        if raw_status is not None:
            logger.warning(f"[Normalize] Ticket {ticket_id} has unknown status {raw_status!r}, treating as Open")
        status = TicketStatus.OPEN

    raw_machines = row.get("machines")
    machines = []
    if isinstance(raw_machines, list):
        for raw in raw_machines:
            machine = parse_ticket_machine(raw)
            if machine is not None:
                machines.append(machine)

    assigned_to = _to_text(_field(row, "assigned_to", "assignedTo"))
    assigned_at = to_iso_string(_field(row, "assigned_at", "assignedAt"))
    if assigned_at is None and assigned_to and status != TicketStatus.OPEN:
        # Older rows only carry updated_at at assignment time
        assigned_at = to_iso_string(_field(row, "updated_at", "updatedAt"))

    # closed_at is only meaningful for Closed tickets
    closed_at = to_iso_string(_field(row, "closed_at", "closedAt"))
    if status != TicketStatus.CLOSED:
        closed_at = None

    return ReportTicket(
        id=ticket_id,
        ticket_number=_to_text(_field(row, "ticket_number", "ticketNumber")) or "",
        status=status,
        created_at=to_iso_string(_field(row, "created_at", "createdAt")),
        closed_at=closed_at,
        assigned_at=assigned_at,
        assigned_to=assigned_to,
        assigned_to_name=_to_text(_field(row, "assigned_to_name", "assignedToName")),
        issue_description=_to_text(_field(row, "issue_description", "issueDescription")),
        created_by=_to_text(_field(row, "created_by", "createdBy")),
        machines=tuple(machines),
    )


def parse_work_log_part(raw: Any) -> Optional[ReportWorkLogPart]:
    if not isinstance(raw, Mapping):
        return None
    name = _to_text(_field(raw, "part_name", "partName"))
    part_id = _to_text(_field(raw, "part_id", "partId")) or ""
    if not name and not part_id:
        return None
    quantity = _to_float(raw.get("quantity"))
    if quantity is None or quantity <= 0:
        quantity = 1
    return ReportWorkLogPart(part_id=part_id, part_name=name or UNKNOWN, quantity=quantity)


def parse_work_log(row: Any) -> Optional[ReportWorkLog]:
    log_id = _row_id(row)
    if not log_id:
        return None

    hours = _to_float(_field(row, "hours_worked", "hoursWorked"))
    if hours is not None and hours < 0:
        logger.warning(f"[Normalize] Work log {log_id} has negative hours ({hours}), ignoring")
        hours = None

    raw_parts = _field(row, "parts_used", "partsUsed")
    parts = []
    if isinstance(raw_parts, list):
        for raw in raw_parts:
            part = parse_work_log_part(raw)
            if part is not None:
                parts.append(part)

    return ReportWorkLog(
        id=log_id,
        ticket_id=_to_text(_field(row, "ticket_id", "ticketId")) or "",
        machine_id=_to_text(_field(row, "machine_id", "machineId")) or "",
        recorded_by=_to_text(_field(row, "recorded_by", "recordedBy")),
        arrival_time=to_iso_string(_field(row, "arrival_time", "arrivalTime")),
        departure_time=to_iso_string(_field(row, "departure_time", "departureTime")),
        hours_worked=hours,
        work_performed=_to_text(_field(row, "work_performed", "workPerformed")),
        outcome=_to_text(row.get("outcome")),
        repairs=_to_text(row.get("repairs")),
        parts_used=tuple(parts),
    )


def parse_customer(row: Any) -> Optional[ReportCustomer]:
    customer_id = _row_id(row)
    if not customer_id:
        return None
    return ReportCustomer(
        id=customer_id,
        company_name=_to_text(_field(row, "company_name", "companyName")) or UNKNOWN,
        enabled=not _to_bool(_field(row, "is_disabled", "isDisabled")),
    )


def parse_machine(row: Any) -> Optional[ReportMachine]:
    machine_id = _row_id(row)
    if not machine_id:
        return None
    return ReportMachine(
        id=machine_id,
        customer_id=_to_text(_field(row, "customer_id", "customerId")),
        type=MachineType.parse(row.get("type")),
        serial_number=_to_text(_field(row, "serial_number", "serialNumber")) or UNKNOWN,
    )


def parse_technician(row: Any) -> Optional[ReportTechnician]:
    user_id = _row_id(row)
    if not user_id:
        return None
    return ReportTechnician(
        id=user_id,
        name=_to_text(row.get("name")) or UNKNOWN,
        enabled=not _to_bool(row.get("disabled")),
        chargeout_rate=_to_float(_field(row, "chargeout_rate", "chargeoutRate")),
        internal_pay_rate=_to_float(_field(row, "internal_pay_rate", "internalPayRate")),
    )


def parse_part(row: Any) -> Optional[ReportPart]:
    part_id = _row_id(row)
    if not part_id:
        return None
    return ReportPart(
        id=part_id,
        name=_to_text(row.get("name")) or UNKNOWN,
        category=_to_text(row.get("category")),
        quantity_in_stock=_to_float(_field(row, "quantity_in_stock", "quantityInStock"), 0.0),
        min_quantity=_to_float(_field(row, "min_quantity", "minQuantity"), 0.0),
    )


def parse_rows(rows: Any, parser, entity: str) -> Tuple:
    """Apply a parser to every row, skipping (and logging) rejected rows."""
    if not isinstance(rows, list):
        return ()
    parsed: List = []
    skipped = 0
    for row in rows:
        record = parser(row)
        if record is None:
            skipped += 1
            continue
        parsed.append(record)
    if skipped:
        logger.warning(f"[Normalize] Skipped {skipped} malformed {entity} row(s)")
    return tuple(parsed)
