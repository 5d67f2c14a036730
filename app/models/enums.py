"""
Service Desk Status Codes and Enums

Standardized constants for values stored in the hosted database.
"""

from enum import IntEnum, Enum
from typing import Optional


class TicketStatus(str, Enum):
    """Ticket lifecycle: Open -> Assigned -> Closed"""
    OPEN = "Open"
    ASSIGNED = "Assigned"
    CLOSED = "Closed"

    @classmethod
    def parse(cls, value) -> Optional["TicketStatus"]:
        """Match a stored status string case-insensitively"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        for status in cls:
            if status.value.lower() == lowered:
                return status
        return None


class TicketPriority(IntEnum):
    """Machine priority on a ticket, ordered so max() picks the most urgent"""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    URGENT = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @classmethod
    def from_label(cls, value) -> Optional["TicketPriority"]:
        """Parse 'Urgent' / 'high' / ... into a priority, None when unknown"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        return cls.__members__.get(value.strip().upper())


class MachineType(str, Enum):
    """Machine categories serviced by the business"""
    CRESCENDO = "Crescendo"
    ESPRESSO = "Espresso"
    GRINDER = "Grinder"
    OTHER = "Other"

    @classmethod
    def parse(cls, value) -> "MachineType":
        if isinstance(value, str):
            for machine_type in cls:
                if machine_type.value.lower() == value.strip().lower():
                    return machine_type
        return cls.OTHER


class UserRole(str, Enum):
    """Application user roles"""
    ADMIN = "admin"
    CALL_ADMIN = "call_admin"
    TECHNICIAN = "technician"
    MANAGEMENT = "management"


class EquipmentStatus(str, Enum):
    """Machine health classification"""
    HEALTHY = "Healthy"
    AT_RISK = "At Risk"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        """Sort rank, most severe first"""
        return {"Critical": 0, "At Risk": 1, "Healthy": 2}[self.value]


class EntityType(str, Enum):
    """Entity types whose writes invalidate cached reports"""
    CUSTOMER = "customer"
    MACHINE = "machine"
    PART = "part"
    USER = "user"
    TICKET = "ticket"
    WORK_LOG = "work_log"
