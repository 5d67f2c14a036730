"""
Report Results

ReportResult is what the service layer hands to callers: it never raises.
to_dict turns metric dataclasses into JSON-ready dictionaries.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


def to_dict(obj) -> Any:
    """Convert dataclass (or nested containers of them) for JSON serialization."""
    if hasattr(obj, '__dataclass_fields__'):
        result = {}
        for field_name in obj.__dataclass_fields__:
            result[field_name] = to_dict(getattr(obj, field_name))
        return result
    if isinstance(obj, (list, tuple)):
        return [to_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k.value if isinstance(k, Enum) else k): to_dict(v) for k, v in obj.items()}
    if isinstance(obj, Enum):
        return obj.value if not isinstance(obj.value, int) else obj.name.capitalize()
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


@dataclass
class ReportResult:
    """Outcome of a report request"""
    success: bool
    data: Any = None
    error: Optional[str] = None
    unauthorized: bool = False

    @classmethod
    def ok(cls, data: Any) -> "ReportResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, message: str) -> "ReportResult":
        return cls(success=False, error=message)

    @classmethod
    def denied(cls) -> "ReportResult":
        return cls(success=False, error="Unauthorized", unauthorized=True)

    def to_response(self) -> dict:
        if self.success:
            return {"success": True, "data": to_dict(self.data)}
        return {"success": False, "error": self.error}
