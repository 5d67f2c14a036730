"""
Pydantic Models for Request Validation
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.models.enums import TicketStatus


# Report Filter Models
class ReportFilters(BaseModel):
    """
    User-selected report filters.

    An empty allow-list means "no restriction", not "match nothing".
    Dates are inclusive whole days.
    """
    start_date: Optional[date] = Field(None, description="First day included (YYYY-MM-DD)")
    end_date: Optional[date] = Field(None, description="Last day included (YYYY-MM-DD)")
    statuses: List[TicketStatus] = Field(default_factory=list)
    technician_ids: List[str] = Field(default_factory=list)
    customer_ids: List[str] = Field(default_factory=list)
    part_names: List[str] = Field(default_factory=list)
    part_categories: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when no filter field restricts anything"""
        return (
            self.start_date is None
            and self.end_date is None
            and not self.statuses
            and not self.technician_ids
            and not self.customer_ids
            and not self.part_names
            and not self.part_categories
        )

    @property
    def filters_parts(self) -> bool:
        return bool(self.part_names or self.part_categories)

    def cache_key(self) -> str:
        """Stable key fragment; list order does not matter"""
        if self.is_empty():
            return "all"
        parts = [
            f"start={self.start_date.isoformat() if self.start_date else ''}",
            f"end={self.end_date.isoformat() if self.end_date else ''}",
            "statuses=" + ",".join(sorted(s.value for s in self.statuses)),
            "techs=" + ",".join(sorted(self.technician_ids)),
            "customers=" + ",".join(sorted(self.customer_ids)),
            "parts=" + ",".join(sorted(self.part_names)),
            "categories=" + ",".join(sorted(self.part_categories)),
        ]
        return "|".join(parts)


# Cache Invalidation Models
class RevalidateRequest(BaseModel):
    """Request to clear cached computations by tag"""
    tags: List[str] = Field(..., min_length=1, description="Cache tags to invalidate")


class EntityInvalidationRequest(BaseModel):
    """Optional scope for an entity write notification"""
    ticket_id: Optional[str] = Field(None, description="Parent ticket for work log writes")


class SupabaseWebhookPayload(BaseModel):
    """Supabase database webhook body (INSERT / UPDATE / DELETE)"""
    type: str
    table: str
    schema_name: Optional[str] = Field(None, alias="schema")
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    model_config = {"populate_by_name": True}
