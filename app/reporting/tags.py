"""
Cache Tags and Entity Registry

Each entity type declares, once, the cache tags its writes affect.
Mutation paths call invalidate_entity() instead of listing tags by hand,
so a new report only has to register under the right tags.
"""

import logging
from typing import Dict, Optional, Tuple

from app.models.enums import EntityType
from app.reporting.cache import ReportCache

logger = logging.getLogger(__name__)


class CacheTag:
    """Cache tags for different data types"""
    REPORTS = "reports"
    TICKETS = "tickets"
    WORK_LOGS = "work-logs"
    CUSTOMERS = "customers"
    MACHINES = "machines"
    TECHNICIANS = "technicians"
    PARTS = "parts"

    @classmethod
    def all(cls) -> Tuple[str, ...]:
        return (
            cls.REPORTS,
            cls.TICKETS,
            cls.WORK_LOGS,
            cls.CUSTOMERS,
            cls.MACHINES,
            cls.TECHNICIANS,
            cls.PARTS,
        )

    @classmethod
    def work_logs_for_ticket(cls, ticket_id: str) -> str:
        return f"{cls.WORK_LOGS}-{ticket_id}"


# Every entity write also clears REPORTS, the umbrella tag of all metric results
ENTITY_TAGS: Dict[EntityType, Tuple[str, ...]] = {
    EntityType.CUSTOMER: (CacheTag.CUSTOMERS, CacheTag.REPORTS),
    EntityType.MACHINE: (CacheTag.MACHINES, CacheTag.REPORTS),
    EntityType.PART: (CacheTag.PARTS, CacheTag.REPORTS),
    EntityType.USER: (CacheTag.TECHNICIANS, CacheTag.REPORTS),
    EntityType.TICKET: (CacheTag.TICKETS, CacheTag.TECHNICIANS, CacheTag.REPORTS),
    EntityType.WORK_LOG: (CacheTag.WORK_LOGS, CacheTag.REPORTS),
}

# Supabase table name -> entity, for database webhooks
TABLE_ENTITIES: Dict[str, EntityType] = {
    "customers": EntityType.CUSTOMER,
    "machines": EntityType.MACHINE,
    "parts": EntityType.PART,
    "users": EntityType.USER,
    "tickets": EntityType.TICKET,
    "machine_work_logs": EntityType.WORK_LOG,
    "work_logs": EntityType.WORK_LOG,
}


def tags_for_entity(entity: EntityType, ticket_id: Optional[str] = None) -> Tuple[str, ...]:
    """All tags a write to this entity must invalidate."""
    tags = ENTITY_TAGS[EntityType(entity)]
    if ticket_id and EntityType(entity) in (EntityType.WORK_LOG, EntityType.TICKET):
        tags = tags + (CacheTag.work_logs_for_ticket(ticket_id),)
    return tags


def entity_for_table(table: str) -> Optional[EntityType]:
    return TABLE_ENTITIES.get(table)


def invalidate_entity(cache: ReportCache, entity: EntityType, ticket_id: Optional[str] = None) -> int:
    """
    Invalidate everything a write to `entity` can make stale.

    Args:
        cache: Shared ReportCache
        entity: Entity type that was written
        ticket_id: Parent ticket for work log/ticket writes (clears its log lookup)

    Returns:
        Number of cache entries removed
    """
    tags = tags_for_entity(entity, ticket_id)
    logger.info(f"[CacheTags] {EntityType(entity).value} write -> {list(tags)}")
    return cache.revalidate(tags)
