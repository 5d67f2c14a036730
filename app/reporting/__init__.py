"""
Service Desk Reporting Module

Loads tickets, work logs and reference data from Supabase, computes
management reports and caches them behind tag-invalidated keys.
"""

from .cache import CachePolicy, MemoryCacheStore, ReportCache
from .errors import DataLoadError, ReportError, UnauthorizedError
from .filters import FilterEngine, apply_filters
from .loader import ReportDataLoader
from .results import ReportResult, to_dict
from .service import ReportService
from .tags import CacheTag, invalidate_entity, tags_for_entity

__all__ = [
    "CachePolicy",
    "MemoryCacheStore",
    "ReportCache",
    "DataLoadError",
    "ReportError",
    "UnauthorizedError",
    "FilterEngine",
    "apply_filters",
    "ReportDataLoader",
    "ReportResult",
    "to_dict",
    "ReportService",
    "CacheTag",
    "invalidate_entity",
    "tags_for_entity",
]
