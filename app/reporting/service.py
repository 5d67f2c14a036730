"""
Report Service

Entry point for every report read and cache invalidation:
- Role gate runs before any store access
- Base data is cached indefinitely under every data tag
- Each report result is cached per (report, filters) under the tags of
  the data it reads; filtered and daily variants expire after a TTL
- Per-ticket work log lookups use a short TTL

Callers always get a ReportResult back; load failures never escape.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, Iterable, Optional, Tuple

from app.config import Settings
from app.models.enums import EntityType
from app.models.records import CurrentUser, ReportBaseData
from app.models.schemas import ReportFilters
from app.reporting import metrics, time_reports
from app.reporting.cache import CachePolicy, ReportCache
from app.reporting.errors import DataLoadError, UnauthorizedError
from app.reporting.loader import ReportDataLoader
from app.reporting.results import ReportResult
from app.reporting.tags import CacheTag, invalidate_entity

logger = logging.getLogger(__name__)

BASE_DATA_KEY = "report-base-data"
BASE_DATA_TAGS = (
    CacheTag.REPORTS,
    CacheTag.TICKETS,
    CacheTag.WORK_LOGS,
    CacheTag.CUSTOMERS,
    CacheTag.MACHINES,
    CacheTag.TECHNICIANS,
    CacheTag.PARTS,
)

# Work log filters look up the parent ticket, the machine owner and part categories
_LOG_TAGS = (CacheTag.WORK_LOGS, CacheTag.TICKETS, CacheTag.MACHINES, CacheTag.PARTS)


@dataclass(frozen=True)
class ReportDefinition:
    """A named report: how to compute it and which data it reads"""
    name: str
    compute: Callable[[ReportBaseData, ReportFilters], object]
    tags: Tuple[str, ...]
    daily: bool = False
    options: Tuple[str, ...] = ()
    validate: Optional[Callable[..., None]] = None


class ReportService:
    """Role-gated, cached report access"""

    def __init__(
        self,
        loader: ReportDataLoader,
        cache: ReportCache,
        settings: Settings,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.loader = loader
        self.cache = cache
        self.settings = settings
        self._now = now
        self.reports: Dict[str, ReportDefinition] = {r.name: r for r in self._definitions()}

    def _definitions(self) -> Iterable[ReportDefinition]:
        s = self.settings
        base = (CacheTag.REPORTS,)
        return (
            # Aging depends on today's date, so ticket metrics are keyed per day
            ReportDefinition(
                "tickets",
                lambda data, f: metrics.ticket_metrics(
                    data, f, now=self._now(), aging_threshold_days=s.aging_threshold_days
                ),
                base + (CacheTag.TICKETS,),
                daily=True,
            ),
            ReportDefinition(
                "technicians",
                metrics.technician_metrics,
                base + (CacheTag.TICKETS, CacheTag.TECHNICIANS),
            ),
            ReportDefinition(
                "customers",
                metrics.customer_metrics,
                base + (CacheTag.TICKETS, CacheTag.CUSTOMERS, CacheTag.MACHINES),
            ),
            ReportDefinition(
                "equipment",
                metrics.equipment_metrics,
                base + _LOG_TAGS + (CacheTag.CUSTOMERS,),
            ),
            ReportDefinition(
                "revenue",
                partial(
                    metrics.revenue_report,
                    default_chargeout_rate=s.default_chargeout_rate,
                    default_internal_pay_rate=s.default_internal_pay_rate,
                ),
                base + _LOG_TAGS + (CacheTag.TECHNICIANS,),
            ),
            ReportDefinition(
                "service-quality",
                metrics.service_quality_metrics,
                base + _LOG_TAGS,
            ),
            ReportDefinition(
                "time-by-customer",
                time_reports.time_by_customer,
                base + _LOG_TAGS + (CacheTag.CUSTOMERS, CacheTag.TECHNICIANS),
            ),
            ReportDefinition(
                "time-by-technician",
                time_reports.time_by_technician,
                base + _LOG_TAGS + (CacheTag.CUSTOMERS, CacheTag.TECHNICIANS),
            ),
            ReportDefinition(
                "machine-health",
                time_reports.machine_health,
                base + _LOG_TAGS + (CacheTag.CUSTOMERS,),
                options=("threshold",),
                validate=time_reports.validate_threshold,
            ),
            ReportDefinition(
                "low-stock-parts",
                metrics.low_stock_parts,
                base + (CacheTag.PARTS,),
            ),
        )

    # ============== Access ==============

    @staticmethod
    def is_authorized(user: Optional[CurrentUser], roles: Iterable[str]) -> bool:
        return bool(user and user.enabled and user.role and user.role in roles)

    def authorize(self, user: Optional[CurrentUser], roles: Iterable[str]) -> CurrentUser:
        """Raises UnauthorizedError unless the user is enabled and holds one of the roles"""
        roles = tuple(roles)
        if not self.is_authorized(user, roles):
            raise UnauthorizedError(f"{user.id if user else 'anonymous'} lacks one of {list(roles)}")
        return user

    # ============== Reads ==============

    async def _base_data(self) -> ReportBaseData:
        return await self.cache.get_or_compute(
            BASE_DATA_KEY, BASE_DATA_TAGS, CachePolicy.INDEFINITE, self.loader.load
        )

    async def get_base_data(self, user: Optional[CurrentUser]) -> ReportResult:
        """Normalized snapshot of all report collections."""
        try:
            self.authorize(user, self.settings.report_roles)
        except UnauthorizedError as e:
            logger.warning(f"[Reports] Denied base data: {e}")
            return ReportResult.denied()
        try:
            return ReportResult.ok(await self._base_data())
        except DataLoadError as e:
            return ReportResult.failure(e.message)

    def report_key(self, definition: ReportDefinition, filters: ReportFilters, options: Dict) -> str:
        parts = [definition.name]
        if definition.daily:
            parts.append(self._now().date().isoformat())
        parts.extend(f"{k}={options[k]}" for k in sorted(options))
        parts.append(filters.cache_key())
        return ":".join(parts)

    def report_policy(self, definition: ReportDefinition, filters: ReportFilters, options: Dict) -> CachePolicy:
        """Unfiltered reports live until revalidated; filtered, optioned and daily variants expire."""
        if definition.daily or options or not filters.is_empty():
            return CachePolicy.ttl(self.settings.filtered_report_cache_ttl_seconds)
        return CachePolicy.INDEFINITE

    async def get_report(
        self,
        name: str,
        user: Optional[CurrentUser],
        filters: Optional[ReportFilters] = None,
        **options,
    ) -> ReportResult:
        """
        Compute (or serve from cache) one named report.

        Args:
            name: Report name, e.g. "tickets", "revenue", "machine-health"
            user: Caller; must hold one of the report roles
            filters: Optional filter selection
            options: Extra report arguments (e.g. threshold), part of the cache key

        Raises:
            KeyError for an unknown report name
        """
        definition = self.reports[name]
        try:
            self.authorize(user, self.settings.report_roles)
        except UnauthorizedError as e:
            logger.warning(f"[Reports] Denied {name}: {e}")
            return ReportResult.denied()

        unknown = sorted(set(options) - set(definition.options))
        if unknown:
            return ReportResult.failure(f"Unknown option for {name}: {', '.join(unknown)}")
        if definition.validate is not None:
            try:
                definition.validate(**options)
            except ValueError as e:
                return ReportResult.failure(str(e))

        filters = filters or ReportFilters()

        async def compute():
            data = await self._base_data()
            return definition.compute(data, filters, **options)

        try:
            value = await self.cache.get_or_compute(
                self.report_key(definition, filters, options),
                definition.tags,
                self.report_policy(definition, filters, options),
                compute,
            )
        except DataLoadError as e:
            logger.error(f"[Reports] {name} failed: {e.message}")
            return ReportResult.failure(e.message)
        return ReportResult.ok(value)

    async def get_work_logs(self, ticket_id: str, user: Optional[CurrentUser]) -> ReportResult:
        """Work logs for one ticket, cached for a short TTL."""
        try:
            self.authorize(user, self.settings.work_log_roles)
        except UnauthorizedError:
            return ReportResult.denied()
        try:
            logs = await self.cache.get_or_compute(
                CacheTag.work_logs_for_ticket(ticket_id),
                (CacheTag.WORK_LOGS, CacheTag.work_logs_for_ticket(ticket_id)),
                CachePolicy.ttl(self.settings.work_log_cache_ttl_seconds),
                lambda: self.loader.load_work_logs_for_ticket(ticket_id),
            )
        except DataLoadError as e:
            return ReportResult.failure(e.message)
        return ReportResult.ok(list(logs))

    # ============== Invalidation ==============

    def revalidate(self, tags: Iterable[str]) -> int:
        return self.cache.revalidate(tags)

    def invalidate_entity(self, entity: EntityType, ticket_id: Optional[str] = None) -> int:
        return invalidate_entity(self.cache, entity, ticket_id)
