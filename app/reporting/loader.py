"""
Report Data Loader

Reads the six report collections from Supabase and normalizes them into a
ReportBaseData snapshot.

The supabase-py client is synchronous, so each table read runs in a worker
thread and the six reads are gathered concurrently. A failure on any read
fails the whole load; partial snapshots are never returned.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from app.config import Settings
from app.models.enums import UserRole
from app.models.records import ReportBaseData, ReportWorkLog
from app.reporting.errors import DataLoadError
from app.reporting.normalize import (
    parse_customer,
    parse_machine,
    parse_part,
    parse_rows,
    parse_technician,
    parse_ticket,
    parse_work_log,
)

logger = logging.getLogger(__name__)

# PostgREST caps a single response; larger tables are read in pages
PAGE_SIZE = 1000


class ReportDataLoader:
    """Loads report collections through an injected Supabase client"""

    def __init__(self, client: Any, settings: Settings, page_size: int = PAGE_SIZE):
        self.client = client
        self.settings = settings
        self.page_size = page_size

    def _select_all(self, table: str, eq: Optional[Tuple[str, Any]] = None) -> List[Dict]:
        """Read every row of a table (optionally where column == value)."""
        rows: List[Dict] = []
        start = 0
        while True:
            query = self.client.table(table).select("*")
            if eq is not None:
                query = query.eq(eq[0], eq[1])
            # Pages are only stable under a total order
            result = query.order("id").range(start, start + self.page_size - 1).execute()
            page = result.data or []
            rows.extend(page)
            if len(page) < self.page_size:
                return rows
            start += self.page_size

    async def _read(self, table: str, eq: Optional[Tuple[str, Any]] = None) -> List[Dict]:
        try:
            return await asyncio.to_thread(self._select_all, table, eq)
        except Exception as e:
            logger.error(f"[Loader] Error reading {table}: {e}")
            raise DataLoadError(f"Failed to load {table}: {e}", table=table) from e

    async def load(self) -> ReportBaseData:
        """
        Load and normalize all six collections.

        Returns:
            ReportBaseData snapshot

        Raises:
            DataLoadError if any table read fails
        """
        s = self.settings
        results = await asyncio.gather(
            self._read(s.tickets_table),
            self._read(s.work_logs_table),
            self._read(s.customers_table),
            self._read(s.machines_table),
            self._read(s.users_table, ("role", UserRole.TECHNICIAN.value)),
            self._read(s.parts_table),
            return_exceptions=True,
        )

        # Surface the first failure only after every read has settled
        for result in results:
            if isinstance(result, BaseException):
                raise result

        tickets, work_logs, customers, machines, technicians, parts = results
        data = ReportBaseData(
            tickets=parse_rows(tickets, parse_ticket, "ticket"),
            work_logs=parse_rows(work_logs, parse_work_log, "work log"),
            customers=parse_rows(customers, parse_customer, "customer"),
            machines=parse_rows(machines, parse_machine, "machine"),
            technicians=parse_rows(technicians, parse_technician, "technician"),
            parts=parse_rows(parts, parse_part, "part"),
        )

        logger.info(
            f"[Loader] Loaded {len(data.tickets)} tickets, {len(data.work_logs)} work logs, "
            f"{len(data.customers)} customers, {len(data.machines)} machines, "
            f"{len(data.technicians)} technicians, {len(data.parts)} parts"
        )
        return data

    async def load_work_logs_for_ticket(self, ticket_id: str) -> Tuple[ReportWorkLog, ...]:
        """Work logs recorded against one ticket, newest arrival first."""
        rows = await self._read(self.settings.work_logs_table, ("ticket_id", ticket_id))
        logs = parse_rows(rows, parse_work_log, "work log")
        dated = sorted((l for l in logs if l.arrival_time), key=lambda l: l.arrival_time, reverse=True)
        return tuple(dated) + tuple(l for l in logs if not l.arrival_time)
