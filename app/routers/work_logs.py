"""
Work Logs Router

Per-ticket work log lookup (short TTL cache).
"""

from fastapi import APIRouter, Depends

from app.models.records import CurrentUser
from app.reporting.service import ReportService
from app.routers.reports import get_report_service, respond
from app.services.auth import require_user

router = APIRouter()


@router.get("/{ticket_id}/work-logs")
async def get_ticket_work_logs(
    ticket_id: str,
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Work logs recorded against a ticket, newest arrival first"""
    return respond(await service.get_work_logs(ticket_id, user))
