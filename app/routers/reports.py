"""
Reports Router

Management reports computed from the cached report snapshot.
All endpoints take the same filter query parameters; list filters are
repeated params (?statuses=Open&statuses=Closed).
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.models.enums import TicketStatus
from app.models.records import CurrentUser
from app.models.schemas import ReportFilters
from app.reporting.results import ReportResult
from app.reporting.service import ReportService
from app.services.auth import require_user

router = APIRouter()


def get_report_service(request: Request) -> ReportService:
    return request.app.state.report_service


def report_filters(
    start_date: Optional[date] = Query(None, description="First day included (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Last day included (YYYY-MM-DD)"),
    statuses: List[TicketStatus] = Query([], description="Ticket statuses to include"),
    technician_ids: List[str] = Query([], description="Technician user IDs"),
    customer_ids: List[str] = Query([], description="Customer IDs"),
    part_names: List[str] = Query([], description="Part names"),
    part_categories: List[str] = Query([], description="Part categories"),
) -> ReportFilters:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    return ReportFilters(
        start_date=start_date,
        end_date=end_date,
        statuses=statuses,
        technician_ids=technician_ids,
        customer_ids=customer_ids,
        part_names=part_names,
        part_categories=part_categories,
    )


def respond(result: ReportResult) -> dict:
    """Map a ReportResult onto HTTP: 403 unauthorized, 502 upstream failure"""
    if result.unauthorized:
        raise HTTPException(status_code=403, detail=result.error)
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return result.to_response()


@router.get("/base-data")
async def get_base_data(
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Normalized tickets, work logs, customers, machines, technicians and parts"""
    return respond(await service.get_base_data(user))


@router.get("/tickets")
async def get_ticket_metrics(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """
    Ticket analytics.

    Returns:
    - Status counts (open / assigned / closed)
    - Average resolution and response time (hours)
    - Priority breakdown (highest machine priority per ticket)
    - Tickets open longer than the aging threshold
    """
    return respond(await service.get_report("tickets", user, filters))


@router.get("/technicians")
async def get_technician_metrics(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Assigned / closed counts, closure rate and resolution time per technician"""
    return respond(await service.get_report("technicians", user, filters))


@router.get("/customers")
async def get_customer_metrics(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Ticket volume, fleet size and repeat issues per enabled customer"""
    return respond(await service.get_report("customers", user, filters))


@router.get("/equipment")
async def get_equipment_metrics(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Incidents, parts consumed and health status per machine"""
    return respond(await service.get_report("equipment", user, filters))


@router.get("/revenue")
async def get_revenue_report(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """
    Estimated revenue, internal cost and profit per technician.

    `suppressed` is true (and the lists empty) when no revenue was logged.
    """
    return respond(await service.get_report("revenue", user, filters))


@router.get("/service-quality")
async def get_service_quality(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """First-time fix rate, repeat ticket rate and most common issues"""
    return respond(await service.get_report("service-quality", user, filters))


@router.get("/time-by-customer")
async def get_time_by_customer(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Hours logged per customer with technician split and log detail"""
    return respond(await service.get_report("time-by-customer", user, filters))


@router.get("/time-by-technician")
async def get_time_by_technician(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Hours logged per technician with customer split and efficiency label"""
    return respond(await service.get_report("time-by-technician", user, filters))


@router.get("/machine-health")
async def get_machine_health(
    threshold: int = Query(5, ge=1, le=100, description="Tickets before a machine is At Risk"),
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Machines ranked by status (Critical, At Risk, Healthy) then ticket count"""
    return respond(await service.get_report("machine-health", user, filters, threshold=threshold))


@router.get("/low-stock-parts")
async def get_low_stock_parts(
    filters: ReportFilters = Depends(report_filters),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Parts at or below their minimum stock level"""
    return respond(await service.get_report("low-stock-parts", user, filters))
