"""
Cache Router

Invalidation boundary for the write path:
- Explicit tag revalidation
- Entity write notifications (resolved through the tag registry)
- Supabase database webhooks
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException

from app.models.enums import EntityType
from app.models.records import CurrentUser
from app.models.schemas import EntityInvalidationRequest, RevalidateRequest, SupabaseWebhookPayload
from app.reporting.errors import UnauthorizedError
from app.reporting.service import ReportService
from app.reporting.tags import entity_for_table, tags_for_entity
from app.routers.reports import get_report_service
from app.services.auth import require_user

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_cache_admin(user: CurrentUser, service: ReportService) -> None:
    try:
        service.authorize(user, service.settings.report_roles)
    except UnauthorizedError as e:
        logger.warning(f"[Cache] {e}")
        raise HTTPException(status_code=403, detail="Unauthorized")


@router.post("/revalidate")
async def revalidate_tags(
    body: RevalidateRequest,
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Drop every cached entry registered under any of the given tags"""
    _require_cache_admin(user, service)
    removed = service.revalidate(body.tags)
    return {"success": True, "tags": body.tags, "removed": removed}


@router.post("/entities/{entity}")
async def invalidate_entity_write(
    entity: EntityType,
    body: Optional[EntityInvalidationRequest] = Body(None),
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Invalidate everything a write to `entity` can make stale"""
    _require_cache_admin(user, service)
    ticket_id = body.ticket_id if body else None
    removed = service.invalidate_entity(entity, ticket_id)
    return {
        "success": True,
        "entity": entity.value,
        "tags": list(tags_for_entity(entity, ticket_id)),
        "removed": removed,
    }


def _webhook_ticket_id(entity: EntityType, payload: SupabaseWebhookPayload) -> Optional[str]:
    record = payload.record or payload.old_record or {}
    if entity == EntityType.TICKET:
        value = record.get("id")
    elif entity == EntityType.WORK_LOG:
        value = record.get("ticket_id") or record.get("ticketId")
    else:
        return None
    return str(value) if value is not None else None


@router.post("/webhooks/supabase")
async def supabase_webhook(
    payload: SupabaseWebhookPayload,
    x_webhook_secret: Optional[str] = Header(None),
    service: ReportService = Depends(get_report_service),
):
    """
    Supabase database webhook (INSERT / UPDATE / DELETE on a watched table).

    Configure the webhook to send the `x-webhook-secret` header when
    CACHE_WEBHOOK_SECRET is set. Unwatched tables are acknowledged and ignored.
    """
    secret = service.settings.cache_webhook_secret
    if secret and not hmac.compare_digest(x_webhook_secret or "", secret):
        logger.warning(f"[CacheWebhook] Rejected {payload.type} on {payload.table}: bad secret")
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    entity = entity_for_table(payload.table)
    if entity is None:
        logger.info(f"[CacheWebhook] Ignoring {payload.type} on unwatched table {payload.table}")
        return {"success": True, "ignored": True, "table": payload.table}

    ticket_id = _webhook_ticket_id(entity, payload)
    removed = service.invalidate_entity(entity, ticket_id)
    return {
        "success": True,
        "table": payload.table,
        "entity": entity.value,
        "tags": list(tags_for_entity(entity, ticket_id)),
        "removed": removed,
    }


@router.get("/stats")
async def cache_stats(
    user: CurrentUser = Depends(require_user),
    service: ReportService = Depends(get_report_service),
):
    """Entry count and hit/miss counters"""
    _require_cache_admin(user, service)
    return {"success": True, "data": service.cache.stats()}
