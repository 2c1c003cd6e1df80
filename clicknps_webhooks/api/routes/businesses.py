from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List
from uuid import UUID

from clicknps_webhooks.db.session import get_async_db
from clicknps_webhooks.errors import ConfigurationError
from clicknps_webhooks.models.business import Business
from clicknps_webhooks.api.schemas import (
    BusinessCreate,
    BusinessOut,
    DeliveryOut,
    WebhookSettingsIn,
    WebhookSettingsOut,
    WebhookTestOut,
)
from clicknps_webhooks.cache.business_cache import get_webhook_settings
from clicknps_webhooks.queue.delivery_queue import list_recent
from clicknps_webhooks.services.webhook_settings import (
    clear_webhook_settings,
    update_webhook_settings,
)
from clicknps_webhooks.workers.delivery_worker import send_test_webhook

router = APIRouter()

async def get_business_or_404(business_id: UUID, db: AsyncSession) -> Business:
    result = await db.execute(
        select(Business).where(Business.id == business_id)
    )
    business = result.scalar_one_or_none()
    if not business:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Business not found",
        )
    return business

@router.post(
    "/",
    response_model=BusinessOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_business(
    business_in: BusinessCreate,
    db: AsyncSession = Depends(get_async_db),
):
    business = Business(name=business_in.name)
    db.add(business)
    await db.commit()
    await db.refresh(business)

    if business_in.webhook_url:
        business = await update_webhook_settings(
            db,
            business.id,
            str(business_in.webhook_url),
            business_in.webhook_secret,
        )

    return business

@router.get("/{business_id}", response_model=BusinessOut)
async def read_business(
    business_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    return await get_business_or_404(business_id, db)

@router.get("/{business_id}/webhook", response_model=WebhookSettingsOut)
async def read_webhook_settings(
    business_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    # Cache-first lookup (automatically falls back to database)
    settings = await get_webhook_settings(business_id, db)
    if not settings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Business not found",
        )
    return settings

@router.put("/{business_id}/webhook", response_model=WebhookSettingsOut)
async def put_webhook_settings(
    business_id: UUID,
    settings_in: WebhookSettingsIn,
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(business_id, db)
    # Secret is generated when none is supplied
    return await update_webhook_settings(
        db,
        business_id,
        str(settings_in.webhook_url),
        (settings_in.webhook_secret or "").strip() or None,
    )

@router.delete(
    "/{business_id}/webhook",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_webhook_settings(
    business_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(business_id, db)
    await clear_webhook_settings(db, business_id)
    return

@router.post("/{business_id}/webhook/test", response_model=WebhookTestOut)
async def send_webhook_test(
    business_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(business_id, db)
    try:
        return await send_test_webhook(db, business_id)
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )

@router.get(
    "/{business_id}/webhook/deliveries",
    response_model=List[DeliveryOut],
    summary="List recent webhook deliveries for a business",
)
async def list_business_deliveries(
    business_id: UUID,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(business_id, db)
    return await list_recent(db, business_id, limit)
