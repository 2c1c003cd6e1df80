"""Durable queue of webhook deliveries, one row per survey response."""
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clicknps_webhooks.clock import utcnow
from clicknps_webhooks.errors import ConfigurationError
from clicknps_webhooks.models.webhook_delivery import WebhookDelivery, PENDING
from clicknps_webhooks.services.webhook_settings import get_webhook_target

logger = logging.getLogger(__name__)

WEBHOOK_DELAY_SECONDS = int(os.getenv("WEBHOOK_DELAY_SECONDS", "180"))


@dataclass
class SurveyResponseEvent:
    """A recorded survey response, as handed over by ingestion."""

    business_id: UUID
    survey_id: str
    subject_id: str
    score: int
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


async def _find_existing(db: AsyncSession, event: SurveyResponseEvent) -> WebhookDelivery | None:
    result = await db.execute(
        select(WebhookDelivery).where(
            WebhookDelivery.business_id == event.business_id,
            WebhookDelivery.survey_id == event.survey_id,
            WebhookDelivery.subject_id == event.subject_id,
        )
    )
    return result.scalar_one_or_none()


async def enqueue(
    db: AsyncSession,
    event: SurveyResponseEvent,
    delay_seconds: int = WEBHOOK_DELAY_SECONDS,
) -> WebhookDelivery | None:
    """
    Queue a survey response for webhook delivery.

    Returns None without writing anything when the business has no webhook
    configured. A response that is already queued returns its existing
    delivery.
    """
    if not 0 <= event.score <= 10:
        raise ValueError(f"score must be between 0 and 10, got {event.score}")

    try:
        await get_webhook_target(event.business_id, db)
    except ConfigurationError:
        logger.info(f"[Queue] No webhook for business {event.business_id}, skipping")
        return None

    existing = await _find_existing(db, event)
    if existing is not None:
        return existing

    delivery = WebhookDelivery(
        business_id=event.business_id,
        survey_id=event.survey_id,
        subject_id=event.subject_id,
        score=event.score,
        comment=event.comment or None,
        status=PENDING,
        attempts=0,
        created_at=event.created_at,
        next_attempt_at=event.created_at + timedelta(seconds=delay_seconds),
    )
    db.add(delivery)
    try:
        await db.commit()
    except IntegrityError:
        # a concurrent enqueue of the same response won the insert
        await db.rollback()
        existing = await _find_existing(db, event)
        if existing is None:
            raise
        return existing

    await db.refresh(delivery)
    logger.info(
        f"[Queue] Delivery {delivery.id} queued for {delivery.next_attempt_at.isoformat()}"
    )
    return delivery


async def list_recent(
    db: AsyncSession,
    business_id: UUID,
    limit: int = 10,
) -> List[WebhookDelivery]:
    """Most recent deliveries of a business, newest first."""
    result = await db.execute(
        select(WebhookDelivery)
        .where(WebhookDelivery.business_id == business_id)
        .order_by(WebhookDelivery.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_delivery(db: AsyncSession, delivery_id: UUID) -> WebhookDelivery | None:
    return await db.get(WebhookDelivery, delivery_id)


async def update_pending_comment(
    db: AsyncSession,
    business_id: UUID,
    survey_id: str,
    subject_id: str,
    comment: str,
) -> bool:
    """Attach a late comment to a delivery that has not been sent yet."""
    result = await db.execute(
        update(WebhookDelivery)
        .where(
            WebhookDelivery.business_id == business_id,
            WebhookDelivery.survey_id == survey_id,
            WebhookDelivery.subject_id == subject_id,
            WebhookDelivery.status == PENDING,
        )
        .values(comment=comment, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0
