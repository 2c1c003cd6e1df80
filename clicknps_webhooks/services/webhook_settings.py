import logging
import secrets
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clicknps_webhooks.cache.business_cache import (
    cache_webhook_settings,
    get_webhook_settings,
    invalidate_webhook_settings,
)
from clicknps_webhooks.errors import ConfigurationError
from clicknps_webhooks.models.business import Business

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whk_"


def generate_webhook_secret() -> str:
    """A strong random secret: ``whk_`` plus 32 bytes of base64url."""
    return f"{SECRET_PREFIX}{secrets.token_urlsafe(32)}"


async def _load_business(db: AsyncSession, business_id: UUID) -> Business:
    result = await db.execute(select(Business).where(Business.id == business_id))
    business = result.scalar_one_or_none()
    if business is None:
        raise LookupError(f"Business {business_id} not found")
    return business


async def update_webhook_settings(
    db: AsyncSession,
    business_id: UUID,
    webhook_url: Optional[str],
    webhook_secret: Optional[str] = None,
) -> Business:
    """
    Store a business's webhook URL and secret.

    A secret is generated when a URL is given without one.
    """
    business = await _load_business(db, business_id)

    if webhook_url and not webhook_secret:
        webhook_secret = generate_webhook_secret()

    business.webhook_url = webhook_url
    business.webhook_secret = webhook_secret
    await db.commit()
    await db.refresh(business)

    cache_webhook_settings(business)
    logger.info(f"[Settings] Webhook configured for business {business_id}")
    return business


async def clear_webhook_settings(db: AsyncSession, business_id: UUID) -> Business:
    """Turn webhooks off for a business."""
    business = await _load_business(db, business_id)
    business.webhook_url = None
    business.webhook_secret = None
    await db.commit()
    await db.refresh(business)

    invalidate_webhook_settings(business_id)
    logger.info(f"[Settings] Webhook disabled for business {business_id}")
    return business


async def get_webhook_target(
    business_id: UUID | str,
    db: AsyncSession | None = None,
) -> Tuple[str, str]:
    """
    Return ``(webhook_url, webhook_secret)`` for a business.

    Raises ConfigurationError when the business is unknown or has webhooks
    turned off.
    """
    settings = await get_webhook_settings(business_id, db)
    if not settings or not settings.get("webhook_url") or not settings.get("webhook_secret"):
        raise ConfigurationError("Webhook not configured")
    return settings["webhook_url"], settings["webhook_secret"]
