import json
import logging
import uuid
from uuid import UUID
from clicknps_webhooks.cache.redis_conn import redis_conn_global
from clicknps_webhooks.db.session import AsyncSessionLocal
from clicknps_webhooks.models.business import Business
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

logger = logging.getLogger(__name__)

redis_conn = redis_conn_global
CACHE_PREFIX = "business-webhook:"

def _make_key(business_id: str) -> str:
    return f"{CACHE_PREFIX}{business_id}"

def _settings_of(business: Business) -> dict:
    return {
        "id": str(business.id),
        "webhook_url": business.webhook_url,
        "webhook_secret": business.webhook_secret,
    }

def cache_webhook_settings(business: Business) -> None:
    """
    Store the business's webhook settings in Redis as a JSON string.
    """
    key = _make_key(str(business.id))
    try:
        redis_conn.set(key, json.dumps(_settings_of(business)))
    except Exception as exc:
        logger.warning(f"[Cache] Could not cache settings for {business.id}: {exc}")

async def get_webhook_settings(business_id: UUID | str, db: AsyncSession = None) -> dict | None:
    """
    Return the webhook settings dict from Redis if present; otherwise
    load from the database, cache it, and return. Returns None if no such
    business exists. Cache failures only cost a database read.

    Args:
        business_id: The UUID of the business
        db: Optional async SQLAlchemy session to use. If None, creates a new one.
    """
    bid = str(business_id)
    key = _make_key(bid)

    # 1) Try cache
    try:
        raw = redis_conn.get(key)
        if raw:
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"[Cache] Corrupted entry for {bid}, reloading")
    except Exception as exc:
        logger.warning(f"[Cache] Redis unavailable: {exc}")

    # 2) Cache miss or error → load from DB
    session_created = False
    if db is None:
        db = AsyncSessionLocal()
        session_created = True

    try:
        result = await db.execute(
            select(Business).where(Business.id == uuid.UUID(bid))
        )
        business = result.scalar_one_or_none()
        if not business:
            return None
        cache_webhook_settings(business)
        return _settings_of(business)
    finally:
        if session_created:
            await db.close()

def invalidate_webhook_settings(business_id: UUID | str) -> None:
    """
    Remove a business's cache entry.
    """
    key = _make_key(str(business_id))
    try:
        redis_conn.delete(key)
    except Exception as exc:
        logger.warning(f"[Cache] Could not invalidate {business_id}: {exc}")
