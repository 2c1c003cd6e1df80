import pytest
import json
import uuid
from unittest.mock import MagicMock

from clicknps_webhooks.cache import business_cache
from clicknps_webhooks.cache.business_cache import (
    get_webhook_settings,
    _make_key,
)
from clicknps_webhooks.services.webhook_settings import (
    clear_webhook_settings,
    generate_webhook_secret,
    get_webhook_target,
    update_webhook_settings,
)
from clicknps_webhooks.errors import ConfigurationError


async def test_cache_population_on_miss(business, async_db_session, redis_conn):
    """Verify cache is populated when fetching settings not already cached."""
    cache_key = _make_key(str(business.id))
    assert redis_conn.exists(cache_key) == 0

    settings = await get_webhook_settings(business.id, db=async_db_session)

    assert settings["webhook_url"] == business.webhook_url
    assert settings["webhook_secret"] == business.webhook_secret
    assert redis_conn.exists(cache_key) == 1
    assert json.loads(redis_conn.get(cache_key))["webhook_url"] == business.webhook_url


async def test_cache_hit_skips_database(business, redis_conn):
    cached = {"id": str(business.id), "webhook_url": "https://cached.test/", "webhook_secret": "whk_cached"}
    redis_conn.set(_make_key(str(business.id)), json.dumps(cached))

    db = MagicMock()
    settings = await get_webhook_settings(business.id, db=db)

    assert settings == cached
    db.execute.assert_not_called()


async def test_unknown_business_returns_none(async_db_session, redis_conn):
    assert await get_webhook_settings(uuid.uuid4(), db=async_db_session) is None


async def test_corrupted_entry_falls_back_to_database(business, async_db_session, redis_conn):
    cache_key = _make_key(str(business.id))
    redis_conn.set(cache_key, "{not json")

    settings = await get_webhook_settings(business.id, db=async_db_session)

    assert settings["webhook_url"] == business.webhook_url
    assert json.loads(redis_conn.get(cache_key))["webhook_url"] == business.webhook_url


async def test_redis_outage_falls_back_to_database(business, async_db_session, monkeypatch):
    broken = MagicMock()
    broken.get.side_effect = ConnectionError("redis down")
    broken.set.side_effect = ConnectionError("redis down")
    monkeypatch.setattr(business_cache, "redis_conn", broken)

    settings = await get_webhook_settings(business.id, db=async_db_session)

    assert settings["webhook_secret"] == business.webhook_secret


async def test_update_refreshes_cache(business, async_db_session, redis_conn):
    await get_webhook_settings(business.id, db=async_db_session)

    await update_webhook_settings(async_db_session, business.id, "https://new.test/hook", "whk_new")

    cached = json.loads(redis_conn.get(_make_key(str(business.id))))
    assert cached["webhook_url"] == "https://new.test/hook"
    assert cached["webhook_secret"] == "whk_new"


async def test_update_generates_secret_when_missing(business_without_webhook, async_db_session):
    updated = await update_webhook_settings(
        async_db_session, business_without_webhook.id, "https://hooks.test/"
    )
    assert updated.webhook_secret.startswith("whk_")
    assert len(updated.webhook_secret) > 40


async def test_update_unknown_business(async_db_session):
    with pytest.raises(LookupError):
        await update_webhook_settings(async_db_session, uuid.uuid4(), "https://hooks.test/")


async def test_clear_invalidates_cache(business, async_db_session, redis_conn):
    await get_webhook_settings(business.id, db=async_db_session)

    await clear_webhook_settings(async_db_session, business.id)

    assert redis_conn.exists(_make_key(str(business.id))) == 0
    with pytest.raises(ConfigurationError):
        await get_webhook_target(business.id, async_db_session)


async def test_get_webhook_target(business, async_db_session):
    assert await get_webhook_target(business.id, async_db_session) == (
        business.webhook_url,
        business.webhook_secret,
    )


def test_generated_secrets_are_unique():
    secrets = {generate_webhook_secret() for _ in range(20)}
    assert len(secrets) == 20
    assert all(s.startswith("whk_") and "=" not in s for s in secrets)
