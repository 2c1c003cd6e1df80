import asyncio
import calendar
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

import httpx
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from clicknps_webhooks.clock import Clock, isoformat_z, utcnow
from clicknps_webhooks.db.session import AsyncSessionLocal
from clicknps_webhooks.errors import (
    ConfigurationError,
    ExhaustedRetries,
    HTTPError,
    NetworkError,
)
from clicknps_webhooks.models.webhook_delivery import (
    WebhookDelivery,
    PENDING,
    PROCESSING,
    DELIVERED,
    FAILED,
)
from clicknps_webhooks.queue.backoff import next_retry_delay
from clicknps_webhooks.services.webhook_settings import get_webhook_target
from clicknps_webhooks.signing import canonical_json, signature_header

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = float(os.getenv("WEBHOOK_HTTP_TIMEOUT", "10"))
MAX_BODY_CHARS = 1000
USER_AGENT = "ClickNPS-Webhooks/1.0"

# columns an attempt outcome writes back
OUTCOME_FIELDS = (
    "status",
    "attempts",
    "last_attempt_at",
    "next_attempt_at",
    "claimed_at",
    "response_status_code",
    "response_body",
)

TEST_PAYLOAD = {
    "survey_id": "test",
    "subject_id": "test_user",
    "score": 8,
    "comment": "This is a test webhook from ClickNPS",
}


@dataclass
class WebhookTestResult:
    success: bool
    status_code: Optional[int]
    response_body: str


def build_payload(delivery: WebhookDelivery, now: datetime) -> Dict[str, Any]:
    return {
        "survey_id": delivery.survey_id,
        "subject_id": delivery.subject_id,
        "score": delivery.score,
        "comment": delivery.comment,
        "timestamp": isoformat_z(now),
    }


async def deliver(
    payload: Dict[str, Any],
    webhook_url: str,
    webhook_secret: str,
    timeout: float = HTTP_TIMEOUT,
    now: Optional[datetime] = None,
) -> Tuple[int, str]:
    """
    POST a signed payload to a webhook endpoint.

    Returns ``(status_code, body)`` on a 2xx answer. Raises HTTPError for
    any other status and NetworkError for timeouts and transport failures.
    The whole request, body included, is cut off after ``timeout`` seconds.
    """
    now = now or utcnow()
    body = canonical_json(payload)
    headers = {
        "Content-Type": "application/json",
        "X-ClickNPS-Signature": signature_header(webhook_secret, body),
        "X-ClickNPS-Timestamp": str(calendar.timegm(now.utctimetuple())),
        "User-Agent": USER_AGENT,
    }

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await asyncio.wait_for(
                client.post(webhook_url, content=body, headers=headers),
                timeout=timeout,
            )
    except asyncio.TimeoutError as exc:
        raise NetworkError(f"Timed out after {timeout}s") from exc
    except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
        raise NetworkError(str(exc) or exc.__class__.__name__) from exc

    status_code = resp.status_code
    text = (resp.text or "")[:MAX_BODY_CHARS]
    if not 200 <= status_code < 300:
        raise HTTPError(status_code, text)
    return status_code, text


class DeliveryExecutor:
    """Sends one claimed delivery and records the outcome."""

    def __init__(self, session_factory=AsyncSessionLocal, clock: Clock = utcnow,
                 timeout: float = HTTP_TIMEOUT):
        self.session_factory = session_factory
        self.clock = clock
        self.timeout = timeout

    async def execute(self, delivery_id: UUID) -> Optional[str]:
        """
        1) Load the claimed delivery and the business's current webhook target.
        2) POST the signed payload.
        3) Mark delivered, or record the failure and reschedule / give up.

        The outcome is only written while our claim still holds. Returns the
        resulting status, or None when the record was not (or no longer) ours.
        """
        async with self.session_factory() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
            if delivery is None or delivery.status != PROCESSING:
                logger.warning(f"[Delivery] {delivery_id} is not claimed, skipping")
                return None

            claimed_at = delivery.claimed_at
            # detached: the outcome goes through a conditional UPDATE, never a flush
            session.expunge(delivery)

            started = self.clock()
            try:
                url, secret = await get_webhook_target(delivery.business_id, session)
            except ConfigurationError as exc:
                record_failure(delivery, self.clock(), None, str(exc))
            else:
                try:
                    status_code, text = await deliver(
                        build_payload(delivery, started), url, secret, self.timeout, started
                    )
                except HTTPError as exc:
                    record_failure(delivery, self.clock(), exc.status_code, exc.body)
                except NetworkError as exc:
                    record_failure(delivery, self.clock(), None, str(exc))
                else:
                    record_success(delivery, self.clock(), status_code, text)

            if not await self._write_outcome(session, delivery, claimed_at):
                logger.warning(
                    f"[Delivery] {delivery_id} claim was released during the send, "
                    f"outcome discarded"
                )
                return None
            return delivery.status

    async def _write_outcome(
        self,
        session: AsyncSession,
        delivery: WebhookDelivery,
        claimed_at: Optional[datetime],
    ) -> bool:
        result = await session.execute(
            update(WebhookDelivery)
            .where(
                WebhookDelivery.id == delivery.id,
                WebhookDelivery.status == PROCESSING,
                WebhookDelivery.claimed_at == claimed_at,
            )
            .values(
                updated_at=self.clock(),
                **{field: getattr(delivery, field) for field in OUTCOME_FIELDS},
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        return result.rowcount == 1


def record_success(delivery: WebhookDelivery, now: datetime, status_code: int, body: str) -> None:
    delivery.attempts += 1
    delivery.status = DELIVERED
    delivery.last_attempt_at = now
    delivery.response_status_code = status_code
    delivery.response_body = body
    delivery.next_attempt_at = None
    delivery.claimed_at = None
    logger.info(f"[Delivery] {delivery.id} delivered: HTTP {status_code}")


def record_failure(
    delivery: WebhookDelivery,
    now: datetime,
    status_code: Optional[int],
    error: Optional[str],
) -> None:
    """Count a failed attempt and either reschedule it or give up."""
    delivery.attempts += 1
    delivery.last_attempt_at = now
    delivery.response_status_code = status_code
    delivery.response_body = (error or "")[:MAX_BODY_CHARS] or None
    delivery.claimed_at = None

    try:
        delay = next_retry_delay(delivery.attempts)
    except ExhaustedRetries as exc:
        delivery.status = FAILED
        delivery.next_attempt_at = None
        logger.error(f"[Delivery] {delivery.id} failed permanently: {exc}")
        return

    delivery.status = PENDING
    delivery.next_attempt_at = now + delay
    logger.warning(
        f"[Delivery] {delivery.id} attempt {delivery.attempts} failed "
        f"({status_code or error}), retrying at {delivery.next_attempt_at.isoformat()}"
    )


async def send_test_webhook(
    db: AsyncSession,
    business_id: UUID,
    timeout: float = HTTP_TIMEOUT,
) -> WebhookTestResult:
    """
    Send a sample payload to the business's endpoint right away.

    Nothing is queued or persisted. Raises ConfigurationError when the
    business has no webhook configured.
    """
    url, secret = await get_webhook_target(business_id, db)
    now = utcnow()
    payload = dict(TEST_PAYLOAD, timestamp=isoformat_z(now))

    try:
        status_code, text = await deliver(payload, url, secret, timeout, now)
    except HTTPError as exc:
        return WebhookTestResult(False, exc.status_code, exc.body or "")
    except NetworkError as exc:
        return WebhookTestResult(False, None, str(exc))
    return WebhookTestResult(True, status_code, text)
