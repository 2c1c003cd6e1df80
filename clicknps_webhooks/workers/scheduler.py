"""Polling scheduler that hands eligible deliveries to the executor.

Each pass selects ``pending`` deliveries whose ``next_attempt_at`` has
passed, wins them with a conditional UPDATE (``pending -> processing``) and
starts one task per won delivery. The loop never waits for those sends, so
a slow endpoint only occupies its own task.

Run it as a worker process:

    python -m clicknps_webhooks.workers.scheduler          # loop forever
    python -m clicknps_webhooks.workers.scheduler --once   # single pass
"""
from dotenv import load_dotenv

# Load environment variables before importing modules that depend on them
load_dotenv()

import argparse
import asyncio
import logging
import os
from datetime import timedelta
from typing import List, Optional, Set
from uuid import UUID

from sqlalchemy import select, update

from clicknps_webhooks.clock import Clock, utcnow
from clicknps_webhooks.db.session import AsyncSessionLocal
from clicknps_webhooks.models.webhook_delivery import (
    WebhookDelivery,
    PENDING,
    PROCESSING,
)
from clicknps_webhooks.workers.delivery_worker import DeliveryExecutor, record_failure

logger = logging.getLogger(__name__)

SCHEDULER_INTERVAL_SECONDS = float(os.getenv("SCHEDULER_INTERVAL_SECONDS", "10"))
SCHEDULER_BATCH_SIZE = int(os.getenv("SCHEDULER_BATCH_SIZE", "10"))
SCHEDULER_MAX_CONCURRENT = int(os.getenv("SCHEDULER_MAX_CONCURRENT", "10"))
SCHEDULER_CLAIM_TIMEOUT = int(os.getenv("SCHEDULER_CLAIM_TIMEOUT", "300"))


class DeliveryScheduler:
    def __init__(
        self,
        session_factory=AsyncSessionLocal,
        executor: Optional[DeliveryExecutor] = None,
        clock: Clock = utcnow,
        interval: float = SCHEDULER_INTERVAL_SECONDS,
        batch_size: int = SCHEDULER_BATCH_SIZE,
        max_concurrent: int = SCHEDULER_MAX_CONCURRENT,
        claim_timeout: int = SCHEDULER_CLAIM_TIMEOUT,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.executor = executor or DeliveryExecutor(session_factory, clock)
        self.interval = interval
        self.batch_size = batch_size
        self.max_concurrent = max_concurrent
        self.claim_timeout = timedelta(seconds=claim_timeout)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def claim(self, delivery_id: UUID) -> bool:
        """Move one eligible delivery to ``processing``. Only one caller can win."""
        now = self.clock()
        async with self.session_factory() as session:
            result = await session.execute(
                update(WebhookDelivery)
                .where(
                    WebhookDelivery.id == delivery_id,
                    WebhookDelivery.status == PENDING,
                    WebhookDelivery.next_attempt_at <= now,
                )
                .values(status=PROCESSING, claimed_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    @property
    def free_slots(self) -> int:
        return max(self.max_concurrent - len(self._tasks), 0)

    async def due_ids(self, limit: Optional[int] = None) -> List[UUID]:
        now = self.clock()
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookDelivery.id)
                .where(
                    WebhookDelivery.status == PENDING,
                    WebhookDelivery.next_attempt_at <= now,
                )
                .order_by(WebhookDelivery.next_attempt_at.asc())
                .limit(self.batch_size if limit is None else limit)
            )
            return list(result.scalars().all())

    async def release_stale_claims(self) -> int:
        """
        Count abandoned ``processing`` claims as failed attempts.

        A claim older than ``claim_timeout`` belongs to a worker that died
        mid-send; it goes through the normal failure path so it is either
        rescheduled or marked failed.
        """
        now = self.clock()
        cutoff = now - self.claim_timeout
        released = 0
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookDelivery.id, WebhookDelivery.claimed_at).where(
                    WebhookDelivery.status == PROCESSING,
                    WebhookDelivery.claimed_at < cutoff,
                )
            )
            stale = result.all()

            for delivery_id, claimed_at in stale:
                # re-stamp the claim so only one scheduler releases it
                won = await session.execute(
                    update(WebhookDelivery)
                    .where(
                        WebhookDelivery.id == delivery_id,
                        WebhookDelivery.status == PROCESSING,
                        WebhookDelivery.claimed_at == claimed_at,
                    )
                    .values(claimed_at=now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
                if won.rowcount != 1:
                    continue

                delivery = await session.get(WebhookDelivery, delivery_id)
                record_failure(delivery, now, None, "Delivery claim expired")
                await session.commit()
                released += 1

        if released:
            logger.warning(f"[Scheduler] Released {released} stale claim(s)")
        return released

    async def _run(self, delivery_id: UUID) -> None:
        async with self._semaphore:
            await self.executor.execute(delivery_id)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[Scheduler] Delivery task {task.get_name()} crashed", exc_info=exc)

    async def run_pass(self) -> List[asyncio.Task]:
        """
        Claim due deliveries and start sending; does not wait for sends.

        Only as many deliveries are claimed as there are free send slots, so
        a claim never sits waiting behind the concurrency limit.
        """
        await self.release_stale_claims()

        spawned = []
        slots = self.free_slots
        if not slots:
            logger.debug(f"[Scheduler] All {self.max_concurrent} send slots busy")
            return spawned

        for delivery_id in await self.due_ids(min(self.batch_size, slots)):
            if not await self.claim(delivery_id):
                logger.debug(f"[Scheduler] {delivery_id} already claimed, skipping")
                continue
            task = asyncio.create_task(self._run(delivery_id), name=f"delivery-{delivery_id}")
            self._tasks.add(task)
            task.add_done_callback(self._on_done)
            spawned.append(task)

        if spawned:
            logger.info(f"[Scheduler] Dispatched {len(spawned)} delivery(ies)")
        return spawned

    async def process_now(self) -> int:
        """Run one pass and wait for its sends to finish."""
        tasks = await self.run_pass()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info(f"[Scheduler] Polling every {self.interval}s")

        while not stop_event.is_set():
            try:
                await self.run_pass()
            except Exception:
                logger.exception("[Scheduler] Pass failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        if self._tasks:
            logger.info(f"[Scheduler] Waiting for {len(self._tasks)} in-flight delivery(ies)")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        logger.info("[Scheduler] Stopped")


def main(argv: Optional[List[str]] = None) -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

    parser = argparse.ArgumentParser(description="ClickNPS webhook delivery worker")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    args = parser.parse_args(argv)

    scheduler = DeliveryScheduler()
    if args.once:
        count = asyncio.run(scheduler.process_now())
        logger.info(f"[Scheduler] Processed {count} delivery(ies)")
    else:
        asyncio.run(scheduler.run_forever())


if __name__ == "__main__":
    main()
