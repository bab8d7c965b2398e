import asyncio
import logging
from typing import Awaitable, Callable

from .config import JOB_MAX_ATTEMPTS, JOB_RETRY_SECONDS, WORKER_POLL_SECONDS
from .delayed_queue import DelayedQueue

logger = logging.getLogger(__name__)

Handler = Callable[[dict], Awaitable[None]]


async def run_once(queue: DelayedQueue, handlers: dict[str, Handler]) -> int:
    await queue.requeue_stale()
    jobs = await queue.claim_due()

    for job in jobs:
        handler = handlers.get(job.name)
        if handler is None:
            logger.error("no handler registered for job %s (%s), dropping", job.id, job.name)
            await queue.ack(job.id)
            continue

        try:
            await handler(job.payload)
        except Exception:
            if job.attempts + 1 >= JOB_MAX_ATTEMPTS:
                logger.exception("job %s (%s) failed %d times, dropping", job.id, job.name, job.attempts + 1)
                await queue.ack(job.id)
            else:
                logger.warning("job %s (%s) failed, retrying", job.id, job.name, exc_info=True)
                await queue.retry(job, JOB_RETRY_SECONDS * (job.attempts + 1))
        else:
            await queue.ack(job.id)

    return len(jobs)


async def reminder_loop(
    stop_event: asyncio.Event,
    queue: DelayedQueue,
    handlers: dict[str, Handler],
    poll_seconds: float = WORKER_POLL_SECONDS,
):
    while not stop_event.is_set():
        try:
            await run_once(queue, handlers)
        except Exception:
            # redis hiccup; keep polling
            logger.exception("reminder worker tick failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=poll_seconds)
        except asyncio.TimeoutError:
            continue
