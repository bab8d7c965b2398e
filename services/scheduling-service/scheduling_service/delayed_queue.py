import json
import logging
import time
import uuid
from dataclasses import dataclass, field

from redis.exceptions import WatchError

from .config import JOB_VISIBILITY_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class Job:
    id: str
    name: str
    payload: dict = field(default_factory=dict)
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps(
            {"id": self.id, "name": self.name, "payload": self.payload, "attempts": self.attempts},
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "Job":
        obj = json.loads(raw)
        return cls(obj["id"], obj["name"], obj.get("payload") or {}, int(obj.get("attempts") or 0))


class DelayedQueue:
    """
    Delayed jobs on top of two sorted sets.

    <ns>:due holds job ids scored by the time they become runnable.
    <ns>:processing holds claimed ids scored by their lease deadline; a lease
    that runs out puts the job back in due, so delivery is at-least-once.
    Job documents live under delayed_job:<id>.
    """

    def __init__(self, redis_client, namespace: str = "scheduling", visibility_seconds: int = JOB_VISIBILITY_SECONDS):
        self.redis = redis_client
        self.namespace = namespace
        self.visibility_seconds = visibility_seconds

    @property
    def due_key(self) -> str:
        return f"{self.namespace}:due"

    @property
    def processing_key(self) -> str:
        return f"{self.namespace}:processing"

    def _job_key(self, job_id: str) -> str:
        return f"delayed_job:{job_id}"

    async def enqueue(self, job_name: str, payload: dict, delay_seconds: float) -> str:
        job = Job(id=str(uuid.uuid4()), name=job_name, payload=payload)
        run_at = time.time() + max(delay_seconds, 0)

        pipe = self.redis.pipeline()
        pipe.set(self._job_key(job.id), job.to_json())
        pipe.zadd(self.due_key, {job.id: run_at})
        await pipe.execute()

        logger.debug("enqueued %s job %s to run in %.0fs", job_name, job.id, delay_seconds)
        return job.id

    async def remove(self, job_id: str) -> bool:
        pipe = self.redis.pipeline()
        pipe.zrem(self.due_key, job_id)
        pipe.zrem(self.processing_key, job_id)
        pipe.delete(self._job_key(job_id))
        results = await pipe.execute()
        return any(results)

    async def get(self, job_id: str) -> Job | None:
        raw = await self.redis.get(self._job_key(job_id))
        return Job.from_json(raw) if raw else None

    async def _move(self, src: str, dst: str, job_id: str, score: float) -> bool:
        """Atomically move a job id between sets. False if it was no longer in src."""
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(src)
                if await pipe.zscore(src, job_id) is None:
                    return False
                pipe.multi()
                pipe.zrem(src, job_id)
                pipe.zadd(dst, {job_id: score})
                await pipe.execute()
                return True
            except WatchError:
                # src changed mid-claim; the job stays where it is for the next poll
                return False

    async def claim_due(self, limit: int = 50) -> list[Job]:
        now = time.time()
        ids = await self.redis.zrangebyscore(self.due_key, 0, now, start=0, num=limit)

        jobs = []
        for job_id in ids:
            if not await self._move(self.due_key, self.processing_key, job_id, now + self.visibility_seconds):
                continue

            job = await self.get(job_id)
            if not job:
                await self.redis.zrem(self.processing_key, job_id)
                continue
            jobs.append(job)
        return jobs

    async def ack(self, job_id: str) -> None:
        pipe = self.redis.pipeline()
        pipe.zrem(self.processing_key, job_id)
        pipe.delete(self._job_key(job_id))
        await pipe.execute()

    async def retry(self, job: Job, delay_seconds: float) -> None:
        job.attempts += 1
        pipe = self.redis.pipeline()
        pipe.set(self._job_key(job.id), job.to_json())
        pipe.zrem(self.processing_key, job.id)
        pipe.zadd(self.due_key, {job.id: time.time() + delay_seconds})
        await pipe.execute()

    async def requeue_stale(self) -> int:
        now = time.time()
        stale = await self.redis.zrangebyscore(self.processing_key, 0, now)
        moved = 0
        for job_id in stale:
            if await self._move(self.processing_key, self.due_key, job_id, now):
                moved += 1
        if moved:
            logger.warning("requeued %d jobs whose lease expired", moved)
        return moved
