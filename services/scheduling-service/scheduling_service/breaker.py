import logging
import time

logger = logging.getLogger(__name__)

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"


class CircuitBreakerOpen(Exception):
    pass


class CircuitBreaker:
    """
    Redis-backed circuit breaker, shared by every replica of the service.

    CLOSED counts failures inside a rolling minute; reaching the threshold
    opens it. OPEN rejects calls until reset_timeout_seconds have passed,
    then HALF_OPEN lets probes through: a success closes, a failure reopens.
    """

    def __init__(self, redis_client, name: str, failure_threshold: int = 5, reset_timeout_seconds: int = 10):
        self.redis = redis_client
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds

    def _key(self, part: str) -> str:
        return f"cb:{self.name}:{part}"

    async def state(self) -> str:
        return await self.redis.get(self._key("state")) or CLOSED

    async def allow_request(self) -> None:
        state = await self.state()
        if state != OPEN:
            return

        opened_at = await self.redis.get(self._key("opened_at"))
        if not opened_at:
            await self.close()
            return

        if time.time() - float(opened_at) >= self.reset_timeout_seconds:
            await self.redis.set(self._key("state"), HALF_OPEN)
            return

        raise CircuitBreakerOpen(f"Circuit breaker OPEN for {self.name}")

    async def record_success(self) -> None:
        await self.close()

    async def record_failure(self) -> None:
        if await self.state() == HALF_OPEN:
            await self.open()
            return

        failures = await self.redis.incr(self._key("failures"))
        if failures == 1:
            await self.redis.expire(self._key("failures"), 60)
        if failures >= self.failure_threshold:
            await self.open()

    async def open(self) -> None:
        ttl = self.reset_timeout_seconds + 30
        pipe = self.redis.pipeline()
        pipe.set(self._key("state"), OPEN, ex=ttl)
        pipe.set(self._key("opened_at"), str(time.time()), ex=ttl)
        await pipe.execute()
        logger.warning("circuit breaker %s opened", self.name)

    async def close(self) -> None:
        pipe = self.redis.pipeline()
        pipe.set(self._key("state"), CLOSED, ex=3600)
        pipe.delete(self._key("failures"))
        pipe.delete(self._key("opened_at"))
        await pipe.execute()
