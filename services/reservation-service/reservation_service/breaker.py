import time

CLOSED = "CLOSED"
OPEN = "OPEN"
HALF_OPEN = "HALF_OPEN"

KEY_PREFIX = "reservation-service:cb"


class CircuitBreakerOpen(Exception):
    def __init__(self, name: str, retry_after: float):
        super().__init__(f"{name} unavailable, retry in {retry_after:.0f}s")
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """
    Guards one upstream (turf catalog or payment gateway). State lives in Redis
    so every replica of the service trips and recovers together.

    CLOSED counts failures inside a rolling minute; reaching the threshold
    moves to OPEN, which rejects calls until the cool-down passes. The first
    call after that runs as a HALF_OPEN trial: success closes the breaker,
    failure reopens it for another cool-down.
    """

    FAILURE_WINDOW_SECONDS = 60

    def __init__(self, redis_client, name: str, failure_threshold: int = 5, reset_timeout_seconds: int = 15):
        self.redis = redis_client
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds

    def _key(self, field: str) -> str:
        return f"{KEY_PREFIX}:{self.name}:{field}"

    async def _state(self) -> str:
        return await self.redis.get(self._key("state")) or CLOSED

    async def _retry_after(self) -> float:
        opened_at = await self.redis.get(self._key("opened_at"))
        if not opened_at:
            return 0.0
        return max(0.0, self.reset_timeout_seconds - (time.time() - float(opened_at)))

    async def allow_request(self) -> None:
        if await self._state() != OPEN:
            return

        retry_after = await self._retry_after()
        if retry_after > 0:
            raise CircuitBreakerOpen(self.name, retry_after)
        await self.redis.set(self._key("state"), HALF_OPEN)

    async def record_success(self) -> None:
        await self._set_closed()

    async def record_failure(self) -> None:
        if await self._state() == HALF_OPEN:
            await self._set_open()
            return

        failures = await self.redis.incr(self._key("failures"))
        if failures == 1:
            await self.redis.expire(self._key("failures"), self.FAILURE_WINDOW_SECONDS)
        if failures >= self.failure_threshold:
            await self._set_open()

    async def _set_open(self) -> None:
        ttl = self.reset_timeout_seconds + 30
        pipe = self.redis.pipeline()
        pipe.set(self._key("state"), OPEN)
        pipe.set(self._key("opened_at"), str(time.time()))
        pipe.expire(self._key("state"), ttl)
        pipe.expire(self._key("opened_at"), ttl)
        await pipe.execute()

    async def _set_closed(self) -> None:
        pipe = self.redis.pipeline()
        pipe.set(self._key("state"), CLOSED)
        pipe.delete(self._key("failures"))
        pipe.delete(self._key("opened_at"))
        pipe.expire(self._key("state"), 3600)
        await pipe.execute()

    async def status(self) -> dict:
        """Snapshot for the health endpoint."""
        state = await self._state()
        failures = await self.redis.get(self._key("failures"))
        return {
            "name": self.name,
            "state": state,
            "failures": int(failures or 0),
            "retry_after_seconds": round(await self._retry_after(), 1) if state == OPEN else 0.0,
        }
