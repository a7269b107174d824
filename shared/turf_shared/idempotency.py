IDEMPOTENCY_TTL_SECONDS = 60 * 60  # 1 hour


def processed_key(event_id: str) -> str:
    return f"processed_event:{event_id}"


async def claim_event(redis_client, event_id: str, ttl_seconds: int = IDEMPOTENCY_TTL_SECONDS) -> bool:
    """
    Returns True the first time an event id is seen, False for redeliveries.
    """
    created = await redis_client.set(processed_key(event_id), "1", ex=ttl_seconds, nx=True)
    return bool(created)

