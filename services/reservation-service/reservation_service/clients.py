import logging
from dataclasses import dataclass

import httpx

from .breaker import CircuitBreaker, CircuitBreakerOpen
from .errors import UpstreamUnavailable

DEFAULT_TIMEOUT = 3.0

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Turf:
    ref: str
    name: str | None
    price_per_hour: float
    is_approved: bool


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: str
    synthetic: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "receipt": self.receipt,
            "synthetic": self.synthetic,
        }


async def _call_with_breaker(
    breaker: CircuitBreaker | None,
    method: str,
    url: str,
    payload: dict | None = None,
    auth: tuple[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    allow_404: bool = False,
):
    if breaker:
        try:
            await breaker.allow_request()
        except CircuitBreakerOpen as e:
            raise UpstreamUnavailable(str(e))

    try:
        async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=transport) as client:
            resp = await client.request(method=method, url=url, json=payload, auth=auth)
            if allow_404 and resp.status_code == 404:
                if breaker:
                    await breaker.record_success()
                return None
            resp.raise_for_status()
            if breaker:
                await breaker.record_success()
            if resp.content:
                return resp.json()
            return {}
    except httpx.TimeoutException:
        if breaker:
            await breaker.record_failure()
        raise UpstreamUnavailable(f"Timeout calling upstream: {url}")
    except httpx.HTTPStatusError as e:
        if breaker:
            await breaker.record_failure()
        logger.warning("upstream %s answered %s", url, e.response.status_code)
        raise UpstreamUnavailable(f"Upstream error {e.response.status_code}: {url}")
    except httpx.HTTPError:
        if breaker:
            await breaker.record_failure()
        raise UpstreamUnavailable(f"Bad gateway calling upstream: {url}")


# -------- TURF CATALOG --------

class HttpTurfCatalog:
    def __init__(self, base_url: str, breaker: CircuitBreaker | None = None, transport=None):
        self.base_url = base_url.rstrip("/")
        self.breaker = breaker
        self.transport = transport

    async def get_turf(self, turf_ref: str) -> Turf | None:
        data = await _call_with_breaker(
            self.breaker,
            "GET",
            f"{self.base_url}/turfs/{turf_ref}",
            transport=self.transport,
            allow_404=True,
        )
        if not data:
            return None
        return Turf(
            ref=str(data.get("_id") or data.get("id") or turf_ref),
            name=data.get("name"),
            price_per_hour=float(data.get("pricePerHour") or 0),
            is_approved=bool(data.get("isApproved")),
        )


# -------- PAYMENT GATEWAY --------

class RazorpayGateway:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str,
        breaker: CircuitBreaker | None = None,
        transport=None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.breaker = breaker
        self.transport = transport

    async def create_order(self, amount_minor_units: int, currency: str, receipt: str) -> GatewayOrder:
        data = await _call_with_breaker(
            self.breaker,
            "POST",
            f"{self.base_url}/orders",
            {"amount": amount_minor_units, "currency": currency, "receipt": receipt},
            auth=(self.key_id, self.key_secret),
            transport=self.transport,
        )
        return GatewayOrder(
            id=data["id"],
            amount=int(data.get("amount", amount_minor_units)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )
