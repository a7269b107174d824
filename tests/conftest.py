import json
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from turf_shared.database import get_engine, get_session, init_models

from reservation_service import models  # noqa: F401  (registers tables)
from reservation_service.capabilities import Actor
from reservation_service.clients import GatewayOrder, Turf
from reservation_service.config import Settings
from reservation_service.container import build_services
from reservation_service.payments import compute_signature

GATEWAY_SECRET = "test_gateway_secret"
JWT_SECRET = "testsecret"
TURF = "turf-1"
DATE = "2025-10-20"
SLOT = {"start_time": "10:00", "end_time": "11:00"}
SLOT_2 = {"start_time": "11:00", "end_time": "12:00"}


class FakeCatalog:
    def __init__(self):
        self.turfs = {}

    def add(self, ref, price_per_hour, approved=True, name=None):
        self.turfs[ref] = Turf(ref=ref, name=name or ref, price_per_hour=price_per_hour, is_approved=approved)

    async def get_turf(self, turf_ref):
        return self.turfs.get(turf_ref)


class FakeGateway:
    def __init__(self):
        self.orders = []

    async def create_order(self, amount_minor_units, currency, receipt):
        order = GatewayOrder(
            id=f"order_{len(self.orders) + 1}", amount=amount_minor_units, currency=currency, receipt=receipt
        )
        self.orders.append(order)
        return order


class FakePublisher:
    enabled = True

    def __init__(self):
        self.messages = []

    async def connect(self):
        return None

    async def publish(self, routing_key, message_body):
        self.messages.append((routing_key, json.loads(message_body)))

    async def close(self):
        return None

    def of(self, routing_key):
        return [event for key, event in self.messages if key == routing_key]


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.ops = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self

        return queue

    async def execute(self):
        results = []
        for name, args, kwargs in self.ops:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.ops = []
        return results


class FakeRedis:
    def __init__(self):
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def expire(self, key, seconds):
        return key in self.data

    def pipeline(self):
        return FakePipeline(self)


def sign(order_id: str, payment_id: str, secret: str = GATEWAY_SECRET) -> str:
    return compute_signature(secret, order_id, payment_id)


async def pay(services, actor, reservation_id, payment_id="pay_1"):
    order = await services.payments.create_order(reservation_id, actor)
    return await services.payments.verify(
        reservation_id, order.id, payment_id, sign(order.id, payment_id), actor
    )


@pytest.fixture
def clock():
    return Clock(datetime(2025, 10, 19, 12, 0, 0))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}",
        pending_ttl_seconds=900,
        reaper_interval_seconds=0.01,
        gateway_key_secret=GATEWAY_SECRET,
        jwt_secret=JWT_SECRET,
        analytics_log_path=str(tmp_path / "logs" / "analytics.log"),
        alerts_log_path=str(tmp_path / "logs" / "alerts.log"),
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = get_engine(settings.database_url)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session(engine)


@pytest.fixture
def catalog():
    c = FakeCatalog()
    c.add(TURF, 500, name="Turf 1")
    c.add("turf-unapproved", 700, approved=False)
    return c


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def services(settings, session_factory, catalog, publisher, gateway, clock):
    return build_services(settings, session_factory, catalog, publisher, gateway=gateway, clock=clock)


@pytest.fixture
def user():
    return Actor(id="u1", roles=["user"], email="t@test.com", name="Test")


@pytest.fixture
def other_user():
    return Actor(id="u2", roles=["user"], email="o@test.com", name="Other")


@pytest.fixture
def admin():
    return Actor(id="a1", roles=["admin"], email="a@a.com", name="Admin")


@pytest.fixture
def superadmin():
    return Actor(id="s1", roles=["superadmin"], email="s@a.com", name="Super")
