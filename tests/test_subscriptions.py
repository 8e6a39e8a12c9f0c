import asyncio
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from chatlearn.config import settings
from chatlearn.database import SessionLocal
from chatlearn.main import app
from chatlearn.subscriptions.models import PlanTier, UserSubscription
from chatlearn.subscriptions.refresher import SubscriptionStatus, SubscriptionStatusRefresher
from chatlearn.subscriptions.service import (
    StripeSubscriptionInfo,
    check_subscription,
    get_subscription_gateway,
    plan_for_product,
)

from conftest import USER_ID, seed_chat, seed_messages


class FakeGateway:

    def __init__(self, info: StripeSubscriptionInfo):
        self.info = info
        self.emails = []

    async def lookup_async(self, email):
        self.emails.append(email)
        return self.info


def _use_gateway(info: StripeSubscriptionInfo) -> FakeGateway:
    gateway = FakeGateway(info)
    app.dependency_overrides[get_subscription_gateway] = lambda: gateway
    return gateway


def _store_user(client, email="ada@example.com"):
    resp = client.post("/api/users/store", json={"email": email, "full_name": "Ada"})
    assert resp.status_code == 200, resp.text


def _subscription_row():
    with SessionLocal() as db:
        return db.query(UserSubscription).filter(UserSubscription.user_id == USER_ID).one_or_none()


def test_active_subscription_is_upserted(client):
    _store_user(client)
    period_end = datetime(2030, 1, 1, tzinfo=timezone.utc)
    gateway = _use_gateway(StripeSubscriptionInfo(
        customer_id="cus_1",
        subscription_id="sub_1",
        product_id=settings.STRIPE_ULTRA_PRO_PRODUCT_ID,
        current_period_end=period_end,
    ))

    resp = client.post("/api/check-subscription")
    assert resp.status_code == 200, resp.text
    assert resp.json() == {
        "subscribed": True,
        "product_id": settings.STRIPE_ULTRA_PRO_PRODUCT_ID,
        "subscription_end": period_end.isoformat(),
    }
    assert gateway.emails == ["ada@example.com"]

    row = _subscription_row()
    assert row.plan == PlanTier.ULTRA_PRO
    assert row.plan_name == "Ultra Pro"
    assert row.stripe_customer_id == "cus_1"

    # A second check updates the same row
    gateway.info = StripeSubscriptionInfo(customer_id="cus_1", subscription_id="sub_2",
                                          product_id=settings.STRIPE_PRO_PRODUCT_ID)
    client.get("/api/check-subscription")
    with SessionLocal() as db:
        assert db.query(UserSubscription).count() == 1
    assert _subscription_row().plan == PlanTier.PRO


def test_inactive_subscription_removes_row(client):
    _store_user(client)
    with SessionLocal() as db:
        db.add(UserSubscription(user_id=USER_ID, plan=PlanTier.PRO, status="active"))
        db.commit()
    _use_gateway(StripeSubscriptionInfo(customer_id="cus_1"))

    resp = client.post("/api/check-subscription")
    assert resp.status_code == 200
    assert resp.json()["subscribed"] is False
    assert _subscription_row() is None


class _BrokenSession:

    def __init__(self):
        self.rolled_back = False

    async def execute(self, statement):
        raise SQLAlchemyError("database is locked")

    async def commit(self):
        pass

    async def rollback(self):
        self.rolled_back = True


def test_stale_row_cleanup_failure_does_not_fail_check():
    db = _BrokenSession()
    gateway = FakeGateway(StripeSubscriptionInfo(customer_id="cus_1"))

    result = asyncio.run(check_subscription(db, gateway, USER_ID, "ada@example.com"))

    assert result == {"subscribed": False, "product_id": None, "subscription_end": None}
    assert db.rolled_back is True


def test_check_subscription_needs_email(client):
    _use_gateway(StripeSubscriptionInfo(customer_id=None))
    resp = client.post("/api/check-subscription")
    assert resp.status_code == 400


def test_message_limit_for_free_user(client):
    chat = seed_chat()
    seed_messages(chat.id, settings.FREE_MESSAGE_LIMIT, role="user")
    seed_messages(chat.id, 3, role="assistant")

    resp = client.get("/api/message-limit")
    assert resp.status_code == 200
    assert resp.json() == {
        "message_count": settings.FREE_MESSAGE_LIMIT,
        "limit": settings.FREE_MESSAGE_LIMIT,
        "has_unlimited_access": False,
        "is_limit_reached": True,
    }


def test_message_limit_for_subscriber(client):
    with SessionLocal() as db:
        db.add(UserSubscription(user_id=USER_ID, plan=PlanTier.PRO, status="active"))
        db.commit()

    body = client.get("/api/message-limit").json()
    assert body["has_unlimited_access"] is True
    assert body["limit"] is None
    assert body["is_limit_reached"] is False


def test_plan_for_product():
    assert plan_for_product(settings.STRIPE_PRO_PRODUCT_ID) == ("Pro", PlanTier.PRO)
    assert plan_for_product("prod_other") == ("Unknown", PlanTier.PRO)
    assert plan_for_product(None) == ("Free", PlanTier.FREE)


def test_refresher_notifies_only_on_change():
    responses = [
        SubscriptionStatus(subscribed=True, product_id="prod_1"),
        SubscriptionStatus(subscribed=True, product_id="prod_1"),
        SubscriptionStatus(subscribed=False),
    ]

    async def fetch():
        return responses.pop(0)

    seen = []
    refresher = SubscriptionStatusRefresher(fetch, interval_seconds=60)
    refresher.subscribe(seen.append)

    async def scenario():
        await refresher.on_sign_in()
        await refresher.refresh("timer")
        await refresher.on_payment_return()

    asyncio.run(scenario())
    assert seen == [SubscriptionStatus(subscribed=True, product_id="prod_1"), SubscriptionStatus(subscribed=False)]


def test_refresher_skips_overlapping_checks():
    calls = []

    async def slow_fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return SubscriptionStatus(subscribed=True)

    refresher = SubscriptionStatusRefresher(slow_fetch, interval_seconds=60)

    async def scenario():
        await asyncio.gather(refresher.refresh("a"), refresher.refresh("b"))

    asyncio.run(scenario())
    assert len(calls) == 1
    assert refresher.status.subscribed is True


def test_refresher_keeps_status_on_failure():
    async def failing_fetch():
        raise RuntimeError("network down")

    refresher = SubscriptionStatusRefresher(failing_fetch, interval_seconds=60)
    refresher.status = SubscriptionStatus(subscribed=True)

    result = asyncio.run(refresher.refresh())
    assert result.subscribed is True

    refresher.on_sign_out()
    assert refresher.status == SubscriptionStatus()
