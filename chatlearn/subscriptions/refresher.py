# chatlearn/subscriptions/refresher.py
"""
Client-side cache of the caller's subscription status.

Refreshed on sign-in, on return from the payment page and on a timer. A
refresh requested while another is in flight is skipped. Listeners hear
about a new status only when it differs from the cached one.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import settings
from ..logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubscriptionStatus:
    subscribed: bool = False
    product_id: Optional[str] = None
    subscription_end: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict) -> "SubscriptionStatus":
        return cls(
            subscribed=bool(data.get("subscribed")),
            product_id=data.get("product_id"),
            subscription_end=data.get("subscription_end"),
        )


Fetcher = Callable[[], Awaitable[SubscriptionStatus]]
Listener = Callable[[SubscriptionStatus], None]


def http_fetcher(client: httpx.AsyncClient, base_url: str, token: str) -> Fetcher:
    """Fetcher that calls POST {base_url}/api/check-subscription"""

    async def fetch() -> SubscriptionStatus:
        response = await client.post(
            f"{base_url.rstrip('/')}/api/check-subscription",
            headers={"Authorization": f"Bearer {token}"},
        )
        response.raise_for_status()
        return SubscriptionStatus.from_response(response.json())

    return fetch


class SubscriptionStatusRefresher:

    def __init__(self, fetch: Fetcher, interval_seconds: float = None):
        self._fetch = fetch
        self.interval_seconds = interval_seconds or settings.SUBSCRIPTION_REFRESH_SECONDS
        self.status = SubscriptionStatus()
        self._checking = False
        self._listeners: List[Listener] = []
        self._timer: Optional[asyncio.Task] = None

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    async def refresh(self, reason: str = "manual") -> SubscriptionStatus:
        if self._checking:
            logger.debug(f"Subscription check already in flight, skipping ({reason})")
            return self.status

        self._checking = True
        try:
            new_status = await self._fetch()
        except Exception as e:
            # Keep the last known status; the next trigger tries again
            logger.warning(f"Subscription check failed ({reason}): {e}")
            return self.status
        finally:
            self._checking = False

        if new_status != self.status:
            self.status = new_status
            for listener in self._listeners:
                listener(new_status)
        return self.status

    async def on_sign_in(self) -> SubscriptionStatus:
        return await self.refresh("sign_in")

    async def on_payment_return(self) -> SubscriptionStatus:
        return await self.refresh("payment_return")

    def on_sign_out(self):
        self.stop()
        if self.status != SubscriptionStatus():
            self.status = SubscriptionStatus()
            for listener in self._listeners:
                listener(self.status)

    async def _run_timer(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.refresh("timer")

    def start(self):
        if self._timer is None or self._timer.done():
            self._timer = asyncio.get_running_loop().create_task(self._run_timer())

    def stop(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
