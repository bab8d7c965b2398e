import logging

import httpx

from .breaker import CircuitBreaker, CircuitBreakerOpen
from .collaborators import ProviderProfile
from .config import HTTP_TIMEOUT_SECONDS, IDENTITY_SERVICE_URL, MESSAGING_SERVICE_URL
from .errors import DependencyError

logger = logging.getLogger(__name__)


async def _call_with_breaker(
    breaker: CircuitBreaker,
    method: str,
    url: str,
    payload: dict | None = None,
    allow_404: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
):
    try:
        await breaker.allow_request()
    except CircuitBreakerOpen as e:
        raise DependencyError(str(e))

    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS, transport=transport) as client:
            resp = await client.request(method=method, url=url, json=payload)
            if allow_404 and resp.status_code == 404:
                await breaker.record_success()
                return None
            resp.raise_for_status()
            await breaker.record_success()
            if resp.content:
                return resp.json()
            return {}
    except httpx.TimeoutException:
        await breaker.record_failure()
        raise DependencyError(f"Timeout calling upstream: {url}")
    except httpx.HTTPStatusError as e:
        await breaker.record_failure()
        raise DependencyError(f"Upstream {url} returned {e.response.status_code}")
    except httpx.HTTPError as e:
        await breaker.record_failure()
        raise DependencyError(f"Bad gateway calling upstream {url}: {e}")


class ProfileClient:
    def __init__(self, redis_client, base_url: str = IDENTITY_SERVICE_URL, transport=None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.breaker = CircuitBreaker(redis_client, "identity-service")

    async def get_provider_profile(self, provider_id: str) -> ProviderProfile | None:
        data = await _call_with_breaker(
            self.breaker,
            "GET",
            f"{self.base_url}/providers/{provider_id}/profile",
            allow_404=True,
            transport=self.transport,
        )
        if data is None:
            return None
        return ProviderProfile(
            provider_id=provider_id,
            verified=bool(data.get("verified")),
            available=bool(data.get("available")),
            display_name=data.get("displayName") or data.get("name"),
        )


class MessagingClient:
    def __init__(self, redis_client, base_url: str = MESSAGING_SERVICE_URL, transport=None):
        self.base_url = base_url.rstrip("/")
        self.transport = transport
        self.breaker = CircuitBreaker(redis_client, "messaging-service")

    async def create_thread(self, booking_id: str, requester_id: str, provider_id: str) -> None:
        await _call_with_breaker(
            self.breaker,
            "POST",
            f"{self.base_url}/threads",
            {"bookingId": booking_id, "requesterId": requester_id, "providerId": provider_id},
            transport=self.transport,
        )

    async def post_system_message(self, booking_id: str, content: str) -> None:
        await _call_with_breaker(
            self.breaker,
            "POST",
            f"{self.base_url}/threads/{booking_id}/system-messages",
            {"content": content},
            transport=self.transport,
        )
