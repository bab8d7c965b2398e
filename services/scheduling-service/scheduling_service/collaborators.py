from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ProviderProfile:
    provider_id: str
    verified: bool
    available: bool
    display_name: str | None = None


class ProfileDirectory(Protocol):
    async def get_provider_profile(self, provider_id: str) -> ProviderProfile | None: ...


class Messaging(Protocol):
    async def create_thread(self, booking_id: str, requester_id: str, provider_id: str) -> None: ...

    async def post_system_message(self, booking_id: str, content: str) -> None: ...


class Notifier(Protocol):
    async def send(
        self,
        user_id: str,
        type: str,
        title: str,
        body: str,
        channel: str,
        metadata: dict | None = None,
    ) -> None: ...


class JobQueue(Protocol):
    async def enqueue(self, job_name: str, payload: dict, delay_seconds: float) -> str: ...

    async def remove(self, job_id: str) -> bool: ...


class EventPublisher(Protocol):
    async def publish(self, routing_key: str, message_body: str, raise_on_error: bool = False): ...
