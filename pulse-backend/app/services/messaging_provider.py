import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from app.core.config import settings

SEND_STATUS_SENT = "SENT"
SEND_STATUS_FAILED = "FAILED"


@dataclass(frozen=True)
class MessageSendRequest:
    campaign_id: str
    recipient: str
    content: str


@dataclass(frozen=True)
class MessageSendResult:
    provider: str
    message_id: str | None
    status: str
    error: str | None = None


class MessagingProvider(Protocol):
    name: str

    def send_message(self, request: MessageSendRequest) -> MessageSendResult:
        ...


def probability_decision(probability: float, rng: random.Random | None = None) -> Callable[[], bool]:
    """Independent Bernoulli draw per call."""
    draw = (rng or random.Random()).random

    def should_succeed() -> bool:
        return draw() < probability

    return should_succeed


class SimulatedProvider:
    """Pretends to deliver; the outcome of each attempt comes from ``should_succeed``."""

    name = "simulated"

    def __init__(self, should_succeed: Callable[[], bool] | None = None):
        self._should_succeed = should_succeed or probability_decision(settings.dispatch_success_probability)

    def send_message(self, request: MessageSendRequest) -> MessageSendResult:
        if self._should_succeed():
            return MessageSendResult(
                provider=self.name,
                message_id=f"msg-{uuid.uuid4().hex[:14]}",
                status=SEND_STATUS_SENT,
            )
        return MessageSendResult(
            provider=self.name,
            message_id=None,
            status=SEND_STATUS_FAILED,
            error="Simulated delivery failure",
        )


_MESSAGING_PROVIDERS: dict[str, Callable[[], MessagingProvider]] = {
    "simulated": SimulatedProvider,
}


def build_messaging_provider(name: str) -> MessagingProvider:
    normalized = (name or "").strip().lower()
    factory = _MESSAGING_PROVIDERS.get(normalized)
    if not factory:
        available = ", ".join(sorted(_MESSAGING_PROVIDERS))
        raise ValueError(f"Unknown messaging provider '{name}'. Available: {available}")
    return factory()


def get_messaging_provider() -> MessagingProvider:
    return build_messaging_provider("simulated")
