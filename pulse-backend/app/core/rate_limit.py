import time
from dataclasses import dataclass, field
from threading import Lock

from fastapi import HTTPException, Request

from app.core.config import settings


@dataclass
class _WindowState:
    timestamps: list[float] = field(default_factory=list)


class SlidingWindowRateLimiter:
    def __init__(self, *, max_requests: int, window_seconds: int):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._states: dict[str, _WindowState] = {}
        self._lock = Lock()

    def check_and_consume(self, key: str) -> int:
        """
        Consume one request token for the key.
        Returns retry-after seconds when blocked, otherwise 0.
        """
        now = time.time()
        with self._lock:
            state = self._states.setdefault(key, _WindowState())
            self._prune(state, now)
            if len(state.timestamps) >= self.max_requests:
                oldest = min(state.timestamps)
                retry_after = int((oldest + self.window_seconds) - now) + 1
                return max(retry_after, 1)
            state.timestamps.append(now)
            return 0

    def clear(self) -> None:
        with self._lock:
            self._states.clear()

    def _prune(self, state: _WindowState, now: float) -> None:
        cutoff = now - self.window_seconds
        state.timestamps = [ts for ts in state.timestamps if ts >= cutoff]


ai_suggest_rate_limiter = SlidingWindowRateLimiter(
    max_requests=settings.ai_suggest_rate_limit_requests,
    window_seconds=settings.ai_suggest_rate_limit_window_seconds,
)


def client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce_ai_suggest_rate_limit(request: Request) -> None:
    retry_after = ai_suggest_rate_limiter.check_and_consume(client_key(request))
    if retry_after:
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers={"Retry-After": str(retry_after)},
        )
