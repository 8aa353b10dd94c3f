"""
Circuit breakers for the payment gateway and the social analytics provider.

Only provider failures (``ExternalServiceException``: 5xx, timeouts, network
errors) count towards opening a breaker. Business rejections are raised by the
clients after ``execute`` returns and never trip it.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from reach.core.exceptions import CircuitBreakerOpenError, ExternalServiceException
from reach.core.logging import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3


class CircuitBreaker:
    """
    Breaker for one provider.

    Consecutive provider failures open it; after ``timeout_seconds`` a limited
    number of trial calls decide whether it closes again.
    """

    _registry: dict[str, "CircuitBreaker"] = {}
    _registry_lock = threading.Lock()

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self._trial_successes = 0
        self._trial_calls = 0
        self._opened_at = 0.0
        # threading.Lock: Celery tasks run each call on a fresh event loop
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls, service_name: str, config: CircuitBreakerConfig | None = None) -> "CircuitBreaker":
        with cls._registry_lock:
            if service_name not in cls._registry:
                cls._registry[service_name] = cls(service_name, config)
            return cls._registry[service_name]

    @classmethod
    def reset_all(cls) -> None:
        with cls._registry_lock:
            cls._registry.clear()

    @classmethod
    def snapshot(cls) -> dict[str, str]:
        """State per provider, for the readiness check"""
        with cls._registry_lock:
            return {name: breaker.state.value for name, breaker in cls._registry.items()}

    def _move_to(self, new_state: CircuitState) -> None:
        """Caller holds self._lock"""
        logger.info(
            "Provider circuit changed state",
            extra_data={
                "service": self.service_name,
                "old_state": self.state.value,
                "new_state": new_state.value,
            },
        )
        self.state = new_state
        self._trial_successes = 0
        self._trial_calls = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state == CircuitState.CLOSED:
            self.failure_count = 0

    def get_retry_after(self) -> float:
        """Seconds until a trial call may go through"""
        if self.state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.config.timeout_seconds - (time.monotonic() - self._opened_at))

    async def can_execute(self) -> bool:
        with self._lock:
            if self.state == CircuitState.OPEN:
                if self.get_retry_after() > 0:
                    return False
                self._move_to(CircuitState.HALF_OPEN)

            if self.state == CircuitState.HALF_OPEN:
                if self._trial_calls >= self.config.half_open_max_calls:
                    return False
                self._trial_calls += 1
            return True

    async def record_success(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self._trial_successes += 1
                if self._trial_successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)
            else:
                self.failure_count = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self.failure_count += 1
            logger.warning(
                "Provider call failed",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self.failure_count,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                },
            )
            if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
                self._move_to(CircuitState.OPEN)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """
        Await ``func(*args)`` unless the breaker is open.

        Raises:
            CircuitBreakerOpenError: the provider is cooling down
        """
        if not await self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, round(self.get_retry_after(), 1))

        try:
            result = await func(*args)
        except ExternalServiceException as e:
            await self.record_failure(e)
            raise

        await self.record_success()
        return result


def get_paystack_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "paystack",
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=60.0),
    )


def get_social_analytics_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        "social_analytics",
        CircuitBreakerConfig(failure_threshold=3, success_threshold=1, timeout_seconds=120.0),
    )
