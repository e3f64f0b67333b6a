from .backoff import (
    RetryConfig,
    is_transient_error,
    retry_async,
    wait_jittered_exponential,
)
from .circuit_breaker import CircuitBreaker, CircuitState

__all__ = [
    # Backoff
    "RetryConfig",
    "is_transient_error",
    "retry_async",
    "wait_jittered_exponential",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitState",
]
