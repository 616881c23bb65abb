import enum
from dataclasses import dataclass, replace
from typing import Generic, TypeVar

T = TypeVar("T")

# Prefix for client-side budget exhaustion messages (distinct from a server 429)
BUDGET_EXHAUSTED_PREFIX = "BUDGET_EXHAUSTED:"


class SwushErrorKind(str, enum.Enum):
    budget_exhausted = "budget_exhausted"
    rate_limited = "rate_limited"
    http_error = "http_error"
    timeout = "timeout"
    network = "network"
    invalid_payload = "invalid_payload"


@dataclass
class SwushResponse(Generic[T]):
    """Classified outcome of one SWUSH call. Expected failures never raise."""

    data: T | None = None
    error: str | None = None
    status: int = 200
    duration_ms: int | None = None
    url: str | None = None
    retry_after_seconds: float | None = None
    error_kind: SwushErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None

    @property
    def budget_exhausted(self) -> bool:
        return self.error_kind == SwushErrorKind.budget_exhausted

    def with_data(self, data) -> "SwushResponse":
        return replace(self, data=data)
