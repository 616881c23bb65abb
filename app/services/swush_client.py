import asyncio
import logging
import time
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import urlencode

import httpx
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.schemas.swush import (
    SwushApiKeyCheck,
    SwushElement,
    SwushGame,
    SwushUsersPage,
)
from app.services.api_budget import ApiBudgetGovernor
from app.services.pagination import PaginatedFetcher
from app.services.retry_policy import RetryPolicy
from app.services.swush_response import (
    BUDGET_EXHAUSTED_PREFIX,
    SwushErrorKind,
    SwushResponse,
)
from app.utils.errors import describe_exception
from app.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

VALID_API_KEY_MESSAGE = "Ok: Valid API Key"

_GAME_ADAPTER = TypeAdapter(SwushGame)
_ELEMENTS_ADAPTER = TypeAdapter(list[SwushElement])
_USERS_PAGE_ADAPTER = TypeAdapter(SwushUsersPage)
_API_KEY_CHECK_ADAPTER = TypeAdapter(SwushApiKeyCheck)


class RequestBudget(Protocol):
    cap: int

    async def consume(self) -> bool: ...

    async def get_used(self) -> int: ...

    async def get_remaining(self) -> int: ...


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header (delta-seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = ensure_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    return max(0.0, (when - utcnow()).total_seconds())


class SwushClient:
    """Client for the SWUSH partner API (x-api-key auth, GET only)."""

    USER_AGENT = "Mozilla/5.0 (compatible; SWUSH-Manager/1.0)"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        budget: RequestBudget,
        retry_policy: RetryPolicy | None = None,
        fetcher: PaginatedFetcher | None = None,
        timeout: float = 60.0,
        slow_request_seconds: float = 5.0,
        max_page_size: int = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.budget = budget
        self.retry_policy = retry_policy or RetryPolicy()
        self.fetcher = fetcher or PaginatedFetcher(page_size=max_page_size, sleep=sleep)
        self.timeout = timeout
        self.slow_request_seconds = slow_request_seconds
        self.max_page_size = max_page_size
        self._transport = transport
        self._sleep = sleep

    def get_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "Accept": "application/json",
            "User-Agent": self.USER_AGENT,
        }

    async def request(self, endpoint: str) -> SwushResponse[Any]:
        """
        Make one GET request, after charging it to the daily budget.

        Never raises for expected failures. Timeouts come back as 408 and
        network failures as 500 with the unwrapped cause chain in ``error``.
        """
        if not await self.budget.consume():
            remaining = await self.budget.get_remaining()
            cap = self.budget.cap
            message = (
                f"{BUDGET_EXHAUSTED_PREFIX} Daily API budget exhausted "
                f"({cap - remaining}/{cap} requests). Resets at midnight UTC."
            )
            logger.error(f"SWUSH {message}")
            return SwushResponse(
                error=message,
                status=429,
                error_kind=SwushErrorKind.budget_exhausted,
            )

        url = f"{self.base_url}{endpoint}"
        started = time.perf_counter()
        logger.debug(f"SWUSH fetching {url}")

        try:
            async with httpx.AsyncClient(
                headers=self.get_headers(),
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            duration_ms = self._elapsed_ms(started)
            logger.error(f"SWUSH request timeout after {self.timeout}s: {url} ({duration_ms}ms)")
            return SwushResponse(
                error=f"Request timeout after {self.timeout}s for {endpoint}",
                status=408,
                url=url,
                duration_ms=duration_ms,
                error_kind=SwushErrorKind.timeout,
            )
        except httpx.HTTPError as e:
            duration_ms = self._elapsed_ms(started)
            detailed = describe_exception(e)
            logger.error(f"SWUSH network error on {url} ({duration_ms}ms): {detailed}")
            return SwushResponse(
                error=detailed,
                status=500,
                url=url,
                duration_ms=duration_ms,
                error_kind=SwushErrorKind.network,
            )

        duration_ms = self._elapsed_ms(started)

        if not response.is_success:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.error(
                f"SWUSH HTTP error {response.status_code} on {url} ({duration_ms}ms, "
                f"retry_after={retry_after}): {response.text[:500]}"
            )
            return SwushResponse(
                error=f"HTTP {response.status_code}: {response.reason_phrase}",
                status=response.status_code,
                url=url,
                duration_ms=duration_ms,
                retry_after_seconds=retry_after,
                error_kind=(
                    SwushErrorKind.rate_limited
                    if response.status_code == 429
                    else SwushErrorKind.http_error
                ),
            )

        try:
            data = response.json()
        except ValueError:
            logger.error(f"SWUSH invalid JSON response from {url} ({duration_ms}ms)")
            return SwushResponse(
                error="Invalid JSON response from SWUSH API",
                status=500,
                url=url,
                duration_ms=duration_ms,
                error_kind=SwushErrorKind.invalid_payload,
            )

        if duration_ms > self.slow_request_seconds * 1000:
            logger.warning(f"SWUSH slow request: {url} took {duration_ms}ms")

        return SwushResponse(
            data=data,
            status=response.status_code,
            url=url,
            duration_ms=duration_ms,
        )

    async def request_with_retry(self, endpoint: str) -> SwushResponse[Any]:
        """``request`` wrapped in the retry policy; returns the last response on exhaustion."""
        retrying = self.retry_policy.retrying(sleep=self._sleep, label=endpoint)
        return await retrying(self.request, endpoint)

    def _validate(self, response: SwushResponse, adapter: TypeAdapter) -> SwushResponse:
        if not response.ok:
            return response
        try:
            return response.with_data(adapter.validate_python(response.data))
        except ValidationError as e:
            logger.error(f"SWUSH payload from {response.url} failed validation: {e}")
            return SwushResponse(
                error=f"Invalid SWUSH payload from {response.url}: {e.error_count()} validation error(s)",
                status=502,
                url=response.url,
                duration_ms=response.duration_ms,
                error_kind=SwushErrorKind.invalid_payload,
            )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    # ==================== Endpoints ====================

    async def verify_api_key(self) -> bool:
        """Check the API key. Single attempt; still charged to the budget."""
        response = self._validate(await self.request("/apikeycheck"), _API_KEY_CHECK_ADAPTER)
        return response.ok and response.data.message == VALID_API_KEY_MESSAGE

    async def get_game(self, subsite_key: str, game_key: str) -> SwushResponse[SwushGame]:
        """Game details including rounds."""
        response = await self.request_with_retry(
            f"/season/subsites/{subsite_key}/games/{game_key}"
        )
        return self._validate(response, _GAME_ADAPTER)

    async def get_elements(
        self, subsite_key: str, game_key: str, round: int | None = None
    ) -> SwushResponse[list[SwushElement]]:
        """
        All elements (players) of a game.

        Args:
            round: Round index; SWUSH defaults to the latest ended round.
        """
        query = f"?{urlencode({'round': round})}" if round is not None else ""
        response = await self.request_with_retry(
            f"/season/subsites/{subsite_key}/games/{game_key}/elements{query}"
        )
        return self._validate(response, _ELEMENTS_ADAPTER)

    async def get_users(
        self,
        subsite_key: str,
        game_key: str,
        page: int = 1,
        page_size: int | None = None,
        include_userteams: bool = True,
        round: int | None = None,
    ) -> SwushResponse[SwushUsersPage]:
        """One page of users; ``page_size`` is clamped to the server maximum."""
        actual_page_size = min(page_size or self.max_page_size, self.max_page_size)
        params: dict[str, Any] = {
            "includeUserteams": "true" if include_userteams else "false",
            "includeLineups": "true",
            "page": page,
            "pageSize": actual_page_size,
        }
        if round is not None:
            params["round"] = round
        response = await self.request_with_retry(
            f"/season/subsites/{subsite_key}/games/{game_key}/users?{urlencode(params)}"
        )
        return self._validate(response, _USERS_PAGE_ADAPTER)

    async def get_all_users(
        self,
        subsite_key: str,
        game_key: str,
        on_progress: Callable[[int, int], None] | None = None,
        round: int | None = None,
    ) -> SwushResponse[SwushUsersPage]:
        """All users of a game, every page. Slow for large games (one page per ~1s)."""

        async def fetch_page(page: int, page_size: int) -> SwushResponse[SwushUsersPage]:
            return await self.get_users(subsite_key, game_key, page, page_size, True, round)

        return await self.fetcher.fetch_all(fetch_page, items_field="users", on_progress=on_progress)

    async def get_remaining_budget(self) -> int:
        return await self.budget.get_remaining()


def build_swush_client(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SwushClient:
    """Wire a client, its budget governor and retry policy from settings."""
    if not settings.swush_api_base_url or not settings.swush_api_key:
        raise ValueError(
            "Missing SWUSH API configuration (SWUSH_API_BASE_URL, SWUSH_API_KEY)"
        )

    budget = ApiBudgetGovernor(
        session_factory,
        daily_limit=settings.swush_daily_request_limit,
        reserve=settings.swush_daily_request_reserve,
        warn_threshold=settings.swush_daily_request_warn,
    )
    policy = RetryPolicy(
        max_retries=settings.swush_max_retries,
        base_delay_seconds=settings.swush_retry_base_delay_seconds,
        max_rate_limit_retries=settings.swush_max_rate_limit_retries,
        default_rate_limit_wait_seconds=settings.swush_default_rate_limit_wait_seconds,
        max_rate_limit_wait_seconds=settings.swush_max_rate_limit_wait_seconds,
    )
    fetcher = PaginatedFetcher(
        page_size=settings.swush_page_size,
        page_delay_seconds=settings.swush_page_delay_seconds,
        sleep=sleep,
    )
    return SwushClient(
        base_url=settings.swush_api_base_url,
        api_key=settings.swush_api_key,
        budget=budget,
        retry_policy=policy,
        fetcher=fetcher,
        timeout=settings.swush_timeout_seconds,
        slow_request_seconds=settings.swush_slow_request_seconds,
        max_page_size=settings.swush_page_size,
        transport=transport,
        sleep=sleep,
    )
