"""Page walker for SWUSH collection endpoints."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from app.services.swush_response import SwushResponse

logger = logging.getLogger(__name__)

PageFetcher = Callable[[int, int], Awaitable[SwushResponse]]


class PaginatedFetcher:
    """
    Fetch every page of a paginated collection, sequentially.

    Page 1 tells us how many pages exist; if it fails, its response is
    returned unchanged. Later pages are fetched one at a time with
    ``page_delay_seconds`` between requests (SWUSH allows one request per
    second but does not always answer with 429). A failed later page is
    logged and skipped, so the result is the union of the pages that came
    back.
    """

    def __init__(
        self,
        page_size: int = 5000,
        page_delay_seconds: float = 1.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.page_size = page_size
        self.page_delay_seconds = page_delay_seconds
        self._sleep = sleep

    async def fetch_all(
        self,
        fetch_page: PageFetcher,
        items_field: str = "users",
        on_progress: Callable[[int, int], None] | None = None,
    ) -> SwushResponse:
        """
        Args:
            fetch_page: ``(page, page_size) -> SwushResponse`` whose data is a
                pydantic model with ``page``, ``pages`` and ``items_field``.
            items_field: Name of the list attribute holding the page items.
            on_progress: Called with ``(page, total_pages)`` after each page.

        Returns:
            A response shaped like a single page, holding every collected
            item, with ``page`` and ``pages`` set to 1.
        """
        first = await fetch_page(1, self.page_size)
        if not first.ok:
            return first

        first_page: BaseModel = first.data
        total_pages = max(1, int(getattr(first_page, "pages", 1) or 1))
        items = list(getattr(first_page, items_field))
        failed_pages: list[int] = []

        if on_progress:
            on_progress(1, total_pages)

        for page in range(2, total_pages + 1):
            await self._sleep(self.page_delay_seconds)

            response = await fetch_page(page, self.page_size)
            if not response.ok:
                logger.error(f"Failed to fetch page {page}/{total_pages}: {response.error}")
                failed_pages.append(page)
                continue

            items.extend(getattr(response.data, items_field))
            if on_progress:
                on_progress(page, total_pages)

        if failed_pages:
            logger.warning(
                f"Paginated fetch skipped {len(failed_pages)} of {total_pages} pages: {failed_pages}"
            )

        merged = first_page.model_copy(update={items_field: items, "page": 1, "pages": 1})
        return SwushResponse(
            data=merged,
            status=200,
            url=first.url,
            duration_ms=first.duration_ms,
        )
