import pytest

from app.schemas.swush import SwushUser, SwushUsersPage
from app.services.pagination import PaginatedFetcher
from app.services.swush_response import SwushResponse


def users_page(page: int, pages: int, ids: list[int]) -> SwushResponse:
    return SwushResponse(
        data=SwushUsersPage(
            page=page,
            pages=pages,
            users_total=pages * len(ids),
            users=[SwushUser(id=i, external_id=f"ext-{i}") for i in ids],
        ),
        url=f"https://swush.test/users?page={page}",
    )


@pytest.fixture
def delays():
    return []


@pytest.fixture
def fetcher(delays):
    async def fake_sleep(delay):
        delays.append(delay)

    return PaginatedFetcher(page_size=2, page_delay_seconds=1.1, sleep=fake_sleep)


@pytest.mark.asyncio
class TestPaginatedFetcher:
    async def test_collects_every_page_in_order(self, fetcher, delays):
        requested = []

        async def fetch_page(page, page_size):
            requested.append((page, page_size))
            return users_page(page, 3, [page * 10, page * 10 + 1])

        response = await fetcher.fetch_all(fetch_page)

        assert response.ok
        assert requested == [(1, 2), (2, 2), (3, 2)]
        assert [u.id for u in response.data.users] == [10, 11, 20, 21, 30, 31]
        assert response.data.page == 1
        assert response.data.pages == 1
        assert delays == [1.1, 1.1]

    async def test_failed_middle_page_returns_union_of_others(self, fetcher):
        async def fetch_page(page, page_size):
            if page == 3:
                return SwushResponse(error="HTTP 503: Service Unavailable", status=503)
            return users_page(page, 4, [page])

        response = await fetcher.fetch_all(fetch_page)

        assert response.ok
        assert response.status == 200
        assert [u.id for u in response.data.users] == [1, 2, 4]

    async def test_first_page_failure_is_returned_as_is(self, fetcher, delays):
        failure = SwushResponse(error="HTTP 500: Internal Server Error", status=500)
        calls = []

        async def fetch_page(page, page_size):
            calls.append(page)
            return failure

        response = await fetcher.fetch_all(fetch_page)

        assert response is failure
        assert calls == [1]
        assert delays == []

    async def test_single_page(self, fetcher, delays):
        async def fetch_page(page, page_size):
            return users_page(page, 1, [1, 2])

        response = await fetcher.fetch_all(fetch_page)

        assert len(response.data.users) == 2
        assert delays == []

    async def test_reports_progress(self, fetcher):
        progress = []

        async def fetch_page(page, page_size):
            return users_page(page, 2, [page])

        await fetcher.fetch_all(fetch_page, on_progress=lambda p, t: progress.append((p, t)))

        assert progress == [(1, 2), (2, 2)]
