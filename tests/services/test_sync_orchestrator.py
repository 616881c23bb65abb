from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql.dml import Insert

from app.config import Settings
from app.models import Element, Game, SyncLog, SyncLogStatus, SyncType, UserGameStat
from app.schemas.swush import (
    SwushElement,
    SwushGame,
    SwushRound,
    SwushUser,
    SwushUserteam,
    SwushUsersPage,
)
from app.services.swush_response import SwushErrorKind, SwushResponse
from app.services.sync import SyncOrchestrator, build_sync_orchestrator, is_game_season_ended
from app.services.sync.game_sync import find_current_round


def game_response(current_round: int = 3) -> SwushResponse:
    return SwushResponse(data=SwushGame(
        game_id=77,
        game_key="allsvenskan-2026",
        userteams_count=1234,
        current_round_index=current_round,
        rounds=[
            SwushRound(index=2, state="Ended"),
            SwushRound(
                index=3,
                state="CurrentOpen",
                start=datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc),
                trade_closes=datetime(2026, 10, 24, 11, 0, tzinfo=timezone.utc),
                end=datetime(2026, 10, 26, 20, 0, tzinfo=timezone.utc),
            ),
            SwushRound(index=4, state="Pending"),
        ],
    ))


def elements_response(trend: int = 5) -> SwushResponse:
    return SwushResponse(data=[
        SwushElement(element_id=101, short_name="Berg", full_name="Marcus Berg", team_name="AIK", trend=trend),
        SwushElement(element_id=102, short_name="Ekdal", full_name="Albin Ekdal", team_name="DIF", is_injured=True),
    ])


def users_response(score: int = 50) -> SwushResponse:
    return SwushResponse(data=SwushUsersPage(
        page=1,
        pages=1,
        users=[
            SwushUser(
                id=1,
                external_id="ext-1",
                name="Anna",
                userteams=[
                    SwushUserteam(id=11, name="Anna FC", score=score, rank=3, lineup_element_ids=[101, 102]),
                    SwushUserteam(id=12, name="Anna B", score=1),
                ],
            ),
            SwushUser(id=2, external_id="ext-2", injured=1, userteams=[SwushUserteam(id=21, name="Team 2")]),
            SwushUser(id=3, external_id=None, userteams=[SwushUserteam(id=31, name="Anonymous")]),
        ],
    ))


def failure(message: str = "HTTP 500: Internal Server Error", status: int = 500) -> SwushResponse:
    return SwushResponse(error=message, status=status, error_kind=SwushErrorKind.http_error)


@pytest.fixture
def swush_client():
    client = Mock()
    client.get_game = AsyncMock(return_value=game_response())
    client.get_elements = AsyncMock(return_value=elements_response())
    client.get_all_users = AsyncMock(return_value=users_response())
    client.get_remaining_budget = AsyncMock(return_value=90)
    return client


@pytest.fixture
def orchestrator(test_session, swush_client):
    return SyncOrchestrator(
        test_session,
        swush_client,
        batch_size=1,
        game_base_url="https://manager.aftonbladet.se/se/",
    )


async def count_rows(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
class TestSyncGame:
    async def test_full_sync_writes_all_stages(self, test_session, orchestrator, sample_game):
        result = await orchestrator.sync_game(sample_game, SyncType.manual)

        assert result.success is True
        assert result.elements_synced == 2
        assert result.users_synced == 2

        game = (await test_session.execute(
            select(Game).where(Game.id == sample_game.id).execution_options(populate_existing=True)
        )).scalar_one()
        assert game.swush_game_id == 77
        assert game.current_round == 3
        assert game.total_rounds == 3
        assert game.round_state == "CurrentOpen"
        assert game.users_total == 1234
        assert game.last_synced_at is not None
        assert game.next_trade_deadline is not None
        assert game.game_url == "https://manager.aftonbladet.se/se/allsvenskan-2026"

        log = (await test_session.execute(select(SyncLog))).scalar_one()
        assert log.status == SyncLogStatus.completed
        assert log.sync_type == SyncType.manual
        assert log.elements_synced == 2
        assert log.users_synced == 2
        assert log.error_message is None
        assert log.completed_at is not None

    async def test_stages_run_in_order(self, orchestrator, swush_client, sample_game):
        calls = []
        swush_client.get_game.side_effect = lambda *a, **k: calls.append("game") or game_response()
        swush_client.get_elements.side_effect = lambda *a, **k: calls.append("elements") or elements_response()
        swush_client.get_all_users.side_effect = lambda *a, **k: calls.append("users") or users_response()

        await orchestrator.sync_game(sample_game)

        assert calls == ["game", "elements", "users"]

    async def test_element_upsert_is_idempotent(self, test_session, orchestrator, sample_game):
        await orchestrator.sync_game(sample_game)
        await orchestrator.sync_game(sample_game)

        assert await count_rows(test_session, Element) == 2

    async def test_element_resync_replaces_values(self, test_session, orchestrator, swush_client, sample_game):
        await orchestrator.sync_game(sample_game)
        swush_client.get_elements.return_value = elements_response(trend=-3)

        await orchestrator.sync_game(sample_game)

        result = await test_session.execute(
            select(Element.trend).where(Element.element_id == 101)
        )
        assert result.scalar_one() == -3

    async def test_users_without_external_id_are_skipped(self, test_session, orchestrator, sample_game):
        await orchestrator.sync_game(sample_game)

        result = await test_session.execute(select(UserGameStat).order_by(UserGameStat.external_id))
        stats = list(result.scalars().all())
        assert [s.external_id for s in stats] == ["ext-1", "ext-2"]

        # First userteam is the primary team
        assert stats[0].team_name == "Anna FC"
        assert stats[0].score == 50
        assert stats[0].rank == 3
        assert stats[0].lineup_element_ids == [101, 102]
        assert stats[1].injured_count == 1

    async def test_user_resync_updates_existing_rows(self, test_session, orchestrator, swush_client, sample_game):
        await orchestrator.sync_game(sample_game)
        swush_client.get_all_users.return_value = users_response(score=75)

        await orchestrator.sync_game(sample_game)

        assert await count_rows(test_session, UserGameStat) == 2
        result = await test_session.execute(
            select(UserGameStat.score).where(UserGameStat.external_id == "ext-1")
        )
        assert result.scalar_one() == 75

    async def test_metadata_failure_aborts_sync(self, test_session, orchestrator, swush_client, sample_game):
        swush_client.get_game.return_value = failure("HTTP 503: Service Unavailable", 503)

        result = await orchestrator.sync_game(sample_game, SyncType.scheduled)

        assert result.success is False
        assert result.error == "HTTP 503: Service Unavailable"
        swush_client.get_elements.assert_not_awaited()
        swush_client.get_all_users.assert_not_awaited()
        assert await count_rows(test_session, Element) == 0
        assert await count_rows(test_session, UserGameStat) == 0

        log = (await test_session.execute(select(SyncLog))).scalar_one()
        assert log.status == SyncLogStatus.failed
        assert log.sync_type == SyncType.scheduled
        assert log.error_message == "HTTP 503: Service Unavailable"
        assert log.completed_at is not None

    async def test_element_failure_skips_users(self, test_session, orchestrator, swush_client, sample_game):
        swush_client.get_elements.return_value = failure("BUDGET_EXHAUSTED: Daily API budget exhausted", 429)

        result = await orchestrator.sync_game(sample_game)

        assert result.success is False
        assert result.error.startswith("BUDGET_EXHAUSTED:")
        swush_client.get_all_users.assert_not_awaited()
        log = (await test_session.execute(select(SyncLog))).scalar_one()
        assert log.status == SyncLogStatus.failed

    async def test_unexpected_error_is_logged_as_failed(self, test_session, orchestrator, swush_client, sample_game):
        swush_client.get_all_users.side_effect = RuntimeError("boom")

        result = await orchestrator.sync_game(sample_game)

        assert result.success is False
        assert result.error == "boom"
        log = (await test_session.execute(select(SyncLog))).scalar_one()
        assert log.status == SyncLogStatus.failed
        assert log.error_message == "boom"


@pytest.mark.asyncio
class TestMultiGameSync:
    async def test_sync_all_active_games_is_sequential(self, orchestrator, swush_client, sample_games):
        order = []

        def get_game(subsite_key, game_key):
            order.append(game_key)
            return game_response()

        swush_client.get_game.side_effect = get_game

        result = await orchestrator.sync_all_active_games(SyncType.scheduled)

        assert result.success is True
        assert result.games_synced == 2
        assert order == ["allsvenskan-2026", "shl-2026"]

    async def test_one_failing_game_does_not_stop_others(self, orchestrator, swush_client, sample_games):
        def get_game(subsite_key, game_key):
            if game_key == "allsvenskan-2026":
                return failure("HTTP 404: Not Found", 404)
            return game_response()

        swush_client.get_game.side_effect = get_game

        result = await orchestrator.sync_all_active_games()

        assert result.games_synced == 1
        assert [f.game_key for f in result.failed_games] == ["allsvenskan-2026"]
        assert result.failed_games[0].error == "HTTP 404: Not Found"

    async def test_no_active_games(self, orchestrator, swush_client):
        result = await orchestrator.sync_all_active_games()

        assert result.success is True
        assert result.games_synced == 0
        swush_client.get_game.assert_not_awaited()

    async def test_due_games_only(self, orchestrator, sample_games):
        due = await orchestrator.get_games_due_for_sync()

        # 45 min ago on a 30 min interval is due; 10 min ago is not; inactive never is
        assert [g.game_key for g in due] == ["allsvenskan-2026"]

    async def test_sync_due_games(self, orchestrator, swush_client, sample_games):
        result = await orchestrator.sync_due_games()

        assert result.games_checked == 1
        assert result.games_synced == 1
        swush_client.get_game.assert_awaited_once_with("aftonbladet", "allsvenskan-2026")

    async def test_sync_due_games_stops_when_budget_low(self, test_session, orchestrator, swush_client, sample_games):
        swush_client.get_remaining_budget.return_value = 2

        result = await orchestrator.sync_due_games()

        assert result.games_synced == 0
        assert result.games_skipped == 1
        swush_client.get_game.assert_not_awaited()
        assert await count_rows(test_session, SyncLog) == 0


@pytest.mark.asyncio
class TestSyncLogs:
    async def test_logs_newest_first_and_filtered(self, orchestrator, swush_client, sample_games):
        await orchestrator.sync_game(sample_games[0])
        swush_client.get_game.return_value = failure()
        await orchestrator.sync_game(sample_games[1])

        logs = await orchestrator.get_sync_logs()
        assert [log.game_id for log in logs] == [2, 1]

        logs = await orchestrator.get_sync_logs(game_id=1)
        assert len(logs) == 1
        assert logs[0].status == SyncLogStatus.completed


class TestHelpers:
    def test_find_current_round_prefers_open_round(self):
        rounds = [SwushRound(index=1, state="Ended"), SwushRound(index=2, state="CurrentOpen")]
        assert find_current_round(rounds, 1).index == 2

    def test_find_current_round_falls_back_to_index(self):
        rounds = [SwushRound(index=1, state="Ended"), SwushRound(index=2, state="Pending")]
        assert find_current_round(rounds, 1).index == 1
        assert find_current_round([], 1) is None

    def test_season_ended(self):
        game = Game(current_round=38, total_rounds=38, round_state="EndedLastest")
        assert is_game_season_ended(game) is True

    def test_season_not_ended(self):
        assert is_game_season_ended(Game(current_round=37, total_rounds=38, round_state="Ended")) is False
        assert is_game_season_ended(Game(current_round=38, total_rounds=38, round_state="CurrentOpen")) is False
        assert is_game_season_ended(Game(current_round=1, total_rounds=None, round_state="Ended")) is False


@pytest.mark.asyncio
class TestBatchFailures:
    @pytest.fixture
    def fail_first_insert(self, test_session, monkeypatch):
        """Make the first upsert into each listed table raise IntegrityError."""
        original_execute = test_session.execute

        def install(*tables: str):
            pending = set(tables)

            async def execute(statement, *args, **kwargs):
                if isinstance(statement, Insert) and statement.table.name in pending:
                    pending.discard(statement.table.name)
                    raise IntegrityError(str(statement), {}, Exception("duplicate key"))
                return await original_execute(statement, *args, **kwargs)

            monkeypatch.setattr(test_session, "execute", execute)

        return install

    async def test_failed_batches_are_skipped(self, test_session, orchestrator, sample_game, fail_first_insert):
        fail_first_insert("elements", "user_game_stats")

        result = await orchestrator.sync_game(sample_game)

        assert result.success is True
        assert result.elements_synced == 1
        assert result.users_synced == 1

        element_ids = (await test_session.execute(select(Element.element_id))).scalars().all()
        assert element_ids == [102]
        external_ids = (await test_session.execute(select(UserGameStat.external_id))).scalars().all()
        assert external_ids == ["ext-2"]

        log = (await test_session.execute(select(SyncLog))).scalar_one()
        assert log.status == SyncLogStatus.completed
        assert log.elements_synced == 1
        assert log.users_synced == 1


class TestWiring:
    def test_build_sync_orchestrator_uses_settings(self, swush_client):
        settings = Settings(
            sync_batch_size=7,
            sync_min_budget_per_game=5,
            game_base_url="https://manager.example.com/se/",
            critical_deadline_minutes=30,
            critical_sync_interval_minutes=10,
        )

        orchestrator = build_sync_orchestrator(Mock(), swush_client, settings)

        assert orchestrator.client is swush_client
        assert orchestrator.min_budget_per_game == 5
        assert orchestrator.elements.batch_size == 7
        assert orchestrator.users.batch_size == 7
        assert orchestrator.game.game_base_url == "https://manager.example.com/se"
        assert orchestrator.evaluator.deadline_minutes == 30
        assert orchestrator.evaluator.critical_interval_minutes == 10
