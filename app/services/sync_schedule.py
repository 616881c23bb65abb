"""
Sync schedule evaluation.

Decides which games are due for a SWUSH sync and ranks them for the
dashboard. Pure functions over Game rows: no database access, no network.
"""
import logging
from datetime import datetime, timedelta

from app.config import Settings
from app.models import Game
from app.schemas.sync import (
    CriticalPeriod,
    CriticalPeriodType,
    GameSyncSchedule,
    RoundInfo,
    SyncPriority,
)
from app.utils.timestamps import ensure_utc, minutes_between, utcnow

logger = logging.getLogger(__name__)

ENDED_ROUND_STATES = ("Ended", "EndedLastest")

PRIORITY_ORDER = {
    SyncPriority.critical: 0,
    SyncPriority.overdue: 1,
    SyncPriority.routine: 2,
    SyncPriority.idle: 3,
}


def _interval(game: Game) -> int | None:
    value = game.sync_interval_minutes
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


def _as_datetime(value) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    return ensure_utc(value)


def _as_int(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _as_str(value) -> str | None:
    return value if isinstance(value, str) else None


class SyncScheduleEvaluator:
    """Due check and priority ranking for games."""

    def __init__(
        self,
        round_start_minutes: int = 120,
        deadline_minutes: int = 120,
        round_ended_minutes: int = 60,
        critical_interval_minutes: int = 15,
    ):
        self.round_start_minutes = round_start_minutes
        self.deadline_minutes = deadline_minutes
        self.round_ended_minutes = round_ended_minutes
        self.critical_interval_minutes = critical_interval_minutes

    def is_due(self, game: Game, now: datetime | None = None) -> bool:
        """
        A game is due when it has never synced, or when at least
        ``sync_interval_minutes`` passed since its last sync.

        Inactive games and games with an unusable interval are never due.
        """
        try:
            if not game.is_active:
                return False
            last_synced = game.last_synced_at
            if last_synced is None:
                return True
            last_synced = _as_datetime(last_synced)
            interval = _interval(game)
            if last_synced is None or interval is None:
                return False
            return minutes_between(last_synced, now or utcnow()) >= interval
        except Exception as e:
            logger.warning(f"Could not evaluate due state for game {getattr(game, 'id', None)}: {e}")
            return False

    def due_games(self, games: list[Game], now: datetime | None = None) -> list[Game]:
        now = now or utcnow()
        return [g for g in games if self.is_due(g, now)]

    def critical_period(self, game: Game, now: datetime | None = None) -> CriticalPeriod | None:
        """
        The critical window the game is currently in, if any.

        Checked in order: round starting soon, trade deadline soon, round
        ended recently.
        """
        now = now or utcnow()

        round_start = _as_datetime(game.current_round_start)
        if round_start is not None:
            minutes_until = minutes_between(now, round_start)
            if 0 < minutes_until <= self.round_start_minutes:
                return CriticalPeriod(
                    type=CriticalPeriodType.round_starting,
                    label=f"Round {game.current_round} starting in {round(minutes_until)} min",
                    event_time=round_start,
                    minutes_until_event=round(minutes_until),
                )

        deadline = _as_datetime(game.next_trade_deadline)
        if deadline is not None:
            minutes_until = minutes_between(now, deadline)
            if 0 < minutes_until <= self.deadline_minutes:
                return CriticalPeriod(
                    type=CriticalPeriodType.trade_deadline,
                    label=f"Trade deadline in {round(minutes_until)} min",
                    event_time=deadline,
                    minutes_until_event=round(minutes_until),
                )

        round_end = _as_datetime(game.current_round_end)
        if round_end is not None and game.round_state in ENDED_ROUND_STATES:
            minutes_since = minutes_between(round_end, now)
            if 0 <= minutes_since <= self.round_ended_minutes:
                return CriticalPeriod(
                    type=CriticalPeriodType.round_ended,
                    label=f"Round ended {round(minutes_since)} min ago",
                    event_time=round_end,
                    minutes_until_event=-round(minutes_since),
                )

        return None

    def evaluate(self, game: Game, now: datetime | None = None) -> GameSyncSchedule:
        now = now or utcnow()
        interval = _interval(game)
        last_synced = _as_datetime(game.last_synced_at)

        try:
            critical = self.critical_period(game, now) if game.is_active else None
        except Exception as e:
            logger.warning(f"Could not evaluate critical period for game {game.id}: {e}")
            critical = None

        effective_interval = interval
        if critical is not None and interval is not None:
            effective_interval = min(interval, self.critical_interval_minutes)

        minutes_since_sync = None
        if last_synced is None or effective_interval is None:
            next_sync_at = now
        else:
            minutes_since_sync = round(minutes_between(last_synced, now))
            next_sync_at = last_synced + timedelta(minutes=effective_interval)
        minutes_until_sync = round(minutes_between(now, next_sync_at))

        if not game.is_active:
            priority, reason = SyncPriority.idle, "Game is inactive"
        elif critical is not None:
            priority, reason = SyncPriority.critical, critical.label
        elif minutes_until_sync <= 0:
            priority, reason = SyncPriority.overdue, f"Overdue by {abs(minutes_until_sync)} min"
        else:
            priority, reason = SyncPriority.routine, f"Next sync in {minutes_until_sync} min"

        return GameSyncSchedule(
            game_id=_as_int(game.id),
            game_name=_as_str(game.name),
            game_key=_as_str(game.game_key),
            is_active=bool(game.is_active),
            is_due=self.is_due(game, now),
            last_synced_at=last_synced,
            minutes_since_sync=minutes_since_sync,
            sync_interval_minutes=interval,
            effective_interval_minutes=effective_interval,
            next_sync_at=next_sync_at,
            minutes_until_sync=minutes_until_sync,
            priority=priority,
            priority_reason=reason,
            round_info=RoundInfo(
                current_round=_as_int(game.current_round),
                total_rounds=_as_int(game.total_rounds),
                round_state=_as_str(game.round_state),
                current_round_start=_as_datetime(game.current_round_start),
                current_round_end=_as_datetime(game.current_round_end),
                next_trade_deadline=_as_datetime(game.next_trade_deadline),
            ),
            in_critical_period=critical is not None,
            critical_period=critical,
        )

    def build_schedule(self, games: list[Game], now: datetime | None = None) -> list[GameSyncSchedule]:
        """Schedule for all games: critical, overdue, routine by soonest, then idle."""
        now = now or utcnow()
        schedule = [self.evaluate(g, now) for g in games]
        schedule.sort(key=lambda s: (PRIORITY_ORDER[s.priority], s.minutes_until_sync))
        return schedule


def build_schedule_evaluator(settings: Settings) -> SyncScheduleEvaluator:
    return SyncScheduleEvaluator(
        round_start_minutes=settings.critical_round_start_minutes,
        deadline_minutes=settings.critical_deadline_minutes,
        round_ended_minutes=settings.critical_round_ended_minutes,
        critical_interval_minutes=settings.critical_sync_interval_minutes,
    )
