from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict

from app.models.sync_log import SyncLogStatus, SyncType


class SyncStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncResponse(BaseModel):
    status: SyncStatus
    message: str
    details: dict | None = None


class FailedGame(BaseModel):
    game_key: str
    error: str


class SyncResult(BaseModel):
    """Outcome of a single-game sync or a multi-game run."""

    success: bool
    games_synced: int = 0
    elements_synced: int = 0
    users_synced: int = 0
    error: str | None = None
    games_checked: int = 0
    games_skipped: int = 0
    failed_games: list[FailedGame] = []


class SyncPriority(str, Enum):
    critical = "critical"
    overdue = "overdue"
    routine = "routine"
    idle = "idle"


class CriticalPeriodType(str, Enum):
    round_starting = "round_starting"
    trade_deadline = "trade_deadline"
    round_ended = "round_ended"


class CriticalPeriod(BaseModel):
    type: CriticalPeriodType
    label: str
    event_time: datetime
    minutes_until_event: int  # negative for events in the past


class RoundInfo(BaseModel):
    current_round: int | None = None
    total_rounds: int | None = None
    round_state: str | None = None
    current_round_start: datetime | None = None
    current_round_end: datetime | None = None
    next_trade_deadline: datetime | None = None


class GameSyncSchedule(BaseModel):
    game_id: int | None = None
    game_name: str | None = None
    game_key: str | None = None
    is_active: bool
    is_due: bool
    last_synced_at: datetime | None = None
    minutes_since_sync: int | None = None
    sync_interval_minutes: int | None = None
    effective_interval_minutes: int | None = None
    next_sync_at: datetime
    minutes_until_sync: int  # negative = overdue
    priority: SyncPriority
    priority_reason: str
    round_info: RoundInfo
    in_critical_period: bool = False
    critical_period: CriticalPeriod | None = None


class SyncScheduleResponse(BaseModel):
    schedule: list[GameSyncSchedule]
    generated_at: datetime


class BudgetResponse(BaseModel):
    date: str
    used: int
    remaining: int
    cap: int


class SyncLogResponse(BaseModel):
    id: int
    game_id: int
    sync_type: SyncType
    status: SyncLogStatus
    users_synced: int | None = 0
    elements_synced: int | None = 0
    error_message: str | None = None
    started_at: datetime
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
