from app.models.game import Game, SportType
from app.models.element import Element
from app.models.user_game_stat import UserGameStat
from app.models.sync_log import SyncLog, SyncLogStatus, SyncType
from app.models.api_budget import ApiBudget

__all__ = [
    "Game",
    "SportType",
    "Element",
    "UserGameStat",
    "SyncLog",
    "SyncLogStatus",
    "SyncType",
    "ApiBudget",
]
