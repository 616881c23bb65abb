"""
Sync services module.

This module contains specialized services for synchronizing fantasy game
data from the SWUSH API to the local database.

Services:
- GameSyncService: Game metadata (rounds, deadlines, user count)
- ElementSyncService: Roster elements
- UserSyncService: Paginated user standings
- SyncOrchestrator: Runs the stages in order and records sync logs
"""
from app.services.sync.base import (
    BaseSyncService,
    DEFAULT_BATCH_SIZE,
    StageResult,
    SyncStageError,
    SyncTarget,
    chunked,
)
from app.services.sync.game_sync import GameSyncService
from app.services.sync.element_sync import ElementSyncService
from app.services.sync.user_sync import UserSyncService
from app.services.sync.orchestrator import (
    SyncOrchestrator,
    build_sync_orchestrator,
    is_game_season_ended,
)

__all__ = [
    # Base
    "BaseSyncService",
    "DEFAULT_BATCH_SIZE",
    "StageResult",
    "SyncStageError",
    "SyncTarget",
    "chunked",
    # Services
    "GameSyncService",
    "ElementSyncService",
    "UserSyncService",
    "SyncOrchestrator",
    "build_sync_orchestrator",
    "is_game_season_ended",
]
