"""
Payload schemas for the SWUSH partner API.

The partner API speaks camelCase; fields are declared snake_case and
aliased. Unknown fields are ignored so additive upstream changes do not
break syncs, but missing or mistyped required fields fail validation at
the client boundary.
"""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SwushModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class SwushRound(SwushModel):
    index: int
    start: datetime | None = None
    trade_closes: datetime | None = None
    end: datetime | None = None
    is_verified: int | None = None
    state: str | None = None  # Pending, CurrentOpen, Ended, EndedLastest


class SwushGame(SwushModel):
    game_id: int
    tournament_id: int | None = None
    game_key: str | None = None
    userteams_count: int = 0
    competitions_count: int | None = None
    current_round_index: int
    rounds: list[SwushRound] = Field(default_factory=list)


class SwushElement(SwushModel):
    element_id: int
    short_name: str | None = None
    full_name: str | None = None
    team_name: str | None = None
    image_url: str | None = None
    url: str | None = None
    popularity: float | None = 0
    trend: int | None = 0
    growth: int | None = 0
    total_growth: int | None = 0
    value: int | None = 0
    is_injured: bool | None = False
    is_suspended: bool | None = False


class SwushUserteam(SwushModel):
    id: int
    name: str | None = None
    key: str | None = None
    score: int | None = 0
    rank: int | None = None
    round_score: int | None = 0
    round_rank: int | None = None
    round_jump: int | None = 0
    injured: int | None = 0
    suspended: int | None = 0
    lineup_element_ids: list[int] = Field(default_factory=list)


class SwushUser(SwushModel):
    id: int
    name: str | None = None
    key: str | None = None
    external_id: str | None = None
    injured: int | None = 0
    suspended: int | None = 0
    userteams: list[SwushUserteam] = Field(default_factory=list)


class SwushUsersPage(SwushModel):
    game_id: int | None = None
    game_key: str | None = None
    rounds_total: int | None = None
    round_index: int | None = None
    round_state: str | None = None
    users_total: int | None = None
    page_size_max: int | None = None
    pages: int = 1
    page: int = 1
    page_size: int | None = None
    users: list[SwushUser] = Field(default_factory=list)


class SwushApiKeyCheck(SwushModel):
    message: str
