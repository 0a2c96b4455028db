from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field
from slowapi import Limiter
from slowapi.util import get_remote_address

from double_or_nothing.config import settings
from double_or_nothing.core.settlement import SettlementService, build_settlement_service
from double_or_nothing.core.stats import StatsAccessor

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit.enabled)

router = APIRouter()

# ==================== Request Models ====================


class PlayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    signature: Optional[str] = None
    player_wallet: Optional[str] = Field(default=None, alias="playerWallet")
    bet_amount: Optional[float] = Field(default=None, alias="betAmount")


class StatsUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result: Optional[str] = None
    amount: Optional[float] = None
    player_wallet: Optional[str] = Field(default=None, alias="playerWallet")


# ==================== Dependencies ====================


@lru_cache(maxsize=1)
def get_settlement_service() -> SettlementService:
    """One service per process; the custodian key is loaded once here."""
    return build_settlement_service()


def get_stats_accessor() -> StatsAccessor:
    return StatsAccessor()


def get_game_rate_limit():
    """Get rate limit string from config."""
    return settings.rate_limit.game_requests if settings.rate_limit.enabled else "1000/minute"


def get_api_rate_limit():
    return settings.rate_limit.api_requests if settings.rate_limit.enabled else "1000/minute"


# ==================== Settlement ====================


@router.post("/play")
@limiter.limit(get_game_rate_limit)
async def play(
    request: Request,
    data: PlayRequest,
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.settle(data.signature, data.player_wallet, data.bet_amount)


@router.get("/play")
async def play_info(service: SettlementService = Depends(get_settlement_service)):
    """Health check and game info."""
    return service.info()


@router.get("/liquidity")
@limiter.limit(get_api_rate_limit)
async def liquidity(
    request: Request,
    service: SettlementService = Depends(get_settlement_service),
):
    return await service.liquidity()


# ==================== Stats ====================


@router.get("/stats")
async def get_stats(accessor: StatsAccessor = Depends(get_stats_accessor)):
    """Fetch global stats with the most recent games."""
    return accessor.read(settings.stats.display_limit)


@router.post("/stats")
@limiter.limit(get_game_rate_limit)
async def update_stats(
    request: Request,
    data: StatsUpdateRequest,
    accessor: StatsAccessor = Depends(get_stats_accessor),
):
    stats = accessor.record(data.result, data.amount, data.player_wallet)
    return {"success": True, "stats": stats}
