"""FastAPI backend: market reads, payout previews and admin resolution endpoints."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Iterator

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predsettle.api.auth import AdminAuthError, verify_admin_auth
from predsettle.api.schemas import (
    CancelRequest,
    CancelResponse,
    ErrorResponse,
    FeeConfigResponse,
    HealthResponse,
    MarketListItem,
    MarketOddsResponse,
    MarketsListResponse,
    ResolutionLogsResponse,
    ResolutionStatusResponse,
    ResolveRequest,
    ResolveResponse,
    StakeImpactResponse,
    UserPayoutsResponse,
)
from predsettle.config import Settings, get_settings
from predsettle.errors import InvalidTransition, NotFound, ResolutionError, SettlementFailed, ValidationError
from predsettle.models import Market, MarketResolution, PayoutPreview, UserBalance
from predsettle.resolution.odds import (
    calculate_competitiveness,
    calculate_option_stats,
    estimate_payout,
    format_odds,
    preview_odds_impact,
)
from predsettle.resolution.payout import HOUSE_FEE_PERCENTAGE, MAX_CREATOR_FEE, MIN_CREATOR_FEE
from predsettle.settlement.executor import SettlementExecutor
from predsettle.storage.audit_log import get_resolution_status, list_resolution_logs
from predsettle.storage.balances import get_balance
from predsettle.storage.db import get_connection, init_schema
from predsettle.storage.markets import get_market
from predsettle.storage.markets import list_markets as storage_list_markets
from predsettle.storage.resolutions import get_market_resolution, get_user_payouts

log = structlog.get_logger(__name__)

# Set by run_api() so dependencies load the same profile as the CLI.
_config_profile: str | None = None

_STATUS_BY_ERROR: list[tuple[type[ResolutionError], int]] = [
    (ValidationError, 400),
    (AdminAuthError, 401),
    (NotFound, 404),
    (InvalidTransition, 409),
    (SettlementFailed, 503),
]


def get_app_settings() -> Settings:
    return get_settings(_config_profile)


def get_db(settings: Settings = Depends(get_app_settings)) -> Iterator:
    conn = get_connection(settings.db_path)
    try:
        yield conn
    finally:
        conn.close()


def get_executor(conn=Depends(get_db), settings: Settings = Depends(get_app_settings)) -> SettlementExecutor:
    return SettlementExecutor.from_settings(conn, settings)


def require_admin(request: Request, settings: Settings = Depends(get_app_settings)) -> str:
    """Admin user id for the request's bearer key; 401 otherwise."""
    auth = verify_admin_auth(request.headers.get("Authorization"), settings.admin_api_keys)
    if not auth.is_admin or auth.user_id is None:
        raise AdminAuthError(auth.error or "Admin access required")
    return auth.user_id


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_app_settings()
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()
    yield


app = FastAPI(title="predsettle API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(ResolutionError)
async def resolution_error_handler(request: Request, exc: ResolutionError) -> JSONResponse:
    """Consistent error JSON: { detail, code, market_id?, details? }."""
    status_code = next((status for cls, status in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    log.warning(
        "request_failed",
        path=request.url.path,
        status_code=status_code,
        code=exc.code,
        market_id=exc.market_id,
        detail=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _load_market(conn, market_id: str) -> Market:
    market = get_market(conn, market_id)
    if market is None:
        raise NotFound(f"Market {market_id} not found", market_id=market_id)
    return market


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/fees", response_model=FeeConfigResponse)
def fees(settings: Settings = Depends(get_app_settings)) -> FeeConfigResponse:
    return FeeConfigResponse(
        house_fee_percentage=HOUSE_FEE_PERCENTAGE,
        min_creator_fee=MIN_CREATOR_FEE,
        max_creator_fee=MAX_CREATOR_FEE,
        default_creator_fee=settings.default_creator_fee,
    )


@app.get("/markets", response_model=MarketsListResponse)
def markets_list(
    status: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    conn=Depends(get_db),
) -> MarketsListResponse:
    """List markets, optionally by status, with limit/offset."""
    all_markets = storage_list_markets(conn, status=status)
    items = [
        MarketListItem(
            market_id=m.market_id,
            title=m.title,
            status=m.status,
            created_by=m.created_by,
            total_tokens_staked=m.total_tokens_staked,
            total_participants=m.total_participants,
            option_count=len(m.options),
            ends_at=m.ends_at,
        )
        for m in all_markets[offset : offset + limit]
    ]
    return MarketsListResponse(markets=items, total=len(all_markets))


@app.get("/markets/{market_id}", response_model=Market, responses={404: {"model": ErrorResponse}})
def market_detail(market_id: str, conn=Depends(get_db)) -> Market:
    return _load_market(conn, market_id)


@app.get("/markets/{market_id}/odds", response_model=MarketOddsResponse, responses={404: {"model": ErrorResponse}})
def market_odds(market_id: str, conn=Depends(get_db)) -> MarketOddsResponse:
    market = _load_market(conn, market_id)
    stats = calculate_option_stats(market)
    return MarketOddsResponse(
        market_id=market_id,
        total_tokens_staked=market.total_tokens_staked,
        odds=stats,
        formatted={option_id: format_odds(s.odds) for option_id, s in stats.items()},
        competitiveness=calculate_competitiveness(market),
    )


@app.get(
    "/markets/{market_id}/odds/impact",
    response_model=StakeImpactResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def market_stake_impact(
    market_id: str,
    option_id: str,
    tokens: int = Query(..., gt=0),
    conn=Depends(get_db),
) -> StakeImpactResponse:
    """Estimated pre-fee payout and odds movement for a prospective commitment."""
    market = _load_market(conn, market_id)
    if market.get_option(option_id) is None:
        raise ValidationError(
            f"Option {option_id!r} is not an option of market {market_id}",
            field="option_id",
            market_id=market_id,
        )
    return StakeImpactResponse(
        market_id=market_id,
        option_id=option_id,
        tokens=tokens,
        estimate=estimate_payout(tokens, option_id, market),
        impact=preview_odds_impact(tokens, option_id, market),
    )


@app.get(
    "/markets/{market_id}/payout-preview",
    response_model=PayoutPreview,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def payout_preview(
    market_id: str,
    winning_option_id: str,
    creator_fee_percentage: float | None = None,
    executor: SettlementExecutor = Depends(get_executor),
) -> PayoutPreview:
    return executor.preview(market_id, winning_option_id, creator_fee_percentage)


@app.get(
    "/markets/{market_id}/resolution",
    response_model=MarketResolution,
    responses={404: {"model": ErrorResponse}},
)
def market_resolution(market_id: str, conn=Depends(get_db)) -> MarketResolution:
    _load_market(conn, market_id)
    resolution = get_market_resolution(conn, market_id)
    if resolution is None:
        raise NotFound(f"Market {market_id} has not been settled", market_id=market_id)
    return resolution


@app.get("/markets/{market_id}/resolution/logs", response_model=ResolutionLogsResponse)
def market_resolution_logs(market_id: str, conn=Depends(get_db)) -> ResolutionLogsResponse:
    _load_market(conn, market_id)
    return ResolutionLogsResponse(market_id=market_id, logs=list_resolution_logs(conn, market_id))


@app.get("/markets/{market_id}/resolution/status", response_model=ResolutionStatusResponse)
def market_resolution_status(market_id: str, conn=Depends(get_db)) -> ResolutionStatusResponse:
    _load_market(conn, market_id)
    return ResolutionStatusResponse(market_id=market_id, **get_resolution_status(conn, market_id))


@app.post(
    "/admin/markets/{market_id}/resolve",
    response_model=ResolveResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def resolve_market(
    market_id: str,
    body: ResolveRequest,
    admin_id: str = Depends(require_admin),
    executor: SettlementExecutor = Depends(get_executor),
) -> ResolveResponse:
    result = executor.resolve_market(
        market_id,
        body.winning_option_id,
        body.evidence,
        admin_id,
        creator_fee_percentage=body.creator_fee_percentage,
    )
    preview = result.preview
    return ResolveResponse(
        resolution_id=result.resolution_id,
        market_id=market_id,
        winning_option_id=body.winning_option_id,
        total_pool=preview.total_pool,
        total_payout=preview.winner_pool,
        winner_count=preview.winner_count,
        house_fee=preview.house_fee,
        creator_fee=preview.creator_fee,
        warnings=result.warnings,
        preview=preview,
    )


@app.post(
    "/admin/markets/{market_id}/cancel",
    response_model=CancelResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def cancel_market(
    market_id: str,
    body: CancelRequest,
    admin_id: str = Depends(require_admin),
    executor: SettlementExecutor = Depends(get_executor),
) -> CancelResponse:
    result = executor.cancel_market(market_id, body.reason, admin_id, refund_tokens=body.refund_tokens)
    return CancelResponse(
        resolution_id=result.resolution_id,
        market_id=market_id,
        refunds_processed=result.refunds_processed,
        tokens_refunded=result.tokens_refunded,
    )


@app.get("/users/{user_id}/payouts", response_model=UserPayoutsResponse)
def user_payouts(user_id: str, conn=Depends(get_db)) -> UserPayoutsResponse:
    payouts = get_user_payouts(conn, user_id)
    return UserPayoutsResponse(
        user_id=user_id,
        winner_payouts=payouts["winner_payouts"],
        creator_payouts=payouts["creator_payouts"],
        total_winnings=sum(p.payout_amount for p in payouts["winner_payouts"]),
        total_creator_fees=sum(p.fee_amount for p in payouts["creator_payouts"]),
    )


@app.get("/users/{user_id}/balance", response_model=UserBalance, responses={404: {"model": ErrorResponse}})
def user_balance(user_id: str, conn=Depends(get_db)) -> UserBalance:
    balance = get_balance(conn, user_id)
    if balance is None:
        raise NotFound(f"No token balance for user {user_id}")
    return balance


def run_api(host: str = "127.0.0.1", port: int = 8000, profile: str | None = None) -> None:
    global _config_profile
    _config_profile = profile
    import uvicorn

    uvicorn.run("predsettle.api.main:app", host=host, port=port, reload=False)
