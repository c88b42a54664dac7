from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from jsonschema import ValidationError

from . import __version__
from .admin import config as admin_config
from .admin import health as admin_health
from .admin import ledger as admin_ledger
from .admin import stats as admin_stats
from .admin import watchers as admin_watchers
from .auction.engine import SettlementEngine
from .auction.errors import AuctionHasBids, BidRejected, RejectReason, SettlementContention
from .auction.models import Auction, BidCandidate, default_minimum_increment
from .config import ServerConfig, get_server_config
from .events.publisher import AuctionEventPublisher
from .ledger.addresses import to_sompi, validate_address
from .ledger.client import LedgerClient
from .ledger.errors import InvalidAddressError
from .storage import AuctionNotFound, VersionConflict, build_storage
from .transport.timestamps import utcnow
from .validation.validator import SchemaRegistry, get_schema_registry
from .watcher.chain_watcher import ChainWatcher
from .watcher.monitor import AuctionMonitor


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    schema_registry = get_schema_registry()
    storage = build_storage(server_config)
    ledger_settings = server_config.ledger
    ledger_client = LedgerClient(
        ledger_settings.url,
        ledger_settings.fallback_urls,
        timeout=ledger_settings.timeout_seconds,
        max_retries=ledger_settings.max_retries,
        backoff_base=ledger_settings.backoff_base_seconds,
    )
    settlement = server_config.settlement
    engine = SettlementEngine(
        storage,
        ledger_client,
        max_attempts=settlement.max_attempts,
        amount_tolerance=settlement.amount_tolerance,
        reject_amount_mismatch=settlement.reject_amount_mismatch,
        require_verification=settlement.require_verification,
        retention=timedelta(days=settlement.retention_days),
    )
    watcher = ChainWatcher(
        ledger_client,
        interval_seconds=server_config.watcher.interval_seconds,
        pending_retry_limit=server_config.watcher.pending_retry_limit,
    )
    publisher = AuctionEventPublisher(
        backend=server_config.events.backend,
        options=server_config.events.options,
    )
    monitor = AuctionMonitor(watcher, engine, publisher)

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.storage = storage
    app.state.ledger_client = ledger_client
    app.state.engine = engine
    app.state.watcher = watcher
    app.state.publisher = publisher
    app.state.monitor = monitor
    app.state.start_time = datetime.now(timezone.utc)

    await monitor.restore()
    try:
        yield
    finally:
        await monitor.close()
        await ledger_client.close()
        close_storage = getattr(storage, "close", None)
        if close_storage is not None:
            await close_storage()


app = FastAPI(
    title="bidwatch",
    version=__version__,
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)
app.include_router(admin_watchers.router)
app.include_router(admin_ledger.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_engine(request: Request) -> SettlementEngine:
    return request.app.state.engine


def get_monitor(request: Request) -> AuctionMonitor:
    return request.app.state.monitor


def get_publisher(request: Request) -> AuctionEventPublisher:
    return request.app.state.publisher


def _validate(schemas: SchemaRegistry, schema_name: str, payload: dict[str, Any]) -> None:
    try:
        schemas.validate(schema_name, payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc.message)) from exc


def _not_found(auction_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"auction {auction_id} not found")


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "bidwatch",
        "version": app.version,
        "ledger": {
            "network": settings.ledger.network,
            "url": settings.ledger.url,
        },
        "watcher": {
            "interval_seconds": settings.watcher.interval_seconds,
        },
        "storage_backend": settings.storage.backend,
    }


@app.get("/api/ping", tags=["meta"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.get("/api/auctions", tags=["auctions"])
async def list_auctions(engine: SettlementEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    return [auction.to_dict() for auction in await engine.list_all()]


@app.get("/api/auctions/active", tags=["auctions"])
async def list_active_auctions(engine: SettlementEngine = Depends(get_engine)) -> list[dict[str, Any]]:
    return [auction.to_dict() for auction in await engine.list_active()]


@app.post("/api/auctions", tags=["auctions"], status_code=status.HTTP_201_CREATED)
async def create_auction(
    payload: dict[str, Any] = Body(...),
    engine: SettlementEngine = Depends(get_engine),
    monitor: AuctionMonitor = Depends(get_monitor),
    publisher: AuctionEventPublisher = Depends(get_publisher),
    schemas: SchemaRegistry = Depends(get_schema_service),
) -> dict[str, Any]:
    _validate(schemas, "auction_create", payload)
    try:
        auction = build_auction(payload)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    try:
        await engine.create_auction(auction)
    except VersionConflict as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    monitor.watch(auction)
    await publisher.publish("auction_updated", auction.id, {"auction": auction.to_dict()})
    return {"success": True, "auction": auction.to_dict()}


@app.get("/api/auctions/{auction_id}", tags=["auctions"])
async def get_auction(auction_id: str, engine: SettlementEngine = Depends(get_engine)) -> dict[str, Any]:
    try:
        auction = await engine.get(auction_id)
    except AuctionNotFound as exc:
        raise _not_found(auction_id) from exc
    return auction.to_dict()


@app.delete("/api/auctions/{auction_id}", tags=["auctions"])
async def delete_auction(
    auction_id: str,
    payload: dict[str, Any] = Body(...),
    engine: SettlementEngine = Depends(get_engine),
    monitor: AuctionMonitor = Depends(get_monitor),
    schemas: SchemaRegistry = Depends(get_schema_service),
) -> dict[str, Any]:
    _validate(schemas, "auction_delete", payload)
    try:
        auction = await engine.get(auction_id)
    except AuctionNotFound as exc:
        raise _not_found(auction_id) from exc
    if auction.seller_address != payload["seller_address"]:
        raise HTTPException(status_code=403, detail="only the seller can delete this auction")
    try:
        await engine.delete(auction_id)
    except AuctionNotFound as exc:
        raise _not_found(auction_id) from exc
    except AuctionHasBids as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SettlementContention as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    monitor.unwatch(auction_id)
    return {"success": True}


@app.post("/api/auctions/{auction_id}/finalize", tags=["auctions"])
async def finalize_auction(
    auction_id: str,
    engine: SettlementEngine = Depends(get_engine),
    monitor: AuctionMonitor = Depends(get_monitor),
    publisher: AuctionEventPublisher = Depends(get_publisher),
) -> dict[str, Any]:
    try:
        auction = await engine.finalize(auction_id)
    except AuctionNotFound as exc:
        raise _not_found(auction_id) from exc
    except SettlementContention as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    monitor.unwatch(auction_id)
    await publisher.publish("auction_updated", auction.id, {"auction": auction.to_dict()})
    return auction.to_dict()


@app.post("/api/test/simulate-bid", tags=["testing"])
async def simulate_bid(
    payload: dict[str, Any] = Body(...),
    settings: ServerConfig = Depends(get_server_settings),
    engine: SettlementEngine = Depends(get_engine),
    monitor: AuctionMonitor = Depends(get_monitor),
    schemas: SchemaRegistry = Depends(get_schema_service),
) -> dict[str, Any]:
    """Inject a bid candidate by hand, bypassing the chain watcher."""
    if not settings.api.allow_simulated_bids:
        raise HTTPException(status_code=404, detail="bid simulation is disabled")
    _validate(schemas, "bid_simulation", payload)
    try:
        amount = to_sompi(payload["amount"])
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    auction_id = payload["auction_id"]
    candidate = BidCandidate(
        transaction_id=payload.get("transaction_id") or f"test_tx_{uuid4().hex[:12]}",
        amount=amount,
        sender=payload.get("sender") or None,
        timestamp=utcnow(),
    )
    try:
        bid = await engine.submit_candidate(auction_id, candidate)
    except BidRejected as exc:
        if exc.reason is RejectReason.AUCTION_ENDED:
            monitor.unwatch(auction_id)
        raise HTTPException(
            status_code=400,
            detail={"reason": exc.reason.value, "message": str(exc)},
        ) from exc
    except SettlementContention as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    auction = await engine.get(auction_id)
    await monitor.announce(auction, bid)
    return {"success": True, "bid": bid.to_dict()}


def build_auction(payload: dict[str, Any], now: datetime | None = None) -> Auction:
    """Map a creation request in display units to a live auction in sompi."""
    try:
        seller_address = validate_address(payload["seller_address"])
    except InvalidAddressError as exc:
        raise ValueError(str(exc)) from exc
    start_price = to_sompi(payload["start_price"])
    if start_price <= 0:
        raise ValueError("start_price must be positive")
    if payload.get("minimum_increment") is not None:
        minimum_increment = to_sompi(payload["minimum_increment"])
        if minimum_increment <= 0:
            raise ValueError("minimum_increment must be positive")
    else:
        minimum_increment = default_minimum_increment(start_price)
    start_time = now or utcnow()
    return Auction(
        id=f"auc_{uuid4().hex[:12]}",
        seller_address=seller_address,
        start_price=start_price,
        minimum_increment=minimum_increment,
        start_time=start_time,
        end_time=start_time + timedelta(hours=float(payload["duration_hours"])),
        title=payload["title"],
        description=payload.get("description") or "",
        image_url=payload.get("image_url") or "",
        category=payload.get("category"),
    )
