from fastapi import FastAPI, Depends, HTTPException, Header, Query
from sqlalchemy.orm import Session
from datetime import timedelta
from typing import Optional, List
import jwt
import logging

from database import get_db
from .board import AuctionBoard
from .errors import AuctionNotFoundError
from .executor import build_executor
from .feed import delete_auction, read_feed, upsert_auctions
from .models import (
    AuthRequest, AuthResponse, AuctionView, BidConfig, BidStatus, DomainAuction,
    FeedResponse, TickRequest, TickResponse,
)
from .timeutil import ensure_utc, utc_now
from . import settings

logger = logging.getLogger(__name__)

app = FastAPI(title="Domain Sniper API")
SECRET_KEY = settings.SECRET_KEY
board = AuctionBoard(executor=build_executor())


def get_board() -> AuctionBoard:
    """Dependency returning the process-wide board (shared with the worker)."""
    return board


def verify_token(authorization: str = Header(None)) -> str:
    """Verify and extract token from Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")

    token = authorization.split(" ")[1]
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
        return payload.get("sub", "")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _not_found(e: AuctionNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@app.post("/auth", response_model=AuthResponse)
def auth(request: AuthRequest):
    """Authenticate user and return API token."""
    # Simplified auth: any username/password gets a token
    token = jwt.encode(
        {"sub": request.username, "exp": utc_now() + timedelta(days=30)},
        SECRET_KEY,
        algorithm="HS256"
    )
    return AuthResponse(token=token)


@app.get("/auctions", response_model=List[AuctionView])
def list_auctions(board: AuctionBoard = Depends(get_board), username: str = Depends(verify_token)):
    """All tracked auctions with analysis, config and bid status, soonest ending first."""
    return board.views()


@app.get("/auctions/priority", response_model=AuctionView)
def priority_pick(board: AuctionBoard = Depends(get_board), username: str = Depends(verify_token)):
    """Highest composite score across the board."""
    best = board.priority_pick()
    if best is None:
        raise HTTPException(status_code=404, detail="No auctions tracked")
    try:
        return board.view(best.id)
    except AuctionNotFoundError as e:
        raise _not_found(e)


@app.get("/auctions/{auction_id}", response_model=AuctionView)
def get_auction(auction_id: str, board: AuctionBoard = Depends(get_board), username: str = Depends(verify_token)):
    try:
        return board.view(auction_id)
    except AuctionNotFoundError as e:
        raise _not_found(e)


@app.get("/auctions/{auction_id}/status", response_model=BidStatus)
def get_status(auction_id: str, board: AuctionBoard = Depends(get_board), username: str = Depends(verify_token)):
    try:
        return board.get_status(auction_id)
    except AuctionNotFoundError as e:
        raise _not_found(e)


@app.put("/auctions/{auction_id}/config", response_model=AuctionView)
def set_config(
    auction_id: str,
    config: BidConfig,
    board: AuctionBoard = Depends(get_board),
    username: str = Depends(verify_token),
):
    """Replace the bid configuration (range-validated) and re-arm the auction."""
    try:
        board.set_config(auction_id, config)
        return board.view(auction_id)
    except AuctionNotFoundError as e:
        raise _not_found(e)


@app.delete("/auctions/{auction_id}")
def remove_auction(
    auction_id: str,
    db: Session = Depends(get_db),
    board: AuctionBoard = Depends(get_board),
    username: str = Depends(verify_token),
):
    """Remove an auction from the feed; its config and status are discarded."""
    deleted = delete_auction(db, auction_id)
    try:
        board.remove(auction_id)
    except AuctionNotFoundError as e:
        if not deleted:
            raise _not_found(e)
    return {"message": "Auction removed"}


@app.post("/feed", response_model=FeedResponse)
def push_feed(
    auctions: List[DomainAuction],
    db: Session = Depends(get_db),
    board: AuctionBoard = Depends(get_board),
    username: str = Depends(verify_token),
):
    """Upsert auction snapshots into the feed and reconcile the board."""
    try:
        received = upsert_auctions(db, auctions)
    except Exception as e:
        db.rollback()
        logger.error(f"Error storing feed snapshots: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to store feed: {str(e)}")

    board.sync_feed(read_feed(db))
    return FeedResponse(received=received, tracked=len(board.auction_ids()))


@app.post("/tick", response_model=TickResponse)
def tick(
    request: Optional[TickRequest] = None,
    board: AuctionBoard = Depends(get_board),
    username: str = Depends(verify_token),
):
    """Evaluate snipes at the given time (defaults to now)."""
    now = ensure_utc(request.now) if request and request.now else utc_now()
    return TickResponse(now=now, fired=board.tick(now))


@app.post("/simulate", response_model=TickResponse)
def simulate(
    hours: float = Query(1.0, gt=0, le=48),
    board: AuctionBoard = Depends(get_board),
    username: str = Depends(verify_token),
):
    """Fast-forward: fire what would be due `hours` from now, leaving the tick clock untouched."""
    now = utc_now() + timedelta(hours=hours)
    return TickResponse(now=now, fired=board.tick(now, advance_clock=False))
