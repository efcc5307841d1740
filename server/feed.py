"""
Auction feed backed by the domain_auctions table.
Snapshots are upserted by id; the table only ever holds the latest snapshot.
"""
import json
import logging
from datetime import timezone
from pathlib import Path
from typing import Iterable, List, Union
from sqlalchemy.orm import Session

from database import AuctionRecord
from .models import DomainAuction
from .timeutil import ensure_utc

logger = logging.getLogger(__name__)


def load_feed_file(path: Union[str, Path]) -> List[DomainAuction]:
    """Read auctions from a JSON file: either a list or {"auctions": [...]}."""
    raw = json.loads(Path(path).read_text())
    if isinstance(raw, dict):
        raw = raw.get("auctions", [])
    return [DomainAuction.model_validate(item) for item in raw]


def to_auction(record: AuctionRecord) -> DomainAuction:
    return DomainAuction(
        id=record.id,
        domain=record.domain,
        marketplace=record.marketplace,
        niche=record.niche,
        ending_at=ensure_utc(record.ending_at_utc),
        current_bid=record.current_bid,
        bid_increment=record.bid_increment,
        bids=record.bids,
        domain_authority=record.domain_authority,
        backlinks=record.backlinks,
        est_traffic=record.est_traffic,
        est_revenue=record.est_revenue,
        spam_score=record.spam_score,
        keywords=tuple(record.keywords or ()),
    )


def _record_fields(auction: DomainAuction) -> dict:
    return {
        "domain": auction.domain,
        "marketplace": auction.marketplace,
        "niche": auction.niche,
        # Stored as naive UTC
        "ending_at_utc": auction.ending_at.astimezone(timezone.utc).replace(tzinfo=None),
        "current_bid": auction.current_bid,
        "bid_increment": auction.bid_increment,
        "bids": auction.bids,
        "domain_authority": auction.domain_authority,
        "backlinks": auction.backlinks,
        "est_traffic": auction.est_traffic,
        "est_revenue": auction.est_revenue,
        "spam_score": auction.spam_score,
        "keywords": list(auction.keywords),
    }


def upsert_auctions(db: Session, auctions: Iterable[DomainAuction]) -> int:
    """Insert or overwrite snapshots. Returns the number written."""
    count = 0
    for auction in auctions:
        fields = _record_fields(auction)
        record = db.query(AuctionRecord).filter(AuctionRecord.id == auction.id).first()
        if record is None:
            db.add(AuctionRecord(id=auction.id, **fields))
        else:
            for name, value in fields.items():
                setattr(record, name, value)
        count += 1
    db.commit()
    return count


def read_feed(db: Session) -> List[DomainAuction]:
    records = db.query(AuctionRecord).order_by(AuctionRecord.ending_at_utc).all()
    return [to_auction(r) for r in records]


def delete_auction(db: Session, auction_id: str) -> bool:
    record = db.query(AuctionRecord).filter(AuctionRecord.id == auction_id).first()
    if not record:
        return False
    db.delete(record)
    db.commit()
    return True


def seed_from_file(db: Session, path: Union[str, Path]) -> int:
    auctions = load_feed_file(path)
    written = upsert_auctions(db, auctions)
    logger.info(f"Seeded {written} auctions from {path}")
    return written
