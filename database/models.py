from datetime import datetime
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Float, JSON
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AuctionRecord(Base):
    """Latest feed snapshot for one auction (no history is kept)."""

    __tablename__ = "domain_auctions"

    id = Column(String, primary_key=True, index=True)
    domain = Column(String, nullable=False, index=True)
    marketplace = Column(String, nullable=False)
    niche = Column(String, nullable=False, default="")
    ending_at_utc = Column(DateTime, nullable=False, index=True)
    current_bid = Column(Numeric(12, 2), nullable=False)
    bid_increment = Column(Numeric(12, 2), nullable=False)
    bids = Column(Integer, nullable=False, default=0)
    domain_authority = Column(Float, nullable=False, default=0)
    backlinks = Column(Integer, nullable=False, default=0)
    est_traffic = Column(Integer, nullable=False, default=0)
    est_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    spam_score = Column(Float, nullable=False, default=0)
    keywords = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
