from .models import Base, AuctionRecord
from .session import init_db, get_db, SessionLocal

__all__ = ["Base", "AuctionRecord", "init_db", "get_db", "SessionLocal"]
