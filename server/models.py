from pydantic import AliasGenerator, BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Tuple

from .timeutil import ensure_utc


class StrengthGrade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class RiskGrade(str, Enum):
    VERY_LOW = "Very Low"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    VERY_HIGH = "Very High"

    @property
    def rank(self) -> int:
        """Position from safest (0) to riskiest (4)."""
        return list(RiskGrade).index(self)


class BidState(str, Enum):
    IDLE = "Idle"
    SCHEDULED = "Scheduled"
    EXECUTING = "Executing"
    COMPLETE = "Complete"


class DomainAuction(BaseModel):
    """Immutable snapshot of one auction as reported by the feed.

    Accepts both snake_case and the camelCase keys used by feed files
    (``endingAt``, ``currentBid``...).
    """

    model_config = {
        "frozen": True,
        "alias_generator": AliasGenerator(validation_alias=to_camel),
        "populate_by_name": True,
    }

    id: str
    domain: str
    marketplace: str
    niche: str
    ending_at: datetime
    current_bid: Decimal
    bid_increment: Decimal
    bids: int = 0
    domain_authority: float = 0
    backlinks: int = 0
    est_traffic: int = 0
    est_revenue: Decimal = Decimal("0")
    spam_score: float = 0
    keywords: Tuple[str, ...] = ()

    @field_validator("ending_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("keywords", mode="before")
    @classmethod
    def _dedupe_keywords(cls, v):
        # Ordered set: keep first occurrence
        if v is None:
            return ()
        seen = []
        for keyword in v:
            if keyword not in seen:
                seen.append(keyword)
        return tuple(seen)


class AuctionAnalysis(BaseModel):
    model_config = {"frozen": True}

    score: int
    strength: StrengthGrade
    risk: RiskGrade
    recommended_max_bid: Decimal
    snipe_offset_minutes: int = Field(ge=1, le=45)
    notes: Tuple[str, ...] = ()


class BidConfig(BaseModel):
    """Per-auction automation settings. Always replaced wholesale."""

    model_config = {"frozen": True}

    auto_bid: bool
    max_bid: Decimal = Field(ge=0)
    snipe_offset: int = Field(ge=1, le=45)
    enable_auto_extend: bool = True


class BidStatus(BaseModel):
    model_config = {"frozen": True}

    state: BidState = BidState.IDLE
    next_bid_at: Optional[datetime] = None
    last_run: Optional[datetime] = None

    @model_validator(mode="after")
    def _next_bid_only_when_scheduled(self):
        if (self.state == BidState.SCHEDULED) != (self.next_bid_at is not None):
            raise ValueError("next_bid_at must be set exactly when the status is Scheduled")
        return self


class FireRecord(BaseModel):
    """One fire decision taken by a tick."""

    auction_id: str
    fired_at: datetime
    amount: Decimal
    allow_dynamic_buffer: bool


# ---- API schemas ----


class AuthRequest(BaseModel):
    username: str
    password: str


class AuthResponse(BaseModel):
    token: str


class AuctionView(BaseModel):
    auction: DomainAuction
    analysis: AuctionAnalysis
    config: BidConfig
    status: BidStatus
    ends_in: str
    is_expired: bool
    bid_at: Optional[datetime]
    safety_buffer: str


class TickRequest(BaseModel):
    now: Optional[datetime] = None


class TickResponse(BaseModel):
    now: datetime
    fired: List[FireRecord]


class FeedResponse(BaseModel):
    received: int
    tracked: int
