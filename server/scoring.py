"""
Auction analysis engine.

Turns one DomainAuction snapshot into an AuctionAnalysis: a 0-100 composite
score, strength and risk grades, a recommended ceiling bid, a snipe offset and
an ordered list of signal notes. Everything here is pure; the only notion of
time is the optional `now` passed in by the caller.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_CEILING
from typing import Callable, List, Optional, Tuple

from .models import AuctionAnalysis, DomainAuction, RiskGrade, StrengthGrade
from .timeutil import ensure_utc

# Composite weights (max points per component)
AUTHORITY_WEIGHT = 0.45
REVENUE_POINTS = 15.0
TRAFFIC_POINTS = 15.0
BID_COUNT_POINTS = 15.0
BID_RATIO_POINTS = 10.0
SPAM_PENALTY_PER_POINT = 4.0

# Saturation points for the log/bracket scaled inputs
REVENUE_LOG_CAP = 5.0  # ~$100k
TRAFFIC_LOG_CAP = 6.0  # ~1M visits
BID_COUNT_CAP = 50
BID_RATIO_LOG_CAP = 3.0  # bid ~1000x the increment

MIN_NOMINAL_INCREMENT = Decimal("1.00")

STRENGTH_BANDS: Tuple[Tuple[int, StrengthGrade], ...] = (
    (85, StrengthGrade.A_PLUS),
    (70, StrengthGrade.A),
    (55, StrengthGrade.B),
    (40, StrengthGrade.C),
)

SPAM_CRITICAL = 7.0
SPAM_HIGH = 5.0
SPAM_ELEVATED = 3.0
SPAM_NOTE_THRESHOLD = 4.0
VELOCITY_HIGH = 10.0  # bids per hour remaining
VELOCITY_ELEVATED = 3.0
CEILING_HEADROOM_TIGHT = 0.15

BASELINE_SNIPE_OFFSET_MINUTES = 5
MIN_SNIPE_OFFSET_MINUTES = 1
MAX_SNIPE_OFFSET_MINUTES = 45
SNIPE_OFFSET_BY_RISK = {
    RiskGrade.VERY_LOW: 2,
    RiskGrade.LOW: 3,
    RiskGrade.MEDIUM: BASELINE_SNIPE_OFFSET_MINUTES,
    RiskGrade.HIGH: 10,
    RiskGrade.VERY_HIGH: 15,
}


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _log_scaled(value: float, cap: float, points: float) -> float:
    return points * min(1.0, math.log10(1 + max(0.0, value)) / cap)


def effective_increment(auction: DomainAuction) -> Decimal:
    """Bid increment, floored at a nominal minimum so a zero increment still widens the ceiling."""
    return max(auction.bid_increment, MIN_NOMINAL_INCREMENT)


def bid_velocity(auction: DomainAuction, now: Optional[datetime] = None) -> float:
    """Bids per hour of remaining time.

    Remaining time is floored at one hour. Without `now` the auction is
    treated as closing, so velocity equals the bid count.
    """
    hours_left = 1.0
    if now is not None:
        seconds = (auction.ending_at - ensure_utc(now)).total_seconds()
        hours_left = max(1.0, seconds / 3600)
    return max(0, auction.bids) / hours_left


def composite_score(auction: DomainAuction) -> int:
    authority = _clamp(auction.domain_authority, 0, 100) * AUTHORITY_WEIGHT

    monetization = _log_scaled(float(auction.est_revenue), REVENUE_LOG_CAP, REVENUE_POINTS) + _log_scaled(
        auction.est_traffic, TRAFFIC_LOG_CAP, TRAFFIC_POINTS
    )

    momentum = 0.0
    if auction.bids > 0:
        ratio = float(max(auction.current_bid, Decimal("0")) / effective_increment(auction))
        momentum = BID_COUNT_POINTS * min(1.0, auction.bids / BID_COUNT_CAP) + _log_scaled(
            ratio, BID_RATIO_LOG_CAP, BID_RATIO_POINTS
        )

    penalty = _clamp(auction.spam_score, 0, 10) * SPAM_PENALTY_PER_POINT

    return int(round(_clamp(authority + monetization + momentum - penalty, 0, 100)))


def strength_for(score: int) -> StrengthGrade:
    for floor, grade in STRENGTH_BANDS:
        if score >= floor:
            return grade
    return StrengthGrade.D


def recommended_max_bid(auction: DomainAuction, score: int) -> Decimal:
    multiplier = 1 + score // 5
    ceiling = auction.current_bid + multiplier * effective_increment(auction)
    return ceiling.quantize(Decimal("0.01"), rounding=ROUND_CEILING)


def ceiling_headroom(auction: DomainAuction, ceiling: Decimal) -> float:
    """Share of the ceiling still above the current bid (0 = at ceiling)."""
    if ceiling <= 0:
        return 1.0
    return float((ceiling - auction.current_bid) / ceiling)


def risk_for(auction: DomainAuction, velocity: float, headroom: float) -> RiskGrade:
    spam = _clamp(auction.spam_score, 0, 10)
    if spam >= SPAM_CRITICAL:
        return RiskGrade.VERY_HIGH

    points = 0
    if spam >= SPAM_HIGH:
        points += 2
    elif spam >= SPAM_ELEVATED:
        points += 1

    if velocity >= VELOCITY_HIGH:
        points += 2
    elif velocity >= VELOCITY_ELEVATED:
        points += 1

    if headroom < CEILING_HEADROOM_TIGHT:
        points += 1

    return (RiskGrade.VERY_LOW, RiskGrade.LOW, RiskGrade.MEDIUM, RiskGrade.HIGH)[min(points, 3)]


def snipe_offset_for(risk: RiskGrade) -> int:
    offset = SNIPE_OFFSET_BY_RISK.get(risk, BASELINE_SNIPE_OFFSET_MINUTES)
    return int(_clamp(offset, MIN_SNIPE_OFFSET_MINUTES, MAX_SNIPE_OFFSET_MINUTES))


@dataclass(frozen=True)
class _SignalContext:
    auction: DomainAuction
    velocity: float
    headroom: float


Signal = Tuple[Callable[[_SignalContext], bool], Callable[[_SignalContext], str]]

# Evaluated in order; each firing predicate contributes exactly one note.
SIGNALS: List[Signal] = [
    (
        lambda c: c.auction.domain_authority >= 60,
        lambda c: f"Strong domain authority (DA {c.auction.domain_authority:g})",
    ),
    (
        lambda c: c.auction.backlinks >= 100 and c.auction.backlinks / max(c.auction.est_traffic, 1) >= 0.5,
        lambda c: "High backlink-to-traffic ratio",
    ),
    (
        lambda c: c.auction.est_revenue > c.auction.current_bid,
        lambda c: "Estimated revenue exceeds current bid",
    ),
    (
        lambda c: len(c.auction.keywords) >= 3,
        lambda c: "Keyword-rich: " + ", ".join(c.auction.keywords[:3]),
    ),
    (
        lambda c: c.auction.spam_score >= SPAM_NOTE_THRESHOLD,
        lambda c: f"Spam score elevated ({_clamp(c.auction.spam_score, 0, 10):g}/10)",
    ),
    (
        lambda c: c.velocity >= VELOCITY_ELEVATED,
        lambda c: "Bidding velocity high",
    ),
    (
        lambda c: c.auction.bids <= 0,
        lambda c: "No bids yet",
    ),
    (
        lambda c: c.headroom < CEILING_HEADROOM_TIGHT,
        lambda c: "Current bid close to recommended ceiling",
    ),
]


def signal_notes(auction: DomainAuction, velocity: float, headroom: float) -> Tuple[str, ...]:
    context = _SignalContext(auction=auction, velocity=velocity, headroom=headroom)
    notes: List[str] = []
    for predicate, message in SIGNALS:
        if predicate(context):
            note = message(context)
            if note not in notes:
                notes.append(note)
    return tuple(notes)


def analyze(auction: DomainAuction, now: Optional[datetime] = None) -> AuctionAnalysis:
    """Score one auction snapshot. Total and deterministic for a given (auction, now)."""
    score = composite_score(auction)
    ceiling = recommended_max_bid(auction, score)
    velocity = bid_velocity(auction, now)
    headroom = ceiling_headroom(auction, ceiling)
    risk = risk_for(auction, velocity, headroom)

    return AuctionAnalysis(
        score=score,
        strength=strength_for(score),
        risk=risk,
        recommended_max_bid=ceiling,
        snipe_offset_minutes=snipe_offset_for(risk),
        notes=signal_notes(auction, velocity, headroom),
    )
