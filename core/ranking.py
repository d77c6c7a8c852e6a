import logging
import math
import re
from datetime import date

from core.discount import parse_amount
from core.models import Auction, Deal
from core.normalizer import parse_timestamp

log = logging.getLogger(__name__)

NEW_RANK = 4
LIKE_NEW_RANK = 3
USED_RANK = 2
UNKNOWN_RANK = 1
FOR_PARTS_RANK = 0

FOR_PARTS_TERMS = ("for parts", "not working", "spares")
LIKE_NEW_TERMS = ("refurbished", "renewed", "open box", "like new", "with defects", "new other", "excellent")
NEW_TERMS = ("new",)
USED_TERMS = ("used", "pre-owned", "preowned", "very good", "good", "acceptable")

_SELLER_RATING = re.compile(r"^\s*(\d+(?:\.\d+)?)%(?:\s*\(([\d,]+)\))?")


def _mentions(text: str, terms: tuple[str, ...]) -> bool:
    return any(re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text) for term in terms)


def condition_rank(condition: str | None) -> int:
    if not condition:
        return UNKNOWN_RANK
    text = condition.lower()
    if _mentions(text, FOR_PARTS_TERMS):
        return FOR_PARTS_RANK
    if _mentions(text, LIKE_NEW_TERMS):
        return LIKE_NEW_RANK
    if _mentions(text, NEW_TERMS):
        return NEW_RANK
    if _mentions(text, USED_TERMS):
        return USED_RANK
    return UNKNOWN_RANK


def seller_trust_score(seller_rating: str | None) -> float:
    """Score from a "99.5% (2,500)" rating; grows with percentage and feedback count.

    Returns -1 when there is no rating so unrated sellers sort last.
    """
    if not seller_rating:
        return -1.0
    match = _SELLER_RATING.match(seller_rating)
    if not match:
        return -1.0
    percentage = float(match.group(1))
    count = int(match.group(2).replace(",", "")) if match.group(2) else 0
    return percentage / 100 * (1 + math.log10(1 + count))


def absolute_saving(deal: Deal) -> float:
    current = parse_amount(deal.price)
    original = parse_amount(deal.original_price)
    if current is None or original is None or original <= current:
        return 0.0
    return original - current


def _date_ordinal(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10]).toordinal()
    except ValueError:
        return None


def _deal_sort_key(deal: Deal) -> tuple:
    posted = _date_ordinal(deal.posted_date)
    delivery = _date_ordinal(deal.delivery_by)
    return (
        -deal.discount,
        -absolute_saving(deal),
        -condition_rank(deal.condition),
        -seller_trust_score(deal.seller_rating),
        -posted if posted is not None else math.inf,
        -(deal.watch_count or 0),
        delivery if delivery is not None else math.inf,
    )


def _auction_sort_key(auction: Auction) -> tuple:
    ends = parse_timestamp(auction.end_time)
    return (
        ends.timestamp() if ends else math.inf,
        -seller_trust_score(auction.seller_rating),
        -(auction.watch_count or 0),
    )


def rank_deals(deals: list[Deal]) -> list[Deal]:
    """Highest discount first, then saving, condition, trust, recency, watchers, delivery."""
    ranked = sorted(deals, key=_deal_sort_key)
    log.debug(f"Ranked {len(ranked)} deals")
    return ranked


def rank_auctions(auctions: list[Auction]) -> list[Auction]:
    """Soonest-ending first, then seller trust, then watchers."""
    ranked = sorted(auctions, key=_auction_sort_key)
    log.debug(f"Ranked {len(ranked)} auctions")
    return ranked
