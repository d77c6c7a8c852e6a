import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from core.discount import format_price, parse_price, resolve_discount
from core.models import Auction, Deal, RawListing, RejectReason, SearchMode, SearchPage

log = logging.getLogger(__name__)

KNOWN_EBAY_ERROR_URL = "https://www.ebay.com/n/error"
PLACEHOLDER_URL = "#"
EBAY_IMAGE_HOST = "i.ebayimg.com"
HIGH_RES_SIZE = "s-l1600"
DEFAULT_CATEGORY = "General"

_IMAGE_SIZE_PATTERN = re.compile(r"/s-l\d+(\.\w+)")


@dataclass
class MappedPage:
    deals: list[Deal] = field(default_factory=list)
    auctions: list[Auction] = field(default_factory=list)
    rejections: Counter = field(default_factory=Counter)


def _blank(value: str | None) -> bool:
    return value is None or str(value).strip() == ""


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or _blank(value):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def high_res_image_url(url: str | None) -> str | None:
    if url and EBAY_IMAGE_HOST in url:
        return _IMAGE_SIZE_PATTERN.sub(rf"/{HIGH_RES_SIZE}\1", url)
    return url


def format_seller_rating(feedback_percentage: str | None, feedback_score: int | None) -> str | None:
    if _blank(feedback_percentage):
        return None
    rating = f"{feedback_percentage}%"
    if feedback_score is not None:
        rating += f" ({feedback_score:,})"
    return rating


def is_valid_link(link: str | None) -> bool:
    if not isinstance(link, str) or _blank(link):
        return False
    if not (link.startswith("http://") or link.startswith("https://")):
        return False
    return link not in (KNOWN_EBAY_ERROR_URL, PLACEHOLDER_URL)


def select_link(candidates: list[str | None]) -> str | None:
    """First valid candidate in precedence order."""
    for link in candidates:
        if is_valid_link(link):
            return link
    return None


def deal_link_candidates(raw: RawListing) -> list[str | None]:
    return [
        raw.deal_affiliate_web_url,
        raw.item_affiliate_web_url,
        raw.item_web_url,
        raw.deal_web_url,
        raw.item_href,
    ]


def auction_link_candidates(raw: RawListing) -> list[str | None]:
    return [raw.item_affiliate_web_url, raw.item_web_url, raw.item_href]


def format_delivery_window(earliest: str | None, latest: str | None) -> str | None:
    start = parse_timestamp(earliest)
    end = parse_timestamp(latest)
    if not start or not end:
        return None
    return f"{start:%b} {start.day} - {end:%b} {end.day}"


def image_hint(title: str) -> str:
    return " ".join(title.split()[:2]).lower()


def _format_amount(value: str, currency: str) -> str:
    amount = parse_price(value)
    if amount is None:
        return f"{currency} {value}"
    return format_price(currency, amount)


def _auction_end_time(raw: RawListing) -> str | None:
    return raw.item_end_date or raw.deal_end_date


def _check_common(raw: RawListing) -> RejectReason | None:
    if _blank(raw.item_id):
        return RejectReason.MISSING_ID
    if _blank(raw.title):
        return RejectReason.MISSING_TITLE
    if _blank(raw.price_value) or _blank(raw.price_currency):
        return RejectReason.MISSING_PRICE
    if _blank(raw.image_url):
        return RejectReason.MISSING_IMAGE
    return None


def check_deal(raw: RawListing) -> RejectReason | None:
    reason = _check_common(raw)
    if reason:
        return reason
    if not select_link(deal_link_candidates(raw)):
        return RejectReason.NO_VALID_LINK
    return None


def check_auction(raw: RawListing) -> RejectReason | None:
    reason = _check_common(raw)
    if reason:
        return reason
    end_time = _auction_end_time(raw)
    if _blank(end_time):
        return RejectReason.MISSING_END_TIME
    if parse_timestamp(end_time) is None:
        return RejectReason.INVALID_END_TIME
    if not select_link(auction_link_candidates(raw)):
        return RejectReason.NO_VALID_LINK
    return None


def _log_rejection(kind: str, raw: RawListing, reason: RejectReason) -> None:
    if reason is RejectReason.NO_VALID_LINK:
        candidates = deal_link_candidates(raw) if kind == "deal" else auction_link_candidates(raw)
        links = "; ".join(link for link in candidates if link) or "None"
        log.warning(
            f"Item ID {raw.item_id} ({raw.short_title}) rejected as {kind}: "
            f"{reason.value}. API links: [{links}]"
        )
        return
    log.warning(f"Item ID {raw.item_id or 'Unknown'} ({raw.short_title}) rejected as {kind}: {reason.value}")


def normalize_to_deal(raw: RawListing) -> Deal | None:
    reason = check_deal(raw)
    if reason:
        _log_rejection("deal", raw, reason)
        return None

    currency = raw.price_currency
    supplied_original = None
    if not _blank(raw.original_price_value) and not _blank(raw.original_price_currency):
        supplied_original = f"{raw.original_price_currency} {raw.original_price_value}"

    resolution = resolve_discount(
        raw.price_value,
        currency,
        original_value=raw.original_price_value,
        declared_percentage=raw.discount_percentage,
        original_price=supplied_original,
    )

    posted = parse_timestamp(raw.item_creation_date) or parse_timestamp(raw.deal_start_date)
    delivery_by = parse_timestamp(raw.delivery_latest)

    return Deal(
        id=raw.item_id,
        title=raw.title,
        price=_format_amount(raw.price_value, currency),
        original_price=resolution.original_price,
        discount_percentage=str(resolution.percentage) if resolution.percentage > 0 else None,
        image_url=high_res_image_url(raw.image_url),
        image_hint=image_hint(raw.title),
        link=select_link(deal_link_candidates(raw)),
        posted_date=posted.date().isoformat() if posted else None,
        delivery_time=format_delivery_window(raw.delivery_earliest, raw.delivery_latest),
        delivery_by=delivery_by.date().isoformat() if delivery_by else None,
        category=raw.category or DEFAULT_CATEGORY,
        condition=raw.condition,
        seller_rating=format_seller_rating(raw.seller_feedback_percentage, raw.seller_feedback_score),
        short_description=raw.short_description,
        watch_count=raw.watch_count,
    )


def normalize_to_auction(raw: RawListing) -> Auction | None:
    reason = check_auction(raw)
    if reason:
        _log_rejection("auction", raw, reason)
        return None

    return Auction(
        id=raw.item_id,
        title=raw.title,
        current_bid=_format_amount(raw.price_value, raw.price_currency),
        end_time=_auction_end_time(raw),
        image_url=high_res_image_url(raw.image_url),
        image_hint=image_hint(raw.title),
        link=select_link(auction_link_candidates(raw)),
        delivery_time=format_delivery_window(raw.delivery_earliest, raw.delivery_latest),
        condition=raw.condition,
        seller_rating=format_seller_rating(raw.seller_feedback_percentage, raw.seller_feedback_score),
        short_description=raw.short_description,
        watch_count=raw.watch_count,
    )


def map_search_page(page: SearchPage, mode: SearchMode = SearchMode.ALL) -> MappedPage:
    """Route each raw listing to exactly one of deal, auction or rejected."""
    mapped = MappedPage()

    for raw in page.items:
        if raw.errors:
            log.warning(f"Item ID {raw.item_id or 'Unknown'} has API-level errors: {raw.errors}. Skipping.")
            mapped.rejections[RejectReason.ITEM_ERRORS] += 1
            continue

        if mode is SearchMode.AUCTIONS or raw.is_auction:
            auction = normalize_to_auction(raw)
            if auction:
                mapped.auctions.append(auction)
            else:
                mapped.rejections[check_auction(raw)] += 1
            continue

        deal = normalize_to_deal(raw)
        if deal:
            mapped.deals.append(deal)
        else:
            mapped.rejections[check_deal(raw)] += 1

    log.info(
        f"Mapped {page.raw_count} raw items ({mode.value}): "
        f"{len(mapped.deals)} deals, {len(mapped.auctions)} auctions, "
        f"{sum(mapped.rejections.values())} rejected"
    )
    return mapped
