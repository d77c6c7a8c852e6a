import logging
from typing import Any

from core.models import RawListing, SearchPage

log = logging.getLogger(__name__)

BROWSE_ITEMS_KEY = "itemSummaries"
DEAL_ITEMS_KEY = "dealItems"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def _str_or_none(value: Any) -> str | None:
    # Links, dates and labels are only usable as strings; anything else is dropped.
    return value if isinstance(value, str) else None


def _object(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _amount(block: Any) -> tuple[str | None, str | None]:
    if not isinstance(block, dict):
        return None, None
    return _text(block.get("value")), _text(block.get("currency"))


def _int_or_none(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _delivery_window(shipping_options: Any) -> tuple[str | None, str | None]:
    if not isinstance(shipping_options, list) or not shipping_options:
        return None, None
    first = _object(shipping_options[0])
    date_range = _object(first.get("estimatedDeliveryDateRange"))
    earliest = _str_or_none(date_range.get("earliestDate")) or _str_or_none(first.get("minEstimatedDeliveryDate"))
    latest = _str_or_none(date_range.get("latestDate")) or _str_or_none(first.get("maxEstimatedDeliveryDate"))
    return earliest, latest


def parse_item_summary(item: dict) -> RawListing:
    """Flatten one Browse/Deal API item record into a RawListing."""
    price_value, price_currency = _amount(item.get("price"))

    marketing = _object(item.get("marketingPrice"))
    original_value, original_currency = _amount(marketing.get("originalPrice"))

    image = item.get("image")
    if isinstance(image, dict):
        image_url = _str_or_none(image.get("imageUrl"))
    else:
        image_url = _str_or_none(image)

    seller = _object(item.get("seller"))
    categories = item.get("categories") or []
    category = None
    if isinstance(categories, list) and categories:
        category = _str_or_none(_object(categories[0]).get("categoryName"))

    buying_options = item.get("buyingOptions") or []
    if not isinstance(buying_options, list):
        buying_options = []

    earliest, latest = _delivery_window(item.get("shippingOptions"))

    return RawListing(
        item_id=_text(item.get("itemId")) or "",
        title=_text(item.get("title")) or "",
        price_value=price_value,
        price_currency=price_currency,
        original_price_value=original_value,
        original_price_currency=original_currency,
        discount_percentage=_text(marketing.get("discountPercentage")),
        image_url=image_url,
        deal_affiliate_web_url=_str_or_none(item.get("dealAffiliateWebUrl")),
        item_affiliate_web_url=_str_or_none(item.get("itemAffiliateWebUrl")),
        item_web_url=_str_or_none(item.get("itemWebUrl")),
        deal_web_url=_str_or_none(item.get("dealWebUrl")),
        item_href=_str_or_none(item.get("itemHref")),
        item_end_date=_str_or_none(item.get("itemEndDate")),
        deal_end_date=_str_or_none(item.get("dealEndDate")),
        item_creation_date=_str_or_none(item.get("itemCreationDate")),
        deal_start_date=_str_or_none(item.get("dealStartDate")),
        condition=_str_or_none(item.get("condition")),
        seller_feedback_percentage=_text(seller.get("feedbackPercentage")),
        seller_feedback_score=_int_or_none(seller.get("feedbackScore")),
        short_description=_str_or_none(item.get("shortDescription")),
        watch_count=_int_or_none(item.get("watchCount")),
        category=category,
        buying_options=[str(b) for b in buying_options],
        delivery_earliest=earliest,
        delivery_latest=latest,
        errors=list(item.get("errors") or []),
    )


async def parse_search_results_json(
    json_data: Any,
    offset: int = 0,
    items_key: str = BROWSE_ITEMS_KEY,
) -> SearchPage:
    """Parse a paginated search envelope.

    Raises ValueError when the envelope itself is malformed. Individual records
    that cannot be read are skipped and logged.
    """
    if not isinstance(json_data, dict):
        raise ValueError(f"Search envelope is not an object: {type(json_data).__name__}")

    raw_items = json_data.get(items_key) or []
    if not isinstance(raw_items, list):
        raise ValueError(f"'{items_key}' is not a list")

    total = json_data.get("total") or 0
    if not isinstance(total, int):
        total = _int_or_none(total) or 0

    errors = json_data.get("errors") or []
    if errors:
        log.warning(f"Search envelope reported errors: {errors}")

    results = []
    for item in raw_items:
        if not isinstance(item, dict):
            log.warning(f"Skipping non-object search record: {item!r}")
            continue
        try:
            results.append(parse_item_summary(item))
        except (AttributeError, TypeError, ValueError) as e:
            log.error(f"Failed to parse item {item.get('itemId', 'Unknown')}: {e}", exc_info=True)

    log.info(f"Parsed {len(results)} of {len(raw_items)} records (API total: {total})")
    return SearchPage(
        items=results,
        total=total,
        offset=offset,
        errors=list(errors),
        raw_count=len(raw_items),
    )
