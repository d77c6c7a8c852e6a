from dataclasses import dataclass, field
from enum import Enum

BUY_IT_NOW = "Buy It Now"


class SearchMode(Enum):
    DEALS = "deals"
    AUCTIONS = "auctions"
    ALL = "all"


class View(Enum):
    DEALS = "deals"
    AUCTIONS = "auctions"


class RejectReason(Enum):
    # normalizer
    MISSING_ID = "missing_id"
    MISSING_TITLE = "missing_title"
    MISSING_PRICE = "missing_price"
    MISSING_IMAGE = "missing_image"
    NO_VALID_LINK = "no_valid_link"
    MISSING_END_TIME = "missing_end_time"
    INVALID_END_TIME = "invalid_end_time"
    ITEM_ERRORS = "item_errors"
    # filter
    NOT_A_DEAL = "not_a_deal"
    IMPLAUSIBLE_ORIGINAL_PRICE = "implausible_original_price"
    NOT_GENUINE = "not_genuine"
    BULK_PRICING = "bulk_pricing"
    NOT_PRIMARY_PRODUCT = "not_primary_product"


@dataclass
class RawListing:
    item_id: str
    title: str
    price_value: str | None = None
    price_currency: str | None = None
    original_price_value: str | None = None
    original_price_currency: str | None = None
    discount_percentage: str | None = None
    image_url: str | None = None
    deal_affiliate_web_url: str | None = None
    item_affiliate_web_url: str | None = None
    item_web_url: str | None = None
    deal_web_url: str | None = None
    item_href: str | None = None
    item_end_date: str | None = None
    deal_end_date: str | None = None
    item_creation_date: str | None = None
    deal_start_date: str | None = None
    condition: str | None = None
    seller_feedback_percentage: str | None = None
    seller_feedback_score: int | None = None
    short_description: str | None = None
    watch_count: int | None = None
    category: str | None = None
    buying_options: list[str] = field(default_factory=list)
    delivery_earliest: str | None = None
    delivery_latest: str | None = None
    errors: list = field(default_factory=list)

    @property
    def is_auction(self) -> bool:
        return "AUCTION" in self.buying_options

    @property
    def short_title(self) -> str:
        return f"'{self.title[:30]}...'" if self.title else "Untitled Item"


@dataclass
class Deal:
    id: str
    title: str
    price: str
    image_url: str
    link: str
    original_price: str | None = None
    discount_percentage: str | None = None
    image_hint: str | None = None
    posted_date: str | None = None
    delivery_time: str | None = None
    delivery_by: str | None = None
    category: str | None = None
    condition: str | None = None
    seller_rating: str | None = None
    short_description: str | None = None
    watch_count: int | None = None
    buying_option: str = BUY_IT_NOW

    @property
    def discount(self) -> int:
        try:
            return int(self.discount_percentage or 0)
        except ValueError:
            return 0


@dataclass
class Auction:
    id: str
    title: str
    current_bid: str
    end_time: str
    image_url: str
    link: str
    image_hint: str | None = None
    delivery_time: str | None = None
    condition: str | None = None
    seller_rating: str | None = None
    short_description: str | None = None
    watch_count: int | None = None


@dataclass
class SearchPage:
    """One page of an upstream search: parsed records plus envelope metadata."""

    items: list[RawListing]
    total: int
    offset: int = 0
    errors: list = field(default_factory=list)
    raw_count: int | None = None

    def __post_init__(self) -> None:
        if self.raw_count is None:
            self.raw_count = len(self.items)
