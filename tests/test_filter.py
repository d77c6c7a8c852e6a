import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import settings
from core.filter import (
    evaluate_deal,
    filter_deals,
    has_plausible_original_price,
    is_genuine,
    is_primary_product,
    is_single_unit,
    is_specific_query,
    is_true_deal,
)
from core.models import Deal, RejectReason


def make_deal(**overrides) -> Deal:
    fields = dict(
        id="1",
        title="Apple iPhone 15 128GB Unlocked",
        price="GBP 600.00",
        original_price="GBP 800.00",
        discount_percentage="25",
        image_url="https://i.ebayimg.com/images/g/x/s-l1600.jpg",
        link="https://www.ebay.co.uk/itm/1",
        category="Mobile Phones",
        condition="New",
    )
    fields.update(overrides)
    return Deal(**fields)


class TestTrueDeal:
    def test_positive_discount(self):
        assert is_true_deal(make_deal())

    def test_original_above_current_without_percentage(self):
        assert is_true_deal(make_deal(discount_percentage=None))

    def test_no_discount(self):
        deal = make_deal(discount_percentage=None, original_price=None)
        assert not is_true_deal(deal)
        assert evaluate_deal(deal) is RejectReason.NOT_A_DEAL


class TestOriginalPrice:
    def test_inflated_original_rejected(self):
        deal = make_deal(price="GBP 10.00", original_price="GBP 999.00", discount_percentage="99")
        assert not has_plausible_original_price(deal)
        assert evaluate_deal(deal) is RejectReason.IMPLAUSIBLE_ORIGINAL_PRICE

    def test_collectibles_allow_higher_multiple(self):
        deal = make_deal(
            price="GBP 10.00",
            original_price="GBP 300.00",
            discount_percentage="97",
            category="Collectibles",
        )
        assert has_plausible_original_price(deal)

    def test_category_multiple_matches_uk_and_leaf_names(self):
        for category in ("Collectables", "Vintage Collectables", "Antique Clocks", "Art Prints"):
            deal = make_deal(
                price="GBP 10.00",
                original_price="GBP 300.00",
                discount_percentage="97",
                category=category,
            )
            assert has_plausible_original_price(deal), category

        assert settings.price_multiple_for("Wristwatches") == 20.0
        assert settings.price_multiple_for("Smart Home") == settings.max_original_price_multiple
        assert settings.price_multiple_for(None) == settings.max_original_price_multiple


class TestGenuine:
    def test_replica_rejected(self):
        assert not is_genuine(make_deal(title="Rolex Submariner Replica Watch"))
        assert not is_genuine(make_deal(title="Jordan 1 AAA Quality Sneakers"))

    def test_inspired_by_in_description(self):
        deal = make_deal(title="Designer Handbag", short_description="Inspired by a famous brand")
        assert not is_genuine(deal)

    def test_as_is_allowed_for_parts_queries(self):
        deal = make_deal(title="iPhone 12 as-is for parts")
        assert not is_genuine(deal, "iphone 12")
        assert is_genuine(deal, "iphone 12 parts")

    def test_word_boundaries(self):
        assert is_genuine(make_deal(title="Lifestyle Office Chair"))


class TestBulk:
    def test_bulk_listings_rejected(self):
        assert not is_single_unit(make_deal(title="USB-C Cable Pack of 10"))
        assert not is_single_unit(make_deal(title="100pcs Resistors"))
        assert not is_single_unit(make_deal(title="Wholesale T-Shirts Job Lot"))

    def test_pack_of_one_is_single(self):
        assert is_single_unit(make_deal(title="Batteries pack of 1"))

    def test_bulk_query_allows_lots(self):
        assert is_single_unit(make_deal(title="Lego Minifigures lot of 20"), "lego lot")


class TestPrimaryProduct:
    def test_specific_query(self):
        assert is_specific_query("iphone 15")
        assert not is_specific_query("today's deals")
        assert not is_specific_query(None)

    def test_accessory_rejected_for_specific_query(self):
        deal = make_deal(title="Silicone Case for iPhone 15")
        assert not is_primary_product(deal, "iphone 15")
        assert evaluate_deal(deal, "iphone 15") is RejectReason.NOT_PRIMARY_PRODUCT

    def test_accessory_kept_for_generic_query(self):
        assert is_primary_product(make_deal(title="Silicone Case for iPhone 15"), "deals")

    def test_accessory_kept_when_query_asks_for_it(self):
        assert is_primary_product(make_deal(title="Silicone Case for iPhone 15"), "iphone 15 case")

    def test_bundled_accessory_kept(self):
        assert is_primary_product(make_deal(title="iPhone 15 128GB with Case and Charger"), "iphone 15")

    def test_box_only_rejected(self):
        assert not is_primary_product(make_deal(title="iPhone 15 Box Only"), "iphone 15")

    def test_accessory_heading_listing_rejected(self):
        assert not is_primary_product(make_deal(title="Leather Case iPhone 15 Pro Black"), "iphone 15")
        assert not is_primary_product(make_deal(title="iPhone 15 Tempered Glass"), "iphone 15")

    def test_listed_extras_kept(self):
        cases = [
            ("Nintendo Switch OLED Console White, Dock & Joy-Cons", "nintendo switch"),
            ("MacBook Pro 14 M3 8GB 512GB Space Grey + Original Charger", "macbook pro"),
            ("iPhone 13 128GB Unlocked Boxed, Original Cable", "iphone 13"),
            ("Apple Watch Series 9 GPS 45mm Midnight Aluminium Case Sport Band", "apple watch"),
        ]
        for title, query in cases:
            assert is_primary_product(make_deal(title=title), query), title


class TestFilterDeals:
    def test_split_preserves_order(self):
        deals = [
            make_deal(id="a"),
            make_deal(id="b", title="Replica iPhone 15"),
            make_deal(id="c", price="GBP 500.00"),
            make_deal(id="d", discount_percentage=None, original_price=None),
        ]

        kept, rejected = filter_deals(deals, "iphone 15")

        assert [d.id for d in kept] == ["a", "c"]
        assert [(r.deal.id, r.reason) for r in rejected] == [
            ("b", RejectReason.NOT_GENUINE),
            ("d", RejectReason.NOT_A_DEAL),
        ]


class TestWorkedExamples:
    def test_ipad_case_excluded_ipad_retained(self):
        case = make_deal(id="case", title="iPad Air Smart Case (Blue)")
        tablet = make_deal(id="tablet", title="Apple iPad Air 5th Gen 64GB")

        kept, rejected = filter_deals([case, tablet], "iPad Air")

        assert [d.id for d in kept] == ["tablet"]
        assert rejected[0].reason is RejectReason.NOT_PRIMARY_PRODUCT

    def test_absurd_original_price(self):
        deal = make_deal(price="USD 20.00", original_price="USD 20000.00", discount_percentage="100", category=None)
        assert evaluate_deal(deal) is RejectReason.IMPLAUSIBLE_ORIGINAL_PRICE
