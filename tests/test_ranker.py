import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from core.models import Deal
from core.ranker import SmartDealRanker, merge_ranked, restore_fields


def make_deal(id: str, **overrides) -> Deal:
    fields = dict(
        id=id,
        title=f"Item {id}",
        price="GBP 80.00",
        original_price="GBP 100.00",
        discount_percentage="20",
        image_url="https://i.ebayimg.com/x.jpg",
        link=f"https://www.ebay.co.uk/itm/{id}",
        condition="New",
    )
    fields.update(overrides)
    return Deal(**fields)


def static_rank(result):
    async def rank(deals, user_query):
        return result

    return rank


def failing_rank(exc: Exception):
    async def rank(deals, user_query):
        raise exc

    return rank


class TestMergeRanked:
    def test_subset_in_service_order(self):
        deals = [make_deal("a"), make_deal("b"), make_deal("c")]

        result = merge_ranked(deals, [{"id": "c"}, {"id": "a"}])

        assert [d.id for d in result] == ["c", "a"]

    def test_unknown_and_duplicate_ids_dropped(self):
        deals = [make_deal("a"), make_deal("b")]

        result = merge_ranked(deals, [{"id": "zzz"}, {"id": "b"}, {"id": "b"}, "a", 3.5])

        assert [d.id for d in result] == ["b", "a"]

    def test_restore_fields_keeps_originals(self):
        original = make_deal("a", watch_count=4)

        restored = restore_fields(
            original,
            {"id": "other", "title": "Rewritten title", "watch_count": "many", "link": None},
        )

        assert restored.id == "a"
        assert restored.title == "Rewritten title"
        assert restored.watch_count == 4
        assert restored.link == original.link


class TestSmartDealRanker:
    def test_disabled_passes_through(self):
        deals = [make_deal("a"), make_deal("b")]
        ranker = SmartDealRanker(enabled=False, rank_fn=failing_rank(AssertionError("not called")))

        assert asyncio.run(ranker.rank_deals(deals, "x")) == deals

    def test_empty_input(self):
        ranker = SmartDealRanker(enabled=True, rank_fn=failing_rank(AssertionError("not called")))
        assert asyncio.run(ranker.rank_deals([], "x")) == []

    def test_accepts_ranked_deals_envelope(self):
        deals = [make_deal("a"), make_deal("b")]
        ranker = SmartDealRanker(enabled=True, rank_fn=static_rank({"rankedDeals": [{"id": "b"}]}))

        result = asyncio.run(ranker.rank_deals(deals, "item"))

        assert [d.id for d in result] == ["b"]

    def test_failure_returns_input_order(self):
        deals = [make_deal("b"), make_deal("a")]
        ranker = SmartDealRanker(enabled=True, rank_fn=failing_rank(RuntimeError("service down")))

        result = asyncio.run(ranker.rank_deals(deals, "item"))

        assert [d.id for d in result] == ["b", "a"]

    def test_unreadable_response_falls_back(self):
        deals = [make_deal("a")]
        ranker = SmartDealRanker(enabled=True, rank_fn=static_rank("not json at all"))

        assert [d.id for d in asyncio.run(ranker.rank_deals(deals))] == ["a"]

    def test_chat_completion_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content.decode()
            content = '```json\n{"rankedDeals": [{"id": "b"}, {"id": "a"}]}\n```'
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ranker = SmartDealRanker(enabled=True, http_client=client)

        result = asyncio.run(ranker.rank_deals([make_deal("a"), make_deal("b")], "headphones"))

        assert [d.id for d in result] == ["b", "a"]
        assert "headphones" in seen["body"]
        assert "rankedDeals" in seen["body"]

    def test_http_error_falls_back(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ranker = SmartDealRanker(enabled=True, http_client=client)

        result = asyncio.run(ranker.rank_deals([make_deal("a"), make_deal("b")]))

        assert [d.id for d in result] == ["a", "b"]

    def test_try_rank_reports_failure(self):
        ranker = SmartDealRanker(enabled=True, rank_fn=failing_rank(ValueError("bad json")))

        assert asyncio.run(ranker.try_rank_deals([make_deal("a")])) is None
