import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import pytest

from config import settings
from core.ebay import (
    DEAL_ITEMS_PATH,
    FIELD_GROUPS,
    EbayAuthError,
    EbayClient,
    EbaySearchError,
    TokenProvider,
)
from core.models import SearchMode

AUTH_URL = "https://auth.test/identity/v1/oauth2/token"
BASE_URL = "https://api.test"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def token_response(token: str = "tok-1", expires_in: int = 7200) -> httpx.Response:
    return httpx.Response(200, json={"access_token": token, "expires_in": expires_in, "token_type": "Bearer"})


def make_provider(handler, clock=None) -> TokenProvider:
    return TokenProvider(
        client_id="id",
        client_secret="secret",
        auth_url=AUTH_URL,
        expiry_buffer=300,
        clock=clock or FakeClock(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestTokenProvider:
    def test_token_reused_until_buffer(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return token_response(f"tok-{len(calls)}")

        clock = FakeClock()
        provider = make_provider(handler, clock)

        async def run():
            first = await provider.get_token()
            clock.now += 7200 - 301
            second = await provider.get_token()
            clock.now += 2
            third = await provider.get_token()
            return first, second, third

        first, second, third = asyncio.run(run())

        assert first == second == "tok-1"
        assert third == "tok-2"
        assert len(calls) == 2

    def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.content.decode()
            return token_response()

        asyncio.run(make_provider(handler).get_token())

        assert seen["auth"].startswith("Basic ")
        assert "grant_type=client_credentials" in seen["body"]
        assert "scope=" in seen["body"]

    def test_concurrent_callers_share_one_request(self):
        calls = []

        async def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            await asyncio.sleep(0.01)
            return token_response()

        provider = make_provider(handler)

        async def run():
            return await asyncio.gather(*(provider.get_token() for _ in range(5)))

        tokens = asyncio.run(run())

        assert set(tokens) == {"tok-1"}
        assert len(calls) == 1

    def test_auth_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        with pytest.raises(EbayAuthError):
            asyncio.run(make_provider(handler).get_token())

    def test_malformed_auth_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(EbayAuthError):
            asyncio.run(make_provider(handler).get_token())

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "ebay_use_sandbox", False)
        monkeypatch.setattr(settings, "ebay_client_id", None)
        monkeypatch.setattr(settings, "ebay_client_secret", None)

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected without credentials")

        provider = make_provider(handler)
        provider.client_id = None
        provider.client_secret = None

        with pytest.raises(EbayAuthError):
            asyncio.run(provider.get_token())


def make_client(handler) -> EbayClient:
    def routed(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/token"):
            return token_response()
        return handler(request)

    transport = httpx.MockTransport(routed)
    provider = TokenProvider(
        client_id="id",
        client_secret="secret",
        auth_url=AUTH_URL,
        clock=FakeClock(),
        http_client=httpx.AsyncClient(transport=transport),
    )
    return EbayClient(
        token_provider=provider,
        http_client=httpx.AsyncClient(transport=transport),
        base_url=BASE_URL,
        marketplace_id="EBAY_GB",
    )


def summary(item_id: str, **extra) -> dict:
    item = {
        "itemId": item_id,
        "title": f"Item {item_id}",
        "price": {"value": "10.00", "currency": "GBP"},
    }
    item.update(extra)
    return item


class TestEbayClient:
    def test_search_deals(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={"total": 75, "itemSummaries": [summary("a"), summary("b")]})

        page = asyncio.run(make_client(handler).search_items("laptop", limit=50, offset=25, mode=SearchMode.DEALS))

        request = seen["request"]
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert request.headers["X-EBAY-C-MARKETPLACE-ID"] == "EBAY_GB"
        assert request.url.params["q"] == "laptop"
        assert request.url.params["limit"] == "50"
        assert request.url.params["offset"] == "25"
        assert request.url.params["fieldgroups"] == FIELD_GROUPS
        assert "filter" not in request.url.params
        assert page.total == 75
        assert page.offset == 25
        assert [r.item_id for r in page.items] == ["a", "b"]

    def test_search_auctions_adds_filter(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = request.url.params
            return httpx.Response(200, json={"total": 0})

        asyncio.run(make_client(handler).search_items("camera", mode=SearchMode.AUCTIONS))

        assert seen["params"]["filter"] == "buyingOptions:{AUCTION}"

    def test_search_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(EbaySearchError) as exc:
            asyncio.run(make_client(handler).search_items("laptop"))
        assert exc.value.status_code == 500

    def test_search_malformed_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=json.dumps([1, 2, 3]))

        with pytest.raises(EbaySearchError):
            asyncio.run(make_client(handler).search_items("laptop"))

    def test_network_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(httpx.HTTPError):
            asyncio.run(make_client(handler).search_items("laptop"))

    def test_marketplace_deals(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            return httpx.Response(200, json={"total": 1, "dealItems": [summary("d")]})

        page = asyncio.run(make_client(handler).fetch_marketplace_deals(limit=10))

        assert seen["path"] == DEAL_ITEMS_PATH
        assert [r.item_id for r in page.items] == ["d"]

    def test_get_item(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.raw_path.decode()
            return httpx.Response(200, json=summary("v1|99|0"))

        raw = asyncio.run(make_client(handler).get_item("v1|99|0"))

        assert raw.item_id == "v1|99|0"
        assert "v1%7C99%7C0" in seen["path"]
