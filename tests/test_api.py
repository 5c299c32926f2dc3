"""HTTP surface tests with FastAPI's TestClient."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from limits.aio.storage import MemoryStorage
from sqlmodel import Session

from etf_backend.errors import UpstreamUnavailable
from etf_backend.main import app
from etf_backend.models.crypto_price import CryptoPrice
from etf_backend.schemas.price import AssetQuote
from etf_backend.services.coingecko import CoinGeckoAdapter
from etf_backend.services.rate_limit import RateLimiter


@pytest.fixture
def adapter():
    return MagicMock(spec=CoinGeckoAdapter)


@pytest.fixture
def client(adapter):
    with TestClient(app) as c:
        app.state.coingecko = adapter
        app.state.rate_limiter = RateLimiter(MemoryStorage(), max_requests=50, window_seconds=60)
        yield c


# ---------------------------------------------------------------------------
# 1. Price sync and reads
# ---------------------------------------------------------------------------

class TestPricesApi:
    def test_sync_writes_prices_and_basket(self, client, adapter):
        adapter.fetch_prices.return_value = {
            "bitcoin": AssetQuote(price_usd=43000.0, change_24h=2.0),
            "ethereum": AssetQuote(price_usd=2300.0, change_24h=1.0),
        }

        resp = client.post("/api/prices/sync")

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert set(body["prices"]) == {"BTC", "ETH", "ETF"}
        assert body["prices"]["ETF"] == pytest.approx((0.4 * 43000 + 0.3 * 2300) / 0.7 * 2.5)

        listed = client.get("/api/prices").json()
        assert [r["symbol"] for r in listed] == ["BTC", "ETF", "ETH"]
        assert len({r["updated_at"] for r in listed}) == 1

    def test_sync_upstream_failure_is_502(self, client, adapter):
        adapter.fetch_prices.side_effect = UpstreamUnavailable("CoinGecko API error: 503 Service Unavailable")

        resp = client.post("/api/prices/sync")

        assert resp.status_code == 502
        assert "503" in resp.json()["error"]
        assert client.get("/api/prices").json() == []

    def test_get_single_price(self, client, db):
        with Session(db) as session:
            session.add(CryptoPrice(symbol="BTC", price_usd=43000.0))
            session.commit()

        assert client.get("/api/prices/btc").json()["price_usd"] == 43000.0
        assert client.get("/api/prices/DOGE").status_code == 404

    def test_delete_price(self, client, db):
        with Session(db) as session:
            session.add(CryptoPrice(symbol="ADA", price_usd=0.5))
            session.commit()

        assert client.delete("/api/prices/ADA").status_code == 200
        assert client.delete("/api/prices/ADA").status_code == 404


# ---------------------------------------------------------------------------
# 2. CoinGecko read proxy
# ---------------------------------------------------------------------------

class TestProxyApi:
    def test_allowed_endpoint_passes_through_with_cache_header(self, client, adapter):
        adapter.proxy_get.return_value = [{"id": "bitcoin", "current_price": 43000}]

        resp = client.get("/api/coingecko", params={"endpoint": "/coins/markets", "per_page": "5"})

        assert resp.status_code == 200
        assert resp.json() == [{"id": "bitcoin", "current_price": 43000}]
        assert resp.headers["cache-control"] == "public, s-maxage=60, stale-while-revalidate=30"
        endpoint, params = adapter.proxy_get.call_args.args
        assert endpoint == "/coins/markets"
        assert params == {
            "vs_currency": "usd",
            "ids": "bitcoin,ethereum",
            "order": "market_cap_desc",
            "per_page": "5",
            "page": "1",
        }

    def test_simple_price_params(self, client, adapter):
        adapter.proxy_get.return_value = {"bitcoin": {"usd": 43000}}

        client.get("/api/coingecko", params={"endpoint": "/simple/price", "ids": "bitcoin"})

        _, params = adapter.proxy_get.call_args.args
        assert params["vs_currencies"] == "usd"
        assert params["include_24hr_change"] == "true"

    @pytest.mark.parametrize("endpoint", ["/admin/anything", "/coins/list", "/coins/markets/../../admin"])
    def test_disallowed_endpoint_is_403_without_upstream_call(self, client, adapter, endpoint):
        resp = client.get("/api/coingecko", params={"endpoint": endpoint})

        assert resp.status_code == 403
        assert resp.json() == {"error": "Endpoint not allowed"}
        adapter.proxy_get.assert_not_called()

    def test_upstream_failure_degrades_to_mock(self, client, adapter):
        adapter.proxy_get.side_effect = UpstreamUnavailable("CoinGecko unreachable: timeout")

        resp = client.get("/api/coingecko")

        assert resp.status_code == 200
        body = resp.json()
        assert body["error"] == "Failed to fetch crypto data"
        assert body["message"] == "CoinGecko unreachable: timeout"
        assert [m["id"] for m in body["mock"]] == ["bitcoin", "ethereum"]

    def test_bad_paging_is_400_without_upstream_call(self, client, adapter):
        resp = client.get("/api/coingecko", params={"per_page": "ten"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "per_page must be a positive integer"}
        adapter.proxy_get.assert_not_called()

    def test_51st_request_is_429_without_upstream_call(self, client, adapter):
        adapter.proxy_get.return_value = []
        headers = {"Authorization": "Bearer abc"}
        for _ in range(50):
            assert client.get("/api/coingecko", headers=headers).status_code == 200

        resp = client.get("/api/coingecko", headers=headers)

        assert resp.status_code == 429
        assert 0 < int(resp.headers["retry-after"]) <= 60
        assert adapter.proxy_get.await_count == 50

    def test_rate_limit_checked_before_allow_list(self, client, adapter):
        adapter.proxy_get.return_value = []
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        for _ in range(50):
            client.get("/api/coingecko", params={"endpoint": "/admin"}, headers=headers)

        resp = client.get("/api/coingecko", params={"endpoint": "/admin"}, headers=headers)

        assert resp.status_code == 429
        # Another forwarded client is unaffected
        other = client.get("/api/coingecko", headers={"X-Forwarded-For": "198.51.100.2"})
        assert other.status_code == 200


# ---------------------------------------------------------------------------
# 3. Alerts
# ---------------------------------------------------------------------------

class TestAlertsApi:
    def test_create_list_and_evaluate(self, client, db, make_user):
        uid = make_user("a@example.com")
        with Session(db) as session:
            session.add(CryptoPrice(symbol="BTC", price_usd=43000.0))
            session.commit()

        created = client.post(
            "/api/alerts",
            json={"user_id": uid, "symbol": " btc ", "target_price": 42000, "condition": "above"},
        )
        assert created.status_code == 201
        assert created.json()["symbol"] == "BTC"

        dry = client.post("/api/alerts/evaluate", json={"dryRun": True})
        assert dry.json() == {"evaluated": 1, "triggered": 1}

        result = client.post("/api/alerts/evaluate", json={"userId": uid})
        assert result.json() == {"evaluated": 1, "triggered": 1}

        listed = client.get("/api/alerts", params={"user_id": uid}).json()
        assert listed[0]["is_active"] is False

    def test_evaluate_without_body(self, client):
        assert client.post("/api/alerts/evaluate").json() == {"evaluated": 0, "triggered": 0}

    def test_create_rejects_missing_fields(self, client):
        resp = client.post("/api/alerts", json={"symbol": "BTC"})
        assert resp.status_code == 422

    def test_create_rejects_unknown_condition(self, client, make_user):
        uid = make_user("a@example.com")
        resp = client.post(
            "/api/alerts",
            json={"user_id": uid, "symbol": "BTC", "target_price": 1, "condition": "sideways"},
        )
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# 4. System
# ---------------------------------------------------------------------------

class TestSystemApi:
    def test_health(self, client):
        body = client.get("/api/system/health").json()
        assert body["status"] == "ok"
        assert body["last_price_update"] is None

    def test_scheduler_disabled_in_tests(self, client):
        assert client.get("/api/system/scheduler").json()["running"] is False

    def test_unknown_job_is_404(self, client):
        assert client.post("/api/system/trigger/nope").status_code == 404

    def test_trigger_alert_check_writes_sync_log(self, client):
        resp = client.post("/api/system/trigger/alert_check")
        assert resp.status_code == 200
        assert resp.json()["result"] == {"evaluated": 0, "triggered": 0}

        logs = client.get("/api/system/logs", params={"job": "alert_check"}).json()
        assert len(logs) == 1
        assert logs[0]["status"] == "success"


# ---------------------------------------------------------------------------
# 5. Realtime websocket
# ---------------------------------------------------------------------------

class TestRealtimeWebSocket:
    def test_sync_changes_are_streamed(self, client, adapter):
        adapter.fetch_prices.return_value = {"bitcoin": AssetQuote(price_usd=43000.0, change_24h=1.0)}

        with client.websocket_connect("/ws/prices") as ws:
            assert ws.receive_json() == {"type": "subscribed"}
            client.post("/api/prices/sync")

            events = [ws.receive_json() for _ in range(2)]

        assert {e["new"]["symbol"] for e in events} == {"BTC", "ETF"}
        assert all(e["type"] == "INSERT" and e["old"] is None for e in events)

    def test_delete_is_streamed_with_old_row(self, client, db):
        with Session(db) as session:
            session.add(CryptoPrice(symbol="ADA", price_usd=0.5))
            session.commit()

        with client.websocket_connect("/ws/prices") as ws:
            ws.receive_json()
            client.delete("/api/prices/ADA")
            event = ws.receive_json()

        assert event["type"] == "DELETE"
        assert event["new"] is None
        assert event["old"]["symbol"] == "ADA"
