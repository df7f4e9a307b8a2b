"""
market-data-service 服务层与接口测试

覆盖范围：
  - 行情服务（获取 → 清洗 → 分析流水线、数据不足降级）
  - 图表视图构建（SMA 曲线、区间表现）
  - 组合服务（批量容错、汇率兜底、估值）
  - 代码搜索服务（缓存）
  - FastAPI 路由（通过 TestClient 测试，服务层使用替身）
"""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, unquote, urlparse

import pytest
from fastapi.testclient import TestClient

# 确保仓库根目录（market_data_service/ 的父目录）在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from market_data_service.exceptions import NoRelayAvailable  # noqa: E402


# ─────────────────────────────────────────────────────────
# 辅助函数
# ─────────────────────────────────────────────────────────

def _chart_payload(symbol, closes, currency="USD", meta=None) -> dict:
    return {
        "chart": {
            "result": [{
                "meta": {
                    "symbol": symbol,
                    "currency": currency,
                    "instrumentType": "EQUITY",
                    "shortName": f"{symbol} Corp",
                    **(meta or {}),
                },
                "timestamp": [1_700_000_000 + i * 86400 for i in range(len(closes))],
                "indicators": {"quote": [{"close": closes}]},
            }],
            "error": None,
        }
    }


class FakeRelay:
    """按 (symbol, range, interval) 或 ("search", q) 返回预设响应"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []

    async def fetch_json(self, target_url):
        parsed = urlparse(target_url)
        params = parse_qs(parsed.query)
        if "q" in params:
            key = ("search", params["q"][0])
        else:
            key = (unquote(parsed.path.rsplit("/", 1)[-1]), params["range"][0], params["interval"][0])
        self.calls.append(key)
        if key not in self.responses:
            raise NoRelayAvailable(f"{key} 无可用节点")
        return self.responses[key]


def _services(responses=None):
    from market_data_service.layers.acquisition import AcquisitionLayer
    from market_data_service.layers.cache import CacheLayer
    from market_data_service.services.portfolio_service import PortfolioService
    from market_data_service.services.quote_service import QuoteService

    relay = FakeRelay(responses)
    acq = AcquisitionLayer(relay=relay, cache=CacheLayer(ttl=300))
    quotes = QuoteService(acquisition=acq)
    return PortfolioService(quotes=quotes, acquisition=acq), quotes, relay


# ─────────────────────────────────────────────────────────
# 1. 行情服务测试
# ─────────────────────────────────────────────────────────

class TestQuoteService:
    def test_available_quote(self):
        _, quotes, _ = _services({("AAPL", "1y", "1d"): _chart_payload("AAPL", [100.0, None, 110.0])})
        quote = asyncio.run(quotes.get_quote("AAPL", "1y", "1d"))
        assert quote.available
        assert quote.analysis.price == 110.0
        assert quote.analysis.change_percent == pytest.approx(10.0)
        assert quote.analysis.sma50 is None and quote.analysis.trend.value == "neutral"
        assert quote.meta.name == "AAPL Corp"

    def test_single_day_change_since_previous_close(self):
        payload = _chart_payload("AAPL", [101.0, 103.0, 105.0], meta={"chartPreviousClose": 100.0})
        _, quotes, _ = _services({("AAPL", "1d", "5m"): payload})
        quote = asyncio.run(quotes.get_quote("AAPL", "1d", "5m"))
        assert quote.analysis.reference_price == 100.0
        assert quote.analysis.change_percent == pytest.approx(5.0)

    def test_fallback_range_uses_period_start(self):
        payload = _chart_payload("FUND", [50.0, 55.0], meta={"chartPreviousClose": 40.0})
        _, quotes, _ = _services({("FUND", "5d", "1d"): payload})
        quote = asyncio.run(quotes.get_quote("FUND", "1d", "5m"))
        assert quote.range == "5d" and quote.interval == "1d"
        assert quote.analysis.reference_price == 50.0

    def test_meta_only_payload_has_no_analysis(self):
        from market_data_service.models.market import ErrorKind
        payload = _chart_payload("UIV7.SG", [None, None], meta={"regularMarketPrice": 12.3})
        _, quotes, _ = _services({("UIV7.SG", "1y", "1d"): payload})
        quote = asyncio.run(quotes.get_quote("uiv7.sg", "1y", "1d"))
        assert not quote.available
        assert quote.error == ErrorKind.INSUFFICIENT_SERIES
        assert quote.meta.regular_market_price == 12.3

    def test_unavailable_quote(self):
        from market_data_service.models.market import ErrorKind
        _, quotes, _ = _services()
        quote = asyncio.run(quotes.get_quote("NOPE", "1y", "1d"))
        assert not quote.available and quote.error == ErrorKind.NO_RELAY_AVAILABLE
        assert quote.range == "1y"

    def test_chart_view(self):
        closes = [float(i) for i in range(1, 61)]
        _, quotes, _ = _services({("AAPL", "1y", "1d"): _chart_payload("AAPL", closes)})
        result = asyncio.run(quotes.get_chart("AAPL", "1y", "1d"))
        chart = result["chart"]
        assert len(chart.points) == 60
        assert len(chart.sma50) == 11 and chart.sma200 == []
        assert chart.sma50[0].value == pytest.approx(25.5)
        assert chart.direction == "up" and chart.currency == "USD"


class TestChartView:
    def test_empty_series(self):
        from market_data_service.layers.presentation import build_chart_view
        from market_data_service.models.market import CleanSeries
        view = build_chart_view("X", CleanSeries())
        assert view.empty and view.performance_percent is None

    def test_overlays_disabled(self):
        from market_data_service.layers.presentation import build_chart_view
        from market_data_service.models.chart import ChartViewConfig
        from market_data_service.models.market import CleanSeries
        series = CleanSeries(
            timestamps=tuple(range(60)),
            prices=tuple(float(100 - i) for i in range(60)),
        )
        view = build_chart_view("X", series, ChartViewConfig(show_sma50=False, show_sma200=False))
        assert view.sma50 == [] and view.direction == "down"
        assert view.start_time == 0 and view.end_time == 59


# ─────────────────────────────────────────────────────────
# 2. 组合服务测试
# ─────────────────────────────────────────────────────────

class TestPortfolioService:
    def test_batch_survives_partial_failure(self):
        from market_data_service.models.market import ErrorKind
        from market_data_service.models.portfolio import Position
        responses = {
            ("AAPL", "1y", "1d"): _chart_payload("AAPL", [100.0, 110.0]),
            ("MSFT", "1y", "1d"): _chart_payload("MSFT", [200.0, 210.0]),
            ("SAP.DE", "1y", "1d"): _chart_payload("SAP.DE", [150.0, 160.0], currency="EUR"),
        }
        portfolio, _, _ = _services(responses)
        positions = [Position(symbol=s, quantity=1) for s in ["AAPL", "BAD1", "MSFT", "BAD2", "SAP.DE"]]

        snapshot = asyncio.run(portfolio.refresh(positions, "1y", "1d"))

        assert snapshot.available_count == 3 and snapshot.unavailable_count == 2
        assert [p.symbol for p in snapshot.positions] == ["AAPL", "BAD1", "MSFT", "BAD2", "SAP.DE"]
        failed = [p.quote for p in snapshot.positions if not p.quote.available]
        assert all(q.error == ErrorKind.NO_RELAY_AVAILABLE for q in failed)

    def test_fx_fallback_and_valuation(self):
        from market_data_service.config import settings
        from market_data_service.models.portfolio import Position
        responses = {
            ("AAPL", "1y", "1d"): _chart_payload("AAPL", [100.0, 108.0]),
            ("SAP.DE", "1y", "1d"): _chart_payload("SAP.DE", [90.0, 100.0], currency="EUR"),
        }
        portfolio, _, _ = _services(responses)
        positions = [Position(symbol="AAPL", quantity=10), Position(symbol="SAP.DE", quantity=2)]

        snapshot = asyncio.run(portfolio.refresh(positions, "1y", "1d"))

        rate = settings.FX_FALLBACK_RATE
        assert snapshot.fx_fallback and snapshot.eur_usd_rate == rate
        aapl, sap = snapshot.positions
        assert aapl.value_native == pytest.approx(1080.0)
        assert aapl.value_eur == pytest.approx(1080.0 / rate)
        assert sap.value_eur == pytest.approx(200.0)
        assert snapshot.total_eur == pytest.approx(1080.0 / rate + 200.0)
        assert snapshot.total_usd == pytest.approx(snapshot.total_eur * rate)
        assert aapl.weight_percent + sap.weight_percent == pytest.approx(100.0)

    def test_fx_rate_from_meta(self):
        from market_data_service.config import settings
        fx = _chart_payload(settings.FX_SYMBOL, [1.10, 1.12], currency="USD", meta={"regularMarketPrice": 1.15})
        portfolio, _, _ = _services({(settings.FX_SYMBOL, "5d", "1d"): fx})
        assert asyncio.run(portfolio.eur_usd_rate()) == (1.15, False)

    def test_unexpected_error_isolated(self):
        from market_data_service.models.market import ErrorKind, SymbolQuote
        from market_data_service.services.portfolio_service import PortfolioService

        async def get_quote(symbol, range_=None, interval=None):
            if symbol == "BOOM":
                raise RuntimeError("boom")
            return SymbolQuote(symbol=symbol, available=False, error=ErrorKind.NO_PRICE_DATA)

        quotes = AsyncMock()
        quotes.get_quote.side_effect = get_quote
        portfolio = PortfolioService(quotes=quotes, acquisition=AsyncMock())
        results = asyncio.run(portfolio.fetch_quotes(["OK", "BOOM"]))
        assert results[0].error == ErrorKind.NO_PRICE_DATA
        assert results[1].error == ErrorKind.UNEXPECTED and "boom" in results[1].message

    def test_empty_portfolio(self):
        from market_data_service.services.portfolio_service import PortfolioService
        snapshot = PortfolioService.value([], [], 1.1)
        assert snapshot.total_eur == 0 and snapshot.positions == []


# ─────────────────────────────────────────────────────────
# 3. 代码搜索服务测试
# ─────────────────────────────────────────────────────────

class TestSearchService:
    def test_results_cached(self):
        from market_data_service.layers.acquisition import AcquisitionLayer
        from market_data_service.layers.cache import CacheLayer
        from market_data_service.services.search_service import SearchService

        relay = FakeRelay({("search", "apple"): {"quotes": [
            {"symbol": "AAPL", "shortname": "Apple Inc.", "quoteType": "EQUITY", "isYahooFinance": True},
        ]}})
        cache = CacheLayer(ttl=300)
        svc = SearchService(acquisition=AcquisitionLayer(relay=relay, cache=cache), cache=cache)
        first = asyncio.run(svc.search("Apple"))
        second = asyncio.run(svc.search("apple "))
        assert [m.symbol for m in first] == ["AAPL"] and second == first
        assert relay.calls == [("search", "Apple")]

    def test_blank_query(self):
        from market_data_service.services.search_service import SearchService
        svc = SearchService(acquisition=AsyncMock(), cache=AsyncMock())
        assert asyncio.run(svc.search("  ")) == []


# ─────────────────────────────────────────────────────────
# 4. HTTP 路由测试（TestClient）
# ─────────────────────────────────────────────────────────

@pytest.fixture(scope="module")
def client():
    from market_data_service.main import app
    with TestClient(app) as c:
        yield c


class TestHealthRoutes:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200 and r.json()["data"]["status"] == "ok"

    def test_healthz(self, client):
        assert client.get("/healthz").json()["status"] == "ok"

    def test_readyz(self, client):
        assert client.get("/readyz").json() == {"ready": True}

    def test_readyz_without_relays(self, client):
        from market_data_service.config import settings
        with patch.object(settings, "RELAY_URLS", []):
            r = client.get("/readyz")
        assert r.status_code == 503 and r.json()["ready"] is False

    def test_root(self, client):
        body = client.get("/").json()
        assert "version" in body and "docs" in body


class TestQuoteRoutes:
    def test_quote_available(self, client):
        from market_data_service.models.market import AnalysisResult, SymbolQuote
        quote = SymbolQuote(
            symbol="AAPL", available=True, range="1y", interval="1d",
            analysis=AnalysisResult(
                symbol="AAPL", name="Apple", price=110.0, reference_price=100.0,
                change=10.0, change_percent=10.0,
            ),
        )
        svc = AsyncMock()
        svc.get_quote.return_value = quote
        with patch("market_data_service.routers.quotes.get_quote_service", return_value=svc):
            r = client.get("/api/quotes/AAPL", params={"range": "1y", "interval": "1d"})
        body = r.json()
        assert r.status_code == 200 and body["success"]
        assert body["data"]["analysis"]["change_percent"] == 10.0
        svc.get_quote.assert_awaited_once_with("AAPL", "1y", "1d")

    def test_quote_degraded(self, client):
        from market_data_service.models.market import ErrorKind, SymbolQuote
        svc = AsyncMock()
        svc.get_quote.return_value = SymbolQuote(
            symbol="DEAD", available=False, error=ErrorKind.NO_RELAY_AVAILABLE,
        )
        with patch("market_data_service.routers.quotes.get_quote_service", return_value=svc):
            body = client.get("/api/quotes/DEAD").json()
        assert body["success"] and body["error"] == "no_relay_available"
        assert body["data"]["available"] is False

    def test_invalid_interval(self, client):
        assert client.get("/api/quotes/AAPL", params={"interval": "7m"}).status_code == 422


class TestPortfolioRoutes:
    def test_refresh(self, client):
        from market_data_service.models.portfolio import PortfolioSnapshot
        svc = AsyncMock()
        svc.refresh.return_value = PortfolioSnapshot(eur_usd_rate=1.08, fx_fallback=True)
        with patch("market_data_service.routers.portfolio.get_portfolio_service", return_value=svc):
            r = client.post("/api/portfolio/refresh", json={
                "positions": [{"symbol": " aapl ", "quantity": 3}],
                "range": "1d",
                "interval": "5m",
            })
        assert r.status_code == 200 and r.json()["data"]["fx_fallback"] is True
        positions, range_, interval = svc.refresh.await_args.args
        assert positions[0].symbol == "AAPL" and (range_, interval) == ("1d", "5m")

    def test_empty_symbol_rejected(self, client):
        r = client.post("/api/portfolio/refresh", json={"positions": [{"symbol": "  "}]})
        assert r.status_code == 422


class TestCacheRoutes:
    def test_stats_and_clear(self, client):
        assert "ttl" in client.get("/api/cache/stats").json()["data"]
        r = client.post("/api/cache/clear", json={})
        assert r.status_code == 200 and "removed" in r.json()["data"]
