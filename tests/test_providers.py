from __future__ import annotations

import asyncio
from typing import Any

import pytest

from solfeed.models import TokenSnapshot, TxnCounts
from solfeed.providers import (
    BirdeyeAdapter,
    DexScreenerAdapter,
    HeliusAdapter,
    JupiterAdapter,
    PumpFunAdapter,
    SourceAdapter,
)

NOW_MS = 1_700_000_000_000


def _build(cls, limiter, cache, settings, session, **kwargs):
    return cls(
        limiter=limiter,
        cache=cache,
        settings=settings,
        session=session,
        now_ms=lambda: NOW_MS,
        **kwargs,
    )


def _pair(address: str, chain: str = "solana", **overrides: Any) -> dict:
    pair = {
        "chainId": chain,
        "dexId": "raydium",
        "url": f"https://dexscreener.com/solana/{address}",
        "pairAddress": f"pair-{address}",
        "baseToken": {"address": address, "symbol": address[:3].upper(), "name": f"{address} token"},
        "priceUsd": "0.0125",
        "priceChange": {"m5": 1.5, "h1": -2.0, "h24": 30},
        "volume": {"m5": 100, "h1": 1000, "h6": 5000, "h24": 20000},
        "txns": {"m5": {"buys": 4, "sells": 2}, "h1": {"buys": 40, "sells": 20}, "h24": {"buys": 400, "sells": 200}},
        "liquidity": {"usd": 15000, "base": 1, "quote": 2},
        "fdv": 250000,
        "marketCap": 200000,
        "pairCreatedAt": NOW_MS - 3_600_000,
    }
    pair.update(overrides)
    return pair


# dexscreener -------------------------------------------------------------


def _dexscreener_routes():
    return [
        (
            "token-boosts/latest",
            [
                {"chainId": "solana", "tokenAddress": "BoostA", "amount": 5},
                {"chainId": "ethereum", "tokenAddress": "0xdead", "amount": 50},
            ],
        ),
        ("token-boosts/top", [{"chainId": "solana", "tokenAddress": "BoostA", "amount": 10}]),
        ("token-profiles/latest", [{"chainId": "solana", "tokenAddress": "Prof1", "icon": "x"}]),
        (
            "dex/search",
            {"pairs": [_pair("SearchX", info={"imageUrl": "https://img/x.png", "socials": [{"x": 1}]}), _pair("EthTok", chain="ethereum")]},
        ),
        (
            "tokens/v1/solana/",
            [_pair("BoostA", dexId="pumpswap", url="https://pump.fun/BoostA"), _pair("Prof1", dexId="pumpfun")],
        ),
    ]


def test_dexscreener_fan_out(limiter, cache, settings, fake_session):
    session = fake_session(_dexscreener_routes())
    adapter = _build(DexScreenerAdapter, limiter, cache, settings, session)

    tokens = {token.address: token for token in asyncio.run(adapter.fetch())}

    assert set(tokens) == {"SearchX", "BoostA", "Prof1"}
    batch_urls = [url for url in session.urls() if "tokens/v1/solana/" in url]
    assert len(batch_urls) == 1
    assert batch_urls[0].endswith("/tokens/v1/solana/BoostA,Prof1")

    search = tokens["SearchX"]
    assert search.source_id == "dexscreener"
    assert search.fetched_at == NOW_MS
    assert search.price == 0.0125
    assert search.liquidity == 15000
    assert search.market_cap == 200000
    assert search.volume_24h == 20000
    assert search.txns_1h == TxnCounts(40, 20)
    assert search.pair_created_at == NOW_MS - 3_600_000
    assert search.logo_uri == "https://img/x.png"
    assert search.has_profile and search.has_enhanced_profile
    assert not search.has_boost

    boosted = tokens["BoostA"]
    assert boosted.has_boost and boosted.boost_amount == 10
    assert boosted.is_pump_fun and boosted.is_migrated
    assert boosted.logo_uri.endswith("/solana/BoostA.png")

    profiled = tokens["Prof1"]
    assert profiled.has_profile
    assert profiled.is_pump_fun and not profiled.is_migrated

    assert limiter.health("dexscreener").consecutive_failures == 0


def test_dexscreener_survives_partial_listing_failure(limiter, cache, settings, fake_session, fake_response):
    routes = _dexscreener_routes()
    routes[0] = ("token-boosts/latest", fake_response({"error": "busy"}, status=503))
    routes[3] = ("dex/search", fake_response({"error": "busy"}, status=500))
    session = fake_session(routes)
    adapter = _build(DexScreenerAdapter, limiter, cache, settings, session)

    tokens = asyncio.run(adapter.fetch())

    assert {token.address for token in tokens} == {"BoostA", "Prof1"}


def test_dexscreener_all_listings_failing_is_a_failure(limiter, cache, settings, fake_session, fake_response):
    session = fake_session([("dexscreener", fake_response({}, status=500))])
    adapter = _build(DexScreenerAdapter, limiter, cache, settings, session)

    assert asyncio.run(adapter.fetch()) == []
    health = limiter.health("dexscreener")
    assert health.consecutive_failures == 1
    assert health.current_backoff_ms == 500


def test_dexscreener_base_url_override(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("DEXSCREENER_BASE_URL", "http://localhost:9999/")
    session = fake_session(_dexscreener_routes())
    adapter = _build(DexScreenerAdapter, limiter, cache, settings, session)
    asyncio.run(adapter.fetch())
    assert all(url.startswith("http://localhost:9999/") for url in session.urls())


# birdeye -----------------------------------------------------------------


def _birdeye_payload():
    return {
        "success": True,
        "data": {
            "tokens": [
                {
                    "address": "BirdA",
                    "symbol": "BRD",
                    "name": "Bird",
                    "price": 2.5,
                    "priceChange24hPercent": -4.0,
                    "priceChange1hPercent": 1.0,
                    "v24hUSD": 123456.0,
                    "v1hUSD": 5000.0,
                    "liquidity": 75000.0,
                    "mc": 1_000_000.0,
                    "logoURI": "https://img/bird.png",
                    "holder": 321,
                },
                "not-a-token",
                {"address": "BirdB", "symbol": "BB", "holder": 0},
            ]
        },
    }


def test_birdeye_requires_api_key(limiter, cache, settings, fake_session):
    session = fake_session([("birdeye", _birdeye_payload())])
    adapter = _build(BirdeyeAdapter, limiter, cache, settings, session)

    assert not adapter.enabled
    assert asyncio.run(adapter.fetch()) == []
    assert session.calls == []
    assert limiter.snapshot() == {}


def test_birdeye_parses_and_drops_malformed(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("BIRDEYE_API_KEY", "secret")
    session = fake_session([("birdeye", _birdeye_payload())])
    adapter = _build(BirdeyeAdapter, limiter, cache, settings, session)

    tokens = asyncio.run(adapter.fetch())

    assert [token.address for token in tokens] == ["BirdA", "BirdB"]
    bird = tokens[0]
    assert bird.holder_count == 321
    assert bird.volume_24h == 123456.0
    assert bird.price_change_24h == -4.0
    assert bird.market_cap == 1_000_000.0
    assert tokens[1].holder_count is None
    call = session.calls[0]
    assert call["headers"]["X-API-KEY"] == "secret"
    assert call["headers"]["x-chain"] == "solana"
    assert call["params"]["sort_by"] == "v24hUSD"


def test_birdeye_rejected_payload(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("BIRDEYE_API_KEY", "secret")
    session = fake_session([("birdeye", {"success": False, "message": "bad key"})])
    adapter = _build(BirdeyeAdapter, limiter, cache, settings, session)

    assert asyncio.run(adapter.fetch()) == []
    assert "bad key" in limiter.health("birdeye").last_error


# pump.fun ----------------------------------------------------------------


def test_pumpfun_bonding_curve_math(limiter, cache, settings, fake_session):
    coins = [
        {
            "mint": "PumpA",
            "symbol": "PMP",
            "name": "Pump A",
            "usd_market_cap": 50_000.0,
            "total_supply": 1_000_000_000,
            "virtual_sol_reserves": 42.5,
            "bonding_curve": "CurveA",
            "created_timestamp": NOW_MS - 600_000,
            "image_uri": "https://img/pump.png",
            "complete": False,
        },
        {
            "mint": "PumpB",
            "usd_market_cap": 90_000.0,
            "virtual_sol_reserves": 42_500_000_000,
            "bonding_curve": "CurveB",
            "complete": True,
        },
        {"symbol": "NOMINT"},
    ]
    session = fake_session([("pump.fun", coins)])
    adapter = _build(PumpFunAdapter, limiter, cache, settings, session)

    tokens = {token.address: token for token in asyncio.run(adapter.fetch())}

    assert set(tokens) == {"PumpA", "PumpB"}
    first = tokens["PumpA"]
    assert first.is_pump_fun and not first.is_migrated
    assert first.bonding_curve_progress == pytest.approx(50.0)
    assert first.liquidity == pytest.approx(42.5 * 150)
    assert first.price == pytest.approx(50_000.0 / 1_000_000_000)
    assert first.pair_created_at == NOW_MS - 600_000
    assert first.pair_address == "CurveA"
    assert first.logo_uri == "https://img/pump.png"

    second = tokens["PumpB"]
    assert second.is_migrated
    assert second.bonding_curve_progress == 100.0
    assert second.liquidity == pytest.approx(42.5 * 150)


def test_pumpfun_sol_price_from_settings(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("FEED_SOL_PRICE_USD", "200")
    coins = [{"mint": "PumpA", "virtual_sol_reserves": 10, "bonding_curve": "C"}]
    adapter = _build(PumpFunAdapter, limiter, cache, settings, fake_session([("pump.fun", coins)]))
    token = asyncio.run(adapter.fetch())[0]
    assert token.liquidity == 2000
    assert token.bonding_curve_progress == pytest.approx(10 / 85 * 100)


# jupiter -----------------------------------------------------------------


def _jupiter_tokens():
    return [
        {"address": "JupA", "symbol": "JA", "name": "Jup A", "logoURI": "https://img/ja.png"},
        {"address": "JupB", "symbol": "JB"},
        {"address": "NoSymbol"},
    ]


def test_jupiter_tokens_and_prices(limiter, cache, settings, fake_session):
    session = fake_session(
        [
            ("token.jup.ag/all", _jupiter_tokens()),
            ("price/v2", {"data": {"JupA": {"id": "JupA", "price": "1.75"}}}),
        ]
    )
    adapter = _build(JupiterAdapter, limiter, cache, settings, session)

    tokens = asyncio.run(adapter.fetch())

    assert [token.address for token in tokens] == ["JupA", "JupB"]
    assert tokens[0].price == 1.75
    assert tokens[0].logo_uri == "https://img/ja.png"
    assert tokens[1].price == 0.0
    assert tokens[1].name == "JB"
    price_call = [call for call in session.calls if "price/v2" in call["url"]][0]
    assert price_call["params"] == {"ids": "JupA,JupB"}


def test_jupiter_failed_price_batch_is_skipped(limiter, cache, settings, fake_session, fake_response):
    session = fake_session(
        [
            ("token.jup.ag/all", _jupiter_tokens()),
            ("price/v2", fake_response({"error": "down"}, status=502)),
        ]
    )
    adapter = _build(JupiterAdapter, limiter, cache, settings, session)

    tokens = asyncio.run(adapter.fetch())

    assert [token.price for token in tokens] == [0.0, 0.0]
    assert limiter.health("jupiter").consecutive_failures == 0


# helius ------------------------------------------------------------------


def test_helius_search_assets(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("HELIUS_API_KEY", "hk")
    payload = {
        "jsonrpc": "2.0",
        "result": {
            "items": [
                {
                    "id": "HelA",
                    "content": {
                        "metadata": {"symbol": "HA", "name": "Helius A"},
                        "files": [{"uri": "https://img/ha.png"}],
                    },
                    "token_info": {
                        "supply": 1_000_000_000_000,
                        "decimals": 6,
                        "price_info": {"price_per_token": 0.002},
                    },
                },
                {"content": {"metadata": {"symbol": "NOID"}}},
            ]
        },
    }
    session = fake_session([("helius-rpc", payload)])
    adapter = _build(HeliusAdapter, limiter, cache, settings, session)

    tokens = asyncio.run(adapter.fetch())

    assert [token.address for token in tokens] == ["HelA"]
    token = tokens[0]
    assert token.symbol == "HA"
    assert token.logo_uri == "https://img/ha.png"
    assert token.price == 0.002
    assert token.market_cap == pytest.approx(2_000.0)
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["params"] == {"api-key": "hk"}
    assert call["json"]["method"] == "searchAssets"
    assert call["json"]["params"]["sortBy"] == {"sortBy": "created", "sortDirection": "desc"}


def test_helius_rpc_error_is_a_failure(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("HELIUS_API_KEY", "hk")
    session = fake_session([("helius-rpc", {"error": {"code": -32000, "message": "rate limited"}})])
    adapter = _build(HeliusAdapter, limiter, cache, settings, session)

    assert asyncio.run(adapter.fetch()) == []
    assert "rate limited" in limiter.health("helius").last_error


# adapter template --------------------------------------------------------


def test_failure_is_recorded_and_next_call_throttled(limiter, cache, settings, fake_session, fake_response, clock_ms):
    session = fake_session([("pump.fun", fake_response({"error": "boom"}, status=500))])
    adapter = _build(PumpFunAdapter, limiter, cache, settings, session)

    assert asyncio.run(adapter.fetch()) == []
    health = limiter.health("pumpfun")
    assert health.consecutive_failures == 1
    assert "500" in health.last_error

    # still inside min interval + backoff: skipped without a request
    assert asyncio.run(adapter.fetch()) == []
    assert len(session.calls) == 1

    clock_ms.advance(300 + 500)
    asyncio.run(adapter.fetch())
    assert len(session.calls) == 2


def test_source_cache_serves_repeat_calls(limiter, cache, settings, fake_session, clock_s):
    coins = [{"mint": "PumpA", "symbol": "PMP"}]
    session = fake_session([("pump.fun", coins)])
    adapter = _build(PumpFunAdapter, limiter, cache, settings, session)

    first = asyncio.run(adapter.fetch())
    second = asyncio.run(adapter.fetch())
    assert [t.address for t in first] == [t.address for t in second] == ["PumpA"]
    assert len(session.calls) == 1

    clock_s.advance(9)
    limiter.reset()
    asyncio.run(adapter.fetch())
    assert len(session.calls) == 2


def test_invalid_json_fails_the_source(limiter, cache, settings, fake_session, fake_response):
    session = fake_session([("pump.fun", fake_response(raw=b"not json"))])
    adapter = _build(PumpFunAdapter, limiter, cache, settings, session)
    assert asyncio.run(adapter.fetch()) == []
    assert "invalid JSON" in limiter.health("pumpfun").last_error


def test_disabled_by_environment(monkeypatch, limiter, cache, settings, fake_session):
    monkeypatch.setenv("FEED_DISABLE_PUMPFUN", "1")
    session = fake_session([("pump.fun", [{"mint": "PumpA"}])])
    adapter = _build(PumpFunAdapter, limiter, cache, settings, session)
    assert asyncio.run(adapter.fetch()) == []
    assert session.calls == []


class _SlowAdapter(SourceAdapter):
    name = "slow"

    async def _fetch_raw(self) -> Any:
        await asyncio.sleep(5)
        return []

    def _records(self, payload):
        return payload

    def _parse_record(self, record) -> TokenSnapshot | None:
        return record


def test_adapter_timeout(limiter, cache, settings):
    adapter = _SlowAdapter(limiter=limiter, cache=cache, settings=settings, timeout=0.01)
    assert asyncio.run(adapter.fetch()) == []
    health = limiter.health("slow")
    assert health.consecutive_failures == 1
    assert health.last_error == "timeout"
