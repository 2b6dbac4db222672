"""DexScreener adapter: boosts, profiles and search fan-out plus batch lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from ..http import MalformedResponseError
from ..models import TokenSnapshot
from ..util import coerce_float, coerce_int, normalize_address, parse_timestamp_ms
from .base import SourceAdapter, price_from, txn_counts

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.dexscreener.com"
_LOGO_CDN = "https://dd.dexscreener.com/ds-data/tokens/solana/{address}.png"

CHAIN_ID = "solana"
BATCH_SIZE = 30
MAX_BATCHES = 15
BATCH_CONCURRENCY = 4

_LISTING_PATHS: Tuple[Tuple[str, str], ...] = (
    ("boosts_latest", "/token-boosts/latest/v1"),
    ("boosts_top", "/token-boosts/top/v1"),
    ("profiles", "/token-profiles/latest/v1"),
    ("search", "/latest/dex/search?q=solana"),
)


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _solana_items(payload: Any) -> List[Mapping[str, Any]]:
    if not isinstance(payload, list):
        return []
    return [
        item
        for item in payload
        if isinstance(item, Mapping) and item.get("chainId") == CHAIN_ID and item.get("tokenAddress")
    ]


def _base_address(pair: Mapping[str, Any]) -> str:
    return normalize_address(_mapping(pair.get("baseToken")).get("address"))


def _chunks(items: Sequence[str], size: int) -> List[List[str]]:
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class DexScreenerAdapter(SourceAdapter):
    name = "dexscreener"

    @property
    def base_url(self) -> str:
        return self.settings.base_url(self.name, _DEFAULT_BASE_URL)

    async def _get_or_none(self, key: str, path: str) -> Any:
        try:
            return await self.get_json(f"{self.base_url}{path}")
        except Exception as exc:
            logger.debug("DexScreener %s listing unavailable: %s", key, exc)
            return None

    async def _fetch_raw(self) -> Dict[str, Any]:
        results = await asyncio.gather(
            *(self._get_or_none(key, path) for key, path in _LISTING_PATHS)
        )
        listings = dict(zip((key for key, _ in _LISTING_PATHS), results))
        if all(value is None for value in results):
            raise MalformedResponseError("dexscreener: every listing endpoint failed")

        boosts: Dict[str, int] = {}
        profiles: Dict[str, Mapping[str, Any]] = {}
        pending: List[str] = []
        seen: set[str] = set()

        def _remember(address: str) -> None:
            if address and address not in seen:
                seen.add(address)
                pending.append(address)

        for item in _solana_items(listings["boosts_latest"]):
            address = normalize_address(item.get("tokenAddress"))
            boosts[address] = coerce_int(item.get("amount")) or 1
            _remember(address)
        for item in _solana_items(listings["boosts_top"]):
            address = normalize_address(item.get("tokenAddress"))
            boosts[address] = max(boosts.get(address, 0), coerce_int(item.get("amount")) or 1)
            _remember(address)
        for item in _solana_items(listings["profiles"]):
            address = normalize_address(item.get("tokenAddress"))
            profiles[address] = item
            _remember(address)

        pairs: List[Mapping[str, Any]] = []
        search = _mapping(listings["search"]).get("pairs")
        if isinstance(search, list):
            for pair in search:
                if isinstance(pair, Mapping) and pair.get("chainId") == CHAIN_ID and _base_address(pair):
                    pairs.append(pair)

        # Search pairs already carry full market data; only look up the rest.
        searched = {_base_address(pair) for pair in pairs}
        batch = [address for address in pending if address not in searched]
        pairs.extend(await self._fetch_batches(batch))

        return {"pairs": pairs, "boosts": boosts, "profiles": profiles}

    async def _fetch_batches(self, addresses: Sequence[str]) -> List[Mapping[str, Any]]:
        chunks = _chunks(addresses, BATCH_SIZE)[:MAX_BATCHES]
        if not chunks:
            return []
        semaphore = asyncio.Semaphore(BATCH_CONCURRENCY)

        async def _one(chunk: List[str]) -> List[Mapping[str, Any]]:
            async with semaphore:
                try:
                    payload = await self.get_json(f"{self.base_url}/tokens/v1/{CHAIN_ID}/{','.join(chunk)}")
                except Exception as exc:
                    # one failed chunk does not sink the whole listing
                    logger.debug("DexScreener batch of %d skipped: %s", len(chunk), exc)
                    return []
            if not isinstance(payload, list):
                return []
            return [pair for pair in payload if isinstance(pair, Mapping)]

        results = await asyncio.gather(*(_one(chunk) for chunk in chunks))
        return [pair for chunk_pairs in results for pair in chunk_pairs]

    def _records(self, payload: Any) -> Iterable[Tuple[Mapping[str, Any], int, Any]]:
        if not isinstance(payload, Mapping) or not isinstance(payload.get("pairs"), list):
            raise MalformedResponseError("dexscreener: unexpected payload shape")
        boosts = payload.get("boosts") or {}
        profiles = payload.get("profiles") or {}
        for pair in payload["pairs"]:
            address = _base_address(pair) if isinstance(pair, Mapping) else ""
            yield pair, boosts.get(address, 0), profiles.get(address)

    def _parse_record(self, record: Tuple[Mapping[str, Any], int, Any]) -> TokenSnapshot | None:
        pair, boost_amount, profile = record
        if not isinstance(pair, Mapping):
            raise MalformedResponseError("dexscreener: pair is not an object")
        base = _mapping(pair.get("baseToken"))
        address = normalize_address(base.get("address"))
        if not address:
            return None

        volume = _mapping(pair.get("volume"))
        change = _mapping(pair.get("priceChange"))
        txns = _mapping(pair.get("txns"))
        info = _mapping(pair.get("info"))
        dex_id = str(pair.get("dexId") or "")
        is_pump_fun = dex_id == "pumpfun" or "pump.fun" in str(pair.get("url") or "")
        market_cap = coerce_float(pair.get("marketCap")) or coerce_float(pair.get("fdv"))
        image_url = info.get("imageUrl") if isinstance(info.get("imageUrl"), str) else ""

        return TokenSnapshot(
            address=address,
            source_id=self.name,
            symbol=str(base.get("symbol") or ""),
            name=str(base.get("name") or ""),
            price=price_from(pair.get("priceUsd")),
            price_change_5m=coerce_float(change.get("m5")),
            price_change_1h=coerce_float(change.get("h1")),
            price_change_24h=coerce_float(change.get("h24")),
            volume_5m=coerce_float(volume.get("m5")),
            volume_1h=coerce_float(volume.get("h1")),
            volume_6h=coerce_float(volume.get("h6")),
            volume_24h=coerce_float(volume.get("h24")),
            liquidity=coerce_float(pair.get("liquidity")),
            market_cap=market_cap,
            fdv=coerce_float(pair.get("fdv")),
            pair_created_at=parse_timestamp_ms(pair.get("pairCreatedAt")),
            pair_address=str(pair.get("pairAddress") or ""),
            dex_id=dex_id,
            logo_uri=image_url or _LOGO_CDN.format(address=address),
            txns_5m=txn_counts(txns.get("m5")),
            txns_1h=txn_counts(txns.get("h1")),
            txns_6h=txn_counts(txns.get("h6")),
            txns_24h=txn_counts(txns.get("h24")),
            is_pump_fun=is_pump_fun,
            is_migrated=is_pump_fun and dex_id != "pumpfun",
            has_profile=bool(image_url) or profile is not None,
            has_boost=boost_amount > 0,
            boost_amount=boost_amount,
            has_enhanced_profile=bool(info.get("websites")) or bool(info.get("socials")),
            profile_updated_at=parse_timestamp_ms(info.get("updatedAt")),
        )


__all__ = ["DexScreenerAdapter"]
