"""Pump.fun adapter for tokens still trading on their bonding curve."""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Tuple

from ..http import MalformedResponseError
from ..models import TokenSnapshot
from ..util import coerce_float, first_present, normalize_address, parse_timestamp_ms
from .base import SourceAdapter

_DEFAULT_BASE_URL = "https://frontend-api.pump.fun"
_COINS_PARAMS = {
    "limit": 100,
    "sort": "created_timestamp",
    "order": "desc",
    "includeNsfw": "false",
}

# SOL in the curve when it completes and migrates.
BONDING_CURVE_TARGET_SOL = 85.0
DEFAULT_TOTAL_SUPPLY = 1_000_000_000.0
LAMPORTS_PER_SOL = 1_000_000_000.0

_PAYLOAD_KEYS: Tuple[str, ...] = ("coins", "items", "results", "data")
_MINT_KEYS: Tuple[str, ...] = ("mint", "address", "tokenAddress")

_FIELD_ALIASES: Mapping[str, Tuple[str, ...]] = {
    "name": ("name",),
    "symbol": ("symbol", "ticker"),
    "icon": ("image_uri", "imageUri", "uri"),
    "market_cap": ("usd_market_cap", "usdMarketCap"),
    "total_supply": ("total_supply", "totalSupply"),
    "sol_reserves": ("virtual_sol_reserves", "virtualSolReserves"),
    "volume_24h": ("volume_24h", "volume24h"),
    "created": ("created_timestamp", "createdTimestamp"),
    "bonding_curve": ("bonding_curve", "bondingCurve"),
}


def _field(entry: Mapping[str, Any], name: str) -> Any:
    return first_present(entry, _FIELD_ALIASES[name])


def _sol_reserves(entry: Mapping[str, Any]) -> float:
    reserves = coerce_float(_field(entry, "sol_reserves"))
    # the API reports lamports; a value this large cannot be whole SOL
    if reserves >= 1_000_000:
        reserves /= LAMPORTS_PER_SOL
    return max(0.0, reserves)


class PumpFunAdapter(SourceAdapter):
    name = "pumpfun"

    async def _fetch_raw(self) -> Any:
        url = f"{self.settings.base_url(self.name, _DEFAULT_BASE_URL)}/coins"
        return await self.get_json(url, params=_COINS_PARAMS)

    def _records(self, payload: Any) -> Iterable[Any]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, Mapping):
            for key in _PAYLOAD_KEYS:
                value = payload.get(key)
                if isinstance(value, list):
                    return value
        raise MalformedResponseError("pumpfun: no coin list in payload")

    def _parse_record(self, record: Any) -> TokenSnapshot | None:
        if not isinstance(record, Mapping):
            raise MalformedResponseError("pumpfun: coin is not an object")
        address = normalize_address(first_present(record, _MINT_KEYS))
        if not address:
            return None

        complete = bool(record.get("complete"))
        bonding_curve = _field(record, "bonding_curve")
        reserves = _sol_reserves(record)
        if complete:
            progress = 100.0
        elif bonding_curve:
            progress = min(100.0, reserves / BONDING_CURVE_TARGET_SOL * 100.0)
        else:
            progress = 0.0

        market_cap = max(0.0, coerce_float(_field(record, "market_cap")))
        supply = coerce_float(_field(record, "total_supply")) or DEFAULT_TOTAL_SUPPLY
        # raw supply is in base units with six decimals
        if supply > DEFAULT_TOTAL_SUPPLY * 10:
            supply /= 1_000_000
        icon = _field(record, "icon")

        return TokenSnapshot(
            address=address,
            source_id=self.name,
            symbol=str(_field(record, "symbol") or ""),
            name=str(_field(record, "name") or ""),
            price=market_cap / supply if market_cap > 0 and supply > 0 else 0.0,
            volume_24h=coerce_float(_field(record, "volume_24h")),
            liquidity=reserves * self.settings.sol_price_usd,
            market_cap=market_cap,
            fdv=market_cap,
            pair_created_at=parse_timestamp_ms(_field(record, "created")),
            pair_address=str(bonding_curve or ""),
            dex_id="pumpfun",
            logo_uri=icon if isinstance(icon, str) else "",
            is_pump_fun=True,
            is_migrated=complete,
            bonding_curve_progress=progress,
        )


__all__ = ["PumpFunAdapter"]
