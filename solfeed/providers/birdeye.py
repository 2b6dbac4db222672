"""Birdeye token list adapter (requires ``BIRDEYE_API_KEY``)."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..http import MalformedResponseError
from ..models import TokenSnapshot
from ..util import coerce_float, coerce_int, normalize_address
from .base import SourceAdapter, price_from, require_list

_DEFAULT_BASE_URL = "https://public-api.birdeye.so"
_TOKENLIST_PARAMS = {
    "sort_by": "v24hUSD",
    "sort_type": "desc",
    "offset": 0,
    "limit": 100,
}


class BirdeyeAdapter(SourceAdapter):
    name = "birdeye"
    requires_api_key = True

    @property
    def api_key(self) -> str:
        return self.settings.birdeye_api_key

    async def _fetch_raw(self) -> Any:
        url = f"{self.settings.base_url(self.name, _DEFAULT_BASE_URL)}/defi/tokenlist"
        return await self.get_json(
            url,
            params=_TOKENLIST_PARAMS,
            headers={"X-API-KEY": self.api_key, "x-chain": "solana"},
        )

    def _records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("birdeye: payload is not an object")
        if payload.get("success") is False:
            raise MalformedResponseError(f"birdeye: request rejected: {payload.get('message')}")
        data = payload.get("data")
        if not isinstance(data, Mapping):
            raise MalformedResponseError("birdeye: missing data object")
        return require_list(data.get("tokens"), self.name, "tokens")

    def _parse_record(self, record: Any) -> TokenSnapshot | None:
        if not isinstance(record, Mapping):
            raise MalformedResponseError("birdeye: token is not an object")
        address = normalize_address(record.get("address"))
        if not address:
            return None
        holders = coerce_int(record.get("holder"))
        return TokenSnapshot(
            address=address,
            source_id=self.name,
            symbol=str(record.get("symbol") or ""),
            name=str(record.get("name") or ""),
            price=price_from(record.get("price")),
            price_change_1h=coerce_float(record.get("priceChange1hPercent")),
            price_change_24h=coerce_float(record.get("priceChange24hPercent")),
            volume_1h=coerce_float(record.get("v1hUSD")),
            volume_24h=coerce_float(record.get("v24hUSD")),
            liquidity=coerce_float(record.get("liquidity")),
            market_cap=coerce_float(record.get("mc")),
            fdv=coerce_float(record.get("fdv")),
            dex_id="birdeye",
            logo_uri=str(record.get("logoURI") or ""),
            holder_count=holders if holders > 0 else None,
        )


__all__ = ["BirdeyeAdapter"]
