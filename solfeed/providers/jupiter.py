"""Jupiter verified token list with batched USD price lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from ..http import MalformedResponseError
from ..models import TokenSnapshot
from ..util import normalize_address
from .base import SourceAdapter, price_from, require_list

logger = logging.getLogger(__name__)

_DEFAULT_TOKENS_URL = "https://token.jup.ag"
_DEFAULT_PRICE_URL = "https://api.jup.ag"
_LOGO_CDN = "https://dd.dexscreener.com/ds-data/tokens/solana/{address}.png"

MAX_TOKENS = 500
PRICE_BATCH_SIZE = 100
MAX_PRICE_BATCHES = 5


class JupiterAdapter(SourceAdapter):
    name = "jupiter"

    async def _token_list(self) -> List[Mapping[str, Any]]:
        async def _load() -> List[Mapping[str, Any]]:
            url = f"{self.settings.base_url(self.name, _DEFAULT_TOKENS_URL)}/all"
            payload = require_list(await self.get_json(url), self.name, "tokens")
            tokens = []
            for entry in payload:
                if isinstance(entry, Mapping) and entry.get("address") and entry.get("symbol"):
                    tokens.append(entry)
                    if len(tokens) >= MAX_TOKENS:
                        break
            return tokens

        # the verified list changes slowly
        return await self.cache.get_or_set_async("meta", "jupiter:tokens", _load)

    async def _price_batch(self, chunk: Sequence[str]) -> Dict[str, Any]:
        key = ",".join(chunk)
        cached = self.cache.get("price", key)
        if cached is not None:
            return cached
        url = f"{self.settings.base_url('jupiter_price', _DEFAULT_PRICE_URL)}/price/v2"
        try:
            payload = await self.get_json(url, params={"ids": key})
        except Exception as exc:
            logger.debug("Jupiter price batch of %d skipped: %s", len(chunk), exc)
            return {}
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, Mapping):
            return {}
        prices = dict(data)
        self.cache.set("price", key, prices)
        return prices

    async def _fetch_raw(self) -> Dict[str, Any]:
        tokens = await self._token_list()
        addresses = [normalize_address(entry.get("address")) for entry in tokens]
        chunks = [
            addresses[i : i + PRICE_BATCH_SIZE] for i in range(0, len(addresses), PRICE_BATCH_SIZE)
        ][:MAX_PRICE_BATCHES]
        prices: Dict[str, Any] = {}
        for batch in await asyncio.gather(*(self._price_batch(chunk) for chunk in chunks)):
            prices.update(batch)
        return {"tokens": tokens, "prices": prices}

    def _records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("jupiter: unexpected payload shape")
        prices = payload.get("prices") or {}
        for entry in require_list(payload.get("tokens"), self.name, "tokens"):
            address = normalize_address(entry.get("address")) if isinstance(entry, Mapping) else ""
            yield entry, prices.get(address)

    def _parse_record(self, record: Any) -> TokenSnapshot | None:
        entry, quote = record
        if not isinstance(entry, Mapping):
            raise MalformedResponseError("jupiter: token is not an object")
        address = normalize_address(entry.get("address"))
        if not address:
            return None
        symbol = str(entry.get("symbol") or "")
        logo = entry.get("logoURI")
        return TokenSnapshot(
            address=address,
            source_id=self.name,
            symbol=symbol,
            name=str(entry.get("name") or symbol),
            price=price_from(quote),
            dex_id="jupiter",
            logo_uri=logo if isinstance(logo, str) and logo else _LOGO_CDN.format(address=address),
        )


__all__ = ["JupiterAdapter"]
