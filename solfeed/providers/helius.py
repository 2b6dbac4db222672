"""Helius DAS adapter listing recently created fungible assets."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..http import MalformedResponseError
from ..models import TokenSnapshot
from ..util import coerce_float, normalize_address
from .base import SourceAdapter, price_from, require_list

_DEFAULT_BASE_URL = "https://mainnet.helius-rpc.com"
SEARCH_LIMIT = 100


def _search_request(limit: int = SEARCH_LIMIT) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": "solfeed",
        "method": "searchAssets",
        "params": {
            "ownerAddress": None,
            "tokenType": "fungible",
            "displayOptions": {"showFungible": True},
            "sortBy": {"sortBy": "created", "sortDirection": "desc"},
            "limit": limit,
        },
    }


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _logo(content: Mapping[str, Any]) -> str:
    image = _mapping(content.get("links")).get("image")
    if isinstance(image, str) and image:
        return image
    files = content.get("files")
    if isinstance(files, list) and files:
        uri = _mapping(files[0]).get("uri")
        if isinstance(uri, str):
            return uri
    return ""


class HeliusAdapter(SourceAdapter):
    name = "helius"
    requires_api_key = True

    @property
    def api_key(self) -> str:
        return self.settings.helius_api_key

    async def _fetch_raw(self) -> Any:
        url = f"{self.settings.base_url(self.name, _DEFAULT_BASE_URL)}/"
        return await self.get_json(
            url,
            "POST",
            params={"api-key": self.api_key},
            json_body=_search_request(),
        )

    def _records(self, payload: Any) -> Iterable[Any]:
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("helius: payload is not an object")
        error = payload.get("error")
        if error:
            message = _mapping(error).get("message") or error
            raise MalformedResponseError(f"helius: RPC error: {message}")
        result = _mapping(payload.get("result"))
        return require_list(result.get("items"), self.name, "assets")

    def _parse_record(self, record: Any) -> TokenSnapshot | None:
        if not isinstance(record, Mapping):
            raise MalformedResponseError("helius: asset is not an object")
        address = normalize_address(record.get("id"))
        if not address:
            return None
        content = _mapping(record.get("content"))
        metadata = _mapping(content.get("metadata"))
        token_info = _mapping(record.get("token_info"))
        price_info = _mapping(token_info.get("price_info"))

        price = price_from(price_info.get("price_per_token"))
        supply = coerce_float(token_info.get("supply"))
        decimals = min(max(coerce_float(token_info.get("decimals")), 0.0), 18.0)
        market_cap = 0.0
        if price > 0 and supply > 0:
            market_cap = price * supply / (10 ** decimals)

        return TokenSnapshot(
            address=address,
            source_id=self.name,
            symbol=str(metadata.get("symbol") or token_info.get("symbol") or ""),
            name=str(metadata.get("name") or ""),
            price=price,
            market_cap=market_cap,
            fdv=market_cap,
            dex_id="helius",
            logo_uri=_logo(content),
        )


__all__ = ["HeliusAdapter"]
