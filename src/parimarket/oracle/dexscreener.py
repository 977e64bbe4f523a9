"""DexScreener oracle - launch status and spot price from the token-pairs endpoint."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from parimarket.models import PriceTarget, ResolutionParams, TokenLaunch
from parimarket.oracle.base import OracleResult

if TYPE_CHECKING:
    from parimarket.config import Settings

log = structlog.get_logger(__name__)

DEXSCREENER_BASE_URL = "https://api.dexscreener.com"

# dex id of the token's first pair => launched?
LAUNCH_DEX_IDS: dict[str, dict[str, bool]] = {
    "pumpfun": {"pumpswap": True, "pumpfun": False},
    "bonk": {"raydium": True, "launchlab": False},
}


def launch_outcome(platform: str, dex_id: str) -> bool:
    """Graduated if the token now trades on the platform's destination dex."""
    known = LAUNCH_DEX_IDS.get(platform, {})
    if dex_id not in known:
        log.warning("unknown_dex_id", platform=platform, dex_id=dex_id)
        return False
    return known[dex_id]


def parse_price(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        price = Decimal(str(raw))
    except InvalidOperation:
        return None
    return price if price.is_finite() and price >= 0 else None


class DexScreenerOracle:
    """Async oracle over https://api.dexscreener.com/token-pairs/v1/{chain}/{address}."""

    def __init__(
        self,
        base_url: str = DEXSCREENER_BASE_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> DexScreenerOracle:
        return cls(base_url=settings.oracle_base_url, timeout=settings.oracle_timeout_sec)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_pairs(self, chain: str, address: str) -> list[dict[str, Any]] | None:
        """Pairs list for a token, or None when the lookup failed."""
        url = f"{self.base_url}/token-pairs/v1/{chain}/{address}"
        try:
            resp = await self._client.get(url)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("oracle_request_failed", url=url, error=str(e))
            return None
        if isinstance(data, dict):
            data = data.get("pairs") or []
        if not isinstance(data, list):
            return None
        return [p for p in data if isinstance(p, dict)]

    async def resolve(self, params: ResolutionParams) -> OracleResult:
        if isinstance(params, TokenLaunch):
            pairs = await self.fetch_pairs(params.chain, params.contract_address)
            dex_id = pairs[0].get("dexId") if pairs else None
            if not dex_id:
                log.info("oracle_indeterminate", contract_address=params.contract_address)
                return OracleResult.indeterminate()
            return OracleResult.resolved(launch_outcome(params.platform, str(dex_id)))
        if isinstance(params, PriceTarget):
            pairs = await self.fetch_pairs(params.chain, params.reference_asset)
            price = parse_price(pairs[0].get("priceUsd")) if pairs else None
            if price is None:
                log.info("oracle_indeterminate", reference_asset=params.reference_asset)
                return OracleResult.indeterminate()
            return OracleResult.priced(price)
        return OracleResult.indeterminate()

    async def token_metadata(self, address: str, chain: str = "solana") -> dict[str, str] | None:
        """Symbol and name of a token from its first pair, for registering coins."""
        pairs = await self.fetch_pairs(chain, address)
        if not pairs:
            return None
        base = pairs[0].get("baseToken") or {}
        if base.get("address") and base["address"] != address:
            base = pairs[0].get("quoteToken") or {}
        symbol, name = base.get("symbol"), base.get("name")
        if not symbol:
            return None
        return {"symbol": str(symbol), "name": str(name or symbol)}
